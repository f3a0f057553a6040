"""Interface de linha de comando para spocli."""

import argparse
import getpass
import logging
import os
import sys

from rich.console import Console
from rich.logging import RichHandler

from .auth import AUTH_TYPES, Auth
from .client import SpoClient, file_request_url
from .exceptions import SharePointError
from .utils import print_output

logger = logging.getLogger("spocli")


def setup_logging(verbose: bool = False, debug: bool = False) -> None:
    """Configura logging no stderr usando rich."""
    debug = debug or os.getenv("SPOCLI_DEBUG") == "1"
    level = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=debug)],
        force=True,
    )
    # httpx registra cada requisição em INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)


def get_auth() -> Auth:
    """Cria o contexto de autenticação a partir da conexão gravada."""
    auth = Auth()
    auth.restore()
    return auth


def get_client() -> SpoClient:
    """Cria cliente com a conexão atual."""
    auth = get_auth()
    auth.ensure_connected()
    return SpoClient(auth)


def confirm(args: argparse.Namespace, message: str) -> bool:
    """Pede confirmação, a menos que --confirm tenha sido informado."""
    if args.confirm:
        return True
    response = input(f"{message} [y/N]: ")
    if response.lower() != "y":
        print("Cancelado.")
        return False
    return True


# =========================================================================
# Conexão
# =========================================================================


def cmd_login(args: argparse.Namespace) -> None:
    """Autentica no SharePoint Online."""
    # login substitui a conexão gravada, mesmo se estiver corrompida
    auth = Auth()
    password = args.password
    if args.auth_type == "password" and not password:
        password = getpass.getpass("Senha: ")
    connection = auth.login(
        args.url,
        auth_type=args.auth_type,
        user_name=args.user_name,
        password=password,
        on_device_code=lambda message: print(message, file=sys.stderr),
    )
    logger.info("Conectado como %s", connection.user_name or connection.auth_type)


def cmd_logout(args: argparse.Namespace) -> None:
    """Encerra a conexão."""
    Auth().logout()


def cmd_status(args: argparse.Namespace) -> None:
    """Mostra a conexão atual."""
    connection = get_auth().connection
    if not connection.connected:
        print("Desconectado")
        return
    print_output(
        {
            "connectedAs": connection.user_name,
            "authType": connection.auth_type,
            "spoUrl": connection.spo_url,
        },
        args.output,
    )


def cmd_spo_get(args: argparse.Namespace) -> None:
    """Mostra a URL do SharePoint Online."""
    print_output(get_client().get_spo(), args.output)


# =========================================================================
# Sites
# =========================================================================


def cmd_site_get(args: argparse.Namespace) -> None:
    """Obtém informações de um site."""
    print_output(get_client().get_site(args.url), args.output)


def cmd_site_add(args: argparse.Namespace) -> None:
    """Cria um site moderno."""
    site_url = get_client().add_site(
        args.title,
        site_type=args.type,
        alias=args.alias,
        url=args.url,
        description=args.description,
        classification=args.classification,
        is_public=True if args.is_public else None,
        owners=args.owners,
        lcid=args.lcid,
        share_by_email_enabled=True if args.share_by_email_enabled else None,
        site_design=args.site_design,
        site_design_id=args.site_design_id,
    )
    print_output(site_url, args.output)


def cmd_site_classic_set(args: argparse.Namespace) -> None:
    """Altera um site clássico."""
    operation = get_client().set_classic_site(
        args.url,
        title=args.title,
        sharing=args.sharing,
        resource_quota=args.resource_quota,
        resource_quota_warning_level=args.resource_quota_warning_level,
        storage_quota=args.storage_quota,
        storage_quota_warning_level=args.storage_quota_warning_level,
        allow_self_service_upgrade=args.allow_self_service_upgrade,
        owners=args.owners,
        lock_state=args.lock_state,
        no_script_site=args.no_script_site,
        wait=args.wait,
        timeout=args.timeout,
    )
    if args.output == "json" and operation:
        print_output(operation, args.output)


def cmd_site_remove(args: argparse.Namespace) -> None:
    """Remove um site."""
    if not confirm(args, f"Remover o site '{args.url}'?"):
        return
    get_client().remove_site(
        args.url,
        skip_recycle_bin=args.skip_recycle_bin,
        from_recycle_bin=args.from_recycle_bin,
        wait=args.wait,
        timeout=args.timeout,
    )


def cmd_site_rename(args: argparse.Namespace) -> None:
    """Renomeia a URL de um site."""
    job = get_client().rename_site(
        args.site_url,
        args.new_site_url,
        new_site_title=args.new_site_title,
        suppress_marketplace_app_check=args.suppress_marketplace_app_check,
        suppress_workflow2013_check=args.suppress_workflow2013_check,
        wait=args.wait,
        timeout=args.timeout,
    )
    print_output(job, args.output)


def cmd_sitedesign_list(args: argparse.Namespace) -> None:
    """Lista site designs."""
    designs = get_client().list_site_designs()
    fields = None if args.output == "json" else ["Id", "IsDefault", "Title", "Version", "WebTemplate"]
    print_output(designs, args.output, fields)


def cmd_hubsite_unregister(args: argparse.Namespace) -> None:
    """Remove o registro de hub site."""
    if not confirm(args, f"Remover o registro do hub site '{args.url}'?"):
        return
    get_client().unregister_hub_site(args.url)


def cmd_theme_list(args: argparse.Namespace) -> None:
    """Lista temas do tenant."""
    themes = get_client().list_themes()
    if args.output == "json":
        print_output(themes, args.output)
    else:
        print_output([theme.get("name") for theme in themes], args.output)


# =========================================================================
# Tenant
# =========================================================================


def cmd_tenant_appcatalogurl_get(args: argparse.Namespace) -> None:
    """Mostra a URL do catálogo de apps do tenant."""
    url = get_client().get_tenant_app_catalog_url()
    if url:
        print_output(url, args.output)
    else:
        logger.info("Catálogo de apps do tenant não configurado.")


def cmd_cdn_origin_list(args: argparse.Namespace) -> None:
    """Lista origens da CDN."""
    print_output(get_client().list_cdn_origins(args.type), args.output)


def cmd_storageentity_list(args: argparse.Namespace) -> None:
    """Lista storage entities."""
    entities = get_client().list_storage_entities(args.app_catalog_url)
    if not entities:
        logger.info("Nenhuma propriedade encontrada")
        return
    print_output(entities, args.output)


# =========================================================================
# Apps
# =========================================================================


def cmd_app_list(args: argparse.Namespace) -> None:
    """Lista apps do catálogo."""
    apps = get_client().list_apps(args.scope, args.app_catalog_url)
    fields = None if args.output == "json" else ["Title", "ID", "Deployed", "AppCatalogVersion"]
    print_output(apps, args.output, fields)


def cmd_app_add(args: argparse.Namespace) -> None:
    """Adiciona um pacote ao catálogo."""
    result = get_client().add_app(
        args.file_path,
        scope=args.scope,
        app_catalog_url=args.app_catalog_url,
        overwrite=args.overwrite,
    )
    if args.output == "json":
        print_output(result, args.output)
    else:
        print_output(result["UniqueId"], args.output)


def cmd_app_deploy(args: argparse.Namespace) -> None:
    """Publica um app."""
    get_client().deploy_app(
        app_id=args.id,
        name=args.name,
        scope=args.scope,
        app_catalog_url=args.app_catalog_url,
        skip_feature_deployment=args.skip_feature_deployment,
    )


# =========================================================================
# Arquivos
# =========================================================================


def cmd_file_remove(args: argparse.Namespace) -> None:
    """Remove um arquivo."""
    # valida antes de pedir confirmação
    file_request_url(args.web_url, args.id, args.url, args.recycle)
    target = args.id or args.url
    action = "Enviar para a lixeira" if args.recycle else "Remover"
    if not confirm(args, f"{action} o arquivo '{target}'?"):
        return
    get_client().remove_file(args.web_url, file_id=args.id, url=args.url, recycle=args.recycle)


def create_parser() -> argparse.ArgumentParser:
    """Cria parser de argumentos."""
    parser = argparse.ArgumentParser(
        prog="spo",
        description="Gerencia o SharePoint Online pela linha de comando",
    )

    # Argumentos globais, aceitos em todos os comandos
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--output", "-o", choices=["json", "text"], default="text", help="Formato da saída"
    )
    common.add_argument("--verbose", action="store_true", help="Mostra mensagens adicionais")
    common.add_argument("--debug", action="store_true", help="Mostra requisições HTTP")

    subparsers = parser.add_subparsers(dest="command", help="Comandos disponíveis")

    def group(name: str, help_text: str, parent=subparsers):
        sp = parent.add_parser(name, help=help_text)
        return sp.add_subparsers(dest=f"{name}_command", required=True)

    def add_wait(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("--wait", action="store_true", help="Aguarda a operação terminar")
        sp.add_argument(
            "--timeout", type=float, default=None, help="Tempo máximo de espera em segundos"
        )

    def add_app_catalog(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("--scope", default="tenant", help="tenant ou sitecollection")
        sp.add_argument("--app-catalog-url", help="URL do catálogo de apps")

    # =========================================================================
    # Conexão
    # =========================================================================

    # login
    sp = subparsers.add_parser("login", parents=[common], help="Autentica no SharePoint Online")
    sp.add_argument("url", help="URL de um site (ex: https://contoso.sharepoint.com)")
    sp.add_argument("--auth-type", "-t", choices=AUTH_TYPES, default="deviceCode")
    sp.add_argument("--user-name", "-u", help="Usuário (auth-type password)")
    sp.add_argument("--password", "-p", help="Senha (auth-type password)")
    sp.set_defaults(func=cmd_login)

    # logout / status
    sp = subparsers.add_parser("logout", parents=[common], help="Encerra a conexão")
    sp.set_defaults(func=cmd_logout)
    sp = subparsers.add_parser("status", parents=[common], help="Mostra a conexão atual")
    sp.set_defaults(func=cmd_status)

    # get
    sp = subparsers.add_parser("get", parents=[common], help="Mostra a URL do SharePoint Online")
    sp.set_defaults(func=cmd_spo_get)

    # =========================================================================
    # Sites
    # =========================================================================

    site = group("site", "Comandos de sites")

    sp = site.add_parser("get", parents=[common], help="Obtém informações de um site")
    sp.add_argument("--url", "-u", required=True, help="URL do site")
    sp.set_defaults(func=cmd_site_get)

    sp = site.add_parser("add", parents=[common], help="Cria um site moderno")
    sp.add_argument("--type", default="TeamSite", help="TeamSite ou CommunicationSite")
    sp.add_argument("--title", "-t", required=True, help="Título do site")
    sp.add_argument("--alias", "-a", help="Alias do grupo (TeamSite)")
    sp.add_argument("--url", "-u", help="URL do site (CommunicationSite)")
    sp.add_argument("--description", "-d", help="Descrição do site")
    sp.add_argument("--classification", "-c", help="Classificação do site")
    sp.add_argument("--is-public", action="store_true", help="Grupo público (TeamSite)")
    sp.add_argument("--owners", help="Logins separados por vírgula (TeamSite)")
    sp.add_argument("--lcid", "-l", help="Idioma do site (ex: 1033)")
    sp.add_argument(
        "--share-by-email-enabled",
        action="store_true",
        help="Permite compartilhar arquivos com convidados (CommunicationSite)",
    )
    sp.add_argument("--site-design", help="Topic|Showcase|Blank (CommunicationSite)")
    sp.add_argument("--site-design-id", help="Id de um site design personalizado")
    sp.set_defaults(func=cmd_site_add)

    classic = group("classic", "Sites clássicos", parent=site)
    sp = classic.add_parser("set", parents=[common], help="Altera um site clássico")
    sp.add_argument("--url", "-u", required=True, help="URL do site")
    sp.add_argument("--title", help="Novo título")
    sp.add_argument("--sharing", help="Disabled|ExternalUserSharingOnly|ExternalUserAndGuestSharing|ExistingExternalUserSharingOnly")
    sp.add_argument("--resource-quota", help="Cota de recursos")
    sp.add_argument("--resource-quota-warning-level", help="Nível de aviso da cota de recursos")
    sp.add_argument("--storage-quota", help="Cota de armazenamento (MB)")
    sp.add_argument("--storage-quota-warning-level", help="Nível de aviso da cota (MB)")
    sp.add_argument("--allow-self-service-upgrade", help="true ou false")
    sp.add_argument("--owners", help="Logins separados por vírgula")
    sp.add_argument("--lock-state", help="Unlock|NoAdditions|ReadOnly|NoAccess")
    sp.add_argument("--no-script-site", help="true ou false")
    add_wait(sp)
    sp.set_defaults(func=cmd_site_classic_set)

    sp = site.add_parser("remove", parents=[common], help="Remove um site")
    sp.add_argument("--url", "-u", required=True, help="URL do site")
    sp.add_argument("--skip-recycle-bin", action="store_true", help="Remove também da lixeira")
    sp.add_argument("--from-recycle-bin", action="store_true", help="Remove um site da lixeira")
    sp.add_argument("--confirm", action="store_true", help="Não pede confirmação")
    add_wait(sp)
    sp.set_defaults(func=cmd_site_remove)

    sp = site.add_parser("rename", parents=[common], help="Renomeia a URL de um site")
    sp.add_argument("--site-url", required=True, help="URL atual do site")
    sp.add_argument("--new-site-url", required=True, help="Nova URL do site")
    sp.add_argument("--new-site-title", help="Novo título")
    sp.add_argument("--suppress-marketplace-app-check", action="store_true")
    sp.add_argument("--suppress-workflow2013-check", action="store_true")
    add_wait(sp)
    sp.set_defaults(func=cmd_site_rename)

    sitedesign = group("sitedesign", "Site designs")
    sp = sitedesign.add_parser("list", parents=[common], help="Lista site designs")
    sp.set_defaults(func=cmd_sitedesign_list)

    hubsite = group("hubsite", "Hub sites")
    sp = hubsite.add_parser("unregister", parents=[common], help="Remove o registro de hub site")
    sp.add_argument("--url", "-u", required=True, help="URL do hub site")
    sp.add_argument("--confirm", action="store_true", help="Não pede confirmação")
    sp.set_defaults(func=cmd_hubsite_unregister)

    theme = group("theme", "Temas")
    sp = theme.add_parser("list", parents=[common], help="Lista temas do tenant")
    sp.set_defaults(func=cmd_theme_list)

    # =========================================================================
    # Tenant
    # =========================================================================

    tenant = group("tenant", "Configurações do tenant")
    appcatalogurl = group("appcatalogurl", "Catálogo de apps do tenant", parent=tenant)
    sp = appcatalogurl.add_parser("get", parents=[common], help="Mostra a URL do catálogo")
    sp.set_defaults(func=cmd_tenant_appcatalogurl_get)

    cdn = group("cdn", "CDN do tenant")
    origin = group("origin", "Origens da CDN", parent=cdn)
    sp = origin.add_parser("list", parents=[common], help="Lista origens da CDN")
    sp.add_argument("--type", "-t", default="Public", help="Public ou Private")
    sp.set_defaults(func=cmd_cdn_origin_list)

    storageentity = group("storageentity", "Propriedades do tenant")
    sp = storageentity.add_parser("list", parents=[common], help="Lista storage entities")
    sp.add_argument("--app-catalog-url", "-u", required=True, help="URL do catálogo de apps")
    sp.set_defaults(func=cmd_storageentity_list)

    # =========================================================================
    # Apps
    # =========================================================================

    app = group("app", "Catálogo de apps")

    sp = app.add_parser("list", parents=[common], help="Lista apps do catálogo")
    add_app_catalog(sp)
    sp.set_defaults(func=cmd_app_list)

    sp = app.add_parser("add", parents=[common], help="Adiciona um pacote .sppkg")
    sp.add_argument("--file-path", "-p", required=True, help="Arquivo local")
    sp.add_argument("--overwrite", action="store_true", help="Sobrescreve o app existente")
    add_app_catalog(sp)
    sp.set_defaults(func=cmd_app_add)

    sp = app.add_parser("deploy", parents=[common], help="Publica um app")
    sp.add_argument("--id", "-i", help="ID do app")
    sp.add_argument("--name", "-n", help="Nome do arquivo do app")
    sp.add_argument("--skip-feature-deployment", action="store_true")
    add_app_catalog(sp)
    sp.set_defaults(func=cmd_app_deploy)

    # =========================================================================
    # Arquivos
    # =========================================================================

    files = group("file", "Arquivos")
    sp = files.add_parser("remove", parents=[common], help="Remove um arquivo")
    sp.add_argument("--web-url", "-w", required=True, help="URL do site")
    sp.add_argument("--id", "-i", help="UniqueId do arquivo")
    sp.add_argument("--url", "-u", help="Caminho do arquivo")
    sp.add_argument("--recycle", action="store_true", help="Envia para a lixeira")
    sp.add_argument("--confirm", action="store_true", help="Não pede confirmação")
    sp.set_defaults(func=cmd_file_remove)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Ponto de entrada da CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    setup_logging(args.verbose, args.debug)

    try:
        args.func(args)
    except SharePointError as e:
        print(f"Erro: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nCancelado pelo usuário.")
        sys.exit(130)


if __name__ == "__main__":
    main()
