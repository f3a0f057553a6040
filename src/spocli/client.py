"""Cliente SharePoint Online usando REST (/_api) e CSOM (client.svc)."""

import json
import logging
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Any, Callable
from urllib.parse import quote

import httpx

from . import csom
from .auth import Auth
from .exceptions import CommandError, OperationTimeoutError, ValidationError
from .utils import (
    get_server_relative_path,
    is_valid_guid,
    odata_quote,
    validate_guid,
    validate_sharepoint_url,
)

logger = logging.getLogger(__name__)

SHARING_CAPABILITIES = {
    "Disabled": 0,
    "ExternalUserSharingOnly": 1,
    "ExternalUserAndGuestSharing": 2,
    "ExistingExternalUserSharingOnly": 3,
}
LOCK_STATES = ("Unlock", "NoAdditions", "ReadOnly", "NoAccess")
CDN_TYPES = {"Public": 0, "Private": 1}
APP_SCOPES = ("tenant", "sitecollection")
SITE_TYPES = ("TeamSite", "CommunicationSite")
SITE_DESIGNS = {
    "Topic": "00000000-0000-0000-0000-000000000000",
    "Showcase": "6142d2a0-63a5-4ba0-aede-d9fefca2c767",
    "Blank": "f6cc5403-0d63-442e-96c0-285923709ffc",
}
# SPSiteManager.Create: 0 não encontrado, 1 provisionando, 2 pronto, 3 erro
SITE_STATUS_ERROR = 3


def get_error_message(response: httpx.Response) -> tuple[str, str | None]:
    """
    Extrai a mensagem de erro de uma resposta da API.

    Suporta erros OData ('odata.error'), erros no formato Graph ('error'),
    'message' simples, erros OAuth ('error_description') e texto puro.

    Args:
        response: Resposta HTTP com status de erro

    Returns:
        Tupla (mensagem, código)
    """
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text or f"{response.status_code} {response.reason_phrase}", None

    if isinstance(body, dict):
        odata_error = body.get("odata.error")
        if isinstance(odata_error, dict):
            message = odata_error.get("message")
            if isinstance(message, dict):
                message = message.get("value")
            return str(message), odata_error.get("code")

        error = body.get("error")
        if isinstance(error, dict) and "message" in error:
            return str(error["message"]), error.get("code")

        if "message" in body:
            return str(body["message"]), None

        if "error_description" in body:
            return str(body["error_description"]), body.get("error")

    return json.dumps(body), None


def parse_retry_after(value: str | None, default: float) -> float:
    """
    Converte o header Retry-After em segundos.

    Aceita segundos ou uma data HTTP; valores inválidos usam `default`.
    """
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        pass
    try:
        moment = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return max((moment - datetime.now(timezone.utc)).total_seconds(), 0.0)


class SpoClient:
    """Cliente para executar comandos no SharePoint Online."""

    USER_AGENT = "NONISV|spocli/1.0.0"
    ACCEPT = "application/json;odata=nometadata"

    # Margem antes de renovar o form digest
    DIGEST_MARGIN = 60
    # Tempo máximo aguardando operações de longa duração (segundos)
    DEFAULT_TIMEOUT = 600.0
    RENAME_POLL_INTERVAL = 5.0

    def __init__(
        self,
        auth: Auth,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Inicializa o cliente.

        Args:
            auth: Contexto de autenticação com a conexão atual
            max_retries: Número máximo de tentativas em caso de falha
            retry_delay: Delay inicial entre tentativas (exponential backoff)
            transport: Transport httpx alternativo (usado em testes)
            sleep: Função de espera usada em retries e polling
            clock: Relógio monotônico usado nos timeouts de polling
        """
        self.auth = auth
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.transport = transport
        self._sleep = sleep
        self._clock = clock
        self._digests: dict[str, tuple[str, float]] = {}

    # =========================================================================
    # HTTP
    # =========================================================================

    def _get_headers(self, url: str, headers: dict[str, str] | None = None) -> dict[str, str]:
        """Retorna headers para requisições à API."""
        token = self.auth.get_access_token(Auth.get_resource(url))
        result = {
            "Authorization": f"Bearer {token}",
            "Accept": self.ACCEPT,
            "User-Agent": self.USER_AGENT,
        }
        if headers:
            result.update(headers)
        return result

    def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs,
    ) -> httpx.Response:
        """Faz requisição HTTP com retry automático."""
        headers = kwargs.pop("headers", None)

        for attempt in range(self.max_retries):
            try:
                with httpx.Client(timeout=60.0, transport=self.transport) as client:
                    response = client.request(
                        method,
                        url,
                        headers=self._get_headers(url, headers),
                        **kwargs,
                    )
                # Retry em erros 429 (rate limit) e 5xx
                is_throttled = response.status_code == 429 or response.status_code >= 500
                if is_throttled and attempt < self.max_retries - 1:
                    retry_after = parse_retry_after(
                        response.headers.get("Retry-After"), self.retry_delay
                    )
                    logger.debug(
                        "%s %s retornou %s, nova tentativa em %ss",
                        method, url, response.status_code, retry_after * (2 ** attempt),
                    )
                    self._sleep(retry_after * (2 ** attempt))
                    continue
                return response
            except httpx.HTTPError:
                if attempt < self.max_retries - 1:
                    self._sleep(self.retry_delay * (2 ** attempt))
                    continue
                raise

        raise CommandError("Número máximo de tentativas excedido")

    def _request(self, method: str, url: str, **kwargs) -> Any:
        """
        Executa a requisição e devolve o JSON da resposta.

        Raises:
            CommandError: Para respostas de erro ou falhas de rede
        """
        logger.debug("%s %s", method, url)
        try:
            response = self._request_with_retry(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise CommandError(str(e)) from e

        if response.is_error:
            message, code = get_error_message(response)
            logger.debug("Erro %s: %s", response.status_code, response.text)
            raise CommandError(message, code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def get(self, url: str, **kwargs) -> Any:
        return self._request("GET", url, **kwargs)

    def post(self, url: str, **kwargs) -> Any:
        return self._request("POST", url, **kwargs)

    # =========================================================================
    # Form digest / CSOM
    # =========================================================================

    def get_request_digest(self, site_url: str) -> str:
        """
        Obtém o form digest do site, reaproveitando o valor enquanto válido.

        Args:
            site_url: URL absoluta do site

        Returns:
            Valor do FormDigestValue
        """
        site_url = site_url.rstrip("/")
        cached = self._digests.get(site_url)
        if cached and self._clock() < cached[1]:
            return cached[0]

        info = self.post(f"{site_url}/_api/contextinfo")
        value = info["FormDigestValue"]
        timeout = int(info.get("FormDigestTimeoutSeconds", 1800))
        self._digests[site_url] = (value, self._clock() + timeout - self.DIGEST_MARGIN)
        return value

    def process_query(self, site_url: str, body: str) -> list:
        """
        Envia uma requisição CSOM para client.svc/ProcessQuery.

        Args:
            site_url: URL do site (normalmente o site de administração)
            body: XML montado com csom.build_request

        Returns:
            Lista JSON retornada pelo servidor

        Raises:
            CommandError: Se a resposta contiver ErrorInfo
        """
        site_url = site_url.rstrip("/")
        digest = self.get_request_digest(site_url)
        result = self.post(
            f"{site_url}/_vti_bin/client.svc/ProcessQuery",
            content=body.encode("utf-8"),
            headers={"X-RequestDigest": digest, "Content-Type": "text/xml"},
        )
        if not isinstance(result, list) or not result:
            raise CommandError(f"Resposta CSOM inesperada: {result}")

        error_info = (result[0] or {}).get("ErrorInfo")
        if error_info:
            raise CommandError(
                error_info.get("ErrorMessage") or "Erro desconhecido",
                error_info.get("ErrorTypeName"),
            )
        return result

    def get_tenant_id(self) -> str:
        """Identidade CSOM do objeto Tenant, resolvida uma única vez."""
        connection = self.auth.ensure_connected()
        if connection.tenant_id:
            return connection.tenant_id

        body = csom.build_request(
            '<Query Id="4" ObjectPathId="3"><Query SelectAllProperties="true">'
            "<Properties /></Query></Query>",
            csom.TENANT_CONSTRUCTOR,
        )
        result = self.process_query(self.auth.get_spo_admin_url(), body)
        connection.tenant_id = result[-1]["_ObjectIdentity_"]
        self.auth.store()
        return connection.tenant_id

    # =========================================================================
    # Operações de longa duração
    # =========================================================================

    def wait_until_finished(
        self,
        admin_url: str,
        operation: dict,
        interval: float | None = None,
        timeout: float | None = None,
    ) -> dict:
        """
        Consulta uma SpoOperation até IsComplete ser verdadeiro.

        Args:
            admin_url: URL do site de administração
            operation: Último estado da operação (_ObjectIdentity_, IsComplete, ...)
            interval: Intervalo fixo em segundos (padrão: PollingInterval do servidor)
            timeout: Tempo máximo de espera em segundos

        Returns:
            Estado final da operação

        Raises:
            CommandError: Se o servidor retornar ErrorInfo durante o polling
            OperationTimeoutError: Se o tempo limite for atingido
        """
        timeout = self.DEFAULT_TIMEOUT if timeout is None else timeout
        deadline = self._clock() + timeout
        rounds = 0

        while not operation.get("IsComplete"):
            if operation.get("HasTimedout"):
                raise OperationTimeoutError("A operação expirou no SharePoint")
            if self._clock() >= deadline:
                raise OperationTimeoutError(
                    f"A operação não terminou em {timeout:g} segundos"
                )

            delay = interval
            if delay is None:
                delay = (operation.get("PollingInterval") or 15000) / 1000
            self._sleep(delay)

            rounds += 1
            logger.debug("Verificando operação (tentativa %s)", rounds)
            result = self.process_query(
                admin_url, csom.operation_status_query(operation["_ObjectIdentity_"])
            )
            operation = {**operation, **result[-1]}

        return operation

    def wait_for_rename_job(self, site_url: str, timeout: float | None = None) -> dict:
        """
        Aguarda o job de renomeação do site terminar.

        Raises:
            CommandError: Se o job terminar com erro
            OperationTimeoutError: Se o tempo limite for atingido
        """
        admin_url = self.auth.get_spo_admin_url()
        url = (
            f"{admin_url}/_api/SiteRenameJobs/GetJobsBySiteUrl"
            f"(url='{quote(odata_quote(site_url), safe='')}')?api-version=1.4.7"
        )
        timeout = self.DEFAULT_TIMEOUT if timeout is None else timeout
        deadline = self._clock() + timeout
        attempt = 1

        while True:
            if self._clock() >= deadline:
                raise OperationTimeoutError(
                    f"A renomeação não terminou em {timeout:g} segundos"
                )
            self._sleep(self.RENAME_POLL_INTERVAL)
            result = self.get(url, headers={"X-AttemptNumber": str(attempt)})
            jobs = (result or {}).get("value") or []
            job = jobs[0] if jobs else {}
            state = job.get("JobState")
            logger.debug("Job de renomeação: %s (tentativa %s)", state, attempt)
            if state == "Success":
                return job
            if state == "Error":
                raise CommandError(job.get("ErrorDescription") or "Falha ao renomear o site")
            attempt += 1

    # =========================================================================
    # Conexão
    # =========================================================================

    def get_spo(self) -> dict:
        """Retorna a URL raiz do SharePoint Online da conexão."""
        return {"SpoUrl": self.auth.get_spo_url()}

    # =========================================================================
    # Sites
    # =========================================================================

    def get_site(self, url: str) -> dict:
        """Obtém informações de um site collection."""
        url = validate_sharepoint_url(url)
        return self.get(f"{url}/_api/site")

    def set_classic_site(
        self,
        url: str,
        title: str | None = None,
        sharing: str | None = None,
        resource_quota: str | None = None,
        resource_quota_warning_level: str | None = None,
        storage_quota: str | None = None,
        storage_quota_warning_level: str | None = None,
        allow_self_service_upgrade: str | None = None,
        owners: str | None = None,
        lock_state: str | None = None,
        no_script_site: str | None = None,
        wait: bool = False,
        timeout: float | None = None,
    ) -> dict | None:
        """
        Altera propriedades de um site clássico pelo site de administração.

        As propriedades são aplicadas em uma única requisição CSOM
        (GetSitePropertiesByUrl + SetProperty + Update). Owners são
        adicionados com SetSiteAdmin, um por requisição.

        Args:
            url: URL do site
            title: Novo título
            sharing: Disabled, ExternalUserSharingOnly, ExternalUserAndGuestSharing
                ou ExistingExternalUserSharingOnly
            resource_quota: Cota de recursos
            resource_quota_warning_level: Nível de aviso da cota de recursos
            storage_quota: Cota de armazenamento (MB)
            storage_quota_warning_level: Nível de aviso da cota de armazenamento (MB)
            allow_self_service_upgrade: 'true' ou 'false'
            owners: Logins separados por vírgula
            lock_state: Unlock, NoAdditions, ReadOnly ou NoAccess
            no_script_site: 'true' ou 'false'
            wait: Aguardar a operação terminar
            timeout: Tempo máximo de espera em segundos

        Returns:
            Estado da SpoOperation, ou None se apenas owners foram alterados

        Raises:
            ValidationError: Se as opções forem inválidas
            CommandError: Se o SharePoint retornar erro
        """
        url = validate_sharepoint_url(url)
        properties = _classic_site_properties(
            title=title,
            sharing=sharing,
            resource_quota=resource_quota,
            resource_quota_warning_level=resource_quota_warning_level,
            storage_quota=storage_quota,
            storage_quota_warning_level=storage_quota_warning_level,
            allow_self_service_upgrade=allow_self_service_upgrade,
            lock_state=lock_state,
            no_script_site=no_script_site,
        )
        owner_list = [o.strip() for o in (owners or "").split(",") if o.strip()]
        if not properties and not owner_list:
            raise ValidationError("Informe ao menos uma propriedade para alterar")

        admin_url = self.auth.get_spo_admin_url()
        operation = None

        # LockState é aplicado por último, depois dos owners
        lock = [p for p in properties if p[0] == "LockState"]
        properties = [p for p in properties if p[0] != "LockState"]

        if properties:
            operation = self._set_site_properties(admin_url, url, properties, wait, timeout)

        for owner in owner_list:
            logger.info("Adicionando %s como administrador de %s", owner, url)
            self.process_query(
                admin_url,
                csom.build_request(
                    '<ObjectPath Id="48" ObjectPathId="47" />',
                    '<Method Id="47" ParentId="34" Name="SetSiteAdmin"><Parameters>'
                    + csom.parameter("String", url)
                    + csom.parameter("String", owner)
                    + csom.parameter("Boolean", True)
                    + "</Parameters></Method>"
                    f'<Constructor Id="34" TypeId="{csom.TENANT_TYPE_ID}" />',
                ),
            )

        if lock:
            operation = self._set_site_properties(admin_url, url, lock, wait, timeout)

        return operation

    def _set_site_properties(
        self,
        admin_url: str,
        url: str,
        properties: list[tuple[str, str, Any]],
        wait: bool,
        timeout: float | None,
    ) -> dict:
        """GetSitePropertiesByUrl + SetProperty + Update em uma requisição CSOM."""
        actions = "".join(
            f'<SetProperty Id="{20 + i}" ObjectPathId="5" Name="{name}">'
            f"{csom.parameter(type_name, value)}</SetProperty>"
            for i, (name, type_name, value) in enumerate(properties)
        )
        actions += (
            '<ObjectPath Id="9" ObjectPathId="8" />'
            '<ObjectIdentityQuery Id="10" ObjectPathId="5" />'
            + csom.operation_query(11, 8)
        )
        object_paths = (
            '<Method Id="5" ParentId="3" Name="GetSitePropertiesByUrl"><Parameters>'
            + csom.parameter("String", url)
            + csom.parameter("Boolean", False)
            + '</Parameters></Method><Method Id="8" ParentId="5" Name="Update" />'
            + csom.TENANT_CONSTRUCTOR
        )
        result = self.process_query(admin_url, csom.build_request(actions, object_paths))
        operation = result[-1]
        if wait:
            operation = self.wait_until_finished(admin_url, operation, timeout=timeout)
        return operation

    def remove_site(
        self,
        url: str,
        skip_recycle_bin: bool = False,
        from_recycle_bin: bool = False,
        wait: bool = False,
        timeout: float | None = None,
    ) -> dict:
        """
        Remove um site collection (ou o remove da lixeira do tenant).

        Com skip_recycle_bin o site é removido e, após a operação terminar,
        também excluído da lixeira.
        """
        url = validate_sharepoint_url(url)
        if skip_recycle_bin and from_recycle_bin:
            raise ValidationError(
                "Use apenas uma das opções: skip_recycle_bin ou from_recycle_bin"
            )
        admin_url = self.auth.get_spo_admin_url()

        method = "RemoveDeletedSite" if from_recycle_bin else "RemoveSite"
        operation = self._tenant_site_operation(admin_url, method, url)
        if wait or skip_recycle_bin:
            operation = self.wait_until_finished(admin_url, operation, timeout=timeout)

        if skip_recycle_bin:
            operation = self._tenant_site_operation(admin_url, "RemoveDeletedSite", url)
            if wait:
                operation = self.wait_until_finished(admin_url, operation, timeout=timeout)

        return operation

    def _tenant_site_operation(self, admin_url: str, method: str, url: str) -> dict:
        body = csom.build_request(
            '<ObjectPath Id="55" ObjectPathId="54" />' + csom.operation_query(56, 54),
            csom.tenant_method(54, method, csom.parameter("String", url))
            + csom.TENANT_CONSTRUCTOR,
        )
        return self.process_query(admin_url, body)[-1]

    def rename_site(
        self,
        site_url: str,
        new_site_url: str,
        new_site_title: str | None = None,
        suppress_marketplace_app_check: bool = False,
        suppress_workflow2013_check: bool = False,
        wait: bool = False,
        timeout: float | None = None,
    ) -> dict:
        """
        Agenda a renomeação de um site.

        Returns:
            Job de renomeação (estado final se wait=True)
        """
        site_url = validate_sharepoint_url(site_url, "site_url")
        new_site_url = validate_sharepoint_url(new_site_url, "new_site_url")
        if site_url.lower() == new_site_url.lower():
            raise ValidationError("A nova URL não pode ser igual à URL atual do site")

        option = 0
        if suppress_marketplace_app_check:
            option |= 8
        if suppress_workflow2013_check:
            option |= 16

        admin_url = self.auth.get_spo_admin_url()
        digest = self.get_request_digest(admin_url)
        job = self.post(
            f"{admin_url}/_api/SiteRenameJobs?api-version=1.4.7",
            headers={"X-RequestDigest": digest},
            json={
                "SourceSiteUrl": site_url,
                "TargetSiteUrl": new_site_url,
                "TargetSiteTitle": new_site_title,
                "Option": option,
                "Reserve": None,
                "SkipGestures": None,
                "OperationId": "00000000-0000-0000-0000-000000000000",
            },
        )
        if job.get("JobState") == "Error":
            raise CommandError(job.get("ErrorDescription") or "Falha ao renomear o site")
        if wait and job.get("JobState") != "Success":
            job = self.wait_for_rename_job(site_url, timeout=timeout)
        return job

    def add_site(
        self,
        title: str,
        site_type: str = "TeamSite",
        alias: str | None = None,
        url: str | None = None,
        description: str | None = None,
        classification: str | None = None,
        is_public: bool | None = None,
        owners: str | None = None,
        lcid: str | int | None = None,
        share_by_email_enabled: bool | None = None,
        site_design: str | None = None,
        site_design_id: str | None = None,
    ) -> str | None:
        """
        Cria um site moderno.

        TeamSite cria um grupo do Microsoft 365 com site
        (GroupSiteManager/CreateGroupEx). CommunicationSite usa
        SPSiteManager/Create com o template SITEPAGEPUBLISHING#0.

        Args:
            title: Título do site
            site_type: TeamSite (padrão) ou CommunicationSite
            alias: Alias do grupo (obrigatório para TeamSite)
            url: URL do site (obrigatório para CommunicationSite)
            description: Descrição
            classification: Classificação do site
            is_public: Grupo público (apenas TeamSite)
            owners: Logins separados por vírgula (apenas TeamSite)
            lcid: Idioma do site
            share_by_email_enabled: Permite compartilhar arquivos com convidados
                (apenas CommunicationSite)
            site_design: Topic, Showcase ou Blank (apenas CommunicationSite)
            site_design_id: Id de um site design personalizado

        Returns:
            URL do site criado

        Raises:
            ValidationError: Se as opções forem inválidas
            CommandError: Se o SharePoint recusar a criação
        """
        lcid_value = _validate_site_add(
            title, site_type, alias, url, owners, lcid, site_design, site_design_id
        )
        spo_url = self.auth.get_spo_url()

        if site_type == "TeamSite":
            creation_options = []
            if lcid_value is not None:
                creation_options.append(f"SPSiteLanguage:{lcid_value}")
            optional_params: dict[str, Any] = {
                "Description": description or "",
                "CreationOptions": {
                    "results": creation_options,
                    "Classification": classification or "",
                },
            }
            owner_list = [o.strip() for o in (owners or "").split(",") if o.strip()]
            if owner_list:
                optional_params["Owners"] = {"results": owner_list}

            logger.info("Criando team site com alias %s", alias)
            result = self.post(
                f"{spo_url}/_api/GroupSiteManager/CreateGroupEx",
                json={
                    "displayName": title,
                    "alias": alias,
                    "isPublic": is_public,
                    "optionalParams": optional_params,
                },
            ) or {}
            if result.get("ErrorMessage"):
                raise CommandError(result["ErrorMessage"])
            return result.get("SiteUrl")

        design_id = site_design_id or SITE_DESIGNS[site_design or "Topic"]
        logger.info("Criando communication site %s", url)
        result = self.post(
            f"{spo_url}/_api/SPSiteManager/Create",
            json={
                "request": {
                    "Title": title,
                    "Url": url,
                    "ShareByEmailEnabled": share_by_email_enabled,
                    "Description": description or "",
                    "Classification": classification or "",
                    "SiteDesignId": design_id,
                    "Lcid": lcid_value or 0,
                    "WebTemplate": "SITEPAGEPUBLISHING#0",
                }
            },
        ) or {}
        if result.get("SiteStatus") == SITE_STATUS_ERROR:
            raise CommandError("Falha ao criar o site")
        return result.get("SiteUrl")

    # =========================================================================
    # Site designs / Temas / Hub sites
    # =========================================================================

    def list_site_designs(self) -> list[dict]:
        """Lista site designs do tenant."""
        spo_url = self.auth.get_spo_url()
        result = self.post(
            f"{spo_url}/_api/Microsoft.Sharepoint.Utilities.WebTemplateExtensions"
            ".SiteScriptUtility.GetSiteDesigns"
        )
        return result.get("value", [])

    def list_themes(self) -> list[dict]:
        """Lista temas customizados do tenant."""
        admin_url = self.auth.get_spo_admin_url()
        result = self.post(f"{admin_url}/_api/thememanager/GetTenantThemingOptions")
        return result.get("themePreviews") or []

    def unregister_hub_site(self, url: str) -> None:
        """Remove o registro de hub site de um site."""
        url = validate_sharepoint_url(url)
        digest = self.get_request_digest(url)
        self.post(f"{url}/_api/site/UnregisterHubSite", headers={"X-RequestDigest": digest})

    # =========================================================================
    # Tenant
    # =========================================================================

    def get_tenant_app_catalog_url(self) -> str | None:
        """Retorna a URL do catálogo de apps do tenant, se configurado."""
        spo_url = self.auth.get_spo_url()
        result = self.get(f"{spo_url}/_api/SP_TenantSettings_Current")
        return result.get("CorporateCatalogUrl")

    def list_cdn_origins(self, cdn_type: str = "Public") -> list[str]:
        """
        Lista as origens da CDN do tenant.

        Args:
            cdn_type: 'Public' ou 'Private'
        """
        if cdn_type not in CDN_TYPES:
            raise ValidationError(
                f"{cdn_type} não é um tipo de CDN válido. Valores permitidos: Public|Private"
            )
        tenant_id = self.get_tenant_id()
        body = csom.build_request(
            '<Method Name="GetTenantCdnOrigins" Id="22" ObjectPathId="18"><Parameters>'
            + csom.parameter("Enum", CDN_TYPES[cdn_type])
            + "</Parameters></Method>",
            f'<Identity Id="18" Name="{csom.format_identity(tenant_id)}" />',
        )
        result = self.process_query(self.auth.get_spo_admin_url(), body)
        return result[-1] or []

    def list_storage_entities(self, app_catalog_url: str) -> list[dict]:
        """Lista propriedades do tenant (storage entities) de um catálogo de apps."""
        app_catalog_url = validate_sharepoint_url(app_catalog_url, "app_catalog_url")
        result = self.get(
            f"{app_catalog_url}/_api/web/AllProperties?$select=storageentitiesindex"
        )
        index = (result or {}).get("storageentitiesindex")
        if not index or not index.strip():
            return []
        try:
            entities = json.loads(index)
        except ValueError as e:
            raise CommandError(f"Índice de storage entities inválido: {e}") from e

        return [
            {
                "Key": key,
                "Value": entity.get("Value"),
                "Description": entity.get("Description"),
                "Comment": entity.get("Comment"),
            }
            for key, entity in entities.items()
        ]

    # =========================================================================
    # Apps
    # =========================================================================

    def _get_app_catalog(self, scope: str, app_catalog_url: str | None) -> tuple[str, str]:
        scope = (scope or "tenant").lower()
        if scope not in APP_SCOPES:
            raise ValidationError(
                f"{scope} não é um escopo válido. Valores permitidos: tenant|sitecollection"
            )
        if app_catalog_url:
            app_catalog_url = validate_sharepoint_url(app_catalog_url, "app_catalog_url")
        elif scope == "sitecollection":
            raise ValidationError("app_catalog_url é obrigatório para o escopo sitecollection")
        else:
            app_catalog_url = self.get_tenant_app_catalog_url()
            if not app_catalog_url:
                raise CommandError("Catálogo de apps do tenant não configurado.")
        return f"{app_catalog_url.rstrip('/')}/_api/web/{scope}appcatalog", app_catalog_url

    def list_apps(self, scope: str = "tenant", app_catalog_url: str | None = None) -> list[dict]:
        """Lista apps disponíveis no catálogo."""
        base_url, _ = self._get_app_catalog(scope, app_catalog_url)
        result = self.get(f"{base_url}/AvailableApps")
        return result.get("value", [])

    def add_app(
        self,
        file_path: str | Path,
        scope: str = "tenant",
        app_catalog_url: str | None = None,
        overwrite: bool = False,
    ) -> dict:
        """Envia um pacote .sppkg para o catálogo de apps."""
        path = Path(file_path)
        if not path.exists():
            raise ValidationError(f"Arquivo '{path}' não encontrado")
        if path.is_dir():
            raise ValidationError(f"'{path}' é um diretório")

        base_url, site_url = self._get_app_catalog(scope, app_catalog_url)
        digest = self.get_request_digest(site_url)
        result = self.post(
            f"{base_url}/Add(overwrite={str(overwrite).lower()}, "
            f"url='{quote(odata_quote(path.name))}')",
            content=path.read_bytes(),
            headers={"X-RequestDigest": digest, "binaryStringRequestBody": "true"},
        )
        return {"UniqueId": result.get("UniqueId")}

    def deploy_app(
        self,
        app_id: str | None = None,
        name: str | None = None,
        scope: str = "tenant",
        app_catalog_url: str | None = None,
        skip_feature_deployment: bool = False,
    ) -> None:
        """
        Publica um app do catálogo, identificado pelo ID ou pelo nome do arquivo.

        Raises:
            ValidationError: Se nenhum ou ambos (id, name) forem informados
            CommandError: Se o app não for encontrado
        """
        if bool(app_id) == bool(name):
            raise ValidationError("Informe o id ou o nome do app, mas não ambos")
        if app_id:
            validate_guid(app_id)

        base_url, site_url = self._get_app_catalog(scope, app_catalog_url)
        if name:
            title = name[: -len(".sppkg")] if name.lower().endswith(".sppkg") else name
            result = self.get(
                f"{base_url}/AvailableApps",
                params={"$filter": f"Title eq '{odata_quote(title)}'", "$select": "ID"},
            )
            apps = result.get("value", [])
            if not apps:
                raise CommandError(f"App com nome {name} não encontrado")
            app_id = apps[0]["ID"]

        digest = self.get_request_digest(site_url)
        self.post(
            f"{base_url}/AvailableApps/GetById('{app_id}')/deploy",
            json={"skipFeatureDeployment": skip_feature_deployment},
            headers={"X-RequestDigest": digest},
        )

    # =========================================================================
    # Arquivos
    # =========================================================================

    def remove_file(
        self,
        web_url: str,
        file_id: str | None = None,
        url: str | None = None,
        recycle: bool = False,
    ) -> None:
        """
        Remove (ou envia para a lixeira) um arquivo pelo ID ou pela URL.

        Args:
            web_url: URL do site
            file_id: UniqueId do arquivo
            url: Caminho do arquivo (absoluto, relativo ao servidor ou ao site)
            recycle: Enviar para a lixeira em vez de excluir
        """
        web_url, request_url = file_request_url(web_url, file_id, url, recycle)
        digest = self.get_request_digest(web_url)
        self.post(
            request_url,
            headers={
                "X-HTTP-Method": "DELETE",
                "If-Match": "*",
                "X-RequestDigest": digest,
            },
        )


def file_request_url(
    web_url: str,
    file_id: str | None = None,
    url: str | None = None,
    recycle: bool = False,
) -> tuple[str, str]:
    """
    Valida as opções de um arquivo e monta a URL de /_api.

    Returns:
        Tupla (URL do site, URL da requisição)

    Raises:
        ValidationError: Se as opções forem inválidas
    """
    web_url = validate_sharepoint_url(web_url, "web_url")
    if bool(file_id) == bool(url):
        raise ValidationError("Informe o id ou a url do arquivo, mas não ambos")

    if file_id:
        if not is_valid_guid(file_id):
            raise ValidationError(f"{file_id} não é um GUID válido (id)")
        request_url = f"{web_url}/_api/web/GetFileById(guid'{file_id}')"
    else:
        server_relative = get_server_relative_path(web_url, url)
        request_url = (
            f"{web_url}/_api/web/GetFileByServerRelativeUrl"
            f"('{quote(odata_quote(server_relative))}')"
        )
    if recycle:
        request_url += "/recycle()"
    return web_url, request_url


def _check_number(value: str, option: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{value} não é um número válido ({option})") from None


def _check_boolean(value: str, option: str) -> bool:
    if value not in ("true", "false"):
        raise ValidationError(f"{value} não é um valor válido para {option}. Use true ou false")
    return value == "true"


def _classic_site_properties(
    title: str | None,
    sharing: str | None,
    resource_quota: str | None,
    resource_quota_warning_level: str | None,
    storage_quota: str | None,
    storage_quota_warning_level: str | None,
    allow_self_service_upgrade: str | None,
    lock_state: str | None,
    no_script_site: str | None,
) -> list[tuple[str, str, Any]]:
    """Valida as opções e retorna (nome, tipo CSOM, valor) para cada SetProperty."""
    properties: list[tuple[str, str, Any]] = []

    if title is not None:
        properties.append(("Title", "String", title))

    if sharing is not None:
        if sharing not in SHARING_CAPABILITIES:
            raise ValidationError(
                f"{sharing} não é um valor válido para sharing. Valores permitidos: "
                + "|".join(SHARING_CAPABILITIES)
            )
        properties.append(("SharingCapability", "Enum", SHARING_CAPABILITIES[sharing]))

    quotas = (
        ("UserCodeMaximumLevel", "UserCodeWarningLevel", "Double",
         resource_quota, resource_quota_warning_level, "resource_quota"),
        ("StorageMaximumLevel", "StorageWarningLevel", "Int64",
         storage_quota, storage_quota_warning_level, "storage_quota"),
    )
    for max_name, warning_name, type_name, maximum, warning, option in quotas:
        max_value = _check_number(maximum, option) if maximum is not None else None
        warning_value = (
            _check_number(warning, f"{option}_warning_level") if warning is not None else None
        )
        if max_value is not None and warning_value is not None and warning_value > max_value:
            raise ValidationError(
                f"{option}_warning_level não pode ser maior que {option}"
            )
        if maximum is not None:
            properties.append((max_name, type_name, maximum))
        if warning is not None:
            properties.append((warning_name, type_name, warning))

    if allow_self_service_upgrade is not None:
        _check_boolean(allow_self_service_upgrade, "allow_self_service_upgrade")
        properties.append(("AllowSelfServiceUpgrade", "Boolean", allow_self_service_upgrade))

    if no_script_site is not None:
        deny = _check_boolean(no_script_site, "no_script_site")
        properties.append(("DenyAddAndCustomizePages", "Enum", 2 if deny else 1))

    if lock_state is not None:
        if lock_state not in LOCK_STATES:
            raise ValidationError(
                f"{lock_state} não é um valor válido para lock_state. Valores permitidos: "
                + "|".join(LOCK_STATES)
            )
        properties.append(("LockState", "String", lock_state))

    return properties


def _validate_site_add(
    title: str | None,
    site_type: str,
    alias: str | None,
    url: str | None,
    owners: str | None,
    lcid: str | int | None,
    site_design: str | None,
    site_design_id: str | None,
) -> int | None:
    """Valida as opções de criação de site e retorna o lcid como inteiro."""
    if site_type not in SITE_TYPES:
        raise ValidationError(
            f"{site_type} não é um tipo de site válido. Valores permitidos: "
            + "|".join(SITE_TYPES)
        )
    if not title:
        raise ValidationError("Informe o título do site (title)")

    if site_type == "TeamSite":
        if not alias:
            raise ValidationError("Informe o alias para criar um TeamSite")
    else:
        validate_sharepoint_url(url)
        if owners:
            raise ValidationError("A opção owners só é permitida para TeamSite")
        if site_design and site_design not in SITE_DESIGNS:
            raise ValidationError(
                f"{site_design} não é um site design válido. Valores permitidos: "
                + "|".join(SITE_DESIGNS)
            )
        if site_design and site_design_id:
            raise ValidationError("Use apenas uma das opções: site_design ou site_design_id")
        if site_design_id:
            validate_guid(site_design_id, "site_design_id")

    if lcid is None:
        return None
    value = _check_number(lcid, "lcid")
    if value < 0 or value != int(value):
        raise ValidationError(f"{lcid} não é um lcid válido")
    return int(value)
