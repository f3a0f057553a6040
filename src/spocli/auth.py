"""Conexão com o SharePoint Online e obtenção de tokens via MSAL."""

import json
import logging
import os
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable
from urllib.parse import urlparse

import msal

from .exceptions import AuthenticationError, NotLoggedInError
from .utils import validate_sharepoint_url

logger = logging.getLogger(__name__)

# App público multi-tenant usado quando MICROSOFT_CLIENT_ID não está definido
DEFAULT_CLIENT_ID = "31359c7f-bd7e-475c-86db-fdb8c937548e"
AUTH_TYPES = ("deviceCode", "password", "secret")


def get_config_dir() -> Path:
    """Diretório onde a conexão e o cache de tokens são gravados."""
    return Path(os.getenv("SPOCLI_CONFIG_DIR") or Path.home() / ".spocli")


def _write_private(path: Path, text: str) -> None:
    """Grava o arquivo com permissão 0600 (contém tokens)."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(text)
    os.chmod(path, 0o600)


@dataclass
class Connection:
    """Estado da conexão persistido entre execuções."""

    url: str | None = None
    spo_url: str | None = None
    auth_type: str | None = None
    user_name: str | None = None
    tenant_id: str | None = None
    connected: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Connection":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


class Auth:
    """Mantém a conexão atual e entrega tokens de acesso por recurso."""

    def __init__(
        self,
        connection: Connection | None = None,
        config_dir: Path | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        tenant: str | None = None,
    ):
        """
        Inicializa o contexto de autenticação.

        Args:
            connection: Conexão já existente (padrão: desconectado)
            config_dir: Diretório de configuração (ou env SPOCLI_CONFIG_DIR)
            client_id: ID do aplicativo Azure AD (ou env MICROSOFT_CLIENT_ID)
            client_secret: Secret do aplicativo (ou env MICROSOFT_CLIENT_SECRET)
            tenant: ID do tenant Azure AD (ou env MICROSOFT_TENANT_ID)
        """
        self.connection = connection or Connection()
        self.config_dir = Path(config_dir) if config_dir else get_config_dir()
        self.client_id = client_id or os.getenv("MICROSOFT_CLIENT_ID") or DEFAULT_CLIENT_ID
        self.client_secret = client_secret or os.getenv("MICROSOFT_CLIENT_SECRET")
        self.tenant = tenant or os.getenv("MICROSOFT_TENANT_ID") or "common"

        self._tokens: dict[str, tuple[str, float]] = {}
        self._cache = msal.SerializableTokenCache()
        self._app: msal.ClientApplication | None = None

    @property
    def connection_file(self) -> Path:
        return self.config_dir / "connection.json"

    @property
    def cache_file(self) -> Path:
        return self.config_dir / "msal_cache.json"

    # =========================================================================
    # Persistência
    # =========================================================================

    def restore(self) -> None:
        """Carrega a conexão e o cache de tokens gravados."""
        if self.connection_file.exists():
            try:
                data = json.loads(self.connection_file.read_text(encoding="utf-8"))
                self.connection = Connection.from_dict(data)
            except (ValueError, TypeError, AttributeError) as e:
                raise AuthenticationError(
                    "Conexão gravada inválida; execute 'spo login'"
                ) from e
            logger.debug("Conexão restaurada de %s", self.connection_file)
        if self.cache_file.exists():
            self._cache.deserialize(self.cache_file.read_text(encoding="utf-8"))

    def store(self) -> None:
        """Grava a conexão e o cache de tokens, legíveis apenas pelo usuário."""
        self.config_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        os.chmod(self.config_dir, 0o700)
        _write_private(self.connection_file, json.dumps(self.connection.to_dict(), indent=2))
        if self._cache.has_state_changed:
            _write_private(self.cache_file, self._cache.serialize())

    # =========================================================================
    # Login / Logout
    # =========================================================================

    def login(
        self,
        url: str,
        auth_type: str = "deviceCode",
        user_name: str | None = None,
        password: str | None = None,
        on_device_code: Callable[[str], None] | None = None,
    ) -> Connection:
        """
        Autentica no SharePoint Online.

        Args:
            url: URL de um site do SharePoint Online
            auth_type: 'deviceCode', 'password' ou 'secret'
            user_name: Usuário (auth_type='password')
            password: Senha (auth_type='password')
            on_device_code: Callback que recebe a mensagem do device code

        Returns:
            Conexão estabelecida

        Raises:
            AuthenticationError: Se a autenticação falhar
        """
        url = validate_sharepoint_url(url)
        if auth_type not in AUTH_TYPES:
            raise AuthenticationError(
                f"'{auth_type}' não é um tipo de autenticação válido. "
                f"Valores permitidos: {', '.join(AUTH_TYPES)}"
            )
        if auth_type == "password" and not (user_name and password):
            raise AuthenticationError("Informe usuário e senha para auth_type 'password'")
        if auth_type == "secret" and not self.client_secret:
            raise AuthenticationError(
                "Defina MICROSOFT_CLIENT_SECRET para usar auth_type 'secret'"
            )

        self.logout()
        self.connection = Connection(
            url=url,
            spo_url=self.get_resource(url),
            auth_type=auth_type,
            user_name=user_name,
        )
        scopes = self._scopes(self.connection.spo_url)
        app = self._get_app()

        if auth_type == "deviceCode":
            flow = app.initiate_device_flow(scopes=scopes)
            if "user_code" not in flow:
                raise AuthenticationError(
                    f"Falha ao iniciar device code: {flow.get('error_description', flow)}"
                )
            (on_device_code or print)(flow["message"])
            result = app.acquire_token_by_device_flow(flow)
        elif auth_type == "password":
            result = app.acquire_token_by_username_password(user_name, password, scopes=scopes)
        else:
            result = app.acquire_token_for_client(scopes=scopes)

        self._remember_token(self.connection.spo_url, result)
        if auth_type != "secret" and not user_name:
            claims = result.get("id_token_claims") or {}
            self.connection.user_name = claims.get("preferred_username")
        self.connection.connected = True
        self.store()
        logger.info("Conectado a %s", self.connection.spo_url)
        return self.connection

    def logout(self) -> None:
        """Encerra a conexão e remove os arquivos gravados."""
        self.connection = Connection()
        self._tokens.clear()
        self._cache = msal.SerializableTokenCache()
        self._app = None
        for path in (self.connection_file, self.cache_file):
            if path.exists():
                path.unlink()

    def ensure_connected(self) -> Connection:
        """Garante que há uma conexão ativa."""
        if not self.connection.connected or not self.connection.spo_url:
            raise NotLoggedInError("Faça login em um site do SharePoint Online primeiro")
        return self.connection

    # =========================================================================
    # Tokens
    # =========================================================================

    def _get_app(self) -> msal.ClientApplication:
        """Retorna instância do MSAL app conforme o tipo de autenticação."""
        if self._app is None:
            authority = f"https://login.microsoftonline.com/{self.tenant}"
            if self.connection.auth_type == "secret":
                self._app = msal.ConfidentialClientApplication(
                    client_id=self.client_id,
                    client_credential=self.client_secret,
                    authority=authority,
                    token_cache=self._cache,
                )
            else:
                self._app = msal.PublicClientApplication(
                    client_id=self.client_id,
                    authority=authority,
                    token_cache=self._cache,
                )
        return self._app

    @staticmethod
    def _scopes(resource: str) -> list[str]:
        return [f"{resource}/.default"]

    def _remember_token(self, resource: str, result: dict | None) -> str:
        if not result or "access_token" not in result:
            result = result or {}
            error = result.get("error_description", result.get("error", "Erro desconhecido"))
            raise AuthenticationError(f"Falha ao obter token: {error}")
        expires_at = time.time() + int(result.get("expires_in", 3600))
        self._tokens[resource] = (result["access_token"], expires_at)
        return result["access_token"]

    def get_access_token(self, resource: str) -> str:
        """
        Obtém token para o recurso (host do SharePoint) com cache.

        Args:
            resource: URL do recurso, ex: https://contoso-admin.sharepoint.com

        Returns:
            Token de acesso

        Raises:
            NotLoggedInError: Se não houver conexão
            AuthenticationError: Se o token não puder ser renovado
        """
        self.ensure_connected()
        cached = self._tokens.get(resource)
        # Margem de 5 minutos antes de expirar
        if cached and time.time() < cached[1] - 300:
            return cached[0]

        app = self._get_app()
        scopes = self._scopes(resource)
        if self.connection.auth_type == "secret":
            result = app.acquire_token_for_client(scopes=scopes)
        else:
            accounts = app.get_accounts(username=self.connection.user_name)
            if not accounts:
                raise AuthenticationError(
                    "Sessão expirada. Execute 'spo login' novamente"
                )
            result = app.acquire_token_silent(scopes, account=accounts[0])

        token = self._remember_token(resource, result)
        if self._cache.has_state_changed:
            self.store()
        logger.debug("Token obtido para %s", resource)
        return token

    # =========================================================================
    # URLs
    # =========================================================================

    @staticmethod
    def get_resource(url: str) -> str:
        """Retorna esquema e host da URL, ex: https://contoso.sharepoint.com."""
        parsed = urlparse(url)
        return f"{parsed.scheme}://{parsed.netloc}"

    def get_spo_url(self) -> str:
        """URL raiz do tenant, sem o sufixo -admin."""
        spo_url = self.ensure_connected().spo_url
        return spo_url.replace("-admin.sharepoint.com", ".sharepoint.com")

    def get_spo_admin_url(self) -> str:
        """URL do site de administração do tenant."""
        if self.is_tenant_admin_site():
            return self.ensure_connected().spo_url
        admin_url = self.get_spo_url().replace(".sharepoint.com", "-admin.sharepoint.com")
        logger.debug("Usando site de administração %s", admin_url)
        return admin_url

    def is_tenant_admin_site(self) -> bool:
        """Indica se o login foi feito no site de administração."""
        url = self.connection.url or ""
        return "-admin.sharepoint.com" in url.lower()
