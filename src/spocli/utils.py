"""Utilitários para spocli."""

import json
import re
from typing import Any
from urllib.parse import urlparse

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .exceptions import ValidationError

GUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def is_valid_guid(value: str | None) -> bool:
    """Verifica se o valor é um GUID."""
    return bool(value) and GUID_PATTERN.match(value) is not None


def is_valid_sharepoint_url(url: str | None) -> bool:
    """Verifica se a URL aponta para um host do SharePoint Online."""
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme == "https" and (parsed.hostname or "").endswith(".sharepoint.com")


def validate_sharepoint_url(url: str | None, option: str = "url") -> str:
    """
    Valida uma URL do SharePoint Online.

    Args:
        url: URL informada
        option: Nome da opção, usado na mensagem de erro

    Returns:
        URL sem barra final

    Raises:
        ValidationError: Se a URL não for do SharePoint Online
    """
    if not is_valid_sharepoint_url(url):
        raise ValidationError(f"'{url}' não é uma URL válida do SharePoint Online ({option})")
    return url.rstrip("/")


def validate_guid(value: str | None, option: str = "id") -> str:
    """Valida um GUID, levantando ValidationError."""
    if not is_valid_guid(value):
        raise ValidationError(f"{value} não é um GUID válido ({option})")
    return value


def odata_quote(value: str) -> str:
    """Escapa aspas simples para literais OData."""
    return value.replace("'", "''")


def get_server_relative_path(web_url: str, path: str) -> str:
    """
    Converte um caminho de arquivo em caminho relativo ao servidor.

    Aceita URL absoluta, caminho relativo ao servidor (/sites/x/...) ou
    caminho relativo ao site (Shared Documents/a.txt).

    Args:
        web_url: URL absoluta do site
        path: Caminho informado pelo usuário

    Returns:
        Caminho iniciando com '/'
    """
    web_path = urlparse(web_url).path.rstrip("/")
    if path.lower().startswith("https://"):
        path = urlparse(path).path
    path = "/" + path.lstrip("/")
    if web_path and path.lower().startswith(web_path.lower() + "/"):
        return path
    return f"{web_path}{path}"


# =========================================================================
# Saída
# =========================================================================


def print_output(
    data: Any,
    output: str = "text",
    fields: list[str] | None = None,
    console: Console | None = None,
) -> None:
    """
    Imprime o resultado de um comando.

    Args:
        data: Objeto, lista de objetos ou valor simples
        output: 'json' ou 'text'
        fields: Colunas exibidas em modo texto para listas
        console: Console rich (padrão: stdout)
    """
    console = console or Console()

    if data is None:
        return

    if output == "json":
        console.print_json(json.dumps(data, default=str))
        return

    if isinstance(data, list):
        if not data:
            return
        if not isinstance(data[0], dict):
            for value in data:
                console.print(str(value), markup=False, highlight=False)
            return
        columns = fields or list(data[0].keys())
        table = Table(show_header=True, header_style="bold")
        for column in columns:
            table.add_column(column)
        for row in data:
            table.add_row(*[Text(_to_text(row.get(column))) for column in columns])
        console.print(table)
        return

    if isinstance(data, dict):
        keys = fields or list(data.keys())
        width = max((len(k) for k in keys), default=0)
        for key in keys:
            console.print(
                f"{key:<{width}} : {_to_text(data.get(key))}", markup=False, highlight=False
            )
        return

    console.print(str(data), markup=False, highlight=False)


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)
