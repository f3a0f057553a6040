"""Exceções customizadas para spocli."""


class SharePointError(Exception):
    """Erro base para operações SharePoint."""

    pass


class AuthenticationError(SharePointError):
    """Erro ao obter token de acesso via MSAL."""

    pass


class NotLoggedInError(AuthenticationError):
    """Nenhuma conexão ativa com o SharePoint Online."""

    pass


class CommandError(SharePointError):
    """Erro retornado pela API do SharePoint ao executar um comando."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code


class ValidationError(CommandError):
    """Opções inválidas informadas para um comando."""

    pass


class OperationTimeoutError(CommandError):
    """Operação de longa duração não terminou dentro do tempo limite."""

    pass
