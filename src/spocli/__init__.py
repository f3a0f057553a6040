"""spocli - SharePoint Online command-line client over REST and CSOM."""

from .auth import Auth, Connection
from .client import SpoClient, get_error_message
from .exceptions import (
    AuthenticationError,
    CommandError,
    NotLoggedInError,
    OperationTimeoutError,
    SharePointError,
    ValidationError,
)

__version__ = "1.0.0"
__all__ = [
    # Clients
    "SpoClient",
    "Auth",
    "Connection",
    "get_error_message",
    # Exceptions
    "SharePointError",
    "AuthenticationError",
    "NotLoggedInError",
    "CommandError",
    "ValidationError",
    "OperationTimeoutError",
]
