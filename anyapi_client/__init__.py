"""AnyAPI client core: resilient request execution and vault credential sessions."""

from .config import ClientConfig
from .core import ClientCore
from .errors import (
    AnyApiError,
    AuthenticationRejected,
    ClientError,
    CryptoUnavailable,
    RequestError,
    RequestFailed,
    RequestTimeout,
    TransientTransportError,
    VaultStateMismatch,
)
from .events import Event, Notifier

__version__ = "0.1.0"

__all__ = [
    "ClientConfig",
    "ClientCore",
    "AnyApiError",
    "AuthenticationRejected",
    "ClientError",
    "CryptoUnavailable",
    "RequestError",
    "RequestFailed",
    "RequestTimeout",
    "TransientTransportError",
    "VaultStateMismatch",
    "Event",
    "Notifier",
]
