"""Vault agent - asyncio client for a Vault-compatible secret-management service."""

__version__ = "0.1.0"

from .client import VaultClient, new_client, register_scheme
from .errors import (
    AlreadyUnwrappedError,
    AuthenticationError,
    ExpiredError,
    NotFoundError,
    NotRenewableError,
    PermissionDeniedError,
    PolicyViolationError,
    TransportError,
    UnsupportedSchemeError,
    ValidationError,
    VaultError,
)
from .leases import LeaseEvent, LeaseState, RenewalPolicy, RenewalResult
from .secrets import ReadOptions, Secret
from .tokens import AuthToken, TokenInfo, TokenOptions
from .wrapping import WrapInfo

__all__ = [
    "AlreadyUnwrappedError",
    "AuthToken",
    "AuthenticationError",
    "ExpiredError",
    "LeaseEvent",
    "LeaseState",
    "NotFoundError",
    "NotRenewableError",
    "PermissionDeniedError",
    "PolicyViolationError",
    "ReadOptions",
    "RenewalPolicy",
    "RenewalResult",
    "Secret",
    "TokenInfo",
    "TokenOptions",
    "TransportError",
    "UnsupportedSchemeError",
    "ValidationError",
    "VaultClient",
    "VaultError",
    "WrapInfo",
    "__version__",
    "new_client",
    "register_scheme",
]
