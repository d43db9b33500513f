"""Typed failures raised by vault-agent operations."""

from typing import Any, Optional


class VaultError(Exception):
    """
    Base class for every error surfaced by the client.

    Attributes:
        message: Human readable description (never contains token ids)
        http_status: Status code reported by the server, if any
        errors: Raw error strings returned by the server
    """

    kind = "vault"

    def __init__(
        self,
        message: str,
        *,
        http_status: Optional[int] = None,
        errors: Optional[list[str]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.http_status = http_status
        self.errors = list(errors or [])

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "kind": self.kind,
            "message": self.message,
            "http_status": self.http_status,
            "errors": self.errors,
        }


class AuthenticationError(VaultError):
    """Credentials were rejected or the client holds no token."""

    kind = "authentication"


class PermissionDeniedError(VaultError):
    """A policy denies the requested operation."""

    kind = "permission"


class NotFoundError(VaultError):
    """Path, token or lease is unknown."""

    kind = "not_found"


class NotRenewableError(VaultError):
    """The token or lease is flagged non-renewable."""

    kind = "not_renewable"


class ExpiredError(VaultError):
    """The TTL elapsed before the operation."""

    kind = "expired"


class AlreadyUnwrappedError(VaultError):
    """A wrapping token was already exchanged for its payload."""

    kind = "already_unwrapped"


class PolicyViolationError(VaultError):
    """Requested policies are not a subset of the caller's."""

    kind = "policy_violation"


class UnsupportedSchemeError(VaultError, ValueError):
    """No client backend is registered for a connection URI scheme."""

    kind = "unsupported_scheme"


class TransportError(VaultError):
    """Connectivity failure, timeout, or server unavailable."""

    kind = "transport"


class ValidationError(VaultError, ValueError):
    """Malformed input, detected locally or by the server."""

    kind = "validation"


ERROR_KINDS: dict[str, type[VaultError]] = {
    cls.kind: cls
    for cls in (
        AuthenticationError,
        PermissionDeniedError,
        NotFoundError,
        NotRenewableError,
        ExpiredError,
        AlreadyUnwrappedError,
        PolicyViolationError,
        UnsupportedSchemeError,
        TransportError,
        ValidationError,
    )
}


def error_for_kind(
    kind: str, message: str, http_status: Optional[int] = None
) -> VaultError:
    """
    Build the typed exception for a transport failure descriptor.

    Args:
        kind: Failure kind (e.g. "not_found", "transport")
        message: Failure message
        http_status: Optional HTTP status reported with the failure

    Returns:
        Instance of the matching VaultError subclass (VaultError if unknown)
    """
    cls = ERROR_KINDS.get(kind, VaultError)
    return cls(message, http_status=http_status)
