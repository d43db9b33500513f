"""Transport boundary: request/response contract shared by all backends."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from ..errors import TransportError


@dataclass(frozen=True)
class LeaseInfo:
    """Lease metadata attached to a response."""

    lease_id: str
    lease_duration: int
    renewable: bool


@dataclass
class VaultResponse:
    """
    Structured success payload returned by a Transport.

    Failures are never returned; they are raised as VaultError subclasses.
    """

    status: int = 200
    data: Optional[dict[str, Any]] = None
    lease: Optional[LeaseInfo] = None
    auth: Optional[dict[str, Any]] = None
    wrap_info: Optional[dict[str, Any]] = None
    warnings: list[str] = field(default_factory=list)


class Transport(Protocol):
    """Authenticated RPC channel to the secret-management service."""

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Optional[dict[str, Any]] = None,
        token: Optional[str] = None,
        wrap_ttl: Optional[int] = None,
    ) -> VaultResponse:
        """
        Perform one call.

        Args:
            method: GET, POST, PUT, DELETE or LIST
            path: API path without the version prefix ("secret/foo")
            body: Optional JSON body
            token: Token to authenticate the call with
            wrap_ttl: Ask the server to wrap the response for this many seconds

        Raises:
            VaultError: Typed failure
        """

    async def close(self) -> None:
        """Release connections."""


def parse_response(status: int, payload: Optional[dict[str, Any]]) -> VaultResponse:
    """
    Build a VaultResponse from a Vault-style JSON document.

    Args:
        status: HTTP status code
        payload: Decoded JSON body (None for 204 responses)

    Returns:
        VaultResponse with lease metadata split out when a lease_id is present
    """
    if not payload:
        return VaultResponse(status=status)

    lease = None
    if payload.get("lease_id"):
        lease = LeaseInfo(
            lease_id=payload["lease_id"],
            lease_duration=int(payload.get("lease_duration") or 0),
            renewable=bool(payload.get("renewable", False)),
        )

    return VaultResponse(
        status=status,
        data=payload.get("data"),
        lease=lease,
        auth=payload.get("auth"),
        wrap_info=payload.get("wrap_info"),
        warnings=list(payload.get("warnings") or []),
    )


async def call(
    transport: Transport,
    method: str,
    path: str,
    *,
    timeout: float,
    body: Optional[dict[str, Any]] = None,
    token: Optional[str] = None,
    wrap_ttl: Optional[int] = None,
) -> VaultResponse:
    """
    Issue a transport request bounded by a timeout.

    Raises:
        TransportError: If the call does not complete within timeout
        VaultError: Any typed failure raised by the transport
    """
    try:
        return await asyncio.wait_for(
            transport.request(method, path, body=body, token=token, wrap_ttl=wrap_ttl),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        raise TransportError(f"{method} {path} timed out after {timeout}s") from None
