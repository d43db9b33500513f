"""Lease management operations for dynamic secrets."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Callable, Optional

from loguru import logger

from ..config import Config
from ..errors import NotFoundError, NotRenewableError, ValidationError
from ..transport.base import Transport, call
from ..utils import Duration, format_duration, parse_duration
from .models import Lease, LeaseKind, RenewalResult
from .registry import LeaseRegistry
from .scheduler import RenewalScheduler

if TYPE_CHECKING:
    from ..auth.store import CredentialStore


class LeaseManager:
    """
    Renew and revoke secret leases.

    Local bookkeeping comes first: a lease the registry knows to be
    non-renewable is rejected without contacting the transport.
    """

    def __init__(
        self,
        transport: Transport,
        store: CredentialStore,
        registry: LeaseRegistry,
        scheduler: RenewalScheduler,
        *,
        timeout: float = Config.REQUEST_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        self._transport = transport
        self._store = store
        self._registry = registry
        self._scheduler = scheduler
        self._timeout = timeout
        self._clock = clock

    def list_leases(self) -> list[str]:
        """
        Lease ids this client instance knows about.

        Client-local bookkeeping, not a server-wide listing.
        """
        return self._registry.ids()

    async def renew_lease(
        self, lease_id: str, increment: Optional[Duration] = None
    ) -> RenewalResult:
        """
        Renew a secret lease.

        Args:
            lease_id: Lease identifier
            increment: Optional requested extension

        Returns:
            RenewalResult with the new lease_duration and renewable flag

        Raises:
            NotRenewableError: Lease is known to be non-renewable (no RPC made)
            NotFoundError: Server does not know the lease
            ValidationError: Empty id, or the id belongs to a token lease
        """
        if not lease_id or not lease_id.strip():
            raise ValidationError("lease_id must not be empty")

        local = self._registry.get(lease_id)
        self._require_secret_lease(local)
        if local is not None and not local.renewable:
            raise NotRenewableError(f"lease {lease_id} is not renewable")

        body = {"lease_id": lease_id}
        if increment is not None:
            body["increment"] = format_duration(parse_duration(increment))

        try:
            response = await call(
                self._transport,
                "PUT",
                "sys/leases/renew",
                timeout=self._timeout,
                body=body,
                token=self._store.require().client_token,
            )
        except NotFoundError:
            if local is not None:
                removed = await self._registry.remove(lease_id)
                if removed is not None:
                    self._scheduler.revoked([removed])
            raise

        result = self._result(lease_id, response.lease)
        if local is not None:
            await self._registry.update(
                lease_id,
                lease_duration=result.lease_duration,
                renewable=result.renewable,
                issued_at=self._clock(),
            )
        logger.info(f"Renewed lease {lease_id} for {result.lease_duration}s")
        return result

    async def renew_tracked(self, lease: Lease) -> RenewalResult:
        """Renewer used by the scheduler for secret leases."""
        response = await call(
            self._transport,
            "PUT",
            "sys/leases/renew",
            timeout=self._timeout,
            body={"lease_id": lease.lease_id},
            token=self._store.require().client_token,
        )
        return self._result(lease.lease_id, response.lease)

    async def revoke_lease(self, lease_id: str) -> None:
        """
        Revoke a secret lease. Idempotent.

        A lease the server no longer knows is only an error when this client
        has no record of it either.

        Raises:
            NotFoundError: Unknown locally and rejected by the server
            ValidationError: Empty id, or the id belongs to a token lease
        """
        if not lease_id or not lease_id.strip():
            raise ValidationError("lease_id must not be empty")

        known = self._registry.get(lease_id)
        self._require_secret_lease(known)
        try:
            await call(
                self._transport,
                "PUT",
                "sys/leases/revoke",
                timeout=self._timeout,
                body={"lease_id": lease_id},
                token=self._store.require().client_token,
            )
        except NotFoundError:
            if known is None:
                raise
            logger.debug(f"Lease {lease_id} already gone on the server")

        removed = await self._registry.remove(lease_id)
        if removed is not None:
            self._scheduler.revoked([removed])
        logger.info(f"Revoked lease {lease_id}")

    @staticmethod
    def _require_secret_lease(lease: Optional[Lease]) -> None:
        # Token leases live at auth/token/<accessor>, which sys/leases does not know.
        if lease is not None and lease.kind is LeaseKind.TOKEN:
            raise ValidationError(
                f"{lease.lease_id} tracks a token; use renew_token or revoke_accessor"
            )

    @staticmethod
    def _result(lease_id: str, lease_info) -> RenewalResult:
        if lease_info is None:
            raise NotFoundError(f"renewal of {lease_id} returned no lease")
        return RenewalResult(
            lease_id=lease_id,
            lease_duration=lease_info.lease_duration,
            renewable=lease_info.renewable,
        )
