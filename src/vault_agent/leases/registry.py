"""Client-local registry of outstanding leases."""

import asyncio
from typing import Optional

from loguru import logger

from .models import Lease, LeaseHandler, LeaseKind, LeaseState, RenewalPolicy, RenewalResult


class LeaseRegistry:
    """
    In-memory table of the leases one client instance knows about.

    Concurrency:
    - A single asyncio.Lock serializes inserts, renewal updates and removals,
      so the three mutation sources never interleave on a lease
    - Readers receive detached copies, never the stored objects
    - A wake-up event tells the renewal loop the table changed

    Each client owns its own registry; nothing here is process-wide.
    """

    def __init__(self):
        self._leases: dict[str, Lease] = {}
        self._lock = asyncio.Lock()
        self._changed = asyncio.Event()

    def __len__(self) -> int:
        return len(self._leases)

    def __contains__(self, lease_id: object) -> bool:
        return lease_id in self._leases

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def ids(self) -> list[str]:
        """Point-in-time snapshot of known lease ids, sorted."""
        return sorted(self._leases)

    def get(self, lease_id: str) -> Optional[Lease]:
        lease = self._leases.get(lease_id)
        return lease.copy() if lease is not None else None

    def find_token(self, token: str) -> Optional[Lease]:
        """Find the token lease holding ``token`` (None if untracked)."""
        for lease in self._leases.values():
            if lease.kind is LeaseKind.TOKEN and lease.token == token:
                return lease.copy()
        return None

    def next_wakeup(self, policy: RenewalPolicy) -> Optional[float]:
        """Earliest time any tracked lease needs attention."""
        times = [
            t
            for t in (self._next_check(lease, policy) for lease in self._leases.values())
            if t is not None
        ]
        return min(times) if times else None

    @staticmethod
    def _next_check(lease: Lease, policy: RenewalPolicy) -> Optional[float]:
        if lease.state is not LeaseState.ACTIVE or lease.expires_at is None:
            return None
        # Leases without auto-renew are still dropped at expiry
        if not lease.auto_renew:
            return lease.expires_at
        if lease.retry_at is not None:
            return lease.retry_at
        if lease.renewable or lease.rotate:
            return lease.renew_at(policy.threshold)
        return lease.expires_at

    # ------------------------------------------------------------------
    # Wake-up signalling
    # ------------------------------------------------------------------

    def wake(self) -> None:
        self._changed.set()

    async def wait_for_change(self, timeout: float) -> bool:
        """
        Sleep until the table changes or ``timeout`` elapses.

        Returns:
            True if woken by a change
        """
        try:
            await asyncio.wait_for(self._changed.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        self._changed.clear()
        return True

    # ------------------------------------------------------------------
    # Foreground mutations
    # ------------------------------------------------------------------

    async def register(self, lease: Lease) -> Lease:
        """
        Insert or replace a lease.

        Subscriptions on a replaced entry carry over to the new one.
        """
        async with self._lock:
            existing = self._leases.get(lease.lease_id)
            if existing is not None:
                for handler in existing.handlers:
                    if handler not in lease.handlers:
                        lease.handlers.append(handler)
            self._leases[lease.lease_id] = lease
            self._changed.set()
            logger.debug(
                f"Tracking {lease.kind.value} lease {lease.lease_id} "
                f"(duration={lease.lease_duration}s, renewable={lease.renewable}, "
                f"auto_renew={lease.auto_renew})"
            )
            return lease.copy()

    async def subscribe(self, lease_id: str, handler: LeaseHandler) -> bool:
        async with self._lock:
            lease = self._leases.get(lease_id)
            if lease is None:
                return False
            if handler not in lease.handlers:
                lease.handlers.append(handler)
            return True

    async def update(
        self,
        lease_id: str,
        *,
        lease_duration: int,
        renewable: bool,
        issued_at: float,
    ) -> Optional[Lease]:
        """Apply a foreground renewal; resets retry state."""
        async with self._lock:
            lease = self._leases.get(lease_id)
            if lease is None:
                return None
            lease.lease_duration = lease_duration
            lease.renewable = renewable
            lease.issued_at = issued_at
            lease.state = LeaseState.ACTIVE
            lease.attempts = 0
            lease.retry_at = None
            self._changed.set()
            return lease.copy()

    async def remove(self, lease_id: str, state: LeaseState = LeaseState.REVOKED) -> Optional[Lease]:
        """
        Remove a lease.

        Returns:
            The removed lease (with its handlers) or None if it was unknown
        """
        async with self._lock:
            lease = self._leases.pop(lease_id, None)
            if lease is None:
                return None
            lease.state = state
            self._changed.set()
            return lease

    async def remove_tree(self, accessor: str) -> list[Lease]:
        """
        Remove the token lease for ``accessor``, every descendant token lease,
        and every secret lease read by any of those tokens.

        Returns:
            Removed leases, each marked REVOKED
        """
        async with self._lock:
            revoked = {accessor}
            pending = [accessor]
            while pending:
                parent = pending.pop()
                for lease in self._leases.values():
                    if (
                        lease.kind is LeaseKind.TOKEN
                        and lease.parent_accessor == parent
                        and lease.accessor not in revoked
                    ):
                        revoked.add(lease.accessor)
                        pending.append(lease.accessor)

            removed = []
            for lease_id, lease in list(self._leases.items()):
                owner = lease.accessor if lease.kind is LeaseKind.TOKEN else lease.owner_accessor
                if owner in revoked:
                    del self._leases[lease_id]
                    lease.state = LeaseState.REVOKED
                    removed.append(lease)

            if removed:
                self._changed.set()
                logger.info(
                    f"Removed {len(removed)} lease(s) under revoked token accessor={accessor}"
                )
            return removed

    # ------------------------------------------------------------------
    # Renewal loop mutations
    # ------------------------------------------------------------------

    async def claim_due(
        self, now: float, policy: RenewalPolicy
    ) -> tuple[list[Lease], list[Lease]]:
        """
        Move leases that crossed their renewal point to PENDING_RENEWAL.

        Leases that are not auto-renewed are dropped silently once expired;
        they have no subscribers to notify.

        Returns:
            (due, expired): copies of claimed leases, and auto-renewed leases
            that expired before they could be renewed (already removed, with
            handlers)
        """
        due, expired = [], []
        dropped = 0
        async with self._lock:
            for lease_id, lease in list(self._leases.items()):
                check_at = self._next_check(lease, policy)
                if check_at is None:
                    continue
                if lease.is_expired(now):
                    del self._leases[lease_id]
                    lease.state = LeaseState.EXPIRED
                    if lease.auto_renew:
                        expired.append(lease)
                    else:
                        dropped += 1
                    continue
                if not lease.auto_renew:
                    continue
                if now >= check_at and (lease.renewable or lease.rotate):
                    lease.state = LeaseState.PENDING_RENEWAL
                    due.append(lease.copy())
        if dropped:
            logger.debug(f"Dropped {dropped} expired lease(s) not tracked for renewal")
        return due, expired

    async def complete(
        self, result: RenewalResult, now: float
    ) -> Optional[Lease]:
        """
        Apply a background renewal.

        Returns:
            Updated copy, or None if the lease was revoked while renewing
        """
        async with self._lock:
            lease = self._leases.get(result.lease_id)
            if lease is None or lease.state is not LeaseState.PENDING_RENEWAL:
                return None
            lease.lease_duration = result.lease_duration
            lease.renewable = result.renewable
            lease.issued_at = now
            lease.state = LeaseState.ACTIVE
            lease.attempts = 0
            lease.retry_at = None
            return lease.copy()

    async def fail(
        self, lease_id: str, now: float, policy: RenewalPolicy, retryable: bool
    ) -> tuple[Optional[Lease], bool]:
        """
        Record a failed background renewal.

        Retryable failures back off and return the lease to ACTIVE until the
        attempt limit is hit or the next retry would land after expiry.

        Returns:
            (lease, terminal): terminal leases are removed and returned with
            their handlers; (None, False) if the lease was revoked meanwhile
        """
        async with self._lock:
            lease = self._leases.get(lease_id)
            if lease is None or lease.state is not LeaseState.PENDING_RENEWAL:
                return None, False

            if retryable:
                lease.attempts += 1
                retry_at = now + policy.backoff(lease.attempts)
                expires_at = lease.expires_at
                if lease.attempts < policy.max_attempts and (
                    expires_at is None or retry_at < expires_at
                ):
                    lease.retry_at = retry_at
                    lease.state = LeaseState.ACTIVE
                    return lease.copy(), False

            del self._leases[lease_id]
            lease.state = LeaseState.EXPIRED
            return lease, True
