"""Background renewal loop for tracked leases."""

import asyncio
import contextlib
import inspect
import time
from typing import Awaitable, Callable, Iterable, Optional

from loguru import logger

from ..config import Config
from ..errors import ExpiredError, NotRenewableError, TransportError, VaultError
from .models import Lease, LeaseEvent, LeaseHandler, LeaseState, RenewalPolicy, RenewalResult
from .registry import LeaseRegistry

Renewer = Callable[[Lease], Awaitable[RenewalResult]]
Rotator = Callable[[Lease], Awaitable[tuple[Optional[Lease], Optional[dict]]]]

# Floor for the loop's sleep so a lease sitting exactly on its renewal point
# cannot spin the loop.
MIN_SLEEP = 0.01


class RenewalScheduler:
    """
    Proactively renews leases before they expire.

    Per-lease state machine:
        ACTIVE -> PENDING_RENEWAL -> ACTIVE   (renewed, subscribers notified)
        ACTIVE -> EXPIRED                     (TTL elapsed or retries exhausted)
        ACTIVE -> REVOKED                     (explicit revocation, any time)

    Failure handling:
    - TransportError is retried with bounded exponential backoff
    - Any other error is terminal for that lease
    - Terminal leases with ``rotate`` set are re-read instead of dropped

    Callbacks run in their own tasks, outside the registry lock, so slow
    subscribers never hold up the loop or foreground callers.
    """

    def __init__(
        self,
        registry: LeaseRegistry,
        renewer: Renewer,
        *,
        policy: Optional[RenewalPolicy] = None,
        clock: Callable[[], float] = time.time,
        rotator: Optional[Rotator] = None,
    ):
        self._registry = registry
        self._renewer = renewer
        self._rotator = rotator
        self._policy = (policy or RenewalPolicy()).validate()
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._stopping = False
        self._callback_tasks: set[asyncio.Task] = set()

    @property
    def policy(self) -> RenewalPolicy:
        return self._policy

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Launch the renewal loop (no-op if already running)."""
        if self.running:
            return
        self._stopping = False
        self._task = asyncio.create_task(self._run(), name="vault-agent-renewal")

    async def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop the loop and drain subscriber callbacks.

        In-flight renewals get ``timeout`` seconds to finish before the loop
        task is cancelled; callbacks still pending after that are cancelled.
        """
        timeout = Config.SHUTDOWN_TIMEOUT if timeout is None else timeout
        self._stopping = True
        self._registry.wake()

        task, self._task = self._task, None
        if task is not None:
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Renewal loop did not stop within {timeout}s, cancelling")
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        if self._callback_tasks:
            _, pending = await asyncio.wait(set(self._callback_tasks), timeout=timeout)
            for pending_task in pending:
                pending_task.cancel()
            if pending:
                logger.warning(f"Cancelled {len(pending)} lease callback(s) on shutdown")

    async def flush(self) -> None:
        """Wait for every dispatched callback to finish."""
        while self._callback_tasks:
            await asyncio.gather(*list(self._callback_tasks), return_exceptions=True)

    async def _run(self) -> None:
        logger.info("Lease renewal loop started")
        while not self._stopping:
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Lease renewal iteration failed: {e}")
            if self._stopping:
                break
            await self._registry.wait_for_change(self._sleep_for())
        logger.info("Lease renewal loop stopped")

    def _sleep_for(self) -> float:
        timeout = self._policy.poll_interval
        wakeup = self._registry.next_wakeup(self._policy)
        if wakeup is not None:
            timeout = min(timeout, wakeup - self._clock())
        return max(MIN_SLEEP, timeout)

    # ------------------------------------------------------------------
    # One pass over the registry
    # ------------------------------------------------------------------

    async def tick(self) -> int:
        """
        Process every lease that is due or expired.

        Returns:
            Number of leases acted on
        """
        due, expired = await self._registry.claim_due(self._clock(), self._policy)

        for lease in expired:
            logger.warning(f"Lease {lease.lease_id} expired before renewal")
            await self._finish(lease, ExpiredError(f"lease {lease.lease_id} expired"))

        if due:
            await asyncio.gather(*(self._process(lease) for lease in due))

        return len(due) + len(expired)

    async def _process(self, lease: Lease) -> None:
        if not lease.renewable:
            removed = await self._registry.remove(lease.lease_id, LeaseState.EXPIRED)
            if removed is not None:
                await self._finish(removed, NotRenewableError(f"lease {lease.lease_id} is not renewable"))
            return

        logger.debug(f"Renewing {lease.kind.value} lease {lease.lease_id}")
        try:
            result = await self._renewer(lease)
        except TransportError as e:
            await self._failed(lease, e, retryable=True)
            return
        except VaultError as e:
            await self._failed(lease, e, retryable=False)
            return
        except Exception as e:
            logger.error(f"Unexpected error renewing lease {lease.lease_id}: {e}")
            await self._failed(lease, e, retryable=False)
            return

        updated = await self._registry.complete(result, self._clock())
        if updated is None:
            logger.debug(f"Discarded renewal of lease {lease.lease_id} (revoked meanwhile)")
            return

        logger.info(
            f"Renewed lease {updated.lease_id} "
            f"(duration={updated.lease_duration}s, renewable={updated.renewable})"
        )
        self._notify(
            updated.handlers,
            LeaseEvent(
                lease_id=updated.lease_id,
                state=LeaseState.ACTIVE,
                data=updated.data,
                lease_duration=updated.lease_duration,
                renewable=updated.renewable,
            ),
        )

    async def _failed(self, lease: Lease, error: BaseException, retryable: bool) -> None:
        updated, terminal = await self._registry.fail(
            lease.lease_id, self._clock(), self._policy, retryable
        )
        if terminal:
            logger.error(f"Giving up on lease {lease.lease_id}: {error}")
            await self._finish(updated, error)
        elif updated is not None:
            logger.warning(
                f"Renewal of lease {lease.lease_id} failed (attempt {updated.attempts}), "
                f"retrying at {updated.retry_at:.0f}: {error}"
            )

    async def _finish(self, lease: Lease, cause: BaseException) -> None:
        """Deliver the terminal outcome of a lease, rotating it if requested."""
        fresh = None
        if lease.rotate and self._rotator is not None:
            try:
                replacement, data = await self._rotator(lease)
            except Exception as e:
                logger.error(f"Rotation of {lease.path} failed: {e}")
                cause = e
            else:
                if replacement is not None:
                    logger.info(f"Rotated lease {lease.lease_id} -> {replacement.lease_id}")
                    self._notify(
                        replacement.handlers,
                        LeaseEvent(
                            lease_id=replacement.lease_id,
                            state=LeaseState.ACTIVE,
                            data=data,
                            lease_duration=replacement.lease_duration,
                            renewable=replacement.renewable,
                        ),
                    )
                    return
                # Re-read succeeded but the secret is no longer leased.
                fresh = data

        self._notify(
            lease.handlers,
            LeaseEvent(
                lease_id=lease.lease_id,
                state=LeaseState.EXPIRED,
                data=fresh,
                lease_duration=0,
                renewable=False,
                error=cause,
            ),
        )

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def revoked(self, leases: Iterable[Lease]) -> None:
        """Deliver the terminal REVOKED event for leases removed by revocation."""
        for lease in leases:
            self._notify(
                lease.handlers,
                LeaseEvent(lease_id=lease.lease_id, state=LeaseState.REVOKED),
            )

    def _notify(self, handlers: list[LeaseHandler], event: LeaseEvent) -> None:
        for handler in list(handlers):
            task = asyncio.create_task(self._dispatch(handler, event))
            self._callback_tasks.add(task)
            task.add_done_callback(self._callback_tasks.discard)

    @staticmethod
    async def _dispatch(handler: LeaseHandler, event: LeaseEvent) -> None:
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error in lease callback for {event.lease_id}: {e}")
