"""Data models for tracked leases."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from ..config import Config


class LeaseKind(str, Enum):
    """What a lease grants."""

    TOKEN = "token"
    SECRET = "secret"


class LeaseState(str, Enum):
    """Renewal lifecycle state of a tracked lease."""

    ACTIVE = "active"
    PENDING_RENEWAL = "pending_renewal"
    EXPIRED = "expired"
    REVOKED = "revoked"

    @property
    def is_terminal(self) -> bool:
        return self in (LeaseState.EXPIRED, LeaseState.REVOKED)


@dataclass(frozen=True)
class LeaseEvent:
    """
    Notification delivered to lease subscribers.

    ACTIVE events carry the (possibly refreshed) secret data after a
    renewal. Terminal events (EXPIRED, REVOKED) are delivered exactly once
    and carry the error that ended the lease, if any.
    """

    lease_id: str
    state: LeaseState
    data: Optional[dict[str, Any]] = None
    lease_duration: int = 0
    renewable: bool = False
    error: Optional[BaseException] = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal


LeaseHandler = Callable[[LeaseEvent], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class RenewalResult:
    """Outcome of a successful renewal."""

    lease_id: str
    lease_duration: int
    renewable: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "lease_id": self.lease_id,
            "lease_duration": self.lease_duration,
            "renewable": self.renewable,
        }


def token_lease_id(accessor: str) -> str:
    """Registry key for a token's lease (tokens have no server lease id)."""
    return f"auth/token/{accessor}"


@dataclass
class Lease:
    """
    Client-side record of a time-bounded grant.

    Token leases are keyed by token_lease_id(accessor) and hold the token id
    (needed to renew it); secret leases are keyed by the server lease id.

    Invariants:
    - lease_id must not be empty
    - lease_duration must be >= 0 (0 = never expires)
    - token/data are excluded from repr (sensitive)
    """

    lease_id: str
    kind: LeaseKind
    lease_duration: int
    renewable: bool
    issued_at: float
    path: Optional[str] = None
    accessor: Optional[str] = None  # token leases: the token's accessor
    parent_accessor: Optional[str] = None  # token leases: parent token
    owner_accessor: Optional[str] = None  # secret leases: token that read it
    token: Optional[str] = field(default=None, repr=False)
    data: Optional[dict[str, Any]] = field(default=None, repr=False)
    auto_renew: bool = False
    rotate: bool = False
    state: LeaseState = LeaseState.ACTIVE
    attempts: int = 0
    retry_at: Optional[float] = None
    handlers: list[LeaseHandler] = field(default_factory=list, repr=False)

    @classmethod
    def create(
        cls,
        lease_id: str,
        kind: LeaseKind,
        lease_duration: int,
        renewable: bool,
        issued_at: float,
        **kwargs,
    ) -> "Lease":
        """
        Create a new Lease with validation.

        Raises:
            ValueError: If any validation fails
        """
        if not lease_id or not lease_id.strip():
            raise ValueError("lease_id must not be empty")
        if lease_duration < 0:
            raise ValueError(f"lease_duration must be >= 0, got {lease_duration}")
        return cls(
            lease_id=lease_id,
            kind=kind,
            lease_duration=lease_duration,
            renewable=renewable,
            issued_at=issued_at,
            **kwargs,
        )

    @property
    def expires_at(self) -> Optional[float]:
        if self.lease_duration <= 0:
            return None
        return self.issued_at + self.lease_duration

    def renew_at(self, threshold: float) -> Optional[float]:
        """Time at which the lease enters PENDING_RENEWAL."""
        if self.lease_duration <= 0:
            return None
        return self.issued_at + self.lease_duration * threshold

    def is_expired(self, now: float) -> bool:
        expires_at = self.expires_at
        return expires_at is not None and now >= expires_at

    def remaining(self, now: float) -> Optional[float]:
        expires_at = self.expires_at
        if expires_at is None:
            return None
        return max(0.0, expires_at - now)

    def copy(self) -> "Lease":
        """Detached copy safe to hand out of the registry lock."""
        return replace(
            self,
            data=dict(self.data) if self.data is not None else None,
            handlers=list(self.handlers),
        )


@dataclass
class RenewalPolicy:
    """
    Renewal scheduling and retry policy.

    Defaults:
    - threshold: renew after 66% of the lease duration has elapsed
    - backoff: 1s, doubling, capped at 30s, at most 5 attempts
    - poll_interval: longest the loop sleeps between checks
    """

    threshold: float = Config.RENEWAL_THRESHOLD
    initial_backoff: float = Config.RETRY_INITIAL_BACKOFF
    backoff_multiplier: float = Config.RETRY_MULTIPLIER
    max_backoff: float = Config.RETRY_MAX_BACKOFF
    max_attempts: int = Config.RETRY_MAX_ATTEMPTS
    poll_interval: float = Config.RENEWAL_POLL_INTERVAL

    def validate(self) -> "RenewalPolicy":
        """
        Raises:
            ValueError: If the policy is inconsistent
        """
        errors = []
        if not (0 < self.threshold < 1):
            errors.append(f"threshold must be between 0 and 1, got {self.threshold}")
        if self.initial_backoff <= 0:
            errors.append(f"initial_backoff must be > 0, got {self.initial_backoff}")
        if self.backoff_multiplier < 1:
            errors.append(f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}")
        if self.max_backoff < self.initial_backoff:
            errors.append("max_backoff must be >= initial_backoff")
        if self.max_attempts < 1:
            errors.append(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.poll_interval <= 0:
            errors.append(f"poll_interval must be > 0, got {self.poll_interval}")
        if errors:
            raise ValueError(f"Invalid renewal policy: {'; '.join(errors)}")
        return self

    def backoff(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        delay = self.initial_backoff * (self.backoff_multiplier ** max(0, attempt - 1))
        return min(delay, self.max_backoff)
