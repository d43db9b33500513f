"""Lease tracking, renewal scheduling and lease operations."""

from .manager import LeaseManager
from .models import (
    Lease,
    LeaseEvent,
    LeaseKind,
    LeaseState,
    RenewalPolicy,
    RenewalResult,
    token_lease_id,
)
from .registry import LeaseRegistry
from .scheduler import RenewalScheduler

__all__ = [
    "Lease",
    "LeaseEvent",
    "LeaseKind",
    "LeaseManager",
    "LeaseRegistry",
    "LeaseState",
    "RenewalPolicy",
    "RenewalResult",
    "RenewalScheduler",
    "token_lease_id",
]
