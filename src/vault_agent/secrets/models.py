"""Data models for secret reads."""

from dataclasses import dataclass, field
from typing import Any, Optional

from ..errors import ValidationError
from ..leases.models import LeaseHandler


@dataclass
class ReadOptions:
    """
    Options for reading a secret.

    Defaults:
    - renew=False: the lease is recorded but not renewed in the background
    - callback=None: no subscriber
    - rotate=False: a lease that can no longer be renewed simply expires
    """

    renew: bool = False
    callback: Optional[LeaseHandler] = None
    rotate: bool = False

    def validate(self) -> "ReadOptions":
        """
        Raises:
            ValidationError: callback or rotate given without renew
        """
        if self.callback is not None and not callable(self.callback):
            raise ValidationError("callback must be callable")
        if self.callback is not None and not self.renew:
            raise ValidationError("callback requires renew=True")
        if self.rotate and not self.renew:
            raise ValidationError("rotate requires renew=True")
        return self


@dataclass
class Secret:
    """A secret read from a path, with its lease if the backend issued one."""

    path: str
    data: dict[str, Any] = field(default_factory=dict, repr=False)
    lease_id: Optional[str] = None
    lease_duration: int = 0
    renewable: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def leased(self) -> bool:
        return self.lease_id is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "data": self.data,
            "lease_id": self.lease_id,
            "lease_duration": self.lease_duration,
            "renewable": self.renewable,
            "warnings": self.warnings,
        }
