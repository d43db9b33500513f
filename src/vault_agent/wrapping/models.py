"""Data models for response wrapping."""

from dataclasses import dataclass, field
from typing import Any, Optional

from ..errors import ValidationError


@dataclass(frozen=True)
class WrapInfo:
    """Single-use wrapping token and its metadata."""

    token: str = field(repr=False)
    accessor: str
    ttl: int
    creation_time: Optional[float] = None
    creation_path: str = ""

    @classmethod
    def from_response(cls, wrap_info: Optional[dict[str, Any]]) -> "WrapInfo":
        """
        Build from a response ``wrap_info`` block.

        Raises:
            ValidationError: If the response was not wrapped
        """
        if not wrap_info or not wrap_info.get("token"):
            raise ValidationError("Response was not wrapped")
        return cls(
            token=wrap_info["token"],
            accessor=wrap_info.get("accessor") or "",
            ttl=int(wrap_info.get("ttl") or 0),
            creation_time=wrap_info.get("creation_time"),
            creation_path=wrap_info.get("creation_path") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "accessor": self.accessor,
            "ttl": self.ttl,
            "creation_time": self.creation_time,
            "creation_path": self.creation_path,
        }
