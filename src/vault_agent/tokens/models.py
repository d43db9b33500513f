"""Data models for tokens."""

from dataclasses import dataclass, field, replace
from typing import Any, Optional

from ..errors import ValidationError
from ..utils import Duration, format_duration, parse_duration

ROOT_POLICY = "root"


@dataclass(frozen=True)
class AuthToken:
    """
    Immutable snapshot of a token the client holds.

    The client token id is sensitive: it is excluded from repr and must never
    be logged. Renewal produces a new snapshot via with_lease().

    Invariants:
    - accessor must not be empty
    - lease_duration == 0 means the token never expires
    """

    client_token: str = field(repr=False)
    accessor: str
    policies: tuple[str, ...] = ()
    metadata: dict[str, str] = field(default_factory=dict)
    lease_duration: int = 0
    renewable: bool = False
    issued_at: float = 0.0
    parent_accessor: Optional[str] = None

    @classmethod
    def from_auth(
        cls,
        auth: dict[str, Any],
        issued_at: float,
        parent_accessor: Optional[str] = None,
    ) -> "AuthToken":
        """
        Build a snapshot from a response ``auth`` block.

        Raises:
            ValidationError: If the block has no token or accessor
        """
        if not auth or not auth.get("client_token") or not auth.get("accessor"):
            raise ValidationError("Response did not contain a token")
        return cls(
            client_token=auth["client_token"],
            accessor=auth["accessor"],
            policies=tuple(sorted(auth.get("policies") or [])),
            metadata=dict(auth.get("metadata") or {}),
            lease_duration=int(auth.get("lease_duration") or 0),
            renewable=bool(auth.get("renewable", False)),
            issued_at=issued_at,
            parent_accessor=parent_accessor,
        )

    @classmethod
    def from_lookup(cls, client_token: str, data: dict[str, Any], issued_at: float) -> "AuthToken":
        """Build a snapshot from token lookup data (used by direct-token auth)."""
        return cls(
            client_token=client_token,
            accessor=data.get("accessor") or "",
            policies=tuple(sorted(data.get("policies") or [])),
            metadata=dict(data.get("meta") or {}),
            lease_duration=int(data.get("ttl") or 0),
            renewable=bool(data.get("renewable", False)),
            issued_at=issued_at,
        )

    @property
    def is_root(self) -> bool:
        return ROOT_POLICY in self.policies

    @property
    def expires_at(self) -> Optional[float]:
        if self.lease_duration <= 0:
            return None
        return self.issued_at + self.lease_duration

    def is_expired(self, now: float) -> bool:
        expires_at = self.expires_at
        return expires_at is not None and now >= expires_at

    def with_lease(self, lease_duration: int, renewable: bool, issued_at: float) -> "AuthToken":
        return replace(
            self, lease_duration=lease_duration, renewable=renewable, issued_at=issued_at
        )


@dataclass
class TokenInfo:
    """Token properties returned by a lookup."""

    accessor: str
    policies: list[str] = field(default_factory=list)
    display_name: str = ""
    meta: dict[str, str] = field(default_factory=dict)
    renewable: bool = False
    ttl: int = 0
    creation_ttl: int = 0
    explicit_max_ttl: int = 0
    num_uses: int = 0
    orphan: bool = False
    path: str = ""
    id: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_lookup(cls, data: dict[str, Any], include_id: bool = True) -> "TokenInfo":
        """
        Build from lookup response data.

        Args:
            data: Lookup response ``data`` block
            include_id: False for accessor lookups, which must never expose the id
        """
        return cls(
            accessor=data.get("accessor") or "",
            policies=sorted(data.get("policies") or []),
            display_name=data.get("display_name") or "",
            meta=dict(data.get("meta") or {}),
            renewable=bool(data.get("renewable", False)),
            ttl=int(data.get("ttl") or 0),
            creation_ttl=int(data.get("creation_ttl") or 0),
            explicit_max_ttl=int(data.get("explicit_max_ttl") or 0),
            num_uses=int(data.get("num_uses") or 0),
            orphan=bool(data.get("orphan", False)),
            path=data.get("path") or "",
            id=data.get("id") if include_id else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output (never includes the id)."""
        return {
            "accessor": self.accessor,
            "policies": self.policies,
            "display_name": self.display_name,
            "meta": self.meta,
            "renewable": self.renewable,
            "ttl": self.ttl,
            "creation_ttl": self.creation_ttl,
            "explicit_max_ttl": self.explicit_max_ttl,
            "num_uses": self.num_uses,
            "orphan": self.orphan,
            "path": self.path,
        }


@dataclass
class TokenOptions:
    """
    Options for creating a token.

    Defaults:
    - policies=None inherits the caller's policies
    - renewable=None leaves the server default (renewable)
    - ttl=None uses the server default TTL
    - num_uses=0 means unlimited uses
    - wrap_ttl set returns a wrapped response instead of the token
    """

    id: Optional[str] = None
    display_name: Optional[str] = None
    meta: dict[str, str] = field(default_factory=dict)
    no_parent: bool = False
    policies: Optional[list[str]] = None
    no_default_policy: bool = False
    num_uses: int = 0
    renewable: Optional[bool] = None
    ttl: Optional[Duration] = None
    explicit_max_ttl: Optional[Duration] = None
    wrap_ttl: Optional[Duration] = None

    def validate(self) -> "TokenOptions":
        """
        Check field types and ranges.

        Returns:
            self, for chaining

        Raises:
            ValidationError: Listing every invalid field
        """
        errors = []

        if self.id is not None and not str(self.id).strip():
            errors.append("id must not be empty")
        if not isinstance(self.meta, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in self.meta.items()
        ):
            errors.append("meta must map strings to strings")
        if self.policies is not None and (
            isinstance(self.policies, str)
            or not all(isinstance(p, str) and p.strip() for p in self.policies)
        ):
            errors.append("policies must be a collection of non-empty strings")
        if not isinstance(self.num_uses, int) or self.num_uses < 0:
            errors.append(f"num_uses must be >= 0, got {self.num_uses!r}")

        for name in ("ttl", "explicit_max_ttl", "wrap_ttl"):
            value = getattr(self, name)
            if value is None:
                continue
            try:
                parse_duration(value)
            except ValidationError as e:
                errors.append(f"{name}: {e.message}")

        if self.wrap_ttl is not None and not errors and parse_duration(self.wrap_ttl) == 0:
            errors.append("wrap_ttl must be > 0")

        if errors:
            raise ValidationError(f"Invalid token options: {'; '.join(errors)}")
        return self

    @property
    def wrap_seconds(self) -> Optional[int]:
        return parse_duration(self.wrap_ttl) if self.wrap_ttl is not None else None

    def to_body(self) -> dict[str, Any]:
        """Render the request body for token creation."""
        body: dict[str, Any] = {}
        if self.id is not None:
            body["id"] = self.id
        if self.display_name:
            body["display_name"] = self.display_name
        if self.meta:
            body["meta"] = dict(self.meta)
        if self.no_parent:
            body["no_parent"] = True
        if self.policies is not None:
            body["policies"] = list(self.policies)
        if self.no_default_policy:
            body["no_default_policy"] = True
        if self.num_uses:
            body["num_uses"] = self.num_uses
        if self.renewable is not None:
            body["renewable"] = self.renewable
        if self.ttl is not None:
            body["ttl"] = format_duration(parse_duration(self.ttl))
        if self.explicit_max_ttl is not None:
            body["explicit_max_ttl"] = format_duration(parse_duration(self.explicit_max_ttl))
        return body
