"""In-memory transport for tests and local development.

Simulates just enough server behaviour for the client's lifecycle logic:
a token tree with accessors and TTLs, a KV store, dynamic credentials with
renewable leases, response wrapping, prefix ACLs and a few login methods.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

import yaml
from loguru import logger

from ..errors import (
    AlreadyUnwrappedError,
    AuthenticationError,
    ExpiredError,
    NotFoundError,
    NotRenewableError,
    PermissionDeniedError,
    PolicyViolationError,
    ValidationError,
    VaultError,
)
from ..utils import parse_duration
from .base import LeaseInfo, VaultResponse

ROOT_POLICY = "root"
DEFAULT_POLICY = "default"
DEFAULT_TOKEN_TTL = 2764800  # 32 days
DEFAULT_LEASE_TTL = 3600
MAX_LEASE_TTL = 86400

_CAPABILITY_BY_METHOD = {
    "GET": "read",
    "LIST": "list",
    "POST": "update",
    "PUT": "update",
    "DELETE": "delete",
}


@dataclass
class MockToken:
    """Server-side record of an issued token."""

    id: str = field(repr=False)
    accessor: str
    policies: list[str]
    parent: Optional[str]  # parent accessor, None for orphans
    display_name: str
    meta: dict[str, str]
    renewable: bool
    ttl: int  # creation TTL, 0 = never expires
    explicit_max_ttl: int
    uses_remaining: Optional[int]  # None = unlimited
    issued_at: float
    expires_at: Optional[float]
    path: str = "auth/token/create"

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def remaining(self, now: float) -> int:
        if self.expires_at is None:
            return 0
        return max(0, int(round(self.expires_at - now)))

    def lookup(self, now: float, include_id: bool = True) -> dict[str, Any]:
        data = {
            "accessor": self.accessor,
            "policies": list(self.policies),
            "display_name": self.display_name,
            "meta": dict(self.meta),
            "renewable": self.renewable,
            "ttl": self.remaining(now),
            "creation_ttl": self.ttl,
            "explicit_max_ttl": self.explicit_max_ttl,
            "num_uses": self.uses_remaining or 0,
            "orphan": self.parent is None,
            "path": self.path,
            "expire_time": self.expires_at,
        }
        if include_id:
            data["id"] = self.id
        return data

    def auth_block(self, now: float) -> dict[str, Any]:
        return {
            "client_token": self.id,
            "accessor": self.accessor,
            "policies": list(self.policies),
            "token_policies": list(self.policies),
            "metadata": dict(self.meta),
            "lease_duration": self.remaining(now),
            "renewable": self.renewable,
            "orphan": self.parent is None,
        }


@dataclass
class MockLease:
    """Server-side record of a dynamic secret lease."""

    lease_id: str
    path: str
    owner: str  # accessor of the token that read the secret
    renewable: bool
    expires_at: float
    max_expires_at: float


@dataclass
class MockWrap:
    """Server-side record of a wrapped response."""

    response: VaultResponse
    accessor: str
    expires_at: float
    creation_path: str


class MockTransport:
    """
    Transport that answers requests from in-memory state.

    Features:
    - Token tree with parent/child cascade on revocation
    - Dynamic credentials for ``<mount>/creds/<role>`` paths
    - Exactly-once response unwrapping
    - Request recording (``requests``) and failure injection (``fail()``)
    - Optional artificial latency (``delay``) for timeout tests
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        root_token: str = "root",
        secrets: Optional[dict[str, dict[str, Any]]] = None,
        users: Optional[dict[str, dict[str, Any]]] = None,
        app_ids: Optional[dict[str, dict[str, Any]]] = None,
        approles: Optional[dict[str, dict[str, Any]]] = None,
        policies: Optional[dict[str, dict[str, list[str]]]] = None,
        default_token_ttl: int = DEFAULT_TOKEN_TTL,
        default_lease_ttl: int = DEFAULT_LEASE_TTL,
        max_lease_ttl: int = MAX_LEASE_TTL,
    ):
        self._clock = clock
        self._tokens: dict[str, MockToken] = {}
        self._accessors: dict[str, str] = {}
        self._kv: dict[str, dict[str, Any]] = {}
        self._leases: dict[str, MockLease] = {}
        self._wraps: dict[str, MockWrap] = {}
        self._unwrapped: set[str] = set()
        self._failures: list[list[Any]] = []
        self._users = dict(users or {})
        self._app_ids = dict(app_ids or {})
        self._approles = dict(approles or {})
        self._policies = dict(policies or {})
        self.default_token_ttl = default_token_ttl
        self.default_lease_ttl = default_lease_ttl
        self.max_lease_ttl = max_lease_ttl
        self.requests: list[tuple[str, str]] = []
        self.delay = 0.0
        self.closed = False
        self.root_token = root_token

        self._issue_token(
            policies=[ROOT_POLICY],
            parent=None,
            ttl=0,
            renewable=False,
            token_id=root_token,
            display_name="root",
            path="auth/token/root",
        )
        for path, data in (secrets or {}).items():
            self._kv[path.strip("/")] = dict(data)

    @classmethod
    def from_fixture(cls, fixture_path: str, **kwargs) -> "MockTransport":
        """
        Load a mock server from a YAML fixture file.

        Recognised top-level keys: root_token, secrets, users, app_ids,
        approles, policies.

        Raises:
            FileNotFoundError: If the fixture file doesn't exist
            ValueError: If the YAML structure is invalid
        """
        fixture_file = Path(fixture_path)
        if not fixture_file.exists():
            raise FileNotFoundError(f"Mock fixture not found: {fixture_path}")

        with open(fixture_file) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Invalid fixture structure: expected dict, got {type(data).__name__}")

        for key in ("secrets", "users", "app_ids", "approles", "policies"):
            if key in data and not isinstance(data[key], dict):
                raise ValueError(f"'{key}' must be a mapping")

        return cls(
            root_token=str(data.get("root_token", "root")),
            secrets=data.get("secrets"),
            users=data.get("users"),
            app_ids=data.get("app_ids"),
            approles=data.get("approles"),
            policies=data.get("policies"),
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def fail(self, path_prefix: str, error: VaultError, times: int = 1) -> None:
        """Raise ``error`` for the next ``times`` requests under ``path_prefix``."""
        self._failures.append([path_prefix.strip("/"), error, times])

    def calls(self, method: Optional[str] = None, path: Optional[str] = None) -> int:
        """Count recorded requests matching method and/or path."""
        return sum(
            1
            for m, p in self.requests
            if (method is None or m == method.upper()) and (path is None or p == path)
        )

    def has_token(self, token_id: str) -> bool:
        token = self._tokens.get(token_id)
        return token is not None and not token.is_expired(self._clock())

    def has_lease(self, lease_id: str) -> bool:
        return lease_id in self._leases

    # ------------------------------------------------------------------
    # Transport protocol
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Optional[dict[str, Any]] = None,
        token: Optional[str] = None,
        wrap_ttl: Optional[int] = None,
    ) -> VaultResponse:
        method = method.upper()
        path = path.strip("/")
        self.requests.append((method, path))

        if self.delay:
            await asyncio.sleep(self.delay)

        self._raise_injected(path)

        if path == "sys/wrapping/wrap" and not wrap_ttl:
            raise ValidationError("wrap TTL must be provided", http_status=400)

        response = self._dispatch(method, path, dict(body or {}), token)
        if wrap_ttl:
            response = self._wrap(response, int(wrap_ttl), path)
        return response

    async def close(self) -> None:
        self.closed = True

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def _raise_injected(self, path: str) -> None:
        for entry in self._failures:
            prefix, error, times = entry
            if times > 0 and path.startswith(prefix):
                entry[2] -= 1
                if entry[2] <= 0:
                    self._failures.remove(entry)
                raise error

    def _dispatch(
        self, method: str, path: str, body: dict[str, Any], token: Optional[str]
    ) -> VaultResponse:
        now = self._clock()

        if path == "sys/health":
            return VaultResponse(
                data={
                    "initialized": True,
                    "sealed": False,
                    "standby": False,
                    "version": "mock",
                    "server_time_utc": int(now),
                }
            )

        if path == "sys/wrapping/unwrap":
            return self._unwrap(body.get("token") or token, now)

        if path.startswith("auth/userpass/login/"):
            return self._login_userpass(path.rsplit("/", 1)[1], body, now)
        if path == "auth/app-id/login":
            return self._login_app_id(body, now)
        if path == "auth/approle/login":
            return self._login_approle(body, now)

        if path == "auth/token/lookup-self":
            return VaultResponse(data=self._require_live(token, now).lookup(now))
        if path == "auth/token/renew-self":
            return self._renew_token(self._tokens.get(token or ""), body, now)
        if path == "auth/token/revoke-self":
            caller = self._tokens.get(token or "")
            if caller is not None:
                self._revoke_tree(caller.accessor)
            return VaultResponse(status=204)

        caller = self._authenticate(token, now)

        if path in ("auth/token/create", "auth/token/create-orphan"):
            return self._create_token(caller, body, now, orphan=path.endswith("orphan"))
        if path == "auth/token/lookup":
            return VaultResponse(data=self._require_live(body.get("token"), now).lookup(now))
        if path == "auth/token/lookup-accessor":
            target = self._by_accessor(body.get("accessor"), now)
            return VaultResponse(data=target.lookup(now, include_id=False))
        if path == "auth/token/renew":
            return self._renew_token(self._tokens.get(body.get("token") or ""), body, now)
        if path == "auth/token/revoke":
            target = self._tokens.get(body.get("token") or "")
            if target is not None:
                self._revoke_tree(target.accessor)
            return VaultResponse(status=204)
        if path == "auth/token/revoke-accessor":
            accessor = body.get("accessor") or ""
            if accessor not in self._accessors:
                raise NotFoundError("invalid accessor", http_status=400)
            self._revoke_tree(accessor)
            return VaultResponse(status=204)
        if path.startswith("auth/"):
            raise NotFoundError(f"no handler for route '{path}'", http_status=404)

        if path in ("sys/leases/renew", "sys/renew"):
            return self._renew_lease(body, now)
        if path in ("sys/leases/revoke", "sys/revoke"):
            return self._revoke_lease(body)
        if path == "sys/wrapping/wrap":
            return VaultResponse(data=body)

        self._check_acl(caller, path, _CAPABILITY_BY_METHOD.get(method, "read"))
        if method == "GET":
            return self._read(caller, path, now)
        if method == "LIST":
            return self._list(path)
        if method in ("POST", "PUT"):
            self._kv[path] = body
            return VaultResponse(status=204)
        if method == "DELETE":
            self._kv.pop(path, None)
            return VaultResponse(status=204)

        raise ValidationError(f"unsupported operation {method}", http_status=405)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def _issue_token(
        self,
        *,
        policies: list[str],
        parent: Optional[str],
        ttl: int,
        renewable: bool,
        token_id: Optional[str] = None,
        display_name: str = "token",
        meta: Optional[dict[str, str]] = None,
        explicit_max_ttl: int = 0,
        num_uses: int = 0,
        path: str = "auth/token/create",
    ) -> MockToken:
        now = self._clock()
        if explicit_max_ttl and (ttl == 0 or ttl > explicit_max_ttl):
            ttl = explicit_max_ttl
        token = MockToken(
            id=token_id or f"s.{uuid.uuid4().hex}",
            accessor=uuid.uuid4().hex,
            policies=sorted(set(policies)),
            parent=parent,
            display_name=display_name,
            meta=dict(meta or {}),
            renewable=renewable,
            ttl=ttl,
            explicit_max_ttl=explicit_max_ttl,
            uses_remaining=num_uses or None,
            issued_at=now,
            expires_at=now + ttl if ttl else None,
            path=path,
        )
        self._tokens[token.id] = token
        self._accessors[token.accessor] = token.id
        return token

    def _authenticate(self, token_id: Optional[str], now: float) -> MockToken:
        token = self._tokens.get(token_id or "")
        if token is None or token.is_expired(now):
            raise PermissionDeniedError("permission denied", http_status=403)
        if token.uses_remaining is not None:
            if token.uses_remaining <= 0:
                raise PermissionDeniedError("permission denied", http_status=403)
            token.uses_remaining -= 1
        return token

    def _require_live(self, token_id: Optional[str], now: float) -> MockToken:
        token = self._tokens.get(token_id or "")
        if token is None or token.is_expired(now):
            raise NotFoundError("bad token", http_status=403)
        return token

    def _by_accessor(self, accessor: Optional[str], now: float) -> MockToken:
        token_id = self._accessors.get(accessor or "")
        if token_id is None:
            raise NotFoundError("invalid accessor", http_status=400)
        return self._require_live(token_id, now)

    def _create_token(
        self, caller: MockToken, body: dict[str, Any], now: float, orphan: bool
    ) -> VaultResponse:
        is_root = ROOT_POLICY in caller.policies
        requested = body.get("policies")
        if requested is None:
            policies = [p for p in caller.policies if p != DEFAULT_POLICY]
        else:
            policies = list(requested)
            if not is_root and not set(policies) <= set(caller.policies):
                raise PolicyViolationError(
                    "child policies must be subset of parent", http_status=400
                )

        if body.get("id") and not is_root:
            raise PolicyViolationError("root required to specify token id", http_status=400)
        no_parent = orphan or bool(body.get("no_parent"))
        if body.get("no_parent") and not is_root:
            raise PolicyViolationError(
                "root or sudo privileges required to create orphan token", http_status=400
            )
        if body.get("id") and body["id"] in self._tokens:
            raise ValidationError("cannot create a token with a duplicate ID", http_status=400)

        if not body.get("no_default_policy") and ROOT_POLICY not in policies:
            policies.append(DEFAULT_POLICY)

        ttl = parse_duration(body["ttl"]) if body.get("ttl") else None
        if ttl is None:
            ttl = 0 if ROOT_POLICY in policies else self.default_token_ttl

        token = self._issue_token(
            policies=policies,
            parent=None if no_parent else caller.accessor,
            ttl=ttl,
            renewable=bool(body.get("renewable", True)),
            token_id=body.get("id"),
            display_name=f"token-{body['display_name']}" if body.get("display_name") else "token",
            meta=body.get("meta"),
            explicit_max_ttl=parse_duration(body.get("explicit_max_ttl") or 0),
            num_uses=int(body.get("num_uses") or 0),
        )
        logger.debug(f"Mock issued token accessor={token.accessor} parent={token.parent}")
        return VaultResponse(auth=token.auth_block(now))

    def _renew_token(
        self, token: Optional[MockToken], body: dict[str, Any], now: float
    ) -> VaultResponse:
        if token is None:
            raise NotFoundError("bad token", http_status=403)
        if token.is_expired(now):
            raise ExpiredError("token expired", http_status=400)
        if not token.renewable:
            raise NotRenewableError("lease is not renewable", http_status=400)

        if token.expires_at is not None:
            increment = parse_duration(body["increment"]) if body.get("increment") else token.ttl
            expires_at = now + increment
            if token.explicit_max_ttl:
                expires_at = min(expires_at, token.issued_at + token.explicit_max_ttl)
            token.expires_at = expires_at
        return VaultResponse(auth=token.auth_block(now))

    def _revoke_tree(self, accessor: str) -> None:
        pending = [accessor]
        revoked = set()
        while pending:
            current = pending.pop()
            if current in revoked:
                continue
            revoked.add(current)
            pending.extend(t.accessor for t in self._tokens.values() if t.parent == current)

        for current in revoked:
            token_id = self._accessors.pop(current, None)
            if token_id is not None:
                self._tokens.pop(token_id, None)
        for lease_id in [l.lease_id for l in self._leases.values() if l.owner in revoked]:
            del self._leases[lease_id]
        logger.debug(f"Mock revoked {len(revoked)} token(s) under accessor={accessor}")

    # ------------------------------------------------------------------
    # Logins
    # ------------------------------------------------------------------

    def _login(self, entry: dict[str, Any], display_name: str, path: str) -> VaultResponse:
        token = self._issue_token(
            policies=list(entry.get("policies") or []) + [DEFAULT_POLICY],
            parent=None,
            ttl=int(entry.get("ttl") or self.default_token_ttl),
            renewable=True,
            display_name=display_name,
            path=path,
        )
        return VaultResponse(auth=token.auth_block(self._clock()))

    def _login_userpass(self, username: str, body: dict[str, Any], now: float) -> VaultResponse:
        user = self._users.get(username)
        if user is None or user.get("password") != body.get("password"):
            raise AuthenticationError("invalid username or password", http_status=400)
        return self._login(user, f"userpass-{username}", f"auth/userpass/login/{username}")

    def _login_app_id(self, body: dict[str, Any], now: float) -> VaultResponse:
        app = self._app_ids.get(body.get("app_id") or "")
        if app is None or body.get("user_id") not in (app.get("users") or []):
            raise AuthenticationError("invalid app-id or user-id", http_status=400)
        return self._login(app, f"app-id-{body['app_id']}", "auth/app-id/login")

    def _login_approle(self, body: dict[str, Any], now: float) -> VaultResponse:
        role = self._approles.get(body.get("role_id") or "")
        if role is None or role.get("secret_id") != body.get("secret_id"):
            raise AuthenticationError("invalid role or secret ID", http_status=400)
        return self._login(role, "approle", "auth/approle/login")

    # ------------------------------------------------------------------
    # Secrets and leases
    # ------------------------------------------------------------------

    def _check_acl(self, caller: MockToken, path: str, capability: str) -> None:
        if ROOT_POLICY in caller.policies:
            return
        for name in caller.policies:
            for prefix, capabilities in (self._policies.get(name) or {}).items():
                if path.startswith(prefix.strip("/")) and (
                    capability in capabilities
                    or (capability == "update" and "create" in capabilities)
                ):
                    return
        raise PermissionDeniedError("permission denied", http_status=403)

    @staticmethod
    def _is_dynamic(path: str) -> bool:
        parts = path.split("/")
        return len(parts) >= 3 and parts[1] == "creds"

    def _read(self, caller: MockToken, path: str, now: float) -> VaultResponse:
        if self._is_dynamic(path):
            role = path.split("/")[2]
            lease = MockLease(
                lease_id=f"{path}/{uuid.uuid4().hex}",
                path=path,
                owner=caller.accessor,
                renewable=True,
                expires_at=now + self.default_lease_ttl,
                max_expires_at=now + self.max_lease_ttl,
            )
            self._leases[lease.lease_id] = lease
            return VaultResponse(
                data={
                    "username": f"v-{role}-{uuid.uuid4().hex[:8]}",
                    "password": uuid.uuid4().hex,
                },
                lease=LeaseInfo(lease.lease_id, self.default_lease_ttl, True),
            )

        if path not in self._kv:
            raise NotFoundError(f"no secret at '{path}'", http_status=404)
        return VaultResponse(data=dict(self._kv[path]))

    def _list(self, path: str) -> VaultResponse:
        prefix = f"{path}/"
        children = set()
        for key in self._kv:
            if key.startswith(prefix):
                rest = key[len(prefix):]
                head, sep, _ = rest.partition("/")
                children.add(head + sep)
        if not children and path not in self._kv:
            raise NotFoundError(f"no secrets under '{path}'", http_status=404)
        return VaultResponse(data={"keys": sorted(children)})

    def _renew_lease(self, body: dict[str, Any], now: float) -> VaultResponse:
        lease_id = body.get("lease_id") or ""
        lease = self._leases.get(lease_id)
        if lease is None:
            raise NotFoundError("lease not found", http_status=400)
        if now >= lease.expires_at:
            del self._leases[lease_id]
            raise ExpiredError("lease expired", http_status=400)
        if not lease.renewable:
            raise NotRenewableError("lease is not renewable", http_status=400)

        increment = parse_duration(body["increment"]) if body.get("increment") else self.default_lease_ttl
        lease.expires_at = min(now + increment, lease.max_expires_at)
        duration = max(0, int(round(lease.expires_at - now)))
        return VaultResponse(lease=LeaseInfo(lease_id, duration, lease.renewable))

    def _revoke_lease(self, body: dict[str, Any]) -> VaultResponse:
        lease_id = body.get("lease_id") or ""
        if self._leases.pop(lease_id, None) is None:
            raise NotFoundError("invalid lease", http_status=400)
        return VaultResponse(status=204)

    # ------------------------------------------------------------------
    # Wrapping
    # ------------------------------------------------------------------

    def _wrap(self, response: VaultResponse, ttl: int, path: str) -> VaultResponse:
        now = self._clock()
        token = f"w.{uuid.uuid4().hex}"
        accessor = uuid.uuid4().hex
        self._wraps[token] = MockWrap(
            response=response, accessor=accessor, expires_at=now + ttl, creation_path=path
        )
        return VaultResponse(
            wrap_info={
                "token": token,
                "accessor": accessor,
                "ttl": ttl,
                "creation_time": now,
                "creation_path": path,
            }
        )

    def _unwrap(self, wrap_token: Optional[str], now: float) -> VaultResponse:
        wrap_token = wrap_token or ""
        if wrap_token in self._unwrapped:
            raise AlreadyUnwrappedError("wrapping token already unwrapped", http_status=400)
        wrapped = self._wraps.get(wrap_token)
        if wrapped is None:
            raise NotFoundError("wrapping token is not valid or does not exist", http_status=400)
        del self._wraps[wrap_token]
        if now >= wrapped.expires_at:
            raise ExpiredError("wrapping token expired", http_status=400)
        self._unwrapped.add(wrap_token)
        return wrapped.response
