"""Token management against the token auth backend."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Callable, Optional, Union

from loguru import logger

from ..config import Config
from ..errors import (
    ExpiredError,
    NotFoundError,
    NotRenewableError,
    PolicyViolationError,
    ValidationError,
)
from ..leases.models import Lease, LeaseKind, RenewalResult, token_lease_id
from ..leases.registry import LeaseRegistry
from ..leases.scheduler import RenewalScheduler
from ..transport.base import Transport, call
from ..utils import Duration, format_duration, parse_duration
from ..wrapping.models import WrapInfo
from .models import AuthToken, TokenInfo, TokenOptions

if TYPE_CHECKING:
    from ..auth.store import CredentialStore


class TokenManager:
    """
    Create, inspect, renew and revoke tokens.

    Every token this client creates gets a lease in the registry, linked to
    its parent's accessor, so revocation can cascade locally the same way it
    cascades on the server.
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

    async def _call(self, method: str, path: str, **kwargs):
        return await call(self._transport, method, path, timeout=self._timeout, **kwargs)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_token(
        self, opts: Optional[TokenOptions] = None
    ) -> Union[AuthToken, WrapInfo]:
        """
        Create a child token (or an orphan, for root callers with no_parent).

        With no options the new token inherits the caller's policies.

        Returns:
            The new AuthToken, or WrapInfo when opts.wrap_ttl is set

        Raises:
            ValidationError: Malformed options
            PolicyViolationError: Policies outside the caller's set, or a
                root-only option used by a non-root caller (no RPC made)
        """
        opts = (opts or TokenOptions()).validate()
        caller = self._store.require()

        if not caller.is_root:
            if opts.policies is not None:
                extra = set(opts.policies) - set(caller.policies)
                if extra:
                    raise PolicyViolationError(
                        f"policies {sorted(extra)} are not held by the calling token"
                    )
            if opts.id is not None:
                raise PolicyViolationError("only a root token may set a token id")
            if opts.no_parent:
                raise PolicyViolationError("only a root token may create orphan tokens")

        response = await self._call(
            "POST",
            "auth/token/create",
            body=opts.to_body(),
            token=caller.client_token,
            wrap_ttl=opts.wrap_seconds,
        )

        if opts.wrap_ttl is not None:
            wrapped = WrapInfo.from_response(response.wrap_info)
            logger.info(f"Created wrapped token (wrap accessor={wrapped.accessor})")
            return wrapped

        parent = None if opts.no_parent else caller.accessor
        token = AuthToken.from_auth(response.auth or {}, self._clock(), parent_accessor=parent)
        await self._registry.register(
            Lease.create(
                lease_id=token_lease_id(token.accessor),
                kind=LeaseKind.TOKEN,
                lease_duration=token.lease_duration,
                renewable=token.renewable,
                issued_at=token.issued_at,
                accessor=token.accessor,
                parent_accessor=parent,
                token=token.client_token,
                auto_renew=token.renewable,
            )
        )
        logger.info(
            f"Created token accessor={token.accessor} parent={parent} "
            f"(ttl={token.lease_duration}s, renewable={token.renewable})"
        )
        return token

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def lookup_token(self, token: Optional[str] = None) -> TokenInfo:
        """
        Look up a token, or the client's own token if omitted.

        Raises:
            NotFoundError: Token invalid or expired
        """
        caller = self._store.require()
        if token is None:
            response = await self._call(
                "GET", "auth/token/lookup-self", token=caller.client_token
            )
        else:
            response = await self._call(
                "POST", "auth/token/lookup", body={"token": token}, token=caller.client_token
            )
        if not response.data:
            raise NotFoundError("token lookup returned no data")
        return TokenInfo.from_lookup(response.data)

    async def lookup_accessor(self, accessor: str) -> TokenInfo:
        """
        Look up a token by accessor. The result never carries the token id.

        Raises:
            NotFoundError: Accessor unknown
        """
        if not accessor or not accessor.strip():
            raise ValidationError("accessor must not be empty")
        caller = self._store.require()
        response = await self._call(
            "POST",
            "auth/token/lookup-accessor",
            body={"accessor": accessor},
            token=caller.client_token,
        )
        if not response.data:
            raise NotFoundError(f"no token for accessor {accessor}")
        return TokenInfo.from_lookup(response.data, include_id=False)

    # ------------------------------------------------------------------
    # Renew
    # ------------------------------------------------------------------

    async def renew_token(
        self, token: Optional[str] = None, increment: Optional[Duration] = None
    ) -> AuthToken:
        """
        Extend a token's TTL (the client's own token if omitted).

        Raises:
            NotRenewableError: Token is flagged non-renewable
            ExpiredError: TTL already elapsed
        """
        caller = self._store.require()
        target = caller.client_token if token is None else token
        now = self._clock()

        local = self._registry.find_token(target)
        if local is not None:
            if not local.renewable:
                raise NotRenewableError(f"token accessor={local.accessor} is not renewable")
            if local.is_expired(now):
                raise ExpiredError(f"token accessor={local.accessor} has expired")
        elif target == caller.client_token:
            if not caller.renewable:
                raise NotRenewableError(f"token accessor={caller.accessor} is not renewable")
            if caller.is_expired(now):
                raise ExpiredError(f"token accessor={caller.accessor} has expired")

        body = {}
        if increment is not None:
            body["increment"] = format_duration(parse_duration(increment))

        if target == caller.client_token:
            response = await self._call("POST", "auth/token/renew-self", body=body, token=target)
        else:
            body["token"] = target
            response = await self._call(
                "POST", "auth/token/renew", body=body, token=caller.client_token
            )

        auth = response.auth or {}
        renewed = AuthToken.from_auth(
            {**auth, "client_token": target},
            self._clock(),
            parent_accessor=local.parent_accessor if local is not None else None,
        )
        await self._apply_renewal(renewed)
        logger.info(f"Renewed token accessor={renewed.accessor} for {renewed.lease_duration}s")
        return renewed

    async def renew_tracked(self, lease: Lease) -> RenewalResult:
        """Renewer used by the scheduler for token leases."""
        response = await self._call("POST", "auth/token/renew-self", token=lease.token)
        auth = response.auth or {}
        result = RenewalResult(
            lease_id=lease.lease_id,
            lease_duration=int(auth.get("lease_duration") or 0),
            renewable=bool(auth.get("renewable", False)),
        )
        await self._store.refresh(
            lease.accessor or "", result.lease_duration, result.renewable, self._clock()
        )
        return result

    async def _apply_renewal(self, renewed: AuthToken) -> None:
        await self._registry.update(
            token_lease_id(renewed.accessor),
            lease_duration=renewed.lease_duration,
            renewable=renewed.renewable,
            issued_at=renewed.issued_at,
        )
        await self._store.refresh(
            renewed.accessor, renewed.lease_duration, renewed.renewable, renewed.issued_at
        )

    # ------------------------------------------------------------------
    # Revoke
    # ------------------------------------------------------------------

    async def revoke_token(self, token: Optional[str] = None) -> None:
        """
        Revoke a token and all its descendants (the client's own if omitted).

        Idempotent: revoking an already-revoked token is a no-op.
        """
        caller = self._store.current
        if token is None:
            if caller is None:
                logger.debug("No active token to revoke")
                return
            accessor = caller.accessor
            try:
                await self._call("POST", "auth/token/revoke-self", token=caller.client_token)
            except NotFoundError:
                logger.debug(f"Token accessor={accessor} already revoked")
        else:
            caller = self._store.require()
            local = self._registry.find_token(token)
            if local is not None:
                accessor = local.accessor
            elif token == caller.client_token:
                accessor = caller.accessor
            else:
                accessor = None
            try:
                await self._call(
                    "POST", "auth/token/revoke", body={"token": token}, token=caller.client_token
                )
            except NotFoundError:
                logger.debug("Token already revoked")

        if accessor is not None:
            await self._revoke_locally(accessor)

    async def revoke_accessor(self, accessor: Optional[str] = None) -> None:
        """
        Revoke the token behind an accessor, and its descendants.

        Defaults to the client's own accessor. Idempotent.
        """
        caller = self._store.current
        if accessor is None:
            if caller is None:
                logger.debug("No active token to revoke")
                return
            accessor = caller.accessor
        elif not accessor.strip():
            raise ValidationError("accessor must not be empty")
        caller = self._store.require()

        try:
            await self._call(
                "POST",
                "auth/token/revoke-accessor",
                body={"accessor": accessor},
                token=caller.client_token,
            )
        except NotFoundError:
            logger.debug(f"Token accessor={accessor} already revoked")

        await self._revoke_locally(accessor)

    async def _revoke_locally(self, accessor: str) -> None:
        removed = await self._registry.remove_tree(accessor)
        self._scheduler.revoked(removed)

        revoked_accessors = {accessor}
        revoked_accessors.update(
            lease.accessor for lease in removed if lease.kind is LeaseKind.TOKEN and lease.accessor
        )
        if await self._store.clear(revoked_accessors):
            logger.warning("Active token was revoked; client must re-authenticate")
        logger.info(f"Revoked token accessor={accessor} ({len(removed)} lease(s) dropped)")
