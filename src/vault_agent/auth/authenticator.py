"""Authentication and server health."""

import time
from typing import Any, Callable

from loguru import logger

from ..config import Config
from ..errors import AuthenticationError, NotFoundError, PermissionDeniedError
from ..leases.models import Lease, LeaseKind, token_lease_id
from ..leases.registry import LeaseRegistry
from ..tokens.models import AuthToken
from ..transport.base import Transport, call
from .methods import login_request
from .store import CredentialStore


class Authenticator:
    """Exchanges credentials for a token and installs it in the store."""

    def __init__(
        self,
        transport: Transport,
        store: CredentialStore,
        registry: LeaseRegistry,
        *,
        timeout: float = Config.REQUEST_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        self._transport = transport
        self._store = store
        self._registry = registry
        self._timeout = timeout
        self._clock = clock

    async def authenticate(self, method: str, credentials: Any) -> AuthToken:
        """
        Log in and make the resulting token the active one.

        Args:
            method: "token", "userpass", "app-id", "approle" or a registered method
            credentials: Token string or a mapping of method-specific fields

        Returns:
            The new active token

        Raises:
            ValidationError: Unknown method or malformed credentials
            AuthenticationError: Credentials rejected
            TransportError: Server unreachable
        """
        request = login_request(method, credentials)

        try:
            if request is None:
                response = await call(
                    self._transport,
                    "GET",
                    "auth/token/lookup-self",
                    timeout=self._timeout,
                    token=credentials,
                )
                token = AuthToken.from_lookup(credentials, response.data or {}, self._clock())
            else:
                response = await call(
                    self._transport,
                    "POST",
                    request.path,
                    timeout=self._timeout,
                    body=request.body,
                )
                token = AuthToken.from_auth(response.auth or {}, self._clock())
        except (NotFoundError, PermissionDeniedError) as e:
            raise AuthenticationError(
                f"{method} authentication failed: {e.message}", http_status=e.http_status
            ) from e

        if not token.accessor:
            raise AuthenticationError(f"{method} authentication returned no accessor")

        previous = await self._store.swap(token)
        if previous is not None and previous.accessor != token.accessor:
            await self._registry.remove(token_lease_id(previous.accessor))

        await self._registry.register(
            Lease.create(
                lease_id=token_lease_id(token.accessor),
                kind=LeaseKind.TOKEN,
                lease_duration=token.lease_duration,
                renewable=token.renewable,
                issued_at=token.issued_at,
                accessor=token.accessor,
                token=token.client_token,
                auto_renew=token.renewable,
            )
        )
        logger.info(
            f"Authenticated via {method} (accessor={token.accessor}, "
            f"policies={list(token.policies)}, ttl={token.lease_duration}s)"
        )
        return token

    async def status(self) -> dict[str, Any]:
        """
        Server health. Pure read.

        Raises:
            TransportError: Server unreachable
        """
        response = await call(self._transport, "GET", "sys/health", timeout=self._timeout)
        return dict(response.data or {})
