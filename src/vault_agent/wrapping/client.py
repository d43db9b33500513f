"""Response wrapping: single-use tokens around a payload."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Optional

from loguru import logger

from ..config import Config
from ..errors import AlreadyUnwrappedError, ValidationError
from ..transport.base import Transport, call
from ..utils import Duration, parse_duration
from .models import WrapInfo

if TYPE_CHECKING:
    from ..auth.store import CredentialStore


class WrappingClient:
    """
    Wrap payloads and unwrap wrapping tokens.

    Unwrap is exactly-once. The server enforces it, and this client also
    claims a wrap token before sending it, so concurrent unwraps of the same
    token inside one process fail fast without a round-trip.
    """

    def __init__(
        self,
        transport: Transport,
        store: CredentialStore,
        *,
        timeout: float = Config.REQUEST_TIMEOUT,
        default_ttl: Duration = Config.WRAP_TTL,
    ):
        self._transport = transport
        self._store = store
        self._timeout = timeout
        self._default_ttl = parse_duration(default_ttl)
        self._claimed: set[str] = set()
        self._unwrapped: set[str] = set()

    async def wrap(self, data: Mapping[str, Any], ttl: Optional[Duration] = None) -> WrapInfo:
        """
        Wrap ``data`` in a single-use token.

        Args:
            data: String-keyed payload
            ttl: Wrap lifetime; defaults to the client's wrap TTL

        Raises:
            ValidationError: Bad payload or TTL
        """
        if not isinstance(data, Mapping) or not all(isinstance(k, str) for k in data):
            raise ValidationError("wrap data must be a string-keyed mapping")
        seconds = self._default_ttl if ttl is None else parse_duration(ttl)
        if seconds <= 0:
            raise ValidationError("wrap ttl must be > 0")

        response = await call(
            self._transport,
            "POST",
            "sys/wrapping/wrap",
            timeout=self._timeout,
            body=dict(data),
            token=self._store.require().client_token,
            wrap_ttl=seconds,
        )
        wrapped = WrapInfo.from_response(response.wrap_info)
        logger.info(f"Wrapped {len(data)} key(s) (accessor={wrapped.accessor}, ttl={wrapped.ttl}s)")
        return wrapped

    async def unwrap(self, wrap_token: str) -> dict[str, Any]:
        """
        Exchange a wrapping token for its payload.

        Vault answers a repeat unwrap as if the token were unknown (400,
        "wrapping token is not valid or does not exist"), so across processes
        a second unwrap surfaces as NotFoundError. AlreadyUnwrappedError is
        only guaranteed for tokens this client unwrapped or is unwrapping.

        Returns:
            The wrapped data (for a wrapped token creation, the auth block)

        Raises:
            AlreadyUnwrappedError: Token was already unwrapped by this client
                (or by a server that reports it distinctly)
            NotFoundError: Token was never issued, or unwrapped elsewhere
            ExpiredError: Token TTL elapsed before any unwrap
        """
        if not isinstance(wrap_token, str) or not wrap_token.strip():
            raise ValidationError("wrap token must not be empty")

        # Check-and-claim has no await in between, so it is atomic on the loop.
        if wrap_token in self._unwrapped or wrap_token in self._claimed:
            raise AlreadyUnwrappedError("wrapping token already unwrapped")
        self._claimed.add(wrap_token)

        try:
            response = await call(
                self._transport,
                "POST",
                "sys/wrapping/unwrap",
                timeout=self._timeout,
                token=wrap_token,
            )
        finally:
            self._claimed.discard(wrap_token)
        self._unwrapped.add(wrap_token)

        if response.auth:
            return dict(response.auth)
        return dict(response.data or {})
