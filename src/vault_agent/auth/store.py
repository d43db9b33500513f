"""Holder for the client's active token."""

import asyncio
from typing import Optional

from loguru import logger

from ..errors import AuthenticationError
from ..tokens.models import AuthToken


class CredentialStore:
    """
    Single-writer, multi-reader holder of the active AuthToken.

    The token is an immutable snapshot behind one reference: readers take the
    reference once at the start of an operation and keep using it, so an
    in-flight call finishes with the old token while new calls see the new
    one. Writers serialize on a lock and swap the reference in one step.
    """

    def __init__(self, token: Optional[AuthToken] = None):
        self._token = token
        self._lock = asyncio.Lock()

    @property
    def current(self) -> Optional[AuthToken]:
        return self._token

    def require(self) -> AuthToken:
        """
        Returns:
            The active token

        Raises:
            AuthenticationError: If the client has not authenticated
        """
        token = self._token
        if token is None:
            raise AuthenticationError("client is not authenticated")
        return token

    async def swap(self, token: Optional[AuthToken]) -> Optional[AuthToken]:
        """
        Replace the active token.

        Returns:
            The previous token (None if there was none)
        """
        async with self._lock:
            previous, self._token = self._token, token
        if token is not None:
            logger.info(f"Active token is now accessor={token.accessor}")
        return previous

    async def refresh(self, accessor: str, lease_duration: int, renewable: bool, issued_at: float) -> bool:
        """
        Record a renewal of the active token if it is still ``accessor``.

        Returns:
            True if the active token was updated
        """
        async with self._lock:
            token = self._token
            if token is None or token.accessor != accessor:
                return False
            self._token = token.with_lease(lease_duration, renewable, issued_at)
            return True

    async def clear(self, accessors: Optional[set[str]] = None) -> bool:
        """
        Drop the active token.

        Args:
            accessors: Only clear if the active token is one of these

        Returns:
            True if a token was cleared
        """
        async with self._lock:
            token = self._token
            if token is None:
                return False
            if accessors is not None and token.accessor not in accessors:
                return False
            self._token = None
        logger.info(f"Cleared active token accessor={token.accessor}")
        return True
