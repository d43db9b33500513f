"""Secret reads, writes, listings and deletes."""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable, Optional

from loguru import logger

from ..config import Config
from ..errors import NotFoundError, ValidationError
from ..leases.models import Lease, LeaseKind
from ..leases.registry import LeaseRegistry
from ..transport.base import Transport, VaultResponse, call
from .models import ReadOptions, Secret

if TYPE_CHECKING:
    from ..auth.store import CredentialStore


def _normalize_path(path: str) -> str:
    if not isinstance(path, str) or not path.strip("/ "):
        raise ValidationError("secret path must not be empty")
    return path.strip().strip("/")


class SecretClient:
    """
    Generic secret operations.

    Leased reads are recorded in the lease registry under the accessor of the
    token that performed the read, so revoking that token drops them too.
    """

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

    async def _call(self, method: str, path: str, **kwargs) -> VaultResponse:
        return await call(
            self._transport,
            method,
            path,
            timeout=self._timeout,
            token=self._store.require().client_token,
            **kwargs,
        )

    async def list_secrets(self, path: str) -> list[str]:
        """
        Child key names under ``path``, sorted.

        Returns:
            Keys (folders keep their trailing "/"); empty if there are none

        Raises:
            NotFoundError: The path does not exist
        """
        path = _normalize_path(path)
        response = await self._call("LIST", path)
        return sorted((response.data or {}).get("keys") or [])

    async def read_secret(self, path: str, opts: Optional[ReadOptions] = None) -> Secret:
        """
        Read a secret.

        With ``renew`` set, the secret's lease is renewed in the background
        and ``callback`` receives a LeaseEvent after every renewal and once
        when the lease ends.

        Raises:
            ValidationError: Bad path or options
            NotFoundError: Nothing at ``path``
            PermissionDeniedError: Policy denies the read
        """
        path = _normalize_path(path)
        opts = (opts or ReadOptions()).validate()
        caller = self._store.require()

        response = await self._call("GET", path)
        secret = self._secret(path, response)

        if response.lease is not None:
            await self._registry.register(
                Lease.create(
                    lease_id=response.lease.lease_id,
                    kind=LeaseKind.SECRET,
                    lease_duration=response.lease.lease_duration,
                    renewable=response.lease.renewable,
                    issued_at=self._clock(),
                    path=path,
                    owner_accessor=caller.accessor,
                    data=dict(secret.data),
                    auto_renew=opts.renew,
                    rotate=opts.rotate,
                    handlers=[opts.callback] if opts.callback is not None else [],
                )
            )
        elif opts.renew:
            logger.debug(f"Secret at {path} has no lease; nothing to renew")

        return secret

    async def write_secret(self, path: str, data: Mapping[str, Any]) -> bool:
        """
        Write ``data`` to ``path``.

        Raises:
            ValidationError: Bad path, or data is not a string-keyed mapping
            PermissionDeniedError: Policy denies the write
        """
        path = _normalize_path(path)
        if not isinstance(data, Mapping):
            raise ValidationError("secret data must be a mapping")
        if not all(isinstance(key, str) and key for key in data):
            raise ValidationError("secret data keys must be non-empty strings")

        await self._call("PUT", path, body=dict(data))
        logger.info(f"Wrote {len(data)} key(s) to {path}")
        return True

    async def delete_secret(self, path: str) -> bool:
        """
        Delete the secret at ``path``.

        Deleting a path that does not exist also returns True.
        """
        path = _normalize_path(path)
        try:
            await self._call("DELETE", path)
        except NotFoundError:
            logger.debug(f"Nothing to delete at {path}")
        else:
            logger.info(f"Deleted {path}")
        return True

    async def reread(self, lease: Lease) -> tuple[Optional[Lease], Optional[dict[str, Any]]]:
        """
        Rotator used by the scheduler: read ``lease.path`` again and track
        the new lease with the old lease's subscribers.

        Returns:
            (new lease, data), or (None, data) if the new read has no lease
        """
        if not lease.path:
            raise ValidationError(f"lease {lease.lease_id} has no path to re-read")
        caller = self._store.require()
        response = await self._call("GET", lease.path)
        data = dict(response.data or {})
        if response.lease is None:
            return None, data

        replacement = await self._registry.register(
            Lease.create(
                lease_id=response.lease.lease_id,
                kind=LeaseKind.SECRET,
                lease_duration=response.lease.lease_duration,
                renewable=response.lease.renewable,
                issued_at=self._clock(),
                path=lease.path,
                owner_accessor=caller.accessor,
                data=dict(data),
                auto_renew=True,
                rotate=True,
                handlers=list(lease.handlers),
            )
        )
        return replacement, data

    @staticmethod
    def _secret(path: str, response: VaultResponse) -> Secret:
        lease = response.lease
        return Secret(
            path=path,
            data=dict(response.data or {}),
            lease_id=lease.lease_id if lease else None,
            lease_duration=lease.lease_duration if lease else 0,
            renewable=lease.renewable if lease else False,
            warnings=list(response.warnings),
        )
