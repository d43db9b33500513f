"""Client facade and URI-based construction."""

import time
from typing import Any, Callable, Optional, Union
from urllib.parse import urlsplit

from loguru import logger

from .auth import Authenticator, CredentialStore
from .config import Config
from .errors import UnsupportedSchemeError
from .leases import (
    Lease,
    LeaseKind,
    LeaseManager,
    LeaseRegistry,
    RenewalPolicy,
    RenewalResult,
    RenewalScheduler,
)
from .secrets import ReadOptions, Secret, SecretClient
from .tokens import AuthToken, TokenInfo, TokenManager, TokenOptions
from .transport import HttpTransport, MockTransport, Transport
from .utils import Duration
from .wrapping import WrapInfo, WrappingClient


class VaultClient:
    """
    Client for a Vault-compatible secret-management service.

    Composes the credential store, lease registry, renewal scheduler and the
    per-area operation objects around one transport. Every instance owns its
    own state; nothing is shared between clients.

    Usage:
        async with new_client("https://vault.example.com:8200") as client:
            await client.authenticate("approle", {"role_id": ..., "secret_id": ...})
            secret = await client.read_secret("db/creds/app", ReadOptions(renew=True))
    """

    def __init__(
        self,
        transport: Transport,
        *,
        policy: Optional[RenewalPolicy] = None,
        request_timeout: Optional[float] = None,
        shutdown_timeout: Optional[float] = None,
        wrap_ttl: Optional[Duration] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.transport = transport
        self._request_timeout = Config.REQUEST_TIMEOUT if request_timeout is None else request_timeout
        self._shutdown_timeout = (
            Config.SHUTDOWN_TIMEOUT if shutdown_timeout is None else shutdown_timeout
        )
        if self._request_timeout <= 0:
            raise ValueError(f"request_timeout must be > 0, got {self._request_timeout}")
        if self._shutdown_timeout < 0:
            raise ValueError(f"shutdown_timeout must be >= 0, got {self._shutdown_timeout}")

        self.store = CredentialStore()
        self.registry = LeaseRegistry()
        self.scheduler = RenewalScheduler(
            self.registry,
            self._renew,
            policy=policy,
            clock=clock,
            rotator=self._rotate,
        )

        common = {"timeout": self._request_timeout, "clock": clock}
        self.auth = Authenticator(transport, self.store, self.registry, **common)
        self.tokens = TokenManager(transport, self.store, self.registry, self.scheduler, **common)
        self.leases = LeaseManager(transport, self.store, self.registry, self.scheduler, **common)
        self.secrets = SecretClient(transport, self.store, self.registry, **common)
        self.wrapping = WrappingClient(
            transport,
            self.store,
            timeout=self._request_timeout,
            default_ttl=Config.WRAP_TTL if wrap_ttl is None else wrap_ttl,
        )
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> "VaultClient":
        """Start the background renewal loop. Must run inside an event loop."""
        if self._closed:
            raise RuntimeError("client is closed")
        self.scheduler.start()
        return self

    async def close(self) -> None:
        """Stop the renewal loop and release the transport. Idempotent."""
        if self._closed:
            return
        self._closed = True
        await self.scheduler.stop(self._shutdown_timeout)
        await self.transport.close()
        logger.info("Vault client closed")

    async def __aenter__(self) -> "VaultClient":
        return self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _renew(self, lease: Lease) -> RenewalResult:
        if lease.kind is LeaseKind.TOKEN:
            return await self.tokens.renew_tracked(lease)
        return await self.leases.renew_tracked(lease)

    async def _rotate(self, lease: Lease):
        return await self.secrets.reread(lease)

    # ------------------------------------------------------------------
    # Credential store
    # ------------------------------------------------------------------

    @property
    def token(self) -> Optional[AuthToken]:
        """Active token snapshot (None before authentication)."""
        return self.store.current

    async def authenticate(self, method: str, credentials: Any) -> AuthToken:
        return await self.auth.authenticate(method, credentials)

    async def status(self) -> dict[str, Any]:
        return await self.auth.status()

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    async def create_token(
        self, opts: Optional[TokenOptions] = None
    ) -> Union[AuthToken, WrapInfo]:
        return await self.tokens.create_token(opts)

    async def lookup_token(self, token: Optional[str] = None) -> TokenInfo:
        return await self.tokens.lookup_token(token)

    async def lookup_accessor(self, accessor: str) -> TokenInfo:
        return await self.tokens.lookup_accessor(accessor)

    async def renew_token(
        self, token: Optional[str] = None, increment: Optional[Duration] = None
    ) -> AuthToken:
        return await self.tokens.renew_token(token, increment)

    async def revoke_token(self, token: Optional[str] = None) -> None:
        await self.tokens.revoke_token(token)

    async def revoke_accessor(self, accessor: Optional[str] = None) -> None:
        await self.tokens.revoke_accessor(accessor)

    # ------------------------------------------------------------------
    # Leases
    # ------------------------------------------------------------------

    def list_leases(self) -> list[str]:
        return self.leases.list_leases()

    async def renew_lease(
        self, lease_id: str, increment: Optional[Duration] = None
    ) -> RenewalResult:
        return await self.leases.renew_lease(lease_id, increment)

    async def revoke_lease(self, lease_id: str) -> None:
        await self.leases.revoke_lease(lease_id)

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    async def list_secrets(self, path: str) -> list[str]:
        return await self.secrets.list_secrets(path)

    async def read_secret(self, path: str, opts: Optional[ReadOptions] = None) -> Secret:
        return await self.secrets.read_secret(path, opts)

    async def write_secret(self, path: str, data: dict[str, Any]) -> bool:
        return await self.secrets.write_secret(path, data)

    async def delete_secret(self, path: str) -> bool:
        return await self.secrets.delete_secret(path)

    # ------------------------------------------------------------------
    # Wrapping
    # ------------------------------------------------------------------

    async def wrap(self, data: dict[str, Any], ttl: Optional[Duration] = None) -> WrapInfo:
        return await self.wrapping.wrap(data, ttl)

    async def unwrap(self, wrap_token: str) -> dict[str, Any]:
        return await self.wrapping.unwrap(wrap_token)


# ----------------------------------------------------------------------
# URI-scheme construction
# ----------------------------------------------------------------------

ClientFactory = Callable[..., VaultClient]

_SCHEMES: dict[str, ClientFactory] = {}


def register_scheme(scheme: str, factory: ClientFactory) -> None:
    """
    Register (or replace) the factory for a URI scheme.

    Args:
        scheme: Scheme name without "://" (case-insensitive)
        factory: Callable(uri, **settings) returning a VaultClient
    """
    if not scheme or not scheme.strip():
        raise ValueError("scheme must not be empty")
    _SCHEMES[scheme.lower()] = factory


def schemes() -> list[str]:
    return sorted(_SCHEMES)


def new_client(uri: Optional[str] = None, **settings) -> VaultClient:
    """
    Build a client for ``uri`` (defaults to VAULT_ADDR).

    The client is initialized but not started.

    Raises:
        UnsupportedSchemeError: Scheme missing or not registered
    """
    uri = Config.VAULT_ADDR if uri is None else uri
    scheme = urlsplit(uri).scheme.lower() if uri else ""
    factory = _SCHEMES.get(scheme)
    if factory is None:
        raise UnsupportedSchemeError(
            f"Unsupported URI scheme {scheme or '<none>'!r} in {uri!r} "
            f"(supported: {', '.join(schemes())})"
        )
    client = factory(uri, **settings)
    logger.debug(f"Created {scheme} client")
    return client


def _http_client(
    uri: str,
    *,
    verify: Optional[bool] = None,
    namespace: Optional[str] = None,
    **settings,
) -> VaultClient:
    timeout = settings.get("request_timeout")
    transport = HttpTransport(uri, timeout=timeout, verify=verify, namespace=namespace)
    return VaultClient(transport, **settings)


def _mock_client(uri: str, *, transport_options: Optional[dict] = None, **settings) -> VaultClient:
    # "mock:" is an empty server; "mock:path/to/fixture.yaml" loads a fixture.
    fixture = _fixture_path(uri)
    options = dict(transport_options or {})
    if "clock" in settings:
        options.setdefault("clock", settings["clock"])
    if fixture:
        transport = MockTransport.from_fixture(fixture, **options)
    else:
        transport = MockTransport(**options)
    return VaultClient(transport, **settings)


def _fixture_path(uri: str) -> str:
    parts = urlsplit(uri)
    return f"{parts.netloc}{parts.path}" if parts.netloc else parts.path


register_scheme("http", _http_client)
register_scheme("https", _http_client)
register_scheme("mock", _mock_client)
