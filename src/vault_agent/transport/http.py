"""HTTP(S) transport backed by httpx."""

from typing import Any, Optional

import httpx
from loguru import logger

from ..config import Config
from ..errors import (
    AlreadyUnwrappedError,
    AuthenticationError,
    ExpiredError,
    NotFoundError,
    NotRenewableError,
    PermissionDeniedError,
    TransportError,
    ValidationError,
    VaultError,
)
from .base import VaultResponse, parse_response

API_PREFIX = "/v1/"
USER_AGENT = "vault-agent/0.1.0"


def _is_login_path(path: str) -> bool:
    return path.startswith("auth/") and "/login" in path


def error_from_status(status: int, errors: list[str], path: str) -> VaultError:
    """
    Map an error response to the typed taxonomy.

    Args:
        status: HTTP status code
        errors: Error strings from the response body
        path: Request path (login paths map credential errors differently)

    Returns:
        Typed VaultError instance
    """
    message = "; ".join(errors) if errors else f"HTTP {status}"
    lowered = message.lower()

    if status == 429 or status >= 500:
        return TransportError(message, http_status=status, errors=errors)

    if "not renewable" in lowered:
        return NotRenewableError(message, http_status=status, errors=errors)
    if "already unwrapped" in lowered:
        return AlreadyUnwrappedError(message, http_status=status, errors=errors)
    if "expired" in lowered:
        return ExpiredError(message, http_status=status, errors=errors)

    if status == 404:
        return NotFoundError(message, http_status=status, errors=errors)

    if _is_login_path(path) and status in (400, 401, 403):
        return AuthenticationError(message, http_status=status, errors=errors)

    if status == 401:
        return AuthenticationError(message, http_status=status, errors=errors)

    if status == 403:
        if "bad token" in lowered or "invalid token" in lowered:
            return NotFoundError(message, http_status=status, errors=errors)
        return PermissionDeniedError(message, http_status=status, errors=errors)

    if status == 400:
        if any(s in lowered for s in ("invalid lease", "lease not found", "invalid accessor")):
            return NotFoundError(message, http_status=status, errors=errors)
        if "does not exist" in lowered or "not valid" in lowered:
            return NotFoundError(message, http_status=status, errors=errors)
        return ValidationError(message, http_status=status, errors=errors)

    return VaultError(message, http_status=status, errors=errors)


class HttpTransport:
    """
    Transport speaking the Vault HTTP API.

    Features:
    - Connection pooling through a shared httpx.AsyncClient
    - X-Vault-Token / X-Vault-Wrap-TTL / X-Vault-Namespace headers
    - LIST verb sent as GET ?list=true
    - Typed error mapping (connection errors and timeouts -> TransportError)
    """

    def __init__(
        self,
        address: str,
        *,
        timeout: Optional[float] = None,
        verify: Optional[bool] = None,
        namespace: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.address = address.rstrip("/")
        self.namespace = namespace if namespace is not None else Config.VAULT_NAMESPACE
        timeout = timeout if timeout is not None else Config.REQUEST_TIMEOUT
        verify = verify if verify is not None else not Config.SKIP_VERIFY
        self._client = client or httpx.AsyncClient(
            base_url=self.address,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 10.0)),
            verify=verify,
            headers={"User-Agent": USER_AGENT},
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Optional[dict[str, Any]] = None,
        token: Optional[str] = None,
        wrap_ttl: Optional[int] = None,
    ) -> VaultResponse:
        headers = {}
        if token:
            headers["X-Vault-Token"] = token
        if wrap_ttl:
            headers["X-Vault-Wrap-TTL"] = f"{int(wrap_ttl)}s"
        if self.namespace:
            headers["X-Vault-Namespace"] = self.namespace

        params = None
        verb = method.upper()
        if verb == "LIST":
            verb = "GET"
            params = {"list": "true"}

        url = API_PREFIX + path.lstrip("/")

        try:
            response = await self._client.request(
                verb, url, json=body, headers=headers, params=params
            )
        except httpx.TimeoutException as e:
            logger.warning(f"Vault request timed out: {method} {path}")
            raise TransportError(f"{method} {path} timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.warning(f"Vault request failed: {method} {path}: {e}")
            raise TransportError(f"{method} {path} failed: {e}") from e

        payload = None
        if response.content:
            try:
                payload = response.json()
            except ValueError:
                payload = None

        if response.status_code >= 400:
            errors = []
            if isinstance(payload, dict):
                errors = [str(e) for e in payload.get("errors") or []]
            error = error_from_status(response.status_code, errors, path)
            logger.debug(
                f"Vault returned {response.status_code} for {method} {path}: {error.kind}"
            )
            raise error

        if payload is not None and not isinstance(payload, dict):
            raise ValidationError(f"Unexpected response body for {method} {path}")

        return parse_response(response.status_code, payload)

    async def close(self) -> None:
        """Close the underlying httpx client."""
        await self._client.aclose()
