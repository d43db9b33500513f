"""Login methods: how credentials become a login request."""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..errors import ValidationError


@dataclass(frozen=True)
class LoginRequest:
    """Transport call that exchanges credentials for a token."""

    path: str
    body: dict[str, Any]


# A method returns the login call to make, or None when the credentials are
# already a token that only needs verifying.
AuthMethod = Callable[[Any], Optional[LoginRequest]]

_AUTH_METHODS: dict[str, AuthMethod] = {}


def register_auth_method(name: str, method: AuthMethod) -> None:
    """
    Register (or replace) a login method.

    Args:
        name: Method name passed to authenticate()
        method: Callable turning credentials into a LoginRequest
    """
    if not name or not name.strip():
        raise ValueError("auth method name must not be empty")
    _AUTH_METHODS[name] = method


def auth_methods() -> list[str]:
    return sorted(_AUTH_METHODS)


def login_request(name: str, credentials: Any) -> Optional[LoginRequest]:
    """
    Build the login call for ``name``.

    Raises:
        ValidationError: Unknown method or malformed credentials
    """
    method = _AUTH_METHODS.get(name)
    if method is None:
        raise ValidationError(
            f"Unsupported auth method {name!r} (supported: {', '.join(auth_methods())})"
        )
    return method(credentials)


def _require_fields(name: str, credentials: Any, fields: tuple[str, ...]) -> dict[str, Any]:
    if not isinstance(credentials, dict):
        raise ValidationError(f"{name} credentials must be a mapping")
    missing = [f for f in fields if not credentials.get(f)]
    if missing:
        raise ValidationError(f"{name} credentials missing: {', '.join(missing)}")
    return credentials


def _token(credentials: Any) -> None:
    if not isinstance(credentials, str) or not credentials.strip():
        raise ValidationError("token credentials must be a non-empty string")
    return None


def _userpass(credentials: Any) -> LoginRequest:
    creds = _require_fields("userpass", credentials, ("username", "password"))
    return LoginRequest(
        path=f"auth/userpass/login/{creds['username']}",
        body={"password": creds["password"]},
    )


def _app_id(credentials: Any) -> LoginRequest:
    creds = _require_fields("app-id", credentials, ("app", "user"))
    return LoginRequest(
        path="auth/app-id/login",
        body={"app_id": creds["app"], "user_id": creds["user"]},
    )


def _approle(credentials: Any) -> LoginRequest:
    creds = _require_fields("approle", credentials, ("role_id", "secret_id"))
    return LoginRequest(
        path="auth/approle/login",
        body={"role_id": creds["role_id"], "secret_id": creds["secret_id"]},
    )


register_auth_method("token", _token)
register_auth_method("userpass", _userpass)
register_auth_method("app-id", _app_id)
register_auth_method("approle", _approle)
