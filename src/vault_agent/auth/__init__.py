"""Credential store and authentication."""

from .store import CredentialStore
from .methods import LoginRequest, auth_methods, login_request, register_auth_method
from .authenticator import Authenticator

__all__ = [
    "Authenticator",
    "CredentialStore",
    "LoginRequest",
    "auth_methods",
    "login_request",
    "register_auth_method",
]
