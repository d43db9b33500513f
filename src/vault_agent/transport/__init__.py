"""Transport backends for the secret-management service."""

from .base import LeaseInfo, Transport, VaultResponse, call, parse_response
from .http import HttpTransport
from .mock import MockTransport

__all__ = [
    "HttpTransport",
    "LeaseInfo",
    "MockTransport",
    "Transport",
    "VaultResponse",
    "call",
    "parse_response",
]
