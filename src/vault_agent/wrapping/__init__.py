"""Response wrapping."""

from .models import WrapInfo
from .client import WrappingClient

__all__ = ["WrapInfo", "WrappingClient"]
