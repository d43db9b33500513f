"""Token models and token lifecycle operations."""

from .models import AuthToken, TokenInfo, TokenOptions
from .manager import TokenManager

__all__ = ["AuthToken", "TokenInfo", "TokenManager", "TokenOptions"]
