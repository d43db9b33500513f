"""Secret read/write operations."""

from .client import SecretClient
from .models import ReadOptions, Secret

__all__ = ["ReadOptions", "Secret", "SecretClient"]
