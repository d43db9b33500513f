"""Duration parsing and token masking helpers."""

import re
from typing import Union

from .errors import ValidationError

_DURATION_PART = re.compile(r"(\d+)([hms])")
_UNIT_SECONDS = {"h": 3600, "m": 60, "s": 1}

Duration = Union[int, str]


def parse_duration(value: Duration) -> int:
    """
    Convert a duration to whole seconds.

    Accepts integer seconds, digit strings ("300") and Go-style strings where
    hour is the largest unit ("1h", "90m", "1h30m15s").

    Args:
        value: Duration to convert

    Returns:
        Number of seconds (>= 0)

    Raises:
        ValidationError: If the value cannot be parsed or is negative
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid duration: {value!r}")

    if isinstance(value, int):
        if value < 0:
            raise ValidationError(f"Duration must be >= 0, got {value}")
        return value

    if not isinstance(value, str):
        raise ValidationError(f"Invalid duration type: {type(value).__name__}")

    text = value.strip().lower()
    if text.isdigit():
        return int(text)

    parts = _DURATION_PART.findall(text)
    if not parts or "".join(n + u for n, u in parts) != text:
        raise ValidationError(f"Invalid duration: {value!r}")

    return sum(int(amount) * _UNIT_SECONDS[unit] for amount, unit in parts)


def format_duration(seconds: int) -> str:
    """Render seconds the way the server accepts them ("300s")."""
    return f"{int(seconds)}s"


def mask_token(token: str | None) -> str:
    """
    Mask a token id for display.

    Only the first four characters are kept so two tokens can be told apart
    in output without the value being usable.
    """
    if not token:
        return "<none>"
    if len(token) <= 8:
        return "****"
    return f"{token[:4]}****"
