"""Tests for duration parsing and token masking helpers."""

import pytest

from vault_agent.errors import ValidationError
from vault_agent.utils import format_duration, mask_token, parse_duration


@pytest.mark.parametrize(
    "value,expected",
    [
        (0, 0),
        (300, 300),
        ("300", 300),
        ("45s", 45),
        ("30m", 1800),
        ("1h", 3600),
        ("1h30m", 5400),
        ("2h0m15s", 7215),
        (" 10M ", 600),
    ],
)
def test_parse_duration_accepts_seconds_and_go_style(value, expected):
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", [-1, "", "abc", "1d", "10x", "1h 30m", "m5", True, 1.5, None])
def test_parse_duration_rejects_invalid_values(value):
    with pytest.raises(ValidationError):
        parse_duration(value)


def test_format_duration():
    assert format_duration(300) == "300s"
    assert format_duration(0) == "0s"


def test_mask_token_never_reveals_full_value():
    """Only a short prefix survives masking."""
    token = "s.abcdefghijklmnopqrstuvwx"
    masked = mask_token(token)
    assert masked == "s.ab****"
    assert token not in masked


def test_mask_token_short_and_missing_values():
    assert mask_token("root") == "****"
    assert mask_token(None) == "<none>"
    assert mask_token("") == "<none>"
