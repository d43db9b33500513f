"""Tests for the error taxonomy."""

import pytest

from vault_agent.errors import (
    ERROR_KINDS,
    AlreadyUnwrappedError,
    NotFoundError,
    PermissionDeniedError,
    TransportError,
    UnsupportedSchemeError,
    ValidationError,
    VaultError,
    error_for_kind,
)


def test_every_kind_maps_to_a_distinct_class():
    assert len(ERROR_KINDS) == len(set(ERROR_KINDS.values()))
    for kind, cls in ERROR_KINDS.items():
        assert issubclass(cls, VaultError)
        assert cls.kind == kind


def test_error_for_kind_builds_typed_error():
    error = error_for_kind("not_found", "no such path", http_status=404)
    assert isinstance(error, NotFoundError)
    assert error.message == "no such path"
    assert error.http_status == 404


def test_error_for_unknown_kind_falls_back_to_base():
    error = error_for_kind("mystery", "??")
    assert type(error) is VaultError


def test_already_unwrapped_is_distinct_from_not_found():
    """A replayed wrap token must not be confused with an unknown one."""
    assert not issubclass(AlreadyUnwrappedError, NotFoundError)
    assert not issubclass(NotFoundError, AlreadyUnwrappedError)


def test_value_error_compatibility():
    """Input errors are also ValueErrors; permission errors do not shadow the builtin."""
    assert issubclass(ValidationError, ValueError)
    assert issubclass(UnsupportedSchemeError, ValueError)
    assert not issubclass(PermissionDeniedError, PermissionError)
    assert not issubclass(TransportError, ValueError)


def test_to_dict():
    error = TransportError("timed out", http_status=503, errors=["upstream"])
    assert error.to_dict() == {
        "kind": "transport",
        "message": "timed out",
        "http_status": 503,
        "errors": ["upstream"],
    }


def test_errors_are_raisable_and_catchable_as_base():
    with pytest.raises(VaultError):
        raise PermissionDeniedError("denied", http_status=403)
