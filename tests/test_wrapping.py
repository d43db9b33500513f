"""Unit tests for WrappingClient."""

import asyncio

import pytest

from vault_agent.errors import (
    AlreadyUnwrappedError,
    ExpiredError,
    NotFoundError,
    TransportError,
    ValidationError,
)


@pytest.mark.asyncio
async def test_wrap_uses_default_ttl(root_client):
    wrapped = await root_client.wrap({"api_key": "k"})

    assert wrapped.ttl == 300
    assert wrapped.creation_path == "sys/wrapping/wrap"
    assert wrapped.token not in repr(wrapped)


@pytest.mark.asyncio
async def test_wrap_with_explicit_ttl(root_client):
    wrapped = await root_client.wrap({"api_key": "k"}, ttl="1m")
    assert wrapped.ttl == 60


@pytest.mark.asyncio
@pytest.mark.parametrize("data,ttl", [(["x"], None), ({1: "x"}, None), ({"k": "v"}, 0), ({"k": "v"}, "soon")])
async def test_wrap_rejects_bad_input(root_client, mock_transport, data, ttl):
    before = len(mock_transport.requests)
    with pytest.raises(ValidationError):
        await root_client.wrap(data, ttl)
    assert len(mock_transport.requests) == before


@pytest.mark.asyncio
async def test_unwrap_is_exactly_once(root_client):
    wrapped = await root_client.wrap({"api_key": "k"})

    assert await root_client.unwrap(wrapped.token) == {"api_key": "k"}
    with pytest.raises(AlreadyUnwrappedError):
        await root_client.unwrap(wrapped.token)


@pytest.mark.asyncio
async def test_unwrap_failures_are_distinct(root_client, clock):
    with pytest.raises(NotFoundError):
        await root_client.unwrap("w.never-issued")

    wrapped = await root_client.wrap({"k": "v"}, ttl=30)
    clock.advance(31)
    with pytest.raises(ExpiredError):
        await root_client.unwrap(wrapped.token)


@pytest.mark.asyncio
async def test_concurrent_unwrap_single_winner(root_client, mock_transport):
    """Concurrent unwraps of one token: one payload, every other attempt AlreadyUnwrapped."""
    wrapped = await root_client.wrap({"api_key": "k"})
    mock_transport.delay = 0.01

    results = await asyncio.gather(
        *(root_client.unwrap(wrapped.token) for _ in range(5)), return_exceptions=True
    )

    successes = [r for r in results if isinstance(r, dict)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert successes == [{"api_key": "k"}]
    assert len(failures) == 4
    assert all(isinstance(f, AlreadyUnwrappedError) for f in failures)
    assert mock_transport.calls(path="sys/wrapping/unwrap") == 1


@pytest.mark.asyncio
async def test_failed_unwrap_releases_claim(root_client, mock_transport):
    """A transport failure does not burn the wrap token locally."""
    wrapped = await root_client.wrap({"api_key": "k"})
    mock_transport.fail("sys/wrapping/unwrap", TransportError("connection reset"))

    with pytest.raises(TransportError):
        await root_client.unwrap(wrapped.token)
    assert await root_client.unwrap(wrapped.token) == {"api_key": "k"}


@pytest.mark.asyncio
async def test_unwrap_empty_token(root_client):
    with pytest.raises(ValidationError):
        await root_client.unwrap("")
