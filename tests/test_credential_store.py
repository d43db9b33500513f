"""Tests for the CredentialStore single-writer token holder."""

import asyncio

import pytest

from vault_agent.auth import CredentialStore
from vault_agent.errors import AuthenticationError
from vault_agent.tokens import AuthToken


def make_token(accessor: str, ttl: int = 3600) -> AuthToken:
    return AuthToken(
        client_token=f"s.{accessor}-secret",
        accessor=accessor,
        policies=("default",),
        lease_duration=ttl,
        renewable=True,
        issued_at=100.0,
    )


def test_require_without_token_raises():
    store = CredentialStore()
    assert store.current is None
    with pytest.raises(AuthenticationError):
        store.require()


@pytest.mark.asyncio
async def test_swap_returns_previous_and_keeps_old_snapshot_intact():
    """Readers holding the old snapshot keep a complete, unchanged token."""
    first, second = make_token("a"), make_token("b")
    store = CredentialStore(first)

    held = store.require()
    previous = await store.swap(second)

    assert previous is first
    assert held is first
    assert held.accessor == "a"
    assert store.require() is second


@pytest.mark.asyncio
async def test_refresh_only_applies_to_matching_accessor():
    store = CredentialStore(make_token("a"))

    assert await store.refresh("other", 10, True, 200.0) is False
    assert store.require().lease_duration == 3600

    assert await store.refresh("a", 7200, False, 200.0) is True
    token = store.require()
    assert token.lease_duration == 7200
    assert token.renewable is False
    assert token.issued_at == 200.0


@pytest.mark.asyncio
async def test_clear_with_accessor_filter():
    store = CredentialStore(make_token("a"))

    assert await store.clear({"b", "c"}) is False
    assert store.current is not None
    assert await store.clear({"a"}) is True
    assert store.current is None
    assert await store.clear() is False


@pytest.mark.asyncio
async def test_concurrent_swaps_never_expose_partial_state():
    store = CredentialStore(make_token("start"))
    tokens = [make_token(f"t{i}") for i in range(20)]

    async def reader():
        for _ in range(50):
            token = store.require()
            assert token.client_token == f"s.{token.accessor}-secret"
            await asyncio.sleep(0)

    await asyncio.gather(reader(), *(store.swap(t) for t in tokens), reader())
    assert store.require() in tokens


def test_token_repr_hides_client_token():
    token = make_token("visible")
    assert "s.visible-secret" not in repr(token)
    assert "visible" in repr(token)
