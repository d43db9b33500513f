"""Tests for client construction, scheme dispatch and lifecycle."""

import asyncio

import pytest

from vault_agent import VaultClient, new_client, register_scheme
from vault_agent import client as client_module
from vault_agent.client import schemes
from vault_agent.errors import TransportError, UnsupportedSchemeError
from vault_agent.transport import HttpTransport, MockTransport


def test_builtin_schemes():
    assert {"http", "https", "mock"} <= set(schemes())


@pytest.mark.parametrize("uri", ["ftp://vault:21", "vault.example.com:8200", ""])
def test_unsupported_scheme_fails_before_construction(uri):
    with pytest.raises(UnsupportedSchemeError):
        new_client(uri)


@pytest.mark.asyncio
async def test_https_uri_builds_http_transport():
    client = new_client("https://vault.example.com:8200", request_timeout=2.0, namespace="team")
    try:
        assert isinstance(client.transport, HttpTransport)
        assert client.transport.address == "https://vault.example.com:8200"
        assert client.transport.namespace == "team"
        assert not client.running
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_mock_uri_with_and_without_fixture(tmp_path):
    plain = new_client("mock:")
    assert isinstance(plain.transport, MockTransport)
    await plain.close()

    fixture = tmp_path / "dev.yaml"
    fixture.write_text("root_token: dev-root\nsecrets:\n  secret/a:\n    k: v\n")
    client = new_client(f"mock:{fixture}")
    try:
        await client.authenticate("token", "dev-root")
        secret = await client.read_secret("secret/a")
        assert secret.data == {"k": "v"}
    finally:
        await client.close()


def test_register_custom_scheme(mock_transport):
    built = []

    def factory(uri, **settings):
        built.append(uri)
        return VaultClient(mock_transport, **settings)

    register_scheme("Memory", factory)
    try:
        client = new_client("memory://anything")
        assert built == ["memory://anything"]
        assert client.transport is mock_transport
    finally:
        client_module._SCHEMES.pop("memory", None)


@pytest.mark.asyncio
async def test_context_manager_starts_and_stops_loop(mock_transport):
    async with VaultClient(mock_transport, shutdown_timeout=1) as client:
        assert client.running
        await asyncio.sleep(0)
    assert not client.running
    assert mock_transport.closed is True

    # close() is idempotent and a closed client cannot restart
    await client.close()
    with pytest.raises(RuntimeError):
        client.start()


@pytest.mark.asyncio
async def test_clients_do_not_share_state(mock_transport, clock):
    first = VaultClient(mock_transport, clock=clock)
    second = VaultClient(mock_transport, clock=clock)

    await first.authenticate("token", "root")
    await first.read_secret("db/creds/app")

    assert second.token is None
    assert second.list_leases() == []


@pytest.mark.asyncio
async def test_request_timeout_surfaces_as_transport_error(mock_transport, clock):
    client = VaultClient(mock_transport, request_timeout=0.05, clock=clock)
    mock_transport.delay = 0.5

    with pytest.raises(TransportError, match="timed out"):
        await client.status()


def test_invalid_timeouts(mock_transport):
    with pytest.raises(ValueError):
        VaultClient(mock_transport, request_timeout=0)
    with pytest.raises(ValueError):
        VaultClient(mock_transport, shutdown_timeout=-1)
