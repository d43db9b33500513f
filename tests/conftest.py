"""Pytest fixtures and test utilities for the vault-agent test suite."""

import pytest

from vault_agent.client import VaultClient
from vault_agent.leases import RenewalPolicy
from vault_agent.transport import MockTransport

START_TIME = 1_700_000_000.0


class FakeClock:
    """
    Manually advanced clock.

    Passed as ``clock=`` to the client and the mock server so lease math is
    deterministic; tests advance it and then drive the scheduler with tick().
    """

    def __init__(self, start: float = START_TIME):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


# ============================================================================
# SERVER FIXTURES
# ============================================================================


@pytest.fixture
def clock():
    """Provide a fake clock starting at a fixed epoch."""
    return FakeClock()


@pytest.fixture
def mock_transport(clock):
    """
    Provide an in-memory server with a small data set.

    Contents:
        - root token "root"
        - KV secrets under secret/app
        - dynamic credentials under db/creds/<role>
        - userpass user alice (policy "app"), app-id and approle logins
    """
    return MockTransport(
        clock=clock,
        root_token="root",
        secrets={
            "secret/app/config": {"username": "app", "password": "s3cret"},
            "secret/app/feature": {"enabled": "true"},
            "secret/other": {"key": "value"},
        },
        users={"alice": {"password": "wonderland", "policies": ["app"], "ttl": 3600}},
        app_ids={"billing": {"users": ["worker-1"], "policies": ["app"]}},
        approles={"role-123": {"secret_id": "secret-456", "policies": ["app"]}},
        policies={
            "app": {
                "secret/app": ["read", "list", "create", "delete"],
                "db/creds": ["read"],
            }
        },
    )


# ============================================================================
# CLIENT FIXTURES
# ============================================================================


@pytest.fixture
def policy():
    """Renewal policy with the documented defaults and a short poll interval."""
    return RenewalPolicy(poll_interval=0.05)


@pytest.fixture
async def client(mock_transport, clock, policy):
    """
    Provide an unauthenticated client over the mock server.

    The renewal loop is not started; tests drive it with scheduler.tick().

    Cleanup:
        Closes the client (stops the loop, closes the transport)
    """
    vault = VaultClient(
        mock_transport,
        policy=policy,
        request_timeout=1.0,
        shutdown_timeout=1.0,
        clock=clock,
    )
    try:
        yield vault
    finally:
        await vault.close()


@pytest.fixture
async def root_client(client):
    """Provide a client authenticated with the root token."""
    await client.authenticate("token", "root")
    return client


@pytest.fixture
async def app_client(client):
    """Provide a client logged in as alice (policies: app, default)."""
    await client.authenticate("userpass", {"username": "alice", "password": "wonderland"})
    return client


class Recorder:
    """Lease callback that records every event it receives."""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    @property
    def states(self):
        return [event.state for event in self.events]


@pytest.fixture
def recorder():
    """Provide a fresh lease-event recorder."""
    return Recorder()
