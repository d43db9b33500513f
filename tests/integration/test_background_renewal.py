"""
Integration Tests: Background Renewal Loop

Runs the real renewal loop on the wall clock with short-lived leases.
"""

import asyncio

import pytest

from vault_agent import LeaseState, ReadOptions, RenewalPolicy, VaultClient
from vault_agent.transport import MockTransport

pytestmark = pytest.mark.integration


@pytest.mark.asyncio
async def test_loop_renews_short_lease_before_expiry():
    transport = MockTransport(default_lease_ttl=1)
    events = []
    renewed = asyncio.Event()

    async def on_event(event):
        events.append(event)
        renewed.set()

    async with VaultClient(
        transport, policy=RenewalPolicy(poll_interval=0.05), shutdown_timeout=1
    ) as client:
        await client.authenticate("token", "root")
        secret = await client.read_secret("db/creds/app", ReadOptions(renew=True, callback=on_event))

        await asyncio.wait_for(renewed.wait(), timeout=3)

        assert events[0].state is LeaseState.ACTIVE
        assert events[0].lease_id == secret.lease_id
        assert secret.lease_id in client.list_leases()

    assert not client.running
    assert transport.closed
