"""
Unit tests for TokenManager.

Covers:
- create_token(): inheritance, policy subset checks, orphans, wrapping
- lookup_token() / lookup_accessor()
- renew_token(): local non-renewable/expired checks, increments
- revoke_token() / revoke_accessor(): idempotence and local cascade
"""

import pytest

from vault_agent.errors import (
    AuthenticationError,
    ExpiredError,
    NotFoundError,
    NotRenewableError,
    PolicyViolationError,
    ValidationError,
)
from vault_agent.leases import LeaseState, token_lease_id
from vault_agent.secrets import ReadOptions
from vault_agent.tokens import AuthToken, TokenOptions
from vault_agent.wrapping import WrapInfo


# ============================================================================
# TokenOptions
# ============================================================================


def test_token_options_body_renders_durations():
    body = TokenOptions(
        policies=["app"], ttl="1h", explicit_max_ttl=7200, num_uses=3, renewable=False
    ).validate().to_body()
    assert body == {
        "policies": ["app"],
        "ttl": "3600s",
        "explicit_max_ttl": "7200s",
        "num_uses": 3,
        "renewable": False,
    }


@pytest.mark.parametrize(
    "opts",
    [
        TokenOptions(num_uses=-1),
        TokenOptions(ttl="forever"),
        TokenOptions(policies="app"),
        TokenOptions(policies=[""]),
        TokenOptions(meta={"k": 1}),
        TokenOptions(wrap_ttl=0),
        TokenOptions(id="  "),
    ],
)
def test_token_options_validation(opts):
    with pytest.raises(ValidationError):
        opts.validate()


# ============================================================================
# create_token
# ============================================================================


@pytest.mark.asyncio
async def test_create_token_requires_authentication(client, mock_transport):
    with pytest.raises(AuthenticationError):
        await client.create_token()
    assert mock_transport.requests == []


@pytest.mark.asyncio
async def test_create_child_token_is_tracked(root_client):
    """A created token gets a lease linked to its parent's accessor."""
    parent = root_client.token
    token = await root_client.create_token(TokenOptions(policies=["app"], ttl="1h"))

    assert isinstance(token, AuthToken)
    assert token.lease_duration == 3600
    assert token.renewable is True
    assert token.parent_accessor == parent.accessor
    assert set(token.policies) == {"app", "default"}

    lease = root_client.registry.get(token_lease_id(token.accessor))
    assert lease.parent_accessor == parent.accessor
    assert lease.auto_renew is True
    assert token_lease_id(token.accessor) in root_client.list_leases()


@pytest.mark.asyncio
async def test_policy_superset_is_rejected_locally(app_client, mock_transport):
    """A non-root caller cannot request policies it does not hold."""
    with pytest.raises(PolicyViolationError):
        await app_client.create_token(TokenOptions(policies=["app", "admin"]))
    assert mock_transport.calls(path="auth/token/create") == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("opts", [TokenOptions(id="custom-id"), TokenOptions(no_parent=True)])
async def test_root_only_options_are_rejected_for_non_root(app_client, mock_transport, opts):
    with pytest.raises(PolicyViolationError):
        await app_client.create_token(opts)
    assert mock_transport.calls(path="auth/token/create") == 0


@pytest.mark.asyncio
async def test_non_root_subset_is_allowed(app_client):
    token = await app_client.create_token(TokenOptions(policies=["app"], ttl=600))
    assert "app" in token.policies
    assert token.parent_accessor == app_client.token.accessor


@pytest.mark.asyncio
async def test_root_can_create_orphan(root_client):
    token = await root_client.create_token(TokenOptions(no_parent=True, policies=["app"]))
    assert token.parent_accessor is None

    info = await root_client.lookup_token(token.client_token)
    assert info.orphan is True


@pytest.mark.asyncio
async def test_wrapped_create_returns_wrap_info_and_is_not_tracked(root_client):
    before = root_client.list_leases()
    wrapped = await root_client.create_token(TokenOptions(policies=["app"], wrap_ttl="5m"))

    assert isinstance(wrapped, WrapInfo)
    assert wrapped.ttl == 300
    assert root_client.list_leases() == before

    auth = await root_client.unwrap(wrapped.token)
    assert auth["client_token"]
    assert "app" in auth["policies"]


# ============================================================================
# lookup
# ============================================================================


@pytest.mark.asyncio
async def test_lookup_self_and_other(root_client):
    me = await root_client.lookup_token()
    assert "root" in me.policies

    token = await root_client.create_token(TokenOptions(policies=["app"], display_name="svc"))
    info = await root_client.lookup_token(token.client_token)
    assert info.accessor == token.accessor
    assert info.display_name == "token-svc"


@pytest.mark.asyncio
async def test_lookup_accessor_never_exposes_token_id(root_client):
    token = await root_client.create_token(TokenOptions(policies=["app"]))
    info = await root_client.lookup_accessor(token.accessor)

    assert info.accessor == token.accessor
    assert info.id is None
    assert token.client_token not in repr(info)
    assert "id" not in info.to_dict()


@pytest.mark.asyncio
async def test_lookup_invalid_token_raises_not_found(root_client):
    with pytest.raises(NotFoundError):
        await root_client.lookup_token("s.does-not-exist")
    with pytest.raises(NotFoundError):
        await root_client.lookup_accessor("no-such-accessor")


# ============================================================================
# renew
# ============================================================================


@pytest.mark.asyncio
async def test_renew_token_with_increment(root_client, clock):
    token = await root_client.create_token(TokenOptions(policies=["app"], ttl=600))
    clock.advance(300)

    renewed = await root_client.renew_token(token.client_token, increment="20m")

    assert renewed.lease_duration == 1200
    lease = root_client.registry.get(token_lease_id(token.accessor))
    assert lease.lease_duration == 1200
    assert lease.issued_at == clock()


@pytest.mark.asyncio
async def test_renew_self(app_client, clock):
    clock.advance(1000)
    renewed = await app_client.renew_token()
    assert renewed.lease_duration == 3600
    assert app_client.token.issued_at == clock()


@pytest.mark.asyncio
async def test_renew_non_renewable_token_fails_locally(root_client, mock_transport):
    """The renewable flag is checked before any transport call."""
    token = await root_client.create_token(TokenOptions(policies=["app"], renewable=False, ttl=600))

    with pytest.raises(NotRenewableError):
        await root_client.renew_token(token.client_token)
    assert mock_transport.calls(path="auth/token/renew") == 0


@pytest.mark.asyncio
async def test_renew_non_renewable_root_fails_locally(root_client, mock_transport):
    with pytest.raises(NotRenewableError):
        await root_client.renew_token()
    assert mock_transport.calls(path="auth/token/renew-self") == 0


@pytest.mark.asyncio
async def test_renew_expired_token_fails_locally(root_client, mock_transport, clock):
    token = await root_client.create_token(TokenOptions(policies=["app"], ttl=60))
    clock.advance(61)

    with pytest.raises(ExpiredError):
        await root_client.renew_token(token.client_token)
    assert mock_transport.calls(path="auth/token/renew") == 0


# ============================================================================
# revoke
# ============================================================================


@pytest.mark.asyncio
async def test_revoke_token_is_idempotent(root_client):
    token = await root_client.create_token(TokenOptions(policies=["app"]))

    await root_client.revoke_token(token.client_token)
    await root_client.revoke_token(token.client_token)

    assert token_lease_id(token.accessor) not in root_client.registry
    with pytest.raises(NotFoundError):
        await root_client.lookup_token(token.client_token)


@pytest.mark.asyncio
async def test_revoke_self_clears_store_and_owned_leases(app_client, recorder):
    secret = await app_client.read_secret(
        "db/creds/app", ReadOptions(renew=True, callback=recorder)
    )

    await app_client.revoke_token()
    await app_client.scheduler.flush()

    assert app_client.token is None
    assert app_client.list_leases() == []
    assert recorder.states == [LeaseState.REVOKED]
    assert recorder.events[0].lease_id == secret.lease_id


@pytest.mark.asyncio
async def test_revoke_without_token_is_noop(client, mock_transport):
    await client.revoke_token()
    await client.revoke_accessor()
    assert mock_transport.requests == []


@pytest.mark.asyncio
async def test_revoke_accessor_cascades(root_client):
    token = await root_client.create_token(TokenOptions(policies=["app"]))

    await root_client.revoke_accessor(token.accessor)

    assert token_lease_id(token.accessor) not in root_client.registry
    with pytest.raises(NotFoundError):
        await root_client.lookup_accessor(token.accessor)
    assert root_client.token is not None

    # Already gone on the server: still succeeds
    await root_client.revoke_accessor(token.accessor)
