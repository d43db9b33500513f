"""Tests for the vault-agent command line."""

import json
import sys

import pytest
from loguru import logger

from vault_agent.cli import parse_pairs, run
from vault_agent.config import Config
from vault_agent.errors import ValidationError


@pytest.fixture(autouse=True)
def isolated_cli(monkeypatch):
    """Ignore any VAULT_TOKEN from the environment and restore logging afterwards."""
    monkeypatch.setattr(Config, "VAULT_TOKEN", None)
    yield
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture
def fixture_uri(tmp_path):
    fixture = tmp_path / "dev.yaml"
    fixture.write_text(
        "root_token: dev-root\n"
        "secrets:\n"
        "  secret/app/config:\n"
        "    password: hunter2\n"
        "  secret/app/feature:\n"
        "    enabled: 'true'\n"
    )
    return f"mock:{fixture}"


def output(capsys):
    return json.loads(capsys.readouterr().out)


def test_parse_pairs():
    assert parse_pairs(["a=1", "b=x=y", "c="]) == {"a": "1", "b": "x=y", "c": ""}
    with pytest.raises(ValidationError):
        parse_pairs(["novalue"])
    with pytest.raises(ValidationError):
        parse_pairs(["=value"])


def test_status(capsys):
    assert run(["--uri", "mock:", "status"]) == 0
    assert output(capsys)["initialized"] is True


def test_list_and_read_with_fixture_root_token(capsys, fixture_uri):
    assert run(["--uri", fixture_uri, "list", "secret/app"]) == 0
    assert output(capsys) == ["config", "feature"]

    assert run(["--uri", fixture_uri, "read", "secret/app/config"]) == 0
    assert output(capsys)["data"] == {"password": "hunter2"}


def test_write_and_delete(capsys, fixture_uri):
    assert run(["--uri", fixture_uri, "write", "secret/app/new", "k=v"]) == 0
    assert output(capsys) == {"ok": True}

    assert run(["--uri", fixture_uri, "delete", "secret/app/missing"]) == 0
    assert output(capsys) == {"ok": True}


def test_token_lookup_never_prints_token_id(capsys, fixture_uri):
    assert run(["--uri", fixture_uri, "--token", "dev-root", "token-lookup"]) == 0
    captured = capsys.readouterr()
    info = json.loads(captured.out)
    assert "root" in info["policies"]
    assert "dev-root" not in captured.out


def test_wrap_prints_wrap_info(capsys):
    assert run(["--uri", "mock:", "wrap", "a=1", "--ttl", "2m"]) == 0
    info = output(capsys)
    assert info["ttl"] == 120
    assert info["token"]


def test_errors_exit_nonzero_with_json(capsys, fixture_uri):
    assert run(["--uri", fixture_uri, "read", "secret/app/missing"]) == 1
    assert output(capsys)["error"]["kind"] == "not_found"

    assert run(["--uri", fixture_uri, "--token", "wrong", "read", "secret/app/config"]) == 1
    assert output(capsys)["error"]["kind"] == "authentication"

    assert run(["--uri", "ftp://nowhere", "status"]) == 1
    assert output(capsys)["error"]["kind"] == "unsupported_scheme"


def test_unwrap_unknown_token_fails(capsys):
    assert run(["--uri", "mock:", "unwrap", "w.unknown"]) == 1
    assert output(capsys)["error"]["kind"] == "not_found"
