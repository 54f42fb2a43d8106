"""Unit tests for environment-driven configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from outlook_mcp.utils.environment import (
    DEFAULT_AUTH_SERVER_URL,
    DEFAULT_REFRESH_BUFFER_MS,
    DEFAULT_SCOPES,
    AuthSettings,
    create_auth_config,
    is_debug_logging,
    parse_scopes,
)


def test_defaults_without_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setenv("HOME", str(tmp_path))
    settings = create_auth_config(environ={})

    assert settings.client_id == ""
    assert settings.scopes == DEFAULT_SCOPES
    assert settings.refresh_buffer_ms == DEFAULT_REFRESH_BUFFER_MS == 1_200_000
    assert settings.auth_server_url == DEFAULT_AUTH_SERVER_URL
    assert settings.token_store_path == tmp_path / ".outlook-mcp-tokens.json"
    assert settings.has_client_credentials() is False


def test_environment_overrides():
    settings = create_auth_config(
        environ={
            "OUTLOOK_CLIENT_ID": "cid",
            "OUTLOOK_CLIENT_SECRET": "secret",
            "OUTLOOK_SCOPES": "offline_access  Mail.Read\nUser.Read",
            "OUTLOOK_AUTH_SERVER_URL": "http://127.0.0.1:4444/",
            "OUTLOOK_TOKEN_STORE_PATH": "/var/lib/outlook/tokens.json",
            "OUTLOOK_TOKEN_REFRESH_BUFFER_MS": "300000",
            "OUTLOOK_HTTP_TIMEOUT": "12.5",
            "OUTLOOK_STATE_TTL_SECONDS": "120",
        }
    )

    assert settings.has_client_credentials() is True
    assert settings.scopes == ("offline_access", "Mail.Read", "User.Read")
    assert settings.scope_string == "offline_access Mail.Read User.Read"
    assert settings.auth_server_url == "http://127.0.0.1:4444"
    assert settings.token_store_path == Path("/var/lib/outlook/tokens.json")
    assert settings.refresh_buffer_ms == 300_000
    assert settings.http_timeout == 12.5
    assert settings.state_ttl_seconds == 120


@pytest.mark.parametrize("raw", ["", "   ", "\n\t"])
def test_blank_scopes_fall_back_to_defaults(raw: str):
    assert create_auth_config(environ={"OUTLOOK_SCOPES": raw}).scopes == DEFAULT_SCOPES


def test_non_numeric_values_fall_back(caplog: pytest.LogCaptureFixture):
    settings = create_auth_config(
        environ={"OUTLOOK_TOKEN_REFRESH_BUFFER_MS": "soon", "OUTLOOK_HTTP_TIMEOUT": "fast"}
    )

    assert settings.refresh_buffer_ms == DEFAULT_REFRESH_BUFFER_MS
    assert settings.http_timeout == 30.0
    assert "OUTLOOK_TOKEN_REFRESH_BUFFER_MS" in caplog.text


def test_overrides_layer_over_given_defaults():
    base = AuthSettings(client_id="from-defaults", refresh_buffer_ms=1)
    settings = create_auth_config(base, environ={})

    assert settings.client_id == "from-defaults"
    assert settings.refresh_buffer_ms == 1


def test_parse_scopes():
    assert parse_scopes(None) == ()
    assert parse_scopes(" a  b ") == ("a", "b")


@pytest.mark.parametrize(
    "value, expected", [("true", True), ("1", True), ("YES", True), ("false", False), ("", False)]
)
def test_is_debug_logging(value: str, expected: bool):
    assert is_debug_logging({"OUTLOOK_MCP_DEBUG": value}) is expected
