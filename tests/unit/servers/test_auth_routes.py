"""Unit tests for the /auth, /auth/callback and /token-status endpoints."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from pathlib import Path
from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from outlook_mcp.auth.errors import TokenRequestError
from outlook_mcp.auth.service import AuthService
from outlook_mcp.servers.auth import create_auth_app
from outlook_mcp.servers.main import create_server
from outlook_mcp.utils.environment import AuthSettings
from tests.conftest import AUTH_ENDPOINT, NOW, NOW_MS, fake_clock_factory, write_tokens


# --------------------------------------------------------------------------- #
# Fixtures                                                                    #
# --------------------------------------------------------------------------- #
def _token_endpoint(request: httpx.Request) -> httpx.Response:
    form = parse_qs(request.content.decode())
    if form["code"][0] == "bad_code":
        return httpx.Response(
            400, json={"error": "invalid_grant", "error_description": "Bad auth code"}
        )
    return httpx.Response(
        200, json={"access_token": "access-1", "refresh_token": "refresh-1", "expires_in": 3600}
    )


@pytest.fixture()
def auth(settings: AuthSettings) -> AuthService:
    return AuthService(
        settings,
        clock=fake_clock_factory(NOW),
        transport=httpx.MockTransport(_token_endpoint),
    )


@pytest.fixture()
async def client(auth: AuthService):
    """Async HTTP client bound to the standalone auth app."""
    transport = httpx.ASGITransport(app=create_auth_app(auth))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def _issued_state(auth: AuthService) -> str:
    return parse_qs(urlsplit(auth.build_authorize_url()).query)["state"][0]


# --------------------------------------------------------------------------- #
# GET /auth                                                                   #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_auth_redirects_to_provider(client: httpx.AsyncClient, auth: AuthService):
    resp = await client.get("/auth")

    assert resp.status_code == 302
    location = urlsplit(resp.headers["location"])
    assert f"{location.scheme}://{location.netloc}{location.path}" == AUTH_ENDPOINT
    query = {k: v[0] for k, v in parse_qs(location.query).items()}
    assert query["client_id"] == "client-123"
    assert query["response_type"] == "code"
    assert query["response_mode"] == "query"
    assert auth.verify_state(query["state"])
    assert resp.headers["X-Correlation-ID"]


@pytest.mark.anyio
async def test_auth_without_client_id(settings: AuthSettings):
    auth = AuthService(replace(settings, client_id=""), clock=fake_clock_factory(NOW))
    transport = httpx.ASGITransport(app=create_auth_app(auth))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        resp = await ac.get("/auth")

    assert resp.status_code == 500
    assert "Client ID is not configured" in resp.text


# --------------------------------------------------------------------------- #
# GET /auth/callback                                                          #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_callback_without_state_never_exchanges(
    client: httpx.AsyncClient, auth: AuthService
):
    with patch.object(auth, "exchange_code_for_tokens", new=AsyncMock()) as exchange:
        resp = await client.get("/auth/callback", params={"code": "abc"})

    assert resp.status_code == 400
    assert "Missing State Parameter" in resp.text
    exchange.assert_not_awaited()


@pytest.mark.anyio
async def test_callback_with_forged_state(client: httpx.AsyncClient, auth: AuthService):
    with patch.object(auth, "exchange_code_for_tokens", new=AsyncMock()) as exchange:
        resp = await client.get("/auth/callback", params={"code": "abc", "state": "forged"})

    assert resp.status_code == 400
    assert "Invalid State Parameter" in resp.text
    exchange.assert_not_awaited()


@pytest.mark.anyio
async def test_callback_reports_provider_error(client: httpx.AsyncClient, auth: AuthService):
    resp = await client.get(
        "/auth/callback",
        params={
            "state": _issued_state(auth),
            "error": "access_denied",
            "error_description": "<b>User declined</b>",
        },
    )

    assert resp.status_code == 400
    assert "Error: access_denied" in resp.text
    # Provider text is escaped before rendering.
    assert "&lt;b&gt;User declined&lt;/b&gt;" in resp.text


@pytest.mark.anyio
async def test_callback_without_code(client: httpx.AsyncClient, auth: AuthService):
    resp = await client.get("/auth/callback", params={"state": _issued_state(auth)})

    assert resp.status_code == 400
    assert "Missing Authorization Code" in resp.text


@pytest.mark.anyio
async def test_callback_exchanges_code(
    client: httpx.AsyncClient, auth: AuthService, token_path: Path
):
    resp = await client.get(
        "/auth/callback", params={"code": "good_code", "state": _issued_state(auth)}
    )

    assert resp.status_code == 200
    assert "Authentication Successful" in resp.text
    assert json.loads(token_path.read_text(encoding="utf-8"))["access_token"] == "access-1"


@pytest.mark.anyio
async def test_callback_exchange_failure(client: httpx.AsyncClient, auth: AuthService):
    resp = await client.get(
        "/auth/callback", params={"code": "bad_code", "state": _issued_state(auth)}
    )

    assert resp.status_code == 500
    assert "Token Exchange Failed" in resp.text
    assert "Error: Bad auth code" in resp.text


# --------------------------------------------------------------------------- #
# GET /token-status                                                           #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_token_status_with_valid_token(client: httpx.AsyncClient, token_path: Path):
    write_tokens(token_path, {"access_token": "a", "expires_at": NOW_MS + 3_600_000})

    resp = await client.get("/token-status")

    assert resp.status_code == 200
    assert "Access token is valid. Expires at:" in resp.text


@pytest.mark.anyio
async def test_token_status_without_token(client: httpx.AsyncClient):
    resp = await client.get("/token-status")

    assert resp.status_code == 200
    assert "No valid access token found. Please authenticate." in resp.text
    assert "No saved tokens were found" in resp.text


@pytest.mark.anyio
async def test_token_status_on_unexpected_error(client: httpx.AsyncClient, auth: AuthService):
    failing = AsyncMock(side_effect=TokenRequestError("provider down"))
    with patch.object(auth, "get_access_token", new=failing):
        resp = await client.get("/token-status")

    assert resp.status_code == 500
    assert "Error checking token status: provider down" in resp.text


# --------------------------------------------------------------------------- #
# Routes mounted on the FastMCP HTTP app                                      #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_mcp_http_app_tags_auth_routes_with_correlation_id(
    auth: AuthService, caplog: pytest.LogCaptureFixture
):
    app = create_server(auth=auth).http_app()
    transport = httpx.ASGITransport(app=app)

    with caplog.at_level(logging.INFO, logger="outlook-mcp.auth.routes"):
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
            resp = await ac.get("/auth", headers={"X-Correlation-ID": "corr-42"})

    assert resp.status_code == 302
    assert resp.headers["X-Correlation-ID"] == "corr-42"
    record = next(r for r in caplog.records if r.name == "outlook-mcp.auth.routes")
    assert record.correlation_id == "corr-42"
    assert record.operation == "authorize"
