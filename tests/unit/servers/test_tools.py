"""Unit tests for the about / authenticate / check-auth-status tools."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import httpx
import pytest
from fastmcp import Client
from fastmcp.exceptions import ToolError

from outlook_mcp.auth.errors import NeedsReauthError
from outlook_mcp.auth.service import AuthService
from outlook_mcp.servers.main import create_server
from outlook_mcp.servers.tools import (
    handle_about,
    handle_authenticate,
    handle_check_auth_status,
)
from outlook_mcp.utils.environment import AuthSettings
from outlook_mcp.utils.graph_client import GraphClient
from outlook_mcp.utils.response_helpers import is_auth_error
from tests.conftest import NOW, NOW_MS, fake_clock_factory, write_tokens


def _text(envelope: dict) -> str:
    return envelope["content"][0]["text"]


def _no_graph(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected Graph request to {request.url}")


@pytest.fixture()
def auth(settings: AuthSettings) -> AuthService:
    return AuthService(settings, clock=fake_clock_factory(NOW))


# --------------------------------------------------------------------------- #
# Handlers                                                                    #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_about():
    envelope = await handle_about()
    assert "outlook-assistant" in _text(envelope)
    assert "isError" not in envelope


@pytest.mark.anyio
async def test_authenticate_returns_auth_server_url(auth: AuthService):
    envelope = await handle_authenticate(auth)

    assert "http://localhost:3333/auth?client_id=client-123" in _text(envelope)
    assert "cleared" not in _text(envelope)


@pytest.mark.anyio
async def test_authenticate_force_clears_tokens(auth: AuthService, token_path: Path):
    write_tokens(token_path, {"access_token": "a", "expires_at": NOW_MS + 3_600_000})
    await auth.load_tokens()

    envelope = await handle_authenticate(auth, force=True)

    assert _text(envelope).startswith("Existing tokens were cleared.")
    assert not token_path.exists()
    assert auth.cache.get() is None


@pytest.mark.anyio
async def test_authenticate_without_configuration(settings: AuthSettings):
    auth = AuthService(replace(settings, client_id=""), clock=fake_clock_factory(NOW))

    envelope = await handle_authenticate(auth)

    assert envelope["isError"] is True
    assert "OUTLOOK_CLIENT_ID" in _text(envelope)


@pytest.mark.anyio
async def test_check_auth_status(auth: AuthService, token_path: Path):
    envelope = await handle_check_auth_status(auth)
    assert _text(envelope).startswith("Not authenticated: Token file not found at")

    write_tokens(token_path, {"access_token": "a", "expires_at": NOW_MS + 3_600_000})
    envelope = await handle_check_auth_status(auth)
    assert _text(envelope) == "Authenticated and ready"


@pytest.mark.anyio
async def test_check_auth_status_verify_fetches_profile(auth: AuthService, token_path: Path):
    write_tokens(token_path, {"access_token": "a", "expires_at": NOW_MS + 3_600_000})
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"displayName": "Ada", "mail": "ada@example.test"})

    graph = GraphClient(auth, transport=httpx.MockTransport(handler))

    assert _text(await handle_check_auth_status(auth, graph)) == "Authenticated and ready"
    assert seen == []

    envelope = await handle_check_auth_status(auth, graph, verify=True)
    assert _text(envelope) == "Authenticated and ready. Signed in as Ada <ada@example.test>"
    assert seen[0].url.path == "/v1.0/me"
    assert seen[0].headers["Authorization"] == "Bearer a"


@pytest.mark.anyio
async def test_check_auth_status_verify_reports_graph_failure(
    auth: AuthService, token_path: Path
):
    write_tokens(token_path, {"access_token": "a", "expires_at": NOW_MS + 3_600_000})
    graph = GraphClient(
        auth, transport=httpx.MockTransport(lambda request: httpx.Response(503))
    )

    envelope = await handle_check_auth_status(auth, graph, verify=True)
    assert envelope["isError"] is True
    assert "Microsoft Graph request failed" in _text(envelope)


@pytest.mark.anyio
async def test_check_auth_status_verify_without_token_skips_graph(auth: AuthService):
    graph = GraphClient(auth, transport=httpx.MockTransport(_no_graph))

    envelope = await handle_check_auth_status(auth, graph, verify=True)
    assert _text(envelope).startswith("Not authenticated")


def test_is_auth_error():
    assert is_auth_error(NeedsReauthError()) is True
    assert is_auth_error(RuntimeError("Authentication required: sign in")) is True
    assert is_auth_error(RuntimeError("disk full")) is False
    assert is_auth_error(None) is False


# --------------------------------------------------------------------------- #
# FastMCP registration                                                        #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_server_registers_tools(auth: AuthService):
    server = create_server(auth=auth)

    async with Client(server) as client:
        names = {tool.name for tool in await client.list_tools()}
        assert {"about", "authenticate", "check-auth-status"} <= names

        result = await client.call_tool("check-auth-status", {})
        assert result.content[0].text.startswith("Not authenticated")


@pytest.mark.anyio
async def test_check_auth_status_tool_verifies_through_graph(
    auth: AuthService, token_path: Path
):
    write_tokens(token_path, {"access_token": "a", "expires_at": NOW_MS + 3_600_000})
    graph = GraphClient(
        auth,
        transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"userPrincipalName": "ada@example.test"})
        ),
    )
    server = create_server(auth=auth, graph=graph)

    async with Client(server) as client:
        result = await client.call_tool("check-auth-status", {"verify": True})
        assert result.content[0].text == (
            "Authenticated and ready. Signed in as ada@example.test"
        )


@pytest.mark.anyio
async def test_tool_error_envelope_becomes_tool_error(settings: AuthSettings):
    server = create_server(replace(settings, client_id=""))

    async with Client(server) as client:
        with pytest.raises(ToolError, match="OUTLOOK_CLIENT_ID"):
            await client.call_tool("authenticate", {})
