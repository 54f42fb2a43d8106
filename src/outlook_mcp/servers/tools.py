"""Authentication-related MCP tool handlers.

Handlers take the process :class:`~outlook_mcp.auth.service.AuthService`
explicitly and return MCP response envelopes; registration with FastMCP
happens in :mod:`outlook_mcp.servers.main`.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from outlook_mcp.auth.service import AuthService
from outlook_mcp.utils.environment import SERVER_NAME, SERVER_VERSION
from outlook_mcp.utils.graph_client import GraphClient
from outlook_mcp.utils.response_helpers import make_error_response, make_response

logger = logging.getLogger("outlook-mcp.servers.tools")


async def handle_about() -> dict[str, Any]:
    return make_response(
        f"Outlook Assistant MCP Server ({SERVER_NAME}) v{SERVER_VERSION}\n\n"
        "Provides access to Microsoft Outlook email, calendar and contacts "
        "through the Microsoft Graph API."
    )


async def handle_authenticate(auth: AuthService, force: bool = False) -> dict[str, Any]:
    """Return the URL that starts the browser sign-in.

    With *force* the stored tokens are cleared first.
    """
    if force:
        await auth.clear_tokens()

    settings = auth.settings
    if not settings.client_id:
        return make_error_response(
            "Authentication configuration is missing. Set OUTLOOK_CLIENT_ID and "
            "OUTLOOK_CLIENT_SECRET, then restart the server and try again."
        )

    auth_url = f"{settings.auth_server_url}/auth?client_id={quote(settings.client_id, safe='')}"
    prefix = "Existing tokens were cleared. " if force else ""
    return make_response(
        f"{prefix}Authentication required. Please visit the following URL to "
        f"authenticate with Microsoft: {auth_url}\n\n"
        "After authentication, you will be redirected back to this application."
    )


async def handle_check_auth_status(
    auth: AuthService,
    graph: GraphClient | None = None,
    verify: bool = False,
) -> dict[str, Any]:
    """Report whether a token is present.

    Only the token file is consulted unless *verify* is set, in which case
    the signed-in profile is fetched from Microsoft Graph through *graph*.
    """
    tokens = auth.load_tokens_sync()
    if tokens is None or not tokens.access_token:
        reason = auth.get_last_error_reason()
        logger.debug("check-auth-status: no token (%s)", reason.code if reason else "-")
        text = "Not authenticated"
        if reason is not None:
            text = f"{text}: {reason.message}"
        return make_response(text)

    logger.debug("check-auth-status: token expires at %s", tokens.expires_at)
    if not verify or graph is None:
        return make_response("Authenticated and ready")

    try:
        profile = await graph.get("me", {"$select": "displayName,mail,userPrincipalName"})
    except httpx.HTTPError as exc:
        logger.warning("check-auth-status: Graph verification failed: %s", exc)
        return make_error_response(f"Token present, but Microsoft Graph request failed: {exc}")

    who = profile.get("mail") or profile.get("userPrincipalName") or "unknown account"
    name = profile.get("displayName")
    signed_in = f"{name} <{who}>" if name else who
    return make_response(f"Authenticated and ready. Signed in as {signed_in}")
