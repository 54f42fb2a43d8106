"""Browser-based OAuth endpoints.

Handlers are intentionally thin:

1. Parse and validate HTTP-layer parameters.
2. Delegate business logic to :class:`~outlook_mcp.auth.service.AuthService`.
3. Return a small HTML page or a redirect.

Routes
------
``GET /auth``
    302 redirect to the Microsoft authorize endpoint (500 if no client id).
``GET /auth/callback``
    Validates ``state``, reports provider errors, exchanges the code.
``GET /token-status``
    Human-readable token status.

The same handlers are mounted on the FastMCP server via
:func:`register_auth_routes` or served standalone by :func:`create_auth_app`.

SECURITY NOTE
-------------
• No raw secrets (state, codes, access / refresh tokens, client secret) are
  ever logged.
• Every value interpolated into HTML is escaped.
"""

from __future__ import annotations

import html
from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Callable

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import HTMLResponse, RedirectResponse, Response
from starlette.routing import Route

from outlook_mcp.auth.log_utils import get_auth_logger
from outlook_mcp.auth.service import AuthService, describe_reason
from outlook_mcp.auth.state import InvalidStateError
from outlook_mcp.servers.correlation import CorrelationIdMiddleware

if TYPE_CHECKING:  # pragma: no cover
    from fastmcp import FastMCP

_LOG = get_auth_logger(base_logger_name="outlook-mcp.auth.routes")

Handler = Callable[[Request], Awaitable[Response]]


def _html_page(title: str, *paragraphs: str, status: int = 200) -> HTMLResponse:
    """Return a tiny success / error HTML page; *paragraphs* are escaped."""
    body = "".join(f"<p>{html.escape(p)}</p>" for p in paragraphs if p)
    content = (
        "<!doctype html><html lang='en'>"
        "<head><meta charset='utf-8'><title>"
        f"{html.escape(title)}</title></head>"
        "<body style='font-family: Arial, sans-serif; text-align: center; margin-top: 50px;'>"
        f"<h1>{html.escape(title)}</h1>{body}</body></html>"
    )
    return HTMLResponse(content, status_code=status)


def _request_log(request: Request, operation: str):
    return _LOG.bind(
        operation=operation,
        correlation_id=getattr(request.state, "correlation_id", None),
    )


# --------------------------------------------------------------------------- #
# Handlers                                                                    #
# --------------------------------------------------------------------------- #
def build_auth_handlers(auth: AuthService) -> dict[str, Handler]:
    """Return the route handlers bound to *auth*, keyed by path."""

    # ----- GET /auth ------------------------------------------------------ #
    async def _start_oauth(request: Request) -> Response:
        log = _request_log(request, "authorize")
        try:
            authorize_url = auth.build_authorize_url()
        except ValueError:
            log.error("OAuth start rejected: client id is not configured")
            return _html_page(
                "Authorization Failed",
                "Error: Configuration Error",
                "Description: Client ID is not configured.",
                status=500,
            )
        log.info("Redirecting to the authorize endpoint")
        return RedirectResponse(authorize_url, status_code=302)

    # ----- GET /auth/callback --------------------------------------------- #
    async def _oauth_callback(request: Request) -> Response:
        log = _request_log(request, "callback")
        params = request.query_params
        state = params.get("state")
        if not state:
            log.error("OAuth callback received without a 'state' parameter; rejecting")
            return _html_page(
                "Authorization Failed",
                "Error: Missing State Parameter",
                "The state parameter was missing from the OAuth callback. This is a "
                "security risk. Please try authenticating again.",
                status=400,
            )

        try:
            auth.verify_state(state)
        except InvalidStateError as exc:
            log.warning("OAuth callback with invalid state (%s)", exc)
            return _html_page(
                "Authorization Failed",
                "Error: Invalid State Parameter",
                f"Description: {exc}. Please start the sign-in again.",
                status=400,
            )

        # Provider-side errors (e.g. access_denied, invalid_scope)
        oauth_error = params.get("error")
        if oauth_error:
            description = params.get("error_description", "")
            return _html_page(
                "Authorization Failed",
                f"Error: {oauth_error}",
                f"Description: {description}" if description else "",
                "You can close this window and try again.",
                status=400,
            )

        code = params.get("code")
        if not code:
            return _html_page(
                "Authorization Failed",
                "Error: Missing Authorization Code",
                "No authorization code was provided in the callback.",
                status=400,
            )

        try:
            await auth.exchange_code_for_tokens(code)
        except Exception as exc:  # broad: mapped to user-visible failure
            log.warning("Token exchange error: %s", exc, exc_info=True)
            return _html_page(
                "Token Exchange Failed",
                "Failed to exchange authorization code for access token.",
                f"Error: {exc}",
                "You can close this window and try again.",
                status=500,
            )

        log.info("OAuth success")
        return _html_page(
            "Authentication Successful",
            "You have successfully authenticated with Microsoft Graph API.",
            "You can close this window.",
        )

    # ----- GET /token-status ---------------------------------------------- #
    async def _token_status(request: Request) -> Response:
        try:
            token = await auth.get_access_token()
        except Exception as exc:  # broad: rendered as a status page
            _LOG.warning("Token status check failed: %s", exc, exc_info=True)
            return _html_page(
                "Token Status", f"Error checking token status: {exc}", status=500
            )

        if token:
            expires = datetime.fromtimestamp(auth.get_expiry_time() / 1000).astimezone()
            return _html_page(
                "Token Status",
                f"Access token is valid. Expires at: {expires.isoformat(timespec='seconds')}",
            )
        return _html_page(
            "Token Status",
            "No valid access token found. Please authenticate.",
            describe_reason(auth.get_last_error_reason()),
        )

    return {
        "/auth": _start_oauth,
        "/auth/callback": _oauth_callback,
        "/token-status": _token_status,
    }


# --------------------------------------------------------------------------- #
# Public API                                                                  #
# --------------------------------------------------------------------------- #
def register_auth_routes(app: FastMCP, auth: AuthService) -> None:
    """Attach the OAuth endpoints to the FastMCP *app*."""
    for path, handler in build_auth_handlers(auth).items():
        app.custom_route(path, methods=["GET"])(handler)


def create_auth_app(auth: AuthService) -> Starlette:
    """Return a standalone Starlette app serving only the OAuth endpoints."""
    routes = [
        Route(path, handler, methods=["GET"])
        for path, handler in build_auth_handlers(auth).items()
    ]
    return Starlette(routes=routes, middleware=[Middleware(CorrelationIdMiddleware)])
