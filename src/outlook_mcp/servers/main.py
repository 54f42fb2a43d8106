"""Main FastMCP server setup for Outlook integration."""

from __future__ import annotations

import argparse
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import TYPE_CHECKING, Any, Awaitable, Literal, Sequence
from urllib.parse import urlparse

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from starlette.middleware import Middleware

from outlook_mcp.auth.service import AuthService
from outlook_mcp.servers.auth import create_auth_app, register_auth_routes
from outlook_mcp.servers.context import MainAppContext
from outlook_mcp.servers.correlation import CorrelationIdMiddleware
from outlook_mcp.servers.tools import (
    handle_about,
    handle_authenticate,
    handle_check_auth_status,
)
from outlook_mcp.utils.environment import SERVER_NAME, AuthSettings, is_debug_logging
from outlook_mcp.utils.graph_client import GraphClient
from outlook_mcp.utils.logging import mask_sensitive, setup_logging
from outlook_mcp.utils.response_helpers import is_auth_error, make_error_response

logger = logging.getLogger("outlook-mcp.server.main")

if TYPE_CHECKING:  # pragma: no cover
    from starlette.applications import Starlette


class OutlookMCP(FastMCP):
    """FastMCP server whose HTTP app tags every request with a correlation id."""

    def http_app(
        self,
        path: str | None = None,
        middleware: list[Middleware] | None = None,
        transport: Literal["streamable-http", "sse", "http"] = "streamable-http",
        **kwargs: Any,
    ) -> "Starlette":
        final_middleware_list = [Middleware(CorrelationIdMiddleware)]
        if middleware:
            final_middleware_list.extend(middleware)
        return super().http_app(
            path=path, middleware=final_middleware_list, transport=transport, **kwargs
        )


async def _tool_text(pending: Awaitable[dict[str, Any]]) -> str:
    try:
        envelope = await pending
    except Exception as exc:
        if not is_auth_error(exc):
            raise
        envelope = make_error_response(str(exc))
    text = "\n".join(part["text"] for part in envelope.get("content", []))
    if envelope.get("isError"):
        raise ToolError(text)
    return text


def _make_lifespan(
    app_context: MainAppContext,
) -> Callable[[FastMCP], AbstractAsyncContextManager[dict]]:
    @asynccontextmanager
    async def main_lifespan(app: FastMCP) -> AsyncIterator[dict]:
        settings = app_context.settings
        logger.info("Outlook MCP server lifespan starting...")
        if not settings.has_client_credentials():
            logger.warning(
                "OUTLOOK_CLIENT_ID / OUTLOOK_CLIENT_SECRET not set; "
                "authentication will be unavailable."
            )
        logger.info("Client ID: %s", mask_sensitive(settings.client_id))
        logger.info("Token store: %s", settings.token_store_path)
        try:
            yield {"app_lifespan_context": app_context}
        finally:
            logger.info("Outlook MCP server lifespan shutdown complete.")

    return main_lifespan


def create_server(
    settings: AuthSettings | None = None,
    *,
    auth: AuthService | None = None,
    graph: GraphClient | None = None,
) -> OutlookMCP:
    """Build the FastMCP server around exactly one :class:`AuthService`."""
    settings = settings or (auth.settings if auth else AuthSettings.from_env())
    auth = auth or AuthService(settings)
    graph = graph or GraphClient(auth, timeout=settings.http_timeout)
    app_context = MainAppContext(auth=auth, settings=settings, graph=graph)

    mcp = OutlookMCP(SERVER_NAME, lifespan=_make_lifespan(app_context))

    @mcp.tool(name="about", description="Returns information about this Outlook Assistant server")
    async def about() -> str:
        return await _tool_text(handle_about())

    @mcp.tool(
        name="authenticate",
        description="Authenticate with Microsoft Graph API to access Outlook data",
    )
    async def authenticate(force: bool = False) -> str:
        """Set force=true to clear stored tokens and sign in again."""
        return await _tool_text(handle_authenticate(auth, force=force))

    @mcp.tool(
        name="check-auth-status",
        description="Check the current authentication status with Microsoft Graph API",
    )
    async def check_auth_status(verify: bool = False) -> str:
        """Set verify=true to also confirm the token against Microsoft Graph."""
        return await _tool_text(handle_check_auth_status(auth, graph, verify=verify))

    register_auth_routes(mcp, auth)
    return mcp


def _auth_server_address(settings: AuthSettings) -> tuple[str, int]:
    parsed = urlparse(settings.auth_server_url)
    return parsed.hostname or "localhost", parsed.port or 3333


def main(argv: Sequence[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="outlook-mcp", description=__doc__)
    parser.add_argument(
        "--transport",
        choices=("stdio", "sse", "streamable-http"),
        default="stdio",
        help="MCP transport (default: stdio)",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Bind host for HTTP transports")
    parser.add_argument("--port", type=int, default=8000, help="Bind port for HTTP transports")
    parser.add_argument(
        "--auth-server",
        action="store_true",
        help="Serve only the OAuth routes (/auth, /auth/callback, /token-status)",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0)
    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2 or is_debug_logging():
        level = logging.DEBUG
    setup_logging(level)

    settings = AuthSettings.from_env()

    if args.auth_server:
        import uvicorn

        host, port = _auth_server_address(settings)
        logger.info("Starting standalone auth server on %s:%s", host, port)
        uvicorn.run(create_auth_app(AuthService(settings)), host=host, port=port)
        return

    server = create_server(settings)
    if args.transport == "stdio":
        server.run(transport="stdio")
    else:
        server.run(transport=args.transport, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
