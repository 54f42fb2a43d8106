"""AuthService – the per-process token lifecycle context and façade.

One :class:`AuthService` is constructed at startup and passed by reference to
the HTTP routes, the MCP tools and the Graph client.  It owns every piece of
mutable auth state (cache slot, in-flight operations, last-error register), so
there are no module globals.

Token resolution is a small state machine::

    VALID           cache holds a non-expired record  -> return it
    STALE_OR_EMPTY  load the token file               -> return it if valid
    otherwise       refresh via the refresh token     -> return it or fail

Failures are returned explicitly by :meth:`AuthService.get_access_token_result`
and mirrored in the last-error register for diagnostics.
:meth:`AuthService.ensure_authenticated` raises
:class:`~outlook_mcp.auth.errors.NeedsReauthError` with a user-facing message.

**No secrets** (tokens, codes, client secret, state) are written to logs.
"""

from __future__ import annotations

import logging
from typing import Final
from urllib.parse import urlencode

import httpx

from outlook_mcp.auth.cache import TokenCache
from outlook_mcp.auth.clock import Clock, default_clock
from outlook_mcp.auth.errors import (
    INVALID_CLIENT_CODES,
    NETWORK_CODES,
    ErrorCode,
    ErrorReason,
    ErrorRegister,
    NeedsReauthError,
    TokenError,
)
from outlook_mcp.auth.exchange import CodeExchanger
from outlook_mcp.auth.models import Err, Ok, Result, TokenRecord
from outlook_mcp.auth.oauth_client import TokenEndpointClient
from outlook_mcp.auth.refresh import RefreshCoordinator
from outlook_mcp.auth.state import build_state, generate_state_secret, verify_state
from outlook_mcp.auth.store import TokenStore
from outlook_mcp.utils.environment import AuthSettings

_LOG = logging.getLogger("outlook-mcp.auth.service")

_AUTHENTICATE_HINT: Final[str] = "Run the 'authenticate' tool to sign in with Microsoft."


def describe_reason(reason: ErrorReason | None) -> str:
    """Translate a structured reason into actionable guidance for the user."""
    if reason is None:
        return f"Authentication required. {_AUTHENTICATE_HINT}"

    code = reason.code
    if code is ErrorCode.TOKEN_FILE_MISSING:
        return (
            f"Authentication required. No saved tokens were found at {reason.path}. "
            f"{_AUTHENTICATE_HINT}"
        )
    if code in (ErrorCode.TOKEN_FILE_INVALID_JSON, ErrorCode.TOKEN_FILE_INVALID_SHAPE):
        return (
            f"Authentication required. The token file at {reason.path} is corrupted. "
            "Run the 'authenticate' tool with force=true to sign in again."
        )
    if code in (ErrorCode.TOKEN_FILE_READ_ERROR, ErrorCode.TOKEN_FILE_WRITE_ERROR):
        return (
            f"Authentication required. {reason.message}. Check the file "
            "permissions, then run the 'authenticate' tool."
        )
    if code is ErrorCode.REFRESH_TOKEN_MISSING:
        return (
            "Authentication required. No refresh token is stored, so the session "
            f"cannot be renewed. {_AUTHENTICATE_HINT}"
        )
    if code is ErrorCode.CLIENT_CONFIG_MISSING:
        return (
            "Authentication is not configured. Set OUTLOOK_CLIENT_ID and "
            "OUTLOOK_CLIENT_SECRET, restart the server and run the 'authenticate' tool."
        )
    if code in INVALID_CLIENT_CODES:
        return (
            "Authentication failed: Microsoft rejected the client credentials. "
            "Check that OUTLOOK_CLIENT_SECRET holds the client secret value, not "
            "the secret ID, then run the 'authenticate' tool again."
        )
    if code in NETWORK_CODES:
        return (
            f"Could not reach the Microsoft identity platform ({reason.message}). "
            "Check the network connection and try again."
        )
    if code is ErrorCode.REFRESH_FAILED:
        return (
            f"Authentication required. {reason.message}. "
            "Run the 'authenticate' tool to sign in again."
        )
    return f"Authentication failed: {reason.message}. {_AUTHENTICATE_HINT}"


class AuthService:
    """Façade over cache, store, refresh and code exchange."""

    def __init__(
        self,
        settings: AuthSettings | None = None,
        *,
        clock: Clock = default_clock,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or AuthSettings.from_env()
        self.clock = clock
        self.errors = ErrorRegister()
        self.cache = TokenCache(buffer_ms=self.settings.refresh_buffer_ms, clock=clock)
        self.store = TokenStore(
            self.settings.token_store_path, cache=self.cache, errors=self.errors
        )
        client = TokenEndpointClient(
            self.settings.token_endpoint,
            timeout=self.settings.http_timeout,
            transport=transport,
        )
        self.refresher = RefreshCoordinator(
            self.settings,
            store=self.store,
            client=client,
            errors=self.errors,
            clock=clock,
        )
        self.exchanger = CodeExchanger(
            self.settings,
            store=self.store,
            client=client,
            errors=self.errors,
            clock=clock,
        )

        state_secret = self.settings.state_secret
        if not state_secret:
            state_secret = generate_state_secret()
            _LOG.warning(
                "Environment variable OUTLOOK_STATE_HMAC_SECRET not set – generated "
                "transient secret. Pending sign-ins will fail after a restart."
            )
        self._state_secret: str = state_secret

    # ------------------------------------------------------------------ #
    # Token resolution                                                   #
    # ------------------------------------------------------------------ #
    async def get_access_token_result(self) -> Result[str]:
        """Return ``Ok(access_token)`` or ``Err(reason)``; never raises on auth faults."""
        cached = self.cache.valid()
        if cached is not None:
            self.errors.clear()
            return Ok(cached.access_token)

        # A stale cached record must not hide a newer file, e.g. one written
        # by the standalone auth server.
        stale = self.cache.get() is not None
        record = await self.store.load(use_cache=not stale)
        if record is not None and not self.cache.is_expired(record):
            return Ok(record.access_token)

        _LOG.info("Token expired or missing, attempting refresh")
        try:
            refreshed = await self.refresher.refresh()
        except TokenError as exc:
            _LOG.warning("Refresh failed: %s", exc)
            reason = exc.reason or self.errors.last
            if reason is None:
                reason = ErrorReason(ErrorCode.REFRESH_FAILED, str(exc))
            return Err(reason)
        return Ok(refreshed.access_token)

    async def get_access_token(self) -> str | None:
        """Return a usable access token or ``None`` (see :meth:`get_last_error_reason`)."""
        result = await self.get_access_token_result()
        return result.value if isinstance(result, Ok) else None

    async def ensure_authenticated(self, force_new: bool = False) -> str:
        """Return a usable access token or raise :class:`NeedsReauthError`."""
        if force_new:
            raise NeedsReauthError("Authentication required")
        result = await self.get_access_token_result()
        if isinstance(result, Err):
            raise NeedsReauthError(describe_reason(result.reason), reason=result.reason)
        return result.value

    def get_last_error_reason(self) -> ErrorReason | None:
        return self.errors.last

    def get_expiry_time(self) -> int:
        return self.cache.get_expiry_time()

    def is_expired(self, record: TokenRecord | None) -> bool:
        return self.cache.is_expired(record)

    # ------------------------------------------------------------------ #
    # Lifecycle pass-throughs                                            #
    # ------------------------------------------------------------------ #
    async def load_tokens(self, *, use_cache: bool = True) -> TokenRecord | None:
        return await self.store.load(use_cache=use_cache)

    def load_tokens_sync(self) -> TokenRecord | None:
        return self.store.load_sync()

    async def save_tokens(self, record: TokenRecord | None) -> None:
        await self.store.save(record)

    async def clear_tokens(self) -> None:
        await self.store.clear()

    async def refresh_access_token(self) -> TokenRecord:
        return await self.refresher.refresh()

    async def exchange_code_for_tokens(self, code: str) -> TokenRecord:
        return await self.exchanger.exchange_code_for_tokens(code)

    # ------------------------------------------------------------------ #
    # Browser-based flow                                                 #
    # ------------------------------------------------------------------ #
    def build_authorize_url(self) -> str:
        """Return the provider authorize URL carrying a fresh signed state."""
        if not self.settings.client_id:
            raise ValueError("Client ID is not configured.")

        query_params: dict[str, str] = {
            "client_id": self.settings.client_id,
            "response_type": "code",
            "redirect_uri": self.settings.redirect_uri,
            "scope": self.settings.scope_string,
            "response_mode": "query",
            "state": build_state(self._state_secret, clock=self.clock),
        }
        return f"{self.settings.auth_endpoint}?{urlencode(query_params)}"

    def verify_state(self, state: str) -> str:
        """Check that *state* was issued by this process and is still fresh.

        Raises :class:`~outlook_mcp.auth.state.InvalidStateError` otherwise.
        """
        return verify_state(
            state,
            self._state_secret,
            ttl_seconds=self.settings.state_ttl_seconds,
            clock=self.clock,
        )
