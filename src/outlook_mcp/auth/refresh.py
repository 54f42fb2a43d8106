"""Refresh-token grant exchange, protected by single-flight.

Identity providers may rotate or invalidate a refresh token on first use, so
two concurrent refreshes with the same token could race or fail.  Every
caller of :meth:`RefreshCoordinator.refresh` that arrives while an exchange is
pending therefore attaches to that exchange and receives its identical record
or exception.  Nothing is retried automatically.
"""

from __future__ import annotations

import httpx

from outlook_mcp.auth.clock import Clock, default_clock
from outlook_mcp.auth.errors import (
    ErrorCode,
    ErrorReason,
    ErrorRegister,
    NoRefreshTokenError,
    TokenRequestError,
)
from outlook_mcp.auth.log_utils import get_auth_logger
from outlook_mcp.auth.models import Err, TokenRecord, TokenSchemaError
from outlook_mcp.auth.oauth_client import (
    TokenEndpointClient,
    is_invalid_client,
    require_client_credentials,
)
from outlook_mcp.auth.singleflight import SingleFlight
from outlook_mcp.auth.store import TokenStore
from outlook_mcp.utils.environment import AuthSettings

_LOG = get_auth_logger(
    base_logger_name="outlook-mcp.auth.refresh",
    operation="refresh",
    grant_type="refresh_token",
)


class RefreshCoordinator:
    """Mint a new access token from the stored refresh token."""

    def __init__(
        self,
        settings: AuthSettings,
        *,
        store: TokenStore,
        client: TokenEndpointClient,
        errors: ErrorRegister,
        clock: Clock = default_clock,
    ) -> None:
        self.settings = settings
        self.store = store
        self.client = client
        self.errors = errors
        self._clock = clock
        self._flight: SingleFlight[TokenRecord] = SingleFlight("token refresh")

    @property
    def in_flight(self) -> bool:
        return self._flight.in_flight

    async def refresh(self) -> TokenRecord:
        """Exchange the refresh token and persist the renewed record.

        Raises
        ------
        ClientConfigError
            Client id or secret is not configured.
        NoRefreshTokenError
            Neither the cache nor the token file holds a refresh token.
        TokenRequestError
            The provider rejected the grant or could not be reached.
        """
        return await self._flight.run(self._refresh_once)

    # ---------------- internal helpers --------------------------------- #
    async def _find_refresh_token(self) -> str:
        cached = self.store.cache.get()
        if cached is not None and cached.refresh_token:
            return cached.refresh_token

        # The cache may be stale while the file still carries a refresh token.
        result = await self.store.read()
        if isinstance(result, Err):
            reason = self.errors.record(result.reason)
        elif result.value.refresh_token:
            return result.value.refresh_token
        else:
            reason = self.errors.record(
                ErrorReason(
                    ErrorCode.REFRESH_TOKEN_MISSING,
                    "No refresh token available",
                    path=str(self.store.path),
                )
            )
        raise NoRefreshTokenError("No refresh token available", reason=reason)

    def _rejected(self, status_code: int, raw_body: str, description: str) -> TokenRequestError:
        code = (
            ErrorCode.REFRESH_FAILED_INVALID_CLIENT
            if is_invalid_client(raw_body)
            else ErrorCode.REFRESH_FAILED
        )
        reason = self.errors.record(
            ErrorReason(
                code,
                f"Token refresh failed with status {status_code}: {description}",
                status_code=status_code,
                raw_body=raw_body,
            )
        )
        _LOG.error("Refresh failed (%s): %s", status_code, description)
        return TokenRequestError(description, reason=reason)

    async def _refresh_once(self) -> TokenRecord:
        require_client_credentials(self.settings, self.errors)
        refresh_token = await self._find_refresh_token()

        _LOG.info("Refreshing access token")
        try:
            resp = await self.client.post_form(
                {
                    "client_id": self.settings.client_id,
                    "client_secret": self.settings.client_secret,
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                    "scope": self.settings.scope_string,
                }
            )
        except httpx.HTTPError as exc:
            detail = str(exc) or type(exc).__name__
            reason = self.errors.record(
                ErrorReason(
                    ErrorCode.REFRESH_NETWORK_ERROR,
                    f"Network error during token refresh: {detail}",
                )
            )
            _LOG.error("Network error during refresh: %s", detail)
            raise TokenRequestError(detail, reason=reason) from exc

        if not resp.ok:
            description = resp.error_description() or resp.raw_body
            raise self._rejected(resp.status_code, resp.raw_body, description)

        try:
            record = TokenRecord.from_token_response(
                resp.body or {},
                clock=self._clock,
                previous_refresh_token=refresh_token,
            )
        except TokenSchemaError as exc:
            raise self._rejected(resp.status_code, resp.raw_body, str(exc)) from exc

        await self.store.save(record)
        _LOG.info("Token refresh successful (expires in %ss)", record.expires_in)
        return record
