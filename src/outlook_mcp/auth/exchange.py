"""Authorization-code grant exchange (first-time login)."""

from __future__ import annotations

import httpx

from outlook_mcp.auth.clock import Clock, default_clock
from outlook_mcp.auth.errors import (
    ErrorCode,
    ErrorReason,
    ErrorRegister,
    TokenRequestError,
)
from outlook_mcp.auth.log_utils import get_auth_logger
from outlook_mcp.auth.models import TokenRecord, TokenSchemaError
from outlook_mcp.auth.oauth_client import (
    TokenEndpointClient,
    is_invalid_client,
    require_client_credentials,
)
from outlook_mcp.auth.store import TokenStore
from outlook_mcp.utils.environment import AuthSettings

_LOG = get_auth_logger(
    base_logger_name="outlook-mcp.auth.exchange",
    operation="code_exchange",
    grant_type="authorization_code",
)


class CodeExchanger:
    """Trade the authorization code from the callback for a token record."""

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

    async def exchange_code_for_tokens(self, code: str) -> TokenRecord:
        """Exchange *code*, persist the fresh record and return it.

        The raised :class:`TokenRequestError` carries the provider's
        ``error_description`` (or ``error``) as its message.
        """
        require_client_credentials(self.settings, self.errors)

        _LOG.info("Exchanging authorization code for tokens")
        try:
            resp = await self.client.post_form(
                {
                    "client_id": self.settings.client_id,
                    "client_secret": self.settings.client_secret,
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.settings.redirect_uri,
                    "scope": self.settings.scope_string,
                }
            )
        except httpx.HTTPError as exc:
            detail = str(exc) or type(exc).__name__
            reason = self.errors.record(
                ErrorReason(
                    ErrorCode.CODE_EXCHANGE_NETWORK_ERROR,
                    f"Network error during code exchange: {detail}",
                )
            )
            _LOG.error("Network error during code exchange: %s", detail)
            raise TokenRequestError(detail, reason=reason) from exc

        if resp.ok:
            try:
                record = TokenRecord.from_token_response(resp.body or {}, clock=self._clock)
            except TokenSchemaError as exc:
                description = str(exc)
            else:
                await self.store.save(record)
                _LOG.info("Tokens exchanged and saved successfully")
                return record
        else:
            description = (
                resp.error_description()
                or f"Token exchange failed with status {resp.status_code}"
            )

        error_code = (
            ErrorCode.CODE_EXCHANGE_INVALID_CLIENT
            if is_invalid_client(resp.raw_body)
            else ErrorCode.CODE_EXCHANGE_FAILED
        )
        reason = self.errors.record(
            ErrorReason(
                error_code,
                f"Token exchange failed: {description}",
                status_code=resp.status_code,
                raw_body=resp.raw_body,
            )
        )
        _LOG.error("Code exchange failed (%s): %s", resp.status_code, description)
        raise TokenRequestError(description, reason=reason)
