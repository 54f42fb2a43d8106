"""Form-encoded POSTs to the OAuth token endpoint.

The client is deliberately small: it sends the grant, returns the status code
plus parsed/raw body, and lets transport failures (including timeouts)
propagate as :class:`httpx.HTTPError`.  Classification into
:class:`~outlook_mcp.auth.errors.ErrorCode` values happens in the refresh and
code-exchange components.

This module performs **no logging** of request bodies, which contain client
secrets, codes and refresh tokens.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final, Mapping

import httpx

from outlook_mcp.auth.errors import (
    ClientConfigError,
    ErrorCode,
    ErrorReason,
    ErrorRegister,
)

if TYPE_CHECKING:  # pragma: no cover
    from outlook_mcp.utils.environment import AuthSettings

# AADSTS7000215: "Invalid client secret provided" (secret ID used as value).
_INVALID_CLIENT_RE: Final[re.Pattern[str]] = re.compile(
    r"invalid_client|AADSTS7000215", re.IGNORECASE
)


def is_invalid_client(raw_body: str) -> bool:
    """Return True if a provider error body flags a misconfigured client."""
    return bool(_INVALID_CLIENT_RE.search(raw_body or ""))


@dataclass(frozen=True, slots=True)
class TokenResponse:
    """Outcome of one token endpoint round trip."""

    status_code: int
    raw_body: str
    body: Mapping[str, Any] | None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def error_description(self) -> str | None:
        """Return ``error_description``, else ``error``, from a JSON body."""
        if not self.body:
            return None
        for key in ("error_description", "error"):
            value = self.body.get(key)
            if isinstance(value, str) and value:
                return value
        return None


class TokenEndpointClient:
    """POST grants to *token_endpoint* with a bounded timeout."""

    def __init__(
        self,
        token_endpoint: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token_endpoint = token_endpoint
        self.timeout = timeout
        self._transport = transport

    async def post_form(self, data: Mapping[str, str]) -> TokenResponse:
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            resp = await client.post(
                self.token_endpoint,
                data=dict(data),
                headers={"Accept": "application/json"},
            )
        raw = resp.text
        try:
            parsed = resp.json()
        except ValueError:
            parsed = None
        return TokenResponse(
            status_code=resp.status_code,
            raw_body=raw,
            body=parsed if isinstance(parsed, dict) else None,
        )


def require_client_credentials(settings: AuthSettings, errors: ErrorRegister) -> None:
    """Record and raise ``CLIENT_CONFIG_MISSING`` unless id and secret are set."""
    if settings.client_id and settings.client_secret:
        return
    reason = errors.record(
        ErrorReason(
            ErrorCode.CLIENT_CONFIG_MISSING,
            "Client ID or Client Secret is not configured. Set OUTLOOK_CLIENT_ID "
            "and OUTLOOK_CLIENT_SECRET in the environment.",
        )
    )
    raise ClientConfigError(reason.message, reason=reason)
