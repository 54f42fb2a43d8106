"""Error taxonomy and exception types raised by the token lifecycle core.

Only lightweight, **data-carrying** objects live here so that web/MCP layers
can transform them into HTTP responses or user-friendly messages.

Four non-overlapping families exist:

configuration
    ``CLIENT_CONFIG_MISSING`` – fatal until the operator fixes credentials.
storage
    ``TOKEN_FILE_*`` and ``REFRESH_TOKEN_MISSING`` – recoverable by running the
    browser flow again.
transport
    ``*_NETWORK_ERROR`` – transient, never retried automatically.
provider rejection
    ``REFRESH_FAILED*`` / ``CODE_EXCHANGE_FAILED`` / ``*_INVALID_CLIENT`` –
    carry the HTTP status and raw body.

The :class:`ErrorRegister` keeps the *last* structured reason for diagnostics.
It is owned by the auth context, never a module global.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

_LOG = logging.getLogger("outlook-mcp.auth.errors")


class ErrorCode(str, Enum):
    """Machine-readable failure codes recorded in :class:`ErrorReason`."""

    CLIENT_CONFIG_MISSING = "CLIENT_CONFIG_MISSING"

    TOKEN_FILE_MISSING = "TOKEN_FILE_MISSING"
    TOKEN_FILE_INVALID_JSON = "TOKEN_FILE_INVALID_JSON"
    TOKEN_FILE_INVALID_SHAPE = "TOKEN_FILE_INVALID_SHAPE"
    TOKEN_FILE_READ_ERROR = "TOKEN_FILE_READ_ERROR"
    TOKEN_FILE_WRITE_ERROR = "TOKEN_FILE_WRITE_ERROR"
    REFRESH_TOKEN_MISSING = "REFRESH_TOKEN_MISSING"

    REFRESH_FAILED = "REFRESH_FAILED"
    REFRESH_FAILED_INVALID_CLIENT = "REFRESH_FAILED_INVALID_CLIENT"
    REFRESH_NETWORK_ERROR = "REFRESH_NETWORK_ERROR"

    CODE_EXCHANGE_FAILED = "CODE_EXCHANGE_FAILED"
    CODE_EXCHANGE_INVALID_CLIENT = "CODE_EXCHANGE_INVALID_CLIENT"
    CODE_EXCHANGE_NETWORK_ERROR = "CODE_EXCHANGE_NETWORK_ERROR"

    def __str__(self) -> str:
        return self.value


STORAGE_CODES: frozenset[ErrorCode] = frozenset(
    {
        ErrorCode.TOKEN_FILE_MISSING,
        ErrorCode.TOKEN_FILE_INVALID_JSON,
        ErrorCode.TOKEN_FILE_INVALID_SHAPE,
        ErrorCode.TOKEN_FILE_READ_ERROR,
        ErrorCode.TOKEN_FILE_WRITE_ERROR,
        ErrorCode.REFRESH_TOKEN_MISSING,
    }
)
NETWORK_CODES: frozenset[ErrorCode] = frozenset(
    {ErrorCode.REFRESH_NETWORK_ERROR, ErrorCode.CODE_EXCHANGE_NETWORK_ERROR}
)
INVALID_CLIENT_CODES: frozenset[ErrorCode] = frozenset(
    {ErrorCode.REFRESH_FAILED_INVALID_CLIENT, ErrorCode.CODE_EXCHANGE_INVALID_CLIENT}
)


@dataclass(frozen=True, slots=True)
class ErrorReason:
    """Structured description of the most recent auth failure."""

    code: ErrorCode
    message: str
    path: str | None = None
    status_code: int | None = None
    raw_body: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable dict, dropping unset fields."""
        data = {k: v for k, v in asdict(self).items() if v is not None}
        data["code"] = self.code.value
        return data


class ErrorRegister:
    """Single last-write-wins slot holding the latest :class:`ErrorReason`."""

    def __init__(self) -> None:
        self._last: ErrorReason | None = None

    @property
    def last(self) -> ErrorReason | None:
        return self._last

    def record(self, reason: ErrorReason) -> ErrorReason:
        self._last = reason
        _LOG.debug("Recorded auth error code=%s", reason.code)
        return reason

    def clear(self) -> None:
        self._last = None


# --------------------------------------------------------------------------- #
# Exceptions                                                                  #
# --------------------------------------------------------------------------- #
class TokenError(RuntimeError):
    """Base class for failures raised by the token lifecycle.

    ``reason`` is the structured description that was recorded when the
    failure was detected.
    """

    def __init__(self, message: str, *, reason: ErrorReason | None = None) -> None:
        super().__init__(message)
        self.reason: ErrorReason | None = reason

    @property
    def code(self) -> ErrorCode | None:
        return self.reason.code if self.reason else None


class ClientConfigError(TokenError):
    """Client id or client secret is not configured."""


class TokenStoreError(TokenError):
    """The token file could not be written."""


class NoRefreshTokenError(TokenError):
    """No refresh token is available; the browser flow must be run again."""


class TokenRequestError(TokenError):
    """The token endpoint rejected a grant or could not be reached."""

    @property
    def status_code(self) -> int | None:
        return self.reason.status_code if self.reason else None

    @property
    def raw_body(self) -> str | None:
        return self.reason.raw_body if self.reason else None


class NeedsReauthError(TokenError):
    """Raised when no usable access token exists and the user must sign in."""

    is_auth_error = True

    def __init__(
        self,
        message: str | None = None,
        *,
        reason: ErrorReason | None = None,
    ) -> None:
        super().__init__(message or "Authentication required.", reason=reason)

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON-serialisable payload **without secrets**."""
        payload: dict[str, Any] = {
            "error": "needs_reauth",
            "message": str(self),
        }
        if self.reason is not None:
            payload["code"] = self.reason.code.value
            if self.reason.status_code is not None:
                payload["status_code"] = self.reason.status_code
        return payload
