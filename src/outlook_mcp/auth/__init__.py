"""Token lifecycle core package.

This namespace hosts the **HTTP-agnostic** building blocks of the OAuth 2.0
authorization-code flow used to reach the Microsoft Graph mailbox API.

Sub-modules
-----------
clock
    Test-friendly time abstraction.
models
    Immutable token record with a strict schema, plus explicit results.
errors
    Error codes, structured reasons, the last-error register and exceptions.
cache
    Single-slot in-memory cache with buffered expiry.
store
    JSON-file persistence with load classification and dedup.
singleflight
    Coalescing of concurrent identical async operations.
oauth_client
    Token endpoint POSTs.
refresh / exchange
    Refresh-token and authorization-code grants.
state
    CSRF-resistant ``state`` parameter encoding / validation.
service
    The per-process context and façade (``ensure_authenticated``).
log_utils
    Structured logging helpers (thin wrapper around :pymod:`logging`).

All public objects are re-exported here for convenience.
"""

from __future__ import annotations

from .clock import Clock, default_clock, now_ms  # noqa: F401
from .errors import (  # noqa: F401
    ClientConfigError,
    ErrorCode,
    ErrorReason,
    ErrorRegister,
    NeedsReauthError,
    NoRefreshTokenError,
    TokenError,
    TokenRequestError,
    TokenStoreError,
)
from .models import Err, Ok, Result, TokenRecord, TokenSchemaError  # noqa: F401
from .cache import TokenCache  # noqa: F401
from .store import TokenStore  # noqa: F401
from .singleflight import SingleFlight  # noqa: F401
from .state import build_state, parse_state, verify_state, InvalidStateError  # noqa: F401
from .service import AuthService, describe_reason  # noqa: F401
from .log_utils import get_auth_logger  # noqa: F401

__all__ = [
    # clock
    "Clock",
    "default_clock",
    "now_ms",
    # errors
    "ClientConfigError",
    "ErrorCode",
    "ErrorReason",
    "ErrorRegister",
    "NeedsReauthError",
    "NoRefreshTokenError",
    "TokenError",
    "TokenRequestError",
    "TokenStoreError",
    # models
    "Err",
    "Ok",
    "Result",
    "TokenRecord",
    "TokenSchemaError",
    # lifecycle
    "TokenCache",
    "TokenStore",
    "SingleFlight",
    "AuthService",
    "describe_reason",
    # state
    "build_state",
    "parse_state",
    "verify_state",
    "InvalidStateError",
    # logging helpers
    "get_auth_logger",
]
