"""State parameter helpers for the OAuth 2.0 web-flow.

The *state* parameter protects the user against CSRF.  Each value issued by
``GET /auth`` encodes three fields in a compact, URL-safe string:

1. ``nonce`` – 16 random bytes, hex encoded
2. ``ts`` – UNIX timestamp produced by an injected :pyclass:`~outlook_mcp.auth.clock.Clock`
3. ``sig`` – HMAC-SHA256 signature of the first two fields using a process
   secret

Format (plain text before base64-url encoding)::

    <nonce>:<ts>:<sig>

Because the value is signed, the callback can prove it was issued by this
process without persisting anything; :func:`verify_state` additionally rejects
values older than a TTL.

Logging
-------
Only the (truncated) nonce is ever logged; the full state string as well as
the HMAC secret are *never* written to logs.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import logging
import secrets
from hashlib import sha256
from typing import Final, Tuple

from outlook_mcp.auth.clock import Clock, default_clock

_LOG = logging.getLogger("outlook-mcp.auth.state")

_SIG_LEN: Final[int] = 12  # characters kept from hex digest


def _b64e(data: str) -> str:
    """Base64-URL encode *without* padding."""
    return base64.urlsafe_b64encode(data.encode("utf-8")).rstrip(b"=").decode("ascii")


def _b64d(data: str) -> str:
    """Decode base64-URL data that may lack padding."""
    pad_len = (-len(data)) % 4
    return base64.urlsafe_b64decode(data + "=" * pad_len).decode("utf-8")


def _sign(message: str, secret: str) -> str:
    digest = hmac.new(secret.encode(), msg=message.encode(), digestmod=sha256).hexdigest()
    return digest[:_SIG_LEN]


def generate_state_secret() -> str:
    """Return a fresh random secret for signing state values."""
    return secrets.token_hex(32)


def build_state(secret: str, *, clock: Clock = default_clock) -> str:
    """Build a fresh, signed state string for an authorization request."""
    nonce = secrets.token_hex(16)
    payload = f"{nonce}:{int(clock())}"
    encoded = _b64e(f"{payload}:{_sign(payload, secret)}")
    _LOG.debug("Built state nonce=%s****", nonce[:6])
    return encoded


class InvalidStateError(Exception):
    """Raised when an incoming state is malformed, forged or expired."""


def parse_state(state: str, secret: str) -> Tuple[str, int]:
    """Validate the signature of *state* and return ``(nonce, ts)``.

    Raises
    ------
    InvalidStateError
        If the state is malformed or the signature does not validate.
    """
    try:
        decoded = _b64d(state)
    except (ValueError, binascii.Error):
        raise InvalidStateError("state cannot be decoded") from None

    parts = decoded.split(":")
    if len(parts) != 3:
        raise InvalidStateError("state has an unexpected format")

    nonce, ts_str, sig = parts
    if not nonce or not ts_str.isdigit():
        raise InvalidStateError("state missing fields")

    expected_sig = _sign(f"{nonce}:{ts_str}", secret)
    if not hmac.compare_digest(sig, expected_sig):
        raise InvalidStateError("state signature mismatch")

    _LOG.debug("Parsed state nonce=%s****", nonce[:6])
    return nonce, int(ts_str)


def verify_state(
    state: str,
    secret: str,
    *,
    ttl_seconds: int,
    clock: Clock = default_clock,
) -> str:
    """Validate *state* and its age; return the nonce."""
    nonce, ts = parse_state(state, secret)
    if clock() - ts > ttl_seconds:
        raise InvalidStateError("state has expired")
    return nonce
