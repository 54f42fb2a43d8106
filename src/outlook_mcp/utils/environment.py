"""Configuration loading from environment variables.

Every setting has a shared default; ``OUTLOOK_*`` environment variables are
layered on top by :func:`create_auth_config`.  The resulting
:class:`AuthSettings` is immutable and is handed to the auth context once at
startup.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Final, Mapping, Tuple

logger = logging.getLogger("outlook-mcp.utils.environment")

SERVER_NAME: Final[str] = "outlook-assistant"
SERVER_VERSION: Final[str] = "1.0.0"

DEFAULT_AUTH_ENDPOINT: Final[str] = (
    "https://login.microsoftonline.com/common/oauth2/v2.0/authorize"
)
DEFAULT_TOKEN_ENDPOINT: Final[str] = (
    "https://login.microsoftonline.com/common/oauth2/v2.0/token"
)
DEFAULT_REDIRECT_URI: Final[str] = "http://localhost:3333/auth/callback"
DEFAULT_AUTH_SERVER_URL: Final[str] = "http://localhost:3333"
DEFAULT_REFRESH_BUFFER_MS: Final[int] = 20 * 60 * 1000
DEFAULT_HTTP_TIMEOUT: Final[float] = 30.0
DEFAULT_STATE_TTL_SECONDS: Final[int] = 900

DEFAULT_SCOPES: Final[Tuple[str, ...]] = (
    "offline_access",
    "email",
    "openid",
    "User.Read",
    "Mail.Read",
    "Mail.ReadWrite",
    "Mail.Send",
    "Calendars.Read",
    "Calendars.ReadWrite",
    "Contacts.Read",
    "MailboxSettings.ReadWrite",
    "MailboxSettings.Read",
    "MailboxFolder.ReadWrite",
    "MailboxFolder.Read",
)

_TRUTHY: Final[Tuple[str, ...]] = ("true", "1", "yes", "y", "on")


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def _home_dir() -> Path:
    home = os.getenv("HOME") or os.getenv("USERPROFILE")
    if home:
        return Path(home)
    try:
        return Path.home()
    except RuntimeError:
        return Path("/tmp")


def default_token_store_path() -> Path:
    """Shared path read by both the MCP server and the standalone auth server."""
    return _home_dir() / ".outlook-mcp-tokens.json"


def parse_scopes(raw: str | None) -> Tuple[str, ...]:
    """Split a whitespace-separated scope string, dropping empty items."""
    return tuple((raw or "").split())


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %s", key, raw, default)
        return default


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %s", key, raw, default)
        return default


@dataclass(frozen=True)
class AuthSettings:
    """OAuth client and token lifecycle configuration."""

    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scopes: Tuple[str, ...] = DEFAULT_SCOPES
    auth_endpoint: str = DEFAULT_AUTH_ENDPOINT
    token_endpoint: str = DEFAULT_TOKEN_ENDPOINT
    auth_server_url: str = DEFAULT_AUTH_SERVER_URL
    token_store_path: Path = field(default_factory=default_token_store_path)
    refresh_buffer_ms: int = DEFAULT_REFRESH_BUFFER_MS
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    state_secret: str | None = None
    state_ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS

    @classmethod
    def from_env(cls) -> AuthSettings:
        """Build settings from ``os.environ`` over the built-in defaults."""
        return create_auth_config()

    @property
    def scope_string(self) -> str:
        return " ".join(self.scopes)

    def has_client_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)


def create_auth_config(
    defaults: AuthSettings | None = None,
    environ: Mapping[str, str] | None = None,
) -> AuthSettings:
    """Layer ``OUTLOOK_*`` environment overrides over *defaults*.

    A blank or whitespace-only ``OUTLOOK_SCOPES`` keeps the default scope
    list instead of producing an empty scope set.
    """
    base = defaults or AuthSettings()
    env = os.environ if environ is None else environ

    scopes = parse_scopes(env.get("OUTLOOK_SCOPES")) or base.scopes
    store_path = env.get("OUTLOOK_TOKEN_STORE_PATH")

    return replace(
        base,
        client_id=env.get("OUTLOOK_CLIENT_ID") or base.client_id,
        client_secret=env.get("OUTLOOK_CLIENT_SECRET") or base.client_secret,
        redirect_uri=env.get("OUTLOOK_REDIRECT_URI") or base.redirect_uri,
        scopes=tuple(scopes),
        auth_endpoint=env.get("OUTLOOK_AUTH_ENDPOINT") or base.auth_endpoint,
        token_endpoint=env.get("OUTLOOK_TOKEN_ENDPOINT") or base.token_endpoint,
        auth_server_url=(
            env.get("OUTLOOK_AUTH_SERVER_URL") or base.auth_server_url
        ).rstrip("/"),
        token_store_path=(
            Path(store_path).expanduser() if store_path else base.token_store_path
        ),
        refresh_buffer_ms=_env_int(
            env, "OUTLOOK_TOKEN_REFRESH_BUFFER_MS", base.refresh_buffer_ms
        ),
        http_timeout=_env_float(env, "OUTLOOK_HTTP_TIMEOUT", base.http_timeout),
        state_secret=env.get("OUTLOOK_STATE_HMAC_SECRET") or base.state_secret,
        state_ttl_seconds=_env_int(
            env, "OUTLOOK_STATE_TTL_SECONDS", base.state_ttl_seconds
        ),
    )


def is_debug_logging(environ: Mapping[str, str] | None = None) -> bool:
    """Return True when ``OUTLOOK_MCP_DEBUG`` is set to a truthy value."""
    env = os.environ if environ is None else environ
    return _truthy(env.get("OUTLOOK_MCP_DEBUG"))
