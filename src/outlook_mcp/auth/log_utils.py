"""Structured logging helpers for token lifecycle components.

Only a fixed set of *non-sensitive* context fields is ever attached to log
records, so that tokens, codes and secrets cannot slip in through ``extra``:

- ``operation``      – lifecycle step (``refresh``, ``code_exchange``, ``callback``…)
- ``grant_type``     – OAuth grant being exercised
- ``correlation_id`` – request correlation id, when an HTTP route is involved

The fields are set as record attributes and also rendered as a short prefix,
so they remain visible with the plain formatter from
:func:`outlook_mcp.utils.logging.setup_logging`.

Usage
-----
>>> from outlook_mcp.auth.log_utils import get_auth_logger
>>> log = get_auth_logger(operation="refresh", grant_type="refresh_token")
>>> log.info("Refreshing access token")
INFO outlook-mcp.auth [operation=refresh grant_type=refresh_token] Refreshing access token
"""

from __future__ import annotations

import logging
from typing import Any, Final, Mapping, MutableMapping

CONTEXT_KEYS: Final = ("operation", "grant_type", "correlation_id")


def _whitelist(context: Mapping[str, Any] | None) -> dict[str, Any]:
    if not context:
        return {}
    return {k: context[k] for k in CONTEXT_KEYS if context.get(k) is not None}


class AuthLogAdapter(logging.LoggerAdapter):
    """LoggerAdapter carrying whitelisted auth context."""

    def __init__(self, logger: logging.Logger, context: Mapping[str, Any] | None = None):
        super().__init__(logger, _whitelist(context))

    def bind(self, **context: Any) -> AuthLogAdapter:
        """Return a new adapter with *context* layered over the current one."""
        return AuthLogAdapter(self.logger, {**self.extra, **context})

    def process(self, msg: str, kwargs: MutableMapping[str, Any]):
        extra = dict(kwargs.get("extra") or {})
        # call-site values win over bound ones
        context = {**self.extra, **_whitelist(extra)}
        kwargs["extra"] = {**extra, **context}
        if not context:
            return msg, kwargs
        tags = " ".join(f"{k}={context[k]}" for k in CONTEXT_KEYS if k in context)
        return f"[{tags}] {msg}", kwargs


def get_auth_logger(
    *,
    base_logger_name: str = "outlook-mcp.auth",
    operation: str | None = None,
    grant_type: str | None = None,
    correlation_id: str | None = None,
) -> AuthLogAdapter:
    """Return an :class:`AuthLogAdapter` for *base_logger_name*."""
    return AuthLogAdapter(
        logging.getLogger(base_logger_name),
        {
            "operation": operation,
            "grant_type": grant_type,
            "correlation_id": correlation_id,
        },
    )
