"""MCP tool response envelopes and auth-error detection."""

from __future__ import annotations

from typing import Any


def make_response(text: str) -> dict[str, Any]:
    """Build a successful MCP tool response."""
    return {"content": [{"type": "text", "text": text}]}


def make_error_response(text: str) -> dict[str, Any]:
    """Build an MCP tool response flagged with ``isError``."""
    return {"isError": True, "content": [{"type": "text", "text": text}]}


def is_auth_error(error: BaseException | None) -> bool:
    """Return True if *error* signals that the user must (re)authenticate."""
    if error is None:
        return False
    if getattr(error, "is_auth_error", False):
        return True
    return str(error).startswith("Authentication required")
