"""Logging setup and secret masking.

The stdio MCP transport owns ``stdout``; every log record therefore goes to
``stderr``.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(level: int = logging.WARNING, stream: TextIO | None = None) -> logging.Logger:
    """Configure the ``outlook-mcp`` logger hierarchy and return its root."""
    root = logging.getLogger("outlook-mcp")
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    root.addHandler(handler)
    root.propagate = False
    return root


def mask_sensitive(value: str | None, keep_chars: int = 4) -> str:
    """Return *value* with all but the first *keep_chars* characters masked."""
    if not value:
        return ""
    if len(value) <= keep_chars * 2:
        return "*" * len(value)
    return f"{value[:keep_chars]}{'*' * (len(value) - keep_chars)}"
