"""Clock abstraction for testable time handling in the token lifecycle.

This module defines a `Clock` protocol representing callables that return the
current UNIX timestamp as ``float``.  All expiry decisions inside the
``outlook_mcp.auth`` package MUST depend on an injected ``Clock`` instance
rather than calling ``time.time()`` directly.

Token records persist ``expires_at`` in **milliseconds** since the epoch, so
:func:`now_ms` is provided to convert a clock reading.

Example
-------
>>> from outlook_mcp.auth.clock import default_clock, now_ms
>>> isinstance(default_clock(), float)
True
>>> now_ms(lambda: 1.5)
1500
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Callable protocol returning *seconds* since the UNIX epoch."""

    def __call__(self) -> float: ...


def default_clock() -> float:
    """Default implementation that delegates to ``time.time()``."""
    return time.time()


def now_ms(clock: Clock = default_clock) -> int:
    """Return the current time of *clock* in integer milliseconds."""
    return int(clock() * 1000)
