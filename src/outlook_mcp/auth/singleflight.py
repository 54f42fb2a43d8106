"""Request coalescing for async operations.

:class:`SingleFlight` collapses concurrent calls into one shared execution:
the first caller starts the operation as an :class:`asyncio.Task`, every
caller that arrives while it is pending awaits the *same* task and observes
the identical result or exception.  Once the task settles the slot is freed
and the next call starts a fresh operation.

Waiters attach through :func:`asyncio.shield`, so cancelling one waiter never
aborts the shared operation.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, TypeVar

_T = TypeVar("_T")

_LOG = logging.getLogger("outlook-mcp.auth.singleflight")


class SingleFlight(Generic[_T]):
    """Lock-guarded handle on at most one pending operation."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = asyncio.Lock()
        self._task: asyncio.Task[_T] | None = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None

    async def run(self, fn: Callable[[], Awaitable[_T]]) -> _T:
        """Run *fn* or join the execution already in flight."""
        async with self._lock:
            task = self._task
            if task is None:
                task = asyncio.ensure_future(fn())
                self._task = task
                task.add_done_callback(self._release)
            else:
                _LOG.debug("%s already in flight, joining", self.name)
        return await asyncio.shield(task)

    def _release(self, task: asyncio.Task[_T]) -> None:
        if self._task is task:
            self._task = None
        # Mark the exception retrieved when every waiter was cancelled.
        if not task.cancelled():
            task.exception()
