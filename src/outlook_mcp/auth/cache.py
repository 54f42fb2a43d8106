"""Single-slot, in-memory cache of the last known-good token record."""

from __future__ import annotations

from outlook_mcp.auth.clock import Clock, default_clock, now_ms
from outlook_mcp.auth.models import TokenRecord


class TokenCache:
    """Hold one :class:`TokenRecord` and evaluate its expiry.

    A record is considered expired ``buffer_ms`` milliseconds *before* its
    real ``expires_at`` so that a token never expires mid-request.  The
    comparison is inclusive: at exactly ``expires_at - buffer_ms`` the record
    is already expired.
    """

    def __init__(self, *, buffer_ms: int, clock: Clock = default_clock) -> None:
        self.buffer_ms = buffer_ms
        self._clock = clock
        self._record: TokenRecord | None = None

    def get(self) -> TokenRecord | None:
        return self._record

    def set(self, record: TokenRecord) -> None:
        self._record = record

    def clear(self) -> None:
        self._record = None

    def is_expired(self, record: TokenRecord | None) -> bool:
        if record is None or not record.expires_at:
            return True
        return now_ms(self._clock) >= record.expires_at - self.buffer_ms

    def valid(self) -> TokenRecord | None:
        """Return the cached record if it holds a non-expired token."""
        record = self._record
        if record is not None and record.access_token and not self.is_expired(record):
            return record
        return None

    def get_expiry_time(self) -> int:
        """Return the cached ``expires_at`` (ms epoch) or ``0``."""
        if self._record is None:
            return 0
        return self._record.expires_at or 0
