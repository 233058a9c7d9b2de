"""Time-windowed deduplication ledger."""

from __future__ import annotations

import time
from typing import Callable

import structlog

logger = structlog.get_logger(__name__)


class DedupLedger:
    """Remembers when each dedup key was last sent.

    ``is_duplicate`` and ``mark_sent`` are separate calls, so a caller that
    awaits between them can let an identical alert through twice.  Entries
    are only evicted once the ledger grows past ``cleanup_threshold``.
    """

    def __init__(
        self,
        window_secs: float = 300.0,
        cleanup_threshold: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window_secs = window_secs
        self._cleanup_threshold = cleanup_threshold
        self._clock = clock
        self._last_sent: dict[str, float] = {}

    @property
    def window_secs(self) -> float:
        return self._window_secs

    def __len__(self) -> int:
        return len(self._last_sent)

    def __contains__(self, key: object) -> bool:
        return key in self._last_sent

    def is_duplicate(self, key: str) -> bool:
        """Return True if *key* was sent less than one window ago."""
        last = self._last_sent.get(key)
        if last is None:
            return False
        return self._clock() - last < self._window_secs

    def mark_sent(self, key: str) -> None:
        """Record *key* as sent now, sweeping stale entries when oversized."""
        self._last_sent[key] = self._clock()
        if len(self._last_sent) > self._cleanup_threshold:
            self.evict_expired()

    def evict_expired(self) -> int:
        """Drop every entry at least one window old. Returns the count removed."""
        now = self._clock()
        stale = [
            k for k, ts in self._last_sent.items()
            if now - ts >= self._window_secs
        ]
        for k in stale:
            del self._last_sent[k]
        if stale:
            logger.debug("dedup_ledger_swept", removed=len(stale), remaining=len(self._last_sent))
        return len(stale)
