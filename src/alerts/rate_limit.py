"""Per-tenant fixed-window alert quota."""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from typing import Callable


@dataclass
class RateLimitWindow:
    """Alert count for one tenant until ``reset_at`` (clock seconds)."""

    count: int
    reset_at: float


class TenantRateLimiter:
    """Caps how many alerts each tenant may dispatch per window.

    The window is fixed, not sliding: it opens on the first alert a tenant
    sends and is replaced by a fresh one the first time it is checked after
    ``reset_at``.  ``check_quota`` never counts; ``consume`` does.
    """

    def __init__(
        self,
        limit: int = 100,
        window_secs: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._limit = limit
        self._window_secs = window_secs
        self._clock = clock
        self._windows: dict[str, RateLimitWindow] = {}

    @property
    def limit(self) -> int:
        return self._limit

    def _current_window(self, tenant_id: str) -> RateLimitWindow:
        now = self._clock()
        window = self._windows.get(tenant_id)
        if window is None or now > window.reset_at:
            window = RateLimitWindow(count=0, reset_at=now + self._window_secs)
            self._windows[tenant_id] = window
        return window

    def check_quota(self, tenant_id: str) -> bool:
        """Return True if *tenant_id* may send another alert this window."""
        return self._current_window(tenant_id).count < self._limit

    def consume(self, tenant_id: str) -> None:
        """Count one dispatched alert against *tenant_id*."""
        self._current_window(tenant_id).count += 1

    def window(self, tenant_id: str) -> RateLimitWindow | None:
        """Read-only copy of the tenant's window, if one exists."""
        window = self._windows.get(tenant_id)
        return replace(window) if window is not None else None
