"""Fixed-window request counter keyed by client identity."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(slots=True)
class _Window:
    count: int
    started_at: float


class FixedWindowRateLimiter:
    """Allow *limit* hits per client within each *window_seconds* window.

    A client's window restarts on its first hit after the previous window
    has elapsed.  Windows that have expired are pruned opportunistically so
    the table cannot grow without bound.  A *limit* of zero disables limiting.
    """

    def __init__(
        self,
        limit: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._limit = limit
        self._window = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}

    def hit(self, client: str) -> bool:
        """Record a request from *client*; return *False* if it is over the limit."""
        if self._limit <= 0:
            return True

        now = self._clock()
        window = self._windows.get(client)
        if window is None or now - window.started_at > self._window:
            self._prune(now)
            window = _Window(count=0, started_at=now)
            self._windows[client] = window

        if window.count >= self._limit:
            return False
        window.count += 1
        return True

    def reset(self) -> None:
        self._windows.clear()

    def _prune(self, now: float) -> None:
        expired = [k for k, w in self._windows.items() if now - w.started_at > self._window]
        for key in expired:
            del self._windows[key]
