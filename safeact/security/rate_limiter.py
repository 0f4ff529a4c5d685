"""Security layer — Sliding window rate limiter.

In-memory limiter keyed by an arbitrary string (``network.request``).
Calls are recorded explicitly with ``record()`` so that only requests that
actually went out count against the window.

Usage::

    limiter = SlidingWindowLimiter(limit=30, window_seconds=60)
    if not limiter.allow("network.request"):
        ...
    limiter.record("network.request")
"""

from __future__ import annotations

import time
from collections import deque
from typing import Callable


class SlidingWindowLimiter:
    def __init__(
        self,
        limit: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._limit = limit
        self._window = window_seconds
        self._clock = clock
        self._timestamps: dict[str, deque[float]] = {}

    @property
    def limit(self) -> int:
        return self._limit

    def _prune(self, key: str, now: float) -> deque[float]:
        stamps = self._timestamps.setdefault(key, deque())
        cutoff = now - self._window
        while stamps and stamps[0] <= cutoff:
            stamps.popleft()
        return stamps

    def allow(self, key: str) -> bool:
        """Return True if another call for *key* fits in the current window."""
        return len(self._prune(key, self._clock())) < self._limit

    def record(self, key: str) -> None:
        now = self._clock()
        self._prune(key, now).append(now)

    def remaining(self, key: str) -> int:
        return max(0, self._limit - len(self._prune(key, self._clock())))
