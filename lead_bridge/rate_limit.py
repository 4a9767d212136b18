"""Pacing for CRM requests so bulk runs stay under the webhook quota."""
from __future__ import annotations

import time
from typing import Callable, Optional


class RateLimiter:
    """Enforce a minimum interval between consecutive calls."""

    def __init__(
        self,
        calls_per_minute: Optional[float],
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._interval = 60.0 / float(calls_per_minute) if calls_per_minute else 0.0
        self._clock = clock
        self._sleep = sleep
        self._next_available = 0.0

    @property
    def interval(self) -> float:
        return self._interval

    def acquire(self) -> None:
        if self._interval <= 0:
            return
        now = self._clock()
        if now < self._next_available:
            self._sleep(self._next_available - now)
            now = self._clock()
        self._next_available = now + self._interval
