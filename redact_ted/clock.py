from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    The frame loop depends on this interface rather than calling real time
    directly, so round timing can be driven by a fake in tests.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class FrameTimer:
    """Turns successive clock readings into per-frame ``dt`` values."""

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._last_s: float | None = None

    def tick(self) -> float:
        """Return seconds since the previous tick (0.0 on the first call, never negative)."""
        now = self._clock.now()
        if self._last_s is None:
            self._last_s = now
            return 0.0
        dt = now - self._last_s
        self._last_s = now
        return max(0.0, dt)
