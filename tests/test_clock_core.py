from __future__ import annotations

from dataclasses import dataclass

import pytest

from redact_ted.clock import FrameTimer, RealClock


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


def test_frame_timer_reports_elapsed_time_between_ticks() -> None:
    clock = FakeClock(t=100.0)
    timer = FrameTimer(clock)
    assert timer.tick() == 0.0
    clock.advance(0.25)
    assert timer.tick() == pytest.approx(0.25)
    assert timer.tick() == 0.0
    clock.advance(1.5)
    assert timer.tick() == pytest.approx(1.5)


def test_frame_timer_never_goes_backwards() -> None:
    clock = FakeClock(t=10.0)
    timer = FrameTimer(clock)
    timer.tick()
    clock.advance(-3.0)
    assert timer.tick() == 0.0


def test_real_clock_is_monotonic() -> None:
    clock = RealClock()
    a = clock.now()
    b = clock.now()
    assert b >= a
