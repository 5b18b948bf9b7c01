"""Coverage scoring.

The raster is subsampled on a fixed stride. Every painted sample is either
``correct`` (inside some target rect) or a ``false_positive``; every
unpainted sample inside a target rect's pixel range is ``missed``. The three
counts are combined with a weight set, optionally boosted by a time bonus,
then clamped at zero and rounded to an integer.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from .geometry import Rect

DEFAULT_SAMPLE_STEP = 4


class PaintedRaster(Protocol):
    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...

    def is_painted(self, x: int, y: int) -> bool: ...


@dataclass(frozen=True, slots=True)
class ScoringWeights:
    correct: float
    false_positive: float
    missed: float
    time_bonus: float = 0.0  # max fraction of the subtotal awarded for finishing early


# Canonical weight set.
BASE_WEIGHTS = ScoringWeights(correct=2.0, false_positive=1.5, missed=3.0)

# Alternative set: rewards coverage much more heavily and pays up to +50%
# for time left on the clock.
TIME_BONUS_WEIGHTS = ScoringWeights(correct=20.0, false_positive=1.5, missed=0.5, time_bonus=0.5)


@dataclass(frozen=True, slots=True)
class CoverageCounts:
    correct: int
    false_positive: int
    missed: int


@dataclass(frozen=True, slots=True)
class ScoreBreakdown:
    correct: int
    false_positive: int
    missed: int
    raw: float  # weighted total before clamping/rounding
    score: int


def clamp01(x: float) -> float:
    return 0.0 if x <= 0.0 else 1.0 if x >= 1.0 else float(x)


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _in_any(rects: Sequence[Rect], nx: float, ny: float) -> bool:
    return any(r.contains(nx, ny) for r in rects)


def sample_coverage(
    target_rects: Sequence[Rect],
    raster: PaintedRaster,
    *,
    step: int = DEFAULT_SAMPLE_STEP,
) -> CoverageCounts:
    if step < 1:
        raise ValueError("step must be >= 1")

    w = int(raster.width)
    h = int(raster.height)
    correct = 0
    false_positive = 0
    missed = 0

    for y in range(0, h, step):
        ny = y / h
        for x in range(0, w, step):
            if not raster.is_painted(x, y):
                continue
            if _in_any(target_rects, x / w, ny):
                correct += 1
            else:
                false_positive += 1

    # Each rect is walked on its own, so overlapping rects count their shared
    # unpainted samples once per rect.
    for r in target_rects:
        x0 = max(0, math.floor(r.x * w))
        y0 = max(0, math.floor(r.y * h))
        x1 = min(w, math.ceil(r.right * w))
        y1 = min(h, math.ceil(r.bottom * h))
        for y in range(y0, y1, step):
            for x in range(x0, x1, step):
                if not raster.is_painted(x, y):
                    missed += 1

    return CoverageCounts(correct=correct, false_positive=false_positive, missed=missed)


def weighted_score(
    counts: CoverageCounts,
    *,
    weights: ScoringWeights = BASE_WEIGHTS,
    time_remaining_fraction: float = 0.0,
) -> ScoreBreakdown:
    raw = (
        counts.correct * weights.correct
        - counts.false_positive * weights.false_positive
        - counts.missed * weights.missed
    )
    if weights.time_bonus > 0.0:
        raw += raw * clamp01(time_remaining_fraction) * weights.time_bonus

    return ScoreBreakdown(
        correct=counts.correct,
        false_positive=counts.false_positive,
        missed=counts.missed,
        raw=raw,
        score=max(0, round_half_up(raw)),
    )


def score_coverage(
    target_rects: Sequence[Rect],
    raster: PaintedRaster,
    *,
    weights: ScoringWeights = BASE_WEIGHTS,
    step: int = DEFAULT_SAMPLE_STEP,
    time_remaining_fraction: float = 0.0,
) -> ScoreBreakdown:
    """Sample the raster against the target rects and return the weighted score."""

    counts = sample_coverage(target_rects, raster, step=step)
    return weighted_score(counts, weights=weights, time_remaining_fraction=time_remaining_fraction)
