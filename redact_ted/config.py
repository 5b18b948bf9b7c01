from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .round_engine import RoundConfig
from .scoring import BASE_WEIGHTS, TIME_BONUS_WEIGHTS, ScoringWeights

MASKS_PATH_ENV = "REDACT_TED_MASKS_PATH"
EXPORT_PATH_ENV = "REDACT_TED_EXPORT_PATH"
LOG_LEVEL_ENV = "REDACT_TED_LOG_LEVEL"
SCORING_ENV = "REDACT_TED_SCORING"
TIME_LIMIT_ENV = "REDACT_TED_TIME_LIMIT_S"

WEIGHT_SETS: dict[str, ScoringWeights] = {
    "base": BASE_WEIGHTS,
    "time_bonus": TIME_BONUS_WEIGHTS,
}

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Settings:
    round: RoundConfig
    masks_path: Path | None  # None: built-in demo catalog
    export_path: Path
    log_level: int


def _as_float(value: str | None, fallback: float) -> float:
    if value is None:
        return fallback
    try:
        return float(value)
    except ValueError:
        return fallback


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Read settings from the environment, falling back to defaults per key."""

    env = os.environ if environ is None else environ

    masks_raw = env.get(MASKS_PATH_ENV, "").strip()
    masks_path = Path(masks_raw).expanduser() if masks_raw else None

    export_raw = env.get(EXPORT_PATH_ENV, "").strip()
    export_path = Path(export_raw).expanduser() if export_raw else Path.cwd() / "targetRects.json"

    level_name = env.get(LOG_LEVEL_ENV, "INFO").strip().upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    scoring_name = env.get(SCORING_ENV, "base").strip().lower()
    weights = WEIGHT_SETS.get(scoring_name)
    if weights is None:
        logger.warning("unknown %s=%r; using base weights", SCORING_ENV, scoring_name)
        weights = BASE_WEIGHTS

    defaults = RoundConfig()
    time_limit_s = _as_float(env.get(TIME_LIMIT_ENV), defaults.time_limit_s)
    if time_limit_s <= 0:
        time_limit_s = defaults.time_limit_s

    return Settings(
        round=RoundConfig(
            time_limit_s=time_limit_s,
            marker_radius_norm=defaults.marker_radius_norm,
            sample_step=defaults.sample_step,
            weights=weights,
        ),
        masks_path=masks_path,
        export_path=export_path,
        log_level=log_level,
    )
