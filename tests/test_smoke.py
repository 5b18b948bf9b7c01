"""Smoke tests for the pygame UI.

These tests verify that the application's main loop can initialise and
execute a handful of frames without crashing when the SDL dummy video
driver is used.  They do not check rendering correctness; they ensure the
integration points between pygame and the application do not raise in a
headless environment.
"""

from __future__ import annotations

import os
from pathlib import Path

# Use the dummy drivers before importing pygame or the application
os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")
os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")


def test_app_runs_headless(tmp_path: Path) -> None:
    """Ensure the application can start and run a few frames headlessly."""
    # Import inside the test so that environment variables take effect
    from redact_ted.app import run
    from redact_ted.config import EXPORT_PATH_ENV, load_settings

    settings = load_settings({EXPORT_PATH_ENV: str(tmp_path / "targetRects.json")})
    exit_code = run(max_frames=3, settings=settings)
    assert exit_code == 0


def test_app_falls_back_to_demo_masks_on_a_broken_catalog(tmp_path: Path) -> None:
    from redact_ted.app import run
    from redact_ted.config import MASKS_PATH_ENV, load_settings

    bad = tmp_path / "masks.json"
    bad.write_text("{not json", encoding="utf-8")
    settings = load_settings({MASKS_PATH_ENV: str(bad)})
    assert run(max_frames=3, settings=settings) == 0
