from __future__ import annotations

import json
import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .geometry import Rect

logger = logging.getLogger(__name__)


class MaskCatalogError(ValueError):
    """Raised when a mask catalog file or record is malformed."""


@dataclass(frozen=True, slots=True)
class RedactionMask:
    prompt: str  # e.g. "Remove all traces of Luke"
    image_src: str
    target_rects: tuple[Rect, ...]


class SeededRng:
    """Simple seeded RNG wrapper to keep deterministic streams explicit."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(int(seed))

    def shuffle(self, items: list[Any]) -> None:
        # random.shuffle is an in-place Fisher-Yates: every permutation equally likely.
        self._rng.shuffle(items)


class MaskDeck:
    """Round-robin over a shuffled mask catalog.

    Every mask is presented once per pass. When the pass is exhausted the
    index wraps to 0 and the whole order is reshuffled.
    """

    def __init__(self, masks: Sequence[RedactionMask], *, seed: int) -> None:
        if not masks:
            raise ValueError("mask catalog must not be empty")
        self._rng = SeededRng(seed)
        self._order: list[RedactionMask] = list(masks)
        self._rng.shuffle(self._order)
        self._index = 0
        self._passes = 0

    def __len__(self) -> int:
        return len(self._order)

    @property
    def index(self) -> int:
        return self._index

    @property
    def passes(self) -> int:
        """Number of completed passes (i.e. reshuffles so far)."""
        return self._passes

    @property
    def current(self) -> RedactionMask:
        return self._order[self._index]

    def order(self) -> tuple[RedactionMask, ...]:
        return tuple(self._order)

    def advance(self) -> RedactionMask:
        """Step to the next mask, reshuffling on wrap. Returns the new current mask."""
        self._index += 1
        if self._index >= len(self._order):
            self._index = 0
            self._passes += 1
            self._rng.shuffle(self._order)
            logger.debug("mask deck exhausted after %d masks; reshuffled", len(self._order))
        return self.current

    def restart(self) -> RedactionMask:
        """Back to the first mask of a fresh shuffle (new game)."""
        self._index = 0
        self._rng.shuffle(self._order)
        return self.current


def rect_from_dict(data: object, *, where: str) -> Rect:
    if not isinstance(data, dict):
        raise MaskCatalogError(f"{where}: rect must be an object")
    try:
        x = float(data["x"])
        y = float(data["y"])
        width = float(data["width"])
        height = float(data["height"])
    except (KeyError, TypeError, ValueError) as exc:
        raise MaskCatalogError(f"{where}: rect needs numeric x, y, width, height") from exc
    if width < 0 or height < 0:
        raise MaskCatalogError(f"{where}: rect width/height must be >= 0")
    return Rect(x, y, width, height)


def rect_to_dict(r: Rect) -> dict[str, float]:
    return {"x": float(r.x), "y": float(r.y), "width": float(r.width), "height": float(r.height)}


def mask_from_dict(data: object, *, where: str) -> RedactionMask:
    if not isinstance(data, dict):
        raise MaskCatalogError(f"{where}: mask must be an object")
    prompt = data.get("prompt")
    image_src = data.get("imageSrc")
    raw_rects = data.get("targetRects")
    if not isinstance(prompt, str) or prompt.strip() == "":
        raise MaskCatalogError(f"{where}: missing prompt")
    if not isinstance(image_src, str) or image_src.strip() == "":
        raise MaskCatalogError(f"{where}: missing imageSrc")
    if not isinstance(raw_rects, list):
        raise MaskCatalogError(f"{where}: targetRects must be a list")
    rects = tuple(rect_from_dict(r, where=f"{where}.targetRects[{i}]") for i, r in enumerate(raw_rects))
    return RedactionMask(prompt=prompt, image_src=image_src, target_rects=rects)


def parse_catalog(payload: object, *, base_dir: Path | None = None) -> list[RedactionMask]:
    """Build masks from decoded catalog JSON.

    Relative image paths are resolved against ``base_dir`` (the catalog's
    directory) so catalogs can ship next to their images.
    """

    if not isinstance(payload, list):
        raise MaskCatalogError("catalog must be a list of masks")
    masks: list[RedactionMask] = []
    for i, item in enumerate(payload):
        mask = mask_from_dict(item, where=f"masks[{i}]")
        if base_dir is not None and not mask.image_src.startswith("demo:"):
            src = Path(mask.image_src)
            if not src.is_absolute():
                mask = RedactionMask(
                    prompt=mask.prompt,
                    image_src=str(base_dir / src),
                    target_rects=mask.target_rects,
                )
        masks.append(mask)
    if not masks:
        raise MaskCatalogError("catalog is empty")
    return masks


def load_catalog(path: Path) -> list[RedactionMask]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise MaskCatalogError(f"cannot read mask catalog {path}: {exc}") from exc
    masks = parse_catalog(payload, base_dir=path.parent)
    logger.info("loaded %d masks from %s", len(masks), path)
    return masks


def save_target_rects(rects: Sequence[Rect], path: Path) -> None:
    """Write authored target rects as a JSON list, ready to paste into a catalog."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(f"{path.suffix}.tmp")
    tmp_path.write_text(json.dumps([rect_to_dict(r) for r in rects], indent=2), encoding="utf-8")
    tmp_path.replace(path)
    logger.info("exported %d target rects to %s", len(rects), path)


# Built-in catalog. ``demo:`` sources are rendered procedurally by the app, so
# the game runs without any image assets on disk.
DEMO_MASKS: tuple[RedactionMask, ...] = (
    RedactionMask(
        prompt="Remove all traces of Luke",
        image_src="demo:memo",
        target_rects=(
            Rect(0.12, 0.18, 0.22, 0.035),
            Rect(0.40, 0.42, 0.18, 0.035),
            Rect(0.10, 0.66, 0.30, 0.035),
        ),
    ),
    RedactionMask(
        prompt="Black out every account number",
        image_src="demo:statement",
        target_rects=(
            Rect(0.55, 0.22, 0.30, 0.04),
            Rect(0.55, 0.38, 0.30, 0.04),
        ),
    ),
    RedactionMask(
        prompt="Hide the witness's home address",
        image_src="demo:letter",
        target_rects=(Rect(0.15, 0.12, 0.45, 0.09),),
    ),
    RedactionMask(
        prompt="Redact the names of both informants",
        image_src="demo:report",
        target_rects=(
            Rect(0.20, 0.30, 0.16, 0.035),
            Rect(0.58, 0.30, 0.20, 0.035),
            Rect(0.30, 0.74, 0.16, 0.035),
        ),
    ),
)
