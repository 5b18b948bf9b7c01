from __future__ import annotations

import pygame

from .geometry import NormalizedPoint

DEFAULT_MARKER_RADIUS_NORM = 0.012

_PAINT = (255, 255, 255, 255)
_EMPTY = (0, 0, 0, 0)


class CoverageRaster:
    """Off-screen alpha buffer at the document's natural pixel resolution.

    Painted strokes accumulate here for scoring. Sizing follows the image,
    never the window, so the same stroke path scores the same at any
    viewport size.
    """

    def __init__(
        self,
        width: int,
        height: int,
        *,
        marker_radius_norm: float = DEFAULT_MARKER_RADIUS_NORM,
    ) -> None:
        if marker_radius_norm <= 0:
            raise ValueError("marker_radius_norm must be > 0")
        self._marker_radius_norm = float(marker_radius_norm)
        self._surface = self._new_surface(width, height)

    @staticmethod
    def _new_surface(width: int, height: int) -> pygame.Surface:
        if width <= 0 or height <= 0:
            raise ValueError("raster width and height must be > 0")
        surface = pygame.Surface((int(width), int(height)), pygame.SRCALPHA, 32)
        surface.fill(_EMPTY)
        return surface

    @property
    def width(self) -> int:
        return self._surface.get_width()

    @property
    def height(self) -> int:
        return self._surface.get_height()

    @property
    def marker_radius_norm(self) -> float:
        return self._marker_radius_norm

    @property
    def marker_radius_px(self) -> float:
        return self._marker_radius_norm * self.width

    @property
    def surface(self) -> pygame.Surface:
        return self._surface

    def clear(self) -> None:
        self._surface.fill(_EMPTY)

    def resize(self, width: int, height: int) -> None:
        """Match a newly loaded document; the old coverage is discarded."""
        self._surface = self._new_surface(width, height)

    def paint(self, p: NormalizedPoint) -> None:
        center = (p.x * self.width, p.y * self.height)
        pygame.draw.circle(self._surface, _PAINT, center, self.marker_radius_px)

    def is_painted(self, x: int, y: int) -> bool:
        if x < 0 or y < 0 or x >= self.width or y >= self.height:
            return False
        return self._surface.get_at((x, y)).a != 0
