"""Document-space geometry and the screen <-> document coordinate mapping.

Target rectangles and stroke points live in normalized document space:
0..1 on each axis, origin at the top-left of the document image. The
screen side is whatever pixel space the host delivers pointer events in.
The two are related by a ``Layout`` that fits the image inside its
container ("contain" scaling, centered).
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Rect:
    """Axis-aligned rectangle.

    Normalized units for target rects, pixels for screen hit boxes. Zero
    width or height is allowed.
    """

    x: float
    y: float
    width: float
    height: float

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError("rect width and height must be >= 0")

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def contains(self, px: float, py: float) -> bool:
        # Inclusive on all four edges.
        return self.x <= px <= self.right and self.y <= py <= self.bottom


@dataclass(frozen=True, slots=True)
class NormalizedPoint:
    x: float
    y: float


@dataclass(frozen=True, slots=True)
class ScreenPoint:
    x: float
    y: float


@dataclass(frozen=True, slots=True)
class Layout:
    scale: float
    offset_x: float
    offset_y: float
    draw_width: float
    draw_height: float

    @property
    def document_rect(self) -> Rect:
        return Rect(self.offset_x, self.offset_y, self.draw_width, self.draw_height)


def compute_layout(
    container_width: float,
    container_height: float,
    image_width: float,
    image_height: float,
) -> Layout | None:
    """Fit an image inside a container, preserving aspect ratio, centered.

    Returns None when either size is empty; there is nothing to map onto.
    """

    if container_width <= 0 or container_height <= 0:
        return None
    if image_width <= 0 or image_height <= 0:
        return None

    scale = min(container_width / image_width, container_height / image_height)
    draw_width = image_width * scale
    draw_height = image_height * scale
    return Layout(
        scale=scale,
        offset_x=(container_width - draw_width) / 2.0,
        offset_y=(container_height - draw_height) / 2.0,
        draw_width=draw_width,
        draw_height=draw_height,
    )


def to_document(p: ScreenPoint, layout: Layout) -> NormalizedPoint | None:
    """Screen pixels -> normalized document point, or None outside the document."""

    x = (p.x - layout.offset_x) / layout.draw_width
    y = (p.y - layout.offset_y) / layout.draw_height
    if x < 0.0 or x > 1.0 or y < 0.0 or y > 1.0:
        return None
    return NormalizedPoint(x, y)


def to_screen(p: NormalizedPoint, layout: Layout) -> ScreenPoint:
    return ScreenPoint(
        p.x * layout.draw_width + layout.offset_x,
        p.y * layout.draw_height + layout.offset_y,
    )


def rect_to_screen(r: Rect, layout: Layout) -> Rect:
    return Rect(
        r.x * layout.draw_width + layout.offset_x,
        r.y * layout.draw_height + layout.offset_y,
        r.width * layout.draw_width,
        r.height * layout.draw_height,
    )


def rect_from_drag(start: NormalizedPoint, end: NormalizedPoint) -> Rect:
    """Rectangle spanned by a drag gesture; zero-area if the pointer never moved."""

    return Rect(
        x=min(start.x, end.x),
        y=min(start.y, end.y),
        width=abs(end.x - start.x),
        height=abs(end.y - start.y),
    )


def clamp_to_document(p: ScreenPoint, layout: Layout) -> NormalizedPoint:
    """Like ``to_document`` but pins out-of-bounds input to the nearest edge."""

    x = (p.x - layout.offset_x) / layout.draw_width
    y = (p.y - layout.offset_y) / layout.draw_height
    return NormalizedPoint(min(1.0, max(0.0, x)), min(1.0, max(0.0, y)))
