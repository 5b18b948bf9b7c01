from __future__ import annotations

import pytest

from redact_ted.geometry import (
    NormalizedPoint,
    Rect,
    ScreenPoint,
    clamp_to_document,
    compute_layout,
    rect_from_drag,
    rect_to_screen,
    to_document,
    to_screen,
)


def test_layout_contain_fit_centers_wide_container() -> None:
    layout = compute_layout(1000, 800, 400, 400)
    assert layout is not None
    assert layout.scale == pytest.approx(2.0)
    assert layout.draw_width == pytest.approx(800.0)
    assert layout.draw_height == pytest.approx(800.0)
    assert layout.offset_x == pytest.approx(100.0)
    assert layout.offset_y == pytest.approx(0.0)


def test_layout_contain_fit_centers_tall_container() -> None:
    layout = compute_layout(300, 900, 600, 400)
    assert layout is not None
    assert layout.scale == pytest.approx(0.5)
    assert (layout.draw_width, layout.draw_height) == pytest.approx((300.0, 200.0))
    assert layout.offset_x == pytest.approx(0.0)
    assert layout.offset_y == pytest.approx(350.0)


@pytest.mark.parametrize("sizes", [(0, 600, 400, 400), (800, 600, 0, 400), (800, -1, 400, 400)])
def test_layout_is_none_for_empty_sizes(sizes: tuple[int, int, int, int]) -> None:
    assert compute_layout(*sizes) is None


@pytest.mark.parametrize(
    "container,image",
    [((960, 720), (850, 1100)), ((1280, 720), (400, 300)), ((333, 777), (1024, 1024))],
)
def test_round_trip_inside_document(container: tuple[int, int], image: tuple[int, int]) -> None:
    layout = compute_layout(*container, *image)
    assert layout is not None
    for fx in (0.0, 0.13, 0.5, 0.87, 1.0):
        for fy in (0.0, 0.31, 0.5, 1.0):
            p = ScreenPoint(layout.offset_x + fx * layout.draw_width, layout.offset_y + fy * layout.draw_height)
            doc = to_document(p, layout)
            assert doc is not None
            back = to_screen(doc, layout)
            assert back.x == pytest.approx(p.x)
            assert back.y == pytest.approx(p.y)


def test_points_outside_displayed_document_map_to_none() -> None:
    layout = compute_layout(1000, 800, 400, 400)
    assert layout is not None
    # Letterbox margins and beyond the bottom edge.
    assert to_document(ScreenPoint(50, 400), layout) is None
    assert to_document(ScreenPoint(950, 400), layout) is None
    assert to_document(ScreenPoint(500, 800.5), layout) is None
    assert to_document(ScreenPoint(500, -0.5), layout) is None


def test_document_edges_are_inside() -> None:
    layout = compute_layout(1000, 800, 400, 400)
    assert layout is not None
    assert to_document(ScreenPoint(100, 0), layout) == NormalizedPoint(0.0, 0.0)
    assert to_document(ScreenPoint(900, 800), layout) == NormalizedPoint(1.0, 1.0)


def test_rect_contains_is_inclusive_on_all_edges() -> None:
    r = Rect(0.25, 0.25, 0.5, 0.25)
    assert r.contains(0.25, 0.25)
    assert r.contains(0.75, 0.5)
    assert not r.contains(0.75001, 0.5)
    assert not r.contains(0.5, 0.24999)


def test_negative_rect_size_is_rejected() -> None:
    with pytest.raises(ValueError):
        Rect(0.0, 0.0, -0.1, 0.1)


def test_rect_from_drag_normalizes_direction_and_allows_zero_area() -> None:
    r = rect_from_drag(NormalizedPoint(0.75, 0.5), NormalizedPoint(0.25, 0.125))
    assert r == Rect(0.25, 0.125, 0.5, 0.375)

    still = rect_from_drag(NormalizedPoint(0.4, 0.4), NormalizedPoint(0.4, 0.4))
    assert still.width == 0.0 and still.height == 0.0


def test_rect_to_screen_and_clamp_to_document() -> None:
    layout = compute_layout(1000, 800, 400, 400)
    assert layout is not None
    assert rect_to_screen(Rect(0.25, 0.5, 0.5, 0.25), layout) == Rect(300.0, 400.0, 400.0, 200.0)
    assert clamp_to_document(ScreenPoint(0, 900), layout) == NormalizedPoint(0.0, 1.0)
