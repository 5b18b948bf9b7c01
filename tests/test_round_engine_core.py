from __future__ import annotations

import os
from dataclasses import dataclass, field

os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

import pytest

from redact_ted.geometry import Rect, ScreenPoint
from redact_ted.masks import RedactionMask
from redact_ted.round_engine import (
    ButtonAction,
    DocumentDraw,
    LabelRole,
    LoadedCallback,
    RedactionRound,
    RoundConfig,
    RoundPhase,
    StrokeDisc,
    UiDraw,
)
from redact_ted.scoring import TIME_BONUS_WEIGHTS

IMAGE_SIZE = (400, 400)
TARGET = Rect(0.25, 0.25, 0.5, 0.5)


@dataclass
class FakeLoader:
    """Answers immediately unless ``deferred``; then ``finish()`` delivers."""

    deferred: bool = False
    sizes: dict[str, tuple[int, int]] = field(default_factory=dict)
    requests: list[str] = field(default_factory=list)
    pending: list[tuple[str, LoadedCallback]] = field(default_factory=list)

    def request(self, image_src: str, on_loaded: LoadedCallback) -> None:
        self.requests.append(image_src)
        if self.deferred:
            self.pending.append((image_src, on_loaded))
            return
        on_loaded(image_src, *self.sizes.get(image_src, IMAGE_SIZE))

    def finish(self) -> None:
        pending, self.pending = self.pending, []
        for src, cb in pending:
            cb(src, *self.sizes.get(src, IMAGE_SIZE))


@dataclass
class RecordingCompositor:
    calls: list[str] = field(default_factory=list)
    document: DocumentDraw | None = None
    strokes: tuple[StrokeDisc, ...] = ()
    ui: UiDraw | None = None

    def clear(self) -> None:
        self.calls.append("clear")

    def draw_document(self, request: DocumentDraw | None) -> None:
        self.calls.append("document")
        self.document = request

    def draw_strokes(self, discs: tuple[StrokeDisc, ...]) -> None:
        self.calls.append("strokes")
        self.strokes = discs

    def draw_ui(self, request: UiDraw) -> None:
        self.calls.append("ui")
        self.ui = request


def _masks(n: int = 3) -> list[RedactionMask]:
    return [
        RedactionMask(prompt=f"Hide secret {i}", image_src=f"doc{i}.png", target_rects=(TARGET,))
        for i in range(n)
    ]


def _engine(
    *,
    loader: FakeLoader | None = None,
    masks: list[RedactionMask] | None = None,
    config: RoundConfig | None = None,
    on_exit=None,
    viewport: tuple[int, int] = IMAGE_SIZE,
) -> RedactionRound:
    engine = RedactionRound(
        masks=masks or _masks(),
        loader=loader or FakeLoader(),
        seed=42,
        config=config,
        on_exit=on_exit,
    )
    engine.set_viewport(*viewport)
    return engine


def _paint_target_interior(engine: RedactionRound, *, scale: float = 1.0, offset: float = 0.0) -> None:
    # Image pixels 106..294 keep the 4px marker discs inside the 100..300 target.
    first = True
    for y in range(106, 295, 4):
        for x in range(106, 295, 4):
            p = ScreenPoint(x * scale + offset, y * scale)
            if first:
                assert engine.pointer_down(p)
                first = False
            else:
                assert engine.pointer_move(p)
    engine.pointer_up()


def test_starts_in_prompt_and_requests_the_first_document() -> None:
    loader = FakeLoader()
    engine = _engine(loader=loader)
    assert engine.phase is RoundPhase.PROMPT
    assert loader.requests == [engine.current_mask.image_src]
    assert engine.document_ready
    assert engine.raster is not None
    assert (engine.raster.width, engine.raster.height) == IMAGE_SIZE


def test_ready_moves_to_redacting_with_a_full_timer() -> None:
    engine = _engine()
    assert engine.press_ready() is True
    st = engine.state
    assert st.phase is RoundPhase.REDACTING
    assert st.timer_s == pytest.approx(30.0)
    assert engine.strokes == ()


def test_document_not_ready_ignores_input_and_render() -> None:
    loader = FakeLoader(deferred=True)
    engine = _engine(loader=loader)
    compositor = RecordingCompositor()

    assert engine.document_ready is False
    assert engine.press_ready() is False
    assert engine.pointer_down(ScreenPoint(200, 140)) is False
    engine.update(1.0)
    assert engine.render(compositor) is False
    assert compositor.calls == []

    loader.finish()
    assert engine.document_ready
    assert engine.render(compositor) is True


def test_timer_expiry_scores_exactly_once_on_the_last_tick() -> None:
    engine = _engine()
    engine.press_ready()

    for tick in range(1, 31):
        engine.update(1.0)
        if tick < 30:
            assert engine.phase is RoundPhase.REDACTING, tick
    assert engine.phase is RoundPhase.SCORING
    assert engine.state.timer_s == 0.0
    assert engine.deck.index == 1

    total = engine.total_score
    for _ in range(5):
        engine.update(1.0)
    assert engine.total_score == total
    assert engine.deck.index == 1


def test_timer_never_goes_negative_on_overshoot() -> None:
    engine = _engine()
    engine.press_ready()
    engine.update(29.5)
    engine.update(10.0)
    assert engine.state.timer_s == 0.0
    assert engine.phase is RoundPhase.SCORING


def test_negative_dt_does_not_add_time() -> None:
    engine = _engine()
    engine.press_ready()
    engine.update(-5.0)
    assert engine.state.timer_s == pytest.approx(30.0)


def test_done_with_nothing_painted_scores_zero_and_counts_misses() -> None:
    engine = _engine()
    engine.press_ready()
    assert engine.press_done() is True
    b = engine.last_breakdown
    assert b is not None
    assert b.correct == 0 and b.false_positive == 0
    # 100..300 step 4 on each axis.
    assert b.missed == 50 * 50
    assert engine.round_score == 0


def test_painting_inside_the_target_scores_positive() -> None:
    engine = _engine()
    engine.press_ready()
    _paint_target_interior(engine)
    engine.press_done()

    b = engine.last_breakdown
    assert b is not None
    assert b.false_positive == 0
    assert b.correct > 0
    assert engine.round_score > 0
    assert engine.total_score == engine.round_score


def test_same_strokes_score_the_same_at_any_window_size() -> None:
    small = _engine(viewport=(400, 400))
    small.press_ready()
    _paint_target_interior(small)
    small.press_done()

    # 1000x800 window: scale 2, document centered with a 100px margin.
    large = _engine(viewport=(1000, 800))
    large.press_ready()
    _paint_target_interior(large, scale=2.0, offset=100.0)
    large.press_done()

    assert large.strokes == small.strokes
    assert large.last_breakdown == small.last_breakdown


def test_points_outside_the_document_are_discarded() -> None:
    engine = _engine(viewport=(1000, 800))
    engine.press_ready()
    assert engine.pointer_down(ScreenPoint(50, 400)) is False
    assert engine.pointer_move(ScreenPoint(120, 400)) is True
    assert engine.pointer_move(ScreenPoint(950, 400)) is False
    assert len(engine.strokes) == 1
    for p in engine.strokes:
        assert 0.0 <= p.x <= 1.0 and 0.0 <= p.y <= 1.0


def test_moves_without_a_held_pointer_do_not_paint() -> None:
    engine = _engine()
    engine.press_ready()
    assert engine.pointer_move(ScreenPoint(200, 200)) is False
    engine.pointer_down(ScreenPoint(200, 200))
    engine.pointer_up()
    assert engine.pointer_move(ScreenPoint(210, 200)) is False
    assert len(engine.strokes) == 1


def test_strokes_only_in_redacting() -> None:
    engine = _engine()
    assert engine.pointer_down(ScreenPoint(200, 250)) is False
    assert engine.strokes == ()


def test_buttons_drive_the_round() -> None:
    engine = _engine(viewport=(800, 600))

    (ready,) = engine.buttons()
    assert ready.action is ButtonAction.READY
    assert engine.pointer_down(ScreenPoint(ready.rect.x + 5, ready.rect.y + 5))
    assert engine.phase is RoundPhase.REDACTING

    (done,) = engine.buttons()
    assert done.action is ButtonAction.DONE
    assert engine.pointer_down(ScreenPoint(done.rect.x + 1, done.rect.y + 1))
    assert engine.phase is RoundPhase.SCORING
    assert engine.strokes == ()

    actions = [b.action for b in engine.buttons()]
    assert actions == [ButtonAction.CONTINUE, ButtonAction.EXIT]


def test_continue_loads_the_next_mask_and_resets_round_state() -> None:
    loader = FakeLoader()
    engine = _engine(loader=loader)
    first = engine.current_mask
    engine.press_ready()
    engine.pointer_down(ScreenPoint(200, 200))
    engine.press_done()

    assert engine.press_continue() is True
    assert engine.phase is RoundPhase.PROMPT
    assert engine.current_mask is not first
    assert engine.current_mask is engine.deck.current
    assert loader.requests[-1] == engine.current_mask.image_src
    assert engine.strokes == ()
    assert engine.round_score == 0
    assert engine.raster is not None and not engine.raster.is_painted(200, 200)


def test_exit_resets_the_session_and_notifies_once() -> None:
    exits: list[int] = []
    engine = _engine(on_exit=lambda: exits.append(1))
    engine.press_ready()
    _paint_target_interior(engine)
    engine.press_done()
    assert engine.total_score > 0

    assert engine.press_exit() is True
    assert engine.total_score == 0
    assert engine.round_score == 0
    assert engine.phase is RoundPhase.PROMPT
    assert engine.strokes == ()
    assert exits == [1]

    assert engine.press_exit() is False
    assert exits == [1]


def test_invalid_triggers_are_ignored() -> None:
    engine = _engine()
    assert engine.press_done() is False
    assert engine.press_continue() is False
    assert engine.press_exit() is False
    engine.press_ready()
    assert engine.press_ready() is False
    assert engine.press_continue() is False
    engine.press_done()
    assert engine.press_done() is False
    assert engine.press_ready() is False


def test_stale_document_load_is_ignored() -> None:
    loader = FakeLoader(deferred=True)
    engine = _engine(loader=loader)
    assert engine.document_loaded("some-other.png", 800, 600) is False
    assert engine.document_ready is False
    loader.finish()
    assert engine.document_ready is True

def test_repeat_load_callback_keeps_painted_coverage() -> None:
    engine = _engine()
    engine.press_ready()
    assert engine.pointer_down(ScreenPoint(200, 200))
    raster = engine.raster
    assert raster is not None and raster.is_painted(200, 200)

    src = engine.current_mask.image_src
    assert engine.document_loaded(src, *IMAGE_SIZE) is False
    assert engine.document_loaded(src, 640, 480) is False
    assert engine.raster is raster
    assert (raster.width, raster.height) == IMAGE_SIZE
    assert raster.is_painted(200, 200)
    assert len(engine.strokes) == 1



def test_raster_follows_the_natural_image_size() -> None:
    masks = _masks(2)
    loader = FakeLoader(sizes={"doc0.png": (400, 400), "doc1.png": (640, 480)})
    engine = _engine(loader=loader, masks=masks)
    for _ in range(2):
        assert engine.raster is not None
        assert (engine.raster.width, engine.raster.height) == loader.sizes[engine.current_mask.image_src]
        engine.press_ready()
        engine.press_done()
        engine.press_continue()


def test_redraw_only_when_the_displayed_timer_changes() -> None:
    engine = _engine()
    compositor = RecordingCompositor()
    engine.press_ready()
    assert engine.render(compositor) is True
    assert engine.render(compositor) is False

    engine.update(0.3)  # 29.7 still shows 30
    assert engine.needs_redraw is False
    engine.update(0.8)  # 28.9 shows 29
    assert engine.needs_redraw is True
    assert engine.render(compositor) is True
    assert compositor.ui is not None
    assert compositor.ui.labels[0].text == "Time: 29"


def test_render_contract_per_phase() -> None:
    engine = _engine(viewport=(800, 600))
    compositor = RecordingCompositor()

    assert engine.render(compositor)
    assert compositor.calls == ["clear", "document", "strokes", "ui"]
    assert compositor.document is None
    assert compositor.ui is not None
    assert [l.role for l in compositor.ui.labels] == [LabelRole.PROMPT]
    assert compositor.ui.labels[0].text == engine.current_mask.prompt

    engine.press_ready()
    engine.pointer_down(ScreenPoint(400, 300))
    assert engine.render(compositor)
    assert compositor.document is not None
    assert compositor.document.image_src == engine.current_mask.image_src
    assert compositor.document.rect == Rect(100.0, 0.0, 600.0, 600.0)
    assert len(compositor.strokes) == 1
    assert compositor.strokes[0].center == ScreenPoint(400.0, 300.0)
    assert compositor.strokes[0].radius == pytest.approx(0.012 * 600)
    assert [l.role for l in compositor.ui.labels] == [LabelRole.TIMER]

    engine.press_done()
    assert engine.render(compositor)
    assert compositor.document is not None
    assert len(compositor.strokes) == 1
    assert [l.role for l in compositor.ui.labels] == [LabelRole.ROUND_SCORE, LabelRole.TOTAL_SCORE]
    assert compositor.ui.labels[1].text == f"Total Score: {engine.total_score}"


def test_resize_invalidates_layout_before_next_input() -> None:
    engine = _engine(viewport=(400, 400))
    engine.press_ready()
    engine.set_viewport(1000, 800)
    layout = engine.layout
    assert layout is not None
    assert layout.offset_x == pytest.approx(100.0)
    assert engine.pointer_down(ScreenPoint(500, 400))
    assert engine.strokes[-1].x == pytest.approx(0.5)
    assert engine.strokes[-1].y == pytest.approx(0.5)


def test_debug_outlines_target_rects() -> None:
    engine = _engine(viewport=(400, 400))
    engine.toggle_debug()
    frame = engine.frame()
    assert frame is not None
    assert frame.ui.outlines == (Rect(100.0, 100.0, 200.0, 200.0),)
    assert engine.snapshot().debug is True


def test_time_bonus_rewards_finishing_early() -> None:
    cfg = RoundConfig(weights=TIME_BONUS_WEIGHTS)
    early = _engine(config=cfg)
    early.press_ready()
    _paint_target_interior(early)
    early.update(15.0)
    early.press_done()

    late = _engine(config=cfg)
    late.press_ready()
    _paint_target_interior(late)
    late.update(30.0)

    assert early.last_breakdown is not None and late.last_breakdown is not None
    assert early.last_breakdown.raw == pytest.approx(late.last_breakdown.raw * 1.25)


def test_reset_session_starts_a_new_game() -> None:
    engine = _engine()
    engine.press_ready()
    _paint_target_interior(engine)
    engine.press_done()
    engine.press_continue()
    engine.reset_session()

    st = engine.state
    assert st.phase is RoundPhase.PROMPT
    assert st.total_score == 0 and st.round_score == 0
    assert st.current_mask_index == 0
    assert engine.current_mask is engine.deck.current


@pytest.mark.parametrize(
    "config",
    [RoundConfig(time_limit_s=0.0), RoundConfig(marker_radius_norm=0.0), RoundConfig(sample_step=0)],
)
def test_bad_config_is_rejected(config: RoundConfig) -> None:
    with pytest.raises(ValueError):
        RedactionRound(masks=_masks(), loader=FakeLoader(), seed=1, config=config)
