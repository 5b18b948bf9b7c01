"""Redaction round engine: Prompt -> Redacting -> Scoring -> next round.

The engine never touches pixels on screen. It turns pointer input into
document-space strokes, keeps the coverage raster in sync, scores rounds,
and hands a compositor phase-appropriate draw requests. Everything here is
driven from outside (``update(dt)``, pointer calls, loader callbacks), so it
runs headless in tests.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Protocol

from .coverage import DEFAULT_MARKER_RADIUS_NORM, CoverageRaster
from .geometry import (
    Layout,
    NormalizedPoint,
    Rect,
    ScreenPoint,
    compute_layout,
    rect_to_screen,
    to_document,
    to_screen,
)
from .masks import MaskDeck, RedactionMask
from .scoring import BASE_WEIGHTS, DEFAULT_SAMPLE_STEP, ScoreBreakdown, ScoringWeights, score_coverage

logger = logging.getLogger(__name__)

BUTTON_WIDTH = 140
BUTTON_HEIGHT = 40


class RoundPhase(str, Enum):
    PROMPT = "prompt"
    REDACTING = "redacting"
    SCORING = "scoring"


class RoundTrigger(str, Enum):
    READY = "ready"
    DONE = "done"
    TIMER_EXPIRED = "timer_expired"
    CONTINUE = "continue"
    EXIT = "exit"


_TRANSITIONS: dict[tuple[RoundPhase, RoundTrigger], RoundPhase] = {
    (RoundPhase.PROMPT, RoundTrigger.READY): RoundPhase.REDACTING,
    (RoundPhase.REDACTING, RoundTrigger.DONE): RoundPhase.SCORING,
    (RoundPhase.REDACTING, RoundTrigger.TIMER_EXPIRED): RoundPhase.SCORING,
    (RoundPhase.SCORING, RoundTrigger.CONTINUE): RoundPhase.PROMPT,
    (RoundPhase.SCORING, RoundTrigger.EXIT): RoundPhase.PROMPT,
}


class ButtonAction(str, Enum):
    READY = "ready"
    DONE = "done"
    CONTINUE = "continue"
    EXIT = "exit"


class LabelRole(str, Enum):
    PROMPT = "prompt"
    TIMER = "timer"
    ROUND_SCORE = "round_score"
    TOTAL_SCORE = "total_score"


@dataclass(frozen=True, slots=True)
class RoundConfig:
    time_limit_s: float = 30.0
    marker_radius_norm: float = DEFAULT_MARKER_RADIUS_NORM
    sample_step: int = DEFAULT_SAMPLE_STEP
    weights: ScoringWeights = BASE_WEIGHTS


@dataclass(frozen=True, slots=True)
class RoundState:
    phase: RoundPhase
    timer_s: float
    time_limit_s: float
    round_score: int
    total_score: int
    current_mask_index: int


@dataclass(frozen=True, slots=True)
class Button:
    action: ButtonAction
    text: str
    rect: Rect  # screen pixels

    def hit(self, p: ScreenPoint) -> bool:
        return self.rect.contains(p.x, p.y)


@dataclass(frozen=True, slots=True)
class Label:
    role: LabelRole
    text: str
    x: float
    y: float
    centered: bool = False


@dataclass(frozen=True, slots=True)
class DocumentDraw:
    image_src: str
    rect: Rect  # screen pixels


@dataclass(frozen=True, slots=True)
class StrokeDisc:
    center: ScreenPoint
    radius: float


@dataclass(frozen=True, slots=True)
class UiDraw:
    phase: RoundPhase
    labels: tuple[Label, ...]
    buttons: tuple[Button, ...]
    outlines: tuple[Rect, ...] = ()  # debug: target rects in screen pixels


@dataclass(frozen=True, slots=True)
class RenderFrame:
    phase: RoundPhase
    document: DocumentDraw | None
    strokes: tuple[StrokeDisc, ...]
    ui: UiDraw


@dataclass(frozen=True, slots=True)
class RoundSnapshot:
    """View model for the UI (pure data)."""

    phase: RoundPhase
    prompt: str
    time_remaining_s: float | None
    round_score: int
    total_score: int
    mask_index: int
    stroke_count: int
    document_ready: bool
    last_breakdown: ScoreBreakdown | None = None
    debug: bool = False


class Compositor(Protocol):
    """Layered drawing surfaces owned by the host."""

    def clear(self) -> None: ...

    def draw_document(self, request: DocumentDraw | None) -> None: ...

    def draw_strokes(self, discs: tuple[StrokeDisc, ...]) -> None: ...

    def draw_ui(self, request: UiDraw) -> None: ...


LoadedCallback = Callable[[str, int, int], object]


class DocumentLoader(Protocol):
    def request(self, image_src: str, on_loaded: LoadedCallback) -> None:
        """Start loading; call ``on_loaded(image_src, width, height)`` once the size is known."""
        ...


class RedactionRound:
    """One game session of redaction rounds against a shuffled mask deck."""

    def __init__(
        self,
        *,
        masks: Sequence[RedactionMask],
        loader: DocumentLoader,
        seed: int,
        config: RoundConfig | None = None,
        on_exit: Callable[[], None] | None = None,
    ) -> None:
        cfg = config or RoundConfig()
        if cfg.time_limit_s <= 0:
            raise ValueError("time_limit_s must be > 0")
        if cfg.marker_radius_norm <= 0:
            raise ValueError("marker_radius_norm must be > 0")
        if cfg.sample_step < 1:
            raise ValueError("sample_step must be >= 1")

        self._config = cfg
        self._loader = loader
        self._on_exit = on_exit
        self._seed = int(seed)
        self._deck = MaskDeck(masks, seed=seed)

        self._state = RoundState(
            phase=RoundPhase.PROMPT,
            timer_s=0.0,
            time_limit_s=float(cfg.time_limit_s),
            round_score=0,
            total_score=0,
            current_mask_index=self._deck.index,
        )
        self._last_breakdown: ScoreBreakdown | None = None

        self._viewport: tuple[int, int] = (0, 0)
        self._image_size: tuple[int, int] | None = None
        self._layout: Layout | None = None
        self._raster: CoverageRaster | None = None
        self._strokes: list[NormalizedPoint] = []
        self._drawing = False
        self._debug = False
        self._needs_redraw = True

        self._mask = self._deck.current
        self._load_mask(self._mask)

    # ---- read-only views ----

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def config(self) -> RoundConfig:
        return self._config

    @property
    def state(self) -> RoundState:
        return self._state

    @property
    def phase(self) -> RoundPhase:
        return self._state.phase

    @property
    def round_score(self) -> int:
        return self._state.round_score

    @property
    def total_score(self) -> int:
        return self._state.total_score

    @property
    def current_mask(self) -> RedactionMask:
        return self._mask

    @property
    def deck(self) -> MaskDeck:
        return self._deck

    @property
    def layout(self) -> Layout | None:
        return self._layout

    @property
    def raster(self) -> CoverageRaster | None:
        return self._raster

    @property
    def strokes(self) -> tuple[NormalizedPoint, ...]:
        return tuple(self._strokes)

    @property
    def last_breakdown(self) -> ScoreBreakdown | None:
        return self._last_breakdown

    @property
    def document_ready(self) -> bool:
        return self._image_size is not None and self._raster is not None

    @property
    def needs_redraw(self) -> bool:
        return self._needs_redraw

    def snapshot(self) -> RoundSnapshot:
        st = self._state
        return RoundSnapshot(
            phase=st.phase,
            prompt=self._mask.prompt,
            time_remaining_s=st.timer_s if st.phase is RoundPhase.REDACTING else None,
            round_score=st.round_score,
            total_score=st.total_score,
            mask_index=st.current_mask_index,
            stroke_count=len(self._strokes),
            document_ready=self.document_ready,
            last_breakdown=self._last_breakdown,
            debug=self._debug,
        )

    # ---- frame driver ----

    def update(self, dt: float) -> None:
        st = self._state
        if st.phase is not RoundPhase.REDACTING:
            return
        prev_display = math.ceil(st.timer_s)
        timer = max(0.0, st.timer_s - max(0.0, float(dt)))
        self._state = replace(st, timer_s=timer)
        if math.ceil(timer) != prev_display:
            self._needs_redraw = True
        if timer <= 0.0:
            self._fire(RoundTrigger.TIMER_EXPIRED)

    def render(self, compositor: Compositor) -> bool:
        """Emit draw requests if anything changed. Returns True when drawn."""
        if not self._needs_redraw:
            return False
        frame = self.frame()
        if frame is None:
            return False
        compositor.clear()
        compositor.draw_document(frame.document)
        compositor.draw_strokes(frame.strokes)
        compositor.draw_ui(frame.ui)
        self._needs_redraw = False
        return True

    def frame(self) -> RenderFrame | None:
        if not self.document_ready or self._layout is None:
            return None
        layout = self._layout
        phase = self._state.phase

        document: DocumentDraw | None = None
        strokes: tuple[StrokeDisc, ...] = ()
        if phase is not RoundPhase.PROMPT:
            document = DocumentDraw(image_src=self._mask.image_src, rect=layout.document_rect)
            radius = self._config.marker_radius_norm * layout.draw_width
            strokes = tuple(StrokeDisc(center=to_screen(p, layout), radius=radius) for p in self._strokes)

        outlines: tuple[Rect, ...] = ()
        if self._debug:
            outlines = tuple(rect_to_screen(r, layout) for r in self._mask.target_rects)

        return RenderFrame(
            phase=phase,
            document=document,
            strokes=strokes,
            ui=UiDraw(phase=phase, labels=self._labels(), buttons=self.buttons(), outlines=outlines),
        )

    # ---- host events ----

    def set_viewport(self, width: int, height: int) -> None:
        self._viewport = (int(width), int(height))
        self._relayout()

    def document_loaded(self, image_src: str, width: int, height: int) -> bool:
        """Loader callback. Ignored unless it is for the current mask's image."""
        if image_src != self._mask.image_src:
            logger.debug("ignoring stale document load for %s", image_src)
            return False
        if width <= 0 or height <= 0:
            logger.warning("document %s reported empty size %dx%d", image_src, width, height)
            return False
        size = (int(width), int(height))
        if self._image_size is not None:
            # Already loaded; a repeat callback must not wipe painted coverage.
            if size != self._image_size:
                logger.warning(
                    "ignoring size change %dx%d for loaded document %s", size[0], size[1], image_src
                )
            return False
        self._image_size = size
        if self._raster is None:
            self._raster = CoverageRaster(
                width,
                height,
                marker_radius_norm=self._config.marker_radius_norm,
            )
        else:
            self._raster.resize(width, height)
        self._relayout()
        return True

    def toggle_debug(self) -> None:
        self._debug = not self._debug
        self._needs_redraw = True

    def pointer_down(self, p: ScreenPoint) -> bool:
        if not self.document_ready:
            return False
        for button in self.buttons():
            if button.hit(p):
                return self._press(button.action)
        if self._state.phase is not RoundPhase.REDACTING:
            return False
        self._drawing = True
        return self._record(p)

    def pointer_move(self, p: ScreenPoint) -> bool:
        if not self._drawing or self._state.phase is not RoundPhase.REDACTING:
            return False
        return self._record(p)

    def pointer_up(self, p: ScreenPoint | None = None) -> None:
        _ = p
        self._drawing = False

    def press_ready(self) -> bool:
        if not self.document_ready:
            return False
        return self._fire(RoundTrigger.READY)

    def press_done(self) -> bool:
        return self._fire(RoundTrigger.DONE)

    def press_continue(self) -> bool:
        return self._fire(RoundTrigger.CONTINUE)

    def press_exit(self) -> bool:
        return self._fire(RoundTrigger.EXIT)

    def reset_session(self) -> None:
        """Start a new game: zero the scores and restart from a fresh shuffle."""
        self._deck.restart()
        self._state = RoundState(
            phase=RoundPhase.PROMPT,
            timer_s=0.0,
            time_limit_s=float(self._config.time_limit_s),
            round_score=0,
            total_score=0,
            current_mask_index=self._deck.index,
        )
        self._last_breakdown = None
        self._load_mask(self._deck.current)

    # ---- layout / buttons ----

    def buttons(self) -> tuple[Button, ...]:
        w, h = self._viewport
        if w <= 0 or h <= 0:
            return ()
        phase = self._state.phase
        if phase is RoundPhase.PROMPT:
            return (_button(ButtonAction.READY, "READY", w / 2, h * 0.35),)
        if phase is RoundPhase.REDACTING:
            return (_button(ButtonAction.DONE, "DONE", w - 80, 30),)
        return (
            _button(ButtonAction.CONTINUE, "CONTINUE", w / 2, h * 0.6),
            _button(ButtonAction.EXIT, "EXIT", w / 2, h * 0.68),
        )

    def _labels(self) -> tuple[Label, ...]:
        w, h = self._viewport
        st = self._state
        if st.phase is RoundPhase.PROMPT:
            return (Label(LabelRole.PROMPT, self._mask.prompt, w / 2, h * 0.25, centered=True),)
        if st.phase is RoundPhase.REDACTING:
            return (Label(LabelRole.TIMER, f"Time: {math.ceil(st.timer_s)}", 20, 30),)
        return (
            Label(LabelRole.ROUND_SCORE, f"Round Score: {st.round_score}", w / 2 - 70, h * 0.28),
            Label(LabelRole.TOTAL_SCORE, f"Total Score: {st.total_score}", w / 2 - 70, h * 0.35),
        )

    def _relayout(self) -> None:
        if self._image_size is None:
            self._layout = None
            return
        iw, ih = self._image_size
        vw, vh = self._viewport
        self._layout = compute_layout(vw, vh, iw, ih)
        self._needs_redraw = True

    # ---- transitions ----

    def _press(self, action: ButtonAction) -> bool:
        if action is ButtonAction.READY:
            return self.press_ready()
        if action is ButtonAction.DONE:
            return self.press_done()
        if action is ButtonAction.CONTINUE:
            return self.press_continue()
        return self.press_exit()

    def _fire(self, trigger: RoundTrigger) -> bool:
        src = self._state.phase
        dst = _TRANSITIONS.get((src, trigger))
        if dst is None:
            return False
        self._state = replace(self._state, phase=dst)
        if trigger is RoundTrigger.READY:
            self._start_redaction()
        elif trigger in (RoundTrigger.DONE, RoundTrigger.TIMER_EXPIRED):
            self._finish_round(timed_out=trigger is RoundTrigger.TIMER_EXPIRED)
        elif trigger is RoundTrigger.CONTINUE:
            self._next_round()
        else:
            self._exit_session()
        logger.debug("round %s -> %s on %s", src.value, dst.value, trigger.value)
        self._needs_redraw = True
        return True

    def _start_redaction(self) -> None:
        self._state = replace(self._state, timer_s=self._state.time_limit_s)
        self._strokes.clear()
        self._drawing = False
        assert self._raster is not None
        self._raster.clear()

    def _finish_round(self, *, timed_out: bool) -> None:
        st = self._state
        assert self._raster is not None
        fraction = 0.0 if timed_out else st.timer_s / st.time_limit_s
        breakdown = score_coverage(
            self._mask.target_rects,
            self._raster,
            weights=self._config.weights,
            step=self._config.sample_step,
            time_remaining_fraction=fraction,
        )
        self._last_breakdown = breakdown
        self._drawing = False
        self._deck.advance()
        self._state = replace(
            st,
            round_score=breakdown.score,
            total_score=st.total_score + breakdown.score,
            current_mask_index=self._deck.index,
        )
        logger.info(
            "round scored %d (correct=%d false_positive=%d missed=%d%s); total %d",
            breakdown.score,
            breakdown.correct,
            breakdown.false_positive,
            breakdown.missed,
            ", timed out" if timed_out else "",
            self._state.total_score,
        )

    def _next_round(self) -> None:
        self._state = replace(self._state, round_score=0, timer_s=0.0)
        self._last_breakdown = None
        self._load_mask(self._deck.current)

    def _exit_session(self) -> None:
        self._state = replace(self._state, round_score=0, total_score=0, timer_s=0.0)
        self._last_breakdown = None
        self._load_mask(self._deck.current)
        logger.info("session exited")
        if self._on_exit is not None:
            self._on_exit()

    def _load_mask(self, mask: RedactionMask) -> None:
        self._mask = mask
        self._strokes.clear()
        self._drawing = False
        self._image_size = None
        self._layout = None
        if self._raster is not None:
            self._raster.clear()
        self._needs_redraw = True
        # May call back synchronously.
        self._loader.request(mask.image_src, self.document_loaded)

    def _record(self, p: ScreenPoint) -> bool:
        if self._layout is None or self._raster is None:
            return False
        doc = to_document(p, self._layout)
        if doc is None:
            return False
        self._strokes.append(doc)
        self._raster.paint(doc)
        self._needs_redraw = True
        return True


def _button(action: ButtonAction, text: str, cx: float, cy: float) -> Button:
    return Button(
        action=action,
        text=text,
        rect=Rect(cx - BUTTON_WIDTH / 2, cy - BUTTON_HEIGHT / 2, BUTTON_WIDTH, BUTTON_HEIGHT),
    )
