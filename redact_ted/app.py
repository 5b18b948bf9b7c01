"""Pygame UI shell for Redact-Ted.

- Main menu: Play, Mask Editor, Quit
- Game screen: hosts a RedactionRound and composites its draw requests
  onto three layers (document, redaction strokes, UI)
- Mask editor: drag target rectangles over a document and export them as JSON

Deterministic timing/scoring/RNG/state lives in redact_ted/* (core modules).
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import pygame

from .clock import Clock, FrameTimer, RealClock
from .config import Settings, load_settings
from .geometry import (
    Layout,
    NormalizedPoint,
    Rect,
    ScreenPoint,
    clamp_to_document,
    compute_layout,
    rect_from_drag,
    rect_to_screen,
    to_document,
)
from .masks import DEMO_MASKS, MaskCatalogError, RedactionMask, load_catalog, save_target_rects
from .round_engine import (
    Button,
    DocumentDraw,
    Label,
    LabelRole,
    LoadedCallback,
    RedactionRound,
    RoundConfig,
    RoundPhase,
    StrokeDisc,
    UiDraw,
)

logger = logging.getLogger(__name__)

WINDOW_SIZE = (960, 720)
TARGET_FPS = 60

BG = (18, 18, 24)
MARKER = (255, 221, 0)
BUTTON_BG = (68, 68, 68)
TEXT_MAIN = (238, 245, 255)
TEXT_MUTED = (170, 176, 190)
SCORE_GREEN = (124, 255, 124)
OUTLINE_RED = (230, 40, 40)

BLANK_PAGE_SIZE = (850, 1100)


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: str
    action: Callable[[], None]


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def pop(self) -> None:
        # Never pop the last/root screen; root handles its own quit/back behavior.
        if len(self._screens) > 1:
            self._screens.pop()

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)


# Words printed inside each demo document's target rects, in rect order.
DEMO_SECRETS: dict[str, tuple[str, ...]] = {
    "demo:memo": ("Luke Harlow", "Luke", "L. Harlow (cell)"),
    "demo:statement": ("4417 1234 5678 9113", "0029 4471 8830 2216"),
    "demo:letter": ("14 Rowan Close, Easton",),
    "demo:report": ("J. Mercer", "A. Castellano", "Mercer"),
}


class PygameDocumentLoader:
    """Loads document images by source string and keeps them for drawing.

    ``demo:<name>`` sources are rendered procedurally from the built-in
    catalog. Anything else is a path on disk; unreadable files become a blank
    page so a bad asset never stops a round.
    """

    def __init__(self, *, demo_masks: Sequence[RedactionMask] = DEMO_MASKS) -> None:
        self._demo_masks = {m.image_src: m for m in demo_masks}
        self._images: dict[str, pygame.Surface] = {}
        self._scaled: dict[tuple[str, int, int], pygame.Surface] = {}

    def request(self, image_src: str, on_loaded: LoadedCallback) -> None:
        image = self.surface(image_src)
        w, h = image.get_size()
        on_loaded(image_src, w, h)

    def surface(self, image_src: str) -> pygame.Surface:
        image = self._images.get(image_src)
        if image is None:
            image = self._load(image_src)
            self._images[image_src] = image
        return image

    def scaled(self, image_src: str, size: tuple[int, int]) -> pygame.Surface:
        w, h = max(1, int(size[0])), max(1, int(size[1]))
        key = (image_src, w, h)
        cached = self._scaled.get(key)
        if cached is None:
            # Only the latest size per image is worth keeping.
            self._scaled = {k: v for k, v in self._scaled.items() if k[0] != image_src}
            cached = pygame.transform.scale(self.surface(image_src), (w, h))
            self._scaled[key] = cached
        return cached

    def _load(self, image_src: str) -> pygame.Surface:
        if image_src.startswith("demo:"):
            return self._render_demo(image_src)
        try:
            return pygame.image.load(image_src)
        except (pygame.error, FileNotFoundError) as exc:
            logger.warning("could not load document %s (%s); using a blank page", image_src, exc)
            page = pygame.Surface(BLANK_PAGE_SIZE)
            page.fill((250, 250, 246))
            return page

    def _render_demo(self, image_src: str) -> pygame.Surface:
        w, h = BLANK_PAGE_SIZE
        page = pygame.Surface((w, h))
        page.fill((250, 250, 246))

        header = pygame.font.Font(None, 44)
        title = image_src.split(":", 1)[1].upper()
        page.blit(header.render(f"CONFIDENTIAL {title}", True, (30, 30, 36)), (60, 40))

        mask = self._demo_masks.get(image_src)
        targets = () if mask is None else tuple(rect_to_pixels(r, w, h) for r in mask.target_rects)

        # Filler "text" lines, skipped wherever a secret gets printed.
        rng = random.Random(image_src)
        for y in range(120, h - 60, 34):
            x = 60
            while x < w - 80:
                word_w = rng.randint(30, 110)
                word = pygame.Rect(x, y, word_w, 12)
                if not any(word.colliderect(t.inflate(8, 8)) for t in targets):
                    pygame.draw.rect(page, (150, 150, 156), word)
                x += word_w + rng.randint(10, 18)

        secrets = DEMO_SECRETS.get(image_src, ())
        for idx, target in enumerate(targets):
            text = secrets[idx] if idx < len(secrets) else "REDACT ME"
            font = pygame.font.Font(None, max(14, int(target.h * 0.95)))
            page.blit(font.render(text, True, (20, 20, 24)), target.topleft)
        return page


def rect_to_pixels(r: Rect, width: int, height: int) -> pygame.Rect:
    return pygame.Rect(
        int(round(r.x * width)),
        int(round(r.y * height)),
        int(round(r.width * width)),
        int(round(r.height * height)),
    )


def _pg_rect(r: Rect) -> pygame.Rect:
    return pygame.Rect(int(round(r.x)), int(round(r.y)), int(round(r.width)), int(round(r.height)))


def resized_to(event: pygame.event.Event) -> tuple[int, int] | None:
    """New window size carried by a resize event, else None."""
    if event.type == pygame.VIDEORESIZE:
        return (int(event.w), int(event.h))
    if event.type == pygame.WINDOWSIZECHANGED:
        return (int(event.x), int(event.y))
    return None


class PygameCompositor:
    """Three retained layers; redrawn only when the round asks for it."""

    def __init__(self, loader: PygameDocumentLoader, size: tuple[int, int]) -> None:
        self._loader = loader
        self._label_font = pygame.font.Font(None, 30)
        self._score_font = pygame.font.Font(None, 34)
        self._button_font = pygame.font.Font(None, 28)
        self._doc_layer = pygame.Surface((1, 1), pygame.SRCALPHA)
        self._redaction_layer = pygame.Surface((1, 1), pygame.SRCALPHA)
        self._ui_layer = pygame.Surface((1, 1), pygame.SRCALPHA)
        self.resize(size)

    def resize(self, size: tuple[int, int]) -> None:
        w, h = max(1, int(size[0])), max(1, int(size[1]))
        self._doc_layer = pygame.Surface((w, h), pygame.SRCALPHA)
        self._redaction_layer = pygame.Surface((w, h), pygame.SRCALPHA)
        self._ui_layer = pygame.Surface((w, h), pygame.SRCALPHA)

    def clear(self) -> None:
        for layer in (self._doc_layer, self._redaction_layer, self._ui_layer):
            layer.fill((0, 0, 0, 0))

    def draw_document(self, request: DocumentDraw | None) -> None:
        if request is None:
            return
        r = _pg_rect(request.rect)
        self._doc_layer.blit(self._loader.scaled(request.image_src, r.size), r.topleft)

    def draw_strokes(self, discs: tuple[StrokeDisc, ...]) -> None:
        for disc in discs:
            pygame.draw.circle(self._redaction_layer, MARKER, (disc.center.x, disc.center.y), disc.radius)

    def draw_ui(self, request: UiDraw) -> None:
        for outline in request.outlines:
            pygame.draw.rect(self._ui_layer, OUTLINE_RED, _pg_rect(outline), 2)
        for label in request.labels:
            self._draw_label(label)
        for button in request.buttons:
            self._draw_button(button)

    def present(self, surface: pygame.Surface) -> None:
        surface.fill(BG)
        surface.blit(self._doc_layer, (0, 0))
        surface.blit(self._redaction_layer, (0, 0))
        surface.blit(self._ui_layer, (0, 0))

    def _draw_label(self, label: Label) -> None:
        if label.role is LabelRole.TIMER:
            text = self._label_font.render(label.text, True, MARKER)
            self._ui_layer.blit(text, (label.x, label.y - text.get_height() // 2))
            return
        if label.role is LabelRole.PROMPT:
            text = self._label_font.render(label.text, True, TEXT_MAIN)
            self._ui_layer.blit(text, text.get_rect(center=(label.x, label.y)))
            return

        font = self._score_font if label.role is LabelRole.ROUND_SCORE else self._label_font
        color = SCORE_GREEN if label.role is LabelRole.ROUND_SCORE else TEXT_MAIN
        text = font.render(label.text, True, color)
        pad = 8
        box = pygame.Rect(0, 0, text.get_width() + pad * 2, text.get_height() + pad * 2)
        box.midleft = (int(label.x), int(label.y))
        pygame.draw.rect(self._ui_layer, (0, 0, 0, 190), box, border_radius=6)
        self._ui_layer.blit(text, (box.x + pad, box.y + pad))

    def _draw_button(self, button: Button) -> None:
        r = _pg_rect(button.rect)
        pygame.draw.rect(self._ui_layer, BUTTON_BG, r)
        text = self._button_font.render(button.text, True, TEXT_MAIN)
        self._ui_layer.blit(text, text.get_rect(center=r.center))


class MenuScreen:
    def __init__(self, app: App, title: str, items: list[MenuItem], *, is_root: bool = False) -> None:
        self._app = app
        self._title = title
        self._items = items
        self._selected = 0
        self._is_root = is_root
        self._title_font = pygame.font.Font(None, 64)
        self._item_font = pygame.font.Font(None, 36)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_UP, pygame.K_w):
            self._move(-1)
        elif event.key in (pygame.K_DOWN, pygame.K_s):
            self._move(1)
        elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            self._activate()
        elif event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._back()

    def _move(self, delta: int) -> None:
        if not self._items:
            return
        self._selected = (self._selected + delta) % len(self._items)

    def _activate(self) -> None:
        if not self._items:
            return
        self._items[self._selected].action()

    def _back(self) -> None:
        if self._is_root:
            self._app.quit()
        else:
            self._app.pop()

    def render(self, surface: pygame.Surface) -> None:
        w, h = surface.get_size()
        surface.fill(BG)

        title = self._title_font.render(self._title, True, TEXT_MAIN)
        surface.blit(title, title.get_rect(center=(w // 2, h // 3)))

        y = h // 3 + 80
        for idx, item in enumerate(self._items):
            selected = idx == self._selected
            color = MARKER if selected else TEXT_MAIN
            label = f"> {item.label} <" if selected else item.label
            text = self._item_font.render(label, True, color)
            surface.blit(text, text.get_rect(center=(w // 2, y)))
            y += 46

        foot = self._hint_font.render("Enter/Space: Select  |  Esc: Back", True, TEXT_MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(w // 2, h - 12)))


class GameScreen:
    def __init__(
        self,
        app: App,
        *,
        masks: Sequence[RedactionMask],
        loader: PygameDocumentLoader,
        clock: Clock,
        config: RoundConfig,
        seed: int,
    ) -> None:
        self._app = app
        self._clock = clock
        self._timer = FrameTimer(clock)
        self._size = (0, 0)
        self._compositor = PygameCompositor(loader, WINDOW_SIZE)
        self._hint_font = pygame.font.Font(None, 20)
        self._engine = RedactionRound(
            masks=masks,
            loader=loader,
            seed=seed,
            config=config,
            on_exit=self._app.pop,
        )

    @property
    def engine(self) -> RedactionRound:
        return self._engine

    def new_game(self) -> None:
        self._engine.reset_session()
        self._timer = FrameTimer(self._clock)

    def handle_event(self, event: pygame.event.Event) -> None:
        size = resized_to(event)
        if size is not None:
            self._resize(size)
        elif event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
            self._engine.pointer_down(ScreenPoint(*event.pos))
        elif event.type == pygame.MOUSEMOTION:
            self._engine.pointer_move(ScreenPoint(*event.pos))
        elif event.type == pygame.MOUSEBUTTONUP and event.button == 1:
            self._engine.pointer_up(ScreenPoint(*event.pos))
        elif event.type == pygame.KEYDOWN:
            self._handle_key(event.key)

    def _handle_key(self, key: int) -> None:
        phase = self._engine.phase
        if key == pygame.K_F12:
            # Hard escape back to the menu from any phase; no score is kept.
            self._app.pop()
        elif key == pygame.K_d:
            self._engine.toggle_debug()
        elif key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            if phase is RoundPhase.PROMPT:
                self._engine.press_ready()
            elif phase is RoundPhase.REDACTING:
                self._engine.press_done()
            else:
                self._engine.press_continue()
        elif key == pygame.K_ESCAPE and phase is RoundPhase.SCORING:
            self._engine.press_exit()

    def _resize(self, size: tuple[int, int]) -> None:
        self._size = size
        self._compositor.resize(size)
        self._engine.set_viewport(*size)

    def render(self, surface: pygame.Surface) -> None:
        size = surface.get_size()
        if size != self._size:
            self._resize(size)

        self._engine.update(self._timer.tick())
        self._engine.render(self._compositor)
        self._compositor.present(surface)

        snap = self._engine.snapshot()
        if snap.phase is RoundPhase.SCORING and snap.last_breakdown is not None:
            b = snap.last_breakdown
            detail = f"covered {b.correct}  outside {b.false_positive}  missed {b.missed}"
            text = self._hint_font.render(detail, True, TEXT_MUTED)
            surface.blit(text, text.get_rect(midbottom=(size[0] // 2, size[1] - 12)))


class MaskEditorScreen:
    """Authoring tool: drag target rects over a document, press S to export."""

    def __init__(
        self,
        app: App,
        *,
        loader: PygameDocumentLoader,
        image_sources: Sequence[str],
        export_path: Path,
    ) -> None:
        if not image_sources:
            raise ValueError("image_sources must not be empty")
        self._app = app
        self._loader = loader
        self._sources = list(image_sources)
        self._export_path = export_path
        self._index = 0
        self._size = (0, 0)
        self._image_size: tuple[int, int] | None = None
        self._layout: Layout | None = None
        self._rects: list[Rect] = []
        self._start: NormalizedPoint | None = None
        self._current: Rect | None = None
        self._status = ""
        self._save_button = Rect(20, 20, 100, 40)
        self._font = pygame.font.Font(None, 22)
        self._load()

    @property
    def rects(self) -> tuple[Rect, ...]:
        return tuple(self._rects)

    @property
    def image_src(self) -> str:
        return self._sources[self._index]

    def _load(self) -> None:
        self._image_size = None
        self._layout = None
        self._rects.clear()
        self._start = None
        self._current = None
        self._loader.request(self.image_src, self._on_loaded)

    def _on_loaded(self, image_src: str, width: int, height: int) -> None:
        if image_src != self.image_src:
            return
        self._image_size = (width, height)
        self._relayout()

    def _relayout(self) -> None:
        if self._image_size is None:
            self._layout = None
            return
        self._layout = compute_layout(self._size[0], self._size[1], *self._image_size)

    def handle_event(self, event: pygame.event.Event) -> None:
        size = resized_to(event)
        if size is not None:
            self._size = size
            self._relayout()
        elif event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
            p = ScreenPoint(*event.pos)
            if self._save_button.contains(p.x, p.y):
                self._save()
            elif self._layout is not None:
                self._start = to_document(p, self._layout)
        elif event.type == pygame.MOUSEMOTION:
            if self._start is not None and self._layout is not None:
                end = clamp_to_document(ScreenPoint(*event.pos), self._layout)
                self._current = rect_from_drag(self._start, end)
        elif event.type == pygame.MOUSEBUTTONUP and event.button == 1:
            if self._current is not None:
                self._rects.append(self._current)
            self._start = None
            self._current = None
        elif event.type == pygame.KEYDOWN:
            if event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
                self._app.pop()
            elif event.key == pygame.K_s:
                self._save()
            elif event.key in (pygame.K_LEFT, pygame.K_RIGHT):
                step = -1 if event.key == pygame.K_LEFT else 1
                self._index = (self._index + step) % len(self._sources)
                self._status = ""
                self._load()

    def _save(self) -> None:
        try:
            save_target_rects(self._rects, self._export_path)
        except OSError as exc:
            logger.error("exporting target rects to %s failed: %s", self._export_path, exc)
            self._status = "Export failed (see log)"
            return
        self._status = f"Saved {len(self._rects)} rects to {self._export_path.name}"

    def render(self, surface: pygame.Surface) -> None:
        size = surface.get_size()
        if size != self._size:
            self._size = size
            self._relayout()

        surface.fill(BG)
        if self._layout is not None:
            doc = _pg_rect(self._layout.document_rect)
            surface.blit(self._loader.scaled(self.image_src, doc.size), doc.topleft)
            for r in self._rects:
                pygame.draw.rect(surface, OUTLINE_RED, _pg_rect(rect_to_screen(r, self._layout)), 2)
            if self._current is not None:
                pygame.draw.rect(surface, MARKER, _pg_rect(rect_to_screen(self._current, self._layout)), 2)

        button = _pg_rect(self._save_button)
        pygame.draw.rect(surface, (128, 128, 128), button)
        label = self._font.render("Save JSON", True, (0, 0, 0))
        surface.blit(label, label.get_rect(center=button.center))

        hint = f"{self.image_src}  |  Drag: add rect  |  S: export  |  Left/Right: document  |  Esc: back"
        surface.blit(self._font.render(hint, True, TEXT_MUTED), (140, 24))
        if self._status:
            surface.blit(self._font.render(self._status, True, TEXT_MAIN), (140, 44))


def _load_masks(settings: Settings) -> list[RedactionMask]:
    if settings.masks_path is None:
        return list(DEMO_MASKS)
    try:
        return load_catalog(settings.masks_path)
    except MaskCatalogError as exc:
        logger.error("%s; falling back to the built-in demo masks", exc)
        return list(DEMO_MASKS)


def _new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def run(
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    settings: Settings | None = None,
) -> int:
    cfg = settings or load_settings()
    logging.basicConfig(level=cfg.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    pygame.init()
    pygame.display.set_caption("Redact-Ted")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    app = App(surface=surface, font=font)
    masks = _load_masks(cfg)
    loader = PygameDocumentLoader()
    real_clock = RealClock()

    game: GameScreen | None = None

    def open_game() -> None:
        nonlocal game
        if game is None:
            game = GameScreen(
                app,
                masks=masks,
                loader=loader,
                clock=real_clock,
                config=cfg.round,
                seed=_new_seed(),
            )
        else:
            game.new_game()
        app.push(game)

    def open_editor() -> None:
        sources = list(dict.fromkeys(m.image_src for m in masks))
        app.push(MaskEditorScreen(app, loader=loader, image_sources=sources, export_path=cfg.export_path))

    main_items = [
        MenuItem("Play", open_game),
        MenuItem("Mask Editor", open_editor),
        MenuItem("Quit", app.quit),
    ]
    app.push(MenuScreen(app, "REDACT-TED", main_items, is_root=True))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        pygame.quit()

    return 0
