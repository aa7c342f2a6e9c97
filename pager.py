"""
Pager interaction engine.

``Pager`` owns the open document, the viewport over its rendered lines and
the input mode. It never performs I/O: every event goes through
``Pager.update`` which returns the follow-up commands (render this body,
load that file, start a timer...) for the application to carry out. Results
come back as further events.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from rich.text import Text

from renderer import effective_width
from search import find_matches
from settings import PagerConfig
from statusbar import help_height, prompt_view, status_bar_view
from utility import Document

logger = logging.getLogger(__name__)

STATUS_BAR_HEIGHT = 1
ESCAPE_KEYS = ("escape", "esc")
ENTER_KEYS = ("enter", "return")

_INTEGER = re.compile(r"^[+-]?[0-9]+$")


# ============================================================================
# Viewport
# ============================================================================

class Viewport:
    """A window of ``height`` lines over the rendered content."""

    def __init__(self, width: int = 0, height: int = 0, high_performance: bool = False):
        self.width = width
        self.height = height
        self.high_performance = high_performance
        self.y_offset = 0
        self.lines: list[str] = [""]

    def set_size(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self.set_y_offset(self.y_offset)

    def set_content(self, content: str) -> None:
        self.lines = content.replace("\r\n", "\n").split("\n")
        self.set_y_offset(self.y_offset)

    def total_line_count(self) -> int:
        return len(self.lines)

    def max_y_offset(self) -> int:
        return max(0, len(self.lines) - self.height)

    def set_y_offset(self, n: int) -> None:
        self.y_offset = min(max(n, 0), self.max_y_offset())

    def at_top(self) -> bool:
        return self.y_offset <= 0

    def at_bottom(self) -> bool:
        return self.y_offset >= self.max_y_offset()

    def past_bottom(self) -> bool:
        return self.y_offset > self.max_y_offset()

    def scroll_percent(self) -> float:
        if self.height >= len(self.lines):
            return 1.0
        percent = self.y_offset / (len(self.lines) - self.height)
        return max(0.0, min(1.0, percent))

    def goto_top(self) -> None:
        self.y_offset = 0

    def goto_bottom(self) -> None:
        self.y_offset = self.max_y_offset()

    def line_down(self, n: int = 1) -> None:
        self.set_y_offset(self.y_offset + n)

    def line_up(self, n: int = 1) -> None:
        self.set_y_offset(self.y_offset - n)

    def half_view_down(self) -> None:
        self.line_down(max(1, self.height // 2))

    def half_view_up(self) -> None:
        self.line_up(max(1, self.height // 2))

    def view_down(self) -> None:
        self.line_down(max(1, self.height))

    def view_up(self) -> None:
        self.line_up(max(1, self.height))

    def visible_lines(self) -> list[str]:
        return self.lines[self.y_offset:self.y_offset + self.height]


# ============================================================================
# Prompt input
# ============================================================================

@dataclass
class PromptInput:
    """Single line text field used by the search and jump prompts."""

    prompt: str
    value: str = ""
    cursor: int = 0

    def set_value(self, value: str) -> None:
        self.value = value
        self.cursor = len(value)

    def handle_key(self, key: str) -> bool:
        """Apply an editing key. Returns False for keys the field ignores."""
        if key == "backspace":
            if self.cursor > 0:
                self.value = self.value[:self.cursor - 1] + self.value[self.cursor:]
                self.cursor -= 1
        elif key in ("delete", "ctrl+d"):
            self.value = self.value[:self.cursor] + self.value[self.cursor + 1:]
        elif key in ("left", "ctrl+b"):
            self.cursor = max(0, self.cursor - 1)
        elif key in ("right", "ctrl+f"):
            self.cursor = min(len(self.value), self.cursor + 1)
        elif key in ("home", "ctrl+a"):
            self.cursor = 0
        elif key in ("end", "ctrl+e"):
            self.cursor = len(self.value)
        elif key == "ctrl+u":
            self.value = self.value[self.cursor:]
            self.cursor = 0
        elif key == "ctrl+k":
            self.value = self.value[:self.cursor]
        elif key == "ctrl+w":
            head = self.value[:self.cursor].rstrip()
            head = head[:len(head) - len(head.split(" ")[-1])]
            self.value = head + self.value[self.cursor:]
            self.cursor = len(head)
        elif key == "space":
            return self.handle_key(" ")
        elif len(key) == 1 and key.isprintable():
            self.value = self.value[:self.cursor] + key + self.value[self.cursor:]
            self.cursor += 1
        else:
            return False
        return True

    def view(self, width: int) -> Text:
        return prompt_view(self.prompt, self.value, self.cursor, width)


# ============================================================================
# Jump targets
# ============================================================================

class InvalidJump(ValueError):
    """Jump prompt input that is not a number or percentage."""


@dataclass(frozen=True)
class JumpTarget:
    line: int = 0
    top: bool = False
    bottom: bool = False

    def apply(self, viewport: Viewport) -> None:
        if self.top:
            viewport.goto_top()
        elif self.bottom:
            viewport.goto_bottom()
        else:
            viewport.set_y_offset(self.line)


def parse_jump(text: str, total_lines: int) -> Optional[JumpTarget]:
    """
    Interpret jump prompt input.

    ``"N%"`` is a percentage of the document (0 and 100 mean top and bottom),
    anything else a 1-indexed line number. Out of range values are clamped.
    Returns None for empty input and raises ``InvalidJump`` when the number
    cannot be parsed.
    """
    if text == "":
        return None

    if text.endswith("%"):
        number = text[:-1]
        if not _INTEGER.match(number):
            raise InvalidJump("invalid number")
        pct = max(0, min(100, int(number)))
        if pct == 0:
            return JumpTarget(top=True)
        if pct == 100:
            return JumpTarget(bottom=True)
        return JumpTarget(line=int(math.floor(total_lines * pct / 100 + 0.5)))

    if not _INTEGER.match(text):
        raise InvalidJump("invalid line number")
    n = max(1, min(int(text), total_lines))
    return JumpTarget(line=n - 1)


# ============================================================================
# Events and commands
# ============================================================================

class PagerState(Enum):
    BROWSE = "browse"
    STATUS_MESSAGE = "status_message"
    SEARCH = "search"
    JUMP_TO_LINE = "jump_to_line"


@dataclass(frozen=True)
class KeyInput:
    key: str


@dataclass(frozen=True)
class MouseScroll:
    lines: int


@dataclass(frozen=True)
class Resize:
    width: int
    height: int


@dataclass(frozen=True)
class DocumentLoaded:
    document: Document


@dataclass(frozen=True)
class RenderComplete:
    body: str
    content: str
    width: int
    seq: int


@dataclass(frozen=True)
class ReloadRequested:
    pass


@dataclass(frozen=True)
class EditorFinished:
    pass


@dataclass(frozen=True)
class StatusTimerFired:
    pass


@dataclass(frozen=True)
class ErrorOccurred:
    message: str


@dataclass(frozen=True)
class RequestRender:
    body: str
    note: str
    width: int
    seq: int


@dataclass(frozen=True)
class LoadDocument:
    document: Document


@dataclass(frozen=True)
class SyncScreen:
    pass


@dataclass(frozen=True)
class StartStatusTimer:
    timeout: float


@dataclass(frozen=True)
class CancelStatusTimer:
    pass


@dataclass(frozen=True)
class OpenEditor:
    path: str
    line: int


@dataclass(frozen=True)
class CopyToClipboard:
    text: str


@dataclass(frozen=True)
class WatchFile:
    path: str


@dataclass(frozen=True)
class UnwatchFile:
    pass


Transition = tuple[PagerState, list]


# ============================================================================
# State machine
# ============================================================================

_SCROLL_KEYS: dict[str, Callable[[Viewport], None]] = {
    "home": Viewport.goto_top,
    "g": Viewport.goto_top,
    "end": Viewport.goto_bottom,
    "G": Viewport.goto_bottom,
    "d": Viewport.half_view_down,
    "ctrl+d": Viewport.half_view_down,
    "u": Viewport.half_view_up,
    "ctrl+u": Viewport.half_view_up,
    "right": Viewport.view_down,
    "pagedown": Viewport.view_down,
    "f": Viewport.view_down,
    " ": Viewport.view_down,
    "space": Viewport.view_down,
    "left": Viewport.view_up,
    "pageup": Viewport.view_up,
    "b": Viewport.view_up,
    "down": Viewport.line_down,
    "j": Viewport.line_down,
    "up": Viewport.line_up,
    "k": Viewport.line_up,
}


class Pager:
    """The pager's session state and its transition table."""

    TRANSITIONS: dict[tuple[PagerState, type], Callable[["Pager", object], Transition]] = {}

    def __init__(self, config: Optional[PagerConfig] = None, width: int = 0, height: int = 0):
        self.config = config or PagerConfig()
        self.viewport = Viewport(high_performance=self.config.high_performance_pager)
        self.state = PagerState.BROWSE
        self.document = Document()
        self.show_help = False

        self.status_message = ""

        self.search_input = PromptInput("/")
        self.search_query = ""
        self.search_matches: list[int] = []
        self.search_index = -1

        self.line_input = PromptInput(":")

        self.width = 0
        self.height = 0
        self.render_seq = 0

        if width or height:
            self.set_size(width, height)

    # ---- geometry -------------------------------------------------------

    def set_size(self, width: int, height: int) -> None:
        width = max(1, width)
        height = max(1, height)
        self.width, self.height = width, height

        view_height = height - STATUS_BAR_HEIGHT
        if self.show_help:
            # help text wraps with the width, so measure it every time
            view_height -= STATUS_BAR_HEIGHT + help_height(width)
        self.viewport.set_size(width, max(1, view_height))

    def toggle_help(self) -> None:
        self.show_help = not self.show_help
        if self.height:
            self.set_size(self.width, self.height)
        if self.viewport.past_bottom():
            self.viewport.goto_bottom()

    def effective_width(self) -> int:
        return effective_width(self.viewport.width, self.width, self.config.max_width)

    # ---- session --------------------------------------------------------

    def in_input_mode(self) -> bool:
        """True while keys are captured by a prompt or ``esc`` would clear a search."""
        return self.state in (PagerState.SEARCH, PagerState.JUMP_TO_LINE) or self.search_query != ""

    def clear_search(self) -> None:
        self.search_query = ""
        self.search_matches = []
        self.search_index = -1

    def open(self, document: Document) -> list:
        """Start viewing ``document``; returns the commands that fetch or render it."""
        self.state = PagerState.BROWSE
        self.clear_search()
        self.document = document
        self.viewport.set_content("")
        self.viewport.goto_top()

        if document.body:
            self.render_seq += 1
            return [self._render_request()]
        if document.local_path:
            return [LoadDocument(document)]
        return []

    def unload(self) -> list:
        logger.debug("unload")
        if self.show_help:
            self.toggle_help()
        self.state = PagerState.BROWSE
        self.status_message = ""
        self.clear_search()
        self.viewport.set_content("")
        self.viewport.goto_top()
        self.document = Document()
        return [CancelStatusTimer(), UnwatchFile()]

    def update(self, event) -> list:
        """Process one event and return the commands it produced."""
        handler = self.TRANSITIONS.get((self.state, type(event)))
        if handler is None:
            return []
        self.state, commands = handler(self, event)
        return commands

    # ---- views ----------------------------------------------------------

    def status_view(self) -> Text:
        width = max(1, self.width)
        if self.state == PagerState.SEARCH:
            return self.search_input.view(width)
        if self.state == PagerState.JUMP_TO_LINE:
            return self.line_input.view(width)

        showing_message = self.state == PagerState.STATUS_MESSAGE
        return status_bar_view(
            self.width,
            self.status_message if showing_message else self.document.note,
            showing_message=showing_message,
            search_index=self.search_index if self.search_query else -1,
            search_count=len(self.search_matches) if self.search_query else 0,
            y_offset=self.viewport.y_offset,
            view_height=self.viewport.height,
            total_lines=self.viewport.total_line_count(),
            scroll_percent=self.viewport.scroll_percent(),
        )

    # ---- helpers --------------------------------------------------------

    def _sync(self) -> list:
        return [SyncScreen()] if self.viewport.high_performance else []

    def _show_status(self, message: str, commands: Optional[list] = None) -> Transition:
        self.status_message = message
        commands = list(commands or [])
        commands.append(StartStatusTimer(self.config.status_message_timeout))
        return PagerState.STATUS_MESSAGE, commands

    def _render_request(self) -> RequestRender:
        return RequestRender(
            body=self.document.body,
            note=self.document.note,
            width=self.effective_width(),
            seq=self.render_seq,
        )

    def _reload(self) -> list:
        if not self.document.local_path:
            return []
        return [LoadDocument(self.document)]

    def _goto_match(self, index: int) -> None:
        self.search_index = index
        self.viewport.set_y_offset(self.search_matches[index])

    # ---- key handlers ---------------------------------------------------

    def _browse_key(self, event: KeyInput) -> Transition:
        key = event.key

        scroll = _SCROLL_KEYS.get(key)
        if scroll is not None:
            scroll(self.viewport)
            return PagerState.BROWSE, self._sync()

        if key in ESCAPE_KEYS:
            if self.search_query:
                self.clear_search()
            return PagerState.BROWSE, []

        if key == "e":
            if not self.document.local_path:
                return PagerState.BROWSE, []
            total = self.viewport.total_line_count()
            lineno = round(total * self.viewport.scroll_percent())
            if self.viewport.at_top():
                lineno = 0
            logger.info("opening editor: %s line %d/%d", self.document.local_path, lineno, total)
            return PagerState.BROWSE, [OpenEditor(self.document.local_path, lineno)]

        if key == "c":
            return self._show_status("Copied contents", [CopyToClipboard(self.document.body)])

        if key == "r":
            return PagerState.BROWSE, self._reload()

        if key == "?":
            self.toggle_help()
            return PagerState.BROWSE, self._sync()

        if key == "/":
            self.search_input.set_value("")
            return PagerState.SEARCH, []

        if key == ":":
            self.line_input.set_value("")
            return PagerState.JUMP_TO_LINE, []

        if key in ("n", "N") and self.search_query and self.search_matches:
            step = 1 if key == "n" else -1
            index = self.search_index + step
            wrapped = not 0 <= index < len(self.search_matches)
            self._goto_match(index % len(self.search_matches))
            if wrapped:
                return self._show_status("search wrapped", self._sync())
            return PagerState.BROWSE, self._sync()

        return PagerState.BROWSE, []

    def _search_key(self, event: KeyInput) -> Transition:
        key = event.key

        if key in ENTER_KEYS:
            query = self.search_input.value
            if query == "":
                return self._show_status("no pattern")

            self.search_query = query
            self.search_matches = find_matches(self.document.body, query)
            if not self.search_matches:
                self.clear_search()
                return self._show_status("no matches")

            self._goto_match(0)
            return PagerState.BROWSE, self._sync()

        if key in ESCAPE_KEYS:
            self.clear_search()
            return PagerState.BROWSE, []

        self.search_input.handle_key(key)
        return PagerState.SEARCH, []

    def _jump_key(self, event: KeyInput) -> Transition:
        key = event.key

        if key in ENTER_KEYS:
            try:
                target = parse_jump(self.line_input.value, self.viewport.total_line_count())
            except InvalidJump as e:
                return self._show_status(str(e))
            if target is None:
                return PagerState.BROWSE, []
            target.apply(self.viewport)
            return PagerState.BROWSE, self._sync()

        if key in ESCAPE_KEYS:
            return PagerState.BROWSE, []

        self.line_input.handle_key(key)
        return PagerState.JUMP_TO_LINE, []

    def _status_key(self, event: KeyInput) -> Transition:
        return PagerState.BROWSE, []

    # ---- other events ---------------------------------------------------

    def _on_mouse_scroll(self, event: MouseScroll) -> Transition:
        if event.lines > 0:
            self.viewport.line_down(event.lines)
        else:
            self.viewport.line_up(-event.lines)
        return self.state, self._sync()

    def _on_resize(self, event: Resize) -> Transition:
        self.set_size(event.width, event.height)
        commands = []
        if self.document.body:
            # a height-only change keeps the rendering already on screen
            if not self.document.rendered_at(self.effective_width()):
                self.document.invalidate()
                self.render_seq += 1
                commands.append(self._render_request())
        elif self.document.local_path:
            # first resize can arrive before the body has been read
            commands.append(LoadDocument(self.document))
        return self.state, commands + self._sync()

    def _on_document_loaded(self, event: DocumentLoaded) -> Transition:
        loaded = event.document
        if loaded.local_path != self.document.local_path:
            logger.debug("dropping load of %s, no longer open", loaded.local_path)
            return self.state, []

        self.document.set_body(loaded.body)
        self.render_seq += 1
        return self.state, [self._render_request()]

    def _on_render_complete(self, event: RenderComplete) -> Transition:
        current_width = self.effective_width()
        if event.width != current_width:
            logger.debug(
                "discarding rendered content for width %d, now %d (seq %d, current %d)",
                event.width, current_width, event.seq, self.render_seq,
            )
            return self.state, []
        if event.seq != self.render_seq and event.body != self.document.body:
            logger.debug("discarding stale rendered content (seq %d, current %d)", event.seq, self.render_seq)
            return self.state, []

        logger.info("content rendered (state %s)", self.state.value)
        if event.body:
            self.document.set_body(event.body)
        self.document.set_rendered(event.content, event.width)
        self.viewport.set_content(event.content)

        commands = self._sync()
        if self.document.local_path:
            commands.append(WatchFile(self.document.local_path))
        return self.state, commands

    def _on_reload(self, event) -> Transition:
        return self.state, self._reload()

    def _on_status_timer(self, event: StatusTimerFired) -> Transition:
        if self.state == PagerState.STATUS_MESSAGE:
            return PagerState.BROWSE, []
        return self.state, []

    def _on_error(self, event: ErrorOccurred) -> Transition:
        logger.error("pager error: %s", event.message)
        if self.state in (PagerState.SEARCH, PagerState.JUMP_TO_LINE):
            return self.state, []
        return self._show_status(event.message)


def _build_transitions() -> dict:
    table: dict = {
        (PagerState.BROWSE, KeyInput): Pager._browse_key,
        (PagerState.SEARCH, KeyInput): Pager._search_key,
        (PagerState.JUMP_TO_LINE, KeyInput): Pager._jump_key,
        (PagerState.STATUS_MESSAGE, KeyInput): Pager._status_key,
        (PagerState.BROWSE, MouseScroll): Pager._on_mouse_scroll,
        (PagerState.STATUS_MESSAGE, MouseScroll): Pager._on_mouse_scroll,
    }
    for state in PagerState:
        table[(state, Resize)] = Pager._on_resize
        table[(state, DocumentLoaded)] = Pager._on_document_loaded
        table[(state, RenderComplete)] = Pager._on_render_complete
        table[(state, ReloadRequested)] = Pager._on_reload
        table[(state, EditorFinished)] = Pager._on_reload
        table[(state, StatusTimerFired)] = Pager._on_status_timer
        table[(state, ErrorOccurred)] = Pager._on_error
    return table


Pager.TRANSITIONS = _build_transitions()
