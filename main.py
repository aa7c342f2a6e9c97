#!/usr/bin/env python3
"""
Folio - terminal pager for markdown and source documents.

Renders a document with Rich, pages it full screen and reloads it when the
file changes on disk.

Usage:
    folio README.md
    cat notes.md | folio
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import Optional

import pyperclip
from rich.text import Text
from textual import events, work
from textual.app import App, ComposeResult, SuspendNotSupported
from textual.message import Message
from textual.timer import Timer
from textual.widgets import Static

from pager import (
    CancelStatusTimer,
    CopyToClipboard,
    DocumentLoaded,
    EditorFinished,
    ErrorOccurred,
    KeyInput,
    LoadDocument,
    MouseScroll,
    OpenEditor,
    Pager,
    ReloadRequested,
    RenderComplete,
    RequestRender,
    Resize,
    StartStatusTimer,
    StatusTimerFired,
    SyncScreen,
    UnwatchFile,
    WatchFile,
)
from renderer import RenderError, render
from settings import STYLES, ConfigError, PagerConfig, load_config, setup_logging
from statusbar import HELP_VIEW_STYLE, help_view
from utility import (
    Document,
    DocumentError,
    editor_command,
    read_local_document,
    read_stdin_document,
)
from watcher import FileWatcher

__version__ = "0.1.0"

logger = logging.getLogger(__name__)

MOUSE_WHEEL_DELTA = 3

THEME = """
Screen {
    background: #1a1a1a;
    layout: vertical;
}

#pager {
    height: 1fr;
    padding: 0;
}

#status {
    height: 1;
    background: #242424;
}

#help {
    height: auto;
    display: none;
}

#help.visible {
    display: block;
}
"""


# ============================================================================
# Widgets
# ============================================================================

class PagerView(Static):
    """The visible slice of the rendered document."""

    def __init__(self, pager: Pager):
        super().__init__(id="pager")
        self.pager = pager
        self._source: Optional[list[str]] = None
        self._parsed: dict[int, Text] = {}

    def show_viewport(self) -> None:
        viewport = self.pager.viewport
        if viewport.lines is not self._source:
            self._source = viewport.lines
            self._parsed = {}

        lines = []
        for i in range(viewport.y_offset, viewport.y_offset + viewport.height):
            if i >= len(viewport.lines):
                break
            if i not in self._parsed:
                self._parsed[i] = Text.from_ansi(viewport.lines[i], end="")
            lines.append(self._parsed[i])

        self.update(Text("\n", no_wrap=True, overflow="crop").join(lines))


class PagerEvent(Message):
    """Carries a pager event from a worker or watcher thread to the app."""

    def __init__(self, event: object):
        super().__init__()
        self.event = event


# ============================================================================
# Main Application
# ============================================================================

class Folio(App):
    """Full-screen pager for a single document."""

    CSS = THEME
    TITLE = "Folio"
    ENABLE_COMMAND_PALETTE = False

    def __init__(self, document: Optional[Document] = None, config: Optional[PagerConfig] = None):
        super().__init__()
        self.config = config or PagerConfig()
        self.document = document
        self.pager = Pager(self.config)
        self.watcher = FileWatcher(on_change=self._file_changed)
        self._status_timer: Optional[Timer] = None

    def compose(self) -> ComposeResult:
        yield PagerView(self.pager)
        yield Static("", id="status")
        yield Static("", id="help")

    def on_mount(self) -> None:
        if self.document is not None:
            self.run_commands(self.pager.open(self.document))
        self.refresh_view()

    def on_unmount(self) -> None:
        self.watcher.close()

    # ---- event intake ---------------------------------------------------

    def feed_event(self, event: object) -> None:
        """Feed one event to the pager, run its commands and repaint."""
        self.run_commands(self.pager.update(event))
        self.refresh_view()

    def on_pager_event(self, message: PagerEvent) -> None:
        self.feed_event(message.event)

    def on_resize(self, event: events.Resize) -> None:
        self.feed_event(Resize(event.size.width, event.size.height))

    def on_key(self, event: events.Key) -> None:
        event.stop()
        key = event.character if event.is_printable and event.character else event.key

        if key == "ctrl+c":
            self.exit()
            return

        if not self.pager.in_input_mode():
            if key == "q":
                self.exit()
                return
            if key in ("escape", "esc"):
                self.action_close_document()
                return

        self.feed_event(KeyInput(key))

    def on_mouse_scroll_down(self, event: events.MouseScrollDown) -> None:
        self.feed_event(MouseScroll(MOUSE_WHEEL_DELTA))

    def on_mouse_scroll_up(self, event: events.MouseScrollUp) -> None:
        self.feed_event(MouseScroll(-MOUSE_WHEEL_DELTA))

    def action_close_document(self) -> None:
        """There is no document list to return to, so closing ends the app."""
        self.run_commands(self.pager.unload())
        self.exit()

    def _file_changed(self) -> None:
        # runs on the watchdog observer thread
        self.post_message(PagerEvent(ReloadRequested()))

    # ---- commands -------------------------------------------------------

    def run_commands(self, commands: list) -> None:
        for command in commands:
            if isinstance(command, RequestRender):
                self.render_document(command)
            elif isinstance(command, LoadDocument):
                self.load_document(command.document)
            elif isinstance(command, SyncScreen):
                self.query_one(PagerView).refresh()
            elif isinstance(command, StartStatusTimer):
                self.start_status_timer(command.timeout)
            elif isinstance(command, CancelStatusTimer):
                self.cancel_status_timer()
            elif isinstance(command, OpenEditor):
                self.open_editor(command.path, command.line)
            elif isinstance(command, CopyToClipboard):
                self.copy_contents(command.text)
            elif isinstance(command, WatchFile):
                self.watcher.watch(command.path)
            elif isinstance(command, UnwatchFile):
                self.watcher.unwatch()
            else:
                logger.warning("unknown pager command %r", command)

    @work(thread=True, group="render")
    def render_document(self, request: RequestRender) -> None:
        """Render off the UI thread; stale results are dropped by the pager."""
        try:
            content = render(request.body, request.note, request.width, self.config)
        except RenderError as e:
            logger.error("error rendering document: %s", e)
            self.post_message(PagerEvent(ErrorOccurred(str(e))))
            return
        self.post_message(PagerEvent(RenderComplete(request.body, content, request.width, request.seq)))

    @work(thread=True, group="load")
    def load_document(self, document: Document) -> None:
        try:
            loaded = read_local_document(document)
        except DocumentError as e:
            logger.error("error loading document: %s", e)
            self.post_message(PagerEvent(ErrorOccurred(str(e))))
            return
        self.post_message(PagerEvent(DocumentLoaded(loaded)))

    def start_status_timer(self, timeout: float) -> None:
        self.cancel_status_timer()
        self._status_timer = self.set_timer(timeout, self._status_expired)

    def cancel_status_timer(self) -> None:
        if self._status_timer is not None:
            self._status_timer.stop()
            self._status_timer = None

    def _status_expired(self) -> None:
        self._status_timer = None
        self.feed_event(StatusTimerFired())

    def open_editor(self, path: str, line: int) -> None:
        cmd = editor_command(path, line)
        logger.info("running editor: %s", " ".join(cmd))
        try:
            with self.suspend():
                subprocess.run(cmd, check=False)
        except (OSError, SuspendNotSupported) as e:
            logger.error("failed to launch editor: %s", e)
        # reload whether or not the edit worked
        self.post_message(PagerEvent(EditorFinished()))

    def copy_contents(self, text: str) -> None:
        # OSC 52 first, then the system clipboard when one is reachable
        self.copy_to_clipboard(text)
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as e:
            logger.debug("system clipboard unavailable: %s", e)

    # ---- drawing --------------------------------------------------------

    def refresh_view(self) -> None:
        with self.batch_update():
            self.query_one(PagerView).show_viewport()
            self.query_one("#status", Static).update(self.pager.status_view())

            help_panel = self.query_one("#help", Static)
            help_panel.set_class(self.pager.show_help, "visible")
            if self.pager.show_help:
                help_panel.update(Text(help_view(self.pager.width), style=HELP_VIEW_STYLE, no_wrap=True))


# ============================================================================
# Command line
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="folio", description="Render and page markdown in the terminal.")
    parser.add_argument("path", nargs="?", help="document to open, or - for stdin")
    parser.add_argument("-s", "--style", choices=STYLES, help="rendering style")
    parser.add_argument("-w", "--width", type=int, help="maximum word wrap width")
    parser.add_argument("-l", "--line-numbers", action="store_true", default=None,
                        help="show line numbers for markdown documents")
    parser.add_argument("-p", "--preserve-new-lines", action="store_true", default=None,
                        help="keep single newlines as line breaks")
    parser.add_argument("--no-render", action="store_true", help="show the raw document")
    parser.add_argument("--config", type=Path, help="path to a folio.toml config file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def apply_arguments(config: PagerConfig, args: argparse.Namespace) -> PagerConfig:
    """Layer command line flags over the file configuration."""
    overrides = {}
    if args.style:
        overrides["style"] = args.style
    if args.width is not None:
        overrides["max_width"] = max(0, args.width)
    if args.line_numbers:
        overrides["show_line_numbers"] = True
    if args.preserve_new_lines:
        overrides["preserve_new_lines"] = True
    if args.no_render:
        overrides["render_enabled"] = False
    return dataclasses.replace(config, **overrides)


def _reattach_tty() -> None:
    """After reading piped input, take keyboard input from the terminal."""
    try:
        fd = os.open("/dev/tty", os.O_RDONLY)
    except OSError as e:
        logger.error("cannot open /dev/tty for input: %s", e)
        return
    os.dup2(fd, sys.stdin.fileno())
    os.close(fd)


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = apply_arguments(load_config(args.config), args)
    except ConfigError as e:
        print(f"folio: {e}", file=sys.stderr)
        return 1
    setup_logging(config)

    if args.path == "-" or (args.path is None and not sys.stdin.isatty()):
        document = read_stdin_document()
        _reattach_tty()
    elif args.path:
        document = Document.from_path(args.path)
        if not os.path.isfile(document.local_path):
            print(f"folio: no such file: {args.path}", file=sys.stderr)
            return 1
    else:
        parser.print_usage(sys.stderr)
        print("\nControls:", file=sys.stderr)
        print(help_view(), file=sys.stderr)
        return 1

    logger.info("opening %s", document.local_path or "stdin")
    Folio(document, config).run()
    return 0


if __name__ == '__main__':
    sys.exit(main())
