"""
Markdown to ANSI rendering for the pager.

Documents are rendered off the UI thread into a plain string of ANSI styled
lines, which the viewport then slices. Source files are shown as a single
fenced code block with a line number gutter.
"""

from __future__ import annotations

import logging
import os
from io import StringIO
from typing import Optional

from markdown_it import MarkdownIt
from rich.cells import cell_len
from rich.console import Console
from rich.markdown import Markdown
from rich.style import Style
from rich.text import Text

from settings import PagerConfig
from utility import is_markdown_file, language_for, wrap_code_block

logger = logging.getLogger(__name__)

LINE_NUMBER_WIDTH = 4
FALLBACK_WIDTH = 80
CODE_MARGIN = 4
# Syntax expands tabs to this many cells; measure the same way
CODE_TAB_SIZE = 4

LINE_NUMBER_STYLE = Style(color="#7D7D7D")

CODE_THEMES = {
    "dark": "monokai",
    "light": "friendly",
    "notty": "monokai",
    "ascii": "monokai",
}


class RenderError(Exception):
    """Raised when a document cannot be rendered."""


def effective_width(viewport_width: int, terminal_width: int, max_width: int = 0) -> int:
    """Width to render markdown at for the given screen geometry."""
    width = viewport_width
    if width == 0:
        width = terminal_width
    if width <= 0:
        width = FALLBACK_WIDTH
    if 0 < max_width < width:
        width = max_width
    return width


def resolve_style(style: str) -> str:
    """Turn ``auto`` into ``dark`` or ``light`` using the terminal's COLORFGBG hint."""
    if style != "auto":
        return style
    colorfgbg = os.environ.get("COLORFGBG", "")
    background = colorfgbg.rsplit(";", 1)[-1]
    if background in ("7", "15"):
        return "light"
    return "dark"


def preserve_new_lines(text: str) -> str:
    """
    Turn single newlines into hard breaks so the document keeps its line
    structure. Code blocks and blank lines are left alone.
    """
    lines = text.split("\n")
    code_lines: set[int] = set()
    for token in MarkdownIt("commonmark").parse(text):
        if token.type in ("fence", "code_block") and token.map:
            code_lines.update(range(*token.map))

    out = []
    for i, line in enumerate(lines):
        next_line = lines[i + 1] if i + 1 < len(lines) else ""
        if i in code_lines or i + 1 in code_lines or not line.strip() or not next_line.strip():
            out.append(line)
        else:
            out.append(line.rstrip() + "  ")
    return "\n".join(out)


def _code_width(line: str) -> int:
    return cell_len(line.replace("\t", " " * CODE_TAB_SIZE))


def _console(width: int, style: str) -> Console:
    if style not in CODE_THEMES:
        raise RenderError(f"error creating renderer: unknown style {style!r}")
    color_system: Optional[str] = "truecolor"
    if style in ("notty", "ascii"):
        color_system = None
    return Console(
        file=StringIO(),
        width=max(1, width),
        force_terminal=True,
        color_system=color_system,
        legacy_windows=False,
        highlight=False,
        emoji=False,
    )


def _to_ansi(console: Console, renderable) -> str:
    with console.capture() as capture:
        console.print(renderable, end="", soft_wrap=True, crop=False)
    return capture.get()


def _is_blank(line: str) -> bool:
    return not Text.from_ansi(line).plain.strip()


def _trim_blank_lines(lines: list[str]) -> list[str]:
    start, end = 0, len(lines)
    while start < end and _is_blank(lines[start]):
        start += 1
    while end > start and _is_blank(lines[end - 1]):
        end -= 1
    return lines[start:end]


def _number_lines(console: Console, lines: list[str], width: int) -> list[str]:
    line_width = width - LINE_NUMBER_WIDTH
    numbered = []
    for i, line in enumerate(lines, start=1):
        text = Text(f"{i:>{LINE_NUMBER_WIDTH}}", style=LINE_NUMBER_STYLE, end="")
        body = Text.from_ansi(line, end="")
        if line_width > 0 and body.cell_len > line_width:
            body.truncate(line_width)
        text.append_text(body)
        numbered.append(_to_ansi(console, text))
    return numbered


def render(body: str, note: str, width: int, config: PagerConfig) -> str:
    """
    Render a document for display.

    ``width`` is the resolved viewport width. Non-markdown documents ignore
    it and render at their natural width with line numbers. Raises
    ``RenderError`` when the renderer cannot be built or fails.
    """
    if not config.render_enabled:
        return body

    style = resolve_style(config.style)
    is_code = not is_markdown_file(note)
    if is_code:
        width = 0
        code = body if body.endswith("\n") or not body else body + "\n"
        markup = wrap_code_block(code, language_for(note))
        console_width = max((_code_width(line) for line in body.split("\n")), default=0) + CODE_MARGIN
    else:
        markup = preserve_new_lines(body) if config.preserve_new_lines else body
        console_width = width

    console = _console(console_width, style)
    try:
        document = Markdown(markup, code_theme=CODE_THEMES[style], hyperlinks=False)
        with console.capture() as capture:
            console.print(document)
        out = capture.get()
    except Exception as e:
        raise RenderError(f"error rendering markdown: {e}") from e

    lines = out.split("\n")
    if is_code:
        lines = _trim_blank_lines(lines)
    elif lines and lines[-1] == "":
        # console.print terminates the last line
        lines.pop()

    if is_code or config.show_line_numbers:
        lines = _number_lines(console, lines, width)

    return "\n".join(lines)
