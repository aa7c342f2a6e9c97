from __future__ import annotations

import math

from rich.cells import cell_len, set_cell_size
from rich.style import Style
from rich.text import Text

ELLIPSIS = "…"
LOGO = " Folio "
HELP_HINT = " ? Help "

# Status bar palette
LOGO_STYLE = Style(color="#ECFD65", bgcolor="#EE6FF8", bold=True)
NOTE_STYLE = Style(color="#7D7D7D", bgcolor="#242424")
SCROLL_POS_STYLE = Style(color="#5A5A5A", bgcolor="#242424")
HELP_HINT_STYLE = Style(color="#7D7D7D", bgcolor="#323232")
PROMPT_STYLE = Style(color="#ECFD65")
CURSOR_STYLE = Style(reverse=True)
HELP_VIEW_STYLE = Style(color="#7D7D7D", bgcolor="#1B1B1B")

# While a status message is up
MESSAGE_STYLE = Style(color="#89F0CB", bgcolor="#1C8760")
MESSAGE_SCROLL_POS_STYLE = Style(color="#89F0CB", bgcolor="#1C8760")
MESSAGE_HELP_HINT_STYLE = Style(color="#B6FFE4", bgcolor="#04B575")

_HELP_RIGHT_COLUMN = (
    "g/home  go to top",
    "G/end   go to bottom",
    "/       search",
    "n/N     next/prev match",
    ":       jump to line/pct",
    "c       copy contents",
    "e       edit this document",
    "r       reload this document",
    "esc     close document",
    "q       quit",
)

_HELP_LEFT_COLUMN = (
    "k/↑      up                  ",
    "j/↓      down                ",
    "b/pgup   page up             ",
    "f/pgdn   page down           ",
    "←/→      page back/fwd       ",
    "u        ½ page up           ",
    "d        ½ page down         ",
)


def truncate_with_tail(s: str, width: int, tail: str = ELLIPSIS) -> str:
    """Cut ``s`` to ``width`` cells, ending in ``tail`` when anything was cut."""
    if cell_len(s) <= width:
        return s
    if width <= cell_len(tail):
        return set_cell_size(tail, max(0, width))
    return set_cell_size(s, width - cell_len(tail)).rstrip() + tail


def page_indicator(y_offset: int, view_height: int, total_lines: int) -> str:
    view_height = max(1, view_height)
    total_pages = math.ceil(total_lines / view_height)
    if total_pages <= 1:
        return ""
    current_page = min(max(y_offset // view_height + 1, 1), total_pages)
    return f" pg {current_page}/{total_pages} "


def match_counter(search_index: int, search_count: int) -> str:
    if search_count <= 0 or search_index < 0:
        return ""
    return f" {search_index + 1}/{search_count} "


def scroll_percent_view(percent: float) -> str:
    percent = max(0.0, min(1.0, percent))
    return f" {percent * 100:3.0f}% "


def status_bar_view(
    width: int,
    note: str,
    *,
    showing_message: bool = False,
    search_index: int = -1,
    search_count: int = 0,
    y_offset: int = 0,
    view_height: int = 1,
    total_lines: int = 0,
    scroll_percent: float = 1.0,
) -> Text:
    """
    Compose the one-line status bar.

    Left to right: logo, note (or the status message), filler, match counter,
    page indicator, scroll percentage and the help hint. The note is the only
    segment that shrinks when space runs out.
    """
    counter = match_counter(search_index, search_count)
    page = page_indicator(y_offset, view_height, total_lines)
    percent = scroll_percent_view(scroll_percent)

    fixed = cell_len(LOGO) + cell_len(counter) + cell_len(page) + cell_len(percent) + cell_len(HELP_HINT)
    note = truncate_with_tail(f" {note} ", max(0, width - fixed))
    padding = max(0, width - fixed - cell_len(note))

    if showing_message:
        note_style, pos_style, hint_style = MESSAGE_STYLE, MESSAGE_SCROLL_POS_STYLE, MESSAGE_HELP_HINT_STYLE
    else:
        note_style, pos_style, hint_style = NOTE_STYLE, SCROLL_POS_STYLE, HELP_HINT_STYLE

    bar = Text(no_wrap=True, overflow="crop", end="")
    bar.append(LOGO, LOGO_STYLE)
    bar.append(note, note_style)
    bar.append(" " * padding, note_style)
    bar.append(counter, pos_style)
    bar.append(page, pos_style)
    bar.append(percent, pos_style)
    bar.append(HELP_HINT, hint_style)
    return bar


def prompt_view(prompt: str, value: str, cursor: int, width: int) -> Text:
    """Text entry line shown in place of the status bar (``/`` and ``:``)."""
    width = max(1, width)
    cursor = max(0, min(cursor, len(value)))

    line = Text(no_wrap=True, overflow="crop", end="")
    line.append(prompt, PROMPT_STYLE)
    line.append(value[:cursor])
    line.append(value[cursor:cursor + 1] or " ", CURSOR_STYLE)
    line.append(value[cursor + 1:])

    if line.cell_len > width:
        line.truncate(width, overflow="ellipsis")
    elif line.cell_len < width:
        line.append(" " * (width - line.cell_len), NOTE_STYLE)
    return line


def help_view(width: int = 0) -> str:
    """Key binding reference in two columns; lines padded to ``width`` if known."""
    lines = [""]
    for i, right in enumerate(_HELP_RIGHT_COLUMN):
        left = _HELP_LEFT_COLUMN[i] if i < len(_HELP_LEFT_COLUMN) else " " * 29
        lines.append(left + right)

    lines = ["  " + line if line else line for line in lines]
    if width > 0:
        lines = [line + " " * max(width - cell_len(line), 0) for line in lines]
    return "\n".join(lines)


def help_height(width: int = 0) -> int:
    return help_view(width).count("\n")
