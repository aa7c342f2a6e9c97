from __future__ import annotations

import logging
import os
import re
import shlex
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pygments.lexers import get_lexer_for_filename
from pygments.util import ClassNotFound

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = (".md", ".mdown", ".mkdn", ".mkd", ".markdown")

# Editors that understand a leading "+LINE" argument
LINE_AWARE_EDITORS = ("vi", "vim", "nvim", "nano", "emacs", "kak", "micro", "hx", "joe", "mg")

_FRONTMATTER = re.compile(r"^---\r?\n(\s*\r?\n)?", re.MULTILINE)


class DocumentError(Exception):
    """Raised when a document cannot be read from disk."""


@dataclass
class Document:
    """A document being viewed plus its last rendering."""

    body: str = ""
    local_path: str = ""
    note: str = ""
    rendered: str = ""
    rendered_width: int = 0

    @classmethod
    def from_path(cls, path: str | Path) -> "Document":
        path = Path(expand_path(str(path))).absolute()
        return cls(local_path=str(path), note=path.name)

    def set_body(self, body: str) -> None:
        """Replace the body, dropping the render cache when it changed."""
        if body != self.body:
            self.body = body
            self.invalidate()

    def rendered_at(self, width: int) -> bool:
        """True when the cached rendering was made for ``width``."""
        return self.rendered != "" and self.rendered_width == width

    def set_rendered(self, content: str, width: int) -> None:
        self.rendered = content
        self.rendered_width = width

    def invalidate(self) -> None:
        self.rendered = ""
        self.rendered_width = 0


def is_markdown_file(filename: str) -> bool:
    """Treat extensionless names and the usual markdown extensions as markdown."""
    ext = os.path.splitext(filename)[1].lower()
    if not ext:
        return True
    return ext in MARKDOWN_EXTENSIONS


def language_for(filename: str) -> str:
    """Best-effort fence language for a source file name."""
    try:
        lexer = get_lexer_for_filename(filename)
    except ClassNotFound:
        return os.path.splitext(filename)[1].lstrip(".").lower()
    return lexer.aliases[0] if lexer.aliases else lexer.name.lower()


def wrap_code_block(s: str, language: str) -> str:
    return "```" + language + "\n" + s + "```"


def remove_frontmatter(content: str) -> str:
    """Strip a YAML front matter block, but only when it opens the document."""
    matches = list(_FRONTMATTER.finditer(content))[:2]
    if len(matches) > 1 and matches[0].start() == 0:
        return content[matches[1].end():]
    return content


def expand_path(path: str) -> str:
    """Expand ``~`` and environment variables in a path."""
    if not path:
        return path
    return os.path.expandvars(os.path.expanduser(path))


def read_local_document(document: Document) -> Document:
    """
    Read a fresh copy of the document's file from disk.

    Markdown files lose their front matter. The returned document shares path
    and note with the input but carries a new body and an empty render cache.
    """
    if not document.local_path:
        raise DocumentError("document has no local path")

    try:
        content = Path(document.local_path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise DocumentError(f"cannot read {document.local_path}: {e.strerror or e}") from e

    if is_markdown_file(document.note):
        content = remove_frontmatter(content)

    logger.debug("read %d chars from %s", len(content), document.local_path)
    return Document(body=content, local_path=document.local_path, note=document.note)


def read_stdin_document(stream=None) -> Document:
    """Build a path-less document from piped input."""
    stream = stream or sys.stdin
    return Document(body=remove_frontmatter(stream.read()))


def editor_command(path: str, line: int = 0, editor: Optional[str] = None) -> list[str]:
    """Command line that opens ``path`` in the user's editor at ``line``."""
    editor = editor or os.environ.get("VISUAL") or os.environ.get("EDITOR") or "nano"
    cmd = shlex.split(editor) or ["nano"]

    if line > 0 and os.path.basename(cmd[0]) in LINE_AWARE_EDITORS:
        cmd.append(f"+{line}")
    cmd.append(path)
    return cmd
