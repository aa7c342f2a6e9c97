from __future__ import annotations

import pytest
from rich.cells import cell_len
from rich.text import Text

from renderer import (
    FALLBACK_WIDTH,
    RenderError,
    effective_width,
    preserve_new_lines,
    render,
    resolve_style,
)
from settings import PagerConfig

PLAIN = PagerConfig(style="notty")


def plain_lines(rendered: str) -> list[str]:
    return [Text.from_ansi(line).plain for line in rendered.split("\n")]


def test_render_disabled_returns_raw_markdown():
    body = "# Hello\n\nWorld"
    assert render(body, "test.md", 80, PagerConfig(render_enabled=False)) == body


def test_render_markdown_produces_output():
    out = render("# Hello\n\nWorld", "test.md", 80, PagerConfig(style="dark"))
    assert out
    assert "World" in Text.from_ansi(out).plain


def test_render_markdown_without_line_numbers():
    out = render("Hello there", "test.md", 40, PLAIN)
    lines = [line for line in plain_lines(out) if line.strip()]
    assert lines[0].startswith("Hello there")
    assert not lines[0].startswith("   1")


def test_render_markdown_with_line_numbers():
    config = PagerConfig(style="notty", show_line_numbers=True)
    out = render("first paragraph\n\nsecond paragraph", "test.md", 40, config)

    lines = plain_lines(out)
    assert lines[0].startswith("   1")
    for i, line in enumerate(lines, start=1):
        assert line[:4] == f"{i:>4}"
    assert out.count("\n") == len(lines) - 1


def test_render_line_numbers_clip_to_width():
    config = PagerConfig(style="notty", show_line_numbers=True)
    body = "word " * 40
    out = render(body, "test.md", 30, config)
    for line in plain_lines(out):
        assert cell_len(line) <= 30


def test_render_code_file_always_has_line_numbers():
    config = PagerConfig(style="notty", show_line_numbers=False)
    out = render("package main\n\nfunc main() {}\n", "main.go", 80, config)

    lines = plain_lines(out)
    assert lines[0].startswith("   1")
    assert "package main" in lines[0]
    assert any("func main() {}" in line for line in lines)
    assert not out.endswith("\n")


def test_render_code_file_ignores_viewport_width():
    config = PagerConfig(style="notty")
    long_line = "x = '" + "a" * 120 + "'"
    out = render(long_line + "\n", "script.py", 40, config)
    assert any("a" * 120 in line for line in plain_lines(out))


def test_render_code_file_with_tab_indented_longest_line():
    config = PagerConfig(style="notty")
    body = 'func main() {\n\tfmt.Println("hello world, this is the longest")\n}\n'
    lines = plain_lines(render(body, "main.go", 80, config))

    assert len(lines) == 3
    assert [line[:4] for line in lines] == ["   1", "   2", "   3"]
    assert 'fmt.Println("hello world, this is the longest")' in lines[1]
    assert "}" in lines[2]


def test_render_unknown_style_is_an_error():
    with pytest.raises(RenderError):
        render("# Hi", "test.md", 80, PagerConfig(style="neon"))


def test_effective_width():
    assert effective_width(100, 120) == 100
    assert effective_width(0, 120) == 120
    assert effective_width(0, 0) == FALLBACK_WIDTH
    assert effective_width(100, 120, max_width=80) == 80
    assert effective_width(60, 120, max_width=80) == 60


def test_resolve_style(monkeypatch):
    assert resolve_style("light") == "light"
    monkeypatch.setenv("COLORFGBG", "0;15")
    assert resolve_style("auto") == "light"
    monkeypatch.setenv("COLORFGBG", "15;0")
    assert resolve_style("auto") == "dark"
    monkeypatch.delenv("COLORFGBG")
    assert resolve_style("auto") == "dark"


def test_preserve_new_lines_adds_hard_breaks():
    text = "one\ntwo\n\nthree"
    assert preserve_new_lines(text) == "one  \ntwo\n\nthree"


def test_preserve_new_lines_leaves_code_alone():
    text = "intro\n```\na\nb\n```\noutro"
    assert preserve_new_lines(text) == text


def test_render_preserve_new_lines_keeps_lines_apart():
    config = PagerConfig(style="notty", preserve_new_lines=True)
    lines = plain_lines(render("alpha\nbeta", "test.md", 40, config))
    assert lines[0].strip() == "alpha"
    assert lines[1].strip() == "beta"
