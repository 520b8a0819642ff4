"""Tests for selection capture and raw-span resolution."""

from __future__ import annotations

import pytest

from spanedit.chat.message_model import ChatMessage
from spanedit.core.errors import ResolutionFailure
from spanedit.core.ranges import TextRange
from spanedit.editor.selection import (
    STRATEGY_ALIGNED,
    STRATEGY_LOOSE,
    Selection,
    SelectionResolver,
    expand_markdown_markers,
)
from spanedit.rendering.dom import RenderedContainer
from spanedit.rendering.markdown import MarkdownRenderer


def _select(renderer: MarkdownRenderer, message: ChatMessage, fragment: str, *, message_id: str = "0") -> Selection:
    container = RenderedContainer.from_html(renderer.render(message.mes), message_id=message_id)
    start = container.text_content.index(fragment)
    selection = Selection.capture(message_id, container, container.range_for(start, start + len(fragment)))
    assert selection is not None
    return selection


def test_italic_selection_expands_over_markers(renderer: MarkdownRenderer) -> None:
    message = ChatMessage(mes="a *bold-ish* b")
    selection = _select(renderer, message, "bold-ish")

    resolved = SelectionResolver(renderer).resolve(message, selection)

    assert resolved.span == TextRange(2, 12)
    assert resolved.selected_raw_text == "*bold-ish*"
    assert resolved.expanded_markers == "*"
    assert resolved.strategy == STRATEGY_ALIGNED


def test_bold_selection_expands_by_two(renderer: MarkdownRenderer) -> None:
    message = ChatMessage(mes="x **strong** y")
    selection = _select(renderer, message, "strong")

    resolved = SelectionResolver(renderer).resolve(message, selection)

    assert resolved.selected_raw_text == "**strong**"
    assert resolved.expanded_markers == "**"


def test_bold_italic_run_is_not_expanded(renderer: MarkdownRenderer) -> None:
    message = ChatMessage(mes="a ***both*** b")
    selection = _select(renderer, message, "both")

    resolved = SelectionResolver(renderer).resolve(message, selection)

    assert resolved.span == TextRange(5, 9)
    assert resolved.expanded_markers == ""


def test_whole_message_selection_covers_raw_text(renderer: MarkdownRenderer) -> None:
    message = ChatMessage(mes="**Hello** world")
    selection = _select(renderer, message, "Hello world")

    resolved = SelectionResolver(renderer).resolve(message, selection)

    assert resolved.span == TextRange(0, len(message.mes))


def test_paragraph_break_whitespace_is_aligned(renderer: MarkdownRenderer) -> None:
    message = ChatMessage(mes="first line\n\nsecond  part")
    selection = _select(renderer, message, "second")

    resolved = SelectionResolver(renderer).resolve(message, selection)

    assert resolved.span == TextRange(12, 18)
    assert resolved.selected_raw_text == "second"


def test_selection_without_captured_text_is_rendered(renderer: MarkdownRenderer) -> None:
    message = ChatMessage(mes="**bold** text")
    selection = Selection(message_id="0", start=0, end=4, text="bold")

    resolved = SelectionResolver(renderer).resolve(message, selection)

    assert resolved.span == TextRange(0, 8)
    assert resolved.raw_text == "**bold** text"


def test_collapsed_offsets_fall_back_to_loose_match() -> None:
    message = ChatMessage(mes="world")
    selection = Selection("0", 7, 12, "world", "zzzzzz world")

    resolved = SelectionResolver().resolve(message, selection)

    assert resolved.strategy == STRATEGY_LOOSE
    assert resolved.span == TextRange(0, 5)


def test_unresolvable_selection_raises() -> None:
    message = ChatMessage(mes="xyz")
    selection = Selection("0", 4, 7, "def", "abc def")

    with pytest.raises(ResolutionFailure) as excinfo:
        SelectionResolver().resolve(message, selection)

    assert excinfo.value.fragment == "def"
    assert excinfo.value.message_id == "0"
    assert message.mes == "xyz"


def test_blank_selection_is_not_captured() -> None:
    container = RenderedContainer(["hello   world"])

    assert Selection.capture("0", container, container.range_for(5, 8)) is None
    assert Selection.capture("0", container, container.range_for(3, 3)) is None


def test_cross_message_selection_is_not_captured() -> None:
    first = RenderedContainer(["hello"])
    second = RenderedContainer(["world"])
    foreign = second.range_for(0, 5)

    assert Selection.capture("0", first, foreign) is None


def test_capture_records_formatted_offsets() -> None:
    container = RenderedContainer(["one ", "two", " three"])
    selection = Selection.capture("4", container, container.range_for(4, 9), swipe_id=1)

    assert selection is not None
    assert (selection.start, selection.end) == (4, 9)
    assert selection.text == "two t"
    assert selection.formatted_text == "one two three"
    assert selection.swipe_id == 1


@pytest.mark.parametrize(
    ("raw", "span", "expected"),
    [
        ("*x*", (1, 2), (0, 3, "*")),
        ("**x**", (2, 3), (0, 5, "**")),
        ("***x***", (3, 4), (3, 4, "")),
        ("x", (0, 1), (0, 1, "")),
    ],
)
def test_expand_markdown_markers(raw: str, span: tuple[int, int], expected: tuple[int, int, str]) -> None:
    assert expand_markdown_markers(raw, *span) == expected
