"""Resolve rendered-text selections onto raw message spans."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..alignment.aligner import align
from ..alignment.loose_match import find_loose
from ..chat.message_model import ChatMessage
from ..core.errors import ResolutionFailure
from ..core.ranges import TextRange
from ..rendering.dom import DomRange, RenderedContainer, text_content
from ..rendering.markdown import MarkdownRenderer, Renderer

LOGGER = logging.getLogger(__name__)

STRATEGY_ALIGNED = "aligned"
STRATEGY_LOOSE = "loose"


@dataclass(slots=True, frozen=True)
class Selection:
    """Immutable snapshot of a selection inside one rendered message.

    ``start``/``end`` are offsets into the rendered (formatted) text. The
    snapshot copies the selected text and the container's full text so it
    stays usable after the live view changes, e.g. while a rewrite is being
    generated.
    """

    message_id: str
    start: int
    end: int
    text: str
    formatted_text: str | None = None
    swipe_id: int | None = None

    @property
    def is_blank(self) -> bool:
        return not self.text.strip()

    @classmethod
    def capture(
        cls,
        message_id: str,
        container: RenderedContainer,
        dom_range: DomRange,
        *,
        swipe_id: int | None = None,
    ) -> Selection | None:
        """Snapshot ``dom_range``; ``None`` for blank or cross-message ranges."""

        if not (container.contains(dom_range.start_node) and container.contains(dom_range.end_node)):
            LOGGER.debug("Ignoring selection whose ends lie outside message %s", message_id)
            return None
        if dom_range.collapsed:
            return None
        text = dom_range.to_string()
        if not text.strip():
            return None
        start = container.text_offset(dom_range.start_node) + dom_range.start_offset
        end = container.text_offset(dom_range.end_node) + dom_range.end_offset
        return cls(
            message_id=str(message_id),
            start=start,
            end=end,
            text=text,
            formatted_text=container.text_content,
            swipe_id=swipe_id,
        )


@dataclass(slots=True, frozen=True)
class ResolvedSelection:
    """Raw-text span a selection resolved to, plus the text it was built from."""

    message_id: str
    swipe_id: int | None
    span: TextRange
    raw_text: str
    selected_raw_text: str
    selection_text: str
    strategy: str = STRATEGY_ALIGNED
    expanded_markers: str = ""

    @property
    def fallback_fragment(self) -> str:
        """Text used to relocate the span when offsets turn out to be unusable."""

        return self.selected_raw_text or self.selection_text or ""


def expand_markdown_markers(raw: str, start: int, end: int) -> tuple[int, int, str]:
    """Widen ``[start, end)`` over enclosing italic or bold asterisks.

    A span wrapped in single asterisks grows by one character per side, one
    wrapped in double asterisks by two. Neither expansion applies when a
    further adjacent asterisk suggests a bold-italic run.
    """

    length = len(raw)

    def star(index: int) -> bool:
        return 0 <= index < length and raw[index] == "*"

    if (
        start > 0
        and end < length
        and star(start - 1)
        and star(end)
        and not star(start - 2)
        and not star(end + 1)
    ):
        return start - 1, end + 1, "*"
    if (
        start > 1
        and end < length - 1
        and raw[start - 2 : start] == "**"
        and raw[end : end + 2] == "**"
        and not star(start - 3)
        and not star(end + 2)
    ):
        return start - 2, end + 2, "**"
    return start, end, ""


class SelectionResolver:
    """Map :class:`Selection` snapshots onto raw message text."""

    def __init__(self, renderer: Renderer | None = None) -> None:
        self._renderer = renderer or MarkdownRenderer()

    def formatted_text_for(self, message: ChatMessage, selection: Selection) -> str:
        if selection.formatted_text is not None:
            return selection.formatted_text
        html = self._renderer.render(message.mes, message.render_context(selection.message_id))
        return text_content(html)

    def resolve(self, message: ChatMessage, selection: Selection) -> ResolvedSelection:
        """Return the raw span for ``selection`` or raise :class:`ResolutionFailure`."""

        raw = message.mes or ""
        formatted = self.formatted_text_for(message, selection)
        mapping = align(raw, formatted)

        if _covers_all_content(formatted, selection.start, selection.end):
            raw_start, raw_end, markers = 0, len(raw), ""
        else:
            raw_start = mapping.to_raw(selection.start)
            raw_end = mapping.to_raw(selection.end)
            markers = ""
            if raw_start < raw_end:
                raw_start, raw_end, markers = expand_markdown_markers(raw, raw_start, raw_end)

        selected_raw = raw[raw_start:raw_end] if raw_start < raw_end else ""
        if 0 <= raw_start < raw_end <= len(raw):
            LOGGER.debug(
                "Selection %d:%d of message %s resolved to raw %d:%d",
                selection.start,
                selection.end,
                selection.message_id,
                raw_start,
                raw_end,
            )
            return ResolvedSelection(
                message_id=selection.message_id,
                swipe_id=selection.swipe_id,
                span=TextRange(raw_start, raw_end),
                raw_text=raw,
                selected_raw_text=selected_raw,
                selection_text=selection.text,
                strategy=STRATEGY_ALIGNED,
                expanded_markers=markers,
            )

        fragment = selected_raw.strip() or selection.text.strip()
        loose = find_loose(raw, fragment)
        if loose is None:
            raise ResolutionFailure(
                message_id=selection.message_id,
                fragment=fragment,
                details={"raw_start": raw_start, "raw_end": raw_end},
            )
        LOGGER.info(
            "Offsets %d:%d for message %s were unusable; loose match found %d:%d",
            raw_start,
            raw_end,
            selection.message_id,
            loose.start,
            loose.end,
        )
        return ResolvedSelection(
            message_id=selection.message_id,
            swipe_id=selection.swipe_id,
            span=loose,
            raw_text=raw,
            selected_raw_text=loose.slice(raw),
            selection_text=selection.text,
            strategy=STRATEGY_LOOSE,
        )


def _covers_all_content(formatted: str, start: int, end: int) -> bool:
    content = formatted.strip()
    if not content:
        return False
    leading = len(formatted) - len(formatted.lstrip())
    trailing_end = len(formatted.rstrip())
    return start <= leading and end >= trailing_end


__all__ = [
    "ResolvedSelection",
    "STRATEGY_ALIGNED",
    "STRATEGY_LOOSE",
    "Selection",
    "SelectionResolver",
    "expand_markdown_markers",
]
