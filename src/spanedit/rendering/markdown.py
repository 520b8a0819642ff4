"""Markdown rendering for chat messages."""

from __future__ import annotations

import html
from dataclasses import dataclass
from typing import Optional, Protocol

from markdown_it import MarkdownIt


@dataclass(slots=True, frozen=True)
class RenderContext:
    """Message attributes a renderer may use when formatting raw text."""

    message_id: str | None = None
    character_name: str | None = None
    is_user: bool = False
    is_system: bool = False


class Renderer(Protocol):
    """Collaborator turning raw message text into rendered HTML."""

    def render(self, raw_text: str, context: RenderContext | None = None) -> str:
        ...


class MarkdownRenderer:
    """Render chat messages with ``markdown-it-py``.

    System messages are shown verbatim inside ``<pre>`` just like a host that
    skips formatting for them. Raw HTML in messages is escaped rather than
    passed through.
    """

    def __init__(self, *, typographer: bool = False) -> None:
        self._typographer = typographer
        self._renderer: Optional[MarkdownIt] = None

    def render(self, raw_text: str, context: RenderContext | None = None) -> str:
        text = raw_text or ""
        if context is not None and context.is_system:
            return f"<pre>{html.escape(text)}</pre>"
        return self._build_renderer().render(text)

    def _build_renderer(self) -> MarkdownIt:
        if self._renderer is None:
            renderer = MarkdownIt(
                "commonmark",
                {"html": False, "typographer": self._typographer},
            )
            renderer.enable("table")
            renderer.enable("strikethrough")
            if self._typographer:
                renderer.enable(["replacements", "smartquotes"])
            self._renderer = renderer
        return self._renderer


__all__ = ["MarkdownRenderer", "RenderContext", "Renderer"]
