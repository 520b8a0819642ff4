"""Minimal rendered-DOM model used to capture selections.

A rendered message is reduced to the ordered sequence of its text nodes, which
is all the offset arithmetic needs: a selection boundary is a ``(text node,
offset)`` pair exactly like a browser ``Range`` boundary, and its position in
formatted text is the number of characters in the text nodes preceding it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Iterable, Iterator


class _TextCollector(HTMLParser):
    """Collect text node payloads in document order."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.chunks: list[str] = []

    def handle_data(self, data: str) -> None:
        if data:
            self.chunks.append(data)


def html_text_nodes(markup: str) -> list[str]:
    """Return the decoded text node payloads of ``markup``."""

    collector = _TextCollector()
    collector.feed(markup or "")
    collector.close()
    return collector.chunks


def text_content(markup: str) -> str:
    """Return the DOM ``textContent`` equivalent of ``markup``."""

    return "".join(html_text_nodes(markup))


@dataclass(slots=True, eq=False)
class TextNode:
    """Single text node inside a :class:`RenderedContainer`."""

    text: str
    index: int
    owner: RenderedContainer | None = field(default=None, repr=False)

    def __len__(self) -> int:
        return len(self.text)


class RenderedContainer:
    """Rendered text of one message, addressable by text node."""

    def __init__(self, chunks: Iterable[str], *, message_id: str | None = None) -> None:
        self.message_id = message_id
        self._nodes: tuple[TextNode, ...] = tuple(
            TextNode(text=chunk, index=index, owner=self) for index, chunk in enumerate(chunks)
        )
        self._text = "".join(node.text for node in self._nodes)

    @classmethod
    def from_html(cls, markup: str, *, message_id: str | None = None) -> RenderedContainer:
        return cls(html_text_nodes(markup), message_id=message_id)

    @property
    def nodes(self) -> tuple[TextNode, ...]:
        return self._nodes

    @property
    def text_content(self) -> str:
        return self._text

    def __iter__(self) -> Iterator[TextNode]:
        return iter(self._nodes)

    def contains(self, node: TextNode | None) -> bool:
        return node is not None and node.owner is self

    def text_offset(self, node: TextNode) -> int:
        """Return the number of characters in text nodes preceding ``node``."""

        if not self.contains(node):
            raise ValueError("Text node does not belong to this container")
        return sum(len(previous) for previous in self._nodes[: node.index])

    def locate(self, offset: int) -> tuple[TextNode, int]:
        """Return the ``(node, node_offset)`` boundary for a formatted offset."""

        if not self._nodes:
            raise ValueError("Container has no text nodes")
        remaining = max(0, min(int(offset), len(self._text)))
        for node in self._nodes:
            if remaining < len(node):
                return node, remaining
            remaining -= len(node)
        last = self._nodes[-1]
        return last, len(last)

    def range_for(self, start: int, end: int) -> DomRange:
        """Build a :class:`DomRange` covering formatted offsets ``[start, end)``."""

        if end < start:
            start, end = end, start
        start_node, start_offset = self.locate(start)
        end_node, end_offset = self.locate(end)
        return DomRange(start_node, start_offset, end_node, end_offset)


@dataclass(slots=True, frozen=True)
class DomRange:
    """Selection boundaries expressed as text node positions."""

    start_node: TextNode
    start_offset: int
    end_node: TextNode
    end_offset: int

    @property
    def collapsed(self) -> bool:
        return self.start_node is self.end_node and self.start_offset == self.end_offset

    def to_string(self) -> str:
        """Return the selected text, like ``Range.toString()``."""

        if self.start_node is self.end_node:
            return self.start_node.text[self.start_offset : self.end_offset]
        owner = self.start_node.owner
        if owner is None or self.end_node.owner is not owner:
            raise ValueError("Range boundaries span different containers")
        parts = [self.start_node.text[self.start_offset :]]
        for node in owner.nodes[self.start_node.index + 1 : self.end_node.index]:
            parts.append(node.text)
        parts.append(self.end_node.text[: self.end_offset])
        return "".join(parts)


__all__ = ["DomRange", "RenderedContainer", "TextNode", "html_text_nodes", "text_content"]
