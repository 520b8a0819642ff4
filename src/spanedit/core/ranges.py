"""Raw-text spans produced by selection resolution."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class TextRange:
    """Half-open ``[start, end)`` span of raw message text.

    Offsets are absolute character indices with ``0 <= start <= end``.
    """

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid text range [{self.start}, {self.end})")

    def slice(self, text: str) -> str:
        """Return the part of ``text`` covered by the range."""

        return text[self.start : self.end]

    def to_tuple(self) -> tuple[int, int]:
        return (self.start, self.end)

    def clamp(self, *, upper: int) -> TextRange:
        """Clamp both ends to ``upper``, typically the raw text length."""

        return TextRange(min(self.start, upper), min(self.end, upper))


__all__ = ["TextRange"]
