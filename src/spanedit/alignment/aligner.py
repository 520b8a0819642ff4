"""Character alignment between raw message text and its rendered form.

The renderer collapses whitespace, inserts block separators and strips
markdown syntax such as ``*``, ``_`` and backticks. :func:`align` walks both
strings once and records which raw offset produced each formatted offset so a
selection made in rendered text can be projected back onto the raw text.

The walk is greedy rather than an optimal edit-distance alignment. Mismatches
are nearly always short contiguous runs of markdown syntax, so skipping raw
characters until the two strings agree again is sufficient and keeps the
alignment linear and deterministic.
"""

from __future__ import annotations

import logging
from bisect import bisect_left, bisect_right
from dataclasses import dataclass, field

LOGGER = logging.getLogger(__name__)

WHITESPACE_CHARS = frozenset({" ", "\t", "\n", "\r", "\u00a0"})


def is_whitespace(char: str) -> bool:
    """Return ``True`` for the whitespace class the aligner treats as equivalent."""

    return char in WHITESPACE_CHARS


@dataclass(slots=True, frozen=True)
class AlignmentMapping:
    """Ordered ``(raw_index, formatted_index)`` correspondence pairs."""

    pairs: tuple[tuple[int, int], ...]
    raw_length: int
    formatted_length: int
    _formatted_keys: tuple[int, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_formatted_keys", tuple(pair[1] for pair in self.pairs))

    def __len__(self) -> int:
        return len(self.pairs)

    def to_raw(self, formatted_offset: int) -> int:
        """Return the raw offset corresponding to ``formatted_offset``.

        When several pairs share the queried formatted coordinate (raw-only
        whitespace was skipped before the formatted character was consumed),
        the last one wins because it is the pair that consumed that character.
        Offsets without a pair are extrapolated linearly from the nearest
        preceding pair and clamped to the raw text.
        """

        offset = int(formatted_offset)
        if not self.pairs:
            return self._clamp(offset)

        keys = self._formatted_keys
        left = bisect_left(keys, offset)
        if left < len(keys) and keys[left] == offset:
            right = bisect_right(keys, offset, lo=left)
            return self.pairs[right - 1][0]

        anchor = self.pairs[left - 1] if left > 0 else self.pairs[0]
        return self._clamp(anchor[0] + (offset - anchor[1]))

    def _clamp(self, value: int) -> int:
        return max(0, min(value, self.raw_length))


def align(raw: str, formatted: str) -> AlignmentMapping:
    """Build an :class:`AlignmentMapping` between ``raw`` and ``formatted``."""

    raw = raw or ""
    formatted = formatted or ""
    pairs: list[tuple[int, int]] = []
    raw_index = 0
    formatted_index = 0
    skipped = 0
    raw_length = len(raw)
    formatted_length = len(formatted)

    while raw_index < raw_length and formatted_index < formatted_length:
        raw_char = raw[raw_index]
        formatted_char = formatted[formatted_index]

        if raw_char == formatted_char:
            pairs.append((raw_index, formatted_index))
            raw_index += 1
            formatted_index += 1
            continue

        raw_space = is_whitespace(raw_char)
        formatted_space = is_whitespace(formatted_char)
        if raw_space and formatted_space:
            pairs.append((raw_index, formatted_index))
            raw_index += 1
            formatted_index += 1
        elif raw_space:
            pairs.append((raw_index, formatted_index))
            raw_index += 1
        elif formatted_space:
            pairs.append((raw_index, formatted_index))
            formatted_index += 1
        else:
            # raw-only syntax such as ``*`` or ``_``
            raw_index += 1
            skipped += 1

    LOGGER.debug(
        "Aligned %d raw / %d formatted chars into %d pairs (%d raw chars skipped)",
        raw_length,
        formatted_length,
        len(pairs),
        skipped,
    )
    return AlignmentMapping(
        pairs=tuple(pairs),
        raw_length=raw_length,
        formatted_length=formatted_length,
    )


__all__ = ["AlignmentMapping", "WHITESPACE_CHARS", "align", "is_whitespace"]
