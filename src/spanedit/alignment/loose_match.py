"""Regex fallback that locates a selected fragment directly in raw text."""

from __future__ import annotations

import logging
import re

from ..core.ranges import TextRange

LOGGER = logging.getLogger(__name__)

_WHITESPACE_RUN = re.compile(r"\s+")


def build_loose_pattern(fragment: str) -> re.Pattern[str] | None:
    """Compile ``fragment`` into a pattern tolerant of reflowed whitespace."""

    trimmed = (fragment or "").strip()
    if not trimmed:
        return None
    # re.escape also escapes whitespace, so split on the raw runs first
    parts = [re.escape(part) for part in _WHITESPACE_RUN.split(trimmed)]
    return re.compile(r"\s+".join(parts), re.MULTILINE)


def find_loose(raw_text: str, fragment: str) -> TextRange | None:
    """Return the span of the first loose match of ``fragment`` in ``raw_text``.

    Returns ``None`` when the fragment is blank or does not occur. Callers must
    treat ``None`` as a failed lookup, never as an empty span.
    """

    pattern = build_loose_pattern(fragment)
    if pattern is None:
        return None
    match = pattern.search(raw_text or "")
    if match is None:
        LOGGER.debug("Loose match failed for fragment of %d chars", len(fragment))
        return None
    return TextRange(match.start(), match.end())


__all__ = ["build_loose_pattern", "find_loose"]
