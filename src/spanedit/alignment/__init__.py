"""Offset mapping between raw message text and rendered text."""

from .aligner import AlignmentMapping, align, is_whitespace
from .loose_match import build_loose_pattern, find_loose

__all__ = ["AlignmentMapping", "align", "build_loose_pattern", "find_loose", "is_whitespace"]
