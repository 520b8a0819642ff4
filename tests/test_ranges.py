"""Tests for :mod:`spanedit.core.ranges`."""

from __future__ import annotations

import pytest

from spanedit.core.ranges import TextRange


def test_slice_returns_covered_text() -> None:
    span = TextRange(6, 11)

    assert span.slice("Hello world") == "world"
    assert span.to_tuple() == (6, 11)
    assert TextRange(3, 3).slice("abcdef") == ""


def test_clamp_limits_both_ends() -> None:
    assert TextRange(3, 40).clamp(upper=10) == TextRange(3, 10)
    assert TextRange(30, 40).clamp(upper=10) == TextRange(10, 10)
    assert TextRange(1, 2).clamp(upper=10) == TextRange(1, 2)


@pytest.mark.parametrize("start, end", [(-1, 2), (5, 4)])
def test_invalid_bounds_are_rejected(start: int, end: int) -> None:
    with pytest.raises(ValueError):
        TextRange(start, end)
