"""Tests for the raw/formatted text aligner."""

from __future__ import annotations

import pytest

from spanedit.alignment.aligner import align, is_whitespace


def _normalize(text: str) -> str:
    return " ".join(text.split())


def test_identical_text_maps_every_offset_to_itself() -> None:
    mapping = align("plain text", "plain text")

    assert [mapping.to_raw(offset) for offset in range(11)] == list(range(11))


def test_stripped_markdown_is_skipped() -> None:
    raw = "**bold** text"
    mapping = align(raw, "bold text")

    assert raw[mapping.to_raw(0) : mapping.to_raw(4)] == "bold"
    assert raw[mapping.to_raw(5) : mapping.to_raw(9)] == "text"


def test_collapsed_whitespace_uses_the_pair_that_consumed_the_character() -> None:
    raw = "one  two\nthree"
    formatted = "one two three"
    mapping = align(raw, formatted)

    start = mapping.to_raw(4)
    end = mapping.to_raw(7)

    assert (start, end) == (5, 8)
    assert raw[start:end] == "two"


@pytest.mark.parametrize(
    ("raw", "formatted"),
    [
        ("alpha  beta\n\ngamma", "alpha beta\ngamma"),
        ("a\u00a0b c", "a b c"),
        ("tab\tseparated   words", "tab separated words"),
    ],
)
def test_whitespace_only_differences_round_trip(raw: str, formatted: str) -> None:
    mapping = align(raw, formatted)
    words = formatted.split()
    offset = 0
    for word in words:
        start = formatted.index(word, offset)
        end = start + len(word)
        offset = end
        raw_slice = raw[mapping.to_raw(start) : mapping.to_raw(end)]
        assert _normalize(raw_slice) == _normalize(formatted[start:end])


def test_offsets_past_the_last_pair_are_extrapolated_and_clamped() -> None:
    raw = "**bold** text"
    mapping = align(raw, "bold text")

    assert mapping.to_raw(9) == len(raw)
    assert mapping.to_raw(50) == len(raw)


def test_empty_mapping_clamps_offset() -> None:
    assert align("", "abc").to_raw(2) == 0
    assert align("abc", "").to_raw(2) == 2
    assert align("abc", "").to_raw(10) == 3


def test_pairs_are_monotonic() -> None:
    mapping = align("# Title\n\n*Some*  _text_ here", "Title\nSome text here")
    raw_coords = [pair[0] for pair in mapping.pairs]
    formatted_coords = [pair[1] for pair in mapping.pairs]

    assert raw_coords == sorted(raw_coords)
    assert formatted_coords == sorted(formatted_coords)
    assert len(mapping) == len(mapping.pairs)


def test_whitespace_class_includes_nbsp() -> None:
    assert is_whitespace("\u00a0")
    assert is_whitespace("\r")
    assert not is_whitespace("*")
