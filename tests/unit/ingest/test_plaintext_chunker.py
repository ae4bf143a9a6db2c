"""Tests for PlainTextChunker and BaseChunker helpers."""

from __future__ import annotations

import pytest

from butler.ingest.base import BaseChunker
from butler.ingest.plaintext import PlainTextChunker


def test_empty_text_no_chunks():
    assert PlainTextChunker().chunk("   \n") == []


def test_short_text_single_chunk():
    (chunk,) = PlainTextChunker().chunk("hello world")
    assert chunk.chunk_index == 0
    assert chunk.text == "hello world"
    assert chunk.start_line is None
    assert chunk.end_line is None


def test_fixed_windows_overlap():
    text = "abcdefghij" * 10
    chunks = PlainTextChunker(chunk_size=10, overlap_tokens=2).chunk(text)
    assert [c.chunk_index for c in chunks] == [0, 1, 2]
    assert chunks[0].text == text[0:40]
    assert chunks[1].text == text[32:72]
    assert chunks[2].text == text[64:100]


def test_count_tokens():
    assert BaseChunker.count_tokens("") == 1
    assert BaseChunker.count_tokens("a" * 40) == 10


def test_overlap_must_be_smaller_than_chunk():
    with pytest.raises(ValueError):
        PlainTextChunker(chunk_size=10, overlap_tokens=10)
