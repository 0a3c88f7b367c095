"""Tests for reply chunking."""

from __future__ import annotations

import random

import pytest

from buddy_bot.messenger.chunking import chunk_text


def _assert_faithful(text: str, chunks: list[str], limit: int) -> None:
    """Chunks cover the text in order; only whitespace between chunks may vanish."""
    assert all(0 < len(c) <= limit for c in chunks)
    pos = 0
    for i, chunk in enumerate(chunks):
        if i > 0:
            while pos < len(text) and text[pos].isspace():
                pos += 1
        assert text[pos : pos + len(chunk)] == chunk
        pos += len(chunk)
    assert text[pos:].strip() == ""


def test_empty_text_gives_no_chunks():
    assert chunk_text("") == []


def test_short_text_is_single_chunk():
    assert chunk_text("hello world") == ["hello world"]


def test_splits_on_last_space_in_window():
    assert chunk_text("aaaa bbbb cccc", limit=10) == ["aaaa bbbb ", "cccc"]


def test_prefers_newline_boundary():
    assert chunk_text("line one\nline two", limit=12) == ["line one\n", "line two"]


def test_hard_split_without_whitespace():
    assert chunk_text("x" * 25, limit=10) == ["x" * 10, "x" * 10, "x" * 5]


def test_continuation_leading_whitespace_dropped():
    chunks = chunk_text("abcdefghij      klm", limit=10)
    assert chunks == ["abcdefghij", "klm"]


def test_invalid_limit():
    with pytest.raises(ValueError):
        chunk_text("abc", limit=0)


def test_discord_sized_reply():
    text = " ".join(f"word{i}" for i in range(1500))
    chunks = chunk_text(text)
    assert len(chunks) > 1
    _assert_faithful(text, chunks, 2000)


@pytest.mark.parametrize("seed", range(20))
def test_random_texts_are_faithfully_chunked(seed: int):
    rng = random.Random(seed)
    alphabet = "abcdefghij      \n\t"
    text = "".join(rng.choice(alphabet) for _ in range(rng.randint(1, 600)))
    limit = rng.randint(1, 50)
    _assert_faithful(text, chunk_text(text, limit), limit)
