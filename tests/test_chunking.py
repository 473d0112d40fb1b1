import pytest

from scriptindex.analysis.chunking import (TokenChunker, count_tokens,
                                           get_encoding, split_by_tokens)
from scriptindex.errors import ValidationError


class CharEncoder:
    """One token per character; keeps the arithmetic in these tests obvious."""

    def encode(self, text):
        return [ord(c) for c in text]

    def decode(self, tokens):
        return "".join(chr(t) for t in tokens)


def test_short_text_is_returned_unchanged():
    enc = get_encoding("cl100k_base")
    code = "function a() {\n  return 1;\n}"
    assert split_by_tokens(enc, code, 8192) == [code]


def test_empty_text_yields_no_chunks():
    assert split_by_tokens(CharEncoder(), "", 10) == []
    assert TokenChunker(10).split("") == []


def test_power_of_two_chunk_count():
    # 9 tokens, bound 4: k=1 -> 9, k=2 -> 5, k=4 -> 3 fits
    chunks = split_by_tokens(CharEncoder(), "abcdefghi", 4)
    assert chunks == ["abc", "def", "ghi"]


def test_last_chunk_may_be_shorter():
    chunks = split_by_tokens(CharEncoder(), "abcdefghij", 6)
    assert chunks == ["abcde", "fghij"]
    chunks = split_by_tokens(CharEncoder(), "abcdefg", 4)
    assert chunks == ["abcd", "efg"]


def test_whitespace_only_chunks_are_dropped():
    chunks = split_by_tokens(CharEncoder(), "abc   ", 3)
    assert chunks == ["abc"]


def test_nine_thousand_tokens_split_in_two():
    enc = get_encoding("cl100k_base")
    text = " x" * 9000
    assert count_tokens(text) == 9000

    chunks = split_by_tokens(enc, text, 8192)

    assert len(chunks) == 2
    assert all(count_tokens(c) <= 8192 for c in chunks)
    assert "".join(chunks) == text


class ByteEncoder:
    """One token per UTF-8 byte, like a byte-level BPE with no merges."""

    def encode(self, text):
        return list(text.encode("utf-8"))

    def decode(self, tokens):
        return bytes(tokens).decode("utf-8", errors="replace")

    def decode_single_token_bytes(self, token):
        return bytes([token])


def test_cuts_never_split_multibyte_characters():
    # 6 bytes, bound 4: the nominal cut at byte 3 lands inside the second "é"
    chunks = split_by_tokens(ByteEncoder(), "ééé", 4)

    assert chunks == ["é", "é", "é"]


def test_non_ascii_text_round_trips_through_chunks():
    enc = get_encoding("cl100k_base")
    text = "const s = '" + "\U0001F642\u2603é" * 400 + "';"

    chunks = split_by_tokens(enc, text, 64)

    assert len(chunks) > 1
    assert "".join(chunks) == text
    assert not any("\ufffd" in c for c in chunks)


def test_special_token_text_is_encoded_as_plain_text():
    chunker = TokenChunker(8192)
    assert chunker.split("const s = '<|endoftext|>';") == ["const s = '<|endoftext|>';"]


@pytest.mark.parametrize("bad", [0, -1, 1.5, True])
def test_invalid_bound_rejected(bad):
    with pytest.raises(ValidationError):
        split_by_tokens(CharEncoder(), "abc", bad)


def test_chunker_rejects_non_positive_bound():
    with pytest.raises(ValidationError):
        TokenChunker(0)
