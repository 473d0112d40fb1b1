"""Token-bounded splitting of function source for the embedding model."""

from __future__ import annotations

import logging
import math
from functools import lru_cache
from typing import Protocol, Sequence

import tiktoken

from ..config import DEFAULT_TOKEN_ENCODING
from ..errors import ValidationError

logger = logging.getLogger(__name__)


class TokenEncoder(Protocol):
    def encode(self, text: str) -> list[int]: ...

    def decode(self, tokens: Sequence[int]) -> str: ...


@lru_cache(maxsize=8)
def get_encoding(name: str = DEFAULT_TOKEN_ENCODING) -> tiktoken.Encoding:
    """Resolve an encoding by name, or by embedding model name."""
    try:
        return tiktoken.get_encoding(name)
    except ValueError:
        pass
    try:
        return tiktoken.encoding_for_model(name)
    except KeyError:
        logger.warning("Unknown tokenizer %r, falling back to %s", name, DEFAULT_TOKEN_ENCODING)
        return tiktoken.get_encoding(DEFAULT_TOKEN_ENCODING)


def count_tokens(text: str, encoding: str = DEFAULT_TOKEN_ENCODING) -> int:
    return len(_encode(get_encoding(encoding), text))


def _encode(enc: TokenEncoder, text: str) -> list[int]:
    if isinstance(enc, tiktoken.Encoding):
        # Source code may legitimately contain strings like "<|endoftext|>"
        return enc.encode(text, disallowed_special=())
    return list(enc.encode(text))


def split_by_tokens(enc: TokenEncoder, text: str, max_tokens_per_chunk: int) -> list[str]:
    """Split ``text`` into the fewest equal-sized token slices under the bound.

    The chunk count is the smallest power of two ``k`` with
    ``ceil(tokens / k) <= max_tokens_per_chunk``. Slices ignore syntax; each
    is decoded back to text and whitespace-only slices are dropped. Empty
    input yields an empty list.

    With byte-level encoders a cut that would fall inside a multi-byte
    character moves back to the previous character boundary, which can leave
    one extra short slice at the end.
    """
    if isinstance(max_tokens_per_chunk, bool) or not isinstance(max_tokens_per_chunk, int):
        raise ValidationError("max_tokens_per_chunk must be a positive integer")
    if max_tokens_per_chunk <= 0:
        raise ValidationError("max_tokens_per_chunk must be a positive integer")

    tokens = _encode(enc, text)
    if not tokens:
        return []
    if len(tokens) <= max_tokens_per_chunk:
        return [text]

    chunk_count = 1
    while math.ceil(len(tokens) / chunk_count) > max_tokens_per_chunk:
        chunk_count *= 2

    chunk_size = math.ceil(len(tokens) / chunk_count)
    safe = _char_boundaries(enc, tokens)
    chunks: list[str] = []
    start = 0
    while start < len(tokens):
        end = min(start + chunk_size, len(tokens))
        if safe is not None and not safe[end]:
            # Pull the cut back so no multi-byte character is split across chunks
            back = next((i for i in range(end - 1, start, -1) if safe[i]), None)
            if back is None:
                back = next(i for i in range(end + 1, len(tokens) + 1) if safe[i])
            end = back
        piece = enc.decode(tokens[start:end])
        if piece.strip():
            chunks.append(piece)
        start = end
    return chunks


def _char_boundaries(enc: TokenEncoder, tokens: list[int]) -> list[bool] | None:
    """For each token index, whether a cut there lands on a UTF-8 character boundary.

    Encoders without byte-level tokens (no ``decode_single_token_bytes``)
    return None, meaning every index is a boundary.
    """
    token_bytes = getattr(enc, "decode_single_token_bytes", None)
    if token_bytes is None:
        return None
    safe = []
    for token in tokens:
        first = token_bytes(token)[:1]
        safe.append(not first or (first[0] & 0xC0) != 0x80)
    safe.append(True)
    return safe


class TokenChunker:
    """Binds an encoding and a token budget for repeated splitting."""

    def __init__(
        self,
        max_tokens_per_chunk: int,
        encoding: str = DEFAULT_TOKEN_ENCODING,
    ):
        if max_tokens_per_chunk <= 0:
            raise ValidationError("max_tokens_per_chunk must be a positive integer")
        self.max_tokens_per_chunk = max_tokens_per_chunk
        self.encoding_name = encoding
        self._enc = get_encoding(encoding)

    def count(self, text: str) -> int:
        return len(_encode(self._enc, text))

    def split(self, text: str) -> list[str]:
        return split_by_tokens(self._enc, text, self.max_tokens_per_chunk)
