# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""Free-text retrieval of indexed functions."""

import logging
from dataclasses import asdict, dataclass
from typing import Optional

from .embeddings import EmbeddingProvider
from .errors import ValidationError
from .storage import FunctionStore

logger = logging.getLogger(__name__)


@dataclass
class FunctionMatch:
    name: str
    code: str
    file_path: str
    distance: float

    def to_dict(self) -> dict:
        return asdict(self)


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


class FunctionRetriever:
    def __init__(
        self,
        store: FunctionStore,
        embedder: EmbeddingProvider,
        default_top_k: int = 5,
        max_top_k: int = 50,
    ):
        self.store = store
        self.embedder = embedder
        self.max_top_k = max(1, max_top_k)
        self.default_top_k = clamp(default_top_k, 1, self.max_top_k)

    def search(self, text: str, top_k: Optional[int] = None) -> list[FunctionMatch]:
        """Embed ``text`` and return the nearest function chunks, closest first.

        ``top_k`` defaults to the configured value and is clamped to
        ``1..max_top_k``.
        """
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Text cannot be empty")
        k = self.default_top_k if top_k is None else clamp(int(top_k), 1, self.max_top_k)

        vector = self.embedder.embed_text(text)
        hits = self.store.search_similar(vector, k)
        logger.debug("Search returned %d matches (top_k=%d)", len(hits), k)
        return [FunctionMatch(h.name, h.code, h.file_path, h.distance) for h in hits]
