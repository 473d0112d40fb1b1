"""Persistence layer: SQLite function metadata plus LanceDB chunk vectors."""

from .metadata import FunctionRow, IndexState, MetadataStore
from .store import (EmbeddingChunk, FunctionStore, SimilarChunk,
                    StoredFunction)
from .vector import VectorIndex, read_table_dimension

__all__ = [
    "EmbeddingChunk",
    "FunctionRow",
    "FunctionStore",
    "IndexState",
    "MetadataStore",
    "SimilarChunk",
    "StoredFunction",
    "VectorIndex",
    "read_table_dimension",
]
