"""Function store pairing SQLite function rows with LanceDB chunk vectors.

Layout under the index directory::

    functions.db   functions + index_state tables
    lancedb/       function_embeddings table (one row per chunk)

Function ids come from an AUTOINCREMENT column and are never reused, so chunk
rows left behind by an interrupted delete can never attach to a new function;
reads only return chunks whose function row exists.
"""

from __future__ import annotations

import logging
import shutil
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from numbers import Real
from pathlib import Path
from typing import Any, Sequence

import numpy as np

from ..errors import StoreError, ValidationError
from ..schema import chunk_row_id
from .metadata import FunctionRow, IndexState, MetadataStore
from .vector import VectorIndex, read_table_dimension

logger = logging.getLogger(__name__)

DB_FILENAME = "functions.db"
LANCE_DIRNAME = "lancedb"


@dataclass
class EmbeddingChunk:
    id: str
    function_id: int
    chunk_index: int
    vector: list[float]


@dataclass
class StoredFunction:
    id: int
    name: str
    code: str
    file_path: str
    chunks: list[EmbeddingChunk] = field(default_factory=list)


@dataclass
class SimilarChunk:
    """One nearest-neighbour hit joined back to its function."""

    function_id: int
    name: str
    code: str
    file_path: str
    chunk_index: int
    distance: float


def _require_positive_id(function_id: Any) -> int:
    if isinstance(function_id, bool) or not isinstance(function_id, int) or function_id <= 0:
        raise ValidationError(f"Function id must be a positive integer, got {function_id!r}")
    return function_id


def _require_text(value: Any, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} must be a non-empty string")
    return value


def _to_vector(values: Any, label: str) -> np.ndarray:
    if isinstance(values, (str, bytes)) or not hasattr(values, "__len__"):
        raise ValidationError(f"{label} must be a sequence of numbers")
    if len(values) == 0:
        raise ValidationError(f"{label} must not be empty")
    for v in values:
        if isinstance(v, bool) or not isinstance(v, (Real, np.number)):
            raise ValidationError(f"{label} contains a non-numeric value: {v!r}")
    arr = np.asarray(values, dtype="float64")
    if arr.ndim != 1:
        raise ValidationError(f"{label} must be one-dimensional")
    if not np.all(np.isfinite(arr)):
        raise ValidationError(f"{label} contains NaN or infinite values")
    return arr.astype("float32")


class FunctionStore:
    """Durable store of functions and their chunk embeddings.

    Use :meth:`open` rather than the constructor: it performs the
    dimension-compatibility check and rebuilds the store on mismatch.
    """

    def __init__(self, path: Path, dimension: int, *, validate_dimension: bool = True):
        if dimension <= 0:
            raise ValidationError("Embedding dimension must be a positive integer")
        self.path = Path(path)
        self.dimension = dimension
        self.validate_dimension = validate_dimension
        self.path.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self.metadata = MetadataStore(self.path / DB_FILENAME)
        self.vectors = VectorIndex(self.path / LANCE_DIRNAME, dimension)
        self.is_new_store = False
        self.dimension_mismatch_rebuild = False

    @classmethod
    def open(cls, path: str | Path, dimension: int, *, validate_dimension: bool = True) -> "FunctionStore":
        path = Path(path)
        db_file = path / DB_FILENAME
        lance_dir = path / LANCE_DIRNAME

        existing_dim = read_table_dimension(lance_dir)
        mismatch = existing_dim is not None and existing_dim != dimension
        if mismatch:
            logger.warning(
                "Stored embedding dimension %s does not match provider dimension %s; "
                "discarding index at %s and rebuilding from empty",
                existing_dim,
                dimension,
                path,
            )
            shutil.rmtree(lance_dir, ignore_errors=False)
            for suffix in ("", "-wal", "-shm"):
                Path(f"{db_file}{suffix}").unlink(missing_ok=True)

        existed = db_file.exists() and existing_dim is not None and not mismatch
        store = cls(path, dimension, validate_dimension=validate_dimension)
        store.is_new_store = not existed
        store.dimension_mismatch_rebuild = mismatch
        if store.is_new_store:
            logger.info("Initialized new function store at %s (dimension=%s)", path, dimension)
        return store

    def close(self) -> None:
        with self._lock:
            self.metadata.close()

    # --- writes ---

    def save_function(
        self,
        name: str,
        code: str,
        file_path: str,
        embeddings: Sequence[Sequence[float]],
    ) -> StoredFunction:
        """Insert a function with one chunk row per embedding, all or nothing."""
        _require_text(name, "Function name")
        _require_text(code, "Function code")
        _require_text(file_path, "File path")
        if embeddings is None or len(embeddings) == 0:
            raise ValidationError("At least one embedding vector is required")
        vectors = [_to_vector(vec, f"Embedding {i}") for i, vec in enumerate(embeddings)]
        lengths = {len(v) for v in vectors}
        if len(lengths) != 1:
            raise ValidationError("All embedding vectors must have the same length")
        if self.validate_dimension and lengths != {self.dimension}:
            raise ValidationError(
                f"Embedding dimension {lengths.pop()} does not match store dimension {self.dimension}"
            )

        with self._lock:
            try:
                function_id = self.metadata.insert_function(name, code, file_path)
            except Exception as exc:
                self.metadata.rollback()
                raise StoreError(f"Failed to insert function {name}: {exc}", exc) from exc

            records = [
                {
                    "id": chunk_row_id(function_id, idx),
                    "function_id": function_id,
                    "chunk_index": idx,
                    "vector": vec.tolist(),
                }
                for idx, vec in enumerate(vectors)
            ]
            try:
                self.vectors.add_records(records)
            except Exception as exc:
                self.metadata.rollback()
                raise StoreError(f"Failed to store embeddings for function {name}: {exc}", exc) from exc

            try:
                self.metadata.commit()
            except Exception as exc:
                self.metadata.rollback()
                self._discard_chunks([function_id])
                raise StoreError(f"Failed to commit function {name}: {exc}", exc) from exc

        return StoredFunction(
            id=function_id,
            name=name,
            code=code,
            file_path=file_path,
            chunks=[
                EmbeddingChunk(r["id"], function_id, r["chunk_index"], r["vector"]) for r in records
            ],
        )

    def delete_function(self, function_id: int) -> bool:
        """Remove a function and its chunks. Unknown ids are a no-op returning False."""
        _require_positive_id(function_id)
        with self._lock:
            try:
                removed = self.metadata.delete_function_row(function_id)
                self.metadata.commit()
            except Exception as exc:
                self.metadata.rollback()
                raise StoreError(f"Failed to delete function {function_id}: {exc}", exc) from exc
            if not removed:
                return False
            self._delete_chunks([function_id])
            return True

    def delete_functions_for_file(self, file_path: str) -> int:
        """Remove every function recorded for ``file_path``; returns how many were removed."""
        _require_text(file_path, "File path")
        with self._lock:
            try:
                ids = self.metadata.delete_functions_for_file(file_path)
                self.metadata.commit()
            except Exception as exc:
                self.metadata.rollback()
                raise StoreError(f"Failed to delete functions for {file_path}: {exc}", exc) from exc
            self._delete_chunks(ids)
            return len(ids)

    def _delete_chunks(self, function_ids: list[int]) -> None:
        try:
            self.vectors.delete_for_functions(function_ids)
        except Exception as exc:
            # Function rows are already gone; leftover chunks are unreachable from reads
            raise StoreError(
                f"Deleted functions {function_ids} but failed to drop their chunks: {exc}", exc
            ) from exc

    def _discard_chunks(self, function_ids: list[int]) -> None:
        try:
            self.vectors.delete_for_functions(function_ids)
        except Exception:
            logger.exception("Failed to remove chunks for uncommitted functions %s", function_ids)

    # --- reads ---

    def _attach_chunks(self, rows: list[FunctionRow]) -> list[StoredFunction]:
        grouped: dict[int, list[EmbeddingChunk]] = defaultdict(list)
        for chunk in self.vectors.chunks_for([r.id for r in rows]):
            fid = int(chunk["function_id"])
            grouped[fid].append(
                EmbeddingChunk(
                    id=str(chunk["id"]),
                    function_id=fid,
                    chunk_index=int(chunk["chunk_index"]),
                    vector=[float(x) for x in chunk["vector"]],
                )
            )
        return [
            StoredFunction(r.id, r.name, r.code, r.file_path, grouped.get(r.id, []))
            for r in rows
        ]

    def get_function_by_id(self, function_id: int) -> StoredFunction | None:
        _require_positive_id(function_id)
        with self._lock:
            row = self.metadata.get_function(function_id)
            if row is None:
                return None
            return self._attach_chunks([row])[0]

    def get_functions_by_file_path(self, file_path: str) -> list[StoredFunction]:
        if not isinstance(file_path, str) or file_path == "":
            raise ValidationError("File path must be a non-empty string")
        with self._lock:
            rows = self.metadata.get_functions_for_file(file_path)
            if not rows:
                return []
            return self._attach_chunks(rows)

    def search_similar(self, query_vector: Sequence[float], top_k: int) -> list[SimilarChunk]:
        """Closest chunks by cosine distance, each joined to its function.

        Several chunks of one function may all appear; no per-function dedup.
        """
        if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k <= 0:
            raise ValidationError("top_k must be a positive integer")
        vec = _to_vector(query_vector, "Query vector")
        if self.validate_dimension and len(vec) != self.dimension:
            raise ValidationError(
                f"Query vector dimension {len(vec)} does not match store dimension {self.dimension}"
            )

        with self._lock:
            # Chunks without a function row are skipped, so widen the window
            # until top_k live hits are found or the table is exhausted.
            limit = top_k
            while True:
                hits = self.vectors.search(vec, limit)
                functions = self.metadata.get_functions(
                    sorted({int(h["function_id"]) for h in hits})
                )
                live = [h for h in hits if int(h["function_id"]) in functions]
                if len(live) >= top_k or len(hits) < limit:
                    break
                limit *= 2

        results: list[SimilarChunk] = []
        for hit in live[:top_k]:
            fn = functions[int(hit["function_id"])]
            results.append(
                SimilarChunk(
                    function_id=fn.id,
                    name=fn.name,
                    code=fn.code,
                    file_path=fn.file_path,
                    chunk_index=int(hit["chunk_index"]),
                    distance=float(hit.get("_distance", 0.0)),
                )
            )
        return results

    def count_functions(self) -> int:
        with self._lock:
            return self.metadata.count_functions()

    def count_chunks(self) -> int:
        with self._lock:
            return self.vectors.count_rows()

    # --- index watermark ---

    def get_index_state(self, repo_path: str) -> IndexState | None:
        _require_text(repo_path, "Repository path")
        with self._lock:
            return self.metadata.get_index_state(repo_path)

    def set_index_state(self, repo_path: str, commit: str) -> IndexState:
        _require_text(repo_path, "Repository path")
        _require_text(commit, "Commit")
        with self._lock:
            return self.metadata.set_index_state(repo_path, commit)
