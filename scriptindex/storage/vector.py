"""Vector index wrapper around LanceDB.

Holds one table of per-chunk embedding rows keyed by owning function id.
Errors propagate to the caller; ``FunctionStore`` decides how to compensate.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Sequence

import lancedb
import numpy as np
import pyarrow as pa

from ..schema import EMBEDDINGS_TABLE, get_embedding_chunk_model

logger = logging.getLogger(__name__)

DISTANCE_METRIC = "cosine"


def _id_predicate(function_ids: Iterable[int]) -> str:
    ids = sorted({int(i) for i in function_ids})
    if len(ids) == 1:
        return f"function_id = {ids[0]}"
    return f"function_id IN ({', '.join(str(i) for i in ids)})"


def read_table_dimension(base_path: Path, table_name: str = EMBEDDINGS_TABLE) -> int | None:
    """Vector length of an existing table, or None when there is no table yet."""
    if not base_path.exists():
        return None
    db = lancedb.connect(str(base_path))
    if table_name not in set(db.table_names()):
        return None
    vector_type = db.open_table(table_name).schema.field("vector").type
    if isinstance(vector_type, pa.FixedSizeListType):
        return int(vector_type.list_size)
    return None


class VectorIndex:
    def __init__(self, base_path: Path, dimension: int, table_name: str = EMBEDDINGS_TABLE):
        self.base_path = base_path
        self.dimension = dimension
        self.table_name = table_name
        self.base_path.mkdir(parents=True, exist_ok=True)
        self._db: Any = lancedb.connect(str(self.base_path))
        self.created = False
        self.table = self._open_or_create()

    def _open_or_create(self) -> Any:
        if self.table_name in set(self._db.table_names()):
            return self._db.open_table(self.table_name)
        self.created = True
        logger.info(
            "Creating vector table %s (dimension=%s) at %s",
            self.table_name,
            self.dimension,
            self.base_path,
        )
        return self._db.create_table(
            self.table_name, schema=get_embedding_chunk_model(self.dimension)
        )

    def add_records(self, records: list[dict]) -> None:
        if records:
            self.table.add(records)

    def delete_for_functions(self, function_ids: Sequence[int]) -> None:
        if function_ids:
            self.table.delete(_id_predicate(function_ids))

    def count_rows(self, function_ids: Sequence[int] | None = None) -> int:
        if function_ids is None:
            return int(self.table.count_rows())
        if not function_ids:
            return 0
        return int(self.table.count_rows(_id_predicate(function_ids)))

    def chunks_for(self, function_ids: Sequence[int]) -> list[dict]:
        """All chunk rows for the given functions, ordered by (function_id, chunk_index)."""
        total = self.count_rows(function_ids)
        if total == 0:
            return []
        rows = (
            self.table.search()
            .where(_id_predicate(function_ids))
            .select(["id", "function_id", "chunk_index", "vector"])
            .limit(total)
            .to_list()
        )
        return sorted(rows, key=lambda r: (int(r["function_id"]), int(r["chunk_index"])))

    def search(self, vector: np.ndarray, limit: int) -> list[dict]:
        return (
            self.table.search(vector.astype("float32"), vector_column_name="vector")
            .distance_type(DISTANCE_METRIC)
            .limit(limit)
            .to_list()
        )
