from functools import lru_cache

from lancedb.pydantic import LanceModel, Vector

EMBEDDINGS_TABLE = "function_embeddings"


@lru_cache(maxsize=None)
def get_embedding_chunk_model(dimension: int) -> type[LanceModel]:
    """Return the LanceDB row model for chunk vectors of ``dimension`` floats."""

    class FunctionEmbedding(LanceModel):
        id: str
        function_id: int
        chunk_index: int
        vector: Vector(dimension)

    return FunctionEmbedding


def chunk_row_id(function_id: int, chunk_index: int) -> str:
    return f"{function_id}-{chunk_index}"
