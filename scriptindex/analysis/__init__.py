"""Pure analysis helpers for file selection, function extraction, and token chunking."""

from .chunking import TokenChunker, count_tokens, get_encoding, split_by_tokens
from .functions import (ExtractedFunction, FunctionExtractor, FunctionKind,
                        extract_functions)
from .languages import filter_eligible, is_eligible_path, list_repository_files

__all__ = [
    "ExtractedFunction",
    "FunctionExtractor",
    "FunctionKind",
    "TokenChunker",
    "count_tokens",
    "extract_functions",
    "filter_eligible",
    "get_encoding",
    "is_eligible_path",
    "list_repository_files",
    "split_by_tokens",
]
