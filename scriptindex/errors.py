# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""Exception types raised across the indexing pipeline."""

from __future__ import annotations


class ScriptIndexError(Exception):
    """Base error; keeps the underlying exception (if any) on ``cause``."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ValidationError(ScriptIndexError, ValueError):
    """Malformed input to a public operation, rejected before any I/O."""


class RepositorySyncError(ScriptIndexError):
    """The local working copy could not be created or updated."""


class ParseError(ScriptIndexError):
    """A source file could not be read or contains syntax errors."""

    def __init__(self, message: str, file_path: str, cause: BaseException | None = None):
        super().__init__(message, cause)
        self.file_path = file_path


class EmbeddingError(ScriptIndexError):
    """The embedding backend failed or returned vectors of the wrong shape."""


class StoreError(ScriptIndexError):
    """A read or write against the function store failed."""
