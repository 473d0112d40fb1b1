"""Incremental function indexing and vector retrieval for an upstream scripts repository."""

__version__ = "0.1.0"
