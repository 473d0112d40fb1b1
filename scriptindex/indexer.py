# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""
Incremental function indexing for the upstream scripts repository.

One run syncs the working copy, decides whether an incremental or full scan
is needed, then for each target file replaces its stored functions with
freshly extracted, chunked and embedded ones. A failing file is logged and
skipped; the commit watermark only advances when something was saved.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from time import perf_counter
from typing import Optional

from .analysis import (FunctionExtractor, TokenChunker, filter_eligible,
                       list_repository_files)
from .config import DEFAULT_MAX_TOKENS_PER_CHUNK, DEFAULT_TOKEN_ENCODING
from .embeddings import EmbeddingProvider
from .storage import FunctionStore
from .sync import RepositorySyncManager, SyncResult, resolve_head_commit

logger = logging.getLogger(__name__)


@dataclass
class IndexSummary:
    processed_files: list[str] = field(default_factory=list)
    saved_functions: int = 0
    failed_files: list[str] = field(default_factory=list)
    head_commit: Optional[str] = None
    full_scan: bool = False

    def to_dict(self) -> dict:
        return {
            "processed_files": list(self.processed_files),
            "saved_functions": self.saved_functions,
            "failed_files": list(self.failed_files),
            "head_commit": self.head_commit,
            "full_scan": self.full_scan,
        }


class ScriptIndexer:
    """Keeps the function store consistent with the upstream working copy."""

    def __init__(
        self,
        store: FunctionStore,
        sync_manager: RepositorySyncManager,
        embedder: EmbeddingProvider,
        *,
        extractor: Optional[FunctionExtractor] = None,
        chunker: Optional[TokenChunker] = None,
        max_tokens_per_chunk: int = DEFAULT_MAX_TOKENS_PER_CHUNK,
        token_encoding: str = DEFAULT_TOKEN_ENCODING,
        extensions: Optional[Iterable[str]] = None,
        head_resolver: Callable[[str], str] = resolve_head_commit,
    ):
        self.store = store
        self.sync_manager = sync_manager
        self.embedder = embedder
        self.extractor = extractor or FunctionExtractor()
        self.chunker = chunker or TokenChunker(max_tokens_per_chunk, token_encoding)
        self.extensions = list(extensions) if extensions is not None else None
        self._resolve_head = head_resolver

    def index(self, clone_path: str | Path | None = None, full_rescan: bool = False) -> IndexSummary:
        start = perf_counter()
        repo = self.sync_manager.ensure_latest(clone_path)
        head_commit = self._resolve_head(repo.path)

        target_files, full_scan = self._select_targets(repo, head_commit, full_rescan)
        logger.info(
            "Indexing %d files under %s (full_scan=%s, commit=%s)",
            len(target_files),
            repo.path,
            full_scan,
            head_commit[:12],
        )

        summary = IndexSummary(
            processed_files=target_files, head_commit=head_commit, full_scan=full_scan
        )
        for file_path in target_files:
            try:
                summary.saved_functions += self._index_file(file_path)
            except Exception as exc:
                summary.failed_files.append(file_path)
                logger.error("Failed to index file %s: %s", file_path, exc)
                logger.debug("Index failure detail for %s", file_path, exc_info=True)

        if summary.saved_functions > 0:
            try:
                self.store.set_index_state(repo.path, head_commit)
            except Exception as exc:
                logger.warning(
                    "Failed to update index state for %s at %s: %s", repo.path, head_commit, exc
                )

        logger.info(
            "Indexed %d files (%d failed), saved %d functions in %.2fs",
            len(target_files),
            len(summary.failed_files),
            summary.saved_functions,
            perf_counter() - start,
        )
        return summary

    def _all_eligible(self, root: str) -> list[str]:
        return filter_eligible(list_repository_files(root), self.extensions)

    def _select_targets(
        self, repo: SyncResult, head_commit: str, full_rescan: bool
    ) -> tuple[list[str], bool]:
        if full_rescan or repo.is_new_clone:
            return self._all_eligible(repo.path), True

        root = Path(repo.path)
        changed = [str((root / rel).resolve()) for rel in repo.files]
        targets = filter_eligible(changed, self.extensions)
        if targets:
            return targets, False

        state = self.store.get_index_state(repo.path)
        if state is None or state.last_indexed_commit != head_commit:
            logger.info(
                "No eligible changed files but commit %s differs from last indexed %s; running full scan",
                head_commit[:12],
                state.last_indexed_commit[:12] if state else None,
            )
            return self._all_eligible(repo.path), True
        logger.info("Index for %s is up to date at %s", repo.path, head_commit[:12])
        return [], False

    def _index_file(self, file_path: str) -> int:
        removed = self.store.delete_functions_for_file(file_path)
        if removed:
            logger.debug("Removed %d stale functions for %s", removed, file_path)

        if not Path(file_path).exists():
            # Deleted upstream; clearing its functions is all there is to do
            return 0

        saved = 0
        for fn in self.extractor.extract(file_path):
            chunks = self.chunker.split(fn.code)
            if not chunks:
                continue
            logger.debug("Embedding %s in %s (%d chunks)", fn.name, fn.file_path, len(chunks))
            results = self.embedder.embed_many_texts(chunks)
            self.store.save_function(
                fn.name, fn.code, fn.file_path, [r.vector for r in results]
            )
            saved += 1
        return saved
