# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""Wiring of store, embedder, sync manager, indexer and retriever from config."""

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

from .config import Config, get_config
from .embeddings import EmbeddingProvider, create_embedding_provider
from .indexer import IndexSummary, ScriptIndexer
from .retrieval import FunctionRetriever
from .storage import FunctionStore
from .sync import RepositorySyncManager

logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: Config
    store: FunctionStore
    embedder: EmbeddingProvider
    sync_manager: RepositorySyncManager
    indexer: ScriptIndexer
    retriever: FunctionRetriever
    # One indexing run at a time per process
    index_lock: threading.Lock = field(default_factory=threading.Lock)

    def run_index(self, clone_path=None, full_rescan: bool = False) -> IndexSummary:
        with self.index_lock:
            return self.indexer.index(clone_path=clone_path, full_rescan=full_rescan)

    def close(self) -> None:
        self.store.close()


def build_services(
    config: Optional[Config] = None, embedder: Optional[EmbeddingProvider] = None
) -> Services:
    config = config or get_config()
    embedder = embedder or create_embedding_provider(config)

    store = FunctionStore.open(config.index_path, embedder.dimension)
    if store.dimension_mismatch_rebuild:
        logger.warning("Function store was rebuilt for dimension %s", embedder.dimension)

    sync_manager = RepositorySyncManager(
        repo_url=config.repo_url,
        branch=config.repo_branch,
        remote=config.repo_remote,
        default_path=config.clone_path,
    )
    indexer = ScriptIndexer(
        store,
        sync_manager,
        embedder,
        max_tokens_per_chunk=config.max_tokens_per_chunk,
        token_encoding=config.token_encoding,
        extensions=config.index_extensions,
    )
    retriever = FunctionRetriever(
        store, embedder, default_top_k=config.default_top_k, max_top_k=config.max_top_k
    )
    return Services(config, store, embedder, sync_manager, indexer, retriever)
