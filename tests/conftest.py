# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""
Pytest configuration and shared fixtures for script index tests.
"""

import hashlib
from pathlib import Path

import numpy as np
import pytest
from git import Actor, Repo

from scriptindex.embeddings import EmbeddingProvider
from scriptindex.storage import FunctionStore

TEST_DIMENSION = 8

SAMPLE_JS = """\
import fs from "fs";

function parseOwner(record) {
  return record.owner.trim();
}

function* walkParcels(parcels) {
  for (const p of parcels) {
    yield p;
  }
}

const arrow = (x) => x * 2;

class Mapper {
  map(x) {
    return x;
  }
}
"""


class FakeEmbedder(EmbeddingProvider):
    """Deterministic provider: each text maps to a fixed pseudo-random vector."""

    name = "fake"

    def __init__(self, dimension: int = TEST_DIMENSION):
        super().__init__("fake-model", dimension)
        self.calls: list[list[str]] = []

    def _embed(self, texts):
        self.calls.append(list(texts))
        vectors = []
        for text in texts:
            seed = int(hashlib.sha256(text.encode("utf-8")).hexdigest()[:8], 16)
            rng = np.random.default_rng(seed)
            vectors.append(rng.random(self.dimension).astype("float32").tolist())
        return vectors


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def make_embedder():
    return FakeEmbedder


@pytest.fixture
def sample_js_file(tmp_path):
    path = tmp_path / "sample.js"
    path.write_text(SAMPLE_JS)
    return path


@pytest.fixture
def index_path(tmp_path):
    path = tmp_path / "index"
    path.mkdir()
    return path


@pytest.fixture
def store(index_path):
    fs = FunctionStore.open(index_path, TEST_DIMENSION)
    yield fs
    fs.close()


AUTHOR = Actor("Test Author", "author@example.com")


def _commit_files(repo: Repo, files: dict[str, str], message: str) -> str:
    """Write ``files`` into the repo working tree, commit them, return the new sha."""
    root = Path(repo.working_tree_dir)
    for rel, content in files.items():
        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
    repo.index.add(list(files.keys()))
    repo.index.commit(message, author=AUTHOR, committer=AUTHOR)
    return repo.head.commit.hexsha


@pytest.fixture
def origin_repo(tmp_path):
    """A local upstream repository on branch ``main`` with a couple of scripts."""
    origin = Repo.init(tmp_path / "origin")
    origin.git.symbolic_ref("HEAD", "refs/heads/main")
    _commit_files(
        origin,
        {
            "counties/a.js": "function alpha() {\n  return 1;\n}\n",
            "counties/b.mjs": "export function beta(x) {\n  return x + 1;\n}\n",
            "README.md": "# scripts\n",
        },
        "initial",
    )
    return origin


@pytest.fixture
def commit_files():
    return _commit_files


@pytest.fixture
def origin_url(origin_repo):
    # file:// so that --depth is honoured for local clones
    return Path(origin_repo.working_tree_dir).as_uri()
