"""File eligibility helpers for the function indexer."""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

# Sources the JavaScript and TypeScript grammars parse into function declarations
ELIGIBLE_EXTS = frozenset({".js", ".mjs", ".cjs", ".ts", ".tsx"})

# Type-only declaration files never carry function bodies
DECLARATION_SUFFIXES = (".d.ts", ".d.mts", ".d.cts")

IGNORED_DIRS = frozenset({".git"})


def is_eligible_path(path: str | Path, extensions: Iterable[str] | None = None) -> bool:
    """Return True when ``path`` has one of the indexed source extensions."""
    exts = ELIGIBLE_EXTS if extensions is None else {e.lower() for e in extensions}
    name = Path(path).name.lower()
    if name.endswith(DECLARATION_SUFFIXES):
        return False
    return Path(name).suffix in exts


def filter_eligible(paths: Iterable[str], extensions: Iterable[str] | None = None) -> list[str]:
    exts = None if extensions is None else list(extensions)
    return [p for p in paths if is_eligible_path(p, exts)]


def list_repository_files(root: str | Path, *, relative: bool = False) -> list[str]:
    """Walk ``root`` and return every file, skipping version-control metadata.

    Paths are absolute unless ``relative`` is set, in which case they are
    relative to ``root``. The result is sorted.
    """
    root_path = Path(root)
    files: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root_path):
        dirnames[:] = [d for d in dirnames if d not in IGNORED_DIRS]
        for filename in filenames:
            full_path = Path(dirpath) / filename
            if relative:
                files.append(str(full_path.relative_to(root_path)))
            else:
                files.append(str(full_path.resolve()))
    return sorted(files)
