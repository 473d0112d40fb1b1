# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""
Local mirror of the upstream scripts repository.

The working copy is read-only from our side: local modifications are
discarded before every update, and updates are fast-forward only.
"""

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from git import Repo
from git.exc import GitError, InvalidGitRepositoryError, NoSuchPathError

from .analysis.languages import list_repository_files
from .config import DEFAULT_REPO_BRANCH, DEFAULT_REPO_URL
from .errors import RepositorySyncError

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    path: str
    files: list[str] = field(default_factory=list)
    is_new_clone: bool = False


def resolve_head_commit(path: str | Path) -> str:
    """Commit id currently checked out in the working copy at ``path``."""
    try:
        return Repo(str(path)).head.commit.hexsha
    except (GitError, ValueError, OSError) as exc:
        raise RepositorySyncError(f"Failed to resolve HEAD commit for {path}: {exc}", exc) from exc


class RepositorySyncManager:
    """Clone or fast-forward the upstream repository into a local directory.

    Overlapping calls share one in-flight operation: a caller arriving while
    another sync is running waits for and receives that sync's outcome.
    """

    def __init__(
        self,
        repo_url: str = DEFAULT_REPO_URL,
        branch: str = DEFAULT_REPO_BRANCH,
        remote: str = "origin",
        default_path: Optional[Path] = None,
    ):
        self.repo_url = repo_url
        self.branch = branch
        self.remote = remote
        self.default_path = default_path
        self._lock = threading.Lock()
        self._inflight: Optional[Future] = None

    def ensure_latest(self, target_path: str | Path | None = None) -> SyncResult:
        with self._lock:
            pending = self._inflight
            if pending is None:
                pending = Future()
                self._inflight = pending
                owner = True
            else:
                owner = False

        if not owner:
            logger.debug("Sync already in progress; waiting for its result")
            return pending.result()

        try:
            result = self._ensure_latest(target_path)
        except BaseException as exc:
            pending.set_exception(exc)
            raise
        else:
            pending.set_result(result)
            return result
        finally:
            with self._lock:
                self._inflight = None

    def _ensure_latest(self, target_path: str | Path | None) -> SyncResult:
        raw = target_path if target_path is not None else self.default_path
        if raw is None:
            raise RepositorySyncError("No clone path configured")
        path = Path(raw).expanduser()
        if not path.is_absolute():
            raise RepositorySyncError(f"Clone path must be absolute: {raw}")

        try:
            if path.exists():
                return self._update(path)
            return self._clone(path)
        except RepositorySyncError:
            raise
        except GitError as exc:
            raise RepositorySyncError(f"Git operation failed: {exc}", exc) from exc
        except OSError as exc:
            raise RepositorySyncError(f"Failed to ensure repository at {path}: {exc}", exc) from exc

    def _clone(self, path: Path) -> SyncResult:
        logger.info("Cloning %s (branch %s) into %s", self.repo_url, self.branch, path)
        path.parent.mkdir(parents=True, exist_ok=True)
        Repo.clone_from(self.repo_url, str(path), depth=1, branch=self.branch)
        files = list_repository_files(path, relative=True)
        logger.info("Cloned repository into %s (%d files)", path, len(files))
        return SyncResult(path=str(path), files=files, is_new_clone=True)

    def _update(self, path: Path) -> SyncResult:
        if not path.is_dir():
            raise RepositorySyncError(f"Clone path exists but is not a directory: {path}")
        try:
            repo = Repo(str(path))
        except (InvalidGitRepositoryError, NoSuchPathError) as exc:
            raise RepositorySyncError(
                f"Directory exists but is not a git repository: {path}", exc
            ) from exc
        if Path(repo.working_tree_dir or "").resolve() != path.resolve():
            raise RepositorySyncError(f"Directory exists but is not a git repository: {path}")

        logger.info("Updating repository at %s", path)
        if repo.is_dirty(untracked_files=True):
            logger.warning("Local changes detected in %s, resetting before pull", path)
            repo.git.reset("--hard", "HEAD")
            repo.git.clean("-fd")

        before = repo.head.commit.hexsha
        repo.git.pull(self.remote, self.branch, "--ff-only")
        after = repo.head.commit.hexsha

        files: list[str] = []
        if before != after:
            changed: set[str] = set()
            for diff in repo.commit(before).diff(after):
                for p in (diff.a_path, diff.b_path):
                    if p:
                        changed.add(p)
            files = sorted(changed)

        logger.info("Repository at %s updated (%d changed files)", path, len(files))
        return SyncResult(path=str(path), files=files, is_new_clone=False)
