"""SQLite metadata store for indexed functions and the per-clone index watermark.

Function rows live here; their embedding chunks live in LanceDB (see
``storage.vector``). Mutating helpers do not commit on their own so that
``FunctionStore`` can pair them with vector writes inside one transaction.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class FunctionRow:
    id: int
    name: str
    code: str
    file_path: str


@dataclass
class IndexState:
    repo_path: str
    last_indexed_commit: str
    updated_at: int


class MetadataStore:
    def __init__(self, db_path: Path, *, timeout: float = 60.0):
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        self.conn = sqlite3.connect(db_path, check_same_thread=False, timeout=timeout)
        self.conn.execute("PRAGMA journal_mode=WAL;")
        self.conn.execute("PRAGMA synchronous=NORMAL;")
        self.conn.execute("PRAGMA busy_timeout=60000;")
        self._init_schema()

    def _init_schema(self) -> None:
        cur = self.conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS functions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                code TEXT NOT NULL,
                file_path TEXT NOT NULL
            )
        """
        )

        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_functions_file_path
            ON functions(file_path)
        """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS index_state (
                repo_path TEXT PRIMARY KEY,
                last_indexed_commit TEXT NOT NULL,
                updated_at INTEGER NOT NULL
            )
        """
        )
        self.conn.commit()

    def close(self) -> None:
        try:
            self.conn.close()
        except sqlite3.Error:
            logger.debug("Error closing metadata database", exc_info=True)

    def commit(self) -> None:
        self.conn.commit()

    def rollback(self) -> None:
        self.conn.rollback()

    # --- functions (uncommitted writes) ---

    def insert_function(self, name: str, code: str, file_path: str) -> int:
        cur = self.conn.cursor()
        cur.execute(
            "INSERT INTO functions (name, code, file_path) VALUES (?, ?, ?)",
            (name, code, file_path),
        )
        return int(cur.lastrowid)

    def delete_function_row(self, function_id: int) -> bool:
        cur = self.conn.cursor()
        cur.execute("DELETE FROM functions WHERE id = ?", (function_id,))
        return cur.rowcount > 0

    def delete_functions_for_file(self, file_path: str) -> list[int]:
        ids = self.function_ids_for_file(file_path)
        if ids:
            self.conn.execute("DELETE FROM functions WHERE file_path = ?", (file_path,))
        return ids

    # --- functions (reads) ---

    def get_function(self, function_id: int) -> FunctionRow | None:
        cur = self.conn.cursor()
        cur.execute(
            "SELECT id, name, code, file_path FROM functions WHERE id = ?",
            (function_id,),
        )
        row = cur.fetchone()
        return FunctionRow(*row) if row else None

    def get_functions(self, function_ids: list[int]) -> dict[int, FunctionRow]:
        if not function_ids:
            return {}
        placeholders = ",".join("?" for _ in function_ids)
        cur = self.conn.cursor()
        cur.execute(
            f"SELECT id, name, code, file_path FROM functions WHERE id IN ({placeholders})",
            list(function_ids),
        )
        return {int(row[0]): FunctionRow(*row) for row in cur.fetchall()}

    def get_functions_for_file(self, file_path: str) -> list[FunctionRow]:
        cur = self.conn.cursor()
        cur.execute(
            "SELECT id, name, code, file_path FROM functions WHERE file_path = ? ORDER BY id",
            (file_path,),
        )
        return [FunctionRow(*row) for row in cur.fetchall()]

    def function_ids_for_file(self, file_path: str) -> list[int]:
        cur = self.conn.cursor()
        cur.execute("SELECT id FROM functions WHERE file_path = ? ORDER BY id", (file_path,))
        return [int(row[0]) for row in cur.fetchall()]

    def count_functions(self) -> int:
        cur = self.conn.cursor()
        cur.execute("SELECT COUNT(*) FROM functions")
        return int(cur.fetchone()[0])

    # --- index state ---

    def get_index_state(self, repo_path: str) -> IndexState | None:
        cur = self.conn.cursor()
        cur.execute(
            "SELECT repo_path, last_indexed_commit, updated_at FROM index_state WHERE repo_path = ?",
            (repo_path,),
        )
        row = cur.fetchone()
        return IndexState(row[0], row[1], int(row[2])) if row else None

    def set_index_state(self, repo_path: str, commit: str, updated_at: int | None = None) -> IndexState:
        stamp = int(time.time()) if updated_at is None else int(updated_at)
        self.conn.execute(
            """
            INSERT INTO index_state (repo_path, last_indexed_commit, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(repo_path) DO UPDATE SET
                last_indexed_commit = excluded.last_indexed_commit,
                updated_at = excluded.updated_at
        """,
            (repo_path, commit, stamp),
        )
        self.conn.commit()
        return IndexState(repo_path, commit, stamp)
