"""The lab SQLite database: opening, schema migration, config, repos and reviewers."""

from __future__ import annotations

import os
import sqlite3
from collections.abc import Iterable
from pathlib import Path
from types import TracebackType

from lab.db.comments import CommentsMixin, _read, _write
from lab.db.models import (
    DatabaseError,
    DuplicateError,
    NotFoundError,
    Repo,
    Reviewer,
    _repo_from_row,
)
from lab.db.mrs import MergeRequestsMixin, _select_rows

DB_FILENAME = "lab.db"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS repos (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    path           TEXT UNIQUE NOT NULL,
    gitlab_url     TEXT NOT NULL DEFAULT '',
    project_id     INTEGER NOT NULL DEFAULT 0,
    name           TEXT NOT NULL DEFAULT '',
    added_at       DATETIME NOT NULL DEFAULT (datetime('now')),
    last_synced_at DATETIME
);

CREATE TABLE IF NOT EXISTS merge_requests (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    repo_id         INTEGER NOT NULL REFERENCES repos(id) ON DELETE CASCADE,
    iid             INTEGER NOT NULL,
    title           TEXT NOT NULL DEFAULT '',
    author          TEXT NOT NULL DEFAULT '',
    state           TEXT NOT NULL DEFAULT 'opened',
    source_branch   TEXT NOT NULL DEFAULT '',
    target_branch   TEXT NOT NULL DEFAULT '',
    web_url         TEXT NOT NULL DEFAULT '',
    pipeline_status TEXT,
    updated_at      DATETIME,
    synced_at       DATETIME,
    UNIQUE(repo_id, iid)
);

CREATE TABLE IF NOT EXISTS mr_labels (
    mr_id  INTEGER NOT NULL REFERENCES merge_requests(id) ON DELETE CASCADE,
    label  TEXT NOT NULL,
    PRIMARY KEY (mr_id, label)
);

CREATE TABLE IF NOT EXISTS comments (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    mr_id         INTEGER NOT NULL REFERENCES merge_requests(id) ON DELETE CASCADE,
    discussion_id TEXT NOT NULL DEFAULT '',
    note_id       INTEGER NOT NULL,
    author        TEXT NOT NULL DEFAULT '',
    body          TEXT NOT NULL DEFAULT '',
    file_path     TEXT,
    old_line      INTEGER,
    new_line      INTEGER,
    resolved      BOOLEAN NOT NULL DEFAULT 0,
    created_at    DATETIME,
    synced_at     DATETIME,
    UNIQUE(mr_id, note_id)
);

CREATE TABLE IF NOT EXISTS config (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS thread_reads (
    mr_id         INTEGER NOT NULL REFERENCES merge_requests(id) ON DELETE CASCADE,
    discussion_id TEXT NOT NULL,
    read_at       DATETIME NOT NULL,
    PRIMARY KEY (mr_id, discussion_id)
);

CREATE TABLE IF NOT EXISTS mr_reviewers (
    mr_id    INTEGER NOT NULL REFERENCES merge_requests(id) ON DELETE CASCADE,
    username TEXT NOT NULL,
    state    TEXT NOT NULL DEFAULT '',
    PRIMARY KEY (mr_id, username)
);
"""

# Columns added after the first schema: (table, column, definition).
_ADDED_COLUMNS = (
    ("comments", "diff_hunk", "TEXT"),
    ("merge_requests", "approved", "BOOLEAN NOT NULL DEFAULT 0"),
    ("merge_requests", "draft", "BOOLEAN NOT NULL DEFAULT 0"),
)

_ADD_REPO = """
INSERT INTO repos (path, gitlab_url, name)
VALUES (?, ?, ?)
RETURNING id, path, gitlab_url, project_id, name, added_at, last_synced_at"""


class Database(CommentsMixin, MergeRequestsMixin):
    """An open lab database. Use :meth:`open` to create one."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    @classmethod
    def open(cls, data_dir: str | os.PathLike[str]) -> Database:
        """Open or create lab.db in ``data_dir`` and bring its schema up to date.

        The database runs in WAL mode with foreign keys enforced.
        """
        db_path = Path(data_dir) / DB_FILENAME
        try:
            conn = sqlite3.connect(db_path, timeout=5.0)
        except sqlite3.Error as exc:
            raise DatabaseError(f"open sqlite: {exc}") from exc
        try:
            conn.execute("PRAGMA journal_mode=wal")
            conn.execute("PRAGMA foreign_keys=ON")
            conn.execute("PRAGMA busy_timeout=5000")
            _migrate(conn)
        except sqlite3.Error as exc:
            conn.close()
            raise DatabaseError(f"migrate: {exc}") from exc
        return cls(conn)

    def close(self) -> None:
        """Close the underlying connection."""
        self.conn.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type: type[BaseException] | None,
                 exc: BaseException | None, tb: TracebackType | None) -> None:
        self.close()

    # Key/value configuration.

    def set_config(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        _write(self.conn, "set_config",
               "INSERT INTO config (key, value) VALUES (?, ?)"
               " ON CONFLICT(key) DO UPDATE SET value = excluded.value",
               (key, value))

    def get_config(self, key: str) -> str:
        """Return the value stored under ``key``, or "" when there is none."""
        rows = _read(self.conn, "get_config",
                     "SELECT value FROM config WHERE key = ?", (key,))
        return rows[0][0] if rows else ""

    def get_config_by_prefix(self, prefix: str) -> dict[str, str]:
        """Return all entries whose key starts with ``prefix``."""
        rows = _read(self.conn, "get_config_by_prefix",
                     "SELECT key, value FROM config WHERE key LIKE ?", (prefix + "%",))
        return dict(rows)

    # Repositories.

    def add_repo(self, path: str, gitlab_url: str, name: str) -> Repo:
        """Register a repository and return the stored record."""
        try:
            with self.conn:
                rows = _select_rows_raw(self.conn, path, gitlab_url, name)
        except sqlite3.IntegrityError as exc:
            if "unique" in str(exc).lower():
                raise DuplicateError(f"add_repo: repo {path!r} is already registered") from exc
            raise DatabaseError(f"add_repo: {exc}") from exc
        except sqlite3.Error as exc:
            raise DatabaseError(f"add_repo: {exc}") from exc
        return _repo_from_row(rows[0])

    def list_repos(self) -> list[Repo]:
        """Return all repositories ordered by name."""
        rows = _select_rows(self.conn, "list_repos", "SELECT * FROM repos ORDER BY name")
        return [_repo_from_row(row) for row in rows]

    def remove_repo(self, path: str) -> None:
        """Delete the repository at ``path``; raise :class:`NotFoundError` if absent."""
        try:
            with self.conn:
                cursor = self.conn.execute("DELETE FROM repos WHERE path = ?", (path,))
        except sqlite3.Error as exc:
            raise DatabaseError(f"remove_repo: {exc}") from exc
        if cursor.rowcount == 0:
            raise NotFoundError(f"remove_repo: repo {path!r} not found")

    def get_repo(self, repo_id: int) -> Repo:
        """Return the repository with primary key ``repo_id``."""
        rows = _select_rows(self.conn, "get_repo",
                            "SELECT * FROM repos WHERE id = ?", (repo_id,))
        if not rows:
            raise NotFoundError(f"get_repo: repo {repo_id} not found")
        return _repo_from_row(rows[0])

    def update_repo_sync_time(self, repo_id: int) -> None:
        """Set the repository's last sync time to now."""
        _write(self.conn, "update_repo_sync_time",
               "UPDATE repos SET last_synced_at = datetime('now') WHERE id = ?",
               (repo_id,))

    def update_repo_project_id(self, repo_id: int, project_id: int) -> None:
        """Set the GitLab project id of the repository."""
        _write(self.conn, "update_repo_project_id",
               "UPDATE repos SET project_id = ? WHERE id = ?", (project_id, repo_id))

    # Reviewers.

    def set_mr_reviewers(self, mr_id: int, reviewers: Iterable[Reviewer]) -> None:
        """Replace the reviewers of a merge request in one transaction."""
        try:
            with self.conn:
                self.conn.execute("DELETE FROM mr_reviewers WHERE mr_id = ?", (mr_id,))
                self.conn.executemany(
                    "INSERT INTO mr_reviewers (mr_id, username, state) VALUES (?, ?, ?)",
                    [(mr_id, r.username, r.state) for r in reviewers],
                )
        except sqlite3.Error as exc:
            raise DatabaseError(f"set_mr_reviewers: {exc}") from exc

    def get_mr_reviewers(self, mr_id: int) -> list[Reviewer]:
        """Return the reviewers of a merge request, sorted by username."""
        rows = _read(self.conn, "get_mr_reviewers",
                     "SELECT username, state FROM mr_reviewers"
                     " WHERE mr_id = ? ORDER BY username", (mr_id,))
        return [Reviewer(username=username, state=state) for username, state in rows]


def _select_rows_raw(conn: sqlite3.Connection, path: str, gitlab_url: str,
                     name: str) -> list[dict[str, object]]:
    cursor = conn.execute(_ADD_REPO, (path, gitlab_url, name))
    names = [column[0] for column in cursor.description or ()]
    return [dict(zip(names, row)) for row in cursor.fetchall()]


def _migrate(conn: sqlite3.Connection) -> None:
    """Create missing tables and add columns introduced after the first schema."""
    conn.executescript(_SCHEMA)
    for table, column, definition in _ADDED_COLUMNS:
        (count,) = conn.execute(
            "SELECT COUNT(*) FROM pragma_table_info(?) WHERE name = ?", (table, column)
        ).fetchone()
        if count == 0:
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
    conn.commit()