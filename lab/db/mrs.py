"""Merge request, label and reviewer-listing queries."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Sequence
from typing import Any

from lab.db.comments import _read, _write
from lab.db.models import (
    DatabaseError,
    MergeRequest,
    MRFilter,
    NotFoundError,
    _format_time,
    _mappings,
    _mr_from_row,
)

_UPSERT_MR = """
INSERT INTO merge_requests
    (repo_id, iid, title, author, state, draft, source_branch, target_branch,
     web_url, pipeline_status, approved, updated_at, synced_at)
VALUES
    (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, datetime('now'))
ON CONFLICT(repo_id, iid) DO UPDATE SET
    title           = excluded.title,
    author          = excluded.author,
    state           = excluded.state,
    draft           = excluded.draft,
    source_branch   = excluded.source_branch,
    target_branch   = excluded.target_branch,
    web_url         = excluded.web_url,
    pipeline_status = excluded.pipeline_status,
    approved        = excluded.approved,
    updated_at      = excluded.updated_at,
    synced_at       = datetime('now')
RETURNING id"""


def _select_rows(conn: sqlite3.Connection, context: str, sql: str,
                 params: Sequence[Any] = ()) -> list[dict[str, Any]]:
    """Run a query and return its rows as dictionaries keyed by column name."""
    try:
        return _mappings(conn.execute(sql, params))
    except sqlite3.Error as exc:
        raise DatabaseError(f"{context}: {exc}") from exc


class MergeRequestsMixin:
    """Merge request queries for a database object exposing an open ``conn``."""

    conn: sqlite3.Connection

    def upsert_mr(self, mr: MergeRequest) -> int:
        """Insert ``mr`` or update every field of the existing row.

        The row id is stored in ``mr.id`` and returned.
        """
        rows = _write(self.conn, "upsert_mr", _UPSERT_MR, (
            mr.repo_id, mr.iid, mr.title, mr.author, mr.state, mr.draft,
            mr.source_branch, mr.target_branch, mr.web_url,
            mr.pipeline_status, mr.approved, _format_time(mr.updated_at),
        ))
        mr.id = int(rows[0][0])
        return mr.id

    def get_mr(self, mr_id: int) -> MergeRequest:
        """Return the merge request with primary key ``mr_id``."""
        rows = _select_rows(self.conn, "get_mr",
                            "SELECT * FROM merge_requests WHERE id = ?", (mr_id,))
        if not rows:
            raise NotFoundError(f"get_mr: merge request {mr_id} not found")
        return _mr_from_row(rows[0])

    def list_mrs(self, mr_filter: MRFilter | None = None) -> list[MergeRequest]:
        """Return the merge requests matching every criterion set in ``mr_filter``."""
        criteria = mr_filter if mr_filter is not None else MRFilter()
        query = "SELECT DISTINCT mr.* FROM merge_requests mr"
        where: list[str] = []
        args: list[Any] = []

        if criteria.labels:
            query += " JOIN mr_labels ml ON ml.mr_id = mr.id"
        if criteria.repo_id is not None:
            where.append("mr.repo_id = ?")
            args.append(criteria.repo_id)
        if criteria.author is not None:
            where.append("mr.author != ?" if criteria.author_negate else "mr.author = ?")
            args.append(criteria.author)
        if criteria.draft is not None:
            where.append("mr.draft = ?")
            args.append(criteria.draft)
        if criteria.approved is not None:
            where.append("mr.approved = ?")
            args.append(criteria.approved)
        if criteria.reviewer is not None:
            if criteria.reviewer == "":
                where.append(
                    "NOT EXISTS (SELECT 1 FROM mr_reviewers WHERE mr_id = mr.id)"
                )
            else:
                where.append(
                    "EXISTS (SELECT 1 FROM mr_reviewers"
                    " WHERE mr_id = mr.id AND username = ?)"
                )
                args.append(criteria.reviewer)
        if criteria.labels:
            placeholders = ",".join("?" * len(criteria.labels))
            where.append(f"ml.label IN ({placeholders})")
            args.extend(criteria.labels)

        if where:
            query += " WHERE " + " AND ".join(where)
        rows = _select_rows(self.conn, "list_mrs", query, args)
        return [_mr_from_row(row) for row in rows]

    def set_mr_labels(self, mr_id: int, labels: Iterable[str]) -> None:
        """Replace all labels of a merge request in one transaction."""
        try:
            with self.conn:
                self.conn.execute("DELETE FROM mr_labels WHERE mr_id = ?", (mr_id,))
                self.conn.executemany(
                    "INSERT INTO mr_labels (mr_id, label) VALUES (?, ?)",
                    [(mr_id, label) for label in labels],
                )
        except sqlite3.Error as exc:
            raise DatabaseError(f"set_mr_labels: {exc}") from exc

    def get_mr_labels(self, mr_id: int) -> list[str]:
        """Return the labels of a merge request, sorted."""
        rows = _read(self.conn, "get_mr_labels",
                     "SELECT label FROM mr_labels WHERE mr_id = ? ORDER BY label",
                     (mr_id,))
        return [label for (label,) in rows]

    def all_reviewers(self) -> list[str]:
        """Return every distinct reviewer username, sorted."""
        rows = _read(self.conn, "all_reviewers",
                     "SELECT DISTINCT username FROM mr_reviewers ORDER BY username")
        return [name for (name,) in rows]

    def all_authors(self) -> list[str]:
        """Return every distinct merge request author, sorted."""
        rows = _read(self.conn, "all_authors",
                     "SELECT DISTINCT author FROM merge_requests ORDER BY author")
        return [name for (name,) in rows]

    def all_labels(self) -> list[str]:
        """Return every distinct label, sorted."""
        rows = _read(self.conn, "all_labels",
                     "SELECT DISTINCT label FROM mr_labels ORDER BY label")
        return [label for (label,) in rows]

    def delete_stale_mrs(self, repo_id: int, keep_iids: Iterable[int]) -> None:
        """Delete the repository's merge requests whose iid is not kept."""
        keep = list(keep_iids)
        if not keep:
            _write(self.conn, "delete_stale_mrs",
                   "DELETE FROM merge_requests WHERE repo_id = ?", (repo_id,))
            return
        placeholders = ",".join("?" * len(keep))
        _write(self.conn, "delete_stale_mrs",
               f"DELETE FROM merge_requests WHERE repo_id = ? AND iid NOT IN ({placeholders})",
               (repo_id, *keep))