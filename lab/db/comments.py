"""Comment, thread and read-state queries."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Sequence
from typing import Any

from lab.db.models import (
    Comment,
    DatabaseError,
    Thread,
    _comment_from_row,
    _format_time,
    _mappings,
)

_UPSERT_COMMENT = """
INSERT INTO comments
    (mr_id, discussion_id, note_id, author, body, file_path, old_line, new_line,
     diff_hunk, resolved, created_at, synced_at)
VALUES
    (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, datetime('now'))
ON CONFLICT(mr_id, note_id) DO UPDATE SET
    body      = excluded.body,
    diff_hunk = excluded.diff_hunk,
    resolved  = excluded.resolved,
    synced_at = datetime('now')
RETURNING id"""

_MARK_THREAD_READ = """
INSERT INTO thread_reads (mr_id, discussion_id, read_at)
VALUES (?, ?, (SELECT COALESCE(MAX(created_at), datetime('now'))
               FROM comments WHERE mr_id = ? AND discussion_id = ?))
ON CONFLICT(mr_id, discussion_id) DO UPDATE SET
    read_at = excluded.read_at"""

_UNREAD_THREAD_COUNT = """
SELECT COUNT(DISTINCT c.discussion_id)
FROM comments c
LEFT JOIN thread_reads tr ON tr.mr_id = c.mr_id AND tr.discussion_id = c.discussion_id
WHERE c.mr_id = ?
  AND (tr.read_at IS NULL OR c.created_at > tr.read_at)"""

_THREAD_UNREAD_STATUS = """
SELECT c.discussion_id,
       MAX(CASE WHEN tr.read_at IS NULL OR c.created_at > tr.read_at THEN 1 ELSE 0 END)
FROM comments c
LEFT JOIN thread_reads tr ON tr.mr_id = c.mr_id AND tr.discussion_id = c.discussion_id
WHERE c.mr_id = ?
GROUP BY c.discussion_id"""


def _read(conn: sqlite3.Connection, context: str, sql: str,
          params: Sequence[Any] = ()) -> list[tuple[Any, ...]]:
    try:
        return conn.execute(sql, params).fetchall()
    except sqlite3.Error as exc:
        raise DatabaseError(f"{context}: {exc}") from exc


def _write(conn: sqlite3.Connection, context: str, sql: str,
           params: Sequence[Any] = ()) -> list[tuple[Any, ...]]:
    try:
        with conn:
            return conn.execute(sql, params).fetchall()
    except sqlite3.Error as exc:
        raise DatabaseError(f"{context}: {exc}") from exc


class CommentsMixin:
    """Comment queries for a database object exposing an open ``conn``."""

    conn: sqlite3.Connection

    def upsert_comment(self, comment: Comment) -> int:
        """Insert ``comment`` or update its body, diff hunk and resolved flag.

        The row id is stored in ``comment.id`` and returned.
        """
        rows = _write(self.conn, "upsert_comment", _UPSERT_COMMENT, (
            comment.mr_id, comment.discussion_id, comment.note_id, comment.author,
            comment.body, comment.file_path, comment.old_line, comment.new_line,
            comment.diff_hunk, comment.resolved, _format_time(comment.created_at),
        ))
        comment.id = int(rows[0][0])
        return comment.id

    def list_comments(self, mr_id: int) -> list[Comment]:
        """Return all comments of a merge request, oldest first."""
        try:
            cursor = self.conn.execute(
                "SELECT * FROM comments WHERE mr_id = ? ORDER BY created_at, id", (mr_id,)
            )
            rows = _mappings(cursor)
        except sqlite3.Error as exc:
            raise DatabaseError(f"list_comments: {exc}") from exc
        return [_comment_from_row(row) for row in rows]

    def list_threads(self, mr_id: int) -> list[Thread]:
        """Group a merge request's comments into threads with their unread state.

        Threads appear in the order of their first comment.
        """
        comments = self.list_comments(mr_id)
        unread = self.thread_unread_status(mr_id)
        threads: dict[str, Thread] = {}
        for comment in comments:
            thread = threads.get(comment.discussion_id)
            if thread is None:
                thread = threads[comment.discussion_id] = Thread(
                    discussion_id=comment.discussion_id,
                    file_path=comment.file_path,
                    old_line=comment.old_line,
                    new_line=comment.new_line,
                    diff_hunk=comment.diff_hunk,
                    resolved=comment.resolved,
                    unread=unread.get(comment.discussion_id, False),
                )
            thread.comments.append(comment)
        return list(threads.values())

    def mark_thread_read(self, mr_id: int, discussion_id: str) -> None:
        """Mark a thread read up to its newest stored comment."""
        _write(self.conn, "mark_thread_read", _MARK_THREAD_READ,
               (mr_id, discussion_id, mr_id, discussion_id))

    def unread_thread_count(self, mr_id: int) -> int:
        """Return how many threads of a merge request have unread comments."""
        rows = _read(self.conn, "unread_thread_count", _UNREAD_THREAD_COUNT, (mr_id,))
        return int(rows[0][0])

    def thread_unread_status(self, mr_id: int) -> dict[str, bool]:
        """Map each discussion id of a merge request to whether it is unread."""
        rows = _read(self.conn, "thread_unread_status", _THREAD_UNREAD_STATUS, (mr_id,))
        return {discussion_id: flag == 1 for discussion_id, flag in rows}

    def unresolved_comment_count(self, mr_id: int) -> int:
        """Return the number of unresolved comments of a merge request."""
        rows = _read(self.conn, "unresolved_comment_count",
                     "SELECT COUNT(*) FROM comments WHERE mr_id = ? AND resolved = 0",
                     (mr_id,))
        return int(rows[0][0])

    def delete_stale_comments(self, mr_id: int, keep_note_ids: Iterable[int]) -> None:
        """Delete the merge request's comments whose note id is not kept."""
        keep = list(keep_note_ids)
        if not keep:
            _write(self.conn, "delete_stale_comments",
                   "DELETE FROM comments WHERE mr_id = ?", (mr_id,))
            return
        placeholders = ",".join("?" * len(keep))
        _write(self.conn, "delete_stale_comments",
               f"DELETE FROM comments WHERE mr_id = ? AND note_id NOT IN ({placeholders})",
               (mr_id, *keep))