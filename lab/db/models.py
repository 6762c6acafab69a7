"""Records stored in the lab database and the errors its queries raise."""

from __future__ import annotations

import sqlite3
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


class DatabaseError(Exception):
    """A database operation failed."""


class NotFoundError(DatabaseError):
    """The requested record does not exist."""


class DuplicateError(DatabaseError):
    """A record with the same unique key already exists."""


@dataclass
class Repo:
    """A tracked local repository."""

    id: int = 0
    path: str = ""
    gitlab_url: str = ""
    project_id: int = 0
    name: str = ""
    added_at: datetime | None = None
    last_synced_at: datetime | None = None


@dataclass
class MergeRequest:
    """A GitLab merge request record."""

    id: int = 0
    repo_id: int = 0
    iid: int = 0
    title: str = ""
    author: str = ""
    state: str = ""
    draft: bool = False
    source_branch: str = ""
    target_branch: str = ""
    web_url: str = ""
    pipeline_status: str | None = None
    approved: bool = False
    updated_at: datetime | None = None
    synced_at: datetime | None = None


@dataclass
class MRFilter:
    """Optional criteria for listing merge requests.

    ``reviewer`` of None means no filter, "" means merge requests without
    reviewers, and a name means merge requests that name has to review.
    """

    repo_id: int | None = None
    author: str | None = None
    author_negate: bool = False
    reviewer: str | None = None
    labels: list[str] = field(default_factory=list)
    draft: bool | None = None
    approved: bool | None = None


@dataclass
class Reviewer:
    """A reviewer of one merge request."""

    username: str = ""
    state: str = ""


@dataclass
class Comment:
    """A single note on a merge request."""

    id: int = 0
    mr_id: int = 0
    discussion_id: str = ""
    note_id: int = 0
    author: str = ""
    body: str = ""
    file_path: str | None = None
    old_line: int | None = None
    new_line: int | None = None
    diff_hunk: str = ""
    resolved: bool = False
    created_at: datetime | None = None
    synced_at: datetime | None = None


@dataclass
class Thread:
    """The comments of one discussion, in order."""

    discussion_id: str = ""
    file_path: str | None = None
    old_line: int | None = None
    new_line: int | None = None
    diff_hunk: str = ""
    resolved: bool = False
    unread: bool = False
    comments: list[Comment] = field(default_factory=list)


def _format_time(value: datetime | None) -> str | None:
    """Render a datetime as the UTC text stored in the database."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(sep=" ")


def _parse_time(value: Any) -> datetime | None:
    """Read a stored timestamp back as an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise DatabaseError(f"invalid timestamp {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _mappings(cursor: sqlite3.Cursor) -> list[dict[str, Any]]:
    """Return the rows of ``cursor`` as dictionaries keyed by column name."""
    names = [column[0] for column in cursor.description or ()]
    return [dict(zip(names, row)) for row in cursor]


def _optional_int(value: Any) -> int | None:
    return None if value is None else int(value)


def _repo_from_row(row: Mapping[str, Any]) -> Repo:
    return Repo(
        id=int(row["id"]),
        path=row["path"],
        gitlab_url=row.get("gitlab_url") or "",
        project_id=int(row.get("project_id") or 0),
        name=row.get("name") or "",
        added_at=_parse_time(row.get("added_at")),
        last_synced_at=_parse_time(row.get("last_synced_at")),
    )


def _mr_from_row(row: Mapping[str, Any]) -> MergeRequest:
    return MergeRequest(
        id=int(row["id"]),
        repo_id=int(row["repo_id"]),
        iid=int(row["iid"]),
        title=row.get("title") or "",
        author=row.get("author") or "",
        state=row.get("state") or "",
        draft=bool(row.get("draft")),
        source_branch=row.get("source_branch") or "",
        target_branch=row.get("target_branch") or "",
        web_url=row.get("web_url") or "",
        pipeline_status=row.get("pipeline_status"),
        approved=bool(row.get("approved")),
        updated_at=_parse_time(row.get("updated_at")),
        synced_at=_parse_time(row.get("synced_at")),
    )


def _comment_from_row(row: Mapping[str, Any]) -> Comment:
    return Comment(
        id=int(row["id"]),
        mr_id=int(row["mr_id"]),
        discussion_id=row.get("discussion_id") or "",
        note_id=int(row["note_id"]),
        author=row.get("author") or "",
        body=row.get("body") or "",
        file_path=row.get("file_path"),
        old_line=_optional_int(row.get("old_line")),
        new_line=_optional_int(row.get("new_line")),
        diff_hunk=row.get("diff_hunk") or "",
        resolved=bool(row.get("resolved")),
        created_at=_parse_time(row.get("created_at")),
        synced_at=_parse_time(row.get("synced_at")),
    )