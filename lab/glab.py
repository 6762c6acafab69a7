"""Talking to GitLab through the glab command line client."""

from __future__ import annotations

import json
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote


class GlabError(Exception):
    """A glab or git command failed or returned unusable output."""


_TIME_PATTERN = re.compile(r"^(?P<base>[^.]*?\d\d:\d\d:\d\d)(?:\.(?P<frac>\d+))?(?P<zone>.*)$")


def _parse_time(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise GlabError(f"invalid timestamp {value!r}")
    text = value.strip()
    match = _TIME_PATTERN.match(text)
    if match is not None:
        zone = match.group("zone")
        if zone in ("Z", "z"):
            zone = "+00:00"
        frac = match.group("frac")
        text = match.group("base")
        if frac:
            text += "." + frac[:6].ljust(6, "0")
        text += zone
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise GlabError(f"invalid timestamp {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _obj(data: Any, context: str) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise GlabError(f"{context}: expected an object, got {type(data).__name__}")
    return data


def _list(data: Any, context: str) -> list[Any]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise GlabError(f"{context}: expected an array, got {type(data).__name__}")
    return data


def _str(value: Any) -> str:
    return "" if value is None else str(value)


def _int(value: Any) -> int:
    return 0 if value is None else int(value)


@dataclass
class Author:
    """The author of a merge request or note."""

    username: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Author:
        """Build an author from decoded JSON."""
        return cls(username=_str(_obj(data, "author").get("username")))


@dataclass
class Reviewer:
    """A reviewer as reported by GitLab; ``review_state`` may be empty."""

    username: str = ""
    review_state: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Reviewer:
        """Build a reviewer from decoded JSON."""
        obj = _obj(data, "reviewer")
        return cls(
            username=_str(obj.get("username")),
            review_state=_str(obj.get("reviewer_state")),
        )


@dataclass
class Pipeline:
    """The head pipeline of a merge request."""

    status: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Pipeline:
        """Build a pipeline from decoded JSON."""
        return cls(status=_str(_obj(data, "pipeline").get("status")))


@dataclass
class Position:
    """Where in the diff a note is attached."""

    old_path: str = ""
    new_path: str = ""
    old_line: int | None = None
    new_line: int | None = None
    head_sha: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Position:
        """Build a position from decoded JSON."""
        obj = _obj(data, "position")
        old_line = obj.get("old_line")
        new_line = obj.get("new_line")
        return cls(
            old_path=_str(obj.get("old_path")),
            new_path=_str(obj.get("new_path")),
            old_line=None if old_line is None else int(old_line),
            new_line=None if new_line is None else int(new_line),
            head_sha=_str(obj.get("head_sha")),
        )


@dataclass
class Note:
    """A single note inside a discussion."""

    id: int = 0
    type: str | None = None
    body: str = ""
    author: Author = field(default_factory=Author)
    created_at: datetime | None = None
    system: bool = False
    resolvable: bool = False
    resolved: bool = False
    position: Position | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Note:
        """Build a note from decoded JSON."""
        obj = _obj(data, "note")
        note_type = obj.get("type")
        position = obj.get("position")
        return cls(
            id=_int(obj.get("id")),
            type=None if note_type is None else str(note_type),
            body=_str(obj.get("body")),
            author=Author.from_dict(obj.get("author")),
            created_at=_parse_time(obj.get("created_at")),
            system=bool(obj.get("system")),
            resolvable=bool(obj.get("resolvable")),
            resolved=bool(obj.get("resolved")),
            position=None if position is None else Position.from_dict(position),
        )


@dataclass
class Discussion:
    """A discussion thread on a merge request."""

    id: str = ""
    individual_note: bool = False
    notes: list[Note] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> Discussion:
        """Build a discussion from decoded JSON."""
        obj = _obj(data, "discussion")
        return cls(
            id=_str(obj.get("id")),
            individual_note=bool(obj.get("individual_note")),
            notes=[Note.from_dict(n) for n in _list(obj.get("notes"), "notes")],
        )


@dataclass
class MRListItem:
    """A merge request as listed by ``glab mr list``."""

    id: int = 0
    iid: int = 0
    project_id: int = 0
    title: str = ""
    state: str = ""
    source_branch: str = ""
    target_branch: str = ""
    web_url: str = ""
    draft: bool = False
    updated_at: datetime | None = None
    author: Author = field(default_factory=Author)
    labels: list[str] = field(default_factory=list)
    reviewers: list[Reviewer] = field(default_factory=list)
    head_pipeline: Pipeline | None = None

    @classmethod
    def from_dict(cls, data: Any) -> MRListItem:
        """Build a merge request list item from decoded JSON."""
        obj = _obj(data, "merge request")
        pipeline = obj.get("head_pipeline")
        return cls(
            id=_int(obj.get("id")),
            iid=_int(obj.get("iid")),
            project_id=_int(obj.get("project_id")),
            title=_str(obj.get("title")),
            state=_str(obj.get("state")),
            source_branch=_str(obj.get("source_branch")),
            target_branch=_str(obj.get("target_branch")),
            web_url=_str(obj.get("web_url")),
            draft=bool(obj.get("draft")),
            updated_at=_parse_time(obj.get("updated_at")),
            author=Author.from_dict(obj.get("author")),
            labels=[str(label) for label in _list(obj.get("labels"), "labels")],
            reviewers=[
                Reviewer.from_dict(r) for r in _list(obj.get("reviewers"), "reviewers")
            ],
            head_pipeline=None if pipeline is None else Pipeline.from_dict(pipeline),
        )


@dataclass
class MRDetail:
    """Pipeline, approval, reviewer and state details of a merge request."""

    pipeline_status: str = ""
    approved: bool = False
    state: str = ""
    reviewers: list[Reviewer] = field(default_factory=list)


def _run(args: list[str], context: str) -> bytes:
    try:
        result = subprocess.run(args, capture_output=True)
    except OSError as exc:
        raise GlabError(f"{context}: {exc}") from exc
    if result.returncode != 0:
        stderr = (result.stderr or b"").decode("utf-8", errors="replace").strip()
        raise GlabError(f"{context}: {stderr or f'exit status {result.returncode}'}")
    return result.stdout or b""


def _decode_json(raw: bytes, context: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise GlabError(f"{context}: {exc}") from exc


class Client:
    """Runs glab and git commands and decodes their output."""

    def check_installed(self) -> None:
        """Raise :class:`GlabError` if glab is not on PATH."""
        if shutil.which("glab") is None:
            raise GlabError("glab not found on PATH")

    def list_mrs(self, repo_url: str) -> list[MRListItem]:
        """List up to 100 merge requests of the project at ``repo_url``."""
        out = _run(
            ["glab", "mr", "list", "-R", repo_url, "-F", "json", "--per-page", "100"],
            "glab mr list",
        )
        data = _decode_json(out, "parse glab mr list output")
        try:
            return [MRListItem.from_dict(item) for item in _list(data, "mr list")]
        except (GlabError, TypeError, ValueError) as exc:
            raise GlabError(f"parse glab mr list output: {exc}") from exc

    def list_discussions(self, repo_url: str, project_id: int, mr_iid: int) -> list[Discussion]:
        """Return up to 100 discussions of a merge request."""
        endpoint = f"projects/{project_id}/merge_requests/{mr_iid}/discussions?per_page=100"
        out = _run(["glab", "api", endpoint, "-R", repo_url], "glab api discussions")
        data = _decode_json(out, "parse discussions")
        try:
            return [Discussion.from_dict(d) for d in _list(data, "discussions")]
        except (GlabError, TypeError, ValueError) as exc:
            raise GlabError(f"parse discussions: {exc}") from exc

    def get_mr_detail(self, repo_url: str, project_id: int, mr_iid: int) -> MRDetail:
        """Fetch pipeline, state, reviewers and approval status of a merge request.

        A failing approvals request is not an error; ``approved`` is then False.
        """
        endpoint = f"projects/{project_id}/merge_requests/{mr_iid}"
        out = _run(["glab", "api", endpoint, "-R", repo_url], "glab api MR detail")
        data = _decode_json(out, "parse MR detail")
        try:
            obj = _obj(data, "MR detail")
            pipeline = obj.get("head_pipeline")
            detail = MRDetail(
                pipeline_status="" if pipeline is None else Pipeline.from_dict(pipeline).status,
                state=_str(obj.get("state")),
                reviewers=[
                    Reviewer.from_dict(r) for r in _list(obj.get("reviewers"), "reviewers")
                ],
            )
        except (GlabError, TypeError, ValueError) as exc:
            raise GlabError(f"parse MR detail: {exc}") from exc

        try:
            approvals_out = _run(
                ["glab", "api", f"{endpoint}/approvals", "-R", repo_url],
                "glab api approvals",
            )
            approvals = json.loads(approvals_out)
        except (GlabError, ValueError):
            return detail
        if isinstance(approvals, dict):
            detail.approved = bool(approvals.get("approved"))
        return detail

    def get_file_content(self, repo_url: str, project_id: int, file_path: str, ref: str) -> str:
        """Return the raw content of ``file_path`` at ``ref``."""
        encoded = quote(file_path, safe="$&+:=@")
        endpoint = f"projects/{project_id}/repository/files/{encoded}/raw?ref={ref}"
        out = _run(["glab", "api", endpoint, "-R", repo_url], "glab api file content")
        return out.decode("utf-8", errors="replace")

    def get_gitlab_url(self, repo_path: str) -> str:
        """Return the URL of the ``origin`` remote of the repository at ``repo_path``."""
        out = _run(
            ["git", "-C", str(repo_path), "remote", "get-url", "origin"],
            "get git remote URL",
        )
        return out.decode("utf-8", errors="replace").strip()


def extract_snippet(content: str, target_line: int, context_lines: int) -> str:
    """Return numbered lines around ``target_line`` (1-based), or "" if out of range."""
    lines = content.split("\n")
    if target_line < 1 or target_line > len(lines):
        return ""
    start = max(target_line - context_lines - 1, 0)
    end = min(target_line + context_lines, len(lines))
    return "".join(
        f"{number}\t{line}\n"
        for number, line in enumerate(lines[start:end], start=start + 1)
    )