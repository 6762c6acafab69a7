"""Small helpers around the git command line."""

from __future__ import annotations

import os
import subprocess


class GitError(Exception):
    """A git command failed."""


class DirtyWorktreeError(GitError):
    """The repository has uncommitted changes."""

    def __init__(self, message: str = "repository has uncommitted changes") -> None:
        super().__init__(message)


def _git(repo_path: str | os.PathLike[str], *args: str) -> str:
    try:
        result = subprocess.run(
            ["git", *args], cwd=repo_path, capture_output=True, text=True
        )
    except OSError as exc:
        raise GitError(f"git {args[0]}: {exc}") from exc
    if result.returncode != 0:
        detail = (result.stderr or "").strip() or f"exit status {result.returncode}"
        raise GitError(f"git {args[0]}: {detail}")
    return result.stdout


def is_clean(repo_path: str | os.PathLike[str]) -> None:
    """Raise :class:`DirtyWorktreeError` if the repository has uncommitted changes."""
    if _git(repo_path, "status", "--porcelain").strip():
        raise DirtyWorktreeError()


def current_branch(repo_path: str | os.PathLike[str]) -> str:
    """Return the name of the branch checked out in the repository."""
    return _git(repo_path, "rev-parse", "--abbrev-ref", "HEAD").strip()


def checkout(repo_path: str | os.PathLike[str], branch: str) -> None:
    """Fetch ``branch`` from origin (best effort) and switch to it."""
    try:
        subprocess.run(
            ["git", "fetch", "origin", branch],
            cwd=repo_path,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError:
        pass

    try:
        result = subprocess.run(
            ["git", "checkout", branch],
            cwd=repo_path,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
    except OSError as exc:
        raise GitError(f"git checkout {branch}: {exc}") from exc
    if result.returncode != 0:
        raise GitError(f"git checkout {branch}: {(result.stdout or '').strip()}")