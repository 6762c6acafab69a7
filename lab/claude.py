"""Building prompts from review threads and launching claude on them."""

from __future__ import annotations

import os
import shutil
import tempfile
from typing import Any

from lab.db.models import Thread


def build_prompt(thread: Thread, repo_path: str | os.PathLike[str]) -> str:
    """Return the prompt text describing ``thread`` in the repository at ``repo_path``."""
    parts: list[str] = []

    if thread.file_path is not None:
        if thread.new_line is not None:
            line = thread.new_line
        elif thread.old_line is not None:
            line = thread.old_line
        else:
            line = 0
        full_path = os.path.normpath(os.path.join(os.fspath(repo_path), thread.file_path))
        parts.append(f"File: {thread.file_path} (line {line})\n")
        parts.append(f"Full path: {full_path}\n")

    parts.append("--- Comment thread ---\n")
    parts.extend(f"@{comment.author}:\n{comment.body}\n" for comment in thread.comments)
    parts.append("--- End thread ---\n")
    parts.append("Verify this issue exists and then fix it.\n")
    return "".join(parts)


def write_prompt_to_temp_file(prompt: str) -> str:
    """Write ``prompt`` to a new temporary ``lab-prompt-*.md`` file and return its path."""
    fd, name = tempfile.mkstemp(prefix="lab-prompt-", suffix=".md")
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(prompt)
    return name


def claude_command(prompt: str, repo_path: str | os.PathLike[str]) -> dict[str, Any]:
    """Return the subprocess arguments that run claude on ``prompt`` inside ``repo_path``.

    The result can be passed straight to :func:`subprocess.run` or
    :class:`subprocess.Popen`. Raises FileNotFoundError when claude is not on PATH.
    """
    if shutil.which("claude") is None:
        raise FileNotFoundError("claude not found on PATH")
    return {"args": ["claude", prompt], "cwd": os.fspath(repo_path)}