import os
from pathlib import Path

import pytest

from lab.claude import build_prompt, claude_command, write_prompt_to_temp_file
from lab.db.models import Comment, Thread


def test_build_prompt():
    thread = Thread(
        discussion_id="abc123",
        file_path="pkg/foo/bar.go",
        new_line=42,
        comments=[
            Comment(author="alice", body="This is a bug"),
            Comment(author="bob", body="Agreed, needs fixing"),
        ],
    )
    prompt = build_prompt(thread, "/home/user/myrepo")

    assert "File: pkg/foo/bar.go (line 42)" in prompt
    assert "Full path: /home/user/myrepo/pkg/foo/bar.go" in prompt
    assert "@alice:" in prompt
    assert "@bob:" in prompt
    assert "This is a bug" in prompt
    assert "Verify this issue exists and then fix it." in prompt
    assert "--- Comment thread ---" in prompt
    assert "--- End thread ---" in prompt


def test_build_prompt_general_comment():
    thread = Thread(
        discussion_id="xyz789",
        file_path=None,
        comments=[Comment(author="carol", body="Please update the docs")],
    )
    prompt = build_prompt(thread, "/home/user/myrepo")

    assert "File:" not in prompt
    assert "Full path:" not in prompt
    assert "@carol:" in prompt
    assert "Verify this issue exists and then fix it." in prompt


def test_build_prompt_falls_back_to_old_line():
    thread = Thread(file_path="a.go", old_line=7, comments=[Comment(author="x", body="y")])
    assert "File: a.go (line 7)" in build_prompt(thread, "/repo")


def test_build_prompt_without_line_uses_zero():
    thread = Thread(file_path="a.go", comments=[])
    assert "File: a.go (line 0)" in build_prompt(thread, "/repo")


def test_build_prompt_comment_order_and_layout():
    thread = Thread(
        comments=[Comment(author="alice", body="first"), Comment(author="bob", body="second")]
    )
    prompt = build_prompt(thread, "/repo")
    assert prompt.startswith("--- Comment thread ---\n@alice:\nfirst\n@bob:\nsecond\n")
    assert prompt.endswith("--- End thread ---\nVerify this issue exists and then fix it.\n")


def test_write_prompt_to_temp_file_round_trip():
    name = write_prompt_to_temp_file("hello prompt\n")
    try:
        path = Path(name)
        assert path.name.startswith("lab-prompt-")
        assert path.suffix == ".md"
        assert path.read_text(encoding="utf-8") == "hello prompt\n"
    finally:
        os.unlink(name)


def test_claude_command_missing_binary(tmp_path, monkeypatch):
    empty = tmp_path / "empty"
    empty.mkdir()
    monkeypatch.setenv("PATH", str(empty))
    with pytest.raises(FileNotFoundError):
        claude_command("prompt", tmp_path)


def test_claude_command_with_binary(tmp_path, monkeypatch):
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    script = bin_dir / "claude"
    script.write_text("#!/bin/sh\nexit 0\n")
    script.chmod(0o755)
    monkeypatch.setenv("PATH", str(bin_dir))

    command = claude_command("fix it", tmp_path / "repo")
    assert command == {"args": ["claude", "fix it"], "cwd": str(tmp_path / "repo")}