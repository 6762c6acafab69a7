import os
import re
import sys

import pytest

from lab import config
from lab.cli import data_dir, load_effective_config, main, open_db
from lab.config import ConfigError

REMOTE_URL = "https://gitlab.example.com/group/proj.git"


def _script(directory, name, body):
    path = directory / name
    path.write_text("#!/bin/sh\n" + body + "\n")
    path.chmod(0o755)
    return path


@pytest.fixture
def home(tmp_path, monkeypatch):
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    return home_dir


@pytest.fixture
def tools(tmp_path, monkeypatch):
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    _script(bin_dir, "glab", "exit 0")
    _script(bin_dir, "git", f"echo {REMOTE_URL}")
    monkeypatch.setenv("PATH", str(bin_dir) + os.pathsep + os.environ.get("PATH", ""))
    return bin_dir


def test_data_dir_is_created_under_home(home):
    directory = data_dir()
    assert directory == home / ".config" / "lab"
    assert directory.is_dir()


def test_config_set_and_get(home, capsys):
    assert main(["config", "set", "username", "alice"]) == 0
    assert capsys.readouterr().out == "Set username = alice\n"
    assert main(["config", "get", "username"]) == 0
    assert capsys.readouterr().out == "alice\n"


def test_config_get_missing(home, capsys):
    assert main(["config", "get", "nothing"]) == 0
    assert capsys.readouterr().out == "nothing is not set\n"


def test_list_empty(home, capsys):
    assert main(["list"]) == 0
    assert capsys.readouterr().out == "No repos registered.\n"


def test_add_list_remove_cycle(home, tools, tmp_path, capsys):
    repo = tmp_path / "myrepo"
    (repo / ".git").mkdir(parents=True)

    assert main(["add", str(repo)]) == 0
    out = capsys.readouterr().out
    assert 'Added repo "myrepo"' in out
    assert f"url={REMOTE_URL}" in out

    assert main(["list"]) == 0
    listing = capsys.readouterr().out
    assert "myrepo" in listing
    assert str(repo) in listing
    assert "(last sync: never)" in listing

    assert main(["add", str(repo)]) == 1
    assert "already registered" in capsys.readouterr().err

    assert main(["remove", str(repo)]) == 0
    assert capsys.readouterr().out == f'Removed repo "{repo}"\n'

    assert main(["remove", str(repo)]) == 1
    assert "not found" in capsys.readouterr().err


def test_list_shows_sync_time(home, tools, tmp_path, capsys):
    repo = tmp_path / "synced"
    (repo / ".git").mkdir(parents=True)
    assert main(["add", str(repo)]) == 0
    with open_db() as database:
        (stored,) = database.list_repos()
        database.update_repo_sync_time(stored.id)
    capsys.readouterr()

    assert main(["list"]) == 0
    out = capsys.readouterr().out
    assert re.search(r"\(last sync: \d{4}-\d\d-\d\d \d\d:\d\d:\d\d\)", out)


def test_add_rejects_non_git_directory(home, tools, tmp_path, capsys):
    plain = tmp_path / "plain"
    plain.mkdir()
    assert main(["add", str(plain)]) == 1
    assert "is not a git repository" in capsys.readouterr().err


def test_add_requires_glab(home, tmp_path, monkeypatch, capsys):
    empty = tmp_path / "empty"
    empty.mkdir()
    monkeypatch.setenv("PATH", str(empty))
    assert main(["add", str(tmp_path)]) == 1
    assert "glab is required" in capsys.readouterr().err


def test_daemon_status_not_running(home, capsys):
    assert main(["daemon", "status"]) == 0
    assert capsys.readouterr().out == "Daemon is not running.\n"


def test_daemon_status_running(home, capsys):
    (data_dir() / "daemon.pid").write_text(str(os.getpid()))
    assert main(["daemon", "status"]) == 0
    assert capsys.readouterr().out == f"Daemon is running (pid {os.getpid()})\n"


def test_daemon_stop_without_pid_file(home, capsys):
    assert main(["daemon", "stop"]) == 1
    assert "no PID file" in capsys.readouterr().err


def test_daemon_install_outside_macos(home, monkeypatch, capsys):
    monkeypatch.setattr(sys, "platform", "linux")
    assert main(["daemon", "install"]) == 1
    assert "only supported on macOS" in capsys.readouterr().err


def test_load_effective_config_uses_database_username(home):
    with open_db() as database:
        database.set_config("username", "alice")
        cfg, error = load_effective_config(database)
    assert error is None
    assert cfg.username == "alice"
    assert cfg.sync_interval == config.default().sync_interval


def test_load_effective_config_reports_malformed_file(home):
    config.path(data_dir()).write_text("{not json")
    with open_db() as database:
        cfg, error = load_effective_config(database)
    assert isinstance(error, ConfigError)
    assert cfg.notifications == config.default().notifications


def test_install_seeds_config_from_database(home, tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(sys, "platform", "linux")
    fake_binary = tmp_path / "lab-binary"
    fake_binary.write_text("")
    monkeypatch.setattr(sys, "argv", [str(fake_binary)])
    with open_db() as database:
        database.set_config("username", "bob")
        database.set_config("sync_interval", "15m")

    assert main(["--install"]) == 1
    captured = capsys.readouterr()
    assert f"Created {config.path(data_dir())}" in captured.out
    assert "only supported on macOS" in captured.err

    saved = config.load(data_dir())
    assert saved.username == "bob"
    assert saved.sync_interval == "15m"


def test_install_overwrites_malformed_file(home, tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(sys, "platform", "linux")
    fake_binary = tmp_path / "lab-binary"
    fake_binary.write_text("")
    monkeypatch.setattr(sys, "argv", [str(fake_binary)])
    config.path(data_dir()).write_text("{not json")

    assert main(["--install"]) == 1
    assert "Overwrote malformed" in capsys.readouterr().out
    assert config.load(data_dir()) == config.default()


def test_no_command_prints_help(home, capsys):
    assert main([]) == 0
    assert "usage: lab" in capsys.readouterr().out


def test_unknown_command_exits(home):
    with pytest.raises(SystemExit) as excinfo:
        main(["bogus"])
    assert excinfo.value.code == 2