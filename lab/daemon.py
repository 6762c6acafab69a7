"""Managing the background sync process through a PID file."""

from __future__ import annotations

import os
import re
import signal
import subprocess
from pathlib import Path

PID_FILENAME = "daemon.pid"
LOG_FILENAME = "daemon.log"

_PID_PATTERN = re.compile(r"[+-]?[0-9]+")


class DaemonError(Exception):
    """The daemon could not be started, stopped or inspected."""


def _pid_path(data_dir: str | os.PathLike[str]) -> Path:
    return Path(data_dir) / PID_FILENAME


def _log_path(data_dir: str | os.PathLike[str]) -> Path:
    return Path(data_dir) / LOG_FILENAME


def write_pid(path: str | os.PathLike[str], pid: int) -> None:
    """Write ``pid`` to ``path``."""
    Path(path).write_text(str(pid))


def read_pid(path: str | os.PathLike[str]) -> int:
    """Read a PID from ``path``; raise :class:`DaemonError` if that fails."""
    try:
        raw = Path(path).read_bytes()
    except OSError as exc:
        raise DaemonError(f"read PID file: {exc}") from exc
    text = raw.decode("utf-8", errors="replace").strip()
    if not _PID_PATTERN.fullmatch(text):
        raise DaemonError(f"parse PID: invalid syntax {text!r}")
    return int(text)


def is_running(pid: int) -> bool:
    """Return True if a process with ``pid`` exists and can be signalled."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except (OSError, OverflowError):
        return False
    return True


def start(lab_binary: str | os.PathLike[str], data_dir: str | os.PathLike[str],
          interval: str) -> int:
    """Launch ``lab sync --loop --interval <interval>`` in a new session.

    Output goes to daemon.log in ``data_dir``; the new PID is written to
    daemon.pid and returned.
    """
    pid_file = _pid_path(data_dir)
    try:
        existing = read_pid(pid_file)
    except DaemonError:
        existing = None
    if existing is not None and is_running(existing):
        raise DaemonError(f"daemon is already running (pid {existing})")

    try:
        log = open(_log_path(data_dir), "ab")
    except OSError as exc:
        raise DaemonError(f"open log file: {exc}") from exc

    with log:
        try:
            process = subprocess.Popen(
                [os.fspath(lab_binary), "sync", "--loop", "--interval", interval],
                stdin=subprocess.DEVNULL,
                stdout=log,
                stderr=log,
                start_new_session=True,
            )
        except OSError as exc:
            raise DaemonError(f"start daemon: {exc}") from exc

    try:
        write_pid(pid_file, process.pid)
    except OSError as exc:
        process.kill()
        raise DaemonError(f"write PID: {exc}") from exc
    return process.pid


def stop(data_dir: str | os.PathLike[str]) -> None:
    """Send SIGTERM to the running daemon and remove its PID file."""
    pid_file = _pid_path(data_dir)
    try:
        pid = read_pid(pid_file)
    except DaemonError:
        raise DaemonError("daemon is not running (no PID file)") from None

    if not is_running(pid):
        pid_file.unlink(missing_ok=True)
        raise DaemonError("daemon is not running (stale PID file cleaned up)")

    try:
        os.kill(pid, signal.SIGTERM)
    except OSError as exc:
        raise DaemonError(f"send SIGTERM to pid {pid}: {exc}") from exc

    pid_file.unlink(missing_ok=True)


def status(data_dir: str | os.PathLike[str]) -> tuple[bool, int]:
    """Return whether the daemon is running and its PID (0 if unknown)."""
    try:
        pid = read_pid(_pid_path(data_dir))
    except DaemonError:
        return False, 0
    return is_running(pid), pid