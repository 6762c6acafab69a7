"""Installing the sync daemon as a macOS launchd agent."""

from __future__ import annotations

import plistlib
import subprocess
import sys
from pathlib import Path

LABEL = "com.lab.sync"


class LaunchdError(Exception):
    """The launchd agent could not be installed or removed."""


def plist_path() -> Path:
    """Return the path of the agent's property list."""
    return Path.home() / "Library" / "LaunchAgents" / f"{LABEL}.plist"


def generate_plist(binary: str, interval: str) -> str:
    """Render the launchd property list for ``binary`` and ``interval``."""
    log_file = f"{Path.home() / '.config' / 'lab'}/daemon.log"
    agent = {
        "Label": LABEL,
        "ProgramArguments": [str(binary), "sync", "--loop", "--interval", interval],
        "RunAtLoad": True,
        "KeepAlive": True,
        "StandardOutPath": log_file,
        "StandardErrorPath": log_file,
    }
    return plistlib.dumps(agent, sort_keys=False).decode("utf-8")


def _require_macos(action: str) -> None:
    if sys.platform != "darwin":
        raise LaunchdError(f"launchd {action} is only supported on macOS")


def _launchctl(action: str, target: Path) -> None:
    try:
        result = subprocess.run(
            ["launchctl", action, str(target)],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
    except OSError as exc:
        raise LaunchdError(f"launchctl {action}: {exc}") from exc
    if result.returncode != 0:
        raise LaunchdError(
            f"launchctl {action}: exit status {result.returncode}\n{result.stdout}"
        )


def install(binary: str, interval: str) -> None:
    """Write the agent's property list and load it with launchctl."""
    _require_macos("install")
    target = plist_path()
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise LaunchdError(f"create LaunchAgents dir: {exc}") from exc
    try:
        target.write_text(generate_plist(binary, interval), encoding="utf-8")
    except OSError as exc:
        raise LaunchdError(f"write plist: {exc}") from exc

    _launchctl("load", target)
    print(f"Installed and loaded launchd agent: {target}")


def uninstall() -> None:
    """Unload the agent and remove its property list."""
    _require_macos("uninstall")
    target = plist_path()
    _launchctl("unload", target)
    try:
        target.unlink(missing_ok=True)
    except OSError as exc:
        raise LaunchdError(f"remove plist: {exc}") from exc
    print(f"Uninstalled launchd agent: {target}")