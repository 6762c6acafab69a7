"""Desktop notifications through the terminal-notifier command.

When terminal-notifier is not installed, notifications are dropped.
"""

from __future__ import annotations

import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass

GROUP = "com.lab.sync"


class Notifier(ABC):
    """Something that can show a desktop notification."""

    @abstractmethod
    def notify(self, title: str, message: str, open_url: str = "") -> None:
        """Show a notification; ``open_url`` is opened when it is clicked."""


@dataclass
class TerminalNotifier(Notifier):
    """Sends notifications with the terminal-notifier binary at ``bin``."""

    bin: str

    def notify(self, title: str, message: str, open_url: str = "") -> None:
        """Run terminal-notifier; raise CalledProcessError if it fails."""
        args = [self.bin, "-title", title, "-message", message, "-group", GROUP]
        if open_url:
            args += ["-open", open_url]
        subprocess.run(args, check=True)


class NoopNotifier(Notifier):
    """Discards every notification."""

    def notify(self, title: str, message: str, open_url: str = "") -> None:
        """Do nothing."""
        return None


def new_notifier() -> Notifier:
    """Return a terminal-notifier backed notifier if available, else a no-op one."""
    found = shutil.which("terminal-notifier")
    if found is None:
        return NoopNotifier()
    return TerminalNotifier(bin=found)