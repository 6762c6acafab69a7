"""Reading and writing the lab.json user configuration file.

The file lives in the lab data directory. Fields missing from the file keep
the values from :func:`default`.
"""

from __future__ import annotations

import contextlib
import dataclasses
import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

FILENAME = "lab.json"
DEFAULT_SYNC_INTERVAL = "10m"

_T = TypeVar("_T")


class ConfigError(Exception):
    """lab.json could not be read, parsed or written.

    ``config`` holds the default configuration so callers can keep running.
    """

    def __init__(self, message: str, config: Config | None = None) -> None:
        super().__init__(message)
        self.config = config if config is not None else default()


@dataclass
class Notifications:
    """Which merge request changes produce a desktop notification."""

    new_comment: bool = True
    pipeline_failed: bool = True
    approved: bool = True
    mr_merged: bool = True
    new_review_request: bool = True
    rereview_request: bool = True


@dataclass
class Config:
    """The user-facing configuration stored in lab.json."""

    sync_interval: str = DEFAULT_SYNC_INTERVAL
    username: str = ""
    notifications: Notifications = field(default_factory=Notifications)

    def to_dict(self) -> dict[str, Any]:
        """Return the configuration as a JSON-ready dictionary."""
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> Config:
        """Build a configuration by laying ``data`` over the defaults.

        Keys that are absent or null keep their default value; unknown keys
        are ignored. A value of the wrong type raises :class:`ConfigError`.
        """
        return _overlay(cls(), data, "config")


def _overlay(obj: _T, data: Any, context: str) -> _T:
    if data is None:
        return obj
    if not isinstance(data, dict):
        raise ConfigError(
            f"{context}: expected an object, got {type(data).__name__}"
        )
    changes: dict[str, Any] = {}
    for spec in dataclasses.fields(obj):  # type: ignore[arg-type]
        value = data.get(spec.name)
        if value is None:
            continue
        current = getattr(obj, spec.name)
        where = f"{context}.{spec.name}"
        if dataclasses.is_dataclass(current):
            changes[spec.name] = _overlay(current, value, where)
        elif isinstance(current, bool):
            if not isinstance(value, bool):
                raise ConfigError(f"{where}: expected a boolean, got {value!r}")
            changes[spec.name] = value
        elif isinstance(current, str):
            if not isinstance(value, str):
                raise ConfigError(f"{where}: expected a string, got {value!r}")
            changes[spec.name] = value
    return dataclasses.replace(obj, **changes)  # type: ignore[type-var]


def default() -> Config:
    """Return the default configuration: 10 minute interval, every trigger on."""
    return Config()


def path(data_dir: str | os.PathLike[str]) -> Path:
    """Return the path of lab.json inside ``data_dir``."""
    return Path(data_dir) / FILENAME


def load(data_dir: str | os.PathLike[str]) -> Config:
    """Read lab.json from ``data_dir``.

    A missing file yields the defaults. An unreadable or malformed file raises
    :class:`ConfigError` whose ``config`` attribute holds the defaults.
    """
    target = path(data_dir)
    try:
        raw = target.read_bytes()
    except FileNotFoundError:
        return default()
    except OSError as exc:
        raise ConfigError(f"read {target}: {exc}") from exc

    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise ConfigError(f"parse {target}: {exc}") from exc
    try:
        cfg = Config.from_dict(data)
    except ConfigError as exc:
        raise ConfigError(f"parse {target}: {exc}") from exc

    if not cfg.sync_interval:
        cfg = dataclasses.replace(cfg, sync_interval=DEFAULT_SYNC_INTERVAL)
    return cfg


def save(data_dir: str | os.PathLike[str], cfg: Config) -> None:
    """Write ``cfg`` to lab.json in ``data_dir``, replacing it atomically."""
    directory = Path(data_dir)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigError(f"mkdir {directory}: {exc}") from exc

    payload = json.dumps(cfg.to_dict(), indent=2, ensure_ascii=False) + "\n"
    target = path(directory)
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=".lab.json.", dir=directory)
    except OSError as exc:
        raise ConfigError(f"create temp: {exc}") from exc
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
        os.replace(tmp_name, target)
    except OSError as exc:
        raise ConfigError(f"write {target}: {exc}") from exc
    finally:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)