"""The lab command line interface."""

from __future__ import annotations

import argparse
import dataclasses
import json
import os
import shutil
import sys
from collections.abc import Sequence
from pathlib import Path

from lab import config, daemon, launchd
from lab.config import Config, ConfigError
from lab.daemon import DaemonError
from lab.db.database import Database
from lab.db.models import DatabaseError, DuplicateError
from lab.git import GitError
from lab.glab import Client, GlabError
from lab.launchd import LaunchdError

DEFAULT_DAEMON_INTERVAL = "5m"


class _CommandError(Exception):
    """A command could not complete."""


_HANDLED_ERRORS = (
    _CommandError,
    ConfigError,
    DaemonError,
    LaunchdError,
    DatabaseError,
    GlabError,
    GitError,
    OSError,
)


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def data_dir() -> Path:
    """Return the lab data directory (~/.config/lab), creating it if needed."""
    directory = Path.home() / ".config" / "lab"
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def open_db() -> Database:
    """Open the lab database in the data directory."""
    return Database.open(data_dir())


def lab_binary_path() -> str:
    """Return the absolute, symlink-resolved path of the running lab command."""
    if sys.argv and sys.argv[0]:
        candidate = Path(sys.argv[0])
        if candidate.is_file():
            return str(candidate.resolve())
    found = shutil.which("lab")
    if found is not None:
        return str(Path(found).resolve())
    raise FileNotFoundError("lab executable not found")


def _legacy_value(database: Database, key: str) -> str:
    try:
        return database.get_config(key)
    except DatabaseError:
        return ""


def load_effective_config(database: Database) -> tuple[Config, ConfigError | None]:
    """Return lab.json's configuration with legacy database fallbacks.

    The second item is the error met while reading a malformed lab.json; the
    configuration is then built from the defaults and is still usable.
    """
    load_error: ConfigError | None = None
    try:
        cfg = config.load(data_dir())
    except ConfigError as exc:
        cfg, load_error = exc.config, exc

    if not cfg.username:
        cfg = dataclasses.replace(cfg, username=_legacy_value(database, "username"))
    if not cfg.sync_interval:
        interval = _legacy_value(database, "sync_interval")
        if interval:
            cfg = dataclasses.replace(cfg, sync_interval=interval)
    return cfg, load_error


def run_install() -> None:
    """Ensure lab.json exists and is valid, then install the launchd agent."""
    with open_db() as database:
        directory = data_dir()
        target = config.path(directory)
        file_missing = not target.exists()
        load_error: ConfigError | None = None
        try:
            cfg = config.load(directory)
        except ConfigError as exc:
            cfg, load_error = exc.config, exc

        if file_missing or load_error is not None:
            if not cfg.username:
                username = _legacy_value(database, "username")
                if username:
                    cfg = dataclasses.replace(cfg, username=username)
            interval = _legacy_value(database, "sync_interval")
            if interval:
                cfg = dataclasses.replace(cfg, sync_interval=interval)
            try:
                config.save(directory, cfg)
            except ConfigError as exc:
                raise _CommandError(f"write lab.json: {exc}") from exc
            if file_missing:
                print(f"Created {target}")
            else:
                print(f"Overwrote malformed {target} with defaults ({load_error})")

    try:
        binary = lab_binary_path()
    except OSError as exc:
        raise _CommandError(f"find lab binary: {exc}") from exc

    launchd.install(binary, cfg.sync_interval)

    print(f"Sync interval set to {cfg.sync_interval}.")
    print("Install terminal-notifier (brew install terminal-notifier) "
          "to receive desktop notifications.")
    print(f"Edit {target} to customise which changes trigger notifications.")


def _cmd_add(args: argparse.Namespace) -> None:
    client = Client()
    try:
        client.check_installed()
    except GlabError as exc:
        raise _CommandError(f"glab is required: {exc}") from exc

    abs_path = os.path.abspath(args.local_path)
    if not os.path.exists(os.path.join(abs_path, ".git")):
        raise _CommandError(
            f"{_quote(abs_path)} is not a git repository (no .git directory found)"
        )

    try:
        gitlab_url = client.get_gitlab_url(abs_path)
    except GlabError as exc:
        raise _CommandError(f"get GitLab URL: {exc}") from exc

    with open_db() as database:
        name = os.path.basename(abs_path)
        try:
            repo = database.add_repo(abs_path, gitlab_url, name)
        except DuplicateError as exc:
            raise _CommandError(f"repo {_quote(abs_path)} is already registered") from exc

    print(f"Added repo {_quote(repo.name)} (id={repo.id}, url={repo.gitlab_url})")


def _cmd_config_set(args: argparse.Namespace) -> None:
    with open_db() as database:
        database.set_config(args.key, args.value)
    print(f"Set {args.key} = {args.value}")


def _cmd_config_get(args: argparse.Namespace) -> None:
    with open_db() as database:
        value = database.get_config(args.key)
    print(value if value else f"{args.key} is not set")


def _daemon_interval(database: Database) -> str:
    return database.get_config("sync_interval") or DEFAULT_DAEMON_INTERVAL


def _binary_or_fail() -> str:
    try:
        return lab_binary_path()
    except OSError as exc:
        raise _CommandError(f"find lab binary: {exc}") from exc


def _cmd_daemon_start(args: argparse.Namespace) -> None:
    with open_db() as database:
        interval = _daemon_interval(database)
    pid = daemon.start(_binary_or_fail(), data_dir(), interval)
    print(f"Daemon started (pid {pid})")


def _cmd_daemon_stop(args: argparse.Namespace) -> None:
    daemon.stop(data_dir())
    print("Daemon stopped.")


def _cmd_daemon_status(args: argparse.Namespace) -> None:
    running, pid = daemon.status(data_dir())
    if running:
        print(f"Daemon is running (pid {pid})")
    else:
        print("Daemon is not running.")


def _cmd_daemon_install(args: argparse.Namespace) -> None:
    with open_db() as database:
        interval = _daemon_interval(database)
    launchd.install(_binary_or_fail(), interval)


def _cmd_daemon_uninstall(args: argparse.Namespace) -> None:
    launchd.uninstall()


def _cmd_list(args: argparse.Namespace) -> None:
    with open_db() as database:
        repos = database.list_repos()
    if not repos:
        print("No repos registered.")
        return
    for repo in repos:
        last_sync = (
            repo.last_synced_at.strftime("%Y-%m-%d %H:%M:%S")
            if repo.last_synced_at is not None
            else "never"
        )
        print(f"{repo.name:<30}  {repo.path}  (last sync: {last_sync})")


def _cmd_remove(args: argparse.Namespace) -> None:
    abs_path = os.path.abspath(args.local_path)
    with open_db() as database:
        database.remove_repo(abs_path)
    print(f"Removed repo {_quote(abs_path)}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lab",
        description="A tool for managing GitLab merge requests and dispatching "
                    "comments to Claude Code.",
    )
    parser.add_argument(
        "--install", action="store_true",
        help="Install the background sync daemon (syncs every 10 minutes)",
    )
    commands = parser.add_subparsers(dest="command", metavar="<command>")

    add = commands.add_parser("add", help="Register a local GitLab repository")
    add.add_argument("local_path", metavar="local-path")
    add.set_defaults(handler=_cmd_add)

    cfg = commands.add_parser("config", help="Manage lab configuration")
    cfg_commands = cfg.add_subparsers(dest="config_command", metavar="<command>",
                                      required=True)
    cfg_set = cfg_commands.add_parser("set", help="Set a configuration value")
    cfg_set.add_argument("key")
    cfg_set.add_argument("value")
    cfg_set.set_defaults(handler=_cmd_config_set)
    cfg_get = cfg_commands.add_parser("get", help="Get a configuration value")
    cfg_get.add_argument("key")
    cfg_get.set_defaults(handler=_cmd_config_get)

    dmn = commands.add_parser("daemon", help="Manage the lab background sync daemon")
    dmn_commands = dmn.add_subparsers(dest="daemon_command", metavar="<command>",
                                      required=True)
    for name, handler, text in (
        ("start", _cmd_daemon_start, "Start the background sync daemon"),
        ("stop", _cmd_daemon_stop, "Stop the background sync daemon"),
        ("status", _cmd_daemon_status, "Show the status of the background sync daemon"),
        ("install", _cmd_daemon_install,
         "Install the lab sync launchd agent (macOS only)"),
        ("uninstall", _cmd_daemon_uninstall,
         "Uninstall the lab sync launchd agent (macOS only)"),
    ):
        dmn_commands.add_parser(name, help=text).set_defaults(handler=handler)

    commands.add_parser("list", help="List all registered repositories").set_defaults(
        handler=_cmd_list
    )

    remove = commands.add_parser("remove", help="Unregister a local GitLab repository")
    remove.add_argument("local_path", metavar="local-path")
    remove.set_defaults(handler=_cmd_remove)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the lab command line and return its exit status."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        if args.install:
            run_install()
            return 0
        handler = getattr(args, "handler", None)
        if handler is None:
            parser.print_help()
            return 0
        handler(args)
    except _HANDLED_ERRORS as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())