# lab

`lab` registers local clones of GitLab repositories and keeps data about their
merge requests in a SQLite database under `~/.config/lab/`. It talks to GitLab
through the `glab` command-line client and to your clones through `git`.

The package has two parts: a `lab` command for registering repositories,
storing settings and managing a background process, and a library
(`lab.glab`, `lab.db`, `lab.git`, `lab.claude`, `lab.notify`, `lab.config`,
`lab.daemon`, `lab.launchd`) that fetches merge request data and stores it.

## Requirements

- Python 3.10 or later
- `git` on your `PATH`; `glab` on your `PATH` for `lab add` and for `lab.glab.Client`
- macOS with `launchctl` for `lab --install`, `lab daemon install` and `lab daemon uninstall`
- Optional: `terminal-notifier`, used by `lab.notify.new_notifier()`
- Optional: `claude`, required by `lab.claude.claude_command()`

## Installation

```
pip install .
```

## Commands

Register a local clone. The directory must contain `.git` and have an
`origin` remote; the repository is named after the directory:

```
lab add path/to/repo
```

List registered repositories, ordered by name, with their last sync time
(or `never`):

```
lab list
```

Unregister a repository (an error if it is not registered):

```
lab remove path/to/repo
```

Store and read values in the database's key/value configuration table.
`get` prints `<key> is not set` when there is no value:

```
lab config set username alice
lab config get username
```

Manage a background process. `start` launches `lab sync --loop --interval
<interval>` in a new session, with output appended to `daemon.log` and its PID
written to `daemon.pid`; the interval is the `sync_interval` value from
`lab config`, or `5m`. `stop` sends it SIGTERM; `status` reports whether it is
running:

```
lab daemon start
lab daemon status
lab daemon stop
```

On macOS the same command line can be installed as a launchd agent
(`~/Library/LaunchAgents/com.lab.sync.plist`, label `com.lab.sync`), run at
load and kept alive. On other systems these commands fail with an error:

```
lab daemon install
lab daemon uninstall
```

`lab --install` writes `~/.config/lab/lab.json` when it is missing or
malformed (seeding `username` and `sync_interval` from `lab config` values when
they are set), then installs the launchd agent with the interval from that
file.

Every command prints `Error: ...` to standard error and exits with status 1
when it fails.

## Configuration file

`~/.config/lab/lab.json` is read with `lab.config.load()` and written with
`lab.config.save()` (atomically, through a temporary file). Fields left out
keep their defaults; a malformed file raises `lab.config.ConfigError`, whose
`config` attribute holds the defaults:

```json
{
  "sync_interval": "10m",
  "username": "alice",
  "notifications": {
    "new_comment": true,
    "pipeline_failed": true,
    "approved": true,
    "mr_merged": true,
    "new_review_request": true,
    "rereview_request": true
  }
}
```

`lab.cli.load_effective_config()` fills an empty `username` or
`sync_interval` from the values stored with `lab config set`.

## Library

- `lab.db.database.Database.open(data_dir)` opens or creates `lab.db` (WAL
  mode, foreign keys on) and migrates its schema. It is a context manager and
  offers methods for repositories (`add_repo`, `list_repos`, `remove_repo`,
  `get_repo`, ...), merge requests (`upsert_mr`, `get_mr`, `list_mrs` with an
  `MRFilter`, `set_mr_labels`, `all_labels`, `delete_stale_mrs`, ...),
  reviewers (`set_mr_reviewers`, `get_mr_reviewers`), comments and threads
  (`upsert_comment`, `list_threads`, `mark_thread_read`,
  `unread_thread_count`, ...) and key/value settings. Failures raise
  `DatabaseError`, `NotFoundError` or `DuplicateError` from `lab.db.models`.
- `lab.glab.Client` lists merge requests and discussions, fetches merge
  request details (pipeline, state, reviewers, approval) and file contents, and
  reads a clone's `origin` URL. `lab.glab.extract_snippet()` returns numbered
  lines around a line of a file.
- `lab.git` checks for a clean worktree, reads the current branch and checks
  out a branch.
- `lab.claude.build_prompt()` turns a review thread into a prompt;
  `write_prompt_to_temp_file()` saves it; `claude_command()` returns the
  arguments for running `claude` on it in the repository.
- `lab.notify.new_notifier()` returns a notifier that uses `terminal-notifier`
  when it is installed and otherwise does nothing.

## What lab does not do

- The `lab` command has no `sync` subcommand. Nothing in the package fetches
  merge requests from GitLab into the database on its own, so the process
  started by `lab daemon start` and the launchd agent, which both run
  `lab sync --loop`, do not sync anything with this package alone.
- There is no interactive screen for browsing merge requests or threads.
- The `notifications` settings in `lab.json` are stored and loaded, but no
  part of the package decides when to send a notification.

## Files

Everything lives in `~/.config/lab/`:

- `lab.db` – the SQLite database
- `lab.json` – user configuration
- `daemon.pid` – PID of the background process
- `daemon.log` – output of the background process