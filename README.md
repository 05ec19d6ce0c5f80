# repoforge

repoforge keeps track of many git repositories in one SQLite state
database. It records which repositories you follow, clones and pulls them,
reports their status, prunes the ones you no longer need, scores their
health and checks them against a simple policy.

It is a library: there is no command-line program.

## Installation

```
pip install .
```

There are no third-party dependencies. The sync and status features run
the `git` executable, which must be on your `PATH`.

## Quick start

```python
from pathlib import Path

from repoforge.db import open_db
from repoforge.manage import add, list_repos, remove
from repoforge.status import status_all
from repoforge.sync import SyncOptions, SyncStrategy, sync_all

conn = open_db(Path("~/.local/state/repoforge/state.db").expanduser())
projects = Path("~/projects").expanduser()

add(conn, "alice/proj1", projects)
add(conn, "bob/proj2#develop as p2", projects)

for repo in list_repos(conn, None):
    print(repo)          # "alice/proj1", then "bob/proj2 as p2"

results = sync_all(conn, SyncOptions(strategy=SyncStrategy.REBASE))
for status in status_all(conn):
    print(status.owner, status.name, status.branch, status.is_dirty)

remove(conn, "p2")       # by owner/name, alias or id
```

## State database (`repoforge.db`)

- `open_db(path)` creates the parent directory if needed, opens the
  database in autocommit mode, turns on WAL journaling, foreign keys,
  `synchronous=NORMAL` and a 5 second busy timeout, and applies any pending
  schema migrations.
- `open_memory()` does the same for an in-memory database.
- `run_migrations(conn)` applies pending migrations; running it again does
  nothing. `current_version(conn)` returns the applied schema version
  (currently 3), or 0 when none is recorded.

The schema holds tables for repos, repo tags, runs and run events, sync
results, jobs and job events, plans, failures, health snapshots, a context
cache and an audit log.

## Tracked repos (`repoforge.manage`)

- `add(conn, spec, projects_dir)` parses a spec and returns the new
  `TrackedRepo`. The local path is `projects_dir/owner/name` with `~`
  expanded; the clone URL is `https://<host>/<owner>/<name>.git`.
- `find_repo(conn, key)` looks a repo up by `owner/name`, then by alias,
  then by id.
- `remove(conn, key)` finds and deletes a repo and returns it.
- `delete_repo_cascade(conn, repo_id)` deletes a repo together with its
  sync results, health snapshots and context cache rows, and clears the
  repo reference on jobs and plans, all in one savepoint.
- `list_repos(conn, owner_filter=None)` lists repos ordered by owner and
  name; `owner_filter` matches an owner prefix.
- `import_repos(conn, file_path, projects_dir)` adds one spec per line,
  skipping blank lines and lines starting with `#`, and returns an
  `ImportResult` with `added`, `skipped` (already tracked) and `errors`
  (pairs of line and message).

A spec is `owner/name`, optionally followed by `#branch` and ` as alias`.
Instead of `owner/name` it may also be `host/owner/name`, an `https://`,
`http://`, `ssh://` or `git://` URL, or `user@host:owner/name`; a trailing
`.git` is dropped. The host defaults to `github.com`.

Errors: `InvalidSpecError` (a `ValueError`) for a malformed spec,
`AlreadyTrackedError` (a `ValueError`) when the host, owner and name are
already tracked, and `RepoNotFoundError` (a `LookupError`) for an unknown
key.

`str(repo)` gives `owner/name`, with ` as alias` when an alias is set.

## Syncing (`repoforge.sync`)

`sync_repo(conn, repo, opts, run_id)` clones a repo whose local path has
no `.git` directory, and otherwise runs `git fetch` followed by
`git pull origin <branch>`, where the branch is the checked-out branch,
else the configured branch, else the default branch, else `main`. It
returns a `SyncResult` with the action (`clone`, `fetch`, `pull`,
`updated`, `already_up_to_date`, `would_clone`, `would_pull`,
`skipped_clone` or `skipped_pull`), a status (`success`, `error`,
`dry_run` or `skipped`), the duration in milliseconds, any error message
and the HEAD commit before and after. Git failures are reported in the
result, not raised.

`SyncOptions` fields:

- `strategy`: `SyncStrategy.FF_ONLY` (default), `REBASE` or `MERGE`
- `autostash`: pass `--autostash` to the pull
- `timeout_secs`: time limit for each git clone, fetch and pull (default 30)
- `dry_run`: report what would happen without touching anything
- `clone_only` / `pull_only`: skip pulling existing checkouts, or skip
  cloning missing ones

Clone, fetch and pull outcomes are written to `sync_results` under
`run_id`. Because that table references `runs`, a row is only stored when
a `runs` row with that id exists; otherwise the write is silently skipped.
`sync_all(conn, opts)` syncs every tracked repo under a freshly generated
run id and does not create a `runs` row.

## Status (`repoforge.status`)

`status_repo(conn, repo_id)` returns a `RepoStatus` with the current
branch (falling back to the configured branch), whether the working tree
is dirty, the ahead/behind counts against `origin/<branch>` (0 when that
ref or HEAD is missing), and the start time of the latest run with a
successful sync. A repo without a checkout reports no branch of its own,
clean, 0 and 0. `status_all(conn)` returns the status of every repo.
An unknown id raises `RepoNotFoundError`.

## Pruning (`repoforge.prune`)

- `prune_repo(conn, repo_id)` removes one repo (`RepoNotFoundError` if
  absent).
- `prune_archived(conn)` removes every repo flagged as archived.
- `prune_missing(conn)` removes repos whose local path does not exist.

Each returns `PruneResult` records with the repo id, owner, name and
reason. Dependent rows are handled as by `delete_repo_cascade`, so repos
with sync history can always be pruned.

## Health (`repoforge.queries`)

`score_repo_health(conn, repo_id)` starts from 100 and subtracts 30 if the
repo is archived, 50 if disabled, 5 per failed sync (at most 30) and 3 per
failure counted in the `failures` table during the last day (at most 20),
clamps to 0–100, stores a snapshot and returns a `HealthSnapshot` whose
`health_class` is a `HealthClass`: excellent (90+), healthy (75+),
attention (50+), risky (25+) or critical. `HealthClass.from_score(score)`
applies the same bands. `latest_health(conn, repo_id)` returns the newest
snapshot or `None`, and `score_all_health(conn)` scores every repo.

## Policy (`repoforge.policy_check`)

`check_repo_policy(repo, policy)` returns `PolicyViolation`s for:

- an archived repo (`Severity.WARN`)
- a disabled repo (`Severity.ERROR`)
- a configured branch that differs from the default branch
  (`Severity.WARN`), or a configured branch with no known default branch
  (`Severity.INFO`)
- a visibility other than the required one, when the policy sets
  `visibility` to a string (`Severity.ERROR` if `public` is required,
  `Severity.WARN` otherwise)

`policy` is a mapping of settings, or any object with an `extra` mapping.
`check_all_policies(conn, policy)` checks every tracked repo.

## Change safety helpers

- `repoforge.denylist.Denylist(patterns)` matches repo-relative paths
  (forward slashes) against glob patterns; `*` also crosses `/`, and `**/`
  matches any number of leading directories. `Denylist.default()` uses
  `DEFAULT_DENYLIST`: `.env`, `.env.*`, `*.pem`, `*.key`, `id_rsa`,
  `id_ed25519` and anything under `.git`, `target` or `node_modules`.
  `is_denied(path)`, `filter_denied(paths)` and `patterns()` query it.
- `repoforge.risk.classify(reasons)` turns `RiskReason`s into a
  `RiskLevel`: no reasons is LOW; a CI workflow change, a file deletion, a
  recent similar failure, or two or more reasons is HIGH; anything else is
  MEDIUM. `to_json(level, reasons)` returns
  `{"class": "low|medium|high", "reasons": [...]}`.

## What it does not do

- There is no command-line interface and no configuration file handling;
  you open the database and pass paths yourself.
- It does not stage, scan or commit changes; the denylist and risk helpers
  only answer questions about paths and reasons.
- `mark_inbox_done`, `purge_inbox_dismissals` and `compute_inbox` in
  `repoforge.queries` use an `inbox_dismissed` table that the schema does
  not provide (migration 3 drops it), so on a database opened with
  `open_db` or `open_memory` they raise `sqlite3.OperationalError`.
- It does not talk to any hosting service: visibility and default branch
  are only what is stored in the database.

## Running the tests

```
pip install ".[test]"
pytest
```