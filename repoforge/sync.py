"""Sync engine: clone missing repos and fetch/pull existing ones."""

from __future__ import annotations

import sqlite3
import subprocess
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from repoforge.manage import TrackedRepo, list_repos
from repoforge.status import _current_branch, _git, _GitError, _head_oid

__all__ = ["SyncStrategy", "SyncOptions", "SyncResult", "sync_repo", "sync_all"]


class SyncStrategy(str, Enum):
    """How an existing checkout is updated."""

    FF_ONLY = "ff-only"
    REBASE = "rebase"
    MERGE = "merge"

    def __str__(self) -> str:
        return self.value


_PULL_FLAGS = {
    SyncStrategy.FF_ONLY: "--ff-only",
    SyncStrategy.REBASE: "--rebase",
    SyncStrategy.MERGE: "--no-rebase",
}


@dataclass(frozen=True)
class SyncOptions:
    """Options for a sync operation."""

    strategy: SyncStrategy = SyncStrategy.FF_ONLY
    autostash: bool = False
    timeout_secs: int = 30
    dry_run: bool = False
    clone_only: bool = False
    pull_only: bool = False


@dataclass(frozen=True)
class SyncResult:
    """Outcome of syncing a single repo."""

    repo_id: str
    action: str
    status: str
    duration_ms: int
    error: str | None = None
    pre_oid: str | None = None
    post_oid: str | None = None


_FAILURES = (_GitError, subprocess.TimeoutExpired, OSError)


def _safe_head(path: Path) -> str | None:
    try:
        return _head_oid(path)
    except _FAILURES:
        return None


def _record(conn: sqlite3.Connection, run_id: str, result: SyncResult) -> None:
    try:
        conn.execute(
            "INSERT INTO sync_results "
            "(run_id, repo_id, action, status, duration_ms, error, pre_oid, post_oid) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                run_id,
                result.repo_id,
                result.action,
                result.status,
                result.duration_ms,
                result.error,
                result.pre_oid,
                result.post_oid,
            ),
        )
    except sqlite3.Error:
        pass


def _clone(repo: TrackedRepo, local: Path, opts: SyncOptions) -> None:
    local.parent.mkdir(parents=True, exist_ok=True)
    args = ["clone", "--quiet"]
    branch = repo.branch or repo.default_branch
    if branch:
        args += ["--branch", branch]
    args += [repo.clone_url, str(local)]
    _git(args, timeout=opts.timeout_secs)


def _pull(local: Path, branch: str, opts: SyncOptions) -> None:
    args = ["pull", "--quiet", _PULL_FLAGS[opts.strategy]]
    if opts.autostash:
        args.append("--autostash")
    args += ["origin", branch]
    _git(args, cwd=local, timeout=opts.timeout_secs)


def sync_repo(
    conn: sqlite3.Connection, repo: TrackedRepo, opts: SyncOptions, run_id: str
) -> SyncResult:
    """Clone or update one repo, recording the outcome under ``run_id``."""
    start = time.monotonic()
    local = Path(repo.local_path)
    has_checkout = (local / ".git").exists()
    pre_oid = _safe_head(local) if has_checkout else None

    def result(
        action: str,
        status: str,
        *,
        error: str | None = None,
        post_oid: str | None = None,
        record: bool = True,
    ) -> SyncResult:
        outcome = SyncResult(
            repo_id=repo.id,
            action=action,
            status=status,
            duration_ms=int((time.monotonic() - start) * 1000),
            error=error,
            pre_oid=pre_oid,
            post_oid=post_oid,
        )
        if record:
            _record(conn, run_id, outcome)
        return outcome

    if opts.dry_run:
        action = "would_pull" if has_checkout else "would_clone"
        return result(action, "dry_run", post_oid=pre_oid, record=False)

    if not has_checkout:
        if opts.pull_only:
            return result("skipped_clone", "skipped", record=False)
        try:
            _clone(repo, local, opts)
        except _FAILURES as exc:
            return result("clone", "error", error=str(exc))
        return result("clone", "success", post_oid=_safe_head(local))

    if opts.clone_only:
        return result("skipped_pull", "skipped", post_oid=pre_oid, record=False)

    try:
        _git(["fetch", "--quiet"], cwd=local, timeout=opts.timeout_secs)
    except _FAILURES as exc:
        return result("fetch", "error", error=str(exc), post_oid=pre_oid)

    try:
        current = _current_branch(local)
    except _FAILURES:
        current = None
    branch = current or repo.branch or repo.default_branch or "main"

    try:
        _pull(local, branch, opts)
    except _FAILURES as exc:
        return result("pull", "error", error=str(exc), post_oid=_safe_head(local))

    post_oid = _safe_head(local)
    action = "already_up_to_date" if post_oid == pre_oid else "updated"
    return result(action, "success", post_oid=post_oid)


def sync_all(conn: sqlite3.Connection, opts: SyncOptions) -> list[SyncResult]:
    """Sync every tracked repo under a fresh run id."""
    run_id = str(uuid.uuid4())
    return [sync_repo(conn, repo, opts, run_id) for repo in list_repos(conn, None)]