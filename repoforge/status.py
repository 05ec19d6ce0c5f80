"""Status of tracked repos: branch, dirtiness, ahead/behind and last sync."""

from __future__ import annotations

import os
import sqlite3
import subprocess
from dataclasses import dataclass
from pathlib import Path

from repoforge.manage import RepoNotFoundError

__all__ = ["RepoStatus", "status_repo", "status_all"]


class _GitError(RuntimeError):
    """A git command exited with a non-zero status."""

    def __init__(self, args: tuple[str, ...], stderr: str) -> None:
        detail = stderr or "no output"
        super().__init__(f"git {' '.join(args)} failed: {detail}")
        self.stderr = stderr


def _git_env() -> dict[str, str]:
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    return env


def _git_run(
    args: tuple[str, ...] | list[str],
    cwd: Path | None = None,
    timeout: float | None = None,
) -> subprocess.CompletedProcess[str]:
    command = ["git"]
    if cwd is not None:
        command += ["-C", str(cwd)]
    command += list(args)
    return subprocess.run(
        command,
        capture_output=True,
        text=True,
        timeout=timeout,
        env=_git_env(),
    )


def _git(
    args: tuple[str, ...] | list[str],
    cwd: Path | None = None,
    timeout: float | None = None,
) -> str:
    proc = _git_run(args, cwd=cwd, timeout=timeout)
    if proc.returncode != 0:
        raise _GitError(tuple(args), proc.stderr.strip())
    return proc.stdout


def _current_branch(path: Path) -> str | None:
    """Return the checked-out branch name, or None on a detached HEAD."""
    proc = _git_run(["symbolic-ref", "--quiet", "--short", "HEAD"], cwd=path)
    if proc.returncode != 0:
        return None
    branch = proc.stdout.strip()
    return branch or None


def _head_oid(path: Path) -> str | None:
    """Return the commit id of HEAD, or None if there is no commit yet."""
    proc = _git_run(["rev-parse", "--verify", "--quiet", "HEAD"], cwd=path)
    if proc.returncode != 0:
        return None
    oid = proc.stdout.strip()
    return oid or None


def _is_dirty(path: Path) -> bool:
    return bool(_git(["status", "--porcelain"], cwd=path).strip())


def _ahead_behind(path: Path, upstream: str) -> tuple[int, int]:
    """Count commits HEAD is ahead of and behind ``upstream``; (0, 0) if either is missing."""
    if _head_oid(path) is None:
        return 0, 0
    check = _git_run(
        ["rev-parse", "--verify", "--quiet", f"{upstream}^{{commit}}"], cwd=path
    )
    if check.returncode != 0:
        return 0, 0
    out = _git(["rev-list", "--left-right", "--count", f"HEAD...{upstream}"], cwd=path)
    ahead, behind = out.split()
    return int(ahead), int(behind)


@dataclass(frozen=True)
class RepoStatus:
    """Status of a tracked repository."""

    repo_id: str
    owner: str
    name: str
    branch: str | None
    is_dirty: bool
    ahead: int
    behind: int
    last_synced_at: int | None


def _last_synced_at(conn: sqlite3.Connection, repo_id: str) -> int | None:
    try:
        row = conn.execute(
            "SELECT MAX(r.started_at) FROM sync_results sr "
            "JOIN runs r ON sr.run_id = r.id "
            "WHERE sr.repo_id = ? AND sr.status = 'success'",
            (repo_id,),
        ).fetchone()
    except sqlite3.Error:
        return None
    if row is None or row[0] is None:
        return None
    return int(row[0])


def status_repo(conn: sqlite3.Connection, repo_id: str) -> RepoStatus:
    """Return the status of one tracked repo, inspecting its checkout on disk."""
    row = conn.execute(
        "SELECT owner, name, branch, local_path, default_branch FROM repos WHERE id = ?",
        (repo_id,),
    ).fetchone()
    if row is None:
        raise RepoNotFoundError(repo_id)
    owner, name, tracked_branch, local_path, default_branch = row
    path = Path(local_path)

    branch: str | None = None
    is_dirty = False
    ahead = behind = 0
    if (path / ".git").exists():
        branch = _current_branch(path)
        is_dirty = _is_dirty(path)
        upstream_branch = branch or tracked_branch or default_branch
        if upstream_branch:
            ahead, behind = _ahead_behind(path, f"origin/{upstream_branch}")

    return RepoStatus(
        repo_id=repo_id,
        owner=owner,
        name=name,
        branch=branch or tracked_branch,
        is_dirty=is_dirty,
        ahead=ahead,
        behind=behind,
        last_synced_at=_last_synced_at(conn, repo_id),
    )


def status_all(conn: sqlite3.Connection) -> list[RepoStatus]:
    """Return the status of every tracked repo, ordered by owner and name."""
    ids = [
        row[0]
        for row in conn.execute("SELECT id FROM repos ORDER BY owner, name").fetchall()
    ]
    return [status_repo(conn, repo_id) for repo_id in ids]