"""Prune tracked repos that were archived, removed, or lost on disk."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path

from repoforge.manage import RepoNotFoundError, delete_repo_cascade

__all__ = ["PruneResult", "prune_repo", "prune_archived", "prune_missing"]


@dataclass(frozen=True)
class PruneResult:
    """A repo that was removed from tracking, and why."""

    repo_id: str
    owner: str
    name: str
    removed: bool
    reason: str


def prune_repo(conn: sqlite3.Connection, repo_id: str) -> PruneResult:
    """Remove a single repo from tracking by id."""
    row = conn.execute(
        "SELECT owner, name FROM repos WHERE id = ?", (repo_id,)
    ).fetchone()
    if row is None:
        raise RepoNotFoundError(repo_id)
    owner, name = row
    delete_repo_cascade(conn, repo_id)
    return PruneResult(
        repo_id=repo_id, owner=owner, name=name, removed=True, reason="manual prune"
    )


def prune_archived(conn: sqlite3.Connection) -> list[PruneResult]:
    """Remove every archived repo from tracking."""
    rows = conn.execute(
        "SELECT id, owner, name FROM repos WHERE archived = 1"
    ).fetchall()
    results: list[PruneResult] = []
    for repo_id, owner, name in rows:
        delete_repo_cascade(conn, repo_id)
        results.append(
            PruneResult(
                repo_id=repo_id, owner=owner, name=name, removed=True, reason="archived"
            )
        )
    return results


def prune_missing(conn: sqlite3.Connection) -> list[PruneResult]:
    """Remove repos whose local path no longer exists on disk."""
    rows = conn.execute("SELECT id, owner, name, local_path FROM repos").fetchall()
    results: list[PruneResult] = []
    for repo_id, owner, name, local_path in rows:
        if Path(local_path).exists():
            continue
        delete_repo_cascade(conn, repo_id)
        results.append(
            PruneResult(
                repo_id=repo_id,
                owner=owner,
                name=name,
                removed=True,
                reason=f"local path missing: {local_path}",
            )
        )
    return results