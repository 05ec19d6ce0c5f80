"""Typed queries over the state database: repo health scoring and inbox."""

from __future__ import annotations

import json
import sqlite3
import time
import uuid
from dataclasses import dataclass
from enum import Enum

__all__ = [
    "HealthClass",
    "HealthSnapshot",
    "InboxItem",
    "score_repo_health",
    "latest_health",
    "score_all_health",
    "mark_inbox_done",
    "purge_inbox_dismissals",
    "compute_inbox",
]

_DAY_SECS = 86400


def _now_secs() -> int:
    return int(time.time())


class HealthClass(str, Enum):
    """Classification of a 0-100 health score."""

    EXCELLENT = "excellent"  # 90-100
    HEALTHY = "healthy"  # 75-89
    ATTENTION = "attention"  # 50-74
    RISKY = "risky"  # 25-49
    CRITICAL = "critical"  # 0-24

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_score(cls, score: int) -> HealthClass:
        """Map a numeric score to its class."""
        if score >= 90:
            return cls.EXCELLENT
        if score >= 75:
            return cls.HEALTHY
        if score >= 50:
            return cls.ATTENTION
        if score >= 25:
            return cls.RISKY
        return cls.CRITICAL

    @classmethod
    def _from_stored(cls, text: str) -> HealthClass:
        try:
            return cls(text)
        except ValueError:
            return cls.CRITICAL


@dataclass(frozen=True)
class HealthSnapshot:
    """A recorded health score for a repo."""

    id: str
    repo_id: str
    ts: int
    score: int
    health_class: HealthClass
    details_json: str


@dataclass(frozen=True)
class InboxItem:
    """A repo that needs attention, with a priority and reasons."""

    repo_id: str
    owner: str
    name: str
    priority: int
    reason: str


def _scalar(conn: sqlite3.Connection, sql: str, params: tuple) -> int:
    try:
        row = conn.execute(sql, params).fetchone()
    except sqlite3.Error:
        return 0
    if row is None or row[0] is None:
        return 0
    return int(row[0])


def score_repo_health(conn: sqlite3.Connection, repo_id: str) -> HealthSnapshot:
    """Compute a health score for a repo and store it as a snapshot."""
    now = _now_secs()
    score = 100

    archived = _scalar(conn, "SELECT archived FROM repos WHERE id = ?", (repo_id,)) != 0
    if archived:
        score -= 30

    disabled = _scalar(conn, "SELECT disabled FROM repos WHERE id = ?", (repo_id,)) != 0
    if disabled:
        score -= 50

    failed_syncs = _scalar(
        conn,
        "SELECT COUNT(*) FROM sync_results WHERE repo_id = ? AND status = 'error'",
        (repo_id,),
    )
    score -= min(failed_syncs * 5, 30)

    recent_failures = _scalar(
        conn,
        "SELECT COALESCE(SUM(count), 0) FROM failures WHERE last_seen_at > ?",
        (now - _DAY_SECS,),
    )
    score -= min(recent_failures * 3, 20)

    score = max(0, min(100, score))
    health_class = HealthClass.from_score(score)

    snapshot_id = str(uuid.uuid4())
    details = json.dumps(
        {
            "archived": archived,
            "disabled": disabled,
            "failed_syncs": failed_syncs,
            "recent_failures": recent_failures,
        }
    )
    conn.execute(
        "INSERT INTO repo_health_snapshots "
        "(id, repo_id, ts, score, class, details_json) VALUES (?, ?, ?, ?, ?, ?)",
        (snapshot_id, repo_id, now, score, health_class.value, details),
    )
    return HealthSnapshot(
        id=snapshot_id,
        repo_id=repo_id,
        ts=now,
        score=score,
        health_class=health_class,
        details_json=details,
    )


def latest_health(conn: sqlite3.Connection, repo_id: str) -> HealthSnapshot | None:
    """Return the most recent health snapshot for a repo, or None."""
    try:
        row = conn.execute(
            "SELECT id, repo_id, ts, score, class, details_json "
            "FROM repo_health_snapshots WHERE repo_id = ? "
            "ORDER BY ts DESC, rowid DESC LIMIT 1",
            (repo_id,),
        ).fetchone()
    except sqlite3.Error:
        return None
    if row is None:
        return None
    snap_id, snap_repo, ts, score, class_text, details = row
    return HealthSnapshot(
        id=snap_id,
        repo_id=snap_repo,
        ts=ts,
        score=score,
        health_class=HealthClass._from_stored(class_text),
        details_json=details,
    )


def score_all_health(conn: sqlite3.Connection) -> list[HealthSnapshot]:
    """Score every tracked repo."""
    ids = [row[0] for row in conn.execute("SELECT id FROM repos").fetchall()]
    return [score_repo_health(conn, repo_id) for repo_id in ids]


def mark_inbox_done(conn: sqlite3.Connection, repo_id: str) -> None:
    """Dismiss a repo's inbox entry. Idempotent."""
    conn.execute(
        "INSERT OR REPLACE INTO inbox_dismissed (repo_id, dismissed_at) VALUES (?, ?)",
        (repo_id, _now_secs()),
    )


def purge_inbox_dismissals(conn: sqlite3.Connection, older_than: int) -> int:
    """Delete dismissals older than ``older_than``; return how many were removed."""
    cursor = conn.execute(
        "DELETE FROM inbox_dismissed WHERE dismissed_at < ?", (older_than,)
    )
    return cursor.rowcount


def compute_inbox(conn: sqlite3.Connection) -> list[InboxItem]:
    """Compute inbox items for all non-dismissed repos, highest priority first."""
    rows = conn.execute(
        "SELECT r.id, r.owner, r.name, r.archived, r.disabled "
        "FROM repos r "
        "WHERE r.id NOT IN (SELECT repo_id FROM inbox_dismissed) "
        "ORDER BY r.owner, r.name"
    ).fetchall()

    items: list[InboxItem] = []
    for repo_id, owner, name, archived, disabled in rows:
        priority = 0
        reasons: list[str] = []

        if disabled:
            priority += 10
            reasons.append("disabled")
        if archived:
            priority += 3
            reasons.append("archived")

        failed = _scalar(
            conn,
            "SELECT COUNT(*) FROM sync_results WHERE repo_id = ? AND status = 'error'",
            (repo_id,),
        )
        if failed > 0:
            priority += 5 * min(failed, 3)
            reasons.append(f"{failed} failed syncs")

        recent = _scalar(
            conn,
            "SELECT COUNT(*) FROM failures "
            "WHERE fingerprint LIKE '%' || ? || '%' AND last_seen_at > ?",
            (repo_id, _now_secs() - _DAY_SECS),
        )
        if recent > 0:
            priority += 3 * min(recent, 3)
            reasons.append(f"{recent} recent failures")

        if reasons:
            items.append(
                InboxItem(
                    repo_id=repo_id,
                    owner=owner,
                    name=name,
                    priority=priority,
                    reason=", ".join(reasons),
                )
            )

    items.sort(key=lambda item: item.priority, reverse=True)
    return items