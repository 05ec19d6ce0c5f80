"""SQLite state database: connection setup and schema migrations.

SQLite is the single source of truth for all state. Migrations are
linear, additive and idempotent; the applied version is recorded in the
``_meta`` key/value table so a migration never runs twice.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass
from pathlib import Path

log = logging.getLogger(__name__)

__all__ = ["open_db", "open_memory", "run_migrations", "current_version"]


@dataclass(frozen=True)
class _Column:
    name: str
    sqltype: str
    not_null: bool = False
    primary_key: bool = False
    autoincrement: bool = False
    unique: bool = False
    default: str | None = None
    references: str | None = None
    on_delete: str | None = None

    def ddl(self) -> str:
        parts = [self.name, self.sqltype]
        if self.primary_key:
            parts.append("PRIMARY KEY")
            if self.autoincrement:
                parts.append("AUTOINCREMENT")
        if self.not_null:
            parts.append("NOT NULL")
        if self.unique:
            parts.append("UNIQUE")
        if self.default is not None:
            parts.append(f"DEFAULT {self.default}")
        if self.references is not None:
            parts.append(f"REFERENCES {self.references}(id)")
            if self.on_delete is not None:
                parts.append(f"ON DELETE {self.on_delete}")
        return " ".join(parts)


@dataclass(frozen=True)
class _Table:
    name: str
    columns: tuple[_Column, ...]
    primary_key: tuple[str, ...] = ()
    unique: tuple[str, ...] = ()

    def ddl(self) -> str:
        items = [column.ddl() for column in self.columns]
        if self.primary_key:
            items.append(f"PRIMARY KEY ({', '.join(self.primary_key)})")
        if self.unique:
            items.append(f"UNIQUE({', '.join(self.unique)})")
        body = ",\n    ".join(items)
        return f"CREATE TABLE IF NOT EXISTS {self.name} (\n    {body}\n);"


@dataclass(frozen=True)
class _Index:
    name: str
    table: str
    columns: tuple[str, ...]

    def ddl(self) -> str:
        return (
            f"CREATE INDEX IF NOT EXISTS {self.name} "
            f"ON {self.table}({', '.join(self.columns)});"
        )


def _text(name: str, **options: object) -> _Column:
    return _Column(name, "TEXT", **options)  # type: ignore[arg-type]


def _int(name: str, **options: object) -> _Column:
    return _Column(name, "INTEGER", **options)  # type: ignore[arg-type]


def _id() -> _Column:
    return _text("id", primary_key=True)


def _serial_id() -> _Column:
    return _int("id", primary_key=True, autoincrement=True)


def _events_table(name: str, owner_column: str, owner_table: str) -> _Table:
    return _Table(
        name,
        (
            _serial_id(),
            _text(owner_column, not_null=True, references=owner_table),
            _int("ts", not_null=True),
            _text("level", not_null=True),
            _text("message", not_null=True),
            _text("data_json"),
        ),
    )


_V1_OBJECTS: tuple[_Table | _Index, ...] = (
    _Table(
        "repos",
        (
            _id(),
            _text("host", not_null=True, default="'github.com'"),
            _text("owner", not_null=True),
            _text("name", not_null=True),
            _text("branch"),
            _text("alias"),
            _text("clone_url", not_null=True),
            _text("local_path", not_null=True),
            _text("visibility", not_null=True, default="'unknown'"),
            _text("default_branch"),
            _int("archived", not_null=True, default="0"),
            _int("disabled", not_null=True, default="0"),
            _int("added_at", not_null=True),
            _int("updated_at", not_null=True),
        ),
        unique=("host", "owner", "name"),
    ),
    _Index("idx_repos_owner_name", "repos", ("owner", "name")),
    _Table(
        "runs",
        (
            _id(),
            _text("command", not_null=True),
            _int("started_at", not_null=True),
            _int("ended_at"),
            _int("exit_code"),
            _text("args_json", not_null=True),
            _text("user"),
            _text("host"),
        ),
    ),
    _Index("idx_runs_started_at", "runs", ("started_at",)),
    _events_table("run_events", "run_id", "runs"),
    _Index("idx_run_events_run_ts", "run_events", ("run_id", "ts")),
    _Table(
        "sync_results",
        (
            _text("run_id", not_null=True, references="runs"),
            _text("repo_id", not_null=True, references="repos"),
            _text("action", not_null=True),
            _text("status", not_null=True),
            _int("duration_ms", not_null=True),
            _text("error"),
            _text("pre_oid"),
            _text("post_oid"),
        ),
        primary_key=("run_id", "repo_id"),
    ),
    _Table(
        "jobs",
        (
            _id(),
            _text("kind", not_null=True),
            _text("status", not_null=True),
            _text("repo_id", references="repos"),
            _text("payload_json", not_null=True),
            _int("created_at", not_null=True),
            _int("started_at"),
            _int("ended_at"),
            _int("attempts", not_null=True, default="0"),
            _int("max_attempts", not_null=True, default="3"),
            _text("error"),
            _text("created_by", not_null=True, default="'cli'"),
        ),
    ),
    _Index("idx_jobs_status_created", "jobs", ("status", "created_at")),
    _events_table("job_events", "job_id", "jobs"),
    _Index("idx_job_events_job_ts", "job_events", ("job_id", "ts")),
    _Table(
        "plans",
        (
            _id(),
            _text("kind", not_null=True),
            _text("repo_id", references="repos"),
            _text("status", not_null=True),
            _int("created_at", not_null=True),
            _int("applied_at"),
            _text("risk_class"),
            _text("risk_reasons_json"),
            _text("plan_json", not_null=True),
            _text("rollback_json"),
        ),
    ),
    _Table(
        "failures",
        (
            _id(),
            _text("fingerprint", not_null=True, unique=True),
            _text("class", not_null=True),
            _int("first_seen_at", not_null=True),
            _int("last_seen_at", not_null=True),
            _int("count", not_null=True),
            _text("suggested_fix"),
        ),
    ),
    _Index("idx_failures_class", "failures", ("class",)),
    _Table(
        "repo_health_snapshots",
        (
            _id(),
            _text("repo_id", not_null=True, references="repos"),
            _int("ts", not_null=True),
            _int("score", not_null=True),
            _text("class", not_null=True),
            _text("details_json", not_null=True),
        ),
    ),
    _Index("idx_health_repo_ts", "repo_health_snapshots", ("repo_id", "ts")),
    _Table(
        "context_cache",
        (
            _id(),
            _text("repo_id", not_null=True, references="repos"),
            _text("kind", not_null=True),
            _text("cache_key", not_null=True),
            _int("generated_at", not_null=True),
            _int("expires_at"),
            _text("content_json", not_null=True),
        ),
        unique=("repo_id", "kind", "cache_key"),
    ),
    _Table(
        "audit_log",
        (
            _serial_id(),
            _int("ts", not_null=True),
            _text("actor", not_null=True),
            _text("action", not_null=True),
            _text("target"),
            _text("details_json"),
        ),
    ),
    _Index("idx_audit_ts", "audit_log", ("ts",)),
)

_V2_OBJECTS: tuple[_Table | _Index, ...] = (
    _Table(
        "repo_tags",
        (
            _text("repo_id", not_null=True, references="repos", on_delete="CASCADE"),
            _text("tag", not_null=True),
        ),
        primary_key=("repo_id", "tag"),
    ),
    _Index("idx_repo_tags_tag", "repo_tags", ("tag",)),
)


def _script(objects: tuple[_Table | _Index, ...]) -> str:
    return "\n\n".join(obj.ddl() for obj in objects)


_MIGRATIONS: tuple[str, ...] = (
    _script(_V1_OBJECTS),
    _script(_V2_OBJECTS),
    "DROP TABLE IF EXISTS inbox_dismissed;",
)

_VERSION_QUERY = (
    "SELECT COALESCE(CAST(value AS INTEGER), 0) FROM _meta WHERE key='version'"
)


def current_version(conn: sqlite3.Connection) -> int:
    """Return the applied schema version, or 0 if none is recorded."""
    try:
        row = conn.execute(_VERSION_QUERY).fetchone()
    except sqlite3.Error:
        return 0
    return int(row[0]) if row is not None and row[0] is not None else 0


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply every migration newer than the recorded version."""
    conn.executescript(
        "CREATE TABLE IF NOT EXISTS _meta (key TEXT PRIMARY KEY, value TEXT);"
    )
    applied = current_version(conn)
    for version, sql in enumerate(_MIGRATIONS, start=1):
        if version <= applied:
            continue
        log.info("applying migration v%d", version)
        try:
            conn.executescript(sql)
        except sqlite3.Error as exc:
            raise sqlite3.OperationalError(
                f"applying migration v{version}: {exc}"
            ) from exc
        conn.execute(
            "INSERT OR REPLACE INTO _meta (key, value) VALUES ('version', ?)",
            (str(version),),
        )
        conn.commit()


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    mode = conn.execute("PRAGMA journal_mode=WAL;").fetchone()[0]
    log.debug("sqlite journal mode: %s", mode)
    for pragma in ("foreign_keys=ON", "synchronous=NORMAL", "busy_timeout=5000"):
        conn.execute(f"PRAGMA {pragma};")


def _connect(target: str) -> sqlite3.Connection:
    conn = sqlite3.connect(target, isolation_level=None)
    try:
        _apply_pragmas(conn)
        run_migrations(conn)
    except Exception:
        conn.close()
        raise
    return conn


def open_db(path: str | os.PathLike[str]) -> sqlite3.Connection:
    """Open (or create) the state database with pragmas and migrations applied.

    The parent directory is created if it does not exist.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return _connect(str(path))


def open_memory() -> sqlite3.Connection:
    """Open an in-memory state database with pragmas and migrations applied."""
    return _connect(":memory:")