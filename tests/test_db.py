import sqlite3

import pytest

from repoforge.db import current_version, open_db, open_memory, run_migrations

EXPECTED_TABLES = [
    "_meta",
    "audit_log",
    "context_cache",
    "failures",
    "job_events",
    "jobs",
    "plans",
    "repo_health_snapshots",
    "repo_tags",
    "repos",
    "run_events",
    "runs",
    "sync_results",
]

EXPECTED_INDEXES = [
    "idx_audit_ts",
    "idx_failures_class",
    "idx_health_repo_ts",
    "idx_job_events_job_ts",
    "idx_jobs_status_created",
    "idx_repos_owner_name",
    "idx_run_events_run_ts",
    "idx_runs_started_at",
]


@pytest.fixture
def fresh():
    conn = sqlite3.connect(":memory:")
    run_migrations(conn)
    yield conn
    conn.close()


def _names(conn, kind):
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type=? ORDER BY name", (kind,)
    ).fetchall()
    return {name for (name,) in rows}


def test_open_memory_succeeds():
    conn = open_memory()
    user_version = conn.execute(
        "SELECT user_version FROM pragma_user_version"
    ).fetchone()[0]
    assert user_version == 0
    assert current_version(conn) == 3


def test_pragmas_are_set():
    conn = open_memory()
    assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
    assert conn.execute("PRAGMA busy_timeout").fetchone()[0] >= 5000


def test_open_creates_parent_directory(tmp_path):
    nested = tmp_path / "nested" / "dir" / "state.db"
    conn = open_db(nested)
    conn.close()
    assert nested.exists()


def test_open_db_uses_wal_and_migrates(tmp_path):
    conn = open_db(tmp_path / "state.db")
    assert conn.execute("PRAGMA journal_mode").fetchone()[0].lower() == "wal"
    assert current_version(conn) == 3
    conn.close()


def test_reopen_keeps_data(tmp_path):
    db_path = tmp_path / "state.db"
    conn = open_db(db_path)
    conn.execute(
        "INSERT INTO runs (id, command, started_at, args_json) VALUES ('r', 'sync', 0, '[]')"
    )
    conn.close()
    conn = open_db(db_path)
    assert conn.execute("SELECT COUNT(*) FROM runs").fetchone()[0] == 1
    assert current_version(conn) == 3
    conn.close()


def test_migration_records_version(fresh):
    assert current_version(fresh) == 3


def test_migration_is_idempotent(fresh):
    run_migrations(fresh)
    run_migrations(fresh)
    assert current_version(fresh) == 3


def test_current_version_without_meta_is_zero():
    conn = sqlite3.connect(":memory:")
    assert current_version(conn) == 0


def test_partial_version_applies_remaining(fresh):
    fresh.execute("DROP TABLE repo_tags")
    fresh.execute("UPDATE _meta SET value = '1' WHERE key = 'version'")
    fresh.commit()
    assert current_version(fresh) == 1
    run_migrations(fresh)
    assert current_version(fresh) == 3
    assert "repo_tags" in _names(fresh, "table")


def test_v3_drops_inbox_table(fresh):
    fresh.execute("CREATE TABLE inbox_dismissed (repo_id TEXT, dismissed_at INTEGER)")
    fresh.execute("UPDATE _meta SET value = '2' WHERE key = 'version'")
    fresh.commit()
    run_migrations(fresh)
    assert "inbox_dismissed" not in _names(fresh, "table")


def test_all_tables_exist(fresh):
    tables = _names(fresh, "table")
    for expected in EXPECTED_TABLES:
        assert expected in tables, f"expected table {expected} not found in {tables}"


def test_all_indexes_exist(fresh):
    indexes = _names(fresh, "index")
    for expected in EXPECTED_INDEXES:
        assert expected in indexes, f"expected index {expected} not found in {indexes}"


def test_foreign_keys_enforced(fresh):
    fresh.execute("PRAGMA foreign_keys=ON;")
    with pytest.raises(sqlite3.IntegrityError):
        fresh.execute(
            "INSERT INTO run_events (run_id, ts, level, message) "
            "VALUES ('missing', 0, 'info', 'hi')"
        )


def test_foreign_keys_enforced_by_open_memory():
    conn = open_memory()
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute(
            "INSERT INTO run_events (run_id, ts, level, message) "
            "VALUES ('missing', 0, 'info', 'hi')"
        )


def test_repos_unique_constraint(fresh):
    fresh.execute(
        "INSERT INTO repos (id, host, owner, name, clone_url, local_path, added_at, updated_at) "
        "VALUES ('id1', 'github.com', 'rust-lang', 'rust', 'https://example/x.git', '/tmp/x', 0, 0)"
    )
    with pytest.raises(sqlite3.IntegrityError):
        fresh.execute(
            "INSERT INTO repos (id, host, owner, name, clone_url, local_path, added_at, updated_at) "
            "VALUES ('id2', 'github.com', 'rust-lang', 'rust', 'https://example/y.git', '/tmp/y', 0, 0)"
        )


def test_repo_defaults(fresh):
    fresh.execute(
        "INSERT INTO repos (id, owner, name, clone_url, local_path, added_at, updated_at) "
        "VALUES ('id1', 'alice', 'proj', 'https://example/x.git', '/tmp/x', 0, 0)"
    )
    row = fresh.execute(
        "SELECT host, visibility, archived, disabled FROM repos WHERE id='id1'"
    ).fetchone()
    assert row == ("github.com", "unknown", 0, 0)