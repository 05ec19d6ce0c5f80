import pytest

from repoforge.db import open_memory
from repoforge.manage import RepoNotFoundError, add, list_repos
from repoforge.prune import prune_archived, prune_missing, prune_repo
from repoforge.queries import score_repo_health


@pytest.fixture
def conn():
    connection = open_memory()
    yield connection
    connection.close()


@pytest.fixture
def projects_dir(tmp_path):
    return tmp_path / "projects"


def test_prune_repo_removes_tracked_repo(conn, projects_dir):
    repo = add(conn, "alice/proj1", projects_dir)
    result = prune_repo(conn, repo.id)
    assert result.removed
    assert result.owner == "alice"
    assert result.name == "proj1"
    assert result.reason == "manual prune"
    assert list_repos(conn) == []


def test_prune_repo_not_found(conn):
    with pytest.raises(RepoNotFoundError) as excinfo:
        prune_repo(conn, "nonexistent")
    assert "not found" in str(excinfo.value)


def test_prune_archived_removes_archived(conn, projects_dir):
    repo = add(conn, "alice/archived-repo", projects_dir)
    conn.execute("UPDATE repos SET archived = 1 WHERE id = ?", (repo.id,))
    results = prune_archived(conn)
    assert len(results) == 1
    assert results[0].name == "archived-repo"
    assert results[0].removed
    assert results[0].reason == "archived"
    assert list_repos(conn) == []


def test_prune_archived_skips_non_archived(conn, projects_dir):
    add(conn, "alice/active", projects_dir)
    assert prune_archived(conn) == []
    assert len(list_repos(conn)) == 1


def test_prune_missing_removes_nonexistent_paths(conn, projects_dir):
    add(conn, "alice/gone", projects_dir)
    results = prune_missing(conn)
    assert len(results) == 1
    assert results[0].name == "gone"
    assert results[0].removed
    assert results[0].reason.startswith("local path missing: ")
    assert list_repos(conn) == []


def test_prune_missing_keeps_existing_paths(conn, projects_dir):
    add(conn, "alice/present", projects_dir)
    (projects_dir / "alice" / "present").mkdir(parents=True)
    assert prune_missing(conn) == []
    assert len(list_repos(conn)) == 1


def test_prune_repo_with_sync_history_succeeds(conn, projects_dir):
    repo = add(conn, "alice/with-history", projects_dir)
    conn.execute(
        "INSERT INTO runs (id, command, started_at, args_json) VALUES (?, ?, ?, ?)",
        ("run-1", "sync", 0, "[]"),
    )
    conn.execute(
        "INSERT INTO sync_results (run_id, repo_id, action, status, duration_ms) "
        "VALUES (?, ?, ?, ?, ?)",
        ("run-1", repo.id, "clone", "success", 0),
    )
    score_repo_health(conn, repo.id)

    result = prune_repo(conn, repo.id)
    assert result.removed
    assert list_repos(conn) == []
    assert conn.execute("SELECT COUNT(*) FROM sync_results").fetchone()[0] == 0
    assert conn.execute("SELECT COUNT(*) FROM runs").fetchone()[0] == 1


def test_prune_archived_with_sync_history_succeeds(conn, projects_dir):
    repo = add(conn, "alice/old", projects_dir)
    score_repo_health(conn, repo.id)
    conn.execute("UPDATE repos SET archived = 1 WHERE id = ?", (repo.id,))

    results = prune_archived(conn)
    assert len(results) == 1
    assert list_repos(conn) == []
    assert (
        conn.execute("SELECT COUNT(*) FROM repo_health_snapshots").fetchone()[0] == 0
    )