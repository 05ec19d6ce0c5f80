import os
import shutil
import subprocess
import time
import uuid
from pathlib import Path

import pytest

from repoforge.db import open_memory
from repoforge.manage import TrackedRepo
from repoforge.sync import SyncOptions, SyncStrategy, sync_all, sync_repo


@pytest.fixture
def conn():
    connection = open_memory()
    yield connection
    connection.close()


def _run_git(directory: Path, *args: str) -> None:
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    subprocess.run(
        ["git", *args], cwd=directory, check=True, capture_output=True, env=env
    )


def _init_bare_remote(base: Path) -> Path:
    remote = base / "remote.git"
    remote.mkdir(parents=True)
    _run_git(remote, "init", "--bare", "-q", "-b", "main")
    return remote


def _commit_to_remote(base: Path, remote: Path, name: str, content: str) -> None:
    clone_dir = base / "tmp-clone"
    clone_dir.mkdir(parents=True)
    _run_git(clone_dir, "clone", "-q", str(remote), ".")
    _run_git(clone_dir, "config", "user.email", "test@example.com")
    _run_git(clone_dir, "config", "user.name", "Test")
    _run_git(clone_dir, "config", "commit.gpgsign", "false")
    _run_git(clone_dir, "checkout", "-q", "-B", "main")
    (clone_dir / name).write_text(content)
    _run_git(clone_dir, "add", ".")
    _run_git(clone_dir, "commit", "-q", "-m", f"add {name}")
    _run_git(clone_dir, "push", "-q", "origin", "main")
    shutil.rmtree(clone_dir)


def _track(conn, clone_url: str, local: Path) -> TrackedRepo:
    repo_id = str(uuid.uuid4())
    now = int(time.time())
    conn.execute(
        "INSERT INTO repos (id, host, owner, name, clone_url, local_path, added_at, updated_at) "
        "VALUES (?, 'github.com', 'alice', 'proj1', ?, ?, ?, ?)",
        (repo_id, clone_url, str(local), now, now),
    )
    return TrackedRepo(
        id=repo_id,
        host="github.com",
        owner="alice",
        name="proj1",
        branch=None,
        alias=None,
        clone_url=clone_url,
        local_path=str(local),
    )


def test_sync_repo_clones_missing_repo(conn, tmp_path):
    remote = _init_bare_remote(tmp_path)
    _commit_to_remote(tmp_path, remote, "a.txt", "hello")
    local = tmp_path / "local" / "proj1"
    repo = _track(conn, str(remote), local)

    result = sync_repo(conn, repo, SyncOptions(), "test-run")
    assert result.action == "clone"
    assert result.status == "success"
    assert result.post_oid is not None
    assert result.pre_oid is None
    assert (local / ".git").exists()


def test_sync_repo_records_result(conn, tmp_path):
    remote = _init_bare_remote(tmp_path)
    _commit_to_remote(tmp_path, remote, "a.txt", "hello")
    repo = _track(conn, str(remote), tmp_path / "local" / "proj1")
    conn.execute(
        "INSERT INTO runs (id, command, started_at, args_json) VALUES (?, ?, ?, ?)",
        ("run-1", "sync", 0, "[]"),
    )

    result = sync_repo(conn, repo, SyncOptions(), "run-1")
    row = conn.execute(
        "SELECT action, status, post_oid FROM sync_results WHERE run_id = 'run-1' AND repo_id = ?",
        (repo.id,),
    ).fetchone()
    assert row == ("clone", "success", result.post_oid)


def test_sync_repo_pull_updates_then_up_to_date(conn, tmp_path):
    remote = _init_bare_remote(tmp_path)
    _commit_to_remote(tmp_path, remote, "a.txt", "hello")
    repo = _track(conn, str(remote), tmp_path / "local" / "proj1")
    cloned = sync_repo(conn, repo, SyncOptions(), "run-a")
    assert cloned.status == "success"

    _commit_to_remote(tmp_path, remote, "b.txt", "more")
    updated = sync_repo(conn, repo, SyncOptions(), "run-b")
    assert updated.action == "updated"
    assert updated.status == "success"
    assert updated.pre_oid == cloned.post_oid
    assert updated.post_oid != updated.pre_oid

    again = sync_repo(conn, repo, SyncOptions(strategy=SyncStrategy.REBASE), "run-c")
    assert again.action == "already_up_to_date"
    assert again.pre_oid == again.post_oid == updated.post_oid


def test_sync_repo_clone_error(conn, tmp_path):
    repo = _track(conn, str(tmp_path / "no-such-remote.git"), tmp_path / "local" / "proj1")
    result = sync_repo(conn, repo, SyncOptions(), "run-x")
    assert result.action == "clone"
    assert result.status == "error"
    assert result.error
    assert result.post_oid is None


def test_sync_repo_dry_run_would_clone(conn, tmp_path):
    local = tmp_path / "local" / "proj1"
    repo = _track(conn, str(tmp_path / "remote.git"), local)
    result = sync_repo(conn, repo, SyncOptions(dry_run=True), "run-d")
    assert result.action == "would_clone"
    assert result.status == "dry_run"
    assert not local.exists()


def test_sync_repo_pull_only_skips_clone(conn, tmp_path):
    local = tmp_path / "local" / "proj1"
    repo = _track(conn, str(tmp_path / "remote.git"), local)
    result = sync_repo(conn, repo, SyncOptions(pull_only=True), "run-p")
    assert (result.action, result.status) == ("skipped_clone", "skipped")
    assert not local.exists()


def test_sync_repo_clone_only_skips_pull(conn, tmp_path):
    remote = _init_bare_remote(tmp_path)
    _commit_to_remote(tmp_path, remote, "a.txt", "hello")
    repo = _track(conn, str(remote), tmp_path / "local" / "proj1")
    cloned = sync_repo(conn, repo, SyncOptions(), "run-1")

    result = sync_repo(conn, repo, SyncOptions(clone_only=True), "run-2")
    assert (result.action, result.status) == ("skipped_pull", "skipped")
    assert result.pre_oid == result.post_oid == cloned.post_oid


def test_sync_all_with_empty_list(conn):
    assert sync_all(conn, SyncOptions()) == []


def test_sync_options_defaults():
    opts = SyncOptions()
    assert opts.strategy is SyncStrategy.FF_ONLY
    assert opts.timeout_secs == 30
    assert (opts.autostash, opts.dry_run, opts.clone_only, opts.pull_only) == (
        False,
        False,
        False,
        False,
    )


def test_sync_strategy_display():
    assert str(SyncOptions().strategy) == "ff-only"
    assert str(SyncOptions(strategy=SyncStrategy.REBASE).strategy) == "rebase"
    assert str(SyncOptions(strategy=SyncStrategy.MERGE).strategy) == "merge"