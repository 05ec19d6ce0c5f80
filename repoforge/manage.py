"""Tracked-repo management: add, remove, list, import and lookup."""

from __future__ import annotations

import os
import re
import sqlite3
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path

__all__ = [
    "TrackedRepo",
    "InvalidSpecError",
    "AlreadyTrackedError",
    "RepoNotFoundError",
    "ImportResult",
    "add",
    "remove",
    "delete_repo_cascade",
    "list_repos",
    "import_repos",
    "find_repo",
]

_DEFAULT_HOST = "github.com"

_REPO_COLUMNS = (
    "id, host, owner, name, branch, alias, clone_url, local_path, "
    "visibility, default_branch, archived, disabled"
)

# Tables with a NOT NULL reference to repos(id): their rows must go first.
_CHILD_TABLES = ("sync_results", "repo_health_snapshots", "context_cache")
# Tables with a nullable reference: keep the history, drop the reference.
_NULLABLE_FK_TABLES = ("jobs", "plans")

_NAME_RE = re.compile(r"^[A-Za-z0-9_.\-]+$")
_SPEC_RE = re.compile(r"^(?P<body>\S+)(?:\s+as\s+(?P<alias>\S+))?$")
_URL_RE = re.compile(r"^(?:https?|ssh|git)://(?:[^@/]+@)?(?P<host>[^/]+)/(?P<path>.+)$")
_SCP_RE = re.compile(r"^[^@\s]+@(?P<host>[^:]+):(?P<path>.+)$")


class InvalidSpecError(ValueError):
    """A repo spec string could not be parsed."""

    def __init__(self, spec: str, detail: str) -> None:
        super().__init__(f"invalid repo spec: {detail}: {spec!r}")
        self.spec = spec


class AlreadyTrackedError(ValueError):
    """The repo is already present in the state database."""

    def __init__(self, owner: str, name: str, repo_id: str) -> None:
        super().__init__(f"repo {owner}/{name} already tracked (id={repo_id})")
        self.repo_id = repo_id


class RepoNotFoundError(LookupError):
    """No tracked repo matches the given key."""

    def __init__(self, key: str) -> None:
        super().__init__(f"repo '{key}' not found")
        self.key = key


@dataclass(frozen=True)
class TrackedRepo:
    """A repo row as stored in the state database."""

    id: str
    host: str
    owner: str
    name: str
    branch: str | None
    alias: str | None
    clone_url: str
    local_path: str
    visibility: str = "unknown"
    default_branch: str | None = None
    archived: bool = False
    disabled: bool = False

    def __str__(self) -> str:
        text = f"{self.owner}/{self.name}"
        if self.alias:
            text += f" as {self.alias}"
        return text

    @classmethod
    def _from_row(cls, row: tuple) -> TrackedRepo:
        (repo_id, host, owner, name, branch, alias, clone_url, local_path,
         visibility, default_branch, archived, disabled) = row
        return cls(
            id=repo_id,
            host=host,
            owner=owner,
            name=name,
            branch=branch,
            alias=alias,
            clone_url=clone_url,
            local_path=local_path,
            visibility=visibility,
            default_branch=default_branch,
            archived=bool(archived),
            disabled=bool(disabled),
        )


@dataclass
class ImportResult:
    """Outcome of a bulk import."""

    added: list[TrackedRepo] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[tuple[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class _Spec:
    host: str
    owner: str
    name: str
    branch: str | None
    alias: str | None

    @property
    def clone_url(self) -> str:
        return f"https://{self.host}/{self.owner}/{self.name}.git"


def _parse_spec(text: str) -> _Spec:
    spec = text.strip()
    match = _SPEC_RE.match(spec)
    if match is None:
        raise InvalidSpecError(text, "unexpected format")
    body, alias = match.group("body"), match.group("alias")

    branch: str | None = None
    if "#" in body:
        body, branch = body.split("#", 1)
        if not branch:
            raise InvalidSpecError(text, "empty branch")

    host = _DEFAULT_HOST
    url = _URL_RE.match(body) or _SCP_RE.match(body)
    if url is not None:
        host, path = url.group("host"), url.group("path")
    else:
        path = body
        parts = path.split("/")
        if len(parts) == 3 and "." in parts[0]:
            host, path = parts[0], "/".join(parts[1:])

    path = path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    parts = path.split("/")
    if len(parts) != 2:
        raise InvalidSpecError(text, "expected owner/name")
    owner, name = parts
    if not (_NAME_RE.match(owner) and _NAME_RE.match(name)):
        raise InvalidSpecError(text, "bad owner or name")
    return _Spec(host=host, owner=owner, name=name, branch=branch, alias=alias)


def _resolve_local_path(projects_dir: str | os.PathLike[str], spec: _Spec) -> str:
    return os.path.expanduser(f"{os.fspath(projects_dir)}/{spec.owner}/{spec.name}")


def add(
    conn: sqlite3.Connection, spec: str, projects_dir: str | os.PathLike[str]
) -> TrackedRepo:
    """Parse ``spec`` and start tracking the repo it names."""
    parsed = _parse_spec(spec)

    existing = conn.execute(
        "SELECT id FROM repos WHERE host = ? AND owner = ? AND name = ?",
        (parsed.host, parsed.owner, parsed.name),
    ).fetchone()
    if existing is not None:
        raise AlreadyTrackedError(parsed.owner, parsed.name, existing[0])

    repo = TrackedRepo(
        id=str(uuid.uuid4()),
        host=parsed.host,
        owner=parsed.owner,
        name=parsed.name,
        branch=parsed.branch,
        alias=parsed.alias,
        clone_url=parsed.clone_url,
        local_path=_resolve_local_path(projects_dir, parsed),
    )
    now = int(time.time())
    conn.execute(
        "INSERT INTO repos (id, host, owner, name, branch, alias, clone_url, local_path, "
        "visibility, default_branch, archived, disabled, added_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'unknown', NULL, 0, 0, ?, ?)",
        (repo.id, repo.host, repo.owner, repo.name, repo.branch, repo.alias,
         repo.clone_url, repo.local_path, now, now),
    )
    return repo


def delete_repo_cascade(conn: sqlite3.Connection, repo_id: str) -> None:
    """Delete a repo and clear every row that references it, atomically."""
    conn.execute("SAVEPOINT repo_delete")
    try:
        for table in _CHILD_TABLES:
            conn.execute(f"DELETE FROM {table} WHERE repo_id = ?", (repo_id,))
        for table in _NULLABLE_FK_TABLES:
            conn.execute(
                f"UPDATE {table} SET repo_id = NULL WHERE repo_id = ?", (repo_id,)
            )
        conn.execute("DELETE FROM repos WHERE id = ?", (repo_id,))
    except BaseException:
        conn.execute("ROLLBACK TO repo_delete")
        conn.execute("RELEASE repo_delete")
        raise
    conn.execute("RELEASE repo_delete")


def find_repo(conn: sqlite3.Connection, key: str) -> TrackedRepo:
    """Find a repo by ``owner/name``, alias, or id."""
    lookups: list[tuple[str, tuple]] = []
    owner, sep, name = key.partition("/")
    if sep:
        lookups.append(("owner = ? AND name = ?", (owner, name)))
    lookups.append(("alias = ?", (key,)))
    lookups.append(("id = ?", (key,)))

    for where, params in lookups:
        row = conn.execute(
            f"SELECT {_REPO_COLUMNS} FROM repos WHERE {where}", params
        ).fetchone()
        if row is not None:
            return TrackedRepo._from_row(row)
    raise RepoNotFoundError(key)


def remove(conn: sqlite3.Connection, key: str) -> TrackedRepo:
    """Stop tracking the repo matching ``key``; return what was removed."""
    repo = find_repo(conn, key)
    delete_repo_cascade(conn, repo.id)
    return repo


def list_repos(
    conn: sqlite3.Connection, owner_filter: str | None = None
) -> list[TrackedRepo]:
    """List tracked repos ordered by owner and name, optionally by owner prefix."""
    if owner_filter is None:
        cursor = conn.execute(
            f"SELECT {_REPO_COLUMNS} FROM repos ORDER BY owner, name"
        )
    else:
        cursor = conn.execute(
            f"SELECT {_REPO_COLUMNS} FROM repos WHERE owner LIKE ? ORDER BY owner, name",
            (f"{owner_filter}%",),
        )
    return [TrackedRepo._from_row(row) for row in cursor]


def import_repos(
    conn: sqlite3.Connection,
    file_path: str | os.PathLike[str],
    projects_dir: str | os.PathLike[str],
) -> ImportResult:
    """Add every spec in a file, one per line; blank and ``#`` lines are skipped."""
    content = Path(file_path).read_text(encoding="utf-8")
    result = ImportResult()
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        try:
            result.added.append(add(conn, line, projects_dir))
        except AlreadyTrackedError:
            result.skipped.append(line)
        except (InvalidSpecError, sqlite3.Error) as exc:
            result.errors.append((line, str(exc)))
    return result