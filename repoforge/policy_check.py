"""Offline policy checks for tracked repos, using only stored repo fields."""

from __future__ import annotations

import sqlite3
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from repoforge.manage import TrackedRepo, list_repos

__all__ = ["Severity", "PolicyViolation", "check_repo_policy", "check_all_policies"]


class Severity(Enum):
    """Severity of a policy violation."""

    INFO = "Info"
    WARN = "Warn"
    ERROR = "Error"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class PolicyViolation:
    """A single policy violation found for a tracked repo."""

    repo_id: str
    repo_name: str
    rule: str
    expected: str
    actual: str
    severity: Severity
    suggested_fix: str


def _policy_settings(policy: Any) -> Mapping[str, Any]:
    """Accept either a settings mapping or an object exposing ``extra``."""
    settings = getattr(policy, "extra", policy)
    return settings if isinstance(settings, Mapping) else {}


def check_repo_policy(repo: TrackedRepo, policy: Any) -> list[PolicyViolation]:
    """Check one repo against a policy.

    ``policy`` is a mapping of extra policy settings (or an object with an
    ``extra`` mapping); only a string ``visibility`` entry is consulted.
    """
    full_name = f"{repo.owner}/{repo.name}"
    violations: list[PolicyViolation] = []

    def violation(
        rule: str, expected: str, actual: str, severity: Severity, fix: str
    ) -> None:
        violations.append(
            PolicyViolation(
                repo_id=repo.id,
                repo_name=full_name,
                rule=rule,
                expected=expected,
                actual=actual,
                severity=severity,
                suggested_fix=fix,
            )
        )

    if repo.archived:
        violation(
            "archived",
            "not archived",
            "archived",
            Severity.WARN,
            f"Review {full_name} -- repo is archived",
        )

    if repo.disabled:
        violation(
            "disabled",
            "not disabled",
            "disabled",
            Severity.ERROR,
            f"Investigate {full_name} -- repo is marked disabled",
        )

    branch = repo.branch
    if branch is not None:
        default = repo.default_branch
        if default is None:
            violation(
                "branch",
                "known default branch",
                f"configured branch: {branch}",
                Severity.INFO,
                f"{full_name}: run sync to populate default_branch",
            )
        elif branch != default:
            violation(
                "branch",
                f"default branch: {default}",
                f"configured branch: {branch}",
                Severity.WARN,
                f"{full_name}: branch '{branch}' does not match default '{default}'",
            )

    required = _policy_settings(policy).get("visibility")
    if isinstance(required, str):
        actual = repo.visibility.lower()
        wanted = required.lower()
        if actual != wanted:
            violation(
                "visibility",
                wanted,
                actual,
                Severity.ERROR if wanted == "public" else Severity.WARN,
                f"Change {full_name} visibility from '{actual}' to '{required}'",
            )

    return violations


def check_all_policies(conn: sqlite3.Connection, policy: Any) -> list[PolicyViolation]:
    """Check every tracked repo and return all violations found."""
    return [
        violation
        for repo in list_repos(conn, None)
        for violation in check_repo_policy(repo, policy)
    ]