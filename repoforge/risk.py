"""Risk classification for plans and operations."""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum, IntEnum

__all__ = ["RiskLevel", "RiskReason", "classify", "to_json"]


class RiskLevel(IntEnum):
    """Overall risk, ordered LOW < MEDIUM < HIGH."""

    LOW = 0
    MEDIUM = 1
    HIGH = 2

    def __str__(self) -> str:
        return self.name


class RiskReason(Enum):
    """An individual factor contributing to risk."""

    TOUCHES_MANY_FILES = "touches many files"
    MODIFIES_CI_WORKFLOW = "modifies CI workflow"
    MODIFIES_DEPENDENCY_FILE = "modifies dependency file"
    DELETES_FILES = "deletes files"
    NO_TESTS_CHANGED = "no tests changed"
    QUALITY_GATES_UNAVAILABLE = "quality gates unavailable"
    SIMILAR_FAILURE_RECENTLY = "similar failure happened recently"

    def __str__(self) -> str:
        return self.value


_HIGH_REASONS = frozenset(
    {
        RiskReason.MODIFIES_CI_WORKFLOW,
        RiskReason.DELETES_FILES,
        RiskReason.SIMILAR_FAILURE_RECENTLY,
    }
)


def classify(reasons: Iterable[RiskReason]) -> RiskLevel:
    """Classify risk: none is LOW; any critical reason or two or more is HIGH; else MEDIUM."""
    reasons = list(reasons)
    if not reasons:
        return RiskLevel.LOW
    if len(reasons) >= 2 or any(r in _HIGH_REASONS for r in reasons):
        return RiskLevel.HIGH
    return RiskLevel.MEDIUM


def to_json(level: RiskLevel, reasons: Iterable[RiskReason]) -> dict:
    """Return the plan JSON risk block ``{"class": ..., "reasons": [...]}``."""
    return {
        "class": str(level).lower(),
        "reasons": [str(r) for r in reasons],
    }