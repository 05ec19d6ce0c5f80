"""Glob denylist of paths that must never be staged or committed."""

from __future__ import annotations

import re
from collections.abc import Iterable

__all__ = ["DEFAULT_DENYLIST", "Denylist"]

DEFAULT_DENYLIST: tuple[str, ...] = (
    ".env",
    ".env.*",
    "*.pem",
    "*.key",
    "id_rsa",
    "id_ed25519",
    "**/.git/**",
    "**/target/**",
    "**/node_modules/**",
)


def _translate_class(pattern: str, i: int) -> tuple[str, int]:
    """Translate a ``[...]`` class starting at ``i``; return regex and next index."""
    n = len(pattern)
    j = i + 1
    negate = False
    if j < n and pattern[j] in "!^":
        negate = True
        j += 1
    start = j
    if j < n and pattern[j] == "]":
        j += 1
    while j < n and pattern[j] != "]":
        j += 1
    if j >= n:
        raise ValueError(f"unclosed character class in glob {pattern!r}")
    body = "".join(ch if ch == "-" else re.escape(ch) for ch in pattern[start:j])
    return ("[^" if negate else "[") + body + "]", j + 1


def _split_alternatives(pattern: str, i: int) -> tuple[list[str], int]:
    """Split a ``{a,b}`` group starting at ``i``; return alternatives and next index."""
    depth = 0
    parts: list[str] = []
    current: list[str] = []
    j = i + 1
    while j < len(pattern):
        ch = pattern[j]
        if ch == "\\" and j + 1 < len(pattern):
            current.append(pattern[j : j + 2])
            j += 2
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            if depth == 0:
                parts.append("".join(current))
                return parts, j + 1
            depth -= 1
        elif ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
            j += 1
            continue
        current.append(ch)
        j += 1
    raise ValueError(f"unclosed alternation in glob {pattern!r}")


def _translate(pattern: str) -> str:
    """Translate a glob into a regex body; ``*`` also crosses ``/``."""
    out: list[str] = []
    n = len(pattern)
    i = 0
    while i < n:
        ch = pattern[i]
        if ch == "*":
            if pattern.startswith("**", i):
                j = i + 2
                at_start = i == 0 or pattern[i - 1] == "/"
                at_end = j == n or pattern[j] == "/"
                if at_start and at_end and j < n:
                    out.append("(?:.*/)?")
                    i = j + 1
                    continue
                out.append(".*")
                i = j
                continue
            out.append(".*")
            i += 1
        elif ch == "?":
            out.append(".")
            i += 1
        elif ch == "[":
            regex, i = _translate_class(pattern, i)
            out.append(regex)
        elif ch == "{":
            alternatives, i = _split_alternatives(pattern, i)
            out.append("(?:" + "|".join(_translate(alt) for alt in alternatives) + ")")
        elif ch == "\\":
            if i + 1 >= n:
                raise ValueError(f"dangling escape in glob {pattern!r}")
            out.append(re.escape(pattern[i + 1]))
            i += 2
        else:
            out.append(re.escape(ch))
            i += 1
    return "".join(out)


class Denylist:
    """Compiled set of glob patterns matched against repo-relative paths."""

    def __init__(self, patterns: Iterable[str]) -> None:
        self._patterns = tuple(patterns)
        self._regexes = tuple(
            re.compile(_translate(p), re.DOTALL) for p in self._patterns
        )

    @classmethod
    def default(cls) -> Denylist:
        """Build from the default denylist patterns."""
        return cls(DEFAULT_DENYLIST)

    def is_denied(self, path: str) -> bool:
        """Return True if ``path`` (forward slashes, repo-relative) matches any pattern."""
        return any(regex.fullmatch(path) for regex in self._regexes)

    def filter_denied(self, paths: Iterable[str]) -> list[str]:
        """Return the denied paths, in input order."""
        return [path for path in paths if self.is_denied(path)]

    def patterns(self) -> tuple[str, ...]:
        """Return the raw patterns."""
        return self._patterns

    def __repr__(self) -> str:
        return f"Denylist({list(self._patterns)!r})"