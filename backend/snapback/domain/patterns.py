"""Critical-file pattern matching for always/never-protect rules.

Supported forms:

* ``dir/**``     everything below ``dir/``
* ``.env*``      the name itself or dotted variants (``.env.local``), not ``.environment``
* ``*.ts``       any path ending in the suffix
* ``package.json`` exact file name or exact relative path
* ``!pattern``   negation of any of the above
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Sequence


@dataclass(frozen=True, slots=True)
class PatternMatcher:
    pattern: str
    _test: Callable[[str], bool]
    negated: bool = False

    def matches(self, file_path: str) -> bool:
        result = self._test(_normalize(file_path))
        return not result if self.negated else result


def _normalize(path: str) -> str:
    path = path.replace("\\", "/")
    return path[2:] if path.startswith("./") else path


def _basename(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def compile_pattern(pattern: str) -> PatternMatcher:
    if not pattern:
        raise ValueError("Pattern cannot be empty")
    negated = pattern.startswith("!")
    body = pattern[1:] if negated else pattern

    if body.endswith("/**"):
        directory = body[:-3]
        return PatternMatcher(
            pattern,
            lambda path: path.startswith(f"{directory}/") or f"/{directory}/" in path,
            negated,
        )

    if body.endswith("*") and "/" not in body and body.count("*") == 1:
        prefix = body[:-1]
        return PatternMatcher(
            pattern,
            lambda path: _basename(path) == prefix or _basename(path).startswith(f"{prefix}."),
            negated,
        )

    if body.startswith("*"):
        suffix = body.lstrip("*")
        return PatternMatcher(pattern, lambda path: path.endswith(suffix), negated)

    return PatternMatcher(
        pattern,
        lambda path: _basename(path) == body or path == body,
        negated,
    )


def matches_any(file_path: str, patterns: Iterable[str]) -> bool:
    if not file_path:
        return False
    for pattern in patterns:
        try:
            if compile_pattern(pattern).matches(file_path):
                return True
        except ValueError:
            continue
    return False


def should_protect(file_path: str, always_protect: Sequence[str], never_protect: Sequence[str]) -> bool:
    """never-protect wins over always-protect; unmatched files are not protected."""
    if matches_any(file_path, never_protect):
        return False
    return matches_any(file_path, always_protect)


def filter_protected(
    file_paths: Iterable[str], always_protect: Sequence[str], never_protect: Sequence[str]
) -> list[str]:
    return [path for path in file_paths if should_protect(path, always_protect, never_protect)]


def count_matches(
    file_paths: Iterable[str], always_protect: Sequence[str], never_protect: Sequence[str]
) -> dict[str, int]:
    counts = {"always_protected": 0, "never_protected": 0, "neutral": 0}
    for path in file_paths:
        if matches_any(path, never_protect):
            counts["never_protected"] += 1
        elif matches_any(path, always_protect):
            counts["always_protected"] += 1
        else:
            counts["neutral"] += 1
    return counts


__all__ = ["PatternMatcher", "compile_pattern", "matches_any", "should_protect", "filter_protected", "count_matches"]
