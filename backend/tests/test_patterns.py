"""Tests for critical-file pattern matching."""

import pytest

from snapback.core.config import DEFAULT_ALWAYS_PROTECT, DEFAULT_NEVER_PROTECT
from snapback.domain.patterns import compile_pattern, count_matches, filter_protected, should_protect


@pytest.mark.parametrize(
    ("pattern", "path", "expected"),
    [
        ("node_modules/**", "node_modules/react/index.js", True),
        ("node_modules/**", "packages/app/node_modules/x.js", True),
        ("node_modules/**", "src/node_modules.ts", False),
        (".env*", ".env", True),
        (".env*", "config/.env.local", True),
        (".env*", ".environment", False),
        ("*.ts", "src/deep/file.ts", True),
        ("*.ts", "src/file.tsx", False),
        ("package.json", "apps/web/package.json", True),
        ("src/main.py", "./src/main.py", True),
        ("!*.log", "debug.log", False),
        ("!*.log", "src/a.ts", True),
    ],
)
def test_compile_pattern(pattern: str, path: str, expected: bool) -> None:
    assert compile_pattern(pattern).matches(path) is expected


def test_empty_pattern_rejected() -> None:
    with pytest.raises(ValueError):
        compile_pattern("")


def test_never_protect_wins() -> None:
    assert should_protect(".env", DEFAULT_ALWAYS_PROTECT, DEFAULT_NEVER_PROTECT) is True
    assert should_protect("node_modules/pkg/package.json", DEFAULT_ALWAYS_PROTECT, DEFAULT_NEVER_PROTECT) is False
    assert should_protect("src/a.ts", DEFAULT_ALWAYS_PROTECT, DEFAULT_NEVER_PROTECT) is False


def test_filter_and_count() -> None:
    paths = ["package.json", "src/a.ts", "build.log", "vite.config.ts"]
    assert filter_protected(paths, DEFAULT_ALWAYS_PROTECT, DEFAULT_NEVER_PROTECT) == ["package.json", "vite.config.ts"]
    assert count_matches(paths, DEFAULT_ALWAYS_PROTECT, DEFAULT_NEVER_PROTECT) == {
        "always_protected": 2,
        "never_protected": 1,
        "neutral": 1,
    }
