"""Test fixtures for SnapBack."""

from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path
from typing import Callable

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from snapback.domain.types import FileContext, SaveContext  # noqa: E402


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset cached settings and environment between tests."""
    monkeypatch.setenv("SNAPBACK_DB_PATH", str(tmp_path / "snapback.db"))
    monkeypatch.setenv("SNAPBACK_CONFIG", str(tmp_path / "missing-config.yaml"))
    monkeypatch.delenv("SNAPBACK_WORKSPACE_ROOT", raising=False)

    from snapback.core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    return root


def _file(path: str, size: int = 100, binary: bool = False) -> FileContext:
    extension = f".{path.rsplit('.', 1)[-1]}" if "." in path.rsplit("/", 1)[-1] else ""
    return FileContext(
        path=path,
        extension=extension,
        size_bytes=size,
        is_new=False,
        is_binary=binary,
        next_hash=f"hash-{path}",
    )


@pytest.fixture
def file_context() -> Callable[..., FileContext]:
    return _file


@pytest.fixture
def save_context() -> Callable[..., SaveContext]:
    """Factory for a quiet SaveContext; keyword overrides switch signals on."""
    base = SaveContext(
        repo_id="repo-1",
        timestamp=1_700_000_000_000,
        files=(_file("src/a.ts"),),
        ai_detected=False,
        ai_confidence=0.0,
        session_id="sess-1",
        session_file_count=1,
        session_duration_ms=1_000,
        risk_score=10,
        burst_detected=False,
        contains_critical_files=False,
        critical_file_count=0,
    )

    def factory(**overrides) -> SaveContext:
        return replace(base, **overrides)

    return factory
