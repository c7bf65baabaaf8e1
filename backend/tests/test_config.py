"""Tests for settings loading."""

from pathlib import Path

import pytest

from snapback.core.config import Settings, get_settings


def test_defaults_when_config_missing(tmp_path: Path) -> None:
    settings = get_settings()
    assert settings.risk_threshold == 60
    assert settings.notify_threshold == 40
    assert settings.db_path == tmp_path / "snapback.db"
    assert settings.workspace_root is None


def test_yaml_sections_and_env_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "config.yaml"
    config.write_text(
        "\n".join(
            [
                "decision:",
                "  risk_threshold: 70",
                "  always_protect: ['Dockerfile']",
                "rate_limit:",
                "  max_snapshots_per_minute: 2",
                "storage:",
                "  retention_days: 3",
                "watch:",
                "  debounce_ms: 50",
            ]
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("SNAPBACK_NOTIFY_THRESHOLD", "30")
    monkeypatch.setenv("SNAPBACK_NEVER_PROTECT_PATTERNS", "*.tmp, vendor/**")

    settings = Settings.from_yaml(config)

    assert settings.risk_threshold == 70
    assert settings.notify_threshold == 30
    assert settings.always_protect_patterns == ["Dockerfile"]
    assert settings.never_protect_patterns == ["*.tmp", "vendor/**"]
    assert settings.max_snapshots_per_minute == 2
    assert settings.retention_days == 3
    assert settings.debounce_ms == 50

    decision = settings.decision_config()
    assert decision.max_snapshots_per_minute == 2
    assert decision.always_protect_patterns == ["Dockerfile"]


def test_invalid_limits_rejected() -> None:
    with pytest.raises(ValueError):
        Settings(walk_max_files=0)
