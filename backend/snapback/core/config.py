"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from snapback.core.logging import get_logger

ENV_PREFIX = "SNAPBACK_"
DEFAULT_CONFIG_PATH = Path("~/.config/snapback/config.yaml")

DEFAULT_RISK_THRESHOLD = 60
DEFAULT_NOTIFY_THRESHOLD = 40

DEFAULT_ALWAYS_PROTECT = [
    "package.json",
    "tsconfig.json",
    ".env*",
    "*.config.js",
    "*.config.ts",
]
DEFAULT_NEVER_PROTECT = [
    "node_modules/**",
    "dist/**",
    "*.log",
    "*.lock",
]

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("decision", "risk_threshold"): "risk_threshold",
    ("decision", "notify_threshold"): "notify_threshold",
    ("decision", "min_files_for_burst"): "min_files_for_burst",
    ("decision", "always_protect"): "always_protect_patterns",
    ("decision", "never_protect"): "never_protect_patterns",
    ("rate_limit", "max_snapshots_per_minute"): "max_snapshots_per_minute",
    ("rate_limit", "window_ms"): "rate_window_ms",
    ("storage", "db_path"): "db_path",
    ("storage", "max_snapshots"): "max_snapshots",
    ("storage", "max_storage_bytes"): "max_storage_bytes",
    ("storage", "retention_days"): "retention_days",
    ("walk", "max_files"): "walk_max_files",
    ("walk", "max_file_size"): "walk_max_file_size",
    ("walk", "max_total_size"): "walk_max_total_size",
    ("walk", "batch_size"): "read_batch_size",
    ("walk", "batch_memory_bytes"): "read_batch_memory_bytes",
    ("watch", "debounce_ms"): "debounce_ms",
    ("watch", "workspace_root"): "workspace_root",
    ("watch", "exclude_glob"): "watch_exclude",
}

logger = get_logger(__name__)


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


class DecisionConfig(BaseModel):
    """Thresholds for the decision engine, clamped to their documented ranges."""

    risk_threshold: float = DEFAULT_RISK_THRESHOLD
    notify_threshold: float = DEFAULT_NOTIFY_THRESHOLD
    min_files_for_burst: int = 3
    max_snapshots_per_minute: int = 4
    always_protect_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_ALWAYS_PROTECT))
    never_protect_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_NEVER_PROTECT))

    model_config = {"frozen": True, "extra": "ignore"}

    @field_validator("risk_threshold", "notify_threshold", mode="before")
    @classmethod
    def _clamp_threshold(cls, value: Any) -> float:
        return _clamp(float(value), 0, 100)

    @field_validator("min_files_for_burst", "max_snapshots_per_minute", mode="before")
    @classmethod
    def _at_least_one(cls, value: Any) -> int:
        return max(1, int(value))

    @model_validator(mode="before")
    @classmethod
    def _reset_inverted_thresholds(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        risk = _clamp(float(data.get("risk_threshold", DEFAULT_RISK_THRESHOLD)), 0, 100)
        notify = _clamp(float(data.get("notify_threshold", DEFAULT_NOTIFY_THRESHOLD)), 0, 100)
        if notify > risk:
            logger.warning("notify_threshold %s exceeds risk_threshold %s; using defaults", notify, risk)
            data = {**data, "risk_threshold": DEFAULT_RISK_THRESHOLD, "notify_threshold": DEFAULT_NOTIFY_THRESHOLD}
        return data

    def merged(self, **changes: Any) -> "DecisionConfig":
        """Return a new config with ``changes`` applied and re-validated."""
        data = self.model_dump()
        data.update({key: value for key, value in changes.items() if value is not None})
        return DecisionConfig(**data)


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".snapback" / "snapback.db")
    workspace_root: Path | None = None

    risk_threshold: float = DEFAULT_RISK_THRESHOLD
    notify_threshold: float = DEFAULT_NOTIFY_THRESHOLD
    min_files_for_burst: int = 3
    always_protect_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_ALWAYS_PROTECT))
    never_protect_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_NEVER_PROTECT))

    max_snapshots_per_minute: int = 4
    rate_window_ms: int = 60_000

    max_snapshots: int = 100
    max_storage_bytes: int = 1024 * 1024 * 1024
    retention_days: float = 7

    walk_max_files: int = 10_000
    walk_max_file_size: int = 10 * 1024 * 1024
    walk_max_total_size: int = 500 * 1024 * 1024
    read_batch_size: int = 100
    read_batch_memory_bytes: int = 50 * 1024 * 1024

    debounce_ms: int = 300
    watch_exclude: str = "**/{.git,node_modules,dist,.snapback}/**"

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("db_path must be a path or string")

    @field_validator("workspace_root", mode="before")
    @classmethod
    def _expand_workspace_root(cls, value: Any) -> Path | None:
        if value is None or value == "":
            return None
        return Path(value).expanduser()

    @field_validator("always_protect_patterns", "never_protect_patterns", mode="before")
    @classmethod
    def _split_patterns(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @field_validator(
        "rate_window_ms",
        "max_snapshots",
        "max_storage_bytes",
        "walk_max_files",
        "walk_max_file_size",
        "walk_max_total_size",
        "read_batch_size",
        "read_batch_memory_bytes",
    )
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    def decision_config(self) -> DecisionConfig:
        return DecisionConfig(
            risk_threshold=self.risk_threshold,
            notify_threshold=self.notify_threshold,
            min_files_for_burst=self.min_files_for_burst,
            max_snapshots_per_minute=self.max_snapshots_per_minute,
            always_protect_patterns=self.always_protect_patterns,
            never_protect_patterns=self.never_protect_patterns,
        )

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with SNAPBACK_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["DecisionConfig", "Settings", "get_settings"]
