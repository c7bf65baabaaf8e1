"""Build a SaveContext from raw file-change events plus detection results."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Literal

from snapback.domain.types import FileContext, SaveContext
from snapback.utils.time import now_ms

ChangeType = Literal["created", "modified", "deleted"]

BINARY_EXTENSIONS = frozenset(
    {".png", ".jpg", ".jpeg", ".gif", ".pdf", ".zip", ".tar", ".exe", ".dll", ".so"}
)


@dataclass(frozen=True, slots=True)
class FileChangeEvent:
    path: str
    type: ChangeType
    timestamp: int | None = None
    size_bytes: int | None = None
    previous_size: int | None = None
    content_hash: str | None = None
    previous_hash: str | None = None


@dataclass(frozen=True, slots=True)
class DetectionEngineResult:
    """Opaque detector output for one batch of events."""

    ai_detected: bool
    ai_confidence: float
    risk_score: float
    burst_detected: bool
    contains_critical_files: bool
    critical_file_count: int
    session_id: str
    session_file_count: int
    session_duration_ms: int
    ai_tool_name: str | None = None


def file_extension(path: str) -> str:
    name = path.replace("\\", "/").rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return f".{name.rsplit('.', 1)[-1]}"


def is_binary_path(path: str) -> bool:
    return file_extension(path).lower() in BINARY_EXTENSIONS


class ContextBuilder:
    """Accumulate FileChangeEvents for one repo and stamp them into a SaveContext."""

    def __init__(self, repo_id: str) -> None:
        self.repo_id = repo_id
        self._events: list[FileChangeEvent] = []
        self.started_at = now_ms()

    @property
    def events(self) -> list[FileChangeEvent]:
        return list(self._events)

    def add_event(self, event: FileChangeEvent) -> "ContextBuilder":
        if event.timestamp is None:
            event = replace(event, timestamp=now_ms())
        self._events.append(event)
        return self

    def add_events(self, events: Iterable[FileChangeEvent]) -> "ContextBuilder":
        for event in events:
            self.add_event(event)
        return self

    def file_contexts(self) -> list[FileContext]:
        return [
            FileContext(
                path=event.path,
                extension=file_extension(event.path),
                size_bytes=event.size_bytes or 0,
                is_new=event.type == "created",
                is_binary=is_binary_path(event.path),
                next_hash=event.content_hash or "",
                prev_hash=event.previous_hash,
            )
            for event in self._events
        ]

    def build(self, detection: DetectionEngineResult, timestamp: int | None = None) -> SaveContext:
        return SaveContext(
            repo_id=self.repo_id,
            timestamp=timestamp if timestamp is not None else now_ms(),
            files=tuple(self.file_contexts()),
            ai_detected=detection.ai_detected,
            ai_tool_name=detection.ai_tool_name,
            ai_confidence=detection.ai_confidence,
            session_id=detection.session_id,
            session_file_count=detection.session_file_count,
            session_duration_ms=detection.session_duration_ms,
            risk_score=detection.risk_score,
            burst_detected=detection.burst_detected,
            contains_critical_files=detection.contains_critical_files,
            critical_file_count=detection.critical_file_count,
        )

    @staticmethod
    def validate(context: SaveContext) -> tuple[bool, list[str]]:
        """Collect every problem instead of stopping at the first one."""
        errors: list[str] = []
        if not context.repo_id:
            errors.append("Missing repo_id")
        if not context.timestamp or context.timestamp <= 0:
            errors.append("Invalid timestamp")
        if not isinstance(context.files, (list, tuple)):
            errors.append("Invalid files array")
        if not 0 <= context.risk_score <= 100:
            errors.append("Risk score out of range [0, 100]")
        if not 0 <= context.ai_confidence <= 1:
            errors.append("AI confidence out of range [0, 1]")
        if not context.session_id:
            errors.append("Missing session_id")
        if context.session_file_count < 0:
            errors.append("Invalid session file count")
        if context.session_duration_ms < 0:
            errors.append("Invalid session duration")
        if context.critical_file_count < 0:
            errors.append("Invalid critical file count")
        return not errors, errors

    def reset(self) -> None:
        self._events = []
        self.started_at = now_ms()


__all__ = [
    "BINARY_EXTENSIONS",
    "ChangeType",
    "ContextBuilder",
    "DetectionEngineResult",
    "FileChangeEvent",
    "file_extension",
    "is_binary_path",
]
