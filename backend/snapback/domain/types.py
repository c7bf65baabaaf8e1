"""Domain data structures shared by the decision and snapshot layers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Sequence

DecisionReason = Literal[
    "ai_detected",
    "risk_threshold",
    "burst_pattern",
    "critical_file",
    "session_size",
    "manual_request",
    "fallback",
]

SnapshotTrigger = Literal["auto", "ai-detected", "manual", "burst"]

OperationStatus = Literal["pending", "running", "completed", "failed"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


@dataclass(frozen=True, slots=True)
class FileContext:
    """One file touched by a save burst."""

    path: str
    extension: str
    size_bytes: int
    is_new: bool
    is_binary: bool
    next_hash: str
    prev_hash: str | None = None


@dataclass(frozen=True, slots=True)
class SaveContext:
    """Everything the decision engine knows about one burst of changes."""

    repo_id: str
    timestamp: int
    files: Sequence[FileContext]
    ai_detected: bool
    ai_confidence: float
    session_id: str
    session_file_count: int
    session_duration_ms: int
    risk_score: float
    burst_detected: bool
    contains_critical_files: bool
    critical_file_count: int
    ai_tool_name: str | None = None


@dataclass(frozen=True, slots=True)
class DecisionContext:
    risk_score: float
    session_id: str
    files_in_session: int
    critical_file_count: int
    ai_tool_name: str | None = None


@dataclass(frozen=True, slots=True)
class ProtectionDecision:
    create_snapshot: bool
    show_notification: bool
    reasons: tuple[DecisionReason, ...]
    confidence: float
    summary: str
    context: DecisionContext

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["reasons"] = list(self.reasons)
        return payload


@dataclass(slots=True)
class SnapshotIntent:
    """Bridge between a decision and a durable record; never persisted."""

    id: str
    files: dict[str, str]
    name: str
    trigger: SnapshotTrigger
    metadata: dict[str, Any]


@dataclass(slots=True)
class SnapshotMetadata:
    risk_score: float
    ai_detected: bool
    session_id: str
    files_count: int
    total_size: int
    created_at: int
    trigger: SnapshotTrigger = "auto"
    reasons: list[str] = field(default_factory=list)
    ai_tool_name: str | None = None
    last_protected_at: int | None = None


@dataclass(slots=True)
class PersistedSnapshot:
    id: str
    name: str
    timestamp: int
    file_count: int
    total_size: int
    metadata: SnapshotMetadata
    recoverable: bool
    checksum: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PersistedSnapshot":
        meta = data.get("metadata") or {}
        timestamp = int(data["timestamp"])
        metadata = SnapshotMetadata(
            risk_score=meta.get("risk_score", 0),
            ai_detected=bool(meta.get("ai_detected", False)),
            session_id=meta.get("session_id", ""),
            files_count=int(meta.get("files_count", data.get("file_count", 0))),
            total_size=int(meta.get("total_size", data.get("total_size", 0))),
            created_at=int(meta.get("created_at", timestamp)),
            trigger=meta.get("trigger", "auto"),
            reasons=list(meta.get("reasons") or []),
            ai_tool_name=meta.get("ai_tool_name"),
            last_protected_at=meta.get("last_protected_at"),
        )
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            timestamp=timestamp,
            file_count=int(data.get("file_count", 0)),
            total_size=int(data.get("total_size", 0)),
            metadata=metadata,
            recoverable=bool(data.get("recoverable", True)),
            checksum=data.get("checksum", ""),
        )


@dataclass(slots=True)
class Operation:
    id: str
    name: str
    status: OperationStatus
    progress: int
    start_time: int
    end_time: int | None = None
    dependencies: list[str] | None = None
    detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class RateLimiterStatus:
    count: int
    remaining: int
    wait_time_ms: int
    can_snapshot: bool


__all__ = [
    "DecisionReason",
    "SnapshotTrigger",
    "OperationStatus",
    "TERMINAL_STATUSES",
    "FileContext",
    "SaveContext",
    "DecisionContext",
    "ProtectionDecision",
    "SnapshotIntent",
    "SnapshotMetadata",
    "PersistedSnapshot",
    "Operation",
    "RateLimiterStatus",
]
