"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from snapback.domain.types import (
    FileContext,
    Operation,
    PersistedSnapshot,
    ProtectionDecision,
    SaveContext,
)
from snapback.ops.coordinator import FileConflict, RestoreResult


class FileContextModel(BaseModel):
    path: str
    extension: str = ""
    size_bytes: int = Field(default=0, ge=0)
    is_new: bool = False
    is_binary: bool = False
    next_hash: str = ""
    prev_hash: str | None = None


class SaveContextRequest(BaseModel):
    repo_id: str
    timestamp: int
    files: list[FileContextModel] = Field(default_factory=list)
    ai_detected: bool = False
    ai_tool_name: str | None = None
    ai_confidence: float = 0.0
    session_id: str
    session_file_count: int = 0
    session_duration_ms: int = 0
    risk_score: float = 0.0
    burst_detected: bool = False
    contains_critical_files: bool = False
    critical_file_count: int = 0

    def to_domain(self) -> SaveContext:
        data = self.model_dump(exclude={"files"})
        return SaveContext(files=tuple(FileContext(**f.model_dump()) for f in self.files), **data)


class DecisionResponse(BaseModel):
    create_snapshot: bool
    show_notification: bool
    reasons: list[str]
    confidence: float
    summary: str
    context: dict[str, Any]

    @classmethod
    def from_domain(cls, decision: ProtectionDecision) -> "DecisionResponse":
        return cls(**decision.to_dict())


class RateLimitResponse(BaseModel):
    count: int
    remaining: int
    wait_time_ms: int
    can_snapshot: bool
    max_snapshots: int
    window_ms: int


class SnapshotResponse(BaseModel):
    id: str
    name: str
    timestamp: int
    file_count: int
    total_size: int
    metadata: dict[str, Any]
    recoverable: bool
    checksum: str

    @classmethod
    def from_domain(cls, snapshot: PersistedSnapshot) -> "SnapshotResponse":
        return cls(**snapshot.to_dict())


class SnapshotCreateRequest(BaseModel):
    files: list[str] | None = Field(default=None, description="Workspace-relative paths; omit for a full walk")
    name: str | None = None


class SnapshotCreateResponse(BaseModel):
    ok: bool
    kind: str
    snapshot: SnapshotResponse | None = None
    evicted: list[str] = Field(default_factory=list)
    detail: str | None = None


class ConflictResponse(BaseModel):
    file: str
    conflict_type: Literal["modified", "added", "deleted"]
    snapshot_content: str
    current_content: str = ""

    @classmethod
    def from_domain(cls, conflict: FileConflict) -> "ConflictResponse":
        return cls(
            file=conflict.file,
            conflict_type=conflict.conflict_type,
            snapshot_content=conflict.snapshot_content,
            current_content=conflict.current_content,
        )


class RestoreRequest(BaseModel):
    files: list[str] | None = None
    dry_run: bool = False
    resolution: Literal["use_snapshot", "use_current", "skip"] | None = Field(
        default=None, description="Apply to every conflict during a dry run; omit to only report conflicts"
    )


class RestoreResponse(BaseModel):
    ok: bool
    kind: str
    snapshot_id: str
    operation_id: str
    files_restored: list[str]
    conflicts: list[ConflictResponse]
    detail: str | None = None

    @classmethod
    def from_domain(cls, result: RestoreResult) -> "RestoreResponse":
        return cls(
            ok=result.ok,
            kind=result.kind,
            snapshot_id=result.snapshot_id,
            operation_id=result.operation_id,
            files_restored=list(result.files_restored),
            conflicts=[ConflictResponse.from_domain(c) for c in result.conflicts],
            detail=result.detail,
        )


class CleanupResponse(BaseModel):
    removed: list[str]


class DeleteResponse(BaseModel):
    status: Literal["ok", "noop"]
    deleted: int


class StorageResponse(BaseModel):
    used: int
    available: int
    utilization_percent: float
    snapshot_count: int


class OperationResponse(BaseModel):
    id: str
    name: str
    status: Literal["pending", "running", "completed", "failed"]
    progress: int
    start_time: int
    end_time: int | None = None
    dependencies: list[str] | None = None
    detail: str | None = None

    @classmethod
    def from_domain(cls, operation: Operation) -> "OperationResponse":
        return cls(**operation.to_dict())


class NotificationResponse(BaseModel):
    id: str
    type: str
    severity: str
    title: str
    message: str
    timestamp: int
    state: str
    details: str | None = None
    actions: list[dict[str, Any]] = Field(default_factory=list)
    auto_dismiss: bool = False
    persistent: bool = False


class StatusResponse(BaseModel):
    active: bool
    is_processing: bool
    buffered_events: int
    decision_count: int
    avg_confidence: float
    snapshot_count: int
    workspace_root: str | None = None
    protection_status: str


__all__ = [
    "CleanupResponse",
    "ConflictResponse",
    "DecisionResponse",
    "DeleteResponse",
    "FileContextModel",
    "NotificationResponse",
    "OperationResponse",
    "RateLimitResponse",
    "RestoreRequest",
    "RestoreResponse",
    "SaveContextRequest",
    "SnapshotCreateRequest",
    "SnapshotCreateResponse",
    "SnapshotResponse",
    "StatusResponse",
    "StorageResponse",
]
