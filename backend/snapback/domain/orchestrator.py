"""Snapshot catalog: admission, eviction, retention and persistence."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Sequence

from snapback.core.logging import get_logger, log_context
from snapback.core.metrics import CATALOG_SIZE, EVICTIONS, SNAPSHOTS_CREATED
from snapback.db.kv import KeyValueStore
from snapback.domain.types import (
    FileContext,
    PersistedSnapshot,
    ProtectionDecision,
    SnapshotIntent,
    SnapshotMetadata,
    SnapshotTrigger,
)
from snapback.utils.hashing import path_fingerprint
from snapback.utils.ids import new_id
from snapback.utils.time import date_stamp, days_to_ms, now_ms

STORAGE_KEY = "snapback.snapshots"

logger = get_logger(__name__)

ResultKind = Literal["created", "storage_exceeded"]


@dataclass(frozen=True, slots=True)
class OrchestratorConfig:
    max_snapshots: int = 100
    max_storage_bytes: int = 1024 * 1024 * 1024
    retention_days: float = 7


@dataclass(slots=True)
class SnapshotResult:
    """Outcome of a catalog insert; ``ok`` is False when the candidate was rejected."""

    ok: bool
    kind: ResultKind
    snapshot: PersistedSnapshot | None = None
    evicted: list[str] = field(default_factory=list)
    detail: str | None = None


@dataclass(frozen=True, slots=True)
class RestoreCapability:
    success: bool
    files_restored: int


@dataclass(frozen=True, slots=True)
class StorageStats:
    used: int
    available: int
    utilization_percent: float
    snapshot_count: int


def decision_trigger(decision: ProtectionDecision) -> SnapshotTrigger:
    if "manual_request" in decision.reasons:
        return "manual"
    if "ai_detected" in decision.reasons:
        return "ai-detected"
    if "burst_pattern" in decision.reasons:
        return "burst"
    return "auto"


class SnapshotOrchestrator:
    """Owns the snapshot catalog and its running byte total.

    Every mutation is mirrored to the key-value store as one JSON array under
    ``STORAGE_KEY``. The catalog is authoritative only after :meth:`initialize`.
    """

    def __init__(
        self,
        repo_id: str,
        config: OrchestratorConfig | None = None,
        storage: KeyValueStore | None = None,
    ) -> None:
        self.repo_id = repo_id
        self.config = config or OrchestratorConfig()
        self._storage = storage
        self._snapshots: dict[str, PersistedSnapshot] = {}
        self._total_storage_used = 0
        self._ready = storage is None

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def total_storage_used(self) -> int:
        return self._total_storage_used

    async def initialize(self) -> None:
        """Hydrate the catalog from storage; safe to call more than once."""
        if self._ready:
            return
        if self._storage is None:
            raise RuntimeError("Snapshot catalog has no storage to load from")
        stored = await self._storage.get(STORAGE_KEY, [])
        loaded = 0
        for item in stored or []:
            try:
                snapshot = PersistedSnapshot.from_dict(item)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed catalog entry: %s", exc)
                continue
            self._snapshots[snapshot.id] = snapshot
            self._total_storage_used += snapshot.total_size
            loaded += 1
        self._ready = True
        CATALOG_SIZE.set(len(self._snapshots))
        logger.info("Snapshot catalog loaded", extra=log_context(repo_id=self.repo_id, snapshots=loaded))

    async def _persist(self) -> None:
        CATALOG_SIZE.set(len(self._snapshots))
        if self._storage is None:
            return
        await self._storage.set(STORAGE_KEY, [snapshot.to_dict() for snapshot in self._snapshots.values()])

    def build_intent(self, decision: ProtectionDecision, files: Sequence[FileContext], snapshot_id: str | None = None) -> SnapshotIntent:
        text_files = [f for f in files if not f.is_binary]
        return SnapshotIntent(
            id=snapshot_id or new_id(f"snap-{self.repo_id}"),
            files={f.path: "" for f in text_files},
            name=f"SnapBack-{decision_trigger(decision).upper()}-{date_stamp()}",
            trigger=decision_trigger(decision),
            metadata={
                "risk_score": decision.context.risk_score,
                "ai_detected": "ai_detected" in decision.reasons or decision.context.ai_tool_name is not None,
                "ai_tool_name": decision.context.ai_tool_name,
                "session_id": decision.context.session_id,
                "reasons": list(decision.reasons),
            },
        )

    async def create_snapshot(
        self,
        decision: ProtectionDecision,
        files: Sequence[FileContext],
        snapshot_id: str | None = None,
        timestamp: int | None = None,
    ) -> SnapshotResult | None:
        if not decision.create_snapshot:
            return None

        timestamp = now_ms() if timestamp is None else timestamp
        intent = self.build_intent(decision, files, snapshot_id)
        text_files = [f for f in files if not f.is_binary]
        total_size = sum(f.size_bytes for f in text_files)

        if total_size > self.config.max_storage_bytes:
            logger.warning(
                "Snapshot rejected: larger than storage budget",
                extra=log_context(size=total_size, budget=self.config.max_storage_bytes),
            )
            return SnapshotResult(
                ok=False,
                kind="storage_exceeded",
                detail=f"{total_size} bytes exceeds budget of {self.config.max_storage_bytes}",
            )

        evicted: list[str] = []
        if not self._can_store(total_size):
            evicted = self._evict_for(total_size)
            await self._persist()

        persisted = PersistedSnapshot(
            id=intent.id,
            name=intent.name,
            timestamp=timestamp,
            file_count=len(text_files),
            total_size=total_size,
            metadata=SnapshotMetadata(
                risk_score=intent.metadata["risk_score"],
                ai_detected=intent.metadata["ai_detected"],
                ai_tool_name=intent.metadata["ai_tool_name"],
                session_id=intent.metadata["session_id"],
                files_count=len(text_files),
                total_size=total_size,
                created_at=timestamp,
                trigger=intent.trigger,
                reasons=intent.metadata["reasons"],
            ),
            recoverable=True,
            checksum=path_fingerprint(intent.files),
        )
        self._snapshots[persisted.id] = persisted
        self._total_storage_used += total_size
        await self._persist()
        SNAPSHOTS_CREATED.labels(trigger=intent.trigger).inc()
        logger.info(
            "Snapshot recorded",
            extra=log_context(snapshot_id=persisted.id, files=persisted.file_count, evicted=len(evicted)),
        )
        return SnapshotResult(ok=True, kind="created", snapshot=persisted, evicted=evicted)

    def _can_store(self, size: int) -> bool:
        if len(self._snapshots) >= self.config.max_snapshots:
            return False
        return self._total_storage_used + size <= self.config.max_storage_bytes

    def _evict_for(self, size: int) -> list[str]:
        """Drop oldest snapshots one at a time until ``size`` more bytes fit."""
        evicted: list[str] = []
        for snapshot in sorted(self._snapshots.values(), key=lambda s: s.timestamp):
            if self._can_store(size):
                break
            self._remove(snapshot.id)
            evicted.append(snapshot.id)
            EVICTIONS.inc()
        if evicted:
            logger.info("Evicted snapshots for storage limits", extra=log_context(evicted=evicted))
        return evicted

    def _remove(self, snapshot_id: str) -> PersistedSnapshot | None:
        snapshot = self._snapshots.pop(snapshot_id, None)
        if snapshot is not None:
            self._total_storage_used -= snapshot.total_size
        return snapshot

    async def delete_snapshot(self, snapshot_id: str) -> bool:
        if self._remove(snapshot_id) is None:
            return False
        await self._persist()
        return True

    async def mark_protected(self, snapshot_id: str, at: int | None = None) -> bool:
        snapshot = self._snapshots.get(snapshot_id)
        if snapshot is None:
            return False
        snapshot.metadata.last_protected_at = now_ms() if at is None else at
        await self._persist()
        return True

    def get_snapshots(self) -> list[PersistedSnapshot]:
        return list(self._snapshots.values())

    def get_recoverable_snapshots(self) -> list[PersistedSnapshot]:
        return [s for s in self._snapshots.values() if s.recoverable]

    def get_snapshot(self, snapshot_id: str) -> PersistedSnapshot | None:
        return self._snapshots.get(snapshot_id)

    def restore_snapshot(self, snapshot_id: str) -> RestoreCapability:
        """Existence and recoverability check; file writes belong to the coordinator."""
        snapshot = self._snapshots.get(snapshot_id)
        if snapshot is None or not snapshot.recoverable:
            return RestoreCapability(success=False, files_restored=0)
        return RestoreCapability(success=True, files_restored=snapshot.file_count)

    async def cleanup(self, now: int | None = None) -> list[str]:
        """Remove snapshots older than the retention period."""
        now = now_ms() if now is None else now
        max_age = days_to_ms(self.config.retention_days)
        expired = [s.id for s in self._snapshots.values() if now - s.timestamp > max_age]
        for snapshot_id in expired:
            self._remove(snapshot_id)
        if expired:
            await self._persist()
            logger.info("Expired snapshots removed", extra=log_context(removed=len(expired)))
        return expired

    def get_storage_stats(self) -> StorageStats:
        budget = self.config.max_storage_bytes
        return StorageStats(
            used=self._total_storage_used,
            available=budget - self._total_storage_used,
            utilization_percent=round(self._total_storage_used / budget * 100, 1),
            snapshot_count=len(self._snapshots),
        )


__all__ = [
    "STORAGE_KEY",
    "OrchestratorConfig",
    "RestoreCapability",
    "SnapshotOrchestrator",
    "SnapshotResult",
    "StorageStats",
    "decision_trigger",
]
