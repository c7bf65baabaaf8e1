"""Protection service wiring file events to decisions, snapshots and notifications."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, Sequence

from snapback.core.config import DecisionConfig, Settings
from snapback.core.logging import get_logger, log_context
from snapback.core.metrics import DECISIONS, RATE_LIMITED
from snapback.db.kv import KeyValueStore
from snapback.db.snapshots import SnapshotContentStore
from snapback.domain.context_builder import (
    ContextBuilder,
    DetectionEngineResult,
    FileChangeEvent,
    file_extension,
    is_binary_path,
)
from snapback.domain.engine import DecisionEngine
from snapback.domain.notifications import (
    LoggingNotificationSink,
    NotificationAdapter,
    NotificationSink,
    UserNotification,
)
from snapback.domain.orchestrator import (
    OrchestratorConfig,
    SnapshotOrchestrator,
    SnapshotResult,
    decision_trigger,
)
from snapback.domain.patterns import should_protect
from snapback.domain.rate_limiter import RateLimiter
from snapback.domain.types import (
    DecisionContext,
    FileContext,
    ProtectionDecision,
    SaveContext,
)
from snapback.ops.coordinator import (
    ConflictResolver,
    FileConflict,
    OperationCoordinator,
    RestoreResult,
    WalkLimits,
)
from snapback.ops.filesystem import Filesystem
from snapback.ops.memory import WorkspaceMemory
from snapback.utils.hashing import sha256_text
from snapback.utils.time import now_ms

logger = get_logger(__name__)

SESSION_IDLE_MS = 5 * 60 * 1000
LARGE_FILE_BYTES = 10_000
DECISION_HISTORY = 100


class SignalProvider(Protocol):
    def detect(self, files: Sequence[FileContext], now: int) -> DetectionEngineResult: ...


class HeuristicSignalProvider:
    """Cheap local signals: critical-file patterns, batch size and file size.

    It never reports AI activity; an external detector has to supply that.
    """

    def __init__(self, config: DecisionConfig) -> None:
        self.config = config
        self._session_start: int | None = None
        self._last_seen = 0

    def _session(self, now: int) -> tuple[str, int]:
        if self._session_start is None or now - self._last_seen > SESSION_IDLE_MS:
            self._session_start = now
        self._last_seen = now
        return f"session-{self._session_start}", now - self._session_start

    def critical_files(self, files: Sequence[FileContext]) -> list[str]:
        return [
            f.path
            for f in files
            if should_protect(f.path, self.config.always_protect_patterns, self.config.never_protect_patterns)
        ]

    def estimate_risk_score(self, files: Sequence[FileContext]) -> int:
        score = len(self.critical_files(files)) * 20
        if len(files) >= 5:
            score += 30
        elif len(files) >= 3:
            score += 15
        score += sum(1 for f in files if f.size_bytes > LARGE_FILE_BYTES) * 10
        return min(score, 100)

    def detect(self, files: Sequence[FileContext], now: int) -> DetectionEngineResult:
        critical = self.critical_files(files)
        session_id, duration = self._session(now)
        return DetectionEngineResult(
            ai_detected=False,
            ai_confidence=0.0,
            risk_score=self.estimate_risk_score(files),
            burst_detected=len(files) >= self.config.min_files_for_burst,
            contains_critical_files=bool(critical),
            critical_file_count=len(critical),
            session_id=session_id,
            session_file_count=len(files),
            session_duration_ms=duration,
        )


@dataclass(slots=True)
class BatchOutcome:
    context: SaveContext
    decision: ProtectionDecision
    snapshot: SnapshotResult | None = None
    rate_limited: bool = False
    notification: UserNotification | None = None
    snapshot_error: str | None = None


def _outcome_label(decision: ProtectionDecision) -> str:
    if decision.create_snapshot:
        return "snapshot"
    if decision.show_notification:
        return "notify"
    return "none"


class ProtectionService:
    """Own every protection component for one workspace.

    Lifecycle: construct, ``await init()``, feed events, ``await dispose()``.
    Events are coalesced by a debounce timer; a batch that fires while another
    is processing stays buffered and is picked up when the running one ends.
    """

    def __init__(
        self,
        settings: Settings,
        store: KeyValueStore,
        content_store: SnapshotContentStore,
        filesystem: Filesystem | None = None,
        signal_provider: SignalProvider | None = None,
        notification_sink: NotificationSink | None = None,
        conflict_resolver: ConflictResolver | None = None,
        repo_id: str | None = None,
    ) -> None:
        self.settings = settings
        root = settings.workspace_root
        self.repo_id = repo_id or (root.name if root else "workspace")
        self.engine = DecisionEngine(settings.decision_config())
        self.rate_limiter = RateLimiter(self.engine.config.max_snapshots_per_minute, settings.rate_window_ms)
        self.orchestrator = SnapshotOrchestrator(
            self.repo_id,
            OrchestratorConfig(
                max_snapshots=settings.max_snapshots,
                max_storage_bytes=settings.max_storage_bytes,
                retention_days=settings.retention_days,
            ),
            store,
        )
        self.content_store = content_store
        self.memory = WorkspaceMemory(store)
        self.coordinator = OperationCoordinator(
            root,
            content_store,
            self.memory,
            filesystem=filesystem,
            conflict_resolver=conflict_resolver,
            limits=WalkLimits(
                max_files=settings.walk_max_files,
                max_file_size=settings.walk_max_file_size,
                max_total_size=settings.walk_max_total_size,
                batch_size=settings.read_batch_size,
                batch_memory_bytes=settings.read_batch_memory_bytes,
            ),
        )
        self.notifications = NotificationAdapter()
        self.sink = notification_sink or LoggingNotificationSink()
        self.signal_provider = signal_provider or HeuristicSignalProvider(self.engine.config)
        self.debounce_ms = settings.debounce_ms

        self.active = False
        self.is_processing = False
        self.last_decision: ProtectionDecision | None = None
        self.decision_history: deque[ProtectionDecision] = deque(maxlen=DECISION_HISTORY)
        self._buffer: list[FileChangeEvent] = []
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    # Lifecycle ------------------------------------------------------------

    async def init(self) -> None:
        if self.active:
            return
        self._loop = asyncio.get_running_loop()
        await self.orchestrator.initialize()
        await self.memory.load()
        self.active = True
        logger.info("Protection service started", extra=log_context(repo_id=self.repo_id))

    def update_config(self, **changes: Any) -> DecisionConfig:
        config = self.engine.update_config(**changes)
        if config.max_snapshots_per_minute != self.rate_limiter.max_snapshots:
            self.rate_limiter = RateLimiter(config.max_snapshots_per_minute, self.rate_limiter.window_ms)
        if isinstance(self.signal_provider, HeuristicSignalProvider):
            self.signal_provider.config = config
        logger.info("Decision config updated", extra=log_context(**config.model_dump()))
        return config

    async def dispose(self) -> None:
        self.active = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._task is not None and not self._task.done():
            await self._task
        self._task = None
        self._buffer = []
        logger.info("Protection service stopped", extra=log_context(repo_id=self.repo_id))

    # Event intake -----------------------------------------------------------

    @property
    def buffered_events(self) -> int:
        return len(self._buffer)

    def on_file_change(self, event: FileChangeEvent) -> None:
        if not self.active:
            return
        self._buffer.append(event)
        self._schedule()

    def on_file_change_threadsafe(self, event: FileChangeEvent) -> None:
        """Entry point for watcher threads."""
        if self._loop is None:
            raise RuntimeError("ProtectionService.init() has not been awaited")
        self._loop.call_soon_threadsafe(self.on_file_change, event)

    def _schedule(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_ms / 1000, self._fire)

    def _fire(self) -> None:
        self._timer = None
        if self.is_processing:
            return
        if self._loop is None:
            raise RuntimeError("ProtectionService.init() has not been awaited")
        self._task = self._loop.create_task(self._run_batch())

    async def _run_batch(self) -> None:
        try:
            await self.process_batch()
        except Exception as exc:
            logger.exception("Error processing batch: %s", exc)

    async def process_batch(self, now: int | None = None) -> BatchOutcome | None:
        """Decide on everything buffered so far; returns None if nothing ran."""
        if not self._buffer or self.is_processing:
            return None
        self.is_processing = True
        events, self._buffer = self._buffer, []
        try:
            return await self._handle(events, now_ms() if now is None else now)
        finally:
            self.is_processing = False
            if self._buffer and self.active:
                self._schedule()

    async def _handle(self, events: Sequence[FileChangeEvent], now: int) -> BatchOutcome:
        latest: dict[str, FileChangeEvent] = {}
        for event in events:
            latest[event.path] = event
        builder = ContextBuilder(self.repo_id).add_events(latest.values())
        files = builder.file_contexts()
        context = builder.build(self.signal_provider.detect(files, now), timestamp=now)
        self.engine.validate_context(context)

        decision = self.engine.make_decision(context)
        self.last_decision = decision
        self.decision_history.append(decision)
        DECISIONS.labels(outcome=_outcome_label(decision)).inc()
        logger.info(
            "Decision made",
            extra=log_context(
                create_snapshot=decision.create_snapshot,
                show_notification=decision.show_notification,
                reasons=list(decision.reasons),
                confidence=decision.confidence,
            ),
        )

        outcome = BatchOutcome(context=context, decision=decision)
        if decision.create_snapshot:
            if self.rate_limiter.record_snapshot(now):
                capture = [event.path for event in latest.values() if event.type != "deleted" and not is_binary_path(event.path)]
                try:
                    outcome.snapshot = await self._snapshot(decision, files, capture, now)
                except Exception as exc:
                    # The notification below still goes out.
                    logger.exception("Snapshot capture failed", extra=log_context(files=len(capture)))
                    outcome.snapshot_error = str(exc)
            else:
                outcome.rate_limited = True
                RATE_LIMITED.inc()
                logger.info(
                    "Snapshot skipped by rate limiter",
                    extra=log_context(wait_time_ms=self.rate_limiter.get_wait_time(now)),
                )

        if decision.show_notification:
            notification = self.notifications.adapt_decision(decision)
            await self.sink.show(
                notification,
                {
                    "file_path": files[0].path if files else None,
                    "risk_score": context.risk_score,
                    "threats": list(decision.reasons),
                    "timestamp": now,
                },
            )
            outcome.notification = notification
        return outcome

    async def _snapshot(
        self, decision: ProtectionDecision, files: Sequence[FileContext], capture: Sequence[str], now: int
    ) -> SnapshotResult | None:
        snapshot_id = None
        if capture and self.coordinator.workspace_root is not None:
            intent = self.orchestrator.build_intent(decision, files)
            snapshot_id = await self.coordinator.coordinate_snapshot_creation(
                specific_files=capture,
                name=intent.name,
                session_id=decision.context.session_id,
                trigger=intent.trigger,
                metadata={"reasons": list(decision.reasons), "risk_score": decision.context.risk_score},
            )
        result = await self.orchestrator.create_snapshot(decision, files, snapshot_id=snapshot_id, timestamp=now)
        await self._sync_content(result, snapshot_id)
        return result

    async def _sync_content(self, result: SnapshotResult | None, snapshot_id: str | None) -> None:
        """Keep the content store in step with catalog rejections and evictions."""
        if result is None:
            return
        stale = list(result.evicted)
        if not result.ok and snapshot_id:
            stale.append(snapshot_id)
        for stale_id in stale:
            await self.content_store.delete_snapshot(stale_id)

    # Operations used by the API and CLI ---------------------------------

    def decide(self, context: SaveContext) -> ProtectionDecision:
        self.engine.validate_context(context)
        decision = self.engine.make_decision(context)
        DECISIONS.labels(outcome=_outcome_label(decision)).inc()
        return decision

    async def create_manual_snapshot(
        self, files: Sequence[str] | None = None, name: str | None = None
    ) -> SnapshotResult | None:
        snapshot_id = await self.coordinator.coordinate_snapshot_creation(
            specific_files=files, name=name, trigger="manual"
        )
        captured = await self.content_store.get_snapshot(snapshot_id)
        contents = captured.contents if captured else {}
        file_contexts = [
            FileContext(
                path=path,
                extension=file_extension(path),
                size_bytes=len(content.encode("utf-8")),
                is_new=False,
                is_binary=False,
                next_hash=sha256_text(content),
            )
            for path, content in contents.items()
        ]
        decision = ProtectionDecision(
            create_snapshot=True,
            show_notification=False,
            reasons=("manual_request",),
            confidence=1.0,
            summary="Manual snapshot",
            context=DecisionContext(
                risk_score=0,
                session_id="manual",
                files_in_session=len(file_contexts),
                critical_file_count=0,
            ),
        )
        result = await self.orchestrator.create_snapshot(decision, file_contexts, snapshot_id=snapshot_id)
        await self._sync_content(result, snapshot_id)
        return result

    async def restore(
        self,
        snapshot_id: str,
        files: Sequence[str] | None = None,
        dry_run: bool = False,
        resolver: ConflictResolver | None = None,
    ) -> RestoreResult:
        result = await self.coordinator.restore_to_snapshot(snapshot_id, files=files, dry_run=dry_run, resolver=resolver)
        if result.ok and result.kind == "restored":
            await self.orchestrator.mark_protected(snapshot_id)
            self.memory.update_protection_status("protected")
            await self.memory.save()
        return result

    async def preview_conflicts(self, snapshot_id: str, files: Sequence[str] | None = None) -> list[FileConflict]:
        return await self.coordinator.preview_conflicts(snapshot_id, files)

    async def delete_snapshot(self, snapshot_id: str) -> bool:
        in_catalog = await self.orchestrator.delete_snapshot(snapshot_id)
        in_store = await self.content_store.delete_snapshot(snapshot_id)
        return in_catalog or in_store

    async def cleanup(self, now: int | None = None) -> list[str]:
        expired = await self.orchestrator.cleanup(now)
        for snapshot_id in expired:
            await self.content_store.delete_snapshot(snapshot_id)
        return expired

    def stats(self) -> dict[str, Any]:
        history = list(self.decision_history)
        return {
            "active": self.active,
            "is_processing": self.is_processing,
            "buffered_events": len(self._buffer),
            "decision_count": len(history),
            "avg_confidence": round(sum(d.confidence for d in history) / len(history), 2) if history else 0.0,
            "snapshot_count": len(self.orchestrator.get_snapshots()),
            "workspace_root": str(self.coordinator.workspace_root) if self.coordinator.workspace_root else None,
            "protection_status": self.memory.get_context().protection_status,
        }


def workspace_relative(root: Path | None, path: Path) -> str:
    """Event path relative to ``root`` when it lies inside it, else absolute posix."""
    resolved = path.resolve()
    if root is not None and resolved.is_relative_to(root.resolve()):
        return resolved.relative_to(root.resolve()).as_posix()
    return path.as_posix()


__all__ = [
    "BatchOutcome",
    "HeuristicSignalProvider",
    "ProtectionService",
    "SignalProvider",
    "workspace_relative",
]
