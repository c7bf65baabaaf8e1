"""Tests for the protection service pipeline."""

import asyncio
from pathlib import Path

import pytest

from snapback.core.config import Settings
from snapback.db.kv import MemoryKeyValueStore
from snapback.db.snapshots import SQLiteSnapshotStore
from snapback.db.sqlite import MEMORY_PATH, SQLiteDatabase
from snapback.domain.context_builder import DetectionEngineResult, FileChangeEvent
from snapback.domain.types import FileContext
from snapback.service import HeuristicSignalProvider, ProtectionService

E2E_PATHS = [".env", "src/a.ts", "src/b.ts", "src/c.ts", "src/d.ts"]


class StaticSignals:
    def __init__(self, risk_score: float = 45) -> None:
        self.risk_score = risk_score

    def detect(self, files, now) -> DetectionEngineResult:
        return DetectionEngineResult(
            ai_detected=False,
            ai_confidence=0.0,
            risk_score=self.risk_score,
            burst_detected=True,
            contains_critical_files=True,
            critical_file_count=1,
            session_id="sess-e2e",
            session_file_count=len(files),
            session_duration_ms=1_000,
        )


class RecordingSink:
    def __init__(self) -> None:
        self.shown = []

    async def show(self, notification, context) -> None:
        self.shown.append((notification, context))


def _service(settings: Settings, **kwargs) -> ProtectionService:
    database = SQLiteDatabase(MEMORY_PATH)
    database.ensure_schema()
    return ProtectionService(settings, MemoryKeyValueStore(), SQLiteSnapshotStore(database), **kwargs)


def _events(paths, change: str = "modified") -> list[FileChangeEvent]:
    return [FileChangeEvent(path, change, timestamp=1, size_bytes=10) for path in paths]


def test_end_to_end_burst_with_critical_file() -> None:
    sink = RecordingSink()
    service = _service(Settings(), signal_provider=StaticSignals(), notification_sink=sink)

    async def scenario():
        await service.init()
        for event in _events(E2E_PATHS):
            service.on_file_change(event)
        outcome = await service.process_batch(now=1_000_000)
        await service.dispose()
        return outcome

    outcome = asyncio.run(scenario())

    assert outcome.decision.create_snapshot is True
    assert outcome.decision.show_notification is True
    assert outcome.decision.reasons == ("critical_file", "burst_pattern")
    assert outcome.snapshot.ok is True
    assert outcome.snapshot.snapshot.metadata.trigger == "burst"
    assert outcome.snapshot.snapshot.file_count == 5
    notification, context = sink.shown[0]
    assert notification.type == "alert"
    assert context["threats"] == ["critical_file", "burst_pattern"]
    assert context["file_path"] == ".env"
    assert context["risk_score"] == 45


def test_events_are_deduplicated_by_path() -> None:
    service = _service(Settings(), signal_provider=StaticSignals())

    async def scenario():
        await service.init()
        for event in _events(["a.ts", "a.ts", "b.ts"]):
            service.on_file_change(event)
        outcome = await service.process_batch(now=5_000)
        await service.dispose()
        return outcome

    outcome = asyncio.run(scenario())
    assert [f.path for f in outcome.context.files] == ["a.ts", "b.ts"]


def test_rate_limiter_gates_snapshots() -> None:
    service = _service(Settings(max_snapshots_per_minute=1), signal_provider=StaticSignals(risk_score=80))

    async def scenario():
        await service.init()
        outcomes = []
        for now in (1_000, 2_000):
            service.on_file_change(FileChangeEvent("src/a.ts", "modified", timestamp=now))
            outcomes.append(await service.process_batch(now=now))
        await service.dispose()
        return outcomes

    first, second = asyncio.run(scenario())
    assert first.snapshot is not None and first.rate_limited is False
    assert second.decision.create_snapshot is True
    assert second.snapshot is None
    assert second.rate_limited is True
    assert len(service.orchestrator.get_snapshots()) == 1


def test_inactive_service_ignores_events() -> None:
    service = _service(Settings())
    service.on_file_change(FileChangeEvent("a.ts", "modified"))
    assert service.buffered_events == 0


def test_debounce_fires_batch() -> None:
    service = _service(Settings(debounce_ms=10), signal_provider=StaticSignals(risk_score=0))

    async def scenario():
        await service.init()
        service.on_file_change(FileChangeEvent("a.ts", "modified"))
        service.on_file_change(FileChangeEvent("b.ts", "modified"))
        await asyncio.sleep(0.2)
        await service.dispose()

    asyncio.run(scenario())
    assert len(service.decision_history) == 1
    assert service.last_decision.context.files_in_session == 2


def test_snapshot_captures_workspace_contents(workspace: Path) -> None:
    (workspace / "src").mkdir()
    for path in E2E_PATHS:
        (workspace / path).write_text(f"content of {path}", encoding="utf-8")
    (workspace / "logo.png").write_bytes(b"\x89PNG")
    service = _service(Settings(workspace_root=workspace))

    async def scenario():
        await service.init()
        for event in _events(E2E_PATHS + ["logo.png"]):
            service.on_file_change(event)
        outcome = await service.process_batch(now=10_000)
        stored = await service.content_store.get_snapshot(outcome.snapshot.snapshot.id)
        await service.dispose()
        return outcome, stored

    outcome, stored = asyncio.run(scenario())
    assert outcome.decision.reasons == ("critical_file", "burst_pattern")
    assert outcome.context.risk_score == 50
    assert sorted(stored.contents) == sorted(E2E_PATHS)
    assert stored.contents[".env"] == "content of .env"
    assert service.memory.last_snapshot_id == stored.id


def test_manual_snapshot_restore_and_delete(workspace: Path) -> None:
    (workspace / "notes.md").write_text("v1", encoding="utf-8")
    service = _service(Settings(workspace_root=workspace))

    async def scenario():
        await service.init()
        created = await service.create_manual_snapshot(["notes.md"], name="before edit")
        (workspace / "notes.md").write_text("v2", encoding="utf-8")
        restored = await service.restore(created.snapshot.id)
        deleted = await service.delete_snapshot(created.snapshot.id)
        await service.dispose()
        return created, restored, deleted

    created, restored, deleted = asyncio.run(scenario())
    assert created.snapshot.metadata.trigger == "manual"
    assert created.snapshot.total_size == 2
    assert restored.kind == "restored"
    assert (workspace / "notes.md").read_text(encoding="utf-8") == "v1"
    assert service.memory.get_context().protection_status == "protected"
    assert deleted is True
    assert service.orchestrator.get_snapshots() == []


def test_heuristic_risk_score() -> None:
    provider = HeuristicSignalProvider(Settings().decision_config())

    def ctx(path: str, size: int = 10) -> FileContext:
        return FileContext(path=path, extension="", size_bytes=size, is_new=False, is_binary=False, next_hash="")

    assert provider.estimate_risk_score([ctx("src/a.ts")]) == 0
    assert provider.estimate_risk_score([ctx("package.json"), ctx("a"), ctx("b")]) == 35
    assert provider.estimate_risk_score([ctx("big.ts", size=20_000)]) == 10
    assert provider.estimate_risk_score([ctx(f".env.{n}") for n in range(6)]) == 100

    result = provider.detect([ctx("a"), ctx("b"), ctx("c")], now=1_000)
    assert result.burst_detected is True
    assert result.session_id == "session-1000"
    assert provider.detect([ctx("a")], now=2_000).session_duration_ms == 1_000
    assert provider.detect([ctx("a")], now=1_000_000).session_id == "session-1000000"


class FailingContentStore(SQLiteSnapshotStore):
    async def create_snapshot(self, *args, **kwargs):
        raise OSError("disk full")


def test_capture_failure_still_notifies(workspace: Path) -> None:
    (workspace / "src").mkdir()
    for path in E2E_PATHS:
        (workspace / path).write_text(f"content of {path}", encoding="utf-8")
    database = SQLiteDatabase(MEMORY_PATH)
    database.ensure_schema()
    sink = RecordingSink()
    service = ProtectionService(
        Settings(workspace_root=workspace),
        MemoryKeyValueStore(),
        FailingContentStore(database),
        signal_provider=StaticSignals(),
        notification_sink=sink,
    )

    async def scenario():
        await service.init()
        for event in _events(E2E_PATHS):
            service.on_file_change(event)
        outcome = await service.process_batch(now=10_000)
        await service.dispose()
        return outcome

    outcome = asyncio.run(scenario())
    assert outcome.decision.create_snapshot is True
    assert outcome.snapshot is None
    assert outcome.snapshot_error == "disk full"
    assert outcome.notification is not None
    assert len(sink.shown) == 1
    assert service.orchestrator.get_snapshots() == []


def test_debounce_timer_before_init_raises() -> None:
    service = _service(Settings())
    with pytest.raises(RuntimeError):
        service._fire()
