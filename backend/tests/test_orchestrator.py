"""Tests for the snapshot catalog orchestrator."""

import asyncio

from snapback.db.kv import MemoryKeyValueStore
from snapback.domain.orchestrator import (
    STORAGE_KEY,
    OrchestratorConfig,
    SnapshotOrchestrator,
    decision_trigger,
)
from snapback.domain.types import DecisionContext, ProtectionDecision
from snapback.utils.time import days_to_ms


def _decision(reasons=("risk_threshold",), create: bool = True, ai_tool: str | None = None) -> ProtectionDecision:
    return ProtectionDecision(
        create_snapshot=create,
        show_notification=False,
        reasons=tuple(reasons) if create else (),
        confidence=0.5 if create else 0.0,
        summary="",
        context=DecisionContext(
            risk_score=65,
            session_id="sess-1",
            files_in_session=1,
            critical_file_count=0,
            ai_tool_name=ai_tool,
        ),
    )


def test_not_requested_returns_none(file_context) -> None:
    orchestrator = SnapshotOrchestrator("repo")
    result = asyncio.run(orchestrator.create_snapshot(_decision(create=False), [file_context("a.py")]))
    assert result is None
    assert orchestrator.get_snapshots() == []


def test_create_skips_binary_files_and_names_by_trigger(file_context) -> None:
    orchestrator = SnapshotOrchestrator("repo")
    files = [file_context("src/a.ts", size=40), file_context("logo.png", size=999, binary=True)]
    result = asyncio.run(orchestrator.create_snapshot(_decision(("burst_pattern",)), files, timestamp=1_000))

    assert result.ok and result.kind == "created"
    snapshot = result.snapshot
    assert snapshot.file_count == 1
    assert snapshot.total_size == 40
    assert snapshot.metadata.trigger == "burst"
    assert snapshot.name.startswith("SnapBack-BURST-")
    assert snapshot.id.startswith("snap-repo")
    assert orchestrator.total_storage_used == 40


def test_evicts_oldest_first_when_count_limit_reached(file_context) -> None:
    orchestrator = SnapshotOrchestrator("repo", OrchestratorConfig(max_snapshots=2))
    for index, ts in enumerate((300, 100, 200)):
        asyncio.run(
            orchestrator.create_snapshot(_decision(), [file_context("a.py", size=10)], snapshot_id=f"s{index}", timestamp=ts)
        )
    result = asyncio.run(
        orchestrator.create_snapshot(_decision(), [file_context("b.py", size=10)], snapshot_id="s3", timestamp=400)
    )

    assert result.evicted == ["s2"]
    assert {s.id for s in orchestrator.get_snapshots()} == {"s0", "s3"}
    assert orchestrator.total_storage_used == 20


def test_evicts_until_bytes_fit(file_context) -> None:
    orchestrator = SnapshotOrchestrator("repo", OrchestratorConfig(max_storage_bytes=100))
    asyncio.run(orchestrator.create_snapshot(_decision(), [file_context("a", size=40)], snapshot_id="old", timestamp=1))
    asyncio.run(orchestrator.create_snapshot(_decision(), [file_context("b", size=40)], snapshot_id="mid", timestamp=2))
    result = asyncio.run(
        orchestrator.create_snapshot(_decision(), [file_context("c", size=50)], snapshot_id="new", timestamp=3)
    )

    assert result.evicted == ["old"]
    assert orchestrator.total_storage_used == 90
    stats = orchestrator.get_storage_stats()
    assert stats.available == 10
    assert stats.utilization_percent == 90.0


def test_candidate_larger_than_budget_is_rejected(file_context) -> None:
    orchestrator = SnapshotOrchestrator("repo", OrchestratorConfig(max_storage_bytes=100))
    asyncio.run(orchestrator.create_snapshot(_decision(), [file_context("a", size=10)], snapshot_id="keep", timestamp=1))
    result = asyncio.run(orchestrator.create_snapshot(_decision(), [file_context("huge", size=101)]))

    assert result.ok is False
    assert result.kind == "storage_exceeded"
    assert [s.id for s in orchestrator.get_snapshots()] == ["keep"]


def test_catalog_persists_and_hydrates(file_context) -> None:
    store = MemoryKeyValueStore()
    first = SnapshotOrchestrator("repo", storage=store)
    assert first.ready is False
    asyncio.run(first.initialize())
    asyncio.run(
        first.create_snapshot(_decision(("ai_detected",), ai_tool="copilot"), [file_context("a", size=7)], snapshot_id="s1")
    )
    asyncio.run(first.mark_protected("s1", at=123))

    second = SnapshotOrchestrator("repo", storage=store)
    asyncio.run(second.initialize())
    snapshot = second.get_snapshot("s1")
    assert snapshot is not None
    assert snapshot.metadata.trigger == "ai-detected"
    assert snapshot.metadata.ai_tool_name == "copilot"
    assert snapshot.metadata.last_protected_at == 123
    assert second.total_storage_used == 7


def test_hydration_skips_malformed_entries() -> None:
    store = MemoryKeyValueStore({STORAGE_KEY: [{"name": "no id"}, {"id": "ok", "timestamp": 5, "total_size": 3}]})
    orchestrator = SnapshotOrchestrator("repo", storage=store)
    asyncio.run(orchestrator.initialize())
    assert [s.id for s in orchestrator.get_snapshots()] == ["ok"]
    assert orchestrator.total_storage_used == 3


def test_cleanup_removes_expired(file_context) -> None:
    orchestrator = SnapshotOrchestrator("repo", OrchestratorConfig(retention_days=1))
    now = days_to_ms(10)
    asyncio.run(orchestrator.create_snapshot(_decision(), [file_context("a")], snapshot_id="stale", timestamp=now - days_to_ms(2)))
    asyncio.run(orchestrator.create_snapshot(_decision(), [file_context("b")], snapshot_id="fresh", timestamp=now - 1_000))

    assert asyncio.run(orchestrator.cleanup(now)) == ["stale"]
    assert [s.id for s in orchestrator.get_snapshots()] == ["fresh"]


def test_delete_and_restore_capability(file_context) -> None:
    orchestrator = SnapshotOrchestrator("repo")
    asyncio.run(orchestrator.create_snapshot(_decision(), [file_context("a"), file_context("b")], snapshot_id="s1"))

    capability = orchestrator.restore_snapshot("s1")
    assert capability.success and capability.files_restored == 2
    assert asyncio.run(orchestrator.delete_snapshot("s1")) is True
    assert asyncio.run(orchestrator.delete_snapshot("s1")) is False
    assert orchestrator.restore_snapshot("s1").success is False


def test_decision_trigger_priority() -> None:
    assert decision_trigger(_decision(("manual_request",))) == "manual"
    assert decision_trigger(_decision(("critical_file", "burst_pattern"))) == "burst"
    assert decision_trigger(_decision(("ai_detected", "burst_pattern"))) == "ai-detected"
    assert decision_trigger(_decision(("risk_threshold",))) == "auto"


def test_unrecoverable_entries_are_listed_but_not_restorable() -> None:
    store = MemoryKeyValueStore(
        {
            STORAGE_KEY: [
                {"id": "kept", "timestamp": 5, "file_count": 2},
                {"id": "corrupt", "timestamp": 6, "recoverable": False},
            ]
        }
    )
    orchestrator = SnapshotOrchestrator("repo", storage=store)
    asyncio.run(orchestrator.initialize())

    assert [s.id for s in orchestrator.get_snapshots()] == ["kept", "corrupt"]
    assert [s.id for s in orchestrator.get_recoverable_snapshots()] == ["kept"]
    assert orchestrator.restore_snapshot("kept").files_restored == 2
    assert orchestrator.restore_snapshot("corrupt").success is False
