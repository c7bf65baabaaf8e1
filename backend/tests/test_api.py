"""API tests for SnapBack."""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from snapback.app import create_app
from snapback.core.config import Settings


@pytest.fixture
def client(tmp_path: Path, workspace: Path):
    settings = Settings(db_path=tmp_path / "api.db", workspace_root=workspace)
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def _context(**overrides) -> dict:
    payload = {
        "repo_id": "repo-1",
        "timestamp": 1_700_000_000_000,
        "files": [{"path": "src/a.ts", "extension": ".ts", "size_bytes": 10}],
        "session_id": "sess-1",
        "session_file_count": 1,
        "risk_score": 60,
    }
    payload.update(overrides)
    return payload


def test_health(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}


def test_decide(client: TestClient) -> None:
    resp = client.post("/decide", json=_context(ai_detected=True, ai_confidence=0.8))
    assert resp.status_code == 200
    body = resp.json()
    assert body["create_snapshot"] is True
    assert body["reasons"] == ["ai_detected", "risk_threshold"]
    assert body["confidence"] == 0.66


def test_decide_rejects_invalid_context(client: TestClient) -> None:
    resp = client.post("/decide", json=_context(risk_score=150))
    assert resp.status_code == 422
    assert "risk_score" in resp.json()["detail"]


def test_snapshot_lifecycle(client: TestClient, workspace: Path) -> None:
    target = workspace / "src" / "a.ts"
    target.parent.mkdir()
    target.write_text("hello", encoding="utf-8")

    created = client.post("/snapshots", json={"files": ["src/a.ts"], "name": "checkpoint"})
    assert created.status_code == 200
    snapshot = created.json()["snapshot"]
    assert created.json()["kind"] == "created"
    assert snapshot["metadata"]["trigger"] == "manual"
    snapshot_id = snapshot["id"]

    listed = client.get("/snapshots").json()
    assert [item["id"] for item in listed] == [snapshot_id]
    assert client.get(f"/snapshots/{snapshot_id}").json()["file_count"] == 1

    target.write_text("broken", encoding="utf-8")
    conflicts = client.get(f"/snapshots/{snapshot_id}/conflicts").json()
    assert conflicts == [
        {"file": "src/a.ts", "conflict_type": "modified", "snapshot_content": "hello", "current_content": "broken"}
    ]

    restored = client.post(f"/snapshots/{snapshot_id}/restore", json={})
    assert restored.json()["kind"] == "restored"
    assert restored.json()["files_restored"] == ["src/a.ts"]
    assert target.read_text(encoding="utf-8") == "hello"

    operations = client.get("/operations").json()
    assert {op["status"] for op in operations} == {"completed"}
    assert client.get(f"/operations/{restored.json()['operation_id']}").status_code == 200

    storage = client.get("/storage").json()
    assert storage["snapshot_count"] == 1
    assert storage["used"] == 5

    assert client.delete(f"/snapshots/{snapshot_id}").status_code == 200
    assert client.delete(f"/snapshots/{snapshot_id}").status_code == 404


def test_dry_run_restore_with_resolution(client: TestClient, workspace: Path) -> None:
    (workspace / "a.ts").write_text("one", encoding="utf-8")
    snapshot_id = client.post("/snapshots", json={"files": ["a.ts"]}).json()["snapshot"]["id"]
    (workspace / "a.ts").write_text("two", encoding="utf-8")

    preview = client.post(f"/snapshots/{snapshot_id}/restore", json={"dry_run": True}).json()
    assert preview["kind"] == "dry_run"
    assert preview["conflicts"][0]["conflict_type"] == "modified"

    skipped = client.post(f"/snapshots/{snapshot_id}/restore", json={"dry_run": True, "resolution": "skip"}).json()
    assert skipped["ok"] is False
    assert skipped["kind"] == "nothing_selected"


def test_missing_snapshot_returns_404(client: TestClient) -> None:
    assert client.get("/snapshots/snap_missing").status_code == 404
    assert client.get("/snapshots/snap_missing/conflicts").status_code == 404
    assert client.post("/snapshots/snap_missing/restore", json={}).status_code == 404
    assert client.get("/operations/nope").status_code == 404


def test_status_rate_limit_and_metrics(client: TestClient) -> None:
    client.post("/decide", json=_context())

    status = client.get("/status").json()
    assert status["active"] is True
    assert status["protection_status"] == "protected"

    rate = client.get("/rate-limit").json()
    assert rate["max_snapshots"] == 4
    assert rate["window_ms"] == 60_000
    assert rate["can_snapshot"] is True

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "snapback_decisions_total" in metrics.text

    assert client.post("/snapshots/cleanup").json() == {"removed": []}
    assert client.get("/notifications").json() == []
    assert client.post("/notifications/missing/shown").status_code == 404
