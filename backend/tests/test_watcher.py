"""Tests for watcher event translation."""

from pathlib import Path

from snapback.ops.walker import IgnoreMatcher
from snapback.watch.watcher import WatchedWorkspace, WorkspaceEventHandler, expand_patterns


def test_expand_patterns() -> None:
    assert expand_patterns("**/{.git,node_modules}/**, *.tmp") == ["**/.git/**", "**/node_modules/**", "*.tmp"]
    assert expand_patterns("") == []


def test_handler_emits_relative_events(workspace: Path) -> None:
    (workspace / "src").mkdir()
    (workspace / "src" / "a.ts").write_text("abc", encoding="utf-8")
    events = []
    handler = WorkspaceEventHandler(
        WatchedWorkspace(
            id="w",
            path=workspace.resolve(),
            include=["*"],
            exclude=[],
            callback=events.append,
            ignore=IgnoreMatcher(["*.log"]),
        )
    )

    handler.emit("modified", str(workspace / "src" / "a.ts"))
    handler.emit("created", str(workspace / "debug.log"))
    handler.emit("deleted", str(workspace / "old.ts").encode())

    assert [(e.path, e.type, e.size_bytes) for e in events] == [
        ("src/a.ts", "modified", 3),
        ("old.ts", "deleted", None),
    ]
