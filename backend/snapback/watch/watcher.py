"""Filesystem watcher that emits FileChangeEvents for a workspace."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict

from watchdog.events import FileSystemEvent, PatternMatchingEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from snapback.domain.context_builder import ChangeType, FileChangeEvent
from snapback.ops.walker import IgnoreMatcher
from snapback.service import workspace_relative
from snapback.utils.time import now_ms

FileEventCallback = Callable[[FileChangeEvent], None]


@dataclass
class WatchedWorkspace:
    id: str
    path: Path
    include: list[str]
    exclude: list[str]
    callback: FileEventCallback
    ignore: IgnoreMatcher | None = None


def expand_patterns(pattern: str) -> list[str]:
    """Split a comma list and expand one `{a,b}` group per entry."""
    patterns: list[str] = []
    for part in _split_top_level(pattern):
        part = part.strip()
        if not part:
            continue
        if "{" in part and "}" in part:
            prefix = part[: part.index("{")]
            suffix = part[part.index("}") + 1 :]
            options = part[part.index("{") + 1 : part.index("}")].split(",")
            patterns.extend(f"{prefix}{option}{suffix}" for option in options)
        else:
            patterns.append(part)
    return patterns


def _split_top_level(pattern: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    current = ""
    for char in pattern:
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += char
    parts.append(current)
    return parts


def _size_of(path: Path) -> int | None:
    try:
        return path.stat().st_size
    except OSError:
        return None


class WorkspaceEventHandler(PatternMatchingEventHandler):
    """Translate watchdog events into FileChangeEvents relative to the workspace."""

    def __init__(self, workspace: WatchedWorkspace) -> None:
        super().__init__(
            patterns=workspace.include or ["*"],
            ignore_patterns=workspace.exclude,
            ignore_directories=True,
            case_sensitive=False,
        )
        self.workspace = workspace

    def emit(self, change: ChangeType, raw_path: str | bytes) -> None:
        path = Path(raw_path.decode() if isinstance(raw_path, bytes) else raw_path)
        relative = workspace_relative(self.workspace.path, path)
        if self.workspace.ignore is not None and self.workspace.ignore.ignores(relative):
            return
        self.workspace.callback(
            FileChangeEvent(
                path=relative,
                type=change,
                timestamp=now_ms(),
                size_bytes=None if change == "deleted" else _size_of(path),
            )
        )

    def on_created(self, event: FileSystemEvent) -> None:  # pragma: no cover - requires filesystem
        self.emit("created", event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:  # pragma: no cover - requires filesystem
        self.emit("modified", event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:  # pragma: no cover - requires filesystem
        self.emit("deleted", event.src_path)
        self.emit("created", event.dest_path)

    def on_deleted(self, event: FileSystemEvent) -> None:  # pragma: no cover - requires filesystem
        self.emit("deleted", event.src_path)


class Watcher:
    """High-level wrapper around watchdog observers."""

    def __init__(self) -> None:
        self._observer: BaseObserver = Observer()
        self._lock = threading.Lock()
        self._workspaces: Dict[str, WatchedWorkspace] = {}
        self._started = False

    def add_workspace(
        self,
        workspace_id: str,
        path: Path,
        callback: FileEventCallback,
        include: list[str] | None = None,
        exclude: list[str] | None = None,
        ignore: IgnoreMatcher | None = None,
    ) -> WorkspaceEventHandler:
        normalized_path = path.expanduser().resolve()
        watched = WatchedWorkspace(
            id=workspace_id,
            path=normalized_path,
            include=include or ["*"],
            exclude=exclude or [],
            callback=callback,
            ignore=ignore,
        )
        handler = WorkspaceEventHandler(watched)
        with self._lock:
            self._observer.schedule(event_handler=handler, path=str(normalized_path), recursive=True)
            self._workspaces[workspace_id] = watched
        return handler

    def remove_workspace(self, workspace_id: str) -> None:
        with self._lock:
            watched = self._workspaces.pop(workspace_id, None)
            if watched is None:
                return
            self._observer.unschedule_all()
            for remaining in self._workspaces.values():
                self._observer.schedule(WorkspaceEventHandler(remaining), str(remaining.path), recursive=True)

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self._observer.start()
            self._started = True

    def stop(self) -> None:
        with self._lock:
            if not self._started:
                return
            self._observer.stop()
            self._observer.join(timeout=5)
            self._started = False

    def close(self) -> None:
        self.stop()
        with self._lock:
            self._observer.unschedule_all()
            self._workspaces.clear()


__all__ = ["Watcher", "WorkspaceEventHandler", "FileEventCallback", "expand_patterns"]
