"""Coordinated snapshot capture and restore with tracked operations."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Literal, Mapping, Protocol, Sequence

import orjson

from snapback.core.errors import (
    OperationBlockedError,
    SnapbackError,
    SnapshotNotFoundError,
    WorkspaceNotFoundError,
)
from snapback.core.logging import get_logger, log_context
from snapback.core.metrics import OPERATION_DURATION
from snapback.db.snapshots import SnapshotContentStore, SnapshotManifest, SnapshotWithContent
from snapback.domain.types import TERMINAL_STATUSES, Operation, OperationStatus
from snapback.ops.filesystem import Filesystem, LocalFilesystem
from snapback.ops.memory import WorkspaceMemory
from snapback.ops.walker import (
    IgnoreMatcher,
    WorkspaceWalker,
    chunked,
    collect_workspace_files,
    load_ignore_patterns,
)
from snapback.utils.ids import operation_id
from snapback.utils.time import now_ms

logger = get_logger(__name__)

ConflictType = Literal["modified", "added", "deleted"]
ResolutionStrategy = Literal["use_snapshot", "use_current", "merge", "skip"]
RestoreKind = Literal["restored", "dry_run", "cancelled", "nothing_selected", "not_found", "failed"]

MAX_FINISHED_OPERATIONS = 100


@dataclass(frozen=True, slots=True)
class WalkLimits:
    max_files: int = 10_000
    max_file_size: int = 10 * 1024 * 1024
    max_total_size: int = 500 * 1024 * 1024
    batch_size: int = 100
    batch_memory_bytes: int = 50 * 1024 * 1024


@dataclass(frozen=True, slots=True)
class FileConflict:
    file: str
    snapshot_content: str
    conflict_type: ConflictType
    current_content: str = ""


@dataclass(frozen=True, slots=True)
class ConflictResolution:
    file: str
    resolution: ResolutionStrategy


class ConflictResolver(Protocol):
    async def resolve_conflicts(self, conflicts: Sequence[FileConflict]) -> list[ConflictResolution] | None: ...


class StaticConflictResolver:
    """Apply one strategy to every conflict; ``None`` behaves as a cancellation."""

    def __init__(self, strategy: ResolutionStrategy | None) -> None:
        self.strategy = strategy

    async def resolve_conflicts(self, conflicts: Sequence[FileConflict]) -> list[ConflictResolution] | None:
        if self.strategy is None:
            return None
        return [ConflictResolution(file=conflict.file, resolution=self.strategy) for conflict in conflicts]


@dataclass(slots=True)
class RestoreResult:
    ok: bool
    kind: RestoreKind
    snapshot_id: str
    operation_id: str
    files_restored: list[str] = field(default_factory=list)
    conflicts: list[FileConflict] = field(default_factory=list)
    detail: str | None = None

    def __bool__(self) -> bool:
        return self.ok


def wrap_content(content: str, previous: str) -> str:
    return orjson.dumps({"content": content, "previousBlob": previous}).decode("utf-8")


def unwrap_content(raw: str) -> str:
    """Return the current content from an envelope, or ``raw`` for plain records."""
    try:
        parsed = orjson.loads(raw)
    except orjson.JSONDecodeError:
        return raw
    if isinstance(parsed, dict) and isinstance(parsed.get("content"), str):
        return parsed["content"]
    return raw


class OperationCoordinator:
    """Track operations and run snapshot capture and restore against a workspace."""

    def __init__(
        self,
        workspace_root: Path | None,
        content_store: SnapshotContentStore,
        workspace_memory: WorkspaceMemory,
        filesystem: Filesystem | None = None,
        conflict_resolver: ConflictResolver | None = None,
        limits: WalkLimits | None = None,
        max_finished_operations: int = MAX_FINISHED_OPERATIONS,
    ) -> None:
        self.workspace_root = workspace_root
        self.content_store = content_store
        self.workspace_memory = workspace_memory
        self.filesystem = filesystem or LocalFilesystem()
        self.conflict_resolver = conflict_resolver
        self.limits = limits or WalkLimits()
        self.max_finished_operations = max_finished_operations
        self._operations: dict[str, Operation] = {}

    # Operation registry -------------------------------------------------

    def start_operation(self, op_id: str, name: str, dependencies: Iterable[str] | None = None) -> Operation:
        """Register ``op_id`` and move it to running once its dependencies completed.

        Calling again for a still-pending id re-checks its dependencies.
        """
        operation = self._operations.get(op_id)
        if operation is None or operation.status != "pending":
            operation = Operation(
                id=op_id,
                name=name,
                status="pending",
                progress=0,
                start_time=now_ms(),
                dependencies=list(dependencies) if dependencies else None,
            )
            self._operations[op_id] = operation
        waiting = self._unsatisfied(operation)
        if waiting:
            raise OperationBlockedError(op_id, waiting)
        self.update_operation_status(op_id, "running")
        return operation

    def _unsatisfied(self, operation: Operation) -> list[str]:
        return [
            dep
            for dep in operation.dependencies or []
            if dep not in self._operations or self._operations[dep].status != "completed"
        ]

    def update_operation_progress(self, op_id: str, progress: int) -> None:
        operation = self._operations.get(op_id)
        if operation is not None:
            operation.progress = min(100, max(0, int(progress)))

    def update_operation_status(self, op_id: str, status: OperationStatus) -> None:
        operation = self._operations.get(op_id)
        if operation is None:
            return
        operation.status = status
        if status in TERMINAL_STATUSES:
            operation.end_time = now_ms()
            OPERATION_DURATION.labels(name=operation.name, status=status).observe(
                (operation.end_time - operation.start_time) / 1000
            )
            self._prune_finished()

    def _prune_finished(self) -> None:
        """Drop the oldest finished operations past the cap, keeping ones still awaited as dependencies."""
        finished = [op.id for op in self._operations.values() if op.status in TERMINAL_STATUSES]
        excess = len(finished) - self.max_finished_operations
        if excess <= 0:
            return
        awaited = {
            dep
            for op in self._operations.values()
            if op.status not in TERMINAL_STATUSES
            for dep in op.dependencies or []
        }
        for op_id in finished:
            if excess <= 0:
                break
            if op_id in awaited:
                continue
            del self._operations[op_id]
            excess -= 1

    def get_operation(self, op_id: str) -> Operation | None:
        return self._operations.get(op_id)

    def get_all_operations(self) -> list[Operation]:
        return list(self._operations.values())

    def can_start_operation(self, op_id: str) -> bool:
        operation = self._operations.get(op_id)
        if operation is None:
            return True
        return not self._unsatisfied(operation)

    def _complete(self, op_id: str) -> None:
        self.update_operation_progress(op_id, 100)
        self.update_operation_status(op_id, "completed")

    # Snapshot capture ---------------------------------------------------

    def _require_root(self) -> Path:
        if self.workspace_root is None:
            raise WorkspaceNotFoundError("No workspace folder found")
        return self.workspace_root

    def _resolve(self, root: Path, file_path: str | Path) -> Path:
        path = Path(file_path)
        return path if path.is_absolute() else root / path

    @staticmethod
    def _relative(root: Path, path: Path) -> str:
        return Path(os.path.relpath(path, root)).as_posix()

    async def coordinate_snapshot_creation(
        self,
        specific_files: Sequence[str | Path] | None = None,
        provided_contents: Mapping[str, str] | None = None,
        name: str | None = None,
        session_id: str | None = None,
        trigger: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> str:
        """Capture file contents into the content store and return the new snapshot id.

        ``specific_files`` selects incremental mode; otherwise the workspace is
        walked. ``provided_contents`` holds pre-save contents keyed by relative
        path. Any failure marks the operation failed and propagates.
        """
        op_id = operation_id("snapshot", now_ms())
        operation = self.start_operation(op_id, "Create Snapshot")
        try:
            self.update_operation_progress(op_id, 10)
            root = self._require_root()
            incremental = bool(specific_files)

            if incremental:
                targets = [self._resolve(root, item) for item in specific_files or []]
            else:
                patterns = await load_ignore_patterns(root, self.filesystem)
                walker = WorkspaceWalker(root, self.filesystem, IgnoreMatcher(patterns))
                entries = await collect_workspace_files(
                    walker, self.limits.max_files, self.limits.max_total_size
                )
                targets = [entry.path for entry in entries]
                logger.info(
                    "Workspace scan completed",
                    extra=log_context(files=len(targets), skipped_dirs=walker.skipped_dirs),
                )

            self.update_operation_progress(op_id, 30)
            contents = await self._read_files(op_id, root, targets)
            self.update_operation_progress(op_id, 85)

            previous = dict(provided_contents or {})
            files: dict[str, str] = {}
            for rel_path, content in contents.items():
                before = previous.get(rel_path)
                files[rel_path] = wrap_content(content, before) if before is not None and before != content else content
            for rel_path, before in previous.items():
                files.setdefault(rel_path, before)

            count = len(specific_files or [])
            snapshot_name = name or (f"Auto-save: {count} file(s)" if incremental else "Manual snapshot")
            snapshot_meta: dict[str, Any] = {"risk_score": 0, **(metadata or {})}
            if session_id:
                snapshot_meta["session_id"] = session_id
            manifest = await self.content_store.create_snapshot(
                files,
                name=snapshot_name,
                trigger=trigger or ("auto" if incremental else "manual"),
                metadata=snapshot_meta,
            )

            self.workspace_memory.update_last_snapshot(manifest.id)
            await self.workspace_memory.save()
            self.update_operation_progress(op_id, 90)
            self._complete(op_id)
            logger.info(
                "Snapshot captured",
                extra=log_context(operation_id=op_id, snapshot_id=manifest.id, files=len(files)),
            )
            return manifest.id
        except Exception as exc:
            logger.exception("Snapshot creation failed: %s", exc)
            self.update_operation_status(op_id, "failed")
            operation.detail = str(exc)
            raise

    async def _read_files(self, op_id: str, root: Path, targets: Sequence[Path]) -> dict[str, str]:
        contents: dict[str, str] = {}
        total = len(targets)
        processed = 0
        for batch in chunked(targets, self.limits.batch_size):
            pending: list[Path] = []
            batch_memory = 0
            for path in batch:
                try:
                    stat = await self.filesystem.stat(path)
                except OSError as exc:
                    logger.warning("Failed to stat %s during snapshot: %s", path, exc)
                    continue
                if stat.size > self.limits.max_file_size:
                    logger.warning(
                        "Skipping large file during snapshot",
                        extra=log_context(file=str(path), size=stat.size),
                    )
                    continue
                if pending and batch_memory + stat.size > self.limits.batch_memory_bytes:
                    await self._flush(root, pending, contents)
                    pending = []
                    batch_memory = 0
                pending.append(path)
                batch_memory += stat.size
            if pending:
                await self._flush(root, pending, contents)
            processed += len(batch)
            self.update_operation_progress(op_id, min(80, 30 + (processed * 50) // total))
        return contents

    async def _flush(self, root: Path, pending: Sequence[Path], contents: dict[str, str]) -> None:
        results = await asyncio.gather(*(self._read_one(path) for path in pending))
        for path, text in zip(pending, results):
            if text is not None:
                contents[self._relative(root, path)] = text

    async def _read_one(self, path: Path) -> str | None:
        try:
            return await self.filesystem.read_text(path)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Failed to read %s during snapshot: %s", path, exc)
            return None

    # Restore --------------------------------------------------------------

    async def list_snapshots(self) -> list[SnapshotManifest]:
        return await self.content_store.list_snapshots()

    async def _load_snapshot(self, snapshot_id: str) -> SnapshotWithContent:
        snapshot = await self.content_store.get_snapshot(snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(snapshot_id)
        return snapshot

    async def preview_conflicts(self, snapshot_id: str, files: Sequence[str] | None = None) -> list[FileConflict]:
        """Conflicts a restore would cause, without writing or consulting a resolver."""
        root = self._require_root()
        snapshot = await self._load_snapshot(snapshot_id)
        return await self._compute_conflicts(root, snapshot, files)

    async def _compute_conflicts(
        self, root: Path, snapshot: SnapshotWithContent, files: Sequence[str] | None
    ) -> list[FileConflict]:
        conflicts: list[FileConflict] = []
        for rel_path in files or list(snapshot.contents):
            raw = snapshot.contents.get(rel_path)
            if raw is None:
                continue
            snapshot_content = unwrap_content(raw)
            try:
                current = await self.filesystem.read_text(self._target(root, rel_path))
            except (OSError, UnicodeDecodeError):
                conflicts.append(FileConflict(file=rel_path, snapshot_content=snapshot_content, conflict_type="added"))
                continue
            if current != snapshot_content:
                conflicts.append(
                    FileConflict(
                        file=rel_path,
                        snapshot_content=snapshot_content,
                        conflict_type="modified",
                        current_content=current,
                    )
                )
        return conflicts

    def _target(self, root: Path, rel_path: str) -> Path:
        target = (root / rel_path).resolve()
        if not target.is_relative_to(root.resolve()):
            raise SnapbackError(f"Refusing to restore outside the workspace: {rel_path}")
        return target

    async def _write_files(self, root: Path, snapshot: SnapshotWithContent, targets: Iterable[str]) -> list[str]:
        written: list[str] = []
        for rel_path in targets:
            raw = snapshot.contents.get(rel_path)
            if raw is None:
                logger.warning("File %s is not part of snapshot %s", rel_path, snapshot.id)
                continue
            await self.filesystem.write_bytes(self._target(root, rel_path), unwrap_content(raw).encode("utf-8"))
            written.append(rel_path)
        return written

    async def restore_to_snapshot(
        self,
        snapshot_id: str,
        files: Sequence[str] | None = None,
        dry_run: bool = False,
        resolver: ConflictResolver | None = None,
    ) -> RestoreResult:
        """Restore snapshot contents into the workspace.

        Never raises: failures mark the operation failed and come back as a
        falsy :class:`RestoreResult`.
        """
        op_id = operation_id("restore", now_ms())
        operation = self.start_operation(op_id, "Restore from Snapshot")
        operation.detail = f"snapshot:{snapshot_id}"

        def result(ok: bool, kind: RestoreKind, **extra: Any) -> RestoreResult:
            return RestoreResult(ok=ok, kind=kind, snapshot_id=snapshot_id, operation_id=op_id, **extra)

        try:
            root = self._require_root()
            self.update_operation_progress(op_id, 10)
            snapshot = await self._load_snapshot(snapshot_id)
            self.update_operation_progress(op_id, 30)

            if dry_run:
                conflicts = await self._compute_conflicts(root, snapshot, files)
                resolver = resolver or self.conflict_resolver
                if conflicts and resolver is not None:
                    resolutions = await resolver.resolve_conflicts(conflicts)
                    if resolutions is None:
                        self._complete(op_id)
                        return result(False, "cancelled", conflicts=conflicts)
                    selected = [r.file for r in resolutions if r.resolution == "use_snapshot"]
                    if not selected:
                        self._complete(op_id)
                        return result(False, "nothing_selected", conflicts=conflicts)
                    self.update_operation_progress(op_id, 60)
                    written = await self._write_files(root, snapshot, selected)
                    self.update_operation_progress(op_id, 90)
                    self._complete(op_id)
                    return result(True, "restored", files_restored=written, conflicts=conflicts)
                self.update_operation_progress(op_id, 90)
                self._complete(op_id)
                return result(True, "dry_run", conflicts=conflicts)

            self.update_operation_progress(op_id, 60)
            written = await self._write_files(root, snapshot, files or list(snapshot.contents))
            self.update_operation_progress(op_id, 90)
            self._complete(op_id)
            logger.info(
                "Snapshot restored",
                extra=log_context(operation_id=op_id, snapshot_id=snapshot_id, files=len(written)),
            )
            return result(True, "restored", files_restored=written)
        except Exception as exc:
            logger.exception("Restore failed", extra=log_context(snapshot_id=snapshot_id))
            self.update_operation_status(op_id, "failed")
            operation.detail = str(exc)
            kind: RestoreKind = "not_found" if isinstance(exc, SnapshotNotFoundError) else "failed"
            return result(False, kind, detail=str(exc))


__all__ = [
    "ConflictResolution",
    "ConflictResolver",
    "FileConflict",
    "MAX_FINISHED_OPERATIONS",
    "OperationCoordinator",
    "RestoreResult",
    "StaticConflictResolver",
    "WalkLimits",
    "unwrap_content",
    "wrap_content",
]
