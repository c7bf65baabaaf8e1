"""Persistent per-workspace context: last snapshot, protection status, recent activity."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Literal

from snapback.core.logging import get_logger
from snapback.db.kv import KeyValueStore
from snapback.utils.time import now_ms

ProtectionStatus = Literal["protected", "atRisk", "unprotected", "analyzing"]

MEMORY_KEY = "snapback.workspace"
MAX_RECENT_FILES = 10
MAX_RECENT_ACTIONS = 50

logger = get_logger(__name__)


@dataclass(slots=True)
class WorkspaceContext:
    last_active_file: str | None = None
    recent_files: list[str] = field(default_factory=list)
    last_snapshot: str | None = None
    protection_status: ProtectionStatus = "unprotected"
    recent_actions: list[dict[str, Any]] = field(default_factory=list)


_FIELD_NAMES = frozenset(f.name for f in fields(WorkspaceContext))


class WorkspaceMemory:
    def __init__(self, store: KeyValueStore) -> None:
        self.store = store
        self._context = WorkspaceContext()

    async def load(self) -> WorkspaceContext:
        data = await self.store.get(MEMORY_KEY)
        if data:
            self._context = WorkspaceContext(**{k: v for k, v in data.items() if k in _FIELD_NAMES})
        else:
            self._context = WorkspaceContext(protection_status="protected")
        return self.get_context()

    async def save(self) -> None:
        await self.store.set(MEMORY_KEY, asdict(self._context))
        logger.debug("Workspace context saved")

    def _add_action(self, action: str) -> None:
        self._context.recent_actions.insert(0, {"action": action, "timestamp": now_ms()})
        del self._context.recent_actions[MAX_RECENT_ACTIONS:]

    def update_last_active_file(self, file_path: str) -> None:
        recent = [file_path, *(f for f in self._context.recent_files if f != file_path)]
        self._context.last_active_file = file_path
        self._context.recent_files = recent[:MAX_RECENT_FILES]
        self._add_action("file_opened")

    def update_last_snapshot(self, snapshot_id: str) -> None:
        self._context.last_snapshot = snapshot_id
        self._add_action("snapshot_created")

    def update_protection_status(self, status: ProtectionStatus) -> None:
        self._context.protection_status = status
        self._add_action("status_changed")

    @property
    def last_snapshot_id(self) -> str | None:
        return self._context.last_snapshot

    def get_context(self) -> WorkspaceContext:
        return WorkspaceContext(**asdict(self._context))


__all__ = ["MEMORY_KEY", "ProtectionStatus", "WorkspaceContext", "WorkspaceMemory"]
