"""Durable snapshot contents (path -> text) backing capture and restore."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

import orjson

from snapback.db.sqlite import SQLiteDatabase
from snapback.utils.ids import new_id
from snapback.utils.time import now_ms


@dataclass(slots=True)
class SnapshotManifest:
    id: str
    name: str
    trigger: str
    timestamp: int
    file_count: int
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class SnapshotWithContent:
    manifest: SnapshotManifest
    contents: dict[str, str]

    @property
    def id(self) -> str:
        return self.manifest.id


class SnapshotContentStore(Protocol):
    async def create_snapshot(
        self, files: Mapping[str, str], name: str, trigger: str, metadata: dict[str, Any] | None = None
    ) -> SnapshotManifest: ...

    async def get_snapshot(self, snapshot_id: str) -> SnapshotWithContent | None: ...

    async def list_snapshots(self) -> list[SnapshotManifest]: ...

    async def delete_snapshot(self, snapshot_id: str) -> bool: ...


class SQLiteSnapshotStore:
    """Stores each snapshot as a manifest row plus one row per file."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self.db = database

    async def create_snapshot(
        self, files: Mapping[str, str], name: str, trigger: str, metadata: dict[str, Any] | None = None
    ) -> SnapshotManifest:
        manifest = SnapshotManifest(
            id=new_id("snap"),
            name=name,
            trigger=trigger,
            timestamp=now_ms(),
            file_count=len(files),
            metadata=dict(metadata or {}),
        )
        with self.db.transaction() as cursor:
            cursor.execute(
                "INSERT INTO snapshots (id, name, trigger_type, timestamp, file_count, meta_json) VALUES (?, ?, ?, ?, ?, ?)",
                [
                    manifest.id,
                    manifest.name,
                    manifest.trigger,
                    manifest.timestamp,
                    manifest.file_count,
                    orjson.dumps(manifest.metadata).decode("utf-8"),
                ],
            )
            cursor.executemany(
                "INSERT INTO snapshot_files (snapshot_id, path, content, size_bytes) VALUES (?, ?, ?, ?)",
                [
                    (manifest.id, path, content, len(content.encode("utf-8")))
                    for path, content in files.items()
                ],
            )
        return manifest

    async def get_snapshot(self, snapshot_id: str) -> SnapshotWithContent | None:
        row = self.db.execute(
            "SELECT id, name, trigger_type, timestamp, file_count, meta_json FROM snapshots WHERE id = ?",
            [snapshot_id],
        ).fetchone()
        if row is None:
            return None
        files = self.db.query(
            "SELECT path, content FROM snapshot_files WHERE snapshot_id = ? ORDER BY path",
            [snapshot_id],
        )
        return SnapshotWithContent(
            manifest=_row_to_manifest(row),
            contents={item["path"]: item["content"] for item in files},
        )

    async def list_snapshots(self) -> list[SnapshotManifest]:
        rows = self.db.query(
            "SELECT id, name, trigger_type, timestamp, file_count, meta_json FROM snapshots ORDER BY timestamp DESC",
            [],
        )
        return [_row_to_manifest(row) for row in rows]

    async def delete_snapshot(self, snapshot_id: str) -> bool:
        cursor = self.db.execute("DELETE FROM snapshots WHERE id = ?", [snapshot_id])
        self.db.commit()
        return cursor.rowcount > 0


def _row_to_manifest(row) -> SnapshotManifest:
    return SnapshotManifest(
        id=row["id"],
        name=row["name"],
        trigger=row["trigger_type"],
        timestamp=int(row["timestamp"]),
        file_count=int(row["file_count"]),
        metadata=orjson.loads(row["meta_json"]) if row["meta_json"] else {},
    )


__all__ = ["SnapshotManifest", "SnapshotWithContent", "SnapshotContentStore", "SQLiteSnapshotStore"]
