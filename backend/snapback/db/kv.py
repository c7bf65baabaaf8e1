"""Key-value persistence used for the snapshot catalog and workspace memory."""

from __future__ import annotations

import copy
from typing import Any, Protocol

import orjson

from snapback.db.sqlite import SQLiteDatabase
from snapback.utils.time import now_ms


class KeyValueStore(Protocol):
    async def get(self, key: str, default: Any = None) -> Any: ...

    async def set(self, key: str, value: Any) -> None: ...


class MemoryKeyValueStore:
    """Process-local store; values are deep-copied so callers cannot alias state."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self.writes = 0

    async def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)
        self.writes += 1


class SQLiteKeyValueStore:
    """JSON values in the ``kv_store`` table."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self.db = database

    async def get(self, key: str, default: Any = None) -> Any:
        row = self.db.execute("SELECT value_json FROM kv_store WHERE key = ?", [key]).fetchone()
        if row is None:
            return default
        return orjson.loads(row["value_json"])

    async def set(self, key: str, value: Any) -> None:
        self.db.execute(
            """
            INSERT INTO kv_store (key, value_json, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value_json = excluded.value_json, updated_at = excluded.updated_at
            """,
            [key, orjson.dumps(value).decode("utf-8"), now_ms()],
        )
        self.db.commit()


__all__ = ["KeyValueStore", "MemoryKeyValueStore", "SQLiteKeyValueStore"]
