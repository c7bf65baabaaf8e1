"""Shared FastAPI dependencies backed by the container on ``app.state``."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from snapback.core.config import Settings
from snapback.db.kv import SQLiteKeyValueStore
from snapback.db.snapshots import SQLiteSnapshotStore
from snapback.db.sqlite import SQLiteDatabase
from snapback.service import ProtectionService


@dataclass
class AppContainer:
    settings: Settings
    database: SQLiteDatabase
    service: ProtectionService

    async def start(self) -> None:
        await self.service.init()

    async def close(self) -> None:
        await self.service.dispose()
        self.database.close()


def build_container(settings: Settings) -> AppContainer:
    database = SQLiteDatabase(settings.db_path)
    database.ensure_schema()
    service = ProtectionService(
        settings,
        store=SQLiteKeyValueStore(database),
        content_store=SQLiteSnapshotStore(database),
    )
    return AppContainer(settings=settings, database=database, service=service)


def get_container(request: Request) -> AppContainer:
    return request.app.state.container


def get_service(request: Request) -> ProtectionService:
    return get_container(request).service


__all__ = ["AppContainer", "build_container", "get_container", "get_service"]
