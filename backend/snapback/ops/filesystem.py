"""Async filesystem access used by the walker and coordinator."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True, slots=True)
class DirEntry:
    name: str
    path: Path
    is_dir: bool
    is_file: bool
    is_symlink: bool


@dataclass(frozen=True, slots=True)
class FileStat:
    size: int
    mtime_ms: int


class Filesystem(Protocol):
    async def read_directory(self, path: Path) -> list[DirEntry]: ...

    async def stat(self, path: Path) -> FileStat: ...

    async def read_text(self, path: Path) -> str: ...

    async def write_bytes(self, path: Path, data: bytes) -> None: ...


def _scan(path: Path) -> list[DirEntry]:
    with os.scandir(path) as entries:
        return [
            DirEntry(
                name=entry.name,
                path=Path(entry.path),
                is_dir=entry.is_dir(follow_symlinks=False),
                is_file=entry.is_file(follow_symlinks=False),
                is_symlink=entry.is_symlink(),
            )
            for entry in sorted(entries, key=lambda e: e.name)
        ]


def _stat(path: Path) -> FileStat:
    result = path.stat()
    return FileStat(size=result.st_size, mtime_ms=int(result.st_mtime * 1000))


def _write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


class LocalFilesystem:
    """Runs blocking calls on the default executor so the event loop stays free."""

    async def read_directory(self, path: Path) -> list[DirEntry]:
        return await asyncio.to_thread(_scan, path)

    async def stat(self, path: Path) -> FileStat:
        return await asyncio.to_thread(_stat, path)

    async def read_text(self, path: Path) -> str:
        return await asyncio.to_thread(path.read_text, encoding="utf-8")

    async def write_bytes(self, path: Path, data: bytes) -> None:
        await asyncio.to_thread(_write, path, data)


__all__ = ["DirEntry", "FileStat", "Filesystem", "LocalFilesystem"]
