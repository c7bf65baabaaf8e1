"""Workspace traversal with gitignore-style exclusion and hard resource limits."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Iterable, Sequence

from pathspec import GitIgnoreSpec

from snapback.core.errors import WalkLimitExceeded
from snapback.core.logging import get_logger, log_context
from snapback.ops.filesystem import Filesystem

logger = get_logger(__name__)

DEFAULT_IGNORE_PATTERNS = (
    "node_modules/**",
    ".git/**",
    "dist/**",
    "build/**",
    ".next/**",
    "out/**",
    "coverage/**",
    ".snapback/**",
    "*.log",
    ".DS_Store",
    ".env",
    ".env.local",
    "**/*.min.js",
    "**/*.map",
)

IGNORE_FILES = (".gitignore", ".snapbackignore")


class IgnoreMatcher:
    """gitignore semantics over the combined pattern list; later lines win."""

    def __init__(self, patterns: Iterable[str] = ()) -> None:
        self.patterns: list[str] = []
        self._spec = GitIgnoreSpec.from_lines([])
        self.add(patterns)

    def add(self, patterns: Iterable[str]) -> "IgnoreMatcher":
        self.patterns.extend(line.strip() for line in patterns if line.strip())
        self._spec = GitIgnoreSpec.from_lines(self.patterns)
        return self

    def _matches(self, relative_path: str, is_dir: bool) -> bool:
        return self._spec.match_file(f"{relative_path}/" if is_dir else relative_path)

    def ignores(self, relative_path: str, is_dir: bool = False) -> bool:
        relative_path = relative_path.replace("\\", "/").strip("/")
        if not relative_path:
            return False
        parts = relative_path.split("/")
        # A file below an ignored directory stays ignored even if a later rule negates it.
        for depth in range(1, len(parts)):
            if self._matches("/".join(parts[:depth]), True):
                return True
        return self._matches(relative_path, is_dir)


async def load_ignore_patterns(workspace_root: Path, filesystem: Filesystem) -> list[str]:
    patterns = list(DEFAULT_IGNORE_PATTERNS)
    for filename in IGNORE_FILES:
        try:
            text = await filesystem.read_text(workspace_root / filename)
        except OSError:
            continue
        patterns.extend(line.strip() for line in text.splitlines() if line.strip() and not line.startswith("#"))
    return patterns


@dataclass(frozen=True, slots=True)
class WalkEntry:
    path: Path
    relative_path: str
    size: int


class WorkspaceWalker:
    """Depth-first async iterator over the non-ignored regular files below ``root``.

    Symbolic links are never followed. Unreadable directories are logged and
    skipped. Limits are enforced by the consumer, see :func:`collect_workspace_files`.
    """

    def __init__(self, root: Path, filesystem: Filesystem, matcher: IgnoreMatcher | None = None) -> None:
        self.root = root
        self.filesystem = filesystem
        self.matcher = matcher or IgnoreMatcher(DEFAULT_IGNORE_PATTERNS)
        self.skipped_dirs = 0
        self.skipped_files = 0

    def __aiter__(self) -> AsyncIterator[WalkEntry]:
        return self._walk(self.root)

    async def _walk(self, directory: Path) -> AsyncIterator[WalkEntry]:
        try:
            entries = await self.filesystem.read_directory(directory)
        except OSError as exc:
            logger.warning(
                "Error reading directory during traversal",
                extra=log_context(directory=str(directory), error=str(exc)),
            )
            return

        for entry in entries:
            relative = entry.path.relative_to(self.root).as_posix()
            if self.matcher.ignores(relative, is_dir=entry.is_dir):
                if entry.is_dir:
                    self.skipped_dirs += 1
                else:
                    self.skipped_files += 1
                continue
            if entry.is_symlink:
                self.skipped_files += 1
                continue
            if entry.is_dir:
                async for item in self._walk(entry.path):
                    yield item
            elif entry.is_file:
                try:
                    stat = await self.filesystem.stat(entry.path)
                except OSError as exc:
                    logger.warning("Failed to stat %s: %s", entry.path, exc)
                    self.skipped_files += 1
                    continue
                yield WalkEntry(path=entry.path, relative_path=relative, size=stat.size)


async def collect_workspace_files(
    walker: WorkspaceWalker | AsyncIterator[WalkEntry],
    max_files: int,
    max_total_size: int,
) -> list[WalkEntry]:
    """Drain ``walker``; crossing either ceiling aborts the whole walk."""
    collected: list[WalkEntry] = []
    total_size = 0
    async for entry in walker:
        if len(collected) >= max_files:
            logger.warning("Directory traversal file limit exceeded", extra=log_context(limit=max_files))
            raise WalkLimitExceeded("file", max_files, len(collected) + 1)
        if total_size + entry.size > max_total_size:
            logger.warning(
                "Directory traversal size limit exceeded",
                extra=log_context(limit_bytes=max_total_size, total_size_bytes=total_size),
            )
            raise WalkLimitExceeded("size", max_total_size, total_size + entry.size)
        collected.append(entry)
        total_size += entry.size
    logger.info(
        "Directory traversal complete",
        extra=log_context(files=len(collected), total_size_bytes=total_size),
    )
    return collected


def chunked(items: Sequence, size: int) -> Iterable[Sequence]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


__all__ = [
    "DEFAULT_IGNORE_PATTERNS",
    "IgnoreMatcher",
    "WalkEntry",
    "WorkspaceWalker",
    "chunked",
    "collect_workspace_files",
    "load_ignore_patterns",
]
