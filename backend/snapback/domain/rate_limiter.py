"""Sliding-window admission control for snapshot creation."""

from __future__ import annotations

from snapback.domain.types import RateLimiterStatus
from snapback.utils.time import now_ms

DEFAULT_WINDOW_MS = 60_000
DEFAULT_MAX_SNAPSHOTS = 4


class RateLimiter:
    """Allow at most ``max_snapshots`` recordings per ``window_ms``.

    Check-and-record is atomic only for a single owner; two callers racing
    between ``get_status`` and ``record_snapshot`` can both be admitted.
    """

    def __init__(self, max_snapshots: int = DEFAULT_MAX_SNAPSHOTS, window_ms: int = DEFAULT_WINDOW_MS) -> None:
        if max_snapshots <= 0:
            raise ValueError("max_snapshots must be positive")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self.max_snapshots = max_snapshots
        self.window_ms = window_ms
        self._timestamps: list[int] = []

    def _evict(self, now: int) -> None:
        window_start = now - self.window_ms
        self._timestamps = [ts for ts in self._timestamps if ts >= window_start]

    def get_status(self, now: int | None = None) -> RateLimiterStatus:
        now = now_ms() if now is None else now
        self._evict(now)
        count = len(self._timestamps)
        can_snapshot = count < self.max_snapshots
        wait_time_ms = 0
        if not can_snapshot and self._timestamps:
            wait_time_ms = max(0, self._timestamps[0] + self.window_ms - now)
        return RateLimiterStatus(
            count=count,
            remaining=self.max_snapshots - count,
            wait_time_ms=wait_time_ms,
            can_snapshot=can_snapshot,
        )

    def record_snapshot(self, now: int | None = None) -> bool:
        """Record an attempt at ``now``; returns False (and records nothing) when limited."""
        now = now_ms() if now is None else now
        if not self.get_status(now).can_snapshot:
            return False
        self._timestamps.append(now)
        return True

    def get_count(self, now: int | None = None) -> int:
        return self.get_status(now).count

    def get_remaining(self, now: int | None = None) -> int:
        return self.get_status(now).remaining

    def get_wait_time(self, now: int | None = None) -> int:
        return self.get_status(now).wait_time_ms

    def can_snapshot(self, now: int | None = None) -> bool:
        return self.get_status(now).can_snapshot

    def reset(self) -> None:
        self._timestamps = []

    @property
    def timestamps(self) -> tuple[int, ...]:
        return tuple(self._timestamps)


__all__ = ["RateLimiter", "DEFAULT_WINDOW_MS", "DEFAULT_MAX_SNAPSHOTS"]
