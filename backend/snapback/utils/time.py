"""Time helpers."""

from __future__ import annotations

import time
from datetime import datetime, timezone

MS_PER_DAY = 24 * 60 * 60 * 1000


def now_ms() -> int:
    """Return current timestamp in milliseconds."""
    return int(time.time() * 1000)


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(tz=timezone.utc)


def ms_to_datetime(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def date_stamp(value: int | None = None) -> str:
    """Return the UTC calendar date (YYYY-MM-DD) for a millisecond timestamp."""
    moment = utc_now() if value is None else ms_to_datetime(value)
    return moment.strftime("%Y-%m-%d")


def days_to_ms(days: float) -> int:
    return int(days * MS_PER_DAY)
