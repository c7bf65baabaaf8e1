"""ID helpers."""

from __future__ import annotations

import itertools
import uuid

_COUNTER = itertools.count(1)


def new_id(prefix: str | None = None) -> str:
    """Generate a random UUID4 string with optional prefix."""
    base = uuid.uuid4().hex
    return f"{prefix}_{base}" if prefix else base


def operation_id(kind: str, timestamp_ms: int) -> str:
    """Operation ids are readable (`snapshot-<ms>-<n>`) and unique within a process."""
    return f"{kind}-{timestamp_ms}-{next(_COUNTER)}"
