"""Exception hierarchy shared across SnapBack components."""

from __future__ import annotations


class SnapbackError(Exception):
    """Base class for errors raised by the protection engine."""


class ContextValidationError(SnapbackError, ValueError):
    """A SaveContext field is missing or outside its documented range."""


class WalkLimitExceeded(SnapbackError):
    """The workspace walk crossed the file-count or total-size ceiling."""

    def __init__(self, kind: str, limit: int, observed: int) -> None:
        self.kind = kind
        self.limit = limit
        self.observed = observed
        unit = " bytes" if kind == "size" else ""
        super().__init__(f"{kind.capitalize()} limit exceeded: {limit}{unit}")


class WorkspaceNotFoundError(SnapbackError):
    pass


class SnapshotNotFoundError(SnapbackError, KeyError):
    def __init__(self, snapshot_id: str) -> None:
        self.snapshot_id = snapshot_id
        super().__init__(f"Missing snapshot: {snapshot_id}")

    def __str__(self) -> str:
        return self.args[0]


class OperationBlockedError(SnapbackError):
    """An operation was started before its dependencies completed."""

    def __init__(self, operation_id: str, pending: list[str]) -> None:
        self.operation_id = operation_id
        self.pending = pending
        super().__init__(f"Operation {operation_id} waiting on: {', '.join(pending)}")


__all__ = [
    "SnapbackError",
    "ContextValidationError",
    "WalkLimitExceeded",
    "WorkspaceNotFoundError",
    "SnapshotNotFoundError",
    "OperationBlockedError",
]
