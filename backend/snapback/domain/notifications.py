"""Translate protection decisions into actionable user notifications.

Display is owned by whatever implements :class:`NotificationSink`; this module
only classifies and tracks notification state.
"""

from __future__ import annotations

import itertools
from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Protocol

from snapback.core.logging import get_logger, log_context
from snapback.domain.types import ProtectionDecision
from snapback.utils.time import now_ms

NotificationType = Literal["alert", "warning", "info", "error"]
NotificationSeverity = Literal["critical", "high", "medium", "low"]
NotificationState = Literal["pending", "shown", "dismissed", "actioned"]
ProtectionAction = Literal["PROTECT", "ALLOW", "BLOCK"]

SEVERITY_ORDER: dict[str, int] = {"critical": 1, "high": 2, "medium": 3, "low": 4}
MAX_NOTIFICATIONS = 100

_TYPES: dict[str, NotificationType] = {"PROTECT": "alert", "ALLOW": "info", "BLOCK": "error"}
_TITLES: dict[str, str] = {
    "PROTECT": "AI Activity Detected - Snapshot Created",
    "ALLOW": "Changes Allowed",
    "BLOCK": "Action Blocked",
}

logger = get_logger(__name__)


@dataclass(slots=True)
class NotificationAction:
    label: str
    action: str
    primary: bool = False


@dataclass(slots=True)
class UserNotification:
    id: str
    type: NotificationType
    severity: NotificationSeverity
    title: str
    message: str
    timestamp: int
    state: NotificationState = "pending"
    details: str | None = None
    actions: list[NotificationAction] = field(default_factory=list)
    auto_dismiss: bool = False
    persistent: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class NotificationSink(Protocol):
    async def show(self, notification: UserNotification, context: dict[str, Any]) -> None: ...


class LoggingNotificationSink:
    """Sink that records notifications in the log; used when no UI is attached."""

    async def show(self, notification: UserNotification, context: dict[str, Any]) -> None:
        logger.info(
            "%s: %s",
            notification.title,
            notification.message,
            extra=log_context(notification_id=notification.id, severity=notification.severity, **context),
        )


class NotificationAdapter:
    """Map decisions to notifications and track their lifecycle by id."""

    def __init__(self, max_notifications: int = MAX_NOTIFICATIONS) -> None:
        self.max_notifications = max_notifications
        self._notifications: dict[str, UserNotification] = {}
        self._counter = itertools.count(1)

    def adapt_decision(self, decision: ProtectionDecision) -> UserNotification:
        action = _action_for(decision)
        timestamp = now_ms()
        notification = UserNotification(
            id=f"notif-{next(self._counter)}-{timestamp}",
            type=_TYPES[action],
            severity=_severity(action, decision.confidence),
            title=_TITLES[action],
            message=_message(action, decision),
            details=decision.summary or None,
            timestamp=timestamp,
            actions=_actions(action),
            auto_dismiss=action == "ALLOW" and decision.confidence > 0.9,
            persistent=action == "BLOCK" or decision.confidence < 0.7,
        )
        self._notifications[notification.id] = notification
        self._evict()
        return notification

    def _evict(self) -> None:
        """Oldest handled notifications go first, then the oldest pending ones."""
        excess = len(self._notifications) - self.max_notifications
        if excess <= 0:
            return
        handled = [key for key, n in self._notifications.items() if n.state != "pending"]
        pending = [key for key, n in self._notifications.items() if n.state == "pending"]
        for key in (handled + pending)[:excess]:
            del self._notifications[key]

    def _set_state(self, notification_id: str, state: NotificationState) -> bool:
        notification = self._notifications.get(notification_id)
        if notification is None:
            return False
        notification.state = state
        return True

    def mark_shown(self, notification_id: str) -> bool:
        return self._set_state(notification_id, "shown")

    def mark_dismissed(self, notification_id: str) -> bool:
        return self._set_state(notification_id, "dismissed")

    def mark_actioned(self, notification_id: str) -> bool:
        return self._set_state(notification_id, "actioned")

    def get_pending(self) -> list[UserNotification]:
        """Pending notifications, most severe first."""
        pending = [n for n in self._notifications.values() if n.state == "pending"]
        return sorted(pending, key=lambda n: SEVERITY_ORDER[n.severity])

    def get(self, notification_id: str) -> UserNotification | None:
        return self._notifications.get(notification_id)

    def clear(self, notification_id: str) -> None:
        self._notifications.pop(notification_id, None)

    def clear_all(self) -> None:
        self._notifications.clear()


def _action_for(decision: ProtectionDecision) -> ProtectionAction:
    if decision.create_snapshot:
        return "PROTECT"
    if decision.show_notification:
        return "ALLOW"
    return "BLOCK"


def _severity(action: ProtectionAction, confidence: float) -> NotificationSeverity:
    if action == "BLOCK":
        return "critical"
    if action == "PROTECT":
        return "high" if confidence >= 0.8 else "medium"
    return "low"


def _message(action: ProtectionAction, decision: ProtectionDecision) -> str:
    confidence = f"{round(decision.confidence * 100)}%"
    if action == "PROTECT":
        return f"AI usage detected ({confidence} confidence). Automatic snapshot created for recovery."
    if action == "ALLOW":
        return f"Changes allowed. Confidence: {confidence}."
    return f"Suspicious pattern detected ({confidence} confidence). Action blocked for safety."


def _actions(action: ProtectionAction) -> list[NotificationAction]:
    actions: list[NotificationAction] = []
    if action == "PROTECT":
        actions.append(NotificationAction("View Protected Snapshot", "view_snapshot", primary=True))
    elif action == "BLOCK":
        actions.append(NotificationAction("Review Details", "review_decision", primary=True))
    actions.append(NotificationAction("Dismiss", "dismiss"))
    return actions


__all__ = [
    "NotificationAction",
    "NotificationAdapter",
    "NotificationSink",
    "LoggingNotificationSink",
    "UserNotification",
    "MAX_NOTIFICATIONS",
    "SEVERITY_ORDER",
]
