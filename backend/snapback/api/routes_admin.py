"""Operations, notifications and metrics routes."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException

from snapback.api.dependencies import get_service
from snapback.core.metrics import metrics_response
from snapback.models.dto import NotificationResponse, OperationResponse
from snapback.service import ProtectionService

router = APIRouter()


@router.get("/operations", response_model=list[OperationResponse], summary="List tracked operations")
async def list_operations(service: ProtectionService = Depends(get_service)) -> list[OperationResponse]:
    return [OperationResponse.from_domain(op) for op in service.coordinator.get_all_operations()]


@router.get("/operations/{operation_id}", response_model=OperationResponse, summary="Get one operation")
async def get_operation(operation_id: str, service: ProtectionService = Depends(get_service)) -> OperationResponse:
    operation = service.coordinator.get_operation(operation_id)
    if operation is None:
        raise HTTPException(status_code=404, detail="Operation not found")
    return OperationResponse.from_domain(operation)


@router.get("/notifications", response_model=list[NotificationResponse], summary="Pending notifications")
async def pending_notifications(service: ProtectionService = Depends(get_service)) -> list[NotificationResponse]:
    return [NotificationResponse(**n.to_dict()) for n in service.notifications.get_pending()]


@router.post(
    "/notifications/{notification_id}/{state}",
    response_model=NotificationResponse,
    summary="Move a notification to shown, dismissed or actioned",
)
async def update_notification(
    notification_id: str,
    state: Literal["shown", "dismissed", "actioned"],
    service: ProtectionService = Depends(get_service),
) -> NotificationResponse:
    adapter = service.notifications
    transitions = {
        "shown": adapter.mark_shown,
        "dismissed": adapter.mark_dismissed,
        "actioned": adapter.mark_actioned,
    }
    if not transitions[state](notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    notification = adapter.get(notification_id)
    if notification is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return NotificationResponse(**notification.to_dict())


@router.get("/metrics", summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()


__all__ = ["router"]
