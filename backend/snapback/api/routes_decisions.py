"""Decision and rate-limit routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from snapback.api.dependencies import get_service
from snapback.models.dto import (
    DecisionResponse,
    RateLimitResponse,
    SaveContextRequest,
    StatusResponse,
)
from snapback.service import ProtectionService

router = APIRouter()


@router.post("/decide", response_model=DecisionResponse, summary="Evaluate a save context")
async def decide(
    request: SaveContextRequest,
    service: ProtectionService = Depends(get_service),
) -> DecisionResponse:
    decision = service.decide(request.to_domain())
    return DecisionResponse.from_domain(decision)


@router.get("/rate-limit", response_model=RateLimitResponse, summary="Snapshot rate-limiter window")
async def rate_limit(service: ProtectionService = Depends(get_service)) -> RateLimitResponse:
    limiter = service.rate_limiter
    status = limiter.get_status()
    return RateLimitResponse(
        count=status.count,
        remaining=status.remaining,
        wait_time_ms=status.wait_time_ms,
        can_snapshot=status.can_snapshot,
        max_snapshots=limiter.max_snapshots,
        window_ms=limiter.window_ms,
    )


@router.get("/status", response_model=StatusResponse, summary="Protection service status")
async def status(service: ProtectionService = Depends(get_service)) -> StatusResponse:
    return StatusResponse(**service.stats())


__all__ = ["router"]
