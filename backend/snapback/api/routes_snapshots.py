"""Snapshot catalog, capture and restore routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from snapback.api.dependencies import get_service
from snapback.models.dto import (
    CleanupResponse,
    ConflictResponse,
    DeleteResponse,
    RestoreRequest,
    RestoreResponse,
    SnapshotCreateRequest,
    SnapshotCreateResponse,
    SnapshotResponse,
    StorageResponse,
)
from snapback.ops.coordinator import StaticConflictResolver
from snapback.service import ProtectionService

router = APIRouter()


@router.get("/snapshots", response_model=list[SnapshotResponse], summary="List catalogued snapshots")
async def list_snapshots(service: ProtectionService = Depends(get_service)) -> list[SnapshotResponse]:
    snapshots = sorted(service.orchestrator.get_snapshots(), key=lambda s: s.timestamp, reverse=True)
    return [SnapshotResponse.from_domain(snapshot) for snapshot in snapshots]


@router.post("/snapshots", response_model=SnapshotCreateResponse, summary="Create a manual snapshot")
async def create_snapshot(
    request: SnapshotCreateRequest,
    service: ProtectionService = Depends(get_service),
) -> SnapshotCreateResponse:
    result = await service.create_manual_snapshot(files=request.files, name=request.name)
    if result is None:  # pragma: no cover - manual decisions always request a snapshot
        raise HTTPException(status_code=500, detail="Snapshot was not requested")
    return SnapshotCreateResponse(
        ok=result.ok,
        kind=result.kind,
        snapshot=SnapshotResponse.from_domain(result.snapshot) if result.snapshot else None,
        evicted=result.evicted,
        detail=result.detail,
    )


@router.post("/snapshots/cleanup", response_model=CleanupResponse, summary="Drop snapshots past retention")
async def cleanup(service: ProtectionService = Depends(get_service)) -> CleanupResponse:
    return CleanupResponse(removed=await service.cleanup())


@router.get("/snapshots/{snapshot_id}", response_model=SnapshotResponse, summary="Get one snapshot")
async def get_snapshot(snapshot_id: str, service: ProtectionService = Depends(get_service)) -> SnapshotResponse:
    snapshot = service.orchestrator.get_snapshot(snapshot_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Snapshot not found")
    return SnapshotResponse.from_domain(snapshot)


@router.delete("/snapshots/{snapshot_id}", response_model=DeleteResponse, summary="Delete a snapshot")
async def delete_snapshot(snapshot_id: str, service: ProtectionService = Depends(get_service)) -> DeleteResponse:
    if not await service.delete_snapshot(snapshot_id):
        raise HTTPException(status_code=404, detail="Snapshot not found")
    return DeleteResponse(status="ok", deleted=1)


@router.get(
    "/snapshots/{snapshot_id}/conflicts",
    response_model=list[ConflictResponse],
    summary="Files a restore would overwrite or add",
)
async def preview_conflicts(
    snapshot_id: str,
    service: ProtectionService = Depends(get_service),
) -> list[ConflictResponse]:
    conflicts = await service.preview_conflicts(snapshot_id)
    return [ConflictResponse.from_domain(conflict) for conflict in conflicts]


@router.post("/snapshots/{snapshot_id}/restore", response_model=RestoreResponse, summary="Restore a snapshot")
async def restore_snapshot(
    snapshot_id: str,
    request: RestoreRequest,
    service: ProtectionService = Depends(get_service),
) -> RestoreResponse:
    resolver = StaticConflictResolver(request.resolution) if request.resolution else None
    result = await service.restore(snapshot_id, files=request.files, dry_run=request.dry_run, resolver=resolver)
    if result.kind == "not_found":
        raise HTTPException(status_code=404, detail=result.detail or "Snapshot not found")
    return RestoreResponse.from_domain(result)


@router.get("/storage", response_model=StorageResponse, summary="Catalog storage usage")
async def storage(service: ProtectionService = Depends(get_service)) -> StorageResponse:
    stats = service.orchestrator.get_storage_stats()
    return StorageResponse(
        used=stats.used,
        available=stats.available,
        utilization_percent=stats.utilization_percent,
        snapshot_count=stats.snapshot_count,
    )


__all__ = ["router"]
