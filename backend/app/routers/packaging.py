"""Packaging router — packaging runs and the packaging operation.

Endpoints:
    GET    /api/packaging/     List packaging runs (by batch or lot code)
    POST   /api/packaging/     Record a packaging run (auto-completes lots)
"""

from fastapi import APIRouter, Depends, Query, status

from app.auth.deps import RequestContext, require_permission
from app.database import get_lineage_store
from app.lineage.store import LineageStore
from app.schemas.common import PaginatedResponse
from app.schemas.packaging import (
    PackagingRequest,
    PackagingResponse,
    PackagingRunOut,
    VolumeInfo,
)
from app.services.packaging import record_packaging

router = APIRouter()


def packaging_response(result: dict) -> PackagingResponse:
    return PackagingResponse(
        packaging_run=PackagingRunOut.model_validate(result["run"]),
        volume_info=VolumeInfo(**result["volume_info"]),
        lot_id=result["lot"].id if result["lot"] is not None else None,
        lot_completed=result["lot_completed"],
        completed_batch_ids=result["completed_batch_ids"],
    )


@router.post("/", response_model=PackagingResponse, status_code=status.HTTP_201_CREATED)
async def package(
    body: PackagingRequest,
    store: LineageStore = Depends(get_lineage_store),
    ctx: RequestContext = Depends(require_permission("packaging.write")),
):
    """Record a packaging run.

    Fails with INSUFFICIENT_VOLUME (details carry available_volume and
    requested_volume) when the run is larger than what is left of the lot.
    """
    result = await record_packaging(store, ctx.tenant_id, body, ctx.user_id)
    return packaging_response(result)


@router.get("/", response_model=PaginatedResponse[PackagingRunOut])
async def list_runs(
    batch_id: str | None = Query(None),
    lot_number: str | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    store: LineageStore = Depends(get_lineage_store),
    ctx: RequestContext = Depends(require_permission("packaging.read")),
):
    snapshot = await store.load_snapshot(ctx.tenant_id)
    runs = list(snapshot.packaging_runs)
    if batch_id is not None:
        runs = [r for r in runs if r.batch_id == batch_id]
    if lot_number is not None:
        runs = [r for r in runs if r.lot_number == lot_number]
    runs.sort(key=lambda r: r.performed_at, reverse=True)

    page = runs[offset:offset + limit]
    return PaginatedResponse[PackagingRunOut](
        items=[PackagingRunOut.model_validate(r) for r in page],
        total=len(runs),
        limit=limit,
        offset=offset,
    )
