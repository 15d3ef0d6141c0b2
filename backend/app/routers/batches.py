"""Batch router — brew scheduling, gravity readings and batch timeline.

Endpoints:
    POST   /api/batches/                              Schedule a batch
    GET    /api/batches/                              List batches (with filters)
    GET    /api/batches/{batch_id}                    Batch detail with lots and timeline
    POST   /api/batches/{batch_id}/gravity-readings   Record a gravity reading
"""

from fastapi import APIRouter, Depends, Query, status

from app.auth.deps import RequestContext, require_permission
from app.database import get_lineage_store
from app.lineage.entities import BatchStatus
from app.lineage.errors import NotFoundError
from app.lineage.store import LineageStore
from app.schemas.batch import (
    BatchCreate,
    BatchDetail,
    BatchHistoryOut,
    BatchLotRef,
    BatchOut,
    GravityReadingCreate,
    GravityReadingOut,
)
from app.schemas.common import PaginatedResponse
from app.services.lifecycle import create_batch, record_gravity_reading

router = APIRouter()


# ── Create ───────────────────────────────────────────────────

@router.post("/", response_model=BatchOut, status_code=status.HTTP_201_CREATED)
async def schedule_batch(
    body: BatchCreate,
    store: LineageStore = Depends(get_lineage_store),
    ctx: RequestContext = Depends(require_permission("lot.write")),
):
    """Schedule a brew.  Numbered BRW-YYYY-NNNN unless the tenant overrides the format."""
    batch = await create_batch(store, ctx.tenant_id, body, ctx.user_id)
    return BatchOut.model_validate(batch)


# ── List ─────────────────────────────────────────────────────

@router.get("/", response_model=PaginatedResponse[BatchOut])
async def list_batches(
    status_filter: BatchStatus | None = Query(None, alias="status"),
    recipe_id: str | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    store: LineageStore = Depends(get_lineage_store),
    ctx: RequestContext = Depends(require_permission("lot.read")),
):
    snapshot = await store.load_snapshot(ctx.tenant_id)
    batches = list(snapshot.batches.values())
    if status_filter is not None:
        batches = [b for b in batches if b.status == status_filter]
    if recipe_id is not None:
        batches = [b for b in batches if b.recipe_id == recipe_id]
    batches.sort(key=lambda b: b.created_at, reverse=True)

    page = batches[offset:offset + limit]
    return PaginatedResponse[BatchOut](
        items=[BatchOut.model_validate(b) for b in page],
        total=len(batches),
        limit=limit,
        offset=offset,
    )


# ── Detail ───────────────────────────────────────────────────

@router.get("/{batch_id}", response_model=BatchDetail)
async def get_batch(
    batch_id: str,
    store: LineageStore = Depends(get_lineage_store),
    ctx: RequestContext = Depends(require_permission("lot.read")),
):
    """Batch with gravity readings, every lot it contributed to and its timeline."""
    snapshot = await store.load_snapshot(ctx.tenant_id)
    batch = snapshot.batches.get(batch_id)
    if batch is None:
        raise NotFoundError("Batch", batch_id)

    detail = BatchDetail.model_validate(batch)
    detail.gravity_readings = [
        GravityReadingOut.model_validate(r) for r in snapshot.readings_for(batch.id)
    ]
    for lb in snapshot.lot_batches:
        lot = snapshot.lots.get(lb.lot_id)
        if lb.batch_id != batch.id or lot is None:
            continue
        detail.lots.append(BatchLotRef(
            id=lot.id,
            lot_code=lot.lot_code,
            phase=lot.phase.value if lot.phase else None,
            status=lot.status.value,
            volume_contribution=lb.volume_contribution,
        ))
    history = sorted(
        (h for h in snapshot.history if h.batch_id == batch.id),
        key=lambda h: h.recorded_at,
    )
    detail.history = [BatchHistoryOut.model_validate(h) for h in history]
    return detail


# ── Gravity readings ─────────────────────────────────────────

@router.post(
    "/{batch_id}/gravity-readings",
    response_model=GravityReadingOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_gravity_reading(
    batch_id: str,
    body: GravityReadingCreate,
    store: LineageStore = Depends(get_lineage_store),
    ctx: RequestContext = Depends(require_permission("lot.write")),
):
    reading = await record_gravity_reading(store, ctx.tenant_id, batch_id, body, ctx.user_id)
    return GravityReadingOut.model_validate(reading)
