"""Lot router — active-lot read model and the lot lineage operations.

Endpoints:
    GET    /api/lots/                    Active lots {lots, count, stats}
    GET    /api/lots/blend-candidates    ACTIVE lots in CONDITIONING / BRIGHT
    POST   /api/lots/fermentation        Start fermentation of a PLANNED batch
    POST   /api/lots/split               Split a lot into child lots
    POST   /api/lots/blend               Blend lots into a new lot
    POST   /api/lots/operations          Any of split / blend / package / complete
    GET    /api/lots/{lot_id}            Lot detail (by id or code, history included)
    PATCH  /api/lots/{lot_id}/phase      Move a lot to a later phase
    POST   /api/lots/{lot_id}/complete   Complete a lot manually
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.auth.deps import RequestContext, get_request_context, require_permission
from app.auth.permissions import has_permission
from app.config import settings
from app.database import get_lineage_store
from app.lineage.entities import LotPhase, LotStatus
from app.lineage.errors import NotFoundError
from app.lineage.policy import resolve_policy
from app.lineage.resolver import LineageResolver, LotQuery
from app.lineage.store import LineageStore
from app.routers.packaging import packaging_response
from app.schemas.lot import (
    BlendRequest,
    BlendResponse,
    CompleteLotRequest,
    CompleteLotResponse,
    CreatedLotOut,
    LotDetailResponse,
    LotItem,
    LotListResponse,
    PhaseChangeRequest,
    SplitRequest,
    SplitResponse,
    StartFermentationRequest,
)
from app.schemas.operations import (
    BlendOperation,
    CompleteOperation,
    LotOperationRequest,
    PackageOperation,
    SplitOperation,
)
from app.services.blend import blend_lots
from app.services.lifecycle import change_phase, complete_lot, start_fermentation
from app.services.packaging import record_packaging
from app.services.split import split_lot

router = APIRouter()


async def _resolver(store: LineageStore, tenant_id: str) -> LineageResolver:
    snapshot = await store.load_snapshot(tenant_id)
    return LineageResolver(snapshot, resolve_policy(settings, snapshot))


async def _lot_item(store: LineageStore, tenant_id: str, lot_id: str) -> LotItem:
    resolver = await _resolver(store, tenant_id)
    return LotItem.model_validate(resolver.resolve(resolver.snapshot.lots[lot_id]))


# ── Response shaping ─────────────────────────────────────────

def _split_response(result: dict) -> SplitResponse:
    parent = result["parent"]
    return SplitResponse(
        parent_lot_id=parent.id,
        parent_lot_code=parent.code,
        children=[
            CreatedLotOut(id=child.id, lot_code=child.lot_code, tank_id=tank_id, volume=volume)
            for child, tank_id, volume in result["children"]
        ],
    )


async def _blend_response(store: LineageStore, tenant_id: str, result: dict) -> BlendResponse:
    lot = result["lot"]
    item = await _lot_item(store, tenant_id, lot.id)
    return BlendResponse(
        lot_id=lot.id,
        lot_code=lot.lot_code,
        phase=lot.phase,
        total_volume=result["total_volume"],
        tank_id=lot.tank_id,
        source_lot_ids=[source.id for source in result["sources"]],
        source_lots=item.source_lots or [],
    )


def _complete_response(result: dict) -> CompleteLotResponse:
    return CompleteLotResponse(
        lot_id=result["lot"].id,
        lot_code=result["lot"].lot_code,
        completed_batch_ids=result["completed_batch_ids"],
        freed_tank_ids=result["freed_tank_ids"],
    )


# ── Read model ───────────────────────────────────────────────

@router.get("/", response_model=LotListResponse)
async def list_lots(
    phase: LotPhase | None = Query(None),
    status_filter: LotStatus | None = Query(None, alias="status"),
    active_only: bool = Query(True),
    lot_id: str | None = Query(None),
    lot_number: str | None = Query(None),
    limit: int | None = Query(None, ge=1, le=settings.lot_list_max_limit),
    store: LineageStore = Depends(get_lineage_store),
    ctx: RequestContext = Depends(require_permission("lot.read")),
):
    """One row per physically distinct in-progress volume.

    Split parents and blended-away sources never appear.  Looking a lot up
    by `lot_id` or `lot_number` also returns historical rows.
    """
    resolver = await _resolver(store, ctx.tenant_id)
    listing = resolver.active_lots(LotQuery(
        phase=phase,
        status=status_filter,
        active_only=active_only,
        lot_id=lot_id,
        lot_number=lot_number,
        limit=limit,
    ))
    return LotListResponse.model_validate(listing)


@router.get("/blend-candidates", response_model=list[LotItem])
async def blend_candidates(
    store: LineageStore = Depends(get_lineage_store),
    ctx: RequestContext = Depends(require_permission("lot.read")),
):
    resolver = await _resolver(store, ctx.tenant_id)
    return [LotItem.model_validate(lot) for lot in resolver.blend_candidates()]


# ── Operations ───────────────────────────────────────────────

@router.post("/fermentation", response_model=LotItem, status_code=status.HTTP_201_CREATED)
async def start_fermentation_endpoint(
    body: StartFermentationRequest,
    store: LineageStore = Depends(get_lineage_store),
    ctx: RequestContext = Depends(require_permission("lot.write")),
):
    lot = await start_fermentation(store, ctx.tenant_id, body, ctx.user_id)
    return await _lot_item(store, ctx.tenant_id, lot.id)


@router.post("/split", response_model=SplitResponse, status_code=status.HTTP_201_CREATED)
async def split(
    body: SplitRequest,
    store: LineageStore = Depends(get_lineage_store),
    ctx: RequestContext = Depends(require_permission("lot.write")),
):
    result = await split_lot(store, ctx.tenant_id, body, ctx.user_id)
    return _split_response(result)


@router.post("/blend", response_model=BlendResponse, status_code=status.HTTP_201_CREATED)
async def blend(
    body: BlendRequest,
    store: LineageStore = Depends(get_lineage_store),
    ctx: RequestContext = Depends(require_permission("lot.write")),
):
    result = await blend_lots(store, ctx.tenant_id, body, ctx.user_id)
    return await _blend_response(store, ctx.tenant_id, result)


_OPERATION_PERMISSIONS = {
    SplitOperation: "lot.write",
    BlendOperation: "lot.write",
    PackageOperation: "packaging.write",
    CompleteOperation: "packaging.write",
}


@router.post("/operations", status_code=status.HTTP_201_CREATED)
async def run_operation(
    body: LotOperationRequest,
    store: LineageStore = Depends(get_lineage_store),
    ctx: RequestContext = Depends(get_request_context),
):
    """Dispatch one lot operation selected by its `operation` field.

    Returns {"operation": <name>, "result": <the operation's response>}.
    """
    op = body.root
    required = _OPERATION_PERMISSIONS[type(op)]
    if not has_permission(ctx.permissions, required):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Missing permissions: {required}",
        )

    if isinstance(op, SplitOperation):
        result = _split_response(await split_lot(store, ctx.tenant_id, op, ctx.user_id))
    elif isinstance(op, BlendOperation):
        result = await _blend_response(
            store, ctx.tenant_id, await blend_lots(store, ctx.tenant_id, op, ctx.user_id)
        )
    elif isinstance(op, PackageOperation):
        result = packaging_response(await record_packaging(store, ctx.tenant_id, op, ctx.user_id))
    else:
        result = _complete_response(
            await complete_lot(store, ctx.tenant_id, op.lot_id, ctx.user_id, op.notes)
        )
    return {"operation": op.operation, "result": result.model_dump(mode="json")}


# ── Single lot ───────────────────────────────────────────────

@router.get("/{lot_id}", response_model=LotDetailResponse)
async def get_lot(
    lot_id: str,
    store: LineageStore = Depends(get_lineage_store),
    ctx: RequestContext = Depends(require_permission("lot.read")),
):
    """A lot by id or code with its parent, children, tank history and packaging runs."""
    resolver = await _resolver(store, ctx.tenant_id)
    detail = resolver.detail(lot_id)
    if detail is None:
        raise NotFoundError("Lot", lot_id)
    return LotDetailResponse.model_validate(detail)


@router.patch("/{lot_id}/phase", response_model=LotItem)
async def move_phase(
    lot_id: str,
    body: PhaseChangeRequest,
    store: LineageStore = Depends(get_lineage_store),
    ctx: RequestContext = Depends(require_permission("lot.write")),
):
    lot = await change_phase(store, ctx.tenant_id, lot_id, body, ctx.user_id)
    return await _lot_item(store, ctx.tenant_id, lot.id)


@router.post("/{lot_id}/complete", response_model=CompleteLotResponse)
async def complete(
    lot_id: str,
    body: CompleteLotRequest | None = None,
    store: LineageStore = Depends(get_lineage_store),
    ctx: RequestContext = Depends(require_permission("packaging.write")),
):
    notes = body.notes if body else None
    result = await complete_lot(store, ctx.tenant_id, lot_id, ctx.user_id, notes)
    return _complete_response(result)
