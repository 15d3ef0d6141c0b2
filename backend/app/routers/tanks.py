"""Tank router — tank registry and occupancy board.

Endpoints:
    POST   /api/tanks/       Register a tank
    GET    /api/tanks/       Tanks with their current lot and progress
"""

from fastapi import APIRouter, Depends, Query, status

from app.auth.deps import RequestContext, require_permission
from app.config import settings
from app.database import get_lineage_store
from app.lineage.entities import TankStatus
from app.lineage.policy import resolve_policy
from app.lineage.resolver import LineageResolver
from app.lineage.store import LineageStore
from app.schemas.tank import ConditioningOut, TankCreate, TankOccupancyOut, TankOut
from app.services.lifecycle import create_tank

router = APIRouter()


@router.post("/", response_model=TankOut, status_code=status.HTTP_201_CREATED)
async def register_tank(
    body: TankCreate,
    store: LineageStore = Depends(get_lineage_store),
    ctx: RequestContext = Depends(require_permission("lot.write")),
):
    tank = await create_tank(store, ctx.tenant_id, body)
    return TankOut.model_validate(tank)


@router.get("/", response_model=list[TankOccupancyOut])
async def tank_board(
    status_filter: TankStatus | None = Query(None, alias="status"),
    store: LineageStore = Depends(get_lineage_store),
    ctx: RequestContext = Depends(require_permission("lot.read")),
):
    """Every tank with the lot it holds, its volume and progress.

    Tanks in CONDITIONING also report the time-based conditioning
    progress against the tenant's conditioning duration.
    """
    snapshot = await store.load_snapshot(ctx.tenant_id)
    resolver = LineageResolver(snapshot, resolve_policy(settings, snapshot))

    board = []
    for occupancy in resolver.tank_occupancy():
        if status_filter is not None and occupancy.tank.status != status_filter:
            continue
        item = TankOccupancyOut.model_validate(occupancy.tank)
        if occupancy.lot is not None:
            item.lot_code = occupancy.lot.lot_code
            item.lot_volume = occupancy.lot.remaining_volume
            item.progress = occupancy.lot.progress
            if occupancy.lot.conditioning is not None:
                item.conditioning = ConditioningOut.model_validate(occupancy.lot.conditioning)
        board.append(item)
    return board
