"""Pydantic schemas for tanks and tank occupancy."""

from datetime import datetime

from pydantic import BaseModel, Field

from app.lineage.entities import LotPhase, TankStatus, TankType
from app.schemas.common import RequestModel


class TankCreate(RequestModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TankType = TankType.UNITANK
    capacity: float | None = Field(None, gt=0)


class TankOut(BaseModel):
    id: str
    name: str
    type: TankType
    capacity: float | None
    status: TankStatus
    current_lot_id: str | None
    current_phase: LotPhase | None
    needs_cip: bool
    next_cip_at: datetime | None

    model_config = {"from_attributes": True}


class ConditioningOut(BaseModel):
    started_at: datetime
    days_elapsed: int
    days_remaining: int
    progress: int
    duration_days: int

    model_config = {"from_attributes": True}


class TankOccupancyOut(TankOut):
    lot_code: str | None = None
    lot_volume: float | None = None
    progress: int | None = None
    conditioning: ConditioningOut | None = None
