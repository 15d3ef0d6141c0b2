"""Pydantic schemas for the lot read model and lot operations."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from app.lineage.entities import AssignmentStatus, LotPhase, LotStatus, LotType
from app.schemas.common import RequestModel
from app.schemas.packaging import PackagingRunOut
from app.schemas.tank import ConditioningOut


# ── Read model ───────────────────────────────────────────────

class TankRefOut(BaseModel):
    id: str
    name: str
    type: str
    capacity: float | None

    model_config = {"from_attributes": True}


class SourceLotOut(BaseModel):
    batch_number: str | None
    volume_contribution: float | None

    model_config = {"from_attributes": True}


class LotBatchOut(BaseModel):
    id: str
    batch_number: str
    status: str
    volume_contribution: float | None
    batch_percentage: float | None

    model_config = {"from_attributes": True}


class LotItem(BaseModel):
    """One row of the active-lot list."""
    id: str
    lot_code: str | None
    type: LotType
    phase: LotPhase | None
    status: LotStatus
    progress: int
    source_batch_number: str | None = None
    source_lots: list[SourceLotOut] | None = None
    parent_lot_id: str | None = None
    recipe_name: str | None = None
    recipe_style: str | None = None
    total_volume: float
    packaged_volume: float
    remaining_volume: float
    original_gravity: float | None = None
    current_gravity: float | None = None
    temperature: float | None = None
    tank: TankRefOut | None = None
    conditioning: ConditioningOut | None = None
    batches: list[LotBatchOut] = []
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class LotStatsOut(BaseModel):
    total: int
    by_phase: dict[str, int]
    by_type: dict[str, int]

    model_config = {"from_attributes": True}


class LotListResponse(BaseModel):
    lots: list[LotItem]
    count: int
    stats: LotStatsOut

    model_config = {"from_attributes": True}


class TankAssignmentOut(BaseModel):
    id: str
    tank_id: str
    lot_id: str
    phase: LotPhase
    status: AssignmentStatus
    planned_start: datetime | None
    planned_end: datetime | None
    actual_start: datetime | None
    actual_end: datetime | None
    planned_volume: float | None
    actual_volume: float | None
    created_at: datetime

    model_config = {"from_attributes": True}


class LotDetailResponse(BaseModel):
    lot: LotItem
    consumed: bool
    parent: LotItem | None
    children: list[LotItem]
    assignments: list[TankAssignmentOut]
    packaging_runs: list[PackagingRunOut]

    model_config = {"from_attributes": True}


# ── Start fermentation ───────────────────────────────────────

class StartFermentationRequest(RequestModel):
    """Payload for POST /api/lots/fermentation."""
    batch_id: str
    tank_id: str
    volume: float | None = Field(None, gt=0)


# ── Split ────────────────────────────────────────────────────

class SplitTarget(RequestModel):
    tank_id: str
    volume: float = Field(..., gt=0)
    suffix: str | None = Field(None, pattern=r"^[A-Za-z]$")


class SplitRequest(RequestModel):
    """Payload for POST /api/lots/split.

    Suffixes are optional; missing ones are assigned A, B, … in order.
    """
    source_lot_id: str
    targets: list[SplitTarget] = Field(..., min_length=2, max_length=26)


class CreatedLotOut(BaseModel):
    id: str
    lot_code: str
    tank_id: str | None
    volume: float


class SplitResponse(BaseModel):
    parent_lot_id: str
    parent_lot_code: str
    children: list[CreatedLotOut]


# ── Blend ────────────────────────────────────────────────────

BlendRule = Literal["permissive", "same_yeast", "same_style", "same_recipe"]


class BlendRequest(RequestModel):
    """Payload for POST /api/lots/blend.

    Sources are given either as lot ids/codes or as batch ids (each batch
    must have exactly one living lot).  `volumes` maps a source lot id or
    code to the liters it contributes; sources not listed contribute all
    their remaining volume.
    """
    source_lot_ids: list[str] | None = Field(None, min_length=2)
    source_batch_ids: list[str] | None = Field(None, min_length=2)
    target_tank_id: str
    volumes: dict[str, float] | None = None
    phase: LotPhase | None = None
    allow_phase_mismatch: bool = False
    compatibility: BlendRule | None = None
    notes: str | None = None

    @model_validator(mode="after")
    def exactly_one_source_list(self):
        if (self.source_lot_ids is None) == (self.source_batch_ids is None):
            raise ValueError("Provide exactly one of source_lot_ids or source_batch_ids")
        if self.volumes and any(v <= 0 for v in self.volumes.values()):
            raise ValueError("Blend volumes must be positive")
        return self


class BlendResponse(BaseModel):
    lot_id: str
    lot_code: str
    phase: LotPhase | None
    total_volume: float
    tank_id: str
    source_lot_ids: list[str]
    source_lots: list[SourceLotOut]


# ── Phase / completion ───────────────────────────────────────

class PhaseChangeRequest(RequestModel):
    """Payload for PATCH /api/lots/{lot_id}/phase.  Phases only move forward."""
    phase: LotPhase
    tank_id: str | None = None


class CompleteLotRequest(RequestModel):
    notes: str | None = None


class CompleteLotResponse(BaseModel):
    lot_id: str
    lot_code: str | None
    completed_batch_ids: list[str]
    freed_tank_ids: list[str]
