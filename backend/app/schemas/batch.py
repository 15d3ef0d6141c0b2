"""Pydantic schemas for batches, gravity readings and the batch timeline."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from app.lineage.entities import BatchStatus
from app.schemas.common import RequestModel, as_utc


# ── Create ───────────────────────────────────────────────────

class BatchCreate(RequestModel):
    """Payload for POST /api/batches/ — schedule a brew."""
    volume: float = Field(..., gt=0)
    recipe_id: str | None = None
    brewed_at: datetime | None = None
    notes: str | None = None

    @field_validator("brewed_at")
    @classmethod
    def brewed_at_utc(cls, value):
        return as_utc(value)


class GravityReadingCreate(RequestModel):
    """Payload for POST /api/batches/{batch_id}/gravity-readings.

    Notes mentioning "OG" mark the reading as the original gravity.
    """
    gravity: float = Field(..., gt=0, le=2)
    temperature: float | None = Field(None, ge=-10, le=110)
    notes: str | None = Field(None, max_length=500)
    recorded_at: datetime | None = None

    @field_validator("recorded_at")
    @classmethod
    def recorded_at_utc(cls, value):
        return as_utc(value)


# ── Response ─────────────────────────────────────────────────

class BatchOut(BaseModel):
    id: str
    batch_number: str
    recipe_id: str | None
    status: BatchStatus
    volume: float
    packaged_volume: float
    original_gravity: float | None
    current_gravity: float | None
    final_gravity: float | None
    tank_id: str | None
    brewed_at: datetime | None
    completed_at: datetime | None
    notes: str | None
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class GravityReadingOut(BaseModel):
    id: str
    batch_id: str
    gravity: float
    temperature: float | None
    notes: str | None
    recorded_by: str | None
    recorded_at: datetime

    model_config = {"from_attributes": True}


class BatchHistoryOut(BaseModel):
    id: str
    event_type: str
    summary: str | None
    event_data: dict | None
    recorded_by: str | None
    recorded_at: datetime

    model_config = {"from_attributes": True}


class BatchLotRef(BaseModel):
    id: str
    lot_code: str | None
    phase: str | None
    status: str
    volume_contribution: float | None


class BatchDetail(BatchOut):
    """Batch with its readings, lots and production timeline."""
    gravity_readings: list[GravityReadingOut] = []
    lots: list[BatchLotRef] = []
    history: list[BatchHistoryOut] = []
