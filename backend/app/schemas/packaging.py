"""Pydantic schemas for packaging runs."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from app.lineage.entities import PackageType
from app.schemas.common import RequestModel


# ── Request ─────────────────────────────────────────────────

class PackagingRequest(RequestModel):
    """Payload for POST /api/packaging/.

    Identify what is packaged by lot (`lot_id`, or its code as `lot_number`),
    by one batch, or by several batches (an already blended product).  When
    a lot is known, `lot_number` must be its code.
    """
    batch_id: str | None = None
    batch_ids: list[str] | None = Field(None, min_length=1)
    lot_id: str | None = None
    lot_number: str | None = Field(None, min_length=1, max_length=80)
    package_type: PackageType
    quantity: int = Field(..., gt=0)
    performed_by: str | None = Field(None, max_length=100)
    notes: str | None = None

    @model_validator(mode="after")
    def something_to_package(self):
        if not (self.batch_id or self.batch_ids or self.lot_id or self.lot_number):
            raise ValueError("Provide lot_id, lot_number, batch_id or batch_ids")
        if self.batch_id and self.batch_ids:
            raise ValueError("Provide batch_id or batch_ids, not both")
        return self


# ── Response ────────────────────────────────────────────────

class PackagingRunOut(BaseModel):
    id: str
    batch_id: str
    package_type: PackageType
    quantity: int
    volume_total: float
    lot_number: str
    performed_by: str | None
    notes: str | None
    performed_at: datetime

    model_config = {"from_attributes": True}


class VolumeInfo(BaseModel):
    total_volume: float
    used_volume: float
    remaining_volume: float


class PackagingResponse(BaseModel):
    packaging_run: PackagingRunOut
    volume_info: VolumeInfo
    lot_id: str | None = None
    lot_completed: bool = False
    completed_batch_ids: list[str] = []
