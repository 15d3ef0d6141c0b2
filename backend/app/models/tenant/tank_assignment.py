"""TankAssignment — a lot occupying a tank for one phase.

At most one ACTIVE assignment per tank at a time; the lineage operations
enforce this, the table does not.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import TenantBase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TankAssignment(TenantBase):
    __tablename__ = "tank_assignments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    tank_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tanks.id"), nullable=False, index=True
    )
    lot_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("lots.id"), nullable=False, index=True
    )
    phase: Mapped[str] = mapped_column(String(30), nullable=False)
    # PLANNED | ACTIVE | COMPLETED
    status: Mapped[str] = mapped_column(String(30), default="PLANNED", index=True)

    # ── Window ───────────────────────────────────────────────
    planned_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    planned_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    actual_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    actual_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # ── Volumes (liters) ─────────────────────────────────────
    planned_volume: Mapped[float | None] = mapped_column(Float)
    actual_volume: Mapped[float | None] = mapped_column(Float)

    created_by: Mapped[str | None] = mapped_column(String(36))  # user_id
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
