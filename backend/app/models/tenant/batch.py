"""Batch — one brew run.

A Batch is the recipe-level record of a single brew.  It is created when a
brew is scheduled and then tracked through fermentation, conditioning and
packaging.  The liquid itself is tracked by Lots: every Lot traces back to
one or more Batches through LotBatch rows.

Lifecycle:  PLANNED → FERMENTING → CONDITIONING → READY → PACKAGING → COMPLETED

Batches are never deleted, only marked COMPLETED.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import TenantBase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Batch(TenantBase):
    __tablename__ = "batches"
    __table_args__ = (
        UniqueConstraint("tenant_id", "batch_number", name="uq_batches_tenant_number"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    # Human-readable code, e.g. BRW-2025-0007
    batch_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    recipe_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("recipes.id")
    )

    # ── Status ───────────────────────────────────────────────
    # PLANNED | FERMENTING | CONDITIONING | READY | PACKAGING | COMPLETED
    status: Mapped[str] = mapped_column(String(30), default="PLANNED", index=True)

    # ── Volumes (liters) ─────────────────────────────────────
    volume: Mapped[float] = mapped_column(Float, default=0.0)
    # Monotonically non-decreasing; sum of packaging runs billed to this batch
    packaged_volume: Mapped[float] = mapped_column(Float, default=0.0)

    # ── Gravity ──────────────────────────────────────────────
    original_gravity: Mapped[float | None] = mapped_column(Float)
    current_gravity: Mapped[float | None] = mapped_column(Float)
    final_gravity: Mapped[float | None] = mapped_column(Float)

    # Direct tank reference (legacy single-tank batches)
    tank_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("tanks.id"))

    # ── Dates ────────────────────────────────────────────────
    brewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    notes: Mapped[str | None] = mapped_column(Text)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
