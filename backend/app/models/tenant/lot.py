"""Lot — a physical volume of beer that exists as one coherent whole.

A Lot is created when a batch starts fermenting (code = batch number), when
a lot is split (codes suffixed -A, -B, …, `parent_lot_id` set), or when
lots are blended (code BLEND-YYYY-NNNN, `is_blend_result` set).  Parent
lots of a split are retained as history and hidden from active views.

Lifecycle:  PLANNED → ACTIVE → COMPLETED
Phases:     FERMENTATION → CONDITIONING → BRIGHT → PACKAGING
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import TenantBase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Lot(TenantBase):
    __tablename__ = "lots"
    __table_args__ = (
        UniqueConstraint("tenant_id", "lot_code", name="uq_lots_tenant_code"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    lot_code: Mapped[str | None] = mapped_column(String(60), index=True)

    # ── Phase / status ───────────────────────────────────────
    # FERMENTATION | CONDITIONING | BRIGHT | PACKAGING
    phase: Mapped[str | None] = mapped_column(String(30), index=True)
    # PLANNED | ACTIVE | COMPLETED
    status: Mapped[str] = mapped_column(String(30), default="PLANNED", index=True)

    # ── Volumes (liters) ─────────────────────────────────────
    planned_volume: Mapped[float | None] = mapped_column(Float)
    actual_volume: Mapped[float | None] = mapped_column(Float)

    # ── Lineage ──────────────────────────────────────────────
    # Set if and only if this lot was produced by a split
    parent_lot_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("lots.id"), index=True
    )
    is_blend_result: Mapped[bool] = mapped_column(Boolean, default=False)
    # Set on blend sources: the blend lot that consumed this lot
    blended_into_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("lots.id"))
    tank_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("tanks.id"))

    # ── Dates ────────────────────────────────────────────────
    blended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    split_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    notes: Mapped[str | None] = mapped_column(Text)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
