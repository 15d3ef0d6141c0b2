"""Tank — fermentation/conditioning vessel a lot can occupy."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import TenantBase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Tank(TenantBase):
    __tablename__ = "tanks"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    # FERMENTER | BRITE | UNITANK
    type: Mapped[str] = mapped_column(String(30), default="UNITANK")
    capacity: Mapped[float | None] = mapped_column(Float)  # liters

    # ── Occupancy ────────────────────────────────────────────
    # AVAILABLE | IN_USE | MAINTENANCE
    status: Mapped[str] = mapped_column(String(30), default="AVAILABLE", index=True)
    current_lot_id: Mapped[str | None] = mapped_column(String(36))
    current_phase: Mapped[str | None] = mapped_column(String(30))

    # ── Cleaning ─────────────────────────────────────────────
    needs_cip: Mapped[bool] = mapped_column(Boolean, default=False)
    next_cip_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
