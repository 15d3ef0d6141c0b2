"""PackagingRun — one kegging/bottling/canning event.

`batch_id` is the primary batch the run is billed against; `lot_number`
is the lot code being packaged and scopes "how much of this lot has been
packaged so far".
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import TenantBase


class PackagingRun(TenantBase):
    __tablename__ = "packaging_runs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    batch_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("batches.id"), nullable=False, index=True
    )
    # KEG_50 | KEG_30 | KEG_20 | BOTTLE_750 | BOTTLE_500 | BOTTLE_330 | CAN_500 | CAN_330
    package_type: Mapped[str] = mapped_column(String(30), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    volume_total: Mapped[float] = mapped_column(Float, nullable=False)  # liters
    lot_number: Mapped[str] = mapped_column(String(80), nullable=False, index=True)

    performed_by: Mapped[str | None] = mapped_column(String(100))
    notes: Mapped[str | None] = mapped_column(Text)
    performed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True
    )
