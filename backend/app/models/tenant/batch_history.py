"""BatchHistory — immutable event log for batch and lot movements.

Records every state transition the lineage operations perform on a batch
or on a lot derived from it.  This table is the production timeline and
audit trail.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import TenantBase


class BatchHistory(TenantBase):
    __tablename__ = "batch_history"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    batch_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("batches.id"), nullable=False, index=True
    )

    # ── Event classification ─────────────────────────────────
    # planned | fermentation_started | phase_changed | gravity_reading |
    # split | blend_created | blended | packaging | lot_completed | batch_completed
    event_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    summary: Mapped[str | None] = mapped_column(Text)

    # ── Event data ───────────────────────────────────────────
    # Payload shape depends on event_type:
    #   split:      {"parent_lot": "BRW-2025-0007", "children": ["…-A", "…-B"]}
    #   packaging:  {"package_type": "KEG_50", "quantity": 8, "volume_total": 400}
    #   blended:    {"blend_lot": "BLEND-2025-0001", "volume": 500}
    event_data: Mapped[dict | None] = mapped_column(JSON)

    recorded_by: Mapped[str | None] = mapped_column(String(36))  # user_id
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
        nullable=False, index=True,
    )
