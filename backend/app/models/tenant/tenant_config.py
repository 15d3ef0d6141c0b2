"""Tenant-scoped configuration key-value store."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import TenantBase


class TenantConfig(TenantBase):
    """Key-value configuration per tenant.

    Used for:
      - lineage_policy: {"packaging_tolerance_liters": 1.0,
                         "conditioning_duration_days": 7,
                         "blend_compatibility": "same_yeast"}
      - number_formats: {"batch": "BRW-{year}-{seq:4}", "blend": "BLEND-{year}-{seq:4}"}
    """
    __tablename__ = "tenant_config"
    __table_args__ = (
        UniqueConstraint("tenant_id", "key", name="uq_tenant_config_key"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    key: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[dict] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
