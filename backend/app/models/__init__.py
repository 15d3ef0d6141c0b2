"""Aggregate model imports for Alembic auto-detection."""

# Reference data
from app.models.tenant.recipe import Recipe  # noqa: F401
from app.models.tenant.tank import Tank  # noqa: F401
from app.models.tenant.tenant_config import TenantConfig  # noqa: F401

# Batches
from app.models.tenant.batch import Batch  # noqa: F401
from app.models.tenant.gravity_reading import GravityReading  # noqa: F401
from app.models.tenant.batch_history import BatchHistory  # noqa: F401

# Lot lineage
from app.models.tenant.lot import Lot  # noqa: F401
from app.models.tenant.lot_batch import LotBatch  # noqa: F401
from app.models.tenant.tank_assignment import TankAssignment  # noqa: F401
from app.models.tenant.packaging_run import PackagingRun  # noqa: F401
