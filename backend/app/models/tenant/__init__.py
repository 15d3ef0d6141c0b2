"""Tenant-owned models.

Every table carries an indexed tenant_id column; rows of different
tenants share the tables and are separated by that column alone.
"""

from app.models.tenant.recipe import Recipe
from app.models.tenant.tank import Tank
from app.models.tenant.tenant_config import TenantConfig
from app.models.tenant.batch import Batch
from app.models.tenant.gravity_reading import GravityReading
from app.models.tenant.batch_history import BatchHistory
from app.models.tenant.lot import Lot
from app.models.tenant.lot_batch import LotBatch
from app.models.tenant.tank_assignment import TankAssignment
from app.models.tenant.packaging_run import PackagingRun

__all__ = [
    "Recipe",
    "Tank",
    "TenantConfig",
    "Batch",
    "GravityReading",
    "BatchHistory",
    "Lot",
    "LotBatch",
    "TankAssignment",
    "PackagingRun",
]
