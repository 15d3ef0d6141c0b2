"""Plain domain records the lineage engine operates on.

These mirror the ORM rows in `app.models.tenant` field-for-field so the
SQL store can copy between the two generically.  The engine never touches
ORM objects directly: it works on a tenant-scoped `LineageSnapshot` of
these records.

Lifecycles:
    Batch:   PLANNED → FERMENTING → CONDITIONING → READY → PACKAGING → COMPLETED
    Lot:     PLANNED → ACTIVE → COMPLETED   (COMPLETED is terminal)
    Tank assignment: PLANNED → ACTIVE → COMPLETED
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# ── Enums ────────────────────────────────────────────────────

class BatchStatus(str, enum.Enum):
    PLANNED = "PLANNED"
    FERMENTING = "FERMENTING"
    CONDITIONING = "CONDITIONING"
    READY = "READY"
    PACKAGING = "PACKAGING"
    COMPLETED = "COMPLETED"


class LotPhase(str, enum.Enum):
    FERMENTATION = "FERMENTATION"
    CONDITIONING = "CONDITIONING"
    BRIGHT = "BRIGHT"
    PACKAGING = "PACKAGING"


class LotStatus(str, enum.Enum):
    PLANNED = "PLANNED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class AssignmentStatus(str, enum.Enum):
    PLANNED = "PLANNED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class TankStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    IN_USE = "IN_USE"
    MAINTENANCE = "MAINTENANCE"


class TankType(str, enum.Enum):
    FERMENTER = "FERMENTER"
    BRITE = "BRITE"
    UNITANK = "UNITANK"


class LotType(str, enum.Enum):
    SINGLE = "single"
    BLEND = "blend"
    SPLIT = "split"


class PackageType(str, enum.Enum):
    KEG_50 = "KEG_50"
    KEG_30 = "KEG_30"
    KEG_20 = "KEG_20"
    BOTTLE_750 = "BOTTLE_750"
    BOTTLE_500 = "BOTTLE_500"
    BOTTLE_330 = "BOTTLE_330"
    CAN_500 = "CAN_500"
    CAN_330 = "CAN_330"


# Liters per package unit
PACKAGE_SIZES_LITERS: dict[PackageType, float] = {
    PackageType.KEG_50: 50.0,
    PackageType.KEG_30: 30.0,
    PackageType.KEG_20: 20.0,
    PackageType.BOTTLE_750: 0.75,
    PackageType.BOTTLE_500: 0.5,
    PackageType.BOTTLE_330: 0.33,
    PackageType.CAN_500: 0.5,
    PackageType.CAN_330: 0.33,
}

# Batch status ordering; batches only ever move forward through it
BATCH_STATUS_ORDER = [
    BatchStatus.PLANNED,
    BatchStatus.FERMENTING,
    BatchStatus.CONDITIONING,
    BatchStatus.READY,
    BatchStatus.PACKAGING,
    BatchStatus.COMPLETED,
]

PHASE_ORDER = [
    LotPhase.FERMENTATION,
    LotPhase.CONDITIONING,
    LotPhase.BRIGHT,
    LotPhase.PACKAGING,
]


# ── Records ──────────────────────────────────────────────────

@dataclass
class Recipe:
    tenant_id: str
    name: str
    style: str | None = None
    yeast_strain: str | None = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Batch:
    tenant_id: str
    batch_number: str
    volume: float = 0.0
    recipe_id: str | None = None
    status: BatchStatus = BatchStatus.PLANNED
    packaged_volume: float = 0.0
    original_gravity: float | None = None
    current_gravity: float | None = None
    final_gravity: float | None = None
    tank_id: str | None = None
    brewed_at: datetime | None = None
    completed_at: datetime | None = None
    notes: str | None = None
    id: str = field(default_factory=new_id)
    version: int = 1
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class GravityReading:
    tenant_id: str
    batch_id: str
    gravity: float
    temperature: float | None = None
    notes: str | None = None
    recorded_by: str | None = None
    recorded_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=new_id)


@dataclass
class Lot:
    tenant_id: str
    lot_code: str | None
    phase: LotPhase | None = None
    status: LotStatus = LotStatus.PLANNED
    planned_volume: float | None = None
    actual_volume: float | None = None
    parent_lot_id: str | None = None
    is_blend_result: bool = False
    blended_into_id: str | None = None
    tank_id: str | None = None
    blended_at: datetime | None = None
    split_at: datetime | None = None
    completed_at: datetime | None = None
    notes: str | None = None
    id: str = field(default_factory=new_id)
    version: int = 1
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def code(self) -> str:
        return self.lot_code or self.id


@dataclass
class LotBatch:
    tenant_id: str
    lot_id: str
    batch_id: str
    volume_contribution: float | None = None
    batch_percentage: float | None = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Tank:
    tenant_id: str
    name: str
    type: TankType = TankType.UNITANK
    capacity: float | None = None
    status: TankStatus = TankStatus.AVAILABLE
    current_lot_id: str | None = None
    current_phase: LotPhase | None = None
    needs_cip: bool = False
    next_cip_at: datetime | None = None
    id: str = field(default_factory=new_id)
    version: int = 1
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class TankAssignment:
    tenant_id: str
    tank_id: str
    lot_id: str
    phase: LotPhase
    status: AssignmentStatus = AssignmentStatus.PLANNED
    planned_start: datetime | None = None
    planned_end: datetime | None = None
    actual_start: datetime | None = None
    actual_end: datetime | None = None
    planned_volume: float | None = None
    actual_volume: float | None = None
    created_by: str | None = None
    id: str = field(default_factory=new_id)
    version: int = 1
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class PackagingRun:
    tenant_id: str
    batch_id: str
    package_type: PackageType
    quantity: int
    volume_total: float
    lot_number: str
    performed_by: str | None = None
    notes: str | None = None
    performed_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=new_id)


@dataclass
class BatchHistory:
    tenant_id: str
    batch_id: str
    # fermentation_started | phase_changed | split | blend_created | blended |
    # packaging | lot_completed | batch_completed | gravity_reading | planned
    event_type: str
    summary: str | None = None
    event_data: dict | None = None
    recorded_by: str | None = None
    recorded_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=new_id)


@dataclass
class TenantConfig:
    tenant_id: str
    key: str
    value: dict
    id: str = field(default_factory=new_id)
    updated_at: datetime = field(default_factory=utcnow)


# Records with an optimistic `version` column
VERSIONED_TYPES = (Batch, Lot, Tank, TankAssignment)


# ── Snapshot ─────────────────────────────────────────────────

@dataclass
class LineageSnapshot:
    """Everything one tenant owns, loaded at a single point in time."""

    tenant_id: str
    recipes: dict[str, Recipe] = field(default_factory=dict)
    batches: dict[str, Batch] = field(default_factory=dict)
    lots: dict[str, Lot] = field(default_factory=dict)
    tanks: dict[str, Tank] = field(default_factory=dict)
    lot_batches: list[LotBatch] = field(default_factory=list)
    assignments: list[TankAssignment] = field(default_factory=list)
    packaging_runs: list[PackagingRun] = field(default_factory=list)
    gravity_readings: list[GravityReading] = field(default_factory=list)
    history: list[BatchHistory] = field(default_factory=list)
    config: dict[str, dict] = field(default_factory=dict)

    def put(self, entity) -> None:
        """Insert a freshly created record into the matching collection."""
        if isinstance(entity, Recipe):
            self.recipes[entity.id] = entity
        elif isinstance(entity, Batch):
            self.batches[entity.id] = entity
        elif isinstance(entity, Lot):
            self.lots[entity.id] = entity
        elif isinstance(entity, Tank):
            self.tanks[entity.id] = entity
        elif isinstance(entity, LotBatch):
            self.lot_batches.append(entity)
        elif isinstance(entity, TankAssignment):
            self.assignments.append(entity)
        elif isinstance(entity, PackagingRun):
            self.packaging_runs.append(entity)
        elif isinstance(entity, GravityReading):
            self.gravity_readings.append(entity)
        elif isinstance(entity, BatchHistory):
            self.history.append(entity)
        elif isinstance(entity, TenantConfig):
            self.config[entity.key] = entity.value
        else:
            raise TypeError(f"Unsupported lineage record: {type(entity).__name__}")

    # ── Lookups used by the mutating operations ─────────────

    def find_lot(self, ref: str) -> Lot | None:
        """Find a lot by id, falling back to its lot code."""
        lot = self.lots.get(ref)
        if lot is not None:
            return lot
        for candidate in self.lots.values():
            if candidate.lot_code == ref:
                return candidate
        return None

    def lot_batches_for(self, lot_id: str) -> list[LotBatch]:
        return [lb for lb in self.lot_batches if lb.lot_id == lot_id]

    def lots_for_batch(self, batch_id: str) -> list[Lot]:
        lot_ids = {lb.lot_id for lb in self.lot_batches if lb.batch_id == batch_id}
        return [self.lots[i] for i in lot_ids if i in self.lots]

    def children_of(self, lot_id: str) -> list[Lot]:
        return [lot for lot in self.lots.values() if lot.parent_lot_id == lot_id]

    def assignments_for(self, lot_id: str) -> list[TankAssignment]:
        return sorted(
            (a for a in self.assignments if a.lot_id == lot_id),
            key=lambda a: a.created_at,
            reverse=True,
        )

    def open_assignments_for_tank(self, tank_id: str) -> list[TankAssignment]:
        return [
            a for a in self.assignments
            if a.tank_id == tank_id and a.status == AssignmentStatus.ACTIVE
        ]

    def readings_for(self, batch_id: str) -> list[GravityReading]:
        return sorted(
            (r for r in self.gravity_readings if r.batch_id == batch_id),
            key=lambda r: r.recorded_at,
        )

    def runs_for_lot_code(self, lot_code: str) -> list[PackagingRun]:
        return [r for r in self.packaging_runs if r.lot_number == lot_code]

    def runs_for_batches(self, batch_ids) -> list[PackagingRun]:
        ids = set(batch_ids)
        return [r for r in self.packaging_runs if r.batch_id in ids]
