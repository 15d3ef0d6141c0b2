"""Lineage graph resolver — the "active lots" read model.

Given a tenant snapshot, produces one row per physically distinct volume
of beer that is still in progress, never a row for a consumed
intermediate:

1. Every lot named as some lot's `parent_lot_id` is consumed.
2. Secondary heuristic for legacy rows without `parent_lot_id`: a lot
   coded X is consumed when a lot coded X-A (X-B, …) exists.
3. Unless the caller looks a lot up explicitly by id or code, only
   ACTIVE/PLANNED lots that are not consumed are listed.
4. Each lot is classified blend / split / single and its sources resolved.

Resolution never raises on bad lineage data: a dangling parent, missing
batch row or missing code degrades to `type="single"` / null sources.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime

from app.lineage import progress
from app.lineage.entities import (
    AssignmentStatus,
    Batch,
    LineageSnapshot,
    Lot,
    LotPhase,
    LotStatus,
    LotType,
    PackagingRun,
    Tank,
    TankAssignment,
    TankStatus,
    utcnow,
)
from app.lineage.policy import LineagePolicy

logger = logging.getLogger(__name__)

_SPLIT_CODE = re.compile(r"^(?P<parent>.+)-[A-Z]$")


# ── Read model ───────────────────────────────────────────────

@dataclass
class TankRef:
    id: str
    name: str
    type: str
    capacity: float | None


@dataclass
class SourceLot:
    batch_number: str | None
    volume_contribution: float | None


@dataclass
class BatchRef:
    id: str
    batch_number: str
    status: str
    volume_contribution: float | None
    batch_percentage: float | None


@dataclass
class ResolvedLot:
    id: str
    lot_code: str | None
    type: LotType
    phase: LotPhase | None
    status: LotStatus
    progress: int
    total_volume: float
    packaged_volume: float
    remaining_volume: float
    source_batch_number: str | None = None
    source_lots: list[SourceLot] | None = None
    parent_lot_id: str | None = None
    recipe_name: str | None = None
    recipe_style: str | None = None
    original_gravity: float | None = None
    current_gravity: float | None = None
    temperature: float | None = None
    tank: TankRef | None = None
    conditioning: progress.ConditioningProgress | None = None
    batches: list[BatchRef] = field(default_factory=list)
    created_at: datetime | None = None


@dataclass
class LotStats:
    total: int = 0
    by_phase: dict[str, int] = field(default_factory=dict)
    by_type: dict[str, int] = field(default_factory=dict)


@dataclass
class LotListing:
    lots: list[ResolvedLot]
    count: int
    stats: LotStats


@dataclass
class LotQuery:
    phase: LotPhase | None = None
    status: LotStatus | None = None
    active_only: bool = True
    lot_id: str | None = None
    lot_number: str | None = None
    limit: int | None = None


@dataclass
class TankOccupancy:
    tank: Tank
    lot: ResolvedLot | None


@dataclass
class LotDetail:
    lot: ResolvedLot
    consumed: bool
    parent: ResolvedLot | None
    children: list[ResolvedLot]
    assignments: list[TankAssignment]
    packaging_runs: list[PackagingRun]


# ── Resolver ─────────────────────────────────────────────────

class LineageResolver:
    """Resolve lots of one tenant snapshot.  Build once per request."""

    def __init__(
        self,
        snapshot: LineageSnapshot,
        policy: LineagePolicy | None = None,
        now: datetime | None = None,
    ):
        self.snapshot = snapshot
        self.policy = policy or LineagePolicy()
        self.now = now or utcnow()
        self._consumed: set[str] | None = None

    # ── Visibility ──────────────────────────────────────────

    @property
    def consumed_lot_ids(self) -> set[str]:
        if self._consumed is None:
            self._consumed = self._compute_consumed()
        return self._consumed

    def _compute_consumed(self) -> set[str]:
        lots = self.snapshot.lots
        consumed = set()
        for lot in lots.values():
            if lot.parent_lot_id:
                consumed.add(lot.parent_lot_id)

        # Codes that some other lot extends with a -A/-B/… suffix
        split_prefixes = set()
        for lot in lots.values():
            match = _SPLIT_CODE.match(lot.lot_code or "")
            if match:
                split_prefixes.add(match.group("parent"))
        for lot in lots.values():
            if lot.lot_code and lot.lot_code in split_prefixes and lot.id not in consumed:
                logger.debug(
                    "Lot hidden by split code convention",
                    extra={"tenant_id": self.snapshot.tenant_id, "lot_id": lot.id},
                )
                consumed.add(lot.id)
        return consumed

    def is_consumed(self, lot_id: str) -> bool:
        return lot_id in self.consumed_lot_ids

    def living_lots_for_batch(self, batch_id: str) -> list[Lot]:
        """Lots carrying this batch that are neither consumed nor COMPLETED."""
        return [
            lot for lot in self.snapshot.lots_for_batch(batch_id)
            if not self.is_consumed(lot.id) and lot.status != LotStatus.COMPLETED
        ]

    # ── Classification ──────────────────────────────────────

    def classify(self, lot: Lot) -> LotType:
        batch_ids = {lb.batch_id for lb in self.snapshot.lot_batches_for(lot.id)}
        if len(batch_ids) > 1 or lot.is_blend_result:
            return LotType.BLEND
        if lot.parent_lot_id:
            return LotType.SPLIT
        return LotType.SINGLE

    def _lot_batches(self, lot: Lot) -> list[tuple]:
        pairs = []
        for lb in self.snapshot.lot_batches_for(lot.id):
            batch = self.snapshot.batches.get(lb.batch_id)
            if batch is None:
                logger.debug(
                    "LotBatch references a missing batch",
                    extra={"tenant_id": self.snapshot.tenant_id, "lot_id": lot.id},
                )
            pairs.append((lb, batch))
        return pairs

    def _split_source(self, lot: Lot) -> str | None:
        parent = self.snapshot.lots.get(lot.parent_lot_id)
        if parent is None:
            logger.debug(
                "Split lot has a dangling parent_lot_id",
                extra={"tenant_id": self.snapshot.tenant_id, "lot_id": lot.id},
            )
            return None
        for lb, batch in self._lot_batches(parent):
            if batch is not None:
                return batch.batch_number
        return None

    def total_volume(self, lot: Lot) -> float:
        if lot.actual_volume is not None:
            return lot.actual_volume
        if lot.planned_volume is not None:
            return lot.planned_volume
        contributions = [
            lb.volume_contribution for lb in self.snapshot.lot_batches_for(lot.id)
            if lb.volume_contribution is not None
        ]
        return float(sum(contributions)) if contributions else 0.0

    def packaged_volume(self, lot: Lot) -> float:
        if not lot.lot_code:
            return 0.0
        return float(sum(r.volume_total for r in self.snapshot.runs_for_lot_code(lot.lot_code)))

    # ── Resolution ──────────────────────────────────────────

    def resolve(self, lot: Lot) -> ResolvedLot:
        lot_type = self.classify(lot)
        pairs = self._lot_batches(lot)
        primary: Batch | None = next((b for _, b in pairs if b is not None), None)

        source_batch_number = None
        source_lots = None
        if lot_type == LotType.SPLIT:
            source_batch_number = self._split_source(lot)
        elif lot_type == LotType.BLEND:
            source_lots = [
                SourceLot(
                    batch_number=batch.batch_number if batch else None,
                    volume_contribution=lb.volume_contribution,
                )
                for lb, batch in pairs
            ]

        recipe = None
        if primary is not None and primary.recipe_id:
            recipe = self.snapshot.recipes.get(primary.recipe_id)

        total = self.total_volume(lot)
        packaged = self.packaged_volume(lot)
        gravity = progress.gravity_summary(self.snapshot, primary)

        tank_ref = None
        tank = progress.resolve_tank(self.snapshot, lot, primary)
        if tank is not None:
            tank_ref = TankRef(
                id=tank.id, name=tank.name, type=tank.type.value, capacity=tank.capacity
            )

        conditioning = None
        if lot.phase == LotPhase.CONDITIONING and lot.status != LotStatus.COMPLETED:
            assignment = progress.current_assignment(self.snapshot, lot, primary)
            started = progress.assignment_started_at(assignment) if assignment else lot.created_at
            conditioning = progress.conditioning_progress(
                started, self.policy.conditioning_duration_days, self.now
            )

        return ResolvedLot(
            id=lot.id,
            lot_code=lot.lot_code,
            type=lot_type,
            phase=lot.phase,
            status=lot.status,
            progress=progress.phase_progress(lot, packaged, total),
            total_volume=total,
            packaged_volume=packaged,
            remaining_volume=max(0.0, total - packaged),
            source_batch_number=source_batch_number,
            source_lots=source_lots,
            parent_lot_id=lot.parent_lot_id,
            recipe_name=recipe.name if recipe else None,
            recipe_style=recipe.style if recipe else None,
            original_gravity=gravity.original_gravity,
            current_gravity=gravity.current_gravity,
            temperature=gravity.temperature,
            tank=tank_ref,
            conditioning=conditioning,
            batches=[
                BatchRef(
                    id=batch.id,
                    batch_number=batch.batch_number,
                    status=batch.status.value,
                    volume_contribution=lb.volume_contribution,
                    batch_percentage=lb.batch_percentage,
                )
                for lb, batch in pairs
                if batch is not None
            ],
            created_at=lot.created_at,
        )

    # ── Listing ─────────────────────────────────────────────

    def select(self, query: LotQuery) -> list[Lot]:
        lots = list(self.snapshot.lots.values())
        explicit = query.lot_id is not None or query.lot_number is not None

        if query.lot_id is not None:
            lots = [lot for lot in lots if lot.id == query.lot_id or lot.lot_code == query.lot_id]
        if query.lot_number is not None:
            lots = [lot for lot in lots if lot.lot_code == query.lot_number]

        if not explicit:
            lots = [lot for lot in lots if not self.is_consumed(lot.id)]
            if query.status is None and query.active_only:
                lots = [
                    lot for lot in lots
                    if lot.status in (LotStatus.ACTIVE, LotStatus.PLANNED)
                ]
        if query.status is not None:
            lots = [lot for lot in lots if lot.status == query.status]
        if query.phase is not None:
            lots = [lot for lot in lots if lot.phase == query.phase]

        lots.sort(key=lambda lot: lot.created_at, reverse=True)
        return lots

    def active_lots(self, query: LotQuery | None = None) -> LotListing:
        query = query or LotQuery()
        lots = self.select(query)

        stats = LotStats(
            total=len(lots),
            by_phase={phase.value: 0 for phase in LotPhase},
            by_type={lot_type.value: 0 for lot_type in LotType},
        )
        for lot in lots:
            if lot.phase is not None and lot.status == LotStatus.ACTIVE:
                stats.by_phase[lot.phase.value] += 1
            stats.by_type[self.classify(lot).value] += 1

        if query.limit is not None:
            lots = lots[: query.limit]
        resolved = [self.resolve(lot) for lot in lots]
        return LotListing(lots=resolved, count=len(resolved), stats=stats)

    def blend_candidates(self) -> list[ResolvedLot]:
        """ACTIVE, unconsumed lots in CONDITIONING or BRIGHT."""
        lots = [
            lot for lot in self.select(LotQuery(status=LotStatus.ACTIVE))
            if lot.phase in (LotPhase.CONDITIONING, LotPhase.BRIGHT)
        ]
        return [self.resolve(lot) for lot in lots]

    def detail(self, ref: str) -> LotDetail | None:
        """A single lot by id or code, historical rows included."""
        lot = self.snapshot.find_lot(ref)
        if lot is None:
            return None
        parent = self.snapshot.lots.get(lot.parent_lot_id) if lot.parent_lot_id else None
        children = sorted(self.snapshot.children_of(lot.id), key=lambda c: c.lot_code or c.id)
        runs = self.snapshot.runs_for_lot_code(lot.lot_code) if lot.lot_code else []
        return LotDetail(
            lot=self.resolve(lot),
            consumed=self.is_consumed(lot.id),
            parent=self.resolve(parent) if parent else None,
            children=[self.resolve(child) for child in children],
            assignments=self.snapshot.assignments_for(lot.id),
            packaging_runs=sorted(runs, key=lambda r: r.performed_at),
        )

    def tank_occupancy(self) -> list[TankOccupancy]:
        """Every tank with the living lot it currently holds, by tank name."""
        board = []
        for tank in sorted(self.snapshot.tanks.values(), key=lambda t: t.name):
            lot = None
            open_rows = self.snapshot.open_assignments_for_tank(tank.id)
            if open_rows:
                lot = self.snapshot.lots.get(open_rows[0].lot_id)
            elif tank.status == TankStatus.IN_USE and tank.current_lot_id:
                lot = self.snapshot.lots.get(tank.current_lot_id)
            if lot is not None and lot.status == LotStatus.COMPLETED:
                lot = None
            board.append(TankOccupancy(tank=tank, lot=self.resolve(lot) if lot else None))
        return board


def open_assignment(snapshot: LineageSnapshot, lot_id: str) -> TankAssignment | None:
    """The lot's ACTIVE assignment, if any (most recent first)."""
    for assignment in snapshot.assignments_for(lot_id):
        if assignment.status == AssignmentStatus.ACTIVE:
            return assignment
    return None
