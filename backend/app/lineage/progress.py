"""Phase & progress calculator.

Annotates a lot with the tank it occupies, its gravity readings and a
coarse 0-100 progress estimate.  Everything here is read-only and works
on an already loaded `LineageSnapshot`.

Progress by phase (lot not COMPLETED):
    FERMENTATION  40
    CONDITIONING  70
    BRIGHT        85
    PACKAGING     packaged / total, clamped to 85..99
    unset         10
    COMPLETED     100
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.lineage.entities import (
    AssignmentStatus,
    Batch,
    BatchStatus,
    LineageSnapshot,
    Lot,
    LotPhase,
    LotStatus,
    Tank,
    TankAssignment,
    utcnow,
)

# Batch status → the lot phase a tank assignment should be for
EXPECTED_PHASE = {
    BatchStatus.FERMENTING: LotPhase.FERMENTATION,
    BatchStatus.CONDITIONING: LotPhase.CONDITIONING,
    BatchStatus.READY: LotPhase.BRIGHT,
    BatchStatus.PACKAGING: LotPhase.PACKAGING,
}

PHASE_PROGRESS = {
    LotPhase.FERMENTATION: 40,
    LotPhase.CONDITIONING: 70,
    LotPhase.BRIGHT: 85,
}
DEFAULT_PROGRESS = 10

_OG_NOTE = re.compile(r"\bOG\b", re.IGNORECASE)


@dataclass
class GravitySummary:
    original_gravity: float | None = None
    current_gravity: float | None = None
    temperature: float | None = None


@dataclass
class ConditioningProgress:
    started_at: datetime
    days_elapsed: int
    days_remaining: int
    progress: int
    duration_days: int


def expected_phase(lot: Lot, batch: Batch | None) -> LotPhase | None:
    if lot.phase is not None:
        return lot.phase
    if batch is not None:
        return EXPECTED_PHASE.get(batch.status)
    return None


def current_assignment(
    snapshot: LineageSnapshot, lot: Lot, batch: Batch | None = None
) -> TankAssignment | None:
    """Pick the assignment that describes where the lot is now.

    Prefers a not-yet-completed assignment for the expected phase, then any
    ACTIVE or PLANNED assignment.  COMPLETED lots have none.
    """
    if lot.status == LotStatus.COMPLETED:
        return None
    assignments = snapshot.assignments_for(lot.id)
    phase = expected_phase(lot, batch)
    if phase is not None:
        for assignment in assignments:
            if assignment.phase == phase and assignment.status != AssignmentStatus.COMPLETED:
                return assignment
    for assignment in assignments:
        if assignment.status in (AssignmentStatus.ACTIVE, AssignmentStatus.PLANNED):
            return assignment
    return None


def resolve_tank(
    snapshot: LineageSnapshot, lot: Lot, batch: Batch | None = None
) -> Tank | None:
    if lot.status == LotStatus.COMPLETED:
        return None
    assignment = current_assignment(snapshot, lot, batch)
    if assignment is not None and assignment.tank_id in snapshot.tanks:
        return snapshot.tanks[assignment.tank_id]
    # Direct references only for lots that predate tank assignments
    if snapshot.assignments_for(lot.id):
        return None
    for tank_id in (lot.tank_id, batch.tank_id if batch else None):
        if tank_id and tank_id in snapshot.tanks:
            return snapshot.tanks[tank_id]
    return None


def gravity_summary(snapshot: LineageSnapshot, batch: Batch | None) -> GravitySummary:
    """OG/SG/temperature for a batch.

    OG is the batch's own original_gravity, else a reading noted "OG", else
    the earliest reading.  SG is the batch's current_gravity, else the most
    recent reading.  Non-positive readings are ignored.
    """
    if batch is None:
        return GravitySummary()

    readings = [r for r in snapshot.readings_for(batch.id) if r.gravity and r.gravity > 0]
    og = batch.original_gravity
    if og is None and readings:
        noted = next((r for r in readings if r.notes and _OG_NOTE.search(r.notes)), None)
        og = (noted or readings[0]).gravity

    sg = batch.current_gravity
    if sg is None and readings:
        sg = readings[-1].gravity

    temperature = readings[-1].temperature if readings else None
    return GravitySummary(original_gravity=og, current_gravity=sg, temperature=temperature)


def phase_progress(lot: Lot, packaged_volume: float, total_volume: float) -> int:
    if lot.status == LotStatus.COMPLETED:
        return 100
    if lot.phase == LotPhase.PACKAGING:
        pct = packaged_volume / total_volume * 100 if total_volume > 0 else 0
        return max(85, min(99, round(pct)))
    return PHASE_PROGRESS.get(lot.phase, DEFAULT_PROGRESS)


def conditioning_progress(
    started_at: datetime, duration_days: int, now: datetime | None = None
) -> ConditioningProgress:
    """Time-based progress through a fixed-length conditioning period."""
    now = now or utcnow()
    elapsed = max(now - started_at, timedelta(0))
    days = math.floor(elapsed / timedelta(days=1))
    progress = min(100, round(days / duration_days * 100)) if duration_days > 0 else 100
    return ConditioningProgress(
        started_at=started_at,
        days_elapsed=days,
        days_remaining=max(0, duration_days - days),
        progress=progress,
        duration_days=duration_days,
    )


def assignment_started_at(assignment: TankAssignment) -> datetime:
    return assignment.actual_start or assignment.planned_start or assignment.created_at
