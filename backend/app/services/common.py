"""Building blocks shared by the lot operations.

Every helper here works inside an open `LineageTransaction`: lookups read
`tx.snapshot`, mutations go through `tx.add()` / `tx.touch()` so they are
committed (or discarded) together with the operation that called them.
"""

import logging
from datetime import datetime

from app.lineage.entities import (
    AssignmentStatus,
    BATCH_STATUS_ORDER,
    Batch,
    BatchHistory,
    BatchStatus,
    LineageSnapshot,
    Lot,
    LotPhase,
    LotStatus,
    Tank,
    TankAssignment,
    TankStatus,
)
from app.lineage.errors import InvalidStateError, NotFoundError, VolumeExceededError
from app.lineage.resolver import LineageResolver
from app.lineage.store import LineageTransaction

logger = logging.getLogger(__name__)

# Lot phase → the batch status it implies
PHASE_BATCH_STATUS = {
    LotPhase.FERMENTATION: BatchStatus.FERMENTING,
    LotPhase.CONDITIONING: BatchStatus.CONDITIONING,
    LotPhase.BRIGHT: BatchStatus.READY,
    LotPhase.PACKAGING: BatchStatus.PACKAGING,
}


# ── Lookups ──────────────────────────────────────────────────

def require_lot(snapshot: LineageSnapshot, ref: str) -> Lot:
    lot = snapshot.find_lot(ref)
    if lot is None:
        raise NotFoundError("Lot", ref)
    return lot


def require_batch(snapshot: LineageSnapshot, batch_id: str) -> Batch:
    batch = snapshot.batches.get(batch_id)
    if batch is None:
        raise NotFoundError("Batch", batch_id)
    return batch


def require_tank(snapshot: LineageSnapshot, tank_id: str) -> Tank:
    tank = snapshot.tanks.get(tank_id)
    if tank is None:
        raise NotFoundError("Tank", tank_id)
    return tank


def ensure_lot_open(resolver: LineageResolver, lot: Lot, action: str) -> None:
    """Reject operations on lots that are finished, consumed or not yet active."""
    if lot.status == LotStatus.COMPLETED:
        raise InvalidStateError(f"Lot {lot.code} is already COMPLETED and cannot {action}")
    if resolver.is_consumed(lot.id):
        raise InvalidStateError(f"Lot {lot.code} has been split and cannot {action}")
    if lot.status != LotStatus.ACTIVE:
        raise InvalidStateError(f"Lot {lot.code} must be ACTIVE to {action} (current: {lot.status.value})")


def tanks_held_by(snapshot: LineageSnapshot, lot: Lot) -> list[Tank]:
    """Tanks the lot occupies through an open assignment or a direct reference."""
    tank_ids = [
        a.tank_id for a in snapshot.assignments_for(lot.id)
        if a.status in (AssignmentStatus.ACTIVE, AssignmentStatus.PLANNED)
    ]
    tank_ids += [t.id for t in snapshot.tanks.values() if t.current_lot_id == lot.id]
    return [snapshot.tanks[i] for i in dict.fromkeys(tank_ids) if i in snapshot.tanks]


# ── Tank occupancy ───────────────────────────────────────────

def ensure_tank_available(
    snapshot: LineageSnapshot,
    tank: Tank,
    volume: float | None = None,
    allowed_lot_ids: set[str] = frozenset(),
) -> None:
    """A tank can take a lot when it is not in maintenance and is empty,
    or occupied only by lots in `allowed_lot_ids`."""
    if tank.status == TankStatus.MAINTENANCE:
        raise InvalidStateError(f"Tank {tank.name} is under maintenance")
    occupants = {a.lot_id for a in snapshot.open_assignments_for_tank(tank.id)}
    if tank.status == TankStatus.IN_USE and tank.current_lot_id:
        occupants.add(tank.current_lot_id)
    if occupants - set(allowed_lot_ids):
        raise InvalidStateError(f"Tank {tank.name} is occupied")
    if volume is not None and tank.capacity is not None and volume > tank.capacity:
        raise VolumeExceededError(
            volume, tank.capacity,
            message=f"{volume:.2f} L exceeds the capacity of tank {tank.name} ({tank.capacity:.2f} L)",
        )


def occupy_tank(
    tx: LineageTransaction,
    tank: Tank,
    lot: Lot,
    phase: LotPhase,
    volume: float | None,
    now: datetime,
    user_id: str | None = None,
) -> TankAssignment:
    """Open an ACTIVE assignment of `lot` on `tank` and mark the tank IN_USE."""
    assignment = tx.add(TankAssignment(
        tenant_id=tx.tenant_id,
        tank_id=tank.id,
        lot_id=lot.id,
        phase=phase,
        status=AssignmentStatus.ACTIVE,
        planned_start=now,
        actual_start=now,
        planned_volume=volume,
        actual_volume=volume,
        created_by=user_id,
        created_at=now,
        updated_at=now,
    ))
    tank.status = TankStatus.IN_USE
    tank.current_lot_id = lot.id
    tank.current_phase = phase
    tank.updated_at = now
    tx.touch(tank)
    lot.tank_id = tank.id
    lot.updated_at = now
    tx.touch(lot)
    return assignment


def free_tank(tx: LineageTransaction, tank: Tank, now: datetime) -> None:
    """Empty a tank and flag it for cleaning-in-place."""
    tank.status = TankStatus.AVAILABLE
    tank.current_lot_id = None
    tank.current_phase = None
    tank.needs_cip = True
    tank.next_cip_at = now
    tank.updated_at = now
    tx.touch(tank)
    logger.info(
        "Tank freed",
        extra={"tenant_id": tx.tenant_id, "tank_id": tank.id},
    )


def complete_assignments(tx: LineageTransaction, lot: Lot, now: datetime) -> list[TankAssignment]:
    """Close every open assignment of the lot with actual_end = now."""
    closed = []
    for assignment in tx.snapshot.assignments_for(lot.id):
        if assignment.status == AssignmentStatus.COMPLETED:
            continue
        assignment.status = AssignmentStatus.COMPLETED
        assignment.actual_start = assignment.actual_start or assignment.planned_start or now
        assignment.actual_end = now
        assignment.updated_at = now
        tx.touch(assignment)
        closed.append(assignment)
    return closed


# ── Batches ──────────────────────────────────────────────────

def advance_batch(tx: LineageTransaction, batch: Batch, status: BatchStatus, now: datetime) -> bool:
    """Move a batch forward to `status`; never backwards."""
    if BATCH_STATUS_ORDER.index(status) <= BATCH_STATUS_ORDER.index(batch.status):
        return False
    batch.status = status
    if status == BatchStatus.COMPLETED:
        batch.completed_at = now
    batch.updated_at = now
    tx.touch(batch)
    return True


def record_history(
    tx: LineageTransaction,
    batch_id: str,
    event_type: str,
    summary: str,
    event_data: dict | None = None,
    user_id: str | None = None,
    now: datetime | None = None,
) -> None:
    history = BatchHistory(
        tenant_id=tx.tenant_id,
        batch_id=batch_id,
        event_type=event_type,
        summary=summary,
        event_data=event_data,
        recorded_by=user_id,
    )
    if now is not None:
        history.recorded_at = now
    tx.add(history)


def lot_batch_ids(snapshot: LineageSnapshot, lot: Lot) -> list[str]:
    return list(dict.fromkeys(lb.batch_id for lb in snapshot.lot_batches_for(lot.id)))


# ── Completion ───────────────────────────────────────────────

def complete_lot_cascade(
    tx: LineageTransaction,
    lot: Lot,
    now: datetime,
    user_id: str | None = None,
) -> tuple[list[str], list[str]]:
    """Complete a lot, free its tank and complete batches with nothing left in flight.

    Returns (completed batch ids, freed tank ids).
    """
    snapshot = tx.snapshot
    held = tanks_held_by(snapshot, lot)

    lot.status = LotStatus.COMPLETED
    lot.completed_at = now
    lot.updated_at = now
    tx.touch(lot)
    complete_assignments(tx, lot, now)

    freed = []
    for tank in held:
        others = [a for a in snapshot.open_assignments_for_tank(tank.id) if a.lot_id != lot.id]
        if others:
            continue
        free_tank(tx, tank, now)
        freed.append(tank.id)

    for batch_id in lot_batch_ids(snapshot, lot):
        record_history(
            tx, batch_id, "lot_completed", f"Lot {lot.code} completed",
            {"lot_id": lot.id, "lot_code": lot.lot_code}, user_id, now,
        )
    logger.info(
        "Lot completed",
        extra={"tenant_id": tx.tenant_id, "lot_id": lot.id, "freed_tanks": freed},
    )

    # Split parents are excluded: their volume lives on in the children
    resolver = LineageResolver(snapshot)
    completed_batches = []
    for batch_id in lot_batch_ids(snapshot, lot):
        batch = snapshot.batches.get(batch_id)
        if batch is None or batch.status == BatchStatus.COMPLETED:
            continue
        lots = [
            other for other in snapshot.lots_for_batch(batch_id)
            if not resolver.is_consumed(other.id)
        ]
        if all(other.status == LotStatus.COMPLETED for other in lots):
            advance_batch(tx, batch, BatchStatus.COMPLETED, now)
            record_history(
                tx, batch_id, "batch_completed",
                f"Batch {batch.batch_number} completed", None, user_id, now,
            )
            completed_batches.append(batch_id)
            logger.info(
                "Batch completed",
                extra={"tenant_id": tx.tenant_id, "batch_id": batch_id},
            )
    return completed_batches, freed
