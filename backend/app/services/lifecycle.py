"""Lot and batch lifecycle outside split / blend / packaging.

  - create_recipe, create_tank          reference data
  - create_batch                        schedule a brew (PLANNED, BRW-YYYY-NNNN)
  - record_gravity_reading              OG/SG tracking
  - start_fermentation                  PLANNED batch → first lot in a tank
  - change_phase                        move a lot forward, optionally to another tank
  - complete_lot                        manual completion with the batch cascade
"""

import logging
import re

from app.lineage.entities import (
    PHASE_ORDER,
    Batch,
    BatchStatus,
    GravityReading,
    Lot,
    LotBatch,
    LotPhase,
    LotStatus,
    Recipe,
    Tank,
    utcnow,
)
from app.lineage.errors import InvalidBatchStatusError, InvalidStateError, NotFoundError
from app.lineage.resolver import LineageResolver, open_assignment
from app.lineage.store import LineageStore
from app.schemas.batch import BatchCreate, GravityReadingCreate
from app.schemas.lot import PhaseChangeRequest, StartFermentationRequest
from app.schemas.recipe import RecipeCreate
from app.schemas.tank import TankCreate
from app.services.common import (
    PHASE_BATCH_STATUS,
    advance_batch,
    complete_assignments,
    complete_lot_cascade,
    ensure_lot_open,
    ensure_tank_available,
    free_tank,
    lot_batch_ids,
    occupy_tank,
    record_history,
    require_batch,
    require_lot,
    require_tank,
)
from app.utils.numbering import generate_code

logger = logging.getLogger(__name__)

_OG_NOTE = re.compile(r"\bOG\b", re.IGNORECASE)


# ── Reference data ───────────────────────────────────────────

async def create_recipe(store: LineageStore, tenant_id: str, body: RecipeCreate) -> Recipe:
    async with store.transaction(tenant_id) as tx:
        recipe = tx.add(Recipe(tenant_id=tenant_id, **body.model_dump()))
    return recipe


async def create_tank(store: LineageStore, tenant_id: str, body: TankCreate) -> Tank:
    async with store.transaction(tenant_id) as tx:
        tank = tx.add(Tank(tenant_id=tenant_id, **body.model_dump()))
    logger.info("Tank registered", extra={"tenant_id": tenant_id, "tank_id": tank.id})
    return tank


# ── Batches ──────────────────────────────────────────────────

async def create_batch(
    store: LineageStore,
    tenant_id: str,
    body: BatchCreate,
    user_id: str | None = None,
) -> Batch:
    """Schedule a brew.  The batch number comes from the tenant's number format."""
    async with store.transaction(tenant_id) as tx:
        snapshot = tx.snapshot
        if body.recipe_id is not None and body.recipe_id not in snapshot.recipes:
            raise NotFoundError("Recipe", body.recipe_id)

        batch = tx.add(Batch(
            tenant_id=tenant_id,
            batch_number=generate_code(snapshot, "batch"),
            volume=body.volume,
            recipe_id=body.recipe_id,
            brewed_at=body.brewed_at,
            notes=body.notes,
        ))
        record_history(
            tx, batch.id, "planned", f"Batch {batch.batch_number} scheduled",
            {"volume": body.volume, "recipe_id": body.recipe_id}, user_id,
        )

    logger.info(
        "Batch scheduled",
        extra={"tenant_id": tenant_id, "batch_id": batch.id, "batch_number": batch.batch_number},
    )
    return batch


async def record_gravity_reading(
    store: LineageStore,
    tenant_id: str,
    batch_id: str,
    body: GravityReadingCreate,
    user_id: str | None = None,
) -> GravityReading:
    """Store a reading and keep the batch's OG/SG fields current.

    A reading noted "OG" (or the first reading, when the batch has no OG
    yet) sets original_gravity; the latest reading sets current_gravity.
    """
    async with store.transaction(tenant_id) as tx:
        snapshot = tx.snapshot
        batch = require_batch(snapshot, batch_id)
        if batch.status == BatchStatus.COMPLETED:
            raise InvalidBatchStatusError(
                batch.batch_number, batch.status.value,
                tuple(s.value for s in BatchStatus if s != BatchStatus.COMPLETED),
            )

        now = utcnow()
        reading = GravityReading(
            tenant_id=tenant_id,
            batch_id=batch.id,
            gravity=body.gravity,
            temperature=body.temperature,
            notes=body.notes,
            recorded_by=user_id,
            recorded_at=body.recorded_at or now,
        )
        latest = snapshot.readings_for(batch.id)
        tx.add(reading)

        if (body.notes and _OG_NOTE.search(body.notes)) or batch.original_gravity is None:
            batch.original_gravity = body.gravity
        if not latest or reading.recorded_at >= latest[-1].recorded_at:
            batch.current_gravity = body.gravity
        batch.updated_at = now
        tx.touch(batch)

        record_history(
            tx, batch.id, "gravity_reading", f"Gravity {body.gravity:.3f}",
            {"gravity": body.gravity, "temperature": body.temperature}, user_id, now,
        )
    return reading


# ── Fermentation ─────────────────────────────────────────────

async def start_fermentation(
    store: LineageStore,
    tenant_id: str,
    body: StartFermentationRequest,
    user_id: str | None = None,
) -> Lot:
    """Move a PLANNED batch into a tank: its first lot, coded like the batch."""
    async with store.transaction(tenant_id) as tx:
        snapshot = tx.snapshot
        batch = require_batch(snapshot, body.batch_id)
        if batch.status != BatchStatus.PLANNED:
            raise InvalidBatchStatusError(batch.batch_number, batch.status.value, ("PLANNED",))
        if snapshot.find_lot(batch.batch_number) is not None:
            raise InvalidStateError(f"Lot {batch.batch_number} already exists")

        volume = body.volume or batch.volume
        tank = require_tank(snapshot, body.tank_id)
        ensure_tank_available(snapshot, tank, volume)

        now = utcnow()
        lot = tx.add(Lot(
            tenant_id=tenant_id,
            lot_code=batch.batch_number,
            phase=LotPhase.FERMENTATION,
            status=LotStatus.ACTIVE,
            planned_volume=volume,
            actual_volume=volume,
            created_at=now,
            updated_at=now,
        ))
        tx.add(LotBatch(
            tenant_id=tenant_id,
            lot_id=lot.id,
            batch_id=batch.id,
            volume_contribution=volume,
            batch_percentage=100.0,
        ))
        occupy_tank(tx, tank, lot, LotPhase.FERMENTATION, volume, now, user_id)

        batch.volume = volume
        batch.tank_id = tank.id
        batch.brewed_at = batch.brewed_at or now
        advance_batch(tx, batch, BatchStatus.FERMENTING, now)
        record_history(
            tx, batch.id, "fermentation_started",
            f"Fermentation started in {tank.name}",
            {"lot_id": lot.id, "tank_id": tank.id, "volume": volume}, user_id, now,
        )

    logger.info(
        "Fermentation started",
        extra={"tenant_id": tenant_id, "batch_id": batch.id, "lot_id": lot.id, "tank_id": tank.id},
    )
    return lot


# ── Phase transitions ────────────────────────────────────────

async def change_phase(
    store: LineageStore,
    tenant_id: str,
    lot_ref: str,
    body: PhaseChangeRequest,
    user_id: str | None = None,
) -> Lot:
    """Move a lot forward one or more phases.

    The open assignment is closed and a new one opened for the new phase,
    in `body.tank_id` when given, else in the lot's current tank.  The
    lot's batches follow (CONDITIONING → CONDITIONING, BRIGHT → READY,
    PACKAGING → PACKAGING) but never move backwards.
    """
    async with store.transaction(tenant_id) as tx:
        snapshot = tx.snapshot
        resolver = LineageResolver(snapshot)
        lot = require_lot(snapshot, lot_ref)
        ensure_lot_open(resolver, lot, "change phase")

        if lot.phase is not None and PHASE_ORDER.index(body.phase) <= PHASE_ORDER.index(lot.phase):
            raise InvalidStateError(
                f"Lot {lot.code} cannot move from {lot.phase.value} to {body.phase.value}"
            )

        current = open_assignment(snapshot, lot.id)
        current_tank = None
        if current is not None:
            current_tank = snapshot.tanks.get(current.tank_id)
        elif lot.tank_id:
            current_tank = snapshot.tanks.get(lot.tank_id)

        target = require_tank(snapshot, body.tank_id) if body.tank_id else current_tank
        volume = resolver.total_volume(lot)
        if target is not None and (current_tank is None or target.id != current_tank.id):
            ensure_tank_available(snapshot, target, volume, allowed_lot_ids={lot.id})

        now = utcnow()
        previous = lot.phase
        complete_assignments(tx, lot, now)
        if current_tank is not None and (target is None or target.id != current_tank.id):
            free_tank(tx, current_tank, now)

        lot.phase = body.phase
        lot.updated_at = now
        tx.touch(lot)
        if target is not None:
            occupy_tank(tx, target, lot, body.phase, volume, now, user_id)

        for batch_id in lot_batch_ids(snapshot, lot):
            batch = snapshot.batches.get(batch_id)
            if batch is not None:
                advance_batch(tx, batch, PHASE_BATCH_STATUS[body.phase], now)
            record_history(
                tx, batch_id, "phase_changed",
                f"Lot {lot.code} moved to {body.phase.value}",
                {
                    "lot_id": lot.id,
                    "from": previous.value if previous else None,
                    "to": body.phase.value,
                    "tank_id": target.id if target else None,
                },
                user_id, now,
            )

    logger.info(
        "Lot phase changed",
        extra={"tenant_id": tenant_id, "lot_id": lot.id, "phase": body.phase.value},
    )
    return lot


# ── Completion ───────────────────────────────────────────────

async def complete_lot(
    store: LineageStore,
    tenant_id: str,
    lot_ref: str,
    user_id: str | None = None,
    notes: str | None = None,
) -> dict:
    """Manually complete a lot (e.g. dumped or sold in bulk).

    Returns:
        {"lot": Lot, "completed_batch_ids": [...], "freed_tank_ids": [...]}
    """
    async with store.transaction(tenant_id) as tx:
        snapshot = tx.snapshot
        resolver = LineageResolver(snapshot)
        lot = require_lot(snapshot, lot_ref)
        if lot.status == LotStatus.COMPLETED:
            raise InvalidStateError(f"Lot {lot.code} is already COMPLETED")
        if resolver.is_consumed(lot.id):
            raise InvalidStateError(f"Lot {lot.code} has been split and cannot be completed")

        now = utcnow()
        if notes:
            lot.notes = f"{lot.notes}\n{notes}" if lot.notes else notes
        completed_batch_ids, freed = complete_lot_cascade(tx, lot, now, user_id)

    return {"lot": lot, "completed_batch_ids": completed_batch_ids, "freed_tank_ids": freed}
