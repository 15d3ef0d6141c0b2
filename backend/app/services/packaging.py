"""Packaging operation: record a kegging/bottling/canning run.

Volume accounting is scoped by lot code: everything packaged so far under
the lot's code is subtracted from the lot's total volume.  A `lot_number`
in the request must name that same lot.  Runs with no lot (legacy batches
that never got one) are counted against their batches instead.  A run
larger than what is left (beyond the tenant's tolerance) is rejected with
InsufficientVolumeError and nothing is written.

When the lot's packaged total reaches its volume (within tolerance) the
lot, its tank assignment and its tank are completed / freed, and every
batch of the lot whose other lots are all COMPLETED is completed too.
"""

import logging

from app.config import settings
from app.lineage.entities import (
    PACKAGE_SIZES_LITERS,
    BatchStatus,
    LotPhase,
    LotType,
    PackagingRun,
    utcnow,
)
from app.lineage.errors import (
    InsufficientVolumeError,
    InvalidBatchStatusError,
    NotFoundError,
    ValidationError,
)
from app.lineage.policy import resolve_policy
from app.lineage.resolver import LineageResolver, open_assignment
from app.lineage.store import LineageStore
from app.schemas.packaging import PackagingRequest
from app.services.common import (
    advance_batch,
    complete_lot_cascade,
    ensure_lot_open,
    lot_batch_ids,
    record_history,
    require_batch,
    require_lot,
)

logger = logging.getLogger(__name__)

PACKABLE_STATUSES = (BatchStatus.READY, BatchStatus.PACKAGING)


def _check_lot_number(body: PackagingRequest, lot) -> None:
    """`lot_number` names the lot being packaged; it may not point elsewhere."""
    if body.lot_number and body.lot_number not in (lot.lot_code, lot.id):
        raise ValidationError(
            f"lot_number {body.lot_number} does not match lot {lot.code}"
        )


def _infer_lot(resolver: LineageResolver, batch_ids: list[str]):
    """The single living lot carrying all of `batch_ids`, if there is exactly one."""
    candidates = None
    for batch_id in batch_ids:
        ids = {lot.id for lot in resolver.living_lots_for_batch(batch_id)}
        candidates = ids if candidates is None else candidates & ids
    if candidates and len(candidates) == 1:
        return resolver.snapshot.lots[candidates.pop()]
    return None


async def record_packaging(
    store: LineageStore,
    tenant_id: str,
    body: PackagingRequest,
    user_id: str | None = None,
) -> dict:
    """Record one packaging run and auto-complete what it finishes.

    Returns:
        {
            "run": PackagingRun,
            "lot": Lot | None,
            "volume_info": {"total_volume", "used_volume", "remaining_volume"},
            "lot_completed": bool,
            "completed_batch_ids": [str],
        }

    Raises:
        NotFoundError, InvalidStateError, InvalidBatchStatusError,
        InsufficientVolumeError, ValidationError
    """
    async with store.transaction(tenant_id) as tx:
        snapshot = tx.snapshot
        resolver = LineageResolver(snapshot)
        policy = resolve_policy(settings, snapshot)

        # ── What is being packaged ───────────────────────────
        lot = None
        if body.lot_id:
            lot = require_lot(snapshot, body.lot_id)
            _check_lot_number(body, lot)
        elif body.lot_number:
            lot = snapshot.find_lot(body.lot_number)
            if lot is None and not (body.batch_id or body.batch_ids):
                raise NotFoundError("Lot", body.lot_number)

        if body.batch_ids:
            batch_ids = list(dict.fromkeys(body.batch_ids))
        elif body.batch_id:
            batch_ids = [body.batch_id]
        elif lot is not None:
            batch_ids = lot_batch_ids(snapshot, lot)
        else:
            batch_ids = []
        if not batch_ids:
            raise ValidationError("Nothing to package: the lot has no batches")
        batches = [require_batch(snapshot, batch_id) for batch_id in batch_ids]

        if lot is None:
            lot = _infer_lot(resolver, batch_ids)
            if lot is not None:
                _check_lot_number(body, lot)
        if lot is not None:
            ensure_lot_open(resolver, lot, "be packaged")

        for batch in batches:
            if batch.status not in PACKABLE_STATUSES:
                raise InvalidBatchStatusError(
                    batch.batch_number,
                    batch.status.value,
                    tuple(s.value for s in PACKABLE_STATUSES),
                )

        # ── Volume check ─────────────────────────────────────
        now = utcnow()
        primary = batches[0]
        volume = round(body.quantity * PACKAGE_SIZES_LITERS[body.package_type], 3)

        if lot is not None and lot.lot_code:
            scope = lot.lot_code
        elif body.lot_number:
            scope = body.lot_number
        else:
            scope = f"{primary.batch_number}-{body.package_type.value}-{now:%Y%m%d%H%M%S}"

        if lot is not None:
            total = resolver.total_volume(lot)
            prior = snapshot.runs_for_lot_code(scope)
        else:
            total = sum(b.volume for b in batches)
            prior = snapshot.runs_for_batches(batch_ids)
        used = sum(r.volume_total for r in prior)
        available = max(0.0, total - used)

        if volume - available > policy.packaging_tolerance_liters:
            raise InsufficientVolumeError(available, volume)

        # ── Record the run ───────────────────────────────────
        notes = body.notes
        is_blend = len(batches) > 1 or (lot is not None and resolver.classify(lot) == LotType.BLEND)
        if is_blend:
            tag = "[Blend: " + ", ".join(b.batch_number for b in batches) + "]"
            notes = f"{tag} {notes}" if notes else tag

        run = tx.add(PackagingRun(
            tenant_id=tenant_id,
            batch_id=primary.id,
            package_type=body.package_type,
            quantity=body.quantity,
            volume_total=volume,
            lot_number=scope,
            performed_by=body.performed_by,
            notes=notes,
            performed_at=now,
        ))

        for batch in batches:
            advance_batch(tx, batch, BatchStatus.PACKAGING, now)

        # Written on every run: split, blend and packaging on one lot
        # serialize on its version
        if lot is not None:
            lot.updated_at = now
            tx.touch(lot)
        if lot is not None and lot.phase != LotPhase.PACKAGING:
            lot.phase = LotPhase.PACKAGING
            assignment = open_assignment(snapshot, lot.id)
            if assignment is not None:
                assignment.phase = LotPhase.PACKAGING
                assignment.updated_at = now
                tx.touch(assignment)
                tank = snapshot.tanks.get(assignment.tank_id)
                if tank is not None and tank.current_lot_id == lot.id:
                    tank.current_phase = LotPhase.PACKAGING
                    tank.updated_at = now
                    tx.touch(tank)

        # Packaged volume on a batch never decreases
        billed = sum(r.volume_total for r in snapshot.runs_for_batches([primary.id]))
        if billed > primary.packaged_volume:
            primary.packaged_volume = billed
            primary.updated_at = now
            tx.touch(primary)

        record_history(
            tx, primary.id, "packaging",
            f"Packaged {body.quantity} × {body.package_type.value} ({volume:.1f} L) from {scope}",
            {
                "package_type": body.package_type.value,
                "quantity": body.quantity,
                "volume_total": volume,
                "lot_number": scope,
                "batch_ids": batch_ids,
            },
            user_id, now,
        )

        # ── Auto-completion ──────────────────────────────────
        packaged_total = used + volume
        lot_completed = False
        completed_batch_ids: list[str] = []
        if lot is not None and packaged_total >= total - policy.packaging_tolerance_liters:
            completed_batch_ids, _ = complete_lot_cascade(tx, lot, now, user_id)
            lot_completed = True

    logger.info(
        "Packaging run recorded",
        extra={
            "tenant_id": tenant_id,
            "run_id": run.id,
            "lot_number": scope,
            "volume": volume,
            "lot_completed": lot_completed,
        },
    )
    return {
        "run": run,
        "lot": lot,
        "volume_info": {
            "total_volume": total,
            "used_volume": packaged_total,
            "remaining_volume": max(0.0, total - packaged_total),
        },
        "lot_completed": lot_completed,
        "completed_batch_ids": completed_batch_ids,
    }
