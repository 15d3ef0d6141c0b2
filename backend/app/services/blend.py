"""Blend operation: combine several source lots into one result lot.

Effects (one transaction):
  - one result lot coded BLEND-YYYY-NNNN, is_blend_result, blended_at
  - one LotBatch row per contributing batch with its summed volume
  - an ACTIVE assignment of the result lot on the target tank
  - every source lot COMPLETED with blended_into_id set, its open
    assignments COMPLETED and its tank freed (unless it is the target)
"""

import logging
from collections import defaultdict

from app.config import settings
from app.lineage.entities import (
    PHASE_ORDER,
    Lot,
    LotBatch,
    LotPhase,
    LotStatus,
    utcnow,
)
from app.lineage.errors import (
    IncompatibleBlendError,
    InvalidStateError,
    ValidationError,
    VolumeExceededError,
)
from app.lineage.policy import blend_incompatibilities, resolve_policy
from app.lineage.resolver import LineageResolver
from app.lineage.store import LineageStore
from app.schemas.lot import BlendRequest
from app.services.common import (
    complete_assignments,
    ensure_lot_open,
    ensure_tank_available,
    free_tank,
    lot_batch_ids,
    occupy_tank,
    record_history,
    require_batch,
    require_lot,
    require_tank,
    tanks_held_by,
)
from app.utils.numbering import generate_code

logger = logging.getLogger(__name__)

_EPSILON = 1e-6


def _source_lots(resolver: LineageResolver, body: BlendRequest) -> list[Lot]:
    snapshot = resolver.snapshot
    lots: dict[str, Lot] = {}
    if body.source_lot_ids is not None:
        for ref in body.source_lot_ids:
            lot = require_lot(snapshot, ref)
            lots[lot.id] = lot
        return list(lots.values())

    for batch_id in body.source_batch_ids:
        batch = require_batch(snapshot, batch_id)
        living = resolver.living_lots_for_batch(batch.id)
        if not living:
            raise InvalidStateError(f"Batch {batch.batch_number} has no active lot to blend")
        if len(living) > 1:
            raise InvalidStateError(
                f"Batch {batch.batch_number} has {len(living)} active lots; blend by lot id"
            )
        lots[living[0].id] = living[0]
    return list(lots.values())


async def blend_lots(
    store: LineageStore,
    tenant_id: str,
    body: BlendRequest,
    user_id: str | None = None,
) -> dict:
    """Blend the requested sources into a new lot.

    Returns:
        {"lot": Lot, "sources": [Lot, ...], "total_volume": float,
         "contributions": {batch_id: liters}}

    Raises:
        NotFoundError, InvalidStateError, IncompatibleBlendError,
        VolumeExceededError, ValidationError
    """
    async with store.transaction(tenant_id) as tx:
        snapshot = tx.snapshot
        resolver = LineageResolver(snapshot)
        policy = resolve_policy(settings, snapshot)

        sources = _source_lots(resolver, body)
        if len(sources) < 2:
            raise ValidationError("A blend needs at least two distinct source lots")
        for lot in sources:
            ensure_lot_open(resolver, lot, "be blended")

        # ── Phase ────────────────────────────────────────────
        phases = {lot.phase for lot in sources}
        if len(phases) > 1 and not body.allow_phase_mismatch:
            names = ", ".join(sorted(p.value if p else "unset" for p in phases))
            raise InvalidStateError(f"Source lots are in different phases ({names})")
        if body.phase is not None:
            phase = body.phase
        else:
            known = [p for p in phases if p is not None]
            phase = max(known, key=PHASE_ORDER.index) if known else LotPhase.FERMENTATION

        # ── Compatibility policy ─────────────────────────────
        rule = body.compatibility or policy.blend_compatibility
        reasons = blend_incompatibilities(snapshot, sources, rule)
        if reasons:
            raise IncompatibleBlendError(reasons)

        # ── Volumes ──────────────────────────────────────────
        explicit = body.volumes or {}
        unknown = set(explicit) - {lot.id for lot in sources} - {lot.lot_code for lot in sources}
        if unknown:
            raise ValidationError(f"Volumes given for lots not in the blend: {', '.join(sorted(unknown))}")

        volumes: dict[str, float] = {}
        for lot in sources:
            available = resolver.total_volume(lot) - resolver.packaged_volume(lot)
            requested = explicit.get(lot.id, explicit.get(lot.lot_code))
            if requested is not None and requested > available + _EPSILON:
                raise VolumeExceededError(
                    requested, available,
                    message=f"Lot {lot.code} holds {available:.2f} L, {requested:.2f} L requested",
                )
            volume = requested if requested is not None else available
            if volume <= 0:
                raise InvalidStateError(f"Lot {lot.code} has no volume left to blend")
            volumes[lot.id] = volume

        contributions: dict[str, float] = defaultdict(float)
        for lot in sources:
            rows = snapshot.lot_batches_for(lot.id)
            if not rows:
                raise InvalidStateError(f"Lot {lot.code} has no source batches")
            row_total = sum(r.volume_contribution or 0 for r in rows)
            for row in rows:
                share = (row.volume_contribution or 0) / row_total if row_total > 0 else 1 / len(rows)
                contributions[row.batch_id] += volumes[lot.id] * share
        total = sum(volumes.values())

        tank = require_tank(snapshot, body.target_tank_id)
        source_ids = {lot.id for lot in sources}
        ensure_tank_available(snapshot, tank, total, allowed_lot_ids=source_ids)

        # ── Result lot ───────────────────────────────────────
        now = utcnow()
        code = generate_code(snapshot, "blend")
        blend = tx.add(Lot(
            tenant_id=tenant_id,
            lot_code=code,
            phase=phase,
            status=LotStatus.ACTIVE,
            planned_volume=total,
            actual_volume=total,
            is_blend_result=True,
            blended_at=now,
            notes=body.notes,
            created_at=now,
            updated_at=now,
        ))
        for batch_id, volume in contributions.items():
            tx.add(LotBatch(
                tenant_id=tenant_id,
                lot_id=blend.id,
                batch_id=batch_id,
                volume_contribution=round(volume, 3),
                batch_percentage=round(volume / total * 100, 2),
            ))

        # ── Consume the sources ──────────────────────────────
        for lot in sources:
            held = tanks_held_by(snapshot, lot)
            complete_assignments(tx, lot, now)
            for held_tank in held:
                if held_tank.id != tank.id:
                    free_tank(tx, held_tank, now)
            lot.status = LotStatus.COMPLETED
            lot.completed_at = now
            lot.blended_into_id = blend.id
            lot.updated_at = now
            tx.touch(lot)

        occupy_tank(tx, tank, blend, phase, total, now, user_id)

        # ── Timeline ─────────────────────────────────────────
        for batch_id, volume in contributions.items():
            record_history(
                tx, batch_id, "blend_created",
                f"{volume:.1f} L blended into {code}",
                {"blend_lot": code, "volume": round(volume, 3), "tank_id": tank.id},
                user_id, now,
            )
        for lot in sources:
            for batch_id in lot_batch_ids(snapshot, lot):
                record_history(
                    tx, batch_id, "blended",
                    f"Lot {lot.code} consumed by blend {code}",
                    {"source_lot": lot.code, "blend_lot": code, "volume": volumes[lot.id]},
                    user_id, now,
                )

    logger.info(
        "Lots blended",
        extra={
            "tenant_id": tenant_id,
            "lot_id": blend.id,
            "sources": sorted(source_ids),
            "volume": total,
        },
    )
    return {
        "lot": blend,
        "sources": sources,
        "total_volume": total,
        "contributions": dict(contributions),
    }
