"""Split operation: divide one lot's volume into child lots in other tanks.

Effects (one transaction):
  - N child lots coded {parent}-A, {parent}-B, … with parent_lot_id set,
    same phase as the parent, ACTIVE
  - LotBatch rows per child carrying the parent's batch composition,
    scaled to the child's volume
  - an ACTIVE tank assignment per child on its target tank
  - the parent's open assignments COMPLETED, its tank freed unless a
    child stays in it, and split_at stamped on the parent

The parent row is kept as history; the resolver hides it from active views.
"""

import logging

from app.lineage.entities import Lot, LotBatch, LotStatus, utcnow
from app.lineage.errors import ValidationError, VolumeExceededError
from app.lineage.resolver import LineageResolver
from app.lineage.store import LineageStore
from app.schemas.lot import SplitRequest
from app.services.common import (
    complete_assignments,
    ensure_lot_open,
    ensure_tank_available,
    free_tank,
    lot_batch_ids,
    occupy_tank,
    record_history,
    require_lot,
    require_tank,
    tanks_held_by,
)
from app.utils.numbering import split_codes

logger = logging.getLogger(__name__)

# Float slack when comparing summed volumes
_EPSILON = 1e-6


async def split_lot(
    store: LineageStore,
    tenant_id: str,
    body: SplitRequest,
    user_id: str | None = None,
) -> dict:
    """Split a lot and return the created children.

    Returns:
        {"parent": Lot, "children": [(Lot, tank_id, volume), ...]}

    Raises:
        NotFoundError, InvalidStateError, VolumeExceededError, ValidationError
    """
    async with store.transaction(tenant_id) as tx:
        snapshot = tx.snapshot
        resolver = LineageResolver(snapshot)

        parent = require_lot(snapshot, body.source_lot_id)
        ensure_lot_open(resolver, parent, "be split")

        # ── Volume conservation ──────────────────────────────
        available = resolver.total_volume(parent) - resolver.packaged_volume(parent)
        requested = sum(t.volume for t in body.targets)
        if requested > available + _EPSILON:
            raise VolumeExceededError(
                requested, available,
                message=(
                    f"Split volumes total {requested:.2f} L but lot {parent.code} "
                    f"holds {available:.2f} L"
                ),
            )

        # ── Codes and tanks ──────────────────────────────────
        suffixes = [t.suffix.upper() if t.suffix else None for t in body.targets]
        given = [s for s in suffixes if s]
        if len(given) != len(set(given)):
            raise ValidationError("Split suffixes must be unique")
        codes = split_codes(parent.code, suffixes)
        for code in codes:
            if snapshot.find_lot(code) is not None:
                raise ValidationError(f"Lot code {code} already exists")

        tank_ids = [t.tank_id for t in body.targets]
        if len(tank_ids) != len(set(tank_ids)):
            raise ValidationError("Each split target needs its own tank")
        tanks = [require_tank(snapshot, tank_id) for tank_id in tank_ids]
        for tank, target in zip(tanks, body.targets):
            ensure_tank_available(snapshot, tank, target.volume, allowed_lot_ids={parent.id})

        # ── Retire the parent's occupancy ────────────────────
        now = utcnow()
        held = tanks_held_by(snapshot, parent)
        complete_assignments(tx, parent, now)
        for tank in held:
            if tank.id not in tank_ids:
                free_tank(tx, tank, now)

        parent_rows = snapshot.lot_batches_for(parent.id)
        parent_total = sum(lb.volume_contribution or 0 for lb in parent_rows)

        # ── Children ─────────────────────────────────────────
        children = []
        for code, tank, target in zip(codes, tanks, body.targets):
            child = tx.add(Lot(
                tenant_id=tenant_id,
                lot_code=code,
                phase=parent.phase,
                status=LotStatus.ACTIVE,
                planned_volume=target.volume,
                actual_volume=target.volume,
                parent_lot_id=parent.id,
                split_at=now,
                created_at=now,
                updated_at=now,
            ))
            for row in parent_rows:
                if parent_total > 0:
                    share = (row.volume_contribution or 0) / parent_total
                else:
                    share = 1 / len(parent_rows)
                tx.add(LotBatch(
                    tenant_id=tenant_id,
                    lot_id=child.id,
                    batch_id=row.batch_id,
                    volume_contribution=round(target.volume * share, 3),
                    batch_percentage=round(share * 100, 2),
                ))
            occupy_tank(tx, tank, child, parent.phase, target.volume, now, user_id)
            children.append((child, tank.id, target.volume))

        parent.split_at = now
        parent.tank_id = None
        parent.updated_at = now
        tx.touch(parent)

        child_codes = [child.lot_code for child, _, _ in children]
        for batch_id in lot_batch_ids(snapshot, parent):
            record_history(
                tx, batch_id, "split",
                f"Lot {parent.code} split into {', '.join(child_codes)}",
                {
                    "parent_lot": parent.code,
                    "children": [
                        {"lot_code": c.lot_code, "tank_id": t, "volume": v}
                        for c, t, v in children
                    ],
                },
                user_id, now,
            )

    logger.info(
        "Lot split",
        extra={
            "tenant_id": tenant_id,
            "lot_id": parent.id,
            "children": child_codes,
            "volume": requested,
        },
    )
    return {"parent": parent, "children": children}
