"""In-memory LineageStore.

Each tenant's committed state is a LineageSnapshot.  A transaction works
on a deep copy taken at begin; commit validates the versions of every
touched row against the committed state and then swaps the new rows in
without yielding to the event loop, so a commit is all-or-nothing and
two overlapping transactions that modify the same row cannot both win.
"""

from __future__ import annotations

import copy
import dataclasses

from app.lineage.entities import (
    Batch,
    LineageSnapshot,
    Lot,
    Tank,
    TankAssignment,
)
from app.lineage.errors import ConflictError
from app.lineage.store import LineageStore, LineageTransaction


def _committed_row(snapshot: LineageSnapshot, entity):
    if isinstance(entity, Batch):
        return snapshot.batches.get(entity.id)
    if isinstance(entity, Lot):
        return snapshot.lots.get(entity.id)
    if isinstance(entity, Tank):
        return snapshot.tanks.get(entity.id)
    if isinstance(entity, TankAssignment):
        for row in snapshot.assignments:
            if row.id == entity.id:
                return row
    return None


def _replace_row(snapshot: LineageSnapshot, row) -> None:
    if isinstance(row, Batch):
        snapshot.batches[row.id] = row
    elif isinstance(row, Lot):
        snapshot.lots[row.id] = row
    elif isinstance(row, Tank):
        snapshot.tanks[row.id] = row
    elif isinstance(row, TankAssignment):
        snapshot.assignments = [
            row if existing.id == row.id else existing
            for existing in snapshot.assignments
        ]


class InMemoryLineageStore(LineageStore):
    def __init__(self):
        self._tenants: dict[str, LineageSnapshot] = {}

    def _state(self, tenant_id: str) -> LineageSnapshot:
        if tenant_id not in self._tenants:
            self._tenants[tenant_id] = LineageSnapshot(tenant_id=tenant_id)
        return self._tenants[tenant_id]

    async def load_snapshot(self, tenant_id: str) -> LineageSnapshot:
        return copy.deepcopy(self._state(tenant_id))

    async def _begin(self, tenant_id: str) -> LineageTransaction:
        return LineageTransaction(tenant_id, copy.deepcopy(self._state(tenant_id)))

    async def _rollback(self, tx: LineageTransaction) -> None:
        tx.added.clear()
        tx.touched.clear()

    async def _commit(self, tx: LineageTransaction) -> None:
        state = self._state(tx.tenant_id)

        # Validate everything before writing anything
        for entity in tx.touched.values():
            committed = _committed_row(state, entity)
            if committed is None or committed.version != entity.version:
                raise ConflictError(type(entity).__name__, entity.id)

        for entity in tx.touched.values():
            _replace_row(state, dataclasses.replace(
                copy.deepcopy(entity), version=entity.version + 1
            ))
        for entity in tx.added:
            state.put(copy.deepcopy(entity))

    # ── Seeding helper for tests and fixtures ───────────────

    def seed(self, *entities) -> None:
        """Insert committed rows directly, bypassing transactions."""
        for entity in entities:
            self._state(entity.tenant_id).put(copy.deepcopy(entity))
