"""Lineage Store — the persistence seam of the engine.

Two entry points:

    snapshot = await store.load_snapshot(tenant_id)      # read path, lock-free

    async with store.transaction(tenant_id) as tx:       # write path
        lot = tx.snapshot.lots[lot_id]
        lot.status = LotStatus.COMPLETED
        tx.touch(lot)
        tx.add(BatchHistory(...))

A transaction is a unit of work: new rows registered with `add()` and
modified versioned rows registered with `touch()` are written together
when the `async with` block exits normally.  Any exception raised inside
the block discards all of them.  A touched row whose stored version no
longer matches the version that was loaded fails the commit with
ConflictError, and nothing is written.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator

from app.lineage.entities import VERSIONED_TYPES, LineageSnapshot

logger = logging.getLogger(__name__)


class LineageTransaction:
    """Pending writes for one tenant, on top of the snapshot they were read from."""

    def __init__(self, tenant_id: str, snapshot: LineageSnapshot):
        self.tenant_id = tenant_id
        self.snapshot = snapshot
        self.added: list = []
        self.touched: dict[tuple[type, str], object] = {}

    def add(self, entity):
        """Register a new row and make it visible in the snapshot."""
        if getattr(entity, "tenant_id", None) != self.tenant_id:
            raise ValueError("Record tenant does not match the transaction tenant")
        self.snapshot.put(entity)
        self.added.append(entity)
        return entity

    def touch(self, entity) -> None:
        """Register a modified versioned row (Batch, Lot, Tank, TankAssignment)."""
        if not isinstance(entity, VERSIONED_TYPES):
            raise TypeError(f"{type(entity).__name__} rows are append-only")
        if any(entity is new for new in self.added):
            return
        self.touched[(type(entity), entity.id)] = entity


class LineageStore(ABC):
    """Abstract tenant-scoped store of batches, lots, tanks and their history."""

    @abstractmethod
    async def load_snapshot(self, tenant_id: str) -> LineageSnapshot:
        """Load everything the tenant owns (read-committed, no locks)."""

    @abstractmethod
    async def _begin(self, tenant_id: str) -> LineageTransaction:
        ...

    @abstractmethod
    async def _commit(self, tx: LineageTransaction) -> None:
        ...

    @abstractmethod
    async def _rollback(self, tx: LineageTransaction) -> None:
        ...

    @asynccontextmanager
    async def transaction(self, tenant_id: str) -> AsyncIterator[LineageTransaction]:
        tx = await self._begin(tenant_id)
        try:
            yield tx
        except BaseException:
            await self._rollback(tx)
            raise
        await self._commit(tx)
        # The stored rows are now one version ahead of what was loaded
        for entity in tx.touched.values():
            entity.version += 1
        logger.debug(
            "Committed lineage transaction",
            extra={
                "tenant_id": tenant_id,
                "added": len(tx.added),
                "updated": len(tx.touched),
            },
        )
