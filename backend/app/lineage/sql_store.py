"""SQLAlchemy-backed LineageStore.

The snapshot is loaded with one SELECT per table, every one filtered on
tenant_id.  Commit inserts the new rows table by table in foreign-key
order and then applies each modified versioned row with

    UPDATE <table> SET …, version = :v + 1
    WHERE id = :id AND tenant_id = :tenant AND version = :v

inside the same database transaction.  An UPDATE that matches no row
means another writer got there first: the whole transaction is rolled
back and ConflictError raised.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.lineage import entities
from app.lineage.entities import (
    AssignmentStatus,
    BatchStatus,
    LineageSnapshot,
    LotPhase,
    LotStatus,
    PackageType,
    TankStatus,
    TankType,
)
from app.lineage.errors import ConflictError
from app.lineage.store import LineageStore, LineageTransaction
from app import models

logger = logging.getLogger(__name__)

# Insert order respects foreign keys
MODEL_MAP = {
    entities.Recipe: models.Recipe,
    entities.Tank: models.Tank,
    entities.TenantConfig: models.TenantConfig,
    entities.Batch: models.Batch,
    entities.GravityReading: models.GravityReading,
    entities.Lot: models.Lot,
    entities.LotBatch: models.LotBatch,
    entities.TankAssignment: models.TankAssignment,
    entities.PackagingRun: models.PackagingRun,
    entities.BatchHistory: models.BatchHistory,
}

ENUM_FIELDS = {
    entities.Batch: {"status": BatchStatus},
    entities.Lot: {"phase": LotPhase, "status": LotStatus},
    entities.Tank: {"type": TankType, "status": TankStatus, "current_phase": LotPhase},
    entities.TankAssignment: {"phase": LotPhase, "status": AssignmentStatus},
    entities.PackagingRun: {"package_type": PackageType},
}

# Never rewritten by an UPDATE
_IMMUTABLE_COLUMNS = ("id", "tenant_id", "version", "created_at")


def _to_entity(entity_type: type, row):
    enums = ENUM_FIELDS.get(entity_type, {})
    values = {}
    for f in dataclasses.fields(entity_type):
        value = getattr(row, f.name)
        if value is not None and f.name in enums:
            value = enums[f.name](value)
        elif isinstance(value, datetime) and value.tzinfo is None:
            # Stored as UTC; some backends drop the offset
            value = value.replace(tzinfo=timezone.utc)
        values[f.name] = value
    return entity_type(**values)


def _to_columns(entity) -> dict:
    values = {}
    for f in dataclasses.fields(entity):
        value = getattr(entity, f.name)
        if isinstance(value, enum.Enum):
            value = value.value
        values[f.name] = value
    return values


class _SqlTransaction(LineageTransaction):
    def __init__(self, tenant_id: str, snapshot: LineageSnapshot, session: AsyncSession):
        super().__init__(tenant_id, snapshot)
        self.session = session


class SqlLineageStore(LineageStore):
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def _load(self, session: AsyncSession, tenant_id: str) -> LineageSnapshot:
        snapshot = LineageSnapshot(tenant_id=tenant_id)
        for entity_type, model in MODEL_MAP.items():
            result = await session.execute(select(model).where(model.tenant_id == tenant_id))
            for row in result.scalars().all():
                snapshot.put(_to_entity(entity_type, row))
        return snapshot

    async def load_snapshot(self, tenant_id: str) -> LineageSnapshot:
        async with self._session_factory() as session:
            return await self._load(session, tenant_id)

    async def _begin(self, tenant_id: str) -> LineageTransaction:
        session = self._session_factory()
        try:
            snapshot = await self._load(session, tenant_id)
        except BaseException:
            await session.close()
            raise
        return _SqlTransaction(tenant_id, snapshot, session)

    async def _rollback(self, tx: _SqlTransaction) -> None:
        try:
            await tx.session.rollback()
        finally:
            await tx.session.close()

    async def _commit(self, tx: _SqlTransaction) -> None:
        session = tx.session
        try:
            for entity_type, model in MODEL_MAP.items():
                rows = [model(**_to_columns(e)) for e in tx.added if type(e) is entity_type]
                if rows:
                    session.add_all(rows)
                    await session.flush()

            for entity in tx.touched.values():
                model = MODEL_MAP[type(entity)]
                values = _to_columns(entity)
                for column in _IMMUTABLE_COLUMNS:
                    values.pop(column, None)
                result = await session.execute(
                    update(model)
                    .where(
                        model.id == entity.id,
                        model.tenant_id == tx.tenant_id,
                        model.version == entity.version,
                    )
                    .values(**values, version=entity.version + 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise ConflictError(type(entity).__name__, entity.id)

            await session.commit()
        except IntegrityError as exc:
            await session.rollback()
            logger.warning(
                "Lineage commit hit a unique constraint",
                extra={"tenant_id": tx.tenant_id, "error": str(exc.orig)},
            )
            raise ConflictError("Record", "with the same code") from exc
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()
