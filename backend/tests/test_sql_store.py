"""SqlLineageStore against a real database engine.

Runs on a throwaway SQLite file through aiosqlite; the tables come from the
same metadata the migrations are generated from.
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.database import TenantBase
from app.lineage.entities import (
    BatchStatus,
    Lot,
    LotPhase,
    LotStatus,
    PackageType,
    Recipe,
    Tank,
    TankStatus,
    TankType,
)
from app.lineage.errors import ConflictError
from app.lineage.resolver import LineageResolver
from app.lineage.sql_store import SqlLineageStore
from app.schemas.batch import BatchCreate
from app.schemas.lot import PhaseChangeRequest, SplitRequest, StartFermentationRequest
from app.schemas.packaging import PackagingRequest
from app.schemas.tank import TankCreate
from app.services import lifecycle
from app.services.packaging import record_packaging
from app.services.split import split_lot

TENANT = "brewery-north"
OTHER_TENANT = "brewery-south"


# ── Database fixtures ────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Create a test database with every lineage table."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'brewlot.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(TenantBase.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def sql_store(test_engine) -> SqlLineageStore:
    return SqlLineageStore(
        async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    )


async def _add_tank(store, name="FV-01", tenant_id=TENANT) -> Tank:
    async with store.transaction(tenant_id) as tx:
        return tx.add(Tank(tenant_id=tenant_id, name=name, type=TankType.FERMENTER, capacity=1200))


# ── Store semantics ──────────────────────────────────────────

@pytest.mark.integration
@pytest.mark.asyncio
class TestSqlLineageStore:
    async def test_rows_round_trip(self, sql_store):
        tank = await _add_tank(sql_store)
        await _add_tank(sql_store, "FV-01", OTHER_TENANT)

        snapshot = await sql_store.load_snapshot(TENANT)

        stored = snapshot.tanks[tank.id]
        assert stored.name == "FV-01"
        assert stored.type is TankType.FERMENTER
        assert stored.status is TankStatus.AVAILABLE
        assert stored.version == 1
        assert stored.created_at.tzinfo is not None
        assert len(snapshot.tanks) == 1

    async def test_update_bumps_version(self, sql_store):
        tank = await _add_tank(sql_store)

        async with sql_store.transaction(TENANT) as tx:
            row = tx.snapshot.tanks[tank.id]
            row.status = TankStatus.MAINTENANCE
            tx.touch(row)

        assert row.version == 2
        stored = (await sql_store.load_snapshot(TENANT)).tanks[tank.id]
        assert stored.status is TankStatus.MAINTENANCE
        assert stored.version == 2

    async def test_stale_version_conflicts(self, sql_store):
        tank = await _add_tank(sql_store)

        with pytest.raises(ConflictError) as exc:
            async with sql_store.transaction(TENANT) as first:
                first.add(Recipe(tenant_id=TENANT, name="Lager"))
                mine = first.snapshot.tanks[tank.id]
                mine.needs_cip = True
                first.touch(mine)

                async with sql_store.transaction(TENANT) as second:
                    theirs = second.snapshot.tanks[tank.id]
                    theirs.status = TankStatus.MAINTENANCE
                    second.touch(theirs)

        assert exc.value.details["retryable"] is True
        snapshot = await sql_store.load_snapshot(TENANT)
        assert snapshot.tanks[tank.id].status is TankStatus.MAINTENANCE
        assert snapshot.tanks[tank.id].needs_cip is False
        assert snapshot.tanks[tank.id].version == 2
        assert snapshot.recipes == {}

    async def test_duplicate_lot_code_conflicts(self, sql_store):
        async with sql_store.transaction(TENANT) as tx:
            tx.add(Lot(tenant_id=TENANT, lot_code="BRW-2025-0001", status=LotStatus.ACTIVE))

        with pytest.raises(ConflictError):
            async with sql_store.transaction(TENANT) as tx:
                tx.add(Lot(tenant_id=TENANT, lot_code="BRW-2025-0001", status=LotStatus.ACTIVE))

        snapshot = await sql_store.load_snapshot(TENANT)
        assert [lot.lot_code for lot in snapshot.lots.values()] == ["BRW-2025-0001"]

    async def test_same_lot_code_in_another_tenant(self, sql_store):
        for tenant_id in (TENANT, OTHER_TENANT):
            async with sql_store.transaction(tenant_id) as tx:
                tx.add(Lot(tenant_id=tenant_id, lot_code="BRW-2025-0001"))

        assert len((await sql_store.load_snapshot(OTHER_TENANT)).lots) == 1

    async def test_failed_operation_writes_nothing(self, sql_store):
        with pytest.raises(RuntimeError):
            async with sql_store.transaction(TENANT) as tx:
                tx.add(Recipe(tenant_id=TENANT, name="Stout"))
                raise RuntimeError("boom")

        assert (await sql_store.load_snapshot(TENANT)).recipes == {}


# ── Operations end to end ────────────────────────────────────

@pytest.mark.integration
@pytest.mark.asyncio
class TestOperationsOnSql:
    async def test_ferment_split_and_package(self, sql_store):
        fv1, fv2, fv3 = [
            await lifecycle.create_tank(sql_store, TENANT, TankCreate(name=name, capacity=1200))
            for name in ("FV-01", "FV-02", "FV-03")
        ]
        batch = await lifecycle.create_batch(sql_store, TENANT, BatchCreate(volume=1000))
        parent = await lifecycle.start_fermentation(
            sql_store, TENANT, StartFermentationRequest(batch_id=batch.id, tank_id=fv1.id),
        )

        result = await split_lot(sql_store, TENANT, SplitRequest(source_lot_id=parent.id, targets=[
            {"tank_id": fv2.id, "volume": 400}, {"tank_id": fv3.id, "volume": 600},
        ]))
        child_a = result["children"][0][0]
        await lifecycle.change_phase(sql_store, TENANT, child_a.id, PhaseChangeRequest(phase=LotPhase.BRIGHT))
        packaged = await record_packaging(sql_store, TENANT, PackagingRequest(
            lot_id=child_a.id, package_type=PackageType.KEG_50, quantity=8,
        ))

        assert packaged["lot_completed"] is True
        snapshot = await sql_store.load_snapshot(TENANT)
        assert snapshot.lots[child_a.id].status is LotStatus.COMPLETED
        assert snapshot.lots[parent.id].tank_id is None
        assert snapshot.tanks[fv1.id].status is TankStatus.AVAILABLE
        assert snapshot.tanks[fv2.id].needs_cip is True
        assert snapshot.tanks[fv3.id].status is TankStatus.IN_USE
        assert snapshot.batches[batch.id].status is BatchStatus.PACKAGING
        assert snapshot.batches[batch.id].packaged_volume == 400
        assert [item.lot_code for item in LineageResolver(snapshot).active_lots().lots] == [
            f"{batch.batch_number}-B",
        ]
