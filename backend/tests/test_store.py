"""Transaction semantics of the in-memory lineage store."""

import pytest

from app.lineage.entities import BatchStatus, LotPhase, PackageType, Recipe, TankStatus
from app.lineage.errors import ConflictError, InvalidStateError
from app.schemas.lot import SplitRequest
from app.schemas.packaging import PackagingRequest
from app.services.packaging import record_packaging
from app.services.split import split_lot

TENANT = "brewery-north"
OTHER_TENANT = "brewery-south"


@pytest.mark.unit
@pytest.mark.asyncio
class TestTransactions:
    async def test_commit_bumps_versions(self, store, brewery):
        tank = brewery.tank("FV-01")

        async with store.transaction(TENANT) as tx:
            row = tx.snapshot.tanks[tank.id]
            row.status = TankStatus.MAINTENANCE
            tx.touch(row)

        assert row.version == 2
        stored = (await brewery.snapshot()).tanks[tank.id]
        assert stored.status == TankStatus.MAINTENANCE
        assert stored.version == 2

    async def test_exception_discards_everything(self, store, brewery):
        tank = brewery.tank("FV-01")

        with pytest.raises(RuntimeError):
            async with store.transaction(TENANT) as tx:
                tx.add(Recipe(tenant_id=TENANT, name="Stout"))
                row = tx.snapshot.tanks[tank.id]
                row.status = TankStatus.MAINTENANCE
                tx.touch(row)
                raise RuntimeError("boom")

        snapshot = await brewery.snapshot()
        assert snapshot.recipes == {}
        assert snapshot.tanks[tank.id].status == TankStatus.AVAILABLE
        assert snapshot.tanks[tank.id].version == 1

    async def test_overlapping_writers_conflict(self, store, brewery):
        tank = brewery.tank("FV-01")

        with pytest.raises(ConflictError):
            async with store.transaction(TENANT) as first:
                first.add(Recipe(tenant_id=TENANT, name="Lager"))
                mine = first.snapshot.tanks[tank.id]
                mine.needs_cip = True
                first.touch(mine)

                async with store.transaction(TENANT) as second:
                    theirs = second.snapshot.tanks[tank.id]
                    theirs.status = TankStatus.MAINTENANCE
                    second.touch(theirs)

        snapshot = await brewery.snapshot()
        assert snapshot.tanks[tank.id].status == TankStatus.MAINTENANCE
        assert snapshot.tanks[tank.id].needs_cip is False
        assert snapshot.recipes == {}

    async def test_untouched_rows_do_not_conflict(self, store, brewery):
        first_tank = brewery.tank("FV-01")
        second_tank = brewery.tank("FV-02")

        async with store.transaction(TENANT) as first:
            row = first.snapshot.tanks[first_tank.id]
            row.needs_cip = True
            first.touch(row)

            async with store.transaction(TENANT) as second:
                other = second.snapshot.tanks[second_tank.id]
                other.needs_cip = True
                second.touch(other)

        snapshot = await brewery.snapshot()
        assert snapshot.tanks[first_tank.id].needs_cip is True
        assert snapshot.tanks[second_tank.id].needs_cip is True

    async def test_rows_must_belong_to_the_tenant(self, store):
        async with store.transaction(TENANT) as tx:
            with pytest.raises(ValueError):
                tx.add(Recipe(tenant_id=OTHER_TENANT, name="Porter"))

    async def test_append_only_rows_cannot_be_touched(self, store):
        async with store.transaction(TENANT) as tx:
            recipe = tx.add(Recipe(tenant_id=TENANT, name="Porter"))
            with pytest.raises(TypeError):
                tx.touch(recipe)

    async def test_snapshots_are_copies(self, store, brewery):
        tank = brewery.tank("FV-01")

        snapshot = await brewery.snapshot()
        snapshot.tanks[tank.id].status = TankStatus.MAINTENANCE

        assert (await brewery.snapshot()).tanks[tank.id].status == TankStatus.AVAILABLE

    async def test_tenants_are_separate(self, brewery, other_brewery):
        brewery.tank("FV-01")
        other_brewery.tank("FV-01")
        other_brewery.tank("FV-02")

        assert len((await brewery.snapshot()).tanks) == 1
        assert len((await other_brewery.snapshot()).tanks) == 2


@pytest.mark.unit
@pytest.mark.asyncio
class TestConcurrentOperations:
    @pytest.fixture
    def fermenter(self, brewery):
        batch = brewery.batch("BRW-2025-0001", 1000, status=BatchStatus.CONDITIONING)
        lot = brewery.lot(batch, 1000, phase=LotPhase.CONDITIONING, tank=brewery.tank("FV-01"))
        return batch, lot

    @pytest.fixture
    def packaging_lot(self, brewery):
        batch = brewery.batch("BRW-2025-0002", 1000, status=BatchStatus.PACKAGING)
        lot = brewery.lot(batch, 1000, phase=LotPhase.PACKAGING, tank=brewery.tank("BT-01"))
        return batch, lot

    async def test_overlapping_splits_one_wins(self, store, brewery, fermenter, interleave):
        _, lot = fermenter
        tanks = [brewery.tank(f"FV-0{n}") for n in range(2, 6)]

        def split_into(a, b):
            return lambda: split_lot(store, TENANT, SplitRequest(source_lot_id=lot.id, targets=[
                {"tank_id": a.id, "volume": 500}, {"tank_id": b.id, "volume": 500},
            ]))

        loser, winner = await interleave(split_into(*tanks[:2]), split_into(*tanks[2:]))

        assert isinstance(winner, dict)
        assert isinstance(loser, ConflictError)
        assert loser.details["retryable"] is True

        snapshot = await brewery.snapshot()
        children = snapshot.children_of(lot.id)
        assert len(children) == 2
        assert {c.tank_id for c in children} == {tanks[2].id, tanks[3].id}
        assert snapshot.tanks[tanks[0].id].status == TankStatus.AVAILABLE
        assert snapshot.tanks[tanks[1].id].status == TankStatus.AVAILABLE

    async def test_split_after_split_is_rejected(self, store, brewery, fermenter):
        _, lot = fermenter
        tanks = [brewery.tank(f"FV-0{n}") for n in range(2, 6)]

        def request(a, b):
            return SplitRequest(source_lot_id=lot.id, targets=[
                {"tank_id": a.id, "volume": 500}, {"tank_id": b.id, "volume": 500},
            ])

        await split_lot(store, TENANT, request(tanks[0], tanks[1]))
        with pytest.raises(InvalidStateError):
            await split_lot(store, TENANT, request(tanks[2], tanks[3]))

    async def test_packaging_run_during_split_conflicts(self, store, brewery, packaging_lot, interleave):
        _, lot = packaging_lot
        bt2, bt3 = brewery.tank("BT-02"), brewery.tank("BT-03")

        split, run = await interleave(
            lambda: split_lot(store, TENANT, SplitRequest(source_lot_id=lot.id, targets=[
                {"tank_id": bt2.id, "volume": 500}, {"tank_id": bt3.id, "volume": 500},
            ])),
            lambda: record_packaging(store, TENANT, PackagingRequest(
                lot_id=lot.id, package_type=PackageType.KEG_50, quantity=4,
            )),
        )

        assert isinstance(split, ConflictError)
        assert run["run"].volume_total == 200

        snapshot = await brewery.snapshot()
        assert snapshot.children_of(lot.id) == []
        assert sum(r.volume_total for r in snapshot.packaging_runs) == 200
        assert snapshot.lots[lot.id].version == 2

    async def test_split_during_packaging_run_conflicts(self, store, brewery, packaging_lot, interleave):
        _, lot = packaging_lot
        bt2, bt3 = brewery.tank("BT-02"), brewery.tank("BT-03")

        run, split = await interleave(
            lambda: record_packaging(store, TENANT, PackagingRequest(
                lot_id=lot.id, package_type=PackageType.KEG_50, quantity=4,
            )),
            lambda: split_lot(store, TENANT, SplitRequest(source_lot_id=lot.id, targets=[
                {"tank_id": bt2.id, "volume": 500}, {"tank_id": bt3.id, "volume": 500},
            ])),
        )

        assert isinstance(run, ConflictError)
        assert isinstance(split, dict)

        snapshot = await brewery.snapshot()
        assert snapshot.packaging_runs == []
        assert sum(c.actual_volume for c in snapshot.children_of(lot.id)) == 1000

    async def test_overlapping_packaging_runs_conflict(self, store, brewery, packaging_lot, interleave):
        _, lot = packaging_lot

        def run(quantity):
            return lambda: record_packaging(store, TENANT, PackagingRequest(
                lot_id=lot.id, package_type=PackageType.KEG_50, quantity=quantity,
            ))

        loser, winner = await interleave(run(15), run(15))

        assert isinstance(winner, dict)
        assert isinstance(loser, ConflictError)
        snapshot = await brewery.snapshot()
        assert sum(r.volume_total for r in snapshot.packaging_runs) == 750
