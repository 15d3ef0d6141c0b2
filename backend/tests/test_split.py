"""Split operation tests."""

import pytest

from app.lineage.entities import AssignmentStatus, LotPhase, LotStatus, TankStatus
from app.lineage.errors import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
    VolumeExceededError,
)
from app.lineage.resolver import LineageResolver
from app.schemas.lot import SplitRequest
from app.services.split import split_lot


def _request(lot, *targets) -> SplitRequest:
    """Targets are (tank, volume) or (tank, volume, suffix) tuples."""
    items = []
    for tank, volume, *suffix in targets:
        item = {"tank_id": tank.id, "volume": volume}
        if suffix:
            item["suffix"] = suffix[0]
        items.append(item)
    return SplitRequest(source_lot_id=lot.id, targets=items)


@pytest.mark.unit
@pytest.mark.asyncio
class TestSplit:
    @pytest.fixture
    def cellar(self, brewery):
        batch = brewery.batch("BRW-2025-0001", 1000)
        fv1 = brewery.tank("FV-01", capacity=1200)
        fv2 = brewery.tank("FV-02", capacity=500)
        fv3 = brewery.tank("FV-03", capacity=700)
        lot = brewery.lot(batch, 1000, phase=LotPhase.CONDITIONING, tank=fv1)
        return batch, lot, fv1, fv2, fv3

    async def test_split_into_two_tanks(self, store, brewery, cellar):
        batch, lot, fv1, fv2, fv3 = cellar

        result = await split_lot(store, brewery.tenant_id, _request(lot, (fv2, 400), (fv3, 600)), "brewer-1")

        codes = [child.lot_code for child, _, _ in result["children"]]
        assert codes == ["BRW-2025-0001-A", "BRW-2025-0001-B"]

        snapshot = await brewery.snapshot()
        children = snapshot.children_of(lot.id)
        assert len(children) == 2
        for child in children:
            assert child.status == LotStatus.ACTIVE
            assert child.phase == LotPhase.CONDITIONING
            rows = snapshot.lot_batches_for(child.id)
            assert [(r.batch_id, r.batch_percentage) for r in rows] == [(batch.id, 100.0)]
            assert rows[0].volume_contribution == child.actual_volume

        assert snapshot.tanks[fv1.id].status == TankStatus.AVAILABLE
        assert snapshot.tanks[fv1.id].needs_cip is True
        assert snapshot.tanks[fv2.id].status == TankStatus.IN_USE
        assert {snapshot.tanks[fv2.id].current_lot_id, snapshot.tanks[fv3.id].current_lot_id} == {
            child.id for child in children
        }
        assert all(
            a.status == AssignmentStatus.COMPLETED for a in snapshot.assignments_for(lot.id)
        )
        assert snapshot.lots[lot.id].split_at is not None

        history = [h for h in snapshot.history if h.event_type == "split"]
        assert len(history) == 1
        assert history[0].batch_id == batch.id
        assert history[0].recorded_by == "brewer-1"

    async def test_parent_disappears_from_active_view(self, store, brewery, cellar):
        _, lot, _, fv2, fv3 = cellar

        await split_lot(store, brewery.tenant_id, _request(lot, (fv2, 400), (fv3, 600)))

        listing = LineageResolver(await brewery.snapshot()).active_lots()
        assert {item.lot_code for item in listing.lots} == {"BRW-2025-0001-A", "BRW-2025-0001-B"}
        assert sum(item.total_volume for item in listing.lots) == 1000

    async def test_child_may_stay_in_parent_tank(self, store, brewery, cellar):
        _, lot, fv1, fv2, _ = cellar

        await split_lot(store, brewery.tenant_id, _request(lot, (fv1, 500), (fv2, 500)))

        snapshot = await brewery.snapshot()
        stay = snapshot.find_lot("BRW-2025-0001-A")
        assert snapshot.tanks[fv1.id].status == TankStatus.IN_USE
        assert snapshot.tanks[fv1.id].current_lot_id == stay.id

    @pytest.mark.parametrize("keep_parent_tank", [False, True])
    async def test_parent_no_longer_reports_a_tank(self, store, brewery, cellar, keep_parent_tank):
        _, lot, fv1, fv2, fv3 = cellar
        first = fv1 if keep_parent_tank else fv3

        await split_lot(store, brewery.tenant_id, _request(lot, (first, 500), (fv2, 500)))

        snapshot = await brewery.snapshot()
        assert snapshot.lots[lot.id].tank_id is None
        detail = LineageResolver(snapshot).detail(lot.id)
        assert detail.consumed is True
        assert detail.lot.tank is None
        assert {child.tank.name for child in detail.children} == {first.name, fv2.name}

    async def test_explicit_suffixes(self, store, brewery, cellar):
        _, lot, _, fv2, fv3 = cellar

        result = await split_lot(
            store, brewery.tenant_id, _request(lot, (fv2, 300, "c"), (fv3, 300)),
        )

        assert [child.lot_code for child, _, _ in result["children"]] == [
            "BRW-2025-0001-C", "BRW-2025-0001-A",
        ]

    async def test_partial_split_is_allowed(self, store, brewery, cellar):
        _, lot, _, fv2, fv3 = cellar

        result = await split_lot(store, brewery.tenant_id, _request(lot, (fv2, 300), (fv3, 300)))

        assert sum(volume for _, _, volume in result["children"]) == 600

    async def test_volume_exceeded_writes_nothing(self, store, brewery, cellar):
        _, lot, _, fv2, fv3 = cellar
        before = await brewery.snapshot()

        with pytest.raises(VolumeExceededError) as exc:
            await split_lot(store, brewery.tenant_id, _request(lot, (fv2, 500), (fv3, 600)))

        assert exc.value.available == 1000
        after = await brewery.snapshot()
        assert len(after.lots) == len(before.lots)
        assert after.tanks[fv2.id].status == TankStatus.AVAILABLE
        assert after.lots[lot.id].version == before.lots[lot.id].version

    async def test_packaged_volume_is_not_splittable(self, store, brewery, cellar):
        batch, lot, _, fv2, fv3 = cellar
        brewery.run(batch, lot.lot_code, quantity=4)

        with pytest.raises(VolumeExceededError) as exc:
            await split_lot(store, brewery.tenant_id, _request(lot, (fv2, 400), (fv3, 500)))

        assert exc.value.available == 800

    async def test_split_parent_cannot_be_split_again(self, store, brewery, cellar):
        _, lot, fv1, fv2, fv3 = cellar
        await split_lot(store, brewery.tenant_id, _request(lot, (fv2, 400), (fv3, 600)))
        spare = brewery.tank("FV-04")

        with pytest.raises(InvalidStateError):
            await split_lot(store, brewery.tenant_id, _request(lot, (fv1, 100), (spare, 100)))

    async def test_children_can_be_split(self, store, brewery, cellar):
        _, lot, fv1, fv2, fv3 = cellar
        await split_lot(store, brewery.tenant_id, _request(lot, (fv2, 400), (fv3, 600)))
        child = (await brewery.snapshot()).find_lot("BRW-2025-0001-B")
        spare = brewery.tank("FV-04")

        await split_lot(store, brewery.tenant_id, _request(child, (fv3, 300), (spare, 300)))

        listing = LineageResolver(await brewery.snapshot()).active_lots()
        assert {item.lot_code for item in listing.lots} == {
            "BRW-2025-0001-A", "BRW-2025-0001-B-A", "BRW-2025-0001-B-B",
        }
        grandchild = next(i for i in listing.lots if i.lot_code == "BRW-2025-0001-B-A")
        assert grandchild.source_batch_number == "BRW-2025-0001"

    async def test_completed_lot_rejected(self, store, brewery):
        batch = brewery.batch("BRW-2025-0009", 500)
        lot = brewery.lot(batch, 500, status=LotStatus.COMPLETED)
        fv1, fv2 = brewery.tank("FV-01"), brewery.tank("FV-02")

        with pytest.raises(InvalidStateError):
            await split_lot(store, brewery.tenant_id, _request(lot, (fv1, 100), (fv2, 100)))

    async def test_duplicate_suffixes_rejected(self, store, brewery, cellar):
        _, lot, _, fv2, fv3 = cellar

        with pytest.raises(ValidationError):
            await split_lot(
                store, brewery.tenant_id,
                _request(lot, (fv2, 100, "a"), (fv3, 100, "A")),
            )

    async def test_same_tank_twice_rejected(self, store, brewery, cellar):
        _, lot, _, fv2, _ = cellar

        with pytest.raises(ValidationError):
            await split_lot(store, brewery.tenant_id, _request(lot, (fv2, 100), (fv2, 100)))

    async def test_occupied_tank_rejected(self, store, brewery, cellar):
        _, lot, _, fv2, fv3 = cellar
        brewery.lot(brewery.batch("BRW-2025-0002", 300), 300, tank=fv3)

        with pytest.raises(InvalidStateError):
            await split_lot(store, brewery.tenant_id, _request(lot, (fv2, 100), (fv3, 100)))

    async def test_tank_capacity_enforced(self, store, brewery, cellar):
        _, lot, _, fv2, fv3 = cellar

        with pytest.raises(VolumeExceededError):
            await split_lot(store, brewery.tenant_id, _request(lot, (fv2, 600), (fv3, 400)))

    async def test_unknown_lot(self, store, brewery, cellar):
        _, _, _, fv2, fv3 = cellar
        request = SplitRequest(
            source_lot_id="missing",
            targets=[{"tank_id": fv2.id, "volume": 1}, {"tank_id": fv3.id, "volume": 1}],
        )

        with pytest.raises(NotFoundError):
            await split_lot(store, brewery.tenant_id, request)
