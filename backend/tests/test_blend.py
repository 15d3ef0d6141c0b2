"""Blend operation tests."""

import pytest

from app.lineage.entities import BatchStatus, LotPhase, LotStatus, LotType, TankStatus
from app.lineage.errors import (
    IncompatibleBlendError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    VolumeExceededError,
)
from app.lineage.resolver import LineageResolver
from app.schemas.lot import BlendRequest
from app.services.blend import blend_lots


@pytest.mark.unit
@pytest.mark.asyncio
class TestBlend:
    @pytest.fixture
    def bright_tanks(self, brewery):
        amber = brewery.recipe("Amber", style="Amber Ale", yeast_strain="US-05")
        red = brewery.recipe("Red", style="Irish Red", yeast_strain="WLP004")
        first = brewery.batch("BRW-2025-0001", 500, status=BatchStatus.READY, recipe=amber)
        second = brewery.batch("BRW-2025-0002", 300, status=BatchStatus.READY, recipe=red)
        t1 = brewery.tank("T-01")
        t2 = brewery.tank("T-02", capacity=1000)
        t3 = brewery.tank("T-03")
        lot1 = brewery.lot(first, 500, phase=LotPhase.BRIGHT, tank=t1)
        lot2 = brewery.lot(second, 300, phase=LotPhase.BRIGHT, tank=t3)
        return first, second, lot1, lot2, t1, t2, t3

    async def test_blend_by_batches(self, store, brewery, bright_tanks):
        first, second, lot1, lot2, t1, t2, t3 = bright_tanks
        body = BlendRequest(source_batch_ids=[first.id, second.id], target_tank_id=t2.id)

        result = await blend_lots(store, brewery.tenant_id, body, "brewer-1")

        blend = result["lot"]
        assert blend.lot_code.startswith("BLEND-")
        assert blend.lot_code.endswith("-0001")
        assert result["total_volume"] == 800
        assert result["contributions"] == {first.id: 500, second.id: 300}

        snapshot = await brewery.snapshot()
        for source in (lot1, lot2):
            consumed = snapshot.lots[source.id]
            assert consumed.status == LotStatus.COMPLETED
            assert consumed.blended_into_id == blend.id
            assert consumed.parent_lot_id is None
        assert snapshot.tanks[t1.id].status == TankStatus.AVAILABLE
        assert snapshot.tanks[t3.id].needs_cip is True
        assert snapshot.tanks[t2.id].current_lot_id == blend.id

        rows = sorted(snapshot.lot_batches_for(blend.id), key=lambda r: r.volume_contribution)
        assert [(r.batch_id, r.volume_contribution, r.batch_percentage) for r in rows] == [
            (second.id, 300, 37.5), (first.id, 500, 62.5),
        ]

        events = {(h.batch_id, h.event_type) for h in snapshot.history}
        assert (first.id, "blend_created") in events
        assert (second.id, "blended") in events

    async def test_single_blend_lot_in_active_view(self, store, brewery, bright_tanks):
        first, second, *_, t2, _ = bright_tanks

        await blend_lots(store, brewery.tenant_id, BlendRequest(
            source_batch_ids=[first.id, second.id], target_tank_id=t2.id,
        ))

        listing = LineageResolver(await brewery.snapshot()).active_lots()
        assert listing.count == 1
        lot = listing.lots[0]
        assert lot.type == LotType.BLEND
        assert lot.total_volume == 800
        assert len(lot.source_lots) == 2
        assert lot.phase == LotPhase.BRIGHT

    async def test_target_tank_may_hold_a_source(self, store, brewery, bright_tanks):
        _, _, lot1, lot2, t1, _, t3 = bright_tanks

        result = await blend_lots(store, brewery.tenant_id, BlendRequest(
            source_lot_ids=[lot1.id, lot2.lot_code], target_tank_id=t1.id,
        ))

        snapshot = await brewery.snapshot()
        assert snapshot.tanks[t1.id].status == TankStatus.IN_USE
        assert snapshot.tanks[t1.id].current_lot_id == result["lot"].id
        assert snapshot.tanks[t3.id].status == TankStatus.AVAILABLE

    async def test_partial_volumes(self, store, brewery, bright_tanks):
        _, _, lot1, lot2, _, t2, _ = bright_tanks

        result = await blend_lots(store, brewery.tenant_id, BlendRequest(
            source_lot_ids=[lot1.id, lot2.id], target_tank_id=t2.id, volumes={lot1.id: 200},
        ))

        assert result["total_volume"] == 500

    async def test_volume_above_source_rejected(self, store, brewery, bright_tanks):
        _, _, lot1, lot2, _, t2, _ = bright_tanks

        with pytest.raises(VolumeExceededError):
            await blend_lots(store, brewery.tenant_id, BlendRequest(
                source_lot_ids=[lot1.id, lot2.id], target_tank_id=t2.id, volumes={lot2.id: 301},
            ))

    async def test_volume_for_foreign_lot_rejected(self, store, brewery, bright_tanks):
        _, _, lot1, lot2, _, t2, _ = bright_tanks

        with pytest.raises(ValidationError):
            await blend_lots(store, brewery.tenant_id, BlendRequest(
                source_lot_ids=[lot1.id, lot2.id], target_tank_id=t2.id, volumes={"other": 10},
            ))

    async def test_target_capacity_enforced(self, store, brewery, bright_tanks):
        _, _, lot1, lot2, _, _, _ = bright_tanks
        small = brewery.tank("T-04", capacity=600)

        with pytest.raises(VolumeExceededError):
            await blend_lots(store, brewery.tenant_id, BlendRequest(
                source_lot_ids=[lot1.id, lot2.id], target_tank_id=small.id,
            ))

    async def test_phase_mismatch(self, store, brewery, bright_tanks):
        _, _, lot1, _, _, t2, _ = bright_tanks
        other = brewery.lot(
            brewery.batch("BRW-2025-0003", 200, status=BatchStatus.CONDITIONING),
            200, phase=LotPhase.CONDITIONING,
        )
        body = dict(source_lot_ids=[lot1.id, other.id], target_tank_id=t2.id)

        with pytest.raises(InvalidStateError):
            await blend_lots(store, brewery.tenant_id, BlendRequest(**body))

        result = await blend_lots(
            store, brewery.tenant_id, BlendRequest(**body, allow_phase_mismatch=True),
        )
        assert result["lot"].phase == LotPhase.BRIGHT

    async def test_compatibility_rule_from_request(self, store, brewery, bright_tanks):
        _, _, lot1, lot2, _, t2, _ = bright_tanks

        with pytest.raises(IncompatibleBlendError) as exc:
            await blend_lots(store, brewery.tenant_id, BlendRequest(
                source_lot_ids=[lot1.id, lot2.id], target_tank_id=t2.id, compatibility="same_yeast",
            ))

        assert exc.value.reasons == ["different yeast strains: US-05, WLP004"]

    async def test_compatibility_rule_from_tenant_policy(self, store, brewery, bright_tanks):
        _, _, lot1, lot2, _, t2, _ = bright_tanks
        brewery.config("lineage_policy", {"blend_compatibility": "same_style"})
        body = dict(source_lot_ids=[lot1.id, lot2.id], target_tank_id=t2.id)

        with pytest.raises(IncompatibleBlendError):
            await blend_lots(store, brewery.tenant_id, BlendRequest(**body))

        result = await blend_lots(
            store, brewery.tenant_id, BlendRequest(**body, compatibility="permissive"),
        )
        assert result["total_volume"] == 800

    async def test_completed_source_rejected(self, store, brewery, bright_tanks):
        _, _, lot1, _, _, t2, _ = bright_tanks
        done = brewery.lot(
            brewery.batch("BRW-2025-0004", 100, status=BatchStatus.COMPLETED), 100,
            phase=LotPhase.BRIGHT, status=LotStatus.COMPLETED,
        )

        with pytest.raises(InvalidStateError):
            await blend_lots(store, brewery.tenant_id, BlendRequest(
                source_lot_ids=[lot1.id, done.id], target_tank_id=t2.id,
            ))

    async def test_same_lot_twice_rejected(self, store, brewery, bright_tanks):
        _, _, lot1, _, _, t2, _ = bright_tanks

        with pytest.raises(ValidationError):
            await blend_lots(store, brewery.tenant_id, BlendRequest(
                source_lot_ids=[lot1.id, lot1.lot_code], target_tank_id=t2.id,
            ))

    async def test_batch_with_several_living_lots_rejected(self, store, brewery, bright_tanks):
        first, second, lot1, _, _, t2, _ = bright_tanks
        brewery.lot(first, 100, code="RESERVE-0001", phase=LotPhase.BRIGHT)

        with pytest.raises(InvalidStateError):
            await blend_lots(store, brewery.tenant_id, BlendRequest(
                source_batch_ids=[first.id, second.id], target_tank_id=t2.id,
            ))

    async def test_unknown_tank(self, store, brewery, bright_tanks):
        _, _, lot1, lot2, *_ = bright_tanks

        with pytest.raises(NotFoundError):
            await blend_lots(store, brewery.tenant_id, BlendRequest(
                source_lot_ids=[lot1.id, lot2.id], target_tank_id="missing",
            ))

    async def test_failed_blend_writes_nothing(self, store, brewery, bright_tanks):
        _, _, lot1, lot2, _, t2, _ = bright_tanks
        before = await brewery.snapshot()

        with pytest.raises(IncompatibleBlendError):
            await blend_lots(store, brewery.tenant_id, BlendRequest(
                source_lot_ids=[lot1.id, lot2.id], target_tank_id=t2.id, compatibility="same_recipe",
            ))

        after = await brewery.snapshot()
        assert len(after.lots) == len(before.lots)
        assert after.lots[lot1.id].status == LotStatus.ACTIVE
        assert len(after.history) == len(before.history)
