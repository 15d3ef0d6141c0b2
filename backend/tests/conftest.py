"""Pytest configuration and fixtures for BrewLot tests.

Engine tests run against an InMemoryLineageStore; API tests swap it in for
the SQL store through the `get_lineage_store` dependency and authenticate
with tokens minted by `create_access_token`.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.auth.jwt import create_access_token
from app.database import get_lineage_store
from app.lineage.entities import (
    AssignmentStatus,
    Batch,
    BatchStatus,
    Lot,
    LotBatch,
    LotPhase,
    LotStatus,
    PackageType,
    PackagingRun,
    PACKAGE_SIZES_LITERS,
    Recipe,
    Tank,
    TankAssignment,
    TankStatus,
    TankType,
    TenantConfig,
)
from app.lineage.memory_store import InMemoryLineageStore
from app.main import app

TENANT = "brewery-north"
OTHER_TENANT = "brewery-south"


# ── Seed builder ─────────────────────────────────────────────

class Brewery:
    """Seeds committed rows for one tenant straight into the store.

    Every record gets a creation time one minute after the previous one so
    "newest first" ordering is deterministic.
    """

    def __init__(self, store: InMemoryLineageStore, tenant_id: str = TENANT):
        self.store = store
        self.tenant_id = tenant_id
        self._clock = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)

    def tick(self) -> datetime:
        self._clock += timedelta(minutes=1)
        return self._clock

    def recipe(self, name="Pale Ale", style="American Pale Ale", yeast_strain="US-05") -> Recipe:
        recipe = Recipe(tenant_id=self.tenant_id, name=name, style=style, yeast_strain=yeast_strain)
        self.store.seed(recipe)
        return recipe

    def tank(self, name, capacity=None, status=TankStatus.AVAILABLE, type=TankType.UNITANK) -> Tank:
        tank = Tank(
            tenant_id=self.tenant_id, name=name, capacity=capacity, status=status, type=type,
            created_at=self.tick(),
        )
        self.store.seed(tank)
        return tank

    def batch(self, batch_number, volume, status=BatchStatus.FERMENTING, recipe=None, **fields) -> Batch:
        batch = Batch(
            tenant_id=self.tenant_id,
            batch_number=batch_number,
            volume=volume,
            status=status,
            recipe_id=recipe.id if recipe else None,
            created_at=self.tick(),
            **fields,
        )
        self.store.seed(batch)
        return batch

    def lot(
        self,
        batches,
        volume,
        code=None,
        phase=LotPhase.FERMENTATION,
        status=LotStatus.ACTIVE,
        tank=None,
        parent=None,
        is_blend_result=False,
        contributions=None,
    ) -> Lot:
        if isinstance(batches, Batch):
            batches = [batches]
        now = self.tick()
        lot = Lot(
            tenant_id=self.tenant_id,
            lot_code=code or batches[0].batch_number,
            phase=phase,
            status=status,
            planned_volume=volume,
            actual_volume=volume,
            parent_lot_id=parent.id if parent else None,
            is_blend_result=is_blend_result,
            created_at=now,
            updated_at=now,
        )
        contributions = contributions or [volume / len(batches)] * len(batches)
        rows = [
            LotBatch(
                tenant_id=self.tenant_id,
                lot_id=lot.id,
                batch_id=batch.id,
                volume_contribution=share,
                batch_percentage=round(share / volume * 100, 2),
            )
            for batch, share in zip(batches, contributions)
        ]
        seeded = [lot, *rows]
        if tank is not None and status != LotStatus.COMPLETED:
            seeded.append(TankAssignment(
                tenant_id=self.tenant_id,
                tank_id=tank.id,
                lot_id=lot.id,
                phase=phase,
                status=AssignmentStatus.ACTIVE,
                planned_start=now,
                actual_start=now,
                planned_volume=volume,
                actual_volume=volume,
                created_at=now,
            ))
            tank.status = TankStatus.IN_USE
            tank.current_lot_id = lot.id
            tank.current_phase = phase
            lot.tank_id = tank.id
            seeded.append(tank)
        self.store.seed(*seeded)
        return lot

    def run(self, batch, lot_number, package_type=PackageType.KEG_50, quantity=1) -> PackagingRun:
        run = PackagingRun(
            tenant_id=self.tenant_id,
            batch_id=batch.id,
            package_type=package_type,
            quantity=quantity,
            volume_total=quantity * PACKAGE_SIZES_LITERS[package_type],
            lot_number=lot_number,
            performed_at=self.tick(),
        )
        self.store.seed(run)
        return run

    def config(self, key, value) -> None:
        self.store.seed(TenantConfig(tenant_id=self.tenant_id, key=key, value=value))

    async def snapshot(self):
        return await self.store.load_snapshot(self.tenant_id)


# ── Store fixtures ───────────────────────────────────────────

@pytest.fixture
def store() -> InMemoryLineageStore:
    return InMemoryLineageStore()


@pytest.fixture
def brewery(store) -> Brewery:
    return Brewery(store, TENANT)


@pytest.fixture
def other_brewery(store) -> Brewery:
    return Brewery(store, OTHER_TENANT)


@pytest.fixture
def interleave(store):
    """Run `second` to completion between `first` reading and `first` committing.

    Usage:
        await interleave(lambda: split_lot(...), lambda: record_packaging(...))

    Returns (first outcome, second outcome); an outcome is the operation's
    result or the exception it raised.
    """
    async def run(first, second):
        commit = store._commit
        outcomes = {}

        async def commit_after_second(tx):
            store._commit = commit
            try:
                outcomes["second"] = await second()
            except Exception as exc:
                outcomes["second"] = exc
            await commit(tx)

        store._commit = commit_after_second
        try:
            outcomes["first"] = await first()
        except Exception as exc:
            outcomes["first"] = exc
        finally:
            store._commit = commit
        return outcomes["first"], outcomes.get("second")

    return run


# ── HTTP fixtures ────────────────────────────────────────────

def make_headers(tenant_id: str = TENANT, permissions=None, role=None, user_id="user-1") -> dict:
    if permissions is None and role is None:
        permissions = ["*"]
    token = create_access_token(
        user_id=user_id, tenant_id=tenant_id, permissions=permissions, role=role,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    """Build headers for a custom tenant / role / permission set."""
    return make_headers


@pytest.fixture
def auth_headers() -> dict:
    return make_headers(TENANT)


@pytest.fixture
def other_tenant_headers() -> dict:
    return make_headers(OTHER_TENANT, user_id="user-2")


@pytest_asyncio.fixture
async def client(store) -> AsyncGenerator[AsyncClient, None]:
    """Test client whose lineage store is the in-memory `store` fixture."""
    app.dependency_overrides[get_lineage_store] = lambda: store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Test Markers ─────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
    config.addinivalue_line("markers", "integration: Tests against a database engine")
    config.addinivalue_line("markers", "tenancy: Tenant isolation tests")
