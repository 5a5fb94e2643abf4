"""
Tests for services/genealogy_service.py

Edge validation, and recalculation of affected periods after each mutation.
"""

import uuid

import pytest
import pytest_asyncio
from sqlalchemy import select

from commission_engine.models.bonus import Bonus
from commission_engine.models.earnings import ManagerEarnings
from commission_engine.models.manager import ManagerType
from commission_engine.models.upload_batch import BatchStatus
from commission_engine.services.genealogy_service import (
    EdgeNotFoundError,
    GenealogyError,
    GenealogyService,
)
from tests.factories import money, seed_batch, seed_manager, seed_transaction


PERIOD = "202508"


@pytest_asyncio.fixture
async def hierarchy(db):
    """Team Tom above Live Lisa, who earned 1000 base in the active August batch."""
    batch = await seed_batch(db, PERIOD)
    tom = await seed_manager(db, "team tom", ManagerType.TEAM)
    lisa = await seed_manager(db, "live lisa")
    await seed_transaction(db, batch, lisa, "1000")
    return tom, lisa


async def team_extras(db, manager):
    result = await db.execute(
        select(ManagerEarnings.extras).where(
            ManagerEarnings.manager_id == manager.id,
            ManagerEarnings.period == PERIOD,
        )
    )
    return result.scalar_one_or_none()


class TestValidation:

    async def test_invalid_level(self, db, hierarchy):
        tom, lisa = hierarchy
        with pytest.raises(GenealogyError, match="Invalid level"):
            await GenealogyService(db).create_edge(tom.id, lisa.id, "D")

    async def test_self_edge(self, db, hierarchy):
        tom, _ = hierarchy
        with pytest.raises(GenealogyError, match="own downline"):
            await GenealogyService(db).create_edge(tom.id, tom.id, "A")

    async def test_unknown_manager(self, db, hierarchy):
        tom, _ = hierarchy
        with pytest.raises(GenealogyError, match="not found"):
            await GenealogyService(db).create_edge(tom.id, uuid.uuid4(), "A")

    async def test_duplicate_pair(self, db, hierarchy):
        tom, lisa = hierarchy
        service = GenealogyService(db)
        await service.create_edge(tom.id, lisa.id, "A")
        with pytest.raises(GenealogyError, match="already exists"):
            await service.create_edge(tom.id, lisa.id, "B")

    async def test_unknown_edge(self, db):
        with pytest.raises(EdgeNotFoundError):
            await GenealogyService(db).update_edge_level(uuid.uuid4(), "A")


class TestRecalculation:

    async def test_create_edge_books_downline(self, db, hierarchy):
        tom, lisa = hierarchy

        change = await GenealogyService(db).create_edge(tom.id, lisa.id, "A")

        assert change.edge.level == "A"
        assert change.recalculation.periods == [PERIOD]
        assert change.recalculation.bonuses_written == 1
        assert await team_extras(db, tom) == money("100")

    async def test_level_change_rebooks(self, db, hierarchy):
        tom, lisa = hierarchy
        service = GenealogyService(db)
        change = await service.create_edge(tom.id, lisa.id, "A")

        await service.update_edge_level(change.edge.id, "B")

        assert await team_extras(db, tom) == money("75")
        bonuses = (await db.execute(select(Bonus.type))).scalars().all()
        assert bonuses == ["DOWNLINE_LEVEL_B"]

    async def test_delete_edge_removes_downline_earnings(self, db, hierarchy):
        tom, lisa = hierarchy
        service = GenealogyService(db)
        change = await service.create_edge(tom.id, lisa.id, "A")

        deleted = await service.delete_edge(change.edge.id)

        assert deleted.edge is None
        assert deleted.recalculation.periods == [PERIOD]
        assert await team_extras(db, tom) is None
        assert await service.list_edges() == []
        await db.refresh(tom)
        assert tom.lifetime_total == money("0")

    async def test_edge_without_activity_recalculates_nothing(self, db):
        tom = await seed_manager(db, "team tom", ManagerType.TEAM)
        lisa = await seed_manager(db, "live lisa")

        change = await GenealogyService(db).create_edge(tom.id, lisa.id, "A")

        assert change.recalculation.periods == []

    async def test_period_with_running_batch_skipped(self, db, hierarchy):
        tom, lisa = hierarchy
        await seed_batch(db, PERIOD, status=BatchStatus.PROCESSING, is_active=False, source="running.xlsx")

        change = await GenealogyService(db).create_edge(tom.id, lisa.id, "A")

        assert change.recalculation.periods == []
        assert change.recalculation.skipped_periods == [PERIOD]
        assert await team_extras(db, tom) is None

    async def test_explicit_recalculate(self, db, hierarchy):
        tom, lisa = hierarchy
        service = GenealogyService(db)
        await service.create_edge(tom.id, lisa.id, "C")

        result = await service.recalculate([PERIOD, PERIOD])

        assert result.periods == [PERIOD]
        assert await team_extras(db, tom) == money("50")

    async def test_recalculate_rejects_bad_period(self, db):
        with pytest.raises(ValueError):
            await GenealogyService(db).recalculate(["2025-08"])

    async def test_list_edges_filters(self, db, hierarchy):
        tom, lisa = hierarchy
        leo = await seed_manager(db, "live leo")
        service = GenealogyService(db)
        await service.create_edge(tom.id, lisa.id, "A")
        await service.create_edge(tom.id, leo.id, "B")

        assert len(await service.list_edges(team_manager_id=tom.id)) == 2
        only_leo = await service.list_edges(live_manager_id=leo.id)
        assert [e.level for e in only_leo] == ["B"]
