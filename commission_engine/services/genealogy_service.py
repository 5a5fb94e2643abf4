"""
Genealogy Service

Administration of the manager hierarchy. Every edge mutation re-runs the
downline propagation and the earnings refresh for the periods it affects.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from commission_engine.core.normalization import validate_period
from commission_engine.models.bonus import Bonus, DOWNLINE_BONUS_TYPES
from commission_engine.models.genealogy import GenealogyEdge, GenealogyLevel
from commission_engine.models.manager import Manager
from commission_engine.models.transaction import Transaction
from commission_engine.models.upload_batch import UploadBatch
from commission_engine.services.batch_state_machine import LIVE_STATES
from commission_engine.services.downline_propagator import DownlinePropagator
from commission_engine.services.earnings_aggregator import EarningsAggregator

logger = logging.getLogger(__name__)


class GenealogyError(Exception):
    """Invalid genealogy operation."""
    pass


class EdgeNotFoundError(GenealogyError):
    pass


@dataclass
class RecalculationResult:
    periods: List[str] = field(default_factory=list)
    skipped_periods: List[str] = field(default_factory=list)
    bonuses_written: int = 0


@dataclass
class GenealogyChange:
    edge: Optional[GenealogyEdge]
    recalculation: RecalculationResult


class GenealogyService:
    """Service for GenealogyEdge operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== Queries ====================

    async def list_edges(
        self,
        team_manager_id: Optional[uuid.UUID] = None,
        live_manager_id: Optional[uuid.UUID] = None,
    ) -> List[GenealogyEdge]:
        query = select(GenealogyEdge).order_by(GenealogyEdge.created_at)
        if team_manager_id:
            query = query.where(GenealogyEdge.team_manager_id == team_manager_id)
        if live_manager_id:
            query = query.where(GenealogyEdge.live_manager_id == live_manager_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_edge(self, edge_id: uuid.UUID) -> GenealogyEdge:
        edge = await self.db.get(GenealogyEdge, edge_id)
        if edge is None:
            raise EdgeNotFoundError(f"Genealogy edge {edge_id} not found")
        return edge

    async def affected_periods(self, team_manager_id: uuid.UUID, live_manager_id: uuid.UUID) -> List[str]:
        """
        Periods whose downline bonuses depend on the (team, live) pair: periods
        where the live manager has transactions in the active batch, plus
        periods already holding a downline bonus for the pair.
        """
        result = await self.db.execute(
            select(Transaction.period)
            .join(UploadBatch, UploadBatch.id == Transaction.batch_id)
            .where(
                Transaction.manager_id == live_manager_id,
                UploadBatch.is_active == True,  # noqa: E712
            )
            .distinct()
        )
        periods = set(result.scalars().all())

        result = await self.db.execute(
            select(Bonus.period)
            .where(
                Bonus.manager_id == team_manager_id,
                Bonus.related_manager_id == live_manager_id,
                Bonus.type.in_(list(DOWNLINE_BONUS_TYPES)),
            )
            .distinct()
        )
        periods.update(result.scalars().all())
        return sorted(periods)

    # ==================== Mutations ====================

    async def create_edge(self, team_manager_id: uuid.UUID, live_manager_id: uuid.UUID, level: str) -> GenealogyChange:
        level = self._validate_level(level)
        if team_manager_id == live_manager_id:
            raise GenealogyError("A manager cannot be their own downline")

        for manager_id in (team_manager_id, live_manager_id):
            if await self.db.get(Manager, manager_id) is None:
                raise GenealogyError(f"Manager {manager_id} not found")

        result = await self.db.execute(
            select(GenealogyEdge.id).where(
                GenealogyEdge.team_manager_id == team_manager_id,
                GenealogyEdge.live_manager_id == live_manager_id,
            )
        )
        if result.scalar_one_or_none():
            raise GenealogyError("Edge already exists for this team/live pair; update its level instead")

        edge = GenealogyEdge(
            id=uuid.uuid4(),
            team_manager_id=team_manager_id,
            live_manager_id=live_manager_id,
            level=level,
        )
        self.db.add(edge)
        await self.db.flush()
        logger.info(f"Genealogy edge {team_manager_id} -> {live_manager_id} ({level}) created")

        periods = await self.affected_periods(team_manager_id, live_manager_id)
        return GenealogyChange(edge, await self.recalculate(periods))

    async def update_edge_level(self, edge_id: uuid.UUID, level: str) -> GenealogyChange:
        edge = await self.get_edge(edge_id)
        edge.level = self._validate_level(level)
        await self.db.flush()
        logger.info(f"Genealogy edge {edge_id} level set to {edge.level}")

        periods = await self.affected_periods(edge.team_manager_id, edge.live_manager_id)
        return GenealogyChange(edge, await self.recalculate(periods))

    async def delete_edge(self, edge_id: uuid.UUID) -> GenealogyChange:
        edge = await self.get_edge(edge_id)
        # Periods must be collected while the pair's bonuses still exist
        periods = await self.affected_periods(edge.team_manager_id, edge.live_manager_id)

        await self.db.delete(edge)
        await self.db.flush()
        logger.info(f"Genealogy edge {edge_id} deleted")

        return GenealogyChange(None, await self.recalculate(periods))

    # ==================== Recalculation ====================

    async def recalculate(self, periods: Iterable[str]) -> RecalculationResult:
        """Re-run propagation and the earnings refresh for ``periods``. The caller commits."""
        outcome = RecalculationResult()
        for period in sorted(set(validate_period(p) for p in periods)):
            result = await self.db.execute(
                select(UploadBatch).where(UploadBatch.period == period)
            )
            batches = list(result.scalars().all())

            if any(b.is_processing or b.status in LIVE_STATES for b in batches):
                # The running batch propagates when it finishes
                logger.warning(f"Skipping downline recalculation for {period}: batch in progress")
                outcome.skipped_periods.append(period)
                continue

            active_batch_id = next((b.id for b in batches if b.is_active), None)
            propagation = await DownlinePropagator(self.db).propagate(period)
            await EarningsAggregator(self.db).aggregate(active_batch_id, period)

            outcome.periods.append(period)
            outcome.bonuses_written += propagation.bonuses_written
        return outcome

    @staticmethod
    def _validate_level(level) -> str:
        try:
            return GenealogyLevel(level).value
        except ValueError:
            raise GenealogyError(f"Invalid level '{level}'. Expected one of A, B, C")
