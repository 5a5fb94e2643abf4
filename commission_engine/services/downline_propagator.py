"""
Downline Propagator

For every genealogy edge (team, live, level) the team manager earns
``level rate x live's base commission for the period`` as a
DOWNLINE_LEVEL_{level} bonus. One hop only: a live manager's own downline
bonuses are not passed further up.

Each run replaces all downline bonuses of the period, so re-running after a
genealogy change is idempotent.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from commission_engine.db_types import ZERO
from commission_engine.models.bonus import Bonus, BonusType, BonusSource, DOWNLINE_BONUS_TYPES
from commission_engine.models.genealogy import GenealogyEdge
from commission_engine.models.transaction import Transaction
from commission_engine.models.upload_batch import UploadBatch
from commission_engine.services.commission_calculator import CommissionRates, round2
from commission_engine.services.commission_config_service import CommissionConfigService

logger = logging.getLogger(__name__)

DOWNLINE_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "commission-engine/downline-bonus")


def downline_bonus_id(team_manager_id: uuid.UUID, live_manager_id: uuid.UUID, level: str, period: str) -> uuid.UUID:
    return uuid.uuid5(DOWNLINE_NAMESPACE, f"{team_manager_id}:{live_manager_id}:{level}:{period}")


@dataclass
class PropagationResult:
    period: str
    edges_evaluated: int = 0
    bonuses_written: int = 0
    bonuses_removed: int = 0
    total_amount: Decimal = ZERO


class DownlinePropagator:
    """Books level-weighted downline commissions for one period."""

    def __init__(self, db: AsyncSession, rates: Optional[CommissionRates] = None):
        self.db = db
        self.rates = rates

    async def base_commission_sums(self, period: str) -> Dict[uuid.UUID, Decimal]:
        result = await self.db.execute(
            select(Transaction.manager_id, func.sum(Transaction.base_commission))
            .where(Transaction.period == period)
            .group_by(Transaction.manager_id)
        )
        return {manager_id: Decimal(str(total or 0)) for manager_id, total in result.all()}

    async def propagate(self, period: str) -> PropagationResult:
        """Replace the period's downline bonuses. The caller commits."""
        rates = self.rates or await CommissionConfigService(self.db).get_rates_for_period(period)
        summary = PropagationResult(period=period)

        removed = await self.db.execute(
            delete(Bonus)
            .where(Bonus.period == period, Bonus.type.in_(list(DOWNLINE_BONUS_TYPES)))
            .execution_options(synchronize_session="fetch")
        )
        summary.bonuses_removed = removed.rowcount or 0

        result = await self.db.execute(
            select(UploadBatch.id).where(UploadBatch.period == period, UploadBatch.is_active == True)  # noqa: E712
        )
        active_batch_id = result.scalars().first()

        sums = await self.base_commission_sums(period)

        result = await self.db.execute(select(GenealogyEdge))
        for edge in result.scalars().all():
            summary.edges_evaluated += 1
            base = sums.get(edge.live_manager_id, ZERO)
            amount = round2(base * rates.downline_rate(edge.level))
            if amount <= 0:
                continue

            self.db.add(Bonus(
                id=downline_bonus_id(edge.team_manager_id, edge.live_manager_id, edge.level, period),
                manager_id=edge.team_manager_id,
                period=period,
                batch_id=active_batch_id,
                type=BonusType.downline(edge.level).value,
                amount=amount,
                source=BonusSource.DOWNLINE.value,
                related_manager_id=edge.live_manager_id,
            ))
            summary.bonuses_written += 1
            summary.total_amount += amount

        await self.db.flush()
        logger.info(
            f"Downline propagation for {period}: {summary.bonuses_written} bonuses "
            f"({summary.total_amount}) from {summary.edges_evaluated} edges"
        )
        return summary
