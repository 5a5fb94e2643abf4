"""
Earnings Aggregator

Rolls a period's Transactions and Bonuses up into one ManagerEarnings row
per manager:

    base_commission   = sum of transaction base commissions
    milestone_payouts = sum of MILESTONE_* bonuses
    extras            = sum of RECRUITMENT/GRADUATION/DIAMOND/DOWNLINE_* bonuses
    total_earnings    = base_commission + milestone_payouts + extras

Bonus types outside those sets are ignored.
"""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, Optional, Set

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from commission_engine.db_types import ZERO
from commission_engine.models.bonus import Bonus, MILESTONE_BONUS_TYPES, EXTRA_BONUS_TYPES
from commission_engine.models.earnings import ManagerEarnings
from commission_engine.models.manager import Manager
from commission_engine.models.transaction import Transaction
from commission_engine.services.commission_calculator import round2

logger = logging.getLogger(__name__)


@dataclass
class _ManagerTotals:
    base_commission: Decimal = ZERO
    milestone_payouts: Decimal = ZERO
    extras: Decimal = ZERO
    total_gross: Decimal = ZERO
    total_deductions: Decimal = ZERO
    total_net: Decimal = ZERO
    transaction_count: int = 0
    creators: Set[uuid.UUID] = field(default_factory=set)

    @property
    def total_earnings(self) -> Decimal:
        return round2(self.base_commission + self.milestone_payouts + self.extras)


@dataclass
class AggregationResult:
    period: str
    managers: int = 0
    removed: int = 0
    total_gross: Decimal = ZERO
    total_base_commission: Decimal = ZERO
    total_bonuses: Decimal = ZERO
    total_earnings: Decimal = ZERO
    ignored_bonuses: int = 0


async def recompute_lifetime_totals(db: AsyncSession, manager_ids: Iterable[uuid.UUID]) -> None:
    """Set Manager.lifetime_total to the sum of the manager's earnings over all periods."""
    ids = list(set(manager_ids))
    if not ids:
        return

    result = await db.execute(
        select(ManagerEarnings.manager_id, func.sum(ManagerEarnings.total_earnings))
        .where(ManagerEarnings.manager_id.in_(ids))
        .group_by(ManagerEarnings.manager_id)
    )
    sums = {manager_id: total for manager_id, total in result.all()}

    result = await db.execute(select(Manager).where(Manager.id.in_(ids)))
    for manager in result.scalars().all():
        manager.lifetime_total = round2(Decimal(str(sums.get(manager.id) or 0)))

    await db.flush()


class EarningsAggregator:
    """Period-level earnings rollup."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def aggregate(self, batch_id: Optional[uuid.UUID], period: str) -> AggregationResult:
        """
        Recompute ManagerEarnings for ``period``.

        Managers whose period data disappeared (e.g. after a genealogy edge
        was deleted) lose their earnings row. The caller commits.
        """
        totals: Dict[uuid.UUID, _ManagerTotals] = {}
        summary = AggregationResult(period=period)

        result = await self.db.execute(select(Transaction).where(Transaction.period == period))
        for txn in result.scalars().all():
            t = totals.setdefault(txn.manager_id, _ManagerTotals())
            t.base_commission += txn.base_commission
            t.total_gross += txn.gross_amount
            t.total_deductions += txn.deductions
            t.total_net += txn.net_for_commission
            t.transaction_count += 1
            t.creators.add(txn.creator_id)

        result = await self.db.execute(select(Bonus).where(Bonus.period == period))
        for bonus in result.scalars().all():
            if bonus.type in MILESTONE_BONUS_TYPES:
                totals.setdefault(bonus.manager_id, _ManagerTotals()).milestone_payouts += bonus.amount
            elif bonus.type in EXTRA_BONUS_TYPES:
                totals.setdefault(bonus.manager_id, _ManagerTotals()).extras += bonus.amount
            else:
                summary.ignored_bonuses += 1
                logger.debug(f"Ignoring bonus {bonus.id} with unknown type '{bonus.type}'")

        result = await self.db.execute(
            select(ManagerEarnings).where(ManagerEarnings.period == period)
        )
        existing = {e.manager_id: e for e in result.scalars().all()}

        for manager_id, t in totals.items():
            earnings = existing.get(manager_id)
            if earnings is None:
                earnings = ManagerEarnings(manager_id=manager_id, period=period)
                self.db.add(earnings)

            earnings.batch_id = batch_id
            earnings.base_commission = round2(t.base_commission)
            earnings.milestone_payouts = round2(t.milestone_payouts)
            earnings.extras = round2(t.extras)
            earnings.total_earnings = t.total_earnings
            earnings.total_gross = round2(t.total_gross)
            earnings.total_deductions = round2(t.total_deductions)
            earnings.total_net = round2(t.total_net)
            earnings.transaction_count = t.transaction_count
            earnings.creator_count = len(t.creators)
            earnings.status = "CALCULATED"

            summary.managers += 1
            summary.total_gross += t.total_gross
            summary.total_base_commission += t.base_commission
            summary.total_bonuses += t.milestone_payouts + t.extras
            summary.total_earnings += t.total_earnings

        stale = [manager_id for manager_id in existing if manager_id not in totals]
        if stale:
            await self.db.execute(
                delete(ManagerEarnings)
                .where(ManagerEarnings.period == period, ManagerEarnings.manager_id.in_(stale))
                .execution_options(synchronize_session=False)
            )
            for manager_id in stale:
                self.db.expunge(existing[manager_id])
            summary.removed = len(stale)

        await self.db.flush()
        await recompute_lifetime_totals(self.db, list(totals) + stale)

        logger.info(
            f"Aggregated period {period}: {summary.managers} managers, "
            f"earnings {round2(summary.total_earnings)}"
        )
        return summary
