"""
Batch Management Service

Administrative operations on upload batches:
- Listing with per-batch record counts
- Clearing a batch or a whole period
- Duplicate transaction detection across batches
- Manual reset of batches stuck in a processing state
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from commission_engine.core.normalization import validate_period
from commission_engine.models.bonus import Bonus
from commission_engine.models.earnings import ManagerEarnings
from commission_engine.models.transaction import Transaction
from commission_engine.models.upload_batch import UploadBatch, BatchStatus
from commission_engine.services.batch_processor import BatchNotFoundError
from commission_engine.services.batch_state_machine import (
    InvalidTransitionError,
    LIVE_STATES,
    transition_batch,
)
from commission_engine.services.earnings_aggregator import recompute_lifetime_totals

logger = logging.getLogger(__name__)


class BatchBusyError(Exception):
    """Operation not allowed while the batch is processing."""
    pass


@dataclass
class BatchRecordCounts:
    transactions: int = 0
    bonuses: int = 0
    earnings: int = 0


@dataclass
class ClearResult:
    batch_id: uuid.UUID
    status: str
    transactions_deleted: int = 0
    bonuses_deleted: int = 0
    earnings_deleted: int = 0


@dataclass
class DuplicateTransactionGroup:
    period: str
    manager_id: uuid.UUID
    creator_id: uuid.UUID
    gross_amount: object
    occurrences: int
    batch_ids: List[uuid.UUID] = field(default_factory=list)


class BatchManagementService:
    """Service for batch administration."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== Creation & Listing ====================

    async def create_batch(self, period: str, source: str) -> UploadBatch:
        batch = UploadBatch(
            id=uuid.uuid4(),
            period=validate_period(period),
            source=source,
            status=BatchStatus.PENDING.value,
        )
        self.db.add(batch)
        await self.db.flush()
        logger.info(f"Upload batch {batch.id} created for {batch.period} from '{source}'")
        return batch

    async def get_batch(self, batch_id: uuid.UUID) -> UploadBatch:
        batch = await self.db.get(UploadBatch, batch_id)
        if batch is None:
            raise BatchNotFoundError(f"Upload batch {batch_id} not found")
        return batch

    async def record_counts(self, batch_ids: List[uuid.UUID]) -> Dict[uuid.UUID, BatchRecordCounts]:
        counts = {batch_id: BatchRecordCounts() for batch_id in batch_ids}
        if not batch_ids:
            return counts

        for model, attr in (
            (Transaction, "transactions"),
            (Bonus, "bonuses"),
            (ManagerEarnings, "earnings"),
        ):
            result = await self.db.execute(
                select(model.batch_id, func.count(model.id))
                .where(model.batch_id.in_(batch_ids))
                .group_by(model.batch_id)
            )
            for batch_id, count in result.all():
                setattr(counts[batch_id], attr, count)
        return counts

    async def list_batches(self, period: Optional[str] = None):
        """Batches (newest first) paired with their record counts."""
        query = select(UploadBatch).order_by(UploadBatch.created_at.desc())
        if period:
            query = query.where(UploadBatch.period == validate_period(period))

        result = await self.db.execute(query)
        batches = list(result.scalars().all())
        counts = await self.record_counts([b.id for b in batches])
        return [(batch, counts[batch.id]) for batch in batches]

    async def get_batch_info(self, batch_id: uuid.UUID):
        batch = await self.get_batch(batch_id)
        counts = await self.record_counts([batch_id])
        return batch, counts[batch_id]

    # ==================== Clearing ====================

    async def clear_batch(self, batch_id: uuid.UUID) -> ClearResult:
        """
        Delete everything the batch produced and mark it CLEARED.

        Raises:
            BatchNotFoundError: unknown batch
            BatchBusyError: batch is processing
            InvalidTransitionError: batch is already cleared
        """
        batch = await self.get_batch(batch_id)
        if batch.status == BatchStatus.CLEARED.value:
            raise InvalidTransitionError(batch.status, BatchStatus.CLEARED.value)
        if batch.is_processing or batch.status in LIVE_STATES:
            raise BatchBusyError(f"Batch {batch_id} is processing ({batch.status}); reset it first")

        result = await self.db.execute(
            select(ManagerEarnings.manager_id).where(ManagerEarnings.batch_id == batch_id)
        )
        affected = set(result.scalars().all())

        transition_batch(batch, BatchStatus.CLEARED)

        txn = await self.db.execute(
            delete(Transaction)
            .where(Transaction.batch_id == batch_id)
            .execution_options(synchronize_session=False)
        )
        bonuses = await self.db.execute(
            delete(Bonus)
            .where(Bonus.batch_id == batch_id)
            .execution_options(synchronize_session=False)
        )
        earnings = await self.db.execute(
            delete(ManagerEarnings)
            .where(ManagerEarnings.batch_id == batch_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()
        await recompute_lifetime_totals(self.db, affected)

        cleared = ClearResult(
            batch_id=batch_id,
            status=batch.status,
            transactions_deleted=txn.rowcount or 0,
            bonuses_deleted=bonuses.rowcount or 0,
            earnings_deleted=earnings.rowcount or 0,
        )
        logger.info(
            f"Batch {batch_id} cleared: {cleared.transactions_deleted} transactions, "
            f"{cleared.bonuses_deleted} bonuses, {cleared.earnings_deleted} earnings"
        )
        return cleared

    async def clear_period(self, period: str) -> List[ClearResult]:
        """Clear every batch of a period that is not already cleared."""
        period = validate_period(period)
        result = await self.db.execute(
            select(UploadBatch).where(
                UploadBatch.period == period,
                UploadBatch.status != BatchStatus.CLEARED.value,
            )
        )
        batches = list(result.scalars().all())

        busy = [b for b in batches if b.is_processing or b.status in LIVE_STATES]
        if busy:
            raise BatchBusyError(f"Batch {busy[0].id} for {period} is processing")

        return [await self.clear_batch(b.id) for b in batches]

    # ==================== Duplicates ====================

    async def detect_duplicate_transactions(self, period: Optional[str] = None) -> List[DuplicateTransactionGroup]:
        """
        Report (manager, creator, gross, period) groups that appear in more
        than one batch.
        """
        keys = (
            Transaction.period,
            Transaction.manager_id,
            Transaction.creator_id,
            Transaction.gross_amount,
        )
        query = (
            select(*keys, func.count(Transaction.id), func.count(func.distinct(Transaction.batch_id)))
            .group_by(*keys)
            .having(func.count(func.distinct(Transaction.batch_id)) > 1)
        )
        if period:
            query = query.where(Transaction.period == validate_period(period))

        result = await self.db.execute(query)
        groups = []
        for txn_period, manager_id, creator_id, gross, occurrences, _ in result.all():
            batch_result = await self.db.execute(
                select(Transaction.batch_id)
                .where(
                    Transaction.period == txn_period,
                    Transaction.manager_id == manager_id,
                    Transaction.creator_id == creator_id,
                    Transaction.gross_amount == gross,
                )
                .distinct()
            )
            groups.append(DuplicateTransactionGroup(
                period=txn_period,
                manager_id=manager_id,
                creator_id=creator_id,
                gross_amount=gross,
                occurrences=occurrences,
                batch_ids=list(batch_result.scalars().all()),
            ))

        if groups:
            logger.warning(f"Found {len(groups)} duplicate transaction groups")
        return groups

    # ==================== Recovery ====================

    async def reset_stuck_batch(self, batch_id: uuid.UUID, reason: Optional[str] = None) -> UploadBatch:
        """
        Move a batch stuck in a live state to FAILED so it can be re-triggered.

        Raises:
            InvalidTransitionError: batch is not in a live state
        """
        batch = await self.get_batch(batch_id)
        if batch.status not in LIVE_STATES and not batch.is_processing:
            raise InvalidTransitionError(batch.status, BatchStatus.FAILED.value)

        message = reason or f"Reset manually while {batch.status}"
        if batch.status in LIVE_STATES:
            transition_batch(batch, BatchStatus.FAILED, error=message)
        else:
            batch.is_processing = False
        await self.db.flush()

        logger.warning(f"Batch {batch_id} reset: {message}")
        return batch
