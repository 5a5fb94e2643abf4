"""
Period Supersession Service

Keeps exactly one authoritative UploadBatch per period. Before a new batch
writes anything, every other non-retired batch for the period is marked
SUPERSEDED and the data derived from it is purged, all in the caller's
transaction.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List

from sqlalchemy import select, update, delete, or_
from sqlalchemy.ext.asyncio import AsyncSession

from commission_engine.models.bonus import Bonus
from commission_engine.models.earnings import ManagerEarnings
from commission_engine.models.transaction import Transaction
from commission_engine.models.upload_batch import UploadBatch, BatchStatus, PipelineStage
from commission_engine.services.batch_state_machine import (
    LIVE_STATES,
    RETIRED_STATES,
    STARTABLE_STATES,
    STAGE_PROGRESS,
    transition_batch,
)
from commission_engine.services.earnings_aggregator import recompute_lifetime_totals

logger = logging.getLogger(__name__)


class SupersessionError(Exception):
    """Another batch for the period is still being processed."""
    pass


class SupersessionService:
    """Single-active-batch enforcement and the processing claim."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def claim_processing(self, batch_id: uuid.UUID) -> bool:
        """
        Atomically mark a startable batch as processing.

        Returns False when the batch is already processing or not in a
        startable status, so a duplicate trigger is a no-op.
        """
        now = datetime.now(timezone.utc)
        result = await self.db.execute(
            update(UploadBatch)
            .where(
                UploadBatch.id == batch_id,
                UploadBatch.is_processing == False,  # noqa: E712
                UploadBatch.status.in_(list(STARTABLE_STATES)),
            )
            .values(
                is_processing=True,
                status=BatchStatus.DOWNLOADING.value,
                stage=PipelineStage.LOADING_ROWS.value,
                progress=STAGE_PROGRESS[PipelineStage.LOADING_ROWS.value],
                started_at=now,
                updated_at=now,
                failed_at=None,
                error=None,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def enforce_single_active(self, period: str, new_batch_id: uuid.UUID) -> List[uuid.UUID]:
        """
        Retire every other batch for ``period`` and purge its derived data.

        Returns the ids of the batches that were superseded.

        Raises:
            SupersessionError: another batch for the period is live-processing
        """
        result = await self.db.execute(
            select(UploadBatch).where(
                UploadBatch.period == period,
                UploadBatch.id != new_batch_id,
            )
        )
        others = list(result.scalars().all())

        busy = [b for b in others if b.is_processing or b.status in LIVE_STATES]
        if busy:
            raise SupersessionError(
                f"Batch {busy[0].id} for period {period} is still processing "
                f"({busy[0].status}); cannot supersede it"
            )

        prior = [b for b in others if b.status not in RETIRED_STATES]
        prior_ids = [b.id for b in prior]

        for batch in prior:
            transition_batch(batch, BatchStatus.SUPERSEDED)
            batch.superseded_by_id = new_batch_id
        for batch in others:
            batch.is_active = False
        await self.db.flush()

        affected_managers: set = set()
        if prior_ids:
            result = await self.db.execute(
                select(ManagerEarnings.manager_id).where(ManagerEarnings.batch_id.in_(prior_ids))
            )
            affected_managers.update(result.scalars().all())

            await self.db.execute(
                delete(Transaction)
                .where(Transaction.batch_id.in_(prior_ids))
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(
                delete(Bonus)
                .where(Bonus.batch_id.in_(prior_ids))
                .execution_options(synchronize_session=False)
            )

        # Earnings of the period not produced by the new batch are stale
        stale_filter = [ManagerEarnings.batch_id.is_(None)]
        if prior_ids:
            stale_filter.append(ManagerEarnings.batch_id.in_(prior_ids))
        result = await self.db.execute(
            select(ManagerEarnings.manager_id).where(
                ManagerEarnings.period == period,
                or_(*stale_filter),
            )
        )
        affected_managers.update(result.scalars().all())
        await self.db.execute(
            delete(ManagerEarnings)
            .where(ManagerEarnings.period == period, or_(*stale_filter))
            .execution_options(synchronize_session=False)
        )

        new_batch = await self.db.get(UploadBatch, new_batch_id)
        new_batch.is_active = True

        await self.db.flush()
        if affected_managers:
            await recompute_lifetime_totals(self.db, affected_managers)

        if prior_ids:
            logger.info(
                f"Period {period}: batch {new_batch_id} superseded "
                f"{len(prior_ids)} prior batch(es): {', '.join(str(i) for i in prior_ids)}"
            )
        return prior_ids
