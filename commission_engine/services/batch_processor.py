"""
Batch Processor

Runs one upload batch through the pipeline, persisting its state after every
step:

    DOWNLOADING  / LOADING_ROWS   (5)   rows loaded from the row source
    DOWNLOADING  / SUPERSEDING    (10)  prior batches of the period retired
    PROCESSING   / WRITING        (10-80) chunks committed
    CALCULATING  / AGGREGATING    (85)  ManagerEarnings rebuilt
    CALCULATING  / PROPAGATING    (95)  downline bonuses + earnings refresh
    COMPLETED    / DONE           (100)

Any failure leaves the batch FAILED with ``error`` set. A FAILED batch can be
started again and resumes after its last committed chunk.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from commission_engine.database import async_session_factory
from commission_engine.models.bonus import Bonus
from commission_engine.models.earnings import ManagerEarnings
from commission_engine.models.transaction import Transaction
from commission_engine.models.upload_batch import UploadBatch, BatchStatus, PipelineStage
from commission_engine.services.batch_state_machine import (
    FINISHED_STATES,
    LIVE_STATES,
    STAGE_PROGRESS,
    can_transition,
    transition_batch,
)
from commission_engine.services.batch_writer import BatchWritePipeline, ProgressEvent
from commission_engine.services.commission_calculator import round2
from commission_engine.services.commission_config_service import CommissionConfigService
from commission_engine.services.downline_propagator import DownlinePropagator
from commission_engine.services.earnings_aggregator import EarningsAggregator
from commission_engine.services.identity_resolver import IdentityCache
from commission_engine.services.sheet_rows import RowSource, WorkbookRowSource
from commission_engine.services.supersession_service import SupersessionService

logger = logging.getLogger(__name__)


class BatchNotFoundError(Exception):
    """Upload batch does not exist."""
    pass


@dataclass(frozen=True)
class StartResult:
    accepted: bool
    reason: Optional[str]
    status: str


class BatchProcessor:
    """Orchestrates supersession, writing, aggregation and propagation for a batch."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        row_source: Optional[RowSource] = None,
        chunk_size: Optional[int] = None,
    ):
        self.session_factory = session_factory or async_session_factory
        self.row_source = row_source or WorkbookRowSource()
        self.chunk_size = chunk_size

    # ==================== Start control ====================

    async def start_processing(self, batch_id: uuid.UUID) -> StartResult:
        """
        Claim a batch for processing.

        Raises:
            BatchNotFoundError: no batch with this id
        """
        async with self.session_factory() as db:
            batch = await db.get(UploadBatch, batch_id)
            if batch is None:
                raise BatchNotFoundError(f"Upload batch {batch_id} not found")

            if batch.status in FINISHED_STATES:
                return StartResult(False, f"Batch is already {batch.status}", batch.status)
            if batch.is_processing or batch.status in LIVE_STATES:
                logger.info(f"Batch {batch_id}: duplicate start ignored ({batch.status})")
                return StartResult(False, "Batch is already processing", batch.status)

            claimed = await SupersessionService(db).claim_processing(batch_id)
            await db.commit()

            if not claimed:
                await db.refresh(batch)
                logger.info(f"Batch {batch_id}: lost processing claim ({batch.status})")
                return StartResult(False, "Batch is already processing", batch.status)

        logger.info(f"Batch {batch_id}: processing claimed")
        return StartResult(True, None, BatchStatus.DOWNLOADING.value)

    async def process(self, batch_id: uuid.UUID) -> StartResult:
        """Claim and run synchronously. An accepted result carries the final status."""
        result = await self.start_processing(batch_id)
        if result.accepted:
            batch = await self.run(batch_id)
            if batch is None:
                raise BatchNotFoundError(f"Upload batch {batch_id} not found")
            return StartResult(True, batch.error, batch.status)
        return result

    # ==================== Pipeline ====================

    async def run(self, batch_id: uuid.UUID) -> Optional[UploadBatch]:
        """
        Run a claimed batch to COMPLETED or FAILED.

        Failures are recorded on the batch and logged, not raised.
        """
        try:
            return await self._run(batch_id)
        except Exception as e:
            logger.exception(f"Batch {batch_id} failed")
            return await self._mark_failed(batch_id, f"{type(e).__name__}: {e}")

    async def _run(self, batch_id: uuid.UUID) -> UploadBatch:
        async with self.session_factory() as db:
            batch = await self._get_batch(db, batch_id)
            period = batch.period
            rates = await CommissionConfigService(db).get_rates_for_period(period)
            loaded = await self.row_source.load_rows(batch)

            batch.total_rows = loaded.total
            if batch.chunks_committed == 0:
                batch.processed_rows = 0
                batch.skipped_rows = 0
                batch.failed_rows = len(loaded.errors)
                batch.row_errors = list(loaded.errors) or None
            self._set_stage(batch, PipelineStage.SUPERSEDING)
            await db.commit()

        logger.info(
            f"Batch {batch_id} ({period}): {len(loaded.rows)} rows loaded, "
            f"rates '{rates.config_name}'"
        )

        async with self.session_factory() as db:
            await SupersessionService(db).enforce_single_active(period, batch_id)
            batch = await self._get_batch(db, batch_id)
            transition_batch(batch, BatchStatus.PROCESSING, stage=PipelineStage.WRITING)
            await db.commit()

        pipeline = BatchWritePipeline(
            self.session_factory,
            rates=rates,
            cache=IdentityCache(),
            chunk_size=self.chunk_size,
            on_progress=self._log_progress,
        )
        summary = await pipeline.process(batch_id, loaded.rows, period)
        logger.info(
            f"Batch {batch_id}: {summary.chunks_written}/{summary.chunks_total} chunks written "
            f"(resumed from {summary.resumed_from}), {summary.processed} rows, "
            f"{summary.skipped} skipped, {summary.failed} failed"
        )

        async with self.session_factory() as db:
            batch = await self._get_batch(db, batch_id)
            transition_batch(batch, BatchStatus.CALCULATING, stage=PipelineStage.AGGREGATING)
            await db.commit()

            await EarningsAggregator(db).aggregate(batch_id, period)
            await db.commit()

        async with self.session_factory() as db:
            batch = await self._get_batch(db, batch_id)
            self._set_stage(batch, PipelineStage.PROPAGATING)
            await db.commit()

        async with self.session_factory() as db:
            await DownlinePropagator(db, rates).propagate(period)
            await EarningsAggregator(db).aggregate(batch_id, period)

            batch = await self._get_batch(db, batch_id)
            await self._record_totals(db, batch)
            transition_batch(batch, BatchStatus.COMPLETED)
            await db.commit()

        logger.info(
            f"Batch {batch_id} completed: revenue {batch.total_revenue}, "
            f"commissions {batch.total_commissions}, bonuses {batch.total_bonuses}, "
            f"{batch.managers_processed} managers"
        )
        return batch

    # ==================== Helpers ====================

    async def _get_batch(self, db: AsyncSession, batch_id: uuid.UUID) -> UploadBatch:
        batch = await db.get(UploadBatch, batch_id)
        if batch is None:
            raise BatchNotFoundError(f"Upload batch {batch_id} not found")
        return batch

    @staticmethod
    def _set_stage(batch: UploadBatch, stage: PipelineStage) -> None:
        batch.stage = stage.value
        batch.progress = max(batch.progress or 0, STAGE_PROGRESS[stage.value])

    async def _record_totals(self, db: AsyncSession, batch: UploadBatch) -> None:
        result = await db.execute(
            select(
                func.coalesce(func.sum(Transaction.gross_amount), 0),
                func.coalesce(func.sum(Transaction.base_commission), 0),
            ).where(Transaction.batch_id == batch.id)
        )
        revenue, commissions = result.one()

        result = await db.execute(
            select(func.coalesce(func.sum(Bonus.amount), 0)).where(Bonus.batch_id == batch.id)
        )
        bonuses = result.scalar()

        result = await db.execute(
            select(func.count(ManagerEarnings.id)).where(ManagerEarnings.period == batch.period)
        )

        batch.total_revenue = round2(Decimal(str(revenue)))
        batch.total_commissions = round2(Decimal(str(commissions)))
        batch.total_bonuses = round2(Decimal(str(bonuses)))
        batch.managers_processed = result.scalar() or 0

    async def _log_progress(self, event: ProgressEvent) -> None:
        logger.info(
            f"Batch {event.batch_id}: chunk {event.chunk_index + 1}/{event.chunks_total} "
            f"committed, progress {event.progress}%"
        )

    async def _mark_failed(self, batch_id: uuid.UUID, message: str) -> Optional[UploadBatch]:
        async with self.session_factory() as db:
            batch = await db.get(UploadBatch, batch_id)
            if batch is None:
                return None
            if can_transition(batch.status, BatchStatus.FAILED.value):
                transition_batch(batch, BatchStatus.FAILED, error=message)
            else:
                batch.error = message
                batch.is_processing = False
            await db.commit()
            return batch
