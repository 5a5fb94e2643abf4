"""
Batch Write Pipeline

Writes a batch's rows in fixed-size chunks. Each chunk is one database
transaction holding its Transactions, per-row milestone Bonuses and the
UploadBatch counter/resume-point update. A chunk either lands completely or
not at all; ``chunks_committed`` tells a later run where to resume.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from commission_engine.config import settings
from commission_engine.core.normalization import normalize_label
from commission_engine.models.bonus import Bonus, BonusType, BonusSource
from commission_engine.models.transaction import Transaction
from commission_engine.models.upload_batch import UploadBatch
from commission_engine.schemas.row import CommissionRow
from commission_engine.services.batch_state_machine import write_progress
from commission_engine.services.commission_calculator import (
    CommissionRates,
    DEFAULT_RATES,
    calculate_row,
    round2,
)
from commission_engine.services.identity_resolver import IdentityCache, IdentityKind, IdentityResolver

logger = logging.getLogger(__name__)

TRANSACTION_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "commission-engine/transaction")
MILESTONE_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "commission-engine/milestone-bonus")


def transaction_id(batch_id: uuid.UUID, row_index: int) -> uuid.UUID:
    return uuid.uuid5(TRANSACTION_NAMESPACE, f"{batch_id}:{row_index}")


def milestone_bonus_id(batch_id: uuid.UUID, row_index: int, bonus_type: str) -> uuid.UUID:
    return uuid.uuid5(MILESTONE_NAMESPACE, f"{batch_id}:{row_index}:{bonus_type}")


class ChunkCommitError(Exception):
    """A chunk could not be written. Previously committed chunks are kept."""

    def __init__(self, chunk_index: int, cause: BaseException):
        self.chunk_index = chunk_index
        self.cause = cause
        super().__init__(f"Chunk {chunk_index} failed: {type(cause).__name__}: {cause}")


@dataclass(frozen=True)
class ProgressEvent:
    batch_id: uuid.UUID
    chunk_index: int
    chunks_total: int
    processed_rows: int
    skipped_rows: int
    failed_rows: int
    progress: int


@dataclass
class WriteSummary:
    chunks_total: int = 0
    chunks_written: int = 0
    resumed_from: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0


ProgressCallback = Callable[[ProgressEvent], Awaitable[None]]


def chunked(rows: Sequence[CommissionRow], size: int) -> List[Sequence[CommissionRow]]:
    return [rows[i:i + size] for i in range(0, len(rows), size)]


class BatchWritePipeline:
    """Chunked, resumable persistence of computed rows."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        rates: CommissionRates = DEFAULT_RATES,
        cache: Optional[IdentityCache] = None,
        chunk_size: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        max_row_errors: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.rates = rates
        self.cache = cache if cache is not None else IdentityCache()
        self.chunk_size = chunk_size or settings.BATCH_CHUNK_SIZE
        self.on_progress = on_progress
        self.max_row_errors = settings.MAX_ROW_ERRORS if max_row_errors is None else max_row_errors

    async def process(self, batch_id: uuid.UUID, rows: Sequence[CommissionRow], period: str) -> WriteSummary:
        """
        Write ``rows`` for ``batch_id``, skipping chunks already committed.

        Raises:
            ChunkCommitError: a chunk failed; the batch must be failed by the caller
        """
        chunks = chunked(list(rows), self.chunk_size)

        async with self.session_factory() as db:
            batch = await db.get(UploadBatch, batch_id)
            resume_from = batch.chunks_committed if batch else 0

        summary = WriteSummary(chunks_total=len(chunks), resumed_from=resume_from)
        if resume_from:
            logger.info(f"Batch {batch_id}: resuming after chunk {resume_from}/{len(chunks)}")

        for index in range(resume_from, len(chunks)):
            event = await self._write_chunk(batch_id, period, index, chunks[index], len(chunks), summary)
            summary.chunks_written += 1
            if self.on_progress:
                await self.on_progress(event)

        return summary

    async def _write_chunk(
        self,
        batch_id: uuid.UUID,
        period: str,
        index: int,
        chunk: Sequence[CommissionRow],
        chunks_total: int,
        summary: WriteSummary,
    ) -> ProgressEvent:
        async with self.session_factory() as db:
            try:
                resolver = IdentityResolver(db, self.cache, batch_id)
                processed = skipped = failed = 0
                errors: List[dict] = []

                for row in chunk:
                    outcome = await self._write_row(db, resolver, batch_id, period, row, errors)
                    if outcome == "processed":
                        processed += 1
                    elif outcome == "skipped":
                        skipped += 1
                    else:
                        failed += 1

                batch = await db.get(UploadBatch, batch_id)
                batch.processed_rows += processed
                batch.skipped_rows += skipped
                batch.failed_rows += failed
                batch.chunks_committed = index + 1
                batch.progress = write_progress(index + 1, chunks_total)
                if errors:
                    kept = list(batch.row_errors or [])
                    room = max(0, self.max_row_errors - len(kept))
                    batch.row_errors = kept + errors[:room]

                await db.commit()
            except Exception as e:
                await db.rollback()
                logger.exception(f"Batch {batch_id}: chunk {index + 1}/{chunks_total} rolled back")
                raise ChunkCommitError(index, e) from e

        summary.processed += processed
        summary.skipped += skipped
        summary.failed += failed
        logger.debug(
            f"Batch {batch_id}: chunk {index + 1}/{chunks_total} committed "
            f"({processed} written, {skipped} skipped, {failed} failed)"
        )
        return ProgressEvent(
            batch_id=batch_id,
            chunk_index=index,
            chunks_total=chunks_total,
            processed_rows=batch.processed_rows,
            skipped_rows=batch.skipped_rows,
            failed_rows=batch.failed_rows,
            progress=batch.progress,
        )

    async def _write_row(self, db, resolver, batch_id, period, row: CommissionRow, errors: List[dict]) -> str:
        if not normalize_label(row.manager_label) or not normalize_label(row.creator_label):
            logger.debug(f"Batch {batch_id}: row {row.row_index} skipped, missing manager or creator")
            return "skipped"
        if row.gross_amount <= 0:
            logger.debug(f"Batch {batch_id}: row {row.row_index} skipped, gross {row.gross_amount}")
            return "skipped"

        # Compute before resolving so a bad row never creates identities
        try:
            result = calculate_row(row.gross_amount, row.achieved, row.manager_type.value, self.rates)
        except (ValueError, KeyError, ArithmeticError) as e:
            logger.warning(f"Batch {batch_id}: row {row.row_index} failed: {e}")
            errors.append({"row": row.row_index, "error": str(e)})
            return "failed"

        manager_id = await resolver.resolve(
            row.manager_label, IdentityKind.MANAGER, manager_type=row.manager_type.value
        )
        creator_id = await resolver.resolve(
            row.creator_label, IdentityKind.CREATOR, display_name=row.creator_name
        )

        txn = Transaction(
            id=transaction_id(batch_id, row.row_index),
            batch_id=batch_id,
            period=period,
            row_index=row.row_index,
            manager_id=manager_id,
            manager_type=row.manager_type.value,
            creator_id=creator_id,
            gross_amount=round2(row.gross_amount),
            deductions=result.deductions,
            net_for_commission=result.net_for_commission,
            base_commission=result.base_commission,
            milestones_achieved=result.achieved_codes,
        )
        db.add(txn)

        for kind, amount in result.milestone_bonuses.items():
            if amount <= 0:
                continue
            bonus_type = BonusType.milestone(kind).value
            db.add(Bonus(
                id=milestone_bonus_id(batch_id, row.row_index, bonus_type),
                manager_id=manager_id,
                period=period,
                batch_id=batch_id,
                type=bonus_type,
                amount=amount,
                source=BonusSource.BATCH.value,
                transaction_id=txn.id,
            ))

        return "processed"
