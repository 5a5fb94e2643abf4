"""API endpoints for upload batch control."""
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, Response, status

from commission_engine.api.deps import DB, Processor
from commission_engine.models.upload_batch import UploadBatch
from commission_engine.schemas.batch import (
    BatchCreate,
    BatchResponse,
    BatchInfoResponse,
    BatchListResponse,
    StartProcessingResponse,
    ClearBatchResponse,
    DuplicateGroup,
    DuplicateReportResponse,
)
from commission_engine.services.batch_management_service import (
    BatchManagementService,
    BatchBusyError,
    BatchRecordCounts,
    ClearResult,
)
from commission_engine.services.batch_processor import BatchNotFoundError
from commission_engine.services.batch_state_machine import FINISHED_STATES, InvalidTransitionError

router = APIRouter()


def _info(batch: UploadBatch, counts: BatchRecordCounts) -> BatchInfoResponse:
    return BatchInfoResponse(
        **BatchResponse.model_validate(batch).model_dump(),
        transaction_count=counts.transactions,
        bonus_count=counts.bonuses,
        earnings_count=counts.earnings,
    )


def _cleared(result: ClearResult) -> ClearBatchResponse:
    return ClearBatchResponse(
        batch_id=result.batch_id,
        status=result.status,
        transactions_deleted=result.transactions_deleted,
        bonuses_deleted=result.bonuses_deleted,
        earnings_deleted=result.earnings_deleted,
    )


# ==================== Batches ====================

@router.post("", response_model=BatchResponse, status_code=status.HTTP_201_CREATED)
async def create_batch(batch_in: BatchCreate, db: DB):
    """Register a new upload batch (PENDING)."""
    batch = await BatchManagementService(db).create_batch(batch_in.period, batch_in.source)
    await db.commit()
    await db.refresh(batch)
    return batch


@router.get("", response_model=BatchListResponse)
async def list_batches(
    db: DB,
    period: Optional[str] = Query(None, description="YYYYMM"),
):
    """List upload batches with their record counts."""
    try:
        rows = await BatchManagementService(db).list_batches(period)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return BatchListResponse(
        items=[_info(batch, counts) for batch, counts in rows],
        total=len(rows),
    )


@router.get("/duplicates", response_model=DuplicateReportResponse)
async def duplicate_report(
    db: DB,
    period: Optional[str] = Query(None, description="YYYYMM"),
):
    """Transactions that appear in more than one batch."""
    try:
        groups = await BatchManagementService(db).detect_duplicate_transactions(period)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return DuplicateReportResponse(
        groups=[
            DuplicateGroup(
                period=g.period,
                manager_id=g.manager_id,
                creator_id=g.creator_id,
                gross_amount=g.gross_amount,
                occurrences=g.occurrences,
                batch_ids=g.batch_ids,
            )
            for g in groups
        ],
        total=len(groups),
    )


@router.post("/clear-period", response_model=List[ClearBatchResponse])
async def clear_period(
    db: DB,
    period: str = Query(..., description="YYYYMM"),
):
    """Clear every batch of a period."""
    try:
        results = await BatchManagementService(db).clear_period(period)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BatchBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))

    await db.commit()
    return [_cleared(r) for r in results]


@router.get("/{batch_id}", response_model=BatchInfoResponse)
async def get_batch(batch_id: UUID, db: DB):
    """Batch status, progress and error for polling."""
    try:
        batch, counts = await BatchManagementService(db).get_batch_info(batch_id)
    except BatchNotFoundError:
        raise HTTPException(status_code=404, detail="Upload batch not found")
    return _info(batch, counts)


@router.post("/{batch_id}/start", response_model=StartProcessingResponse)
async def start_batch(
    batch_id: UUID,
    response: Response,
    background_tasks: BackgroundTasks,
    processor: Processor,
):
    """
    Start processing in the background.

    202 when accepted, 200 with ``accepted=false`` for a duplicate trigger,
    409 when the batch is already finished.
    """
    try:
        result = await processor.start_processing(batch_id)
    except BatchNotFoundError:
        raise HTTPException(status_code=404, detail="Upload batch not found")

    if result.accepted:
        background_tasks.add_task(processor.run, batch_id)
        response.status_code = status.HTTP_202_ACCEPTED
    elif result.status in FINISHED_STATES:
        raise HTTPException(status_code=409, detail=result.reason)

    return StartProcessingResponse(
        batch_id=batch_id,
        accepted=result.accepted,
        reason=result.reason,
        status=result.status,
    )


@router.post("/{batch_id}/clear", response_model=ClearBatchResponse)
async def clear_batch(batch_id: UUID, db: DB):
    """Delete a batch's transactions, bonuses and earnings and mark it CLEARED."""
    try:
        result = await BatchManagementService(db).clear_batch(batch_id)
    except BatchNotFoundError:
        raise HTTPException(status_code=404, detail="Upload batch not found")
    except (BatchBusyError, InvalidTransitionError) as e:
        raise HTTPException(status_code=409, detail=str(e))

    await db.commit()
    return _cleared(result)


@router.post("/{batch_id}/reset", response_model=BatchResponse)
async def reset_batch(
    batch_id: UUID,
    db: DB,
    reason: Optional[str] = Query(None, max_length=500),
):
    """Move a batch stuck in a processing state to FAILED."""
    try:
        batch = await BatchManagementService(db).reset_stuck_batch(batch_id, reason)
    except BatchNotFoundError:
        raise HTTPException(status_code=404, detail="Upload batch not found")
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))

    await db.commit()
    await db.refresh(batch)
    return batch
