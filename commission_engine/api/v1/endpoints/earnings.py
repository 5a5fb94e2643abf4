"""Read-side endpoints for manager earnings."""
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query
from sqlalchemy import select

from commission_engine.api.deps import DB
from commission_engine.core.normalization import is_valid_period
from commission_engine.models.earnings import ManagerEarnings
from commission_engine.models.manager import Manager
from commission_engine.models.upload_batch import UploadBatch
from commission_engine.schemas.earnings import (
    ManagerEarningsResponse,
    EarningsListResponse,
    EarningsHistoryResponse,
    PeriodListResponse,
)

router = APIRouter()


def _check_period(period: str) -> str:
    if not is_valid_period(period):
        raise HTTPException(status_code=400, detail=f"Invalid period '{period}'. Expected YYYYMM")
    return period


@router.get("", response_model=EarningsListResponse)
async def list_earnings(
    db: DB,
    period: str = Query(..., description="YYYYMM"),
):
    """All manager earnings for a period, highest first."""
    _check_period(period)
    result = await db.execute(
        select(ManagerEarnings)
        .where(ManagerEarnings.period == period)
        .order_by(ManagerEarnings.total_earnings.desc())
    )
    items = result.scalars().all()

    return EarningsListResponse(
        items=[ManagerEarningsResponse.model_validate(e) for e in items],
        total=len(items),
        period=period,
        total_earnings=sum((e.total_earnings for e in items), Decimal("0.00")),
    )


@router.get("/periods", response_model=PeriodListResponse)
async def list_periods(db: DB):
    """Periods with an active batch, newest first."""
    result = await db.execute(
        select(UploadBatch.period)
        .where(UploadBatch.is_active.is_(True))
        .distinct()
        .order_by(UploadBatch.period.desc())
    )
    return PeriodListResponse(periods=list(result.scalars().all()))


@router.get("/{manager_id}/history", response_model=EarningsHistoryResponse)
async def get_earnings_history(manager_id: UUID, db: DB):
    """Every period's earnings for one manager, newest first."""
    manager = await db.get(Manager, manager_id)
    if not manager:
        raise HTTPException(status_code=404, detail="Manager not found")

    result = await db.execute(
        select(ManagerEarnings)
        .where(ManagerEarnings.manager_id == manager_id)
        .order_by(ManagerEarnings.period.desc())
    )
    items = result.scalars().all()

    return EarningsHistoryResponse(
        manager_id=manager.id,
        handle=manager.handle,
        items=[ManagerEarningsResponse.model_validate(e) for e in items],
        total=len(items),
        lifetime_total=manager.lifetime_total,
    )


@router.get("/{manager_id}", response_model=ManagerEarningsResponse)
async def get_manager_earnings(
    manager_id: UUID,
    db: DB,
    period: str = Query(..., description="YYYYMM"),
):
    """One manager's earnings for a period."""
    _check_period(period)
    result = await db.execute(
        select(ManagerEarnings).where(
            ManagerEarnings.manager_id == manager_id,
            ManagerEarnings.period == period,
        )
    )
    earnings = result.scalar_one_or_none()

    if not earnings:
        raise HTTPException(status_code=404, detail="No earnings for this manager and period")

    return earnings
