"""Read-side schemas for manager earnings."""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel

from commission_engine.schemas.base import BaseResponseSchema


class ManagerEarningsResponse(BaseResponseSchema):
    id: UUID
    manager_id: UUID
    period: str
    batch_id: Optional[UUID] = None

    base_commission: Decimal
    milestone_payouts: Decimal
    extras: Decimal
    total_earnings: Decimal

    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal
    transaction_count: int
    creator_count: int

    status: str
    updated_at: datetime


class EarningsListResponse(BaseModel):
    items: List[ManagerEarningsResponse]
    total: int
    period: str
    total_earnings: Decimal


class EarningsHistoryResponse(BaseModel):
    """All periods for one manager, newest first."""
    manager_id: UUID
    handle: str
    items: List[ManagerEarningsResponse]
    total: int
    lifetime_total: Decimal


class PeriodListResponse(BaseModel):
    """Periods that currently have an active batch."""
    periods: List[str]
