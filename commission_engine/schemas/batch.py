"""Pydantic schemas for upload batch control."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from commission_engine.core.normalization import validate_period
from commission_engine.schemas.base import BaseResponseSchema, BaseCreateSchema


class BatchCreate(BaseCreateSchema):
    """Register a spreadsheet submission for a period."""
    period: str = Field(..., description="YYYYMM")
    source: str = Field(..., min_length=1, max_length=500, description="Workbook file name under UPLOAD_DIR")

    @field_validator("period")
    @classmethod
    def check_period(cls, v: str) -> str:
        return validate_period(v)


class BatchResponse(BaseResponseSchema):
    id: UUID
    period: str
    source: str
    status: str
    stage: str
    progress: int
    is_active: bool
    is_processing: bool
    error: Optional[str] = None

    total_rows: int
    processed_rows: int
    skipped_rows: int
    failed_rows: int
    chunks_committed: int
    row_errors: Optional[List[Any]] = None

    total_revenue: Decimal
    total_commissions: Decimal
    total_bonuses: Decimal
    managers_processed: int

    superseded_by_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    superseded_at: Optional[datetime] = None
    cleared_at: Optional[datetime] = None


class BatchInfoResponse(BatchResponse):
    """Batch with counts of the records it owns."""
    transaction_count: int = 0
    bonus_count: int = 0
    earnings_count: int = 0


class BatchListResponse(BaseModel):
    items: List[BatchInfoResponse]
    total: int


class StartProcessingResponse(BaseModel):
    batch_id: UUID
    accepted: bool
    reason: Optional[str] = None
    status: str


class ClearBatchResponse(BaseModel):
    batch_id: UUID
    status: str
    transactions_deleted: int
    bonuses_deleted: int
    earnings_deleted: int


class DuplicateGroup(BaseModel):
    period: str
    manager_id: UUID
    creator_id: UUID
    gross_amount: Decimal
    occurrences: int
    batch_ids: List[UUID]


class DuplicateReportResponse(BaseModel):
    groups: List[DuplicateGroup]
    total: int
