from commission_engine.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema
from commission_engine.schemas.row import CommissionRow, MILESTONE_TRIGGERS
from commission_engine.schemas.batch import (
    BatchCreate,
    BatchResponse,
    BatchListResponse,
    BatchInfoResponse,
    StartProcessingResponse,
    ClearBatchResponse,
    DuplicateGroup,
    DuplicateReportResponse,
)
from commission_engine.schemas.genealogy import (
    GenealogyEdgeCreate,
    GenealogyEdgeUpdate,
    GenealogyEdgeResponse,
    RecalculateResponse,
)
from commission_engine.schemas.earnings import (
    ManagerEarningsResponse,
    EarningsListResponse,
    EarningsHistoryResponse,
    PeriodListResponse,
)

__all__ = [
    "BaseResponseSchema",
    "BaseCreateSchema",
    "BaseUpdateSchema",
    "CommissionRow",
    "MILESTONE_TRIGGERS",
    "BatchCreate",
    "BatchResponse",
    "BatchListResponse",
    "BatchInfoResponse",
    "StartProcessingResponse",
    "ClearBatchResponse",
    "DuplicateGroup",
    "DuplicateReportResponse",
    "GenealogyEdgeCreate",
    "GenealogyEdgeUpdate",
    "GenealogyEdgeResponse",
    "RecalculateResponse",
    "ManagerEarningsResponse",
    "EarningsListResponse",
    "EarningsHistoryResponse",
    "PeriodListResponse",
]
