"""Upload batch model.

One UploadBatch is created per spreadsheet submission. It is also the persisted
state of the processing pipeline: ``status`` and ``stage`` say where a run is,
``chunks_committed`` says how far the write pipeline got.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Integer, Text, Index, text
from sqlalchemy.orm import Mapped, mapped_column

from commission_engine.database import Base
from commission_engine.db_types import UUIDType, JSONType, TotalMoneyType


class BatchStatus(str, Enum):
    """Upload batch status."""
    PENDING = "PENDING"
    DOWNLOADING = "DOWNLOADING"
    PROCESSING = "PROCESSING"
    CALCULATING = "CALCULATING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SUPERSEDED = "SUPERSEDED"
    CLEARED = "CLEARED"


class PipelineStage(str, Enum):
    """Fine-grained pipeline stage within a status."""
    QUEUED = "QUEUED"
    LOADING_ROWS = "LOADING_ROWS"
    SUPERSEDING = "SUPERSEDING"
    WRITING = "WRITING"
    AGGREGATING = "AGGREGATING"
    PROPAGATING = "PROPAGATING"
    DONE = "DONE"


class UploadBatch(Base):
    """Spreadsheet submission for one commission period."""
    __tablename__ = "upload_batches"
    __table_args__ = (
        Index('ix_upload_batches_period_active', 'period', 'is_active'),
        Index('ix_upload_batches_status', 'status'),
        # At most one active batch per period
        Index(
            'uq_upload_batches_active_period', 'period',
            unique=True,
            postgresql_where=text('is_active'),
            sqlite_where=text('is_active = 1'),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    period: Mapped[str] = mapped_column(
        String(6),
        nullable=False,
        index=True,
        comment="YYYYMM"
    )
    source: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="Source identifier (file name)"
    )

    # State
    status: Mapped[str] = mapped_column(
        String(50),
        default=BatchStatus.PENDING.value,
        nullable=False
    )
    stage: Mapped[str] = mapped_column(
        String(50),
        default=PipelineStage.QUEUED.value,
        nullable=False
    )
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_processing: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Row counters
    total_rows: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed_rows: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_rows: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_rows: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    chunks_committed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    row_errors: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)

    # Results
    total_revenue: Mapped[Decimal] = mapped_column(TotalMoneyType, default=Decimal("0.00"), nullable=False)
    total_commissions: Mapped[Decimal] = mapped_column(TotalMoneyType, default=Decimal("0.00"), nullable=False)
    total_bonuses: Mapped[Decimal] = mapped_column(TotalMoneyType, default=Decimal("0.00"), nullable=False)
    managers_processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    superseded_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        nullable=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    superseded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cleared_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<UploadBatch(id={self.id}, period={self.period}, status={self.status})>"
