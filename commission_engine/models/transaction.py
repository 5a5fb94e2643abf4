"""Per-row commission transaction. Created once per processed row, never mutated."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column

from commission_engine.database import Base
from commission_engine.db_types import UUIDType, MoneyType


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        Index('ix_transactions_period_manager', 'period', 'manager_id'),
    )

    # Deterministic per (batch, row index)
    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True
    )

    batch_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("upload_batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    period: Mapped[str] = mapped_column(String(6), nullable=False, index=True)
    row_index: Mapped[int] = mapped_column(Integer, nullable=False)

    manager_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("managers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    manager_type: Mapped[str] = mapped_column(String(20), nullable=False)
    creator_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("creators.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Amounts
    gross_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    deductions: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    net_for_commission: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    base_commission: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    milestones_achieved: Mapped[str] = mapped_column(
        String(8),
        default="",
        nullable=False,
        comment="Achieved milestone kinds, e.g. 'NP'"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Transaction(batch={self.batch_id}, row={self.row_index}, base={self.base_commission})>"
