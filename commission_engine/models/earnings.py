"""Per-period earnings snapshot, one row per (manager, period)."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from commission_engine.database import Base
from commission_engine.db_types import UUIDType, TotalMoneyType


class ManagerEarnings(Base):
    """
    Earnings rollup for one manager in one period.

    total_earnings = base_commission + milestone_payouts + extras
    """
    __tablename__ = "manager_earnings"
    __table_args__ = (
        UniqueConstraint("manager_id", "period", name="uq_manager_earnings_period"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    manager_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("managers.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    period: Mapped[str] = mapped_column(String(6), nullable=False, index=True)
    batch_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("upload_batches.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    base_commission: Mapped[Decimal] = mapped_column(TotalMoneyType, default=Decimal("0.00"), nullable=False)
    milestone_payouts: Mapped[Decimal] = mapped_column(TotalMoneyType, default=Decimal("0.00"), nullable=False)
    extras: Mapped[Decimal] = mapped_column(TotalMoneyType, default=Decimal("0.00"), nullable=False)
    total_earnings: Mapped[Decimal] = mapped_column(TotalMoneyType, default=Decimal("0.00"), nullable=False)

    total_gross: Mapped[Decimal] = mapped_column(TotalMoneyType, default=Decimal("0.00"), nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(TotalMoneyType, default=Decimal("0.00"), nullable=False)
    total_net: Mapped[Decimal] = mapped_column(TotalMoneyType, default=Decimal("0.00"), nullable=False)
    transaction_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    creator_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default="CALCULATED",
        nullable=False
    )

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

    def __repr__(self) -> str:
        return f"<ManagerEarnings(manager={self.manager_id}, period={self.period}, total={self.total_earnings})>"
