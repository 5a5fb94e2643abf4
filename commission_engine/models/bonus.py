"""Bonus records: per-row milestones, downline commissions and manual extras."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from commission_engine.database import Base
from commission_engine.db_types import UUIDType, MoneyType


class BonusType(str, Enum):
    MILESTONE_S = "MILESTONE_S"
    MILESTONE_N = "MILESTONE_N"
    MILESTONE_O = "MILESTONE_O"
    MILESTONE_P = "MILESTONE_P"
    RECRUITMENT_BONUS = "RECRUITMENT_BONUS"
    GRADUATION_BONUS = "GRADUATION_BONUS"
    DIAMOND_BONUS = "DIAMOND_BONUS"
    DOWNLINE_LEVEL_A = "DOWNLINE_LEVEL_A"
    DOWNLINE_LEVEL_B = "DOWNLINE_LEVEL_B"
    DOWNLINE_LEVEL_C = "DOWNLINE_LEVEL_C"

    @classmethod
    def milestone(cls, kind: str) -> "BonusType":
        return cls(f"MILESTONE_{kind}")

    @classmethod
    def downline(cls, level: str) -> "BonusType":
        return cls(f"DOWNLINE_LEVEL_{level}")


class BonusSource(str, Enum):
    """Which part of the system wrote the bonus."""
    BATCH = "BATCH"         # Per-row milestone from the write pipeline
    DOWNLINE = "DOWNLINE"   # Downline propagator
    MANUAL = "MANUAL"       # Awarded by an administrator


MILESTONE_BONUS_TYPES = frozenset({
    BonusType.MILESTONE_S.value,
    BonusType.MILESTONE_N.value,
    BonusType.MILESTONE_O.value,
    BonusType.MILESTONE_P.value,
})

DOWNLINE_BONUS_TYPES = frozenset({
    BonusType.DOWNLINE_LEVEL_A.value,
    BonusType.DOWNLINE_LEVEL_B.value,
    BonusType.DOWNLINE_LEVEL_C.value,
})

EXTRA_BONUS_TYPES = frozenset({
    BonusType.RECRUITMENT_BONUS.value,
    BonusType.GRADUATION_BONUS.value,
    BonusType.DIAMOND_BONUS.value,
}) | DOWNLINE_BONUS_TYPES


class Bonus(Base):
    __tablename__ = "bonuses"
    __table_args__ = (
        Index('ix_bonuses_period_manager', 'period', 'manager_id'),
        Index('ix_bonuses_period_type', 'period', 'type'),
    )

    # Deterministic per manager + period + type + context
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

    # Stored as VARCHAR: legacy kinds may exist and are ignored by aggregation
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    source: Mapped[str] = mapped_column(
        String(20),
        default=BonusSource.BATCH.value,
        nullable=False
    )

    related_manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("managers.id", ondelete="CASCADE"),
        nullable=True,
        comment="Descendant whose performance generated a downline bonus"
    )
    transaction_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Bonus(manager={self.manager_id}, type={self.type}, amount={self.amount})>"
