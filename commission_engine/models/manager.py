"""Manager and Creator identity models.

Identities are created on first sighting during batch processing and are keyed
by a normalized handle (see ``commission_engine.core.normalization``).
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from commission_engine.database import Base
from commission_engine.db_types import UUIDType, TotalMoneyType


class ManagerType(str, Enum):
    """Manager tier. Determines commission rate and milestone payout table."""
    LIVE = "LIVE"
    TEAM = "TEAM"


class Manager(Base):
    """
    Manager receiving commissions on creator revenue.

    The commission rate is derived from ``type`` and the period's commission
    configuration; it is never stored on the manager.
    """
    __tablename__ = "managers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    handle: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
        comment="Normalized handle"
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ManagerType.LIVE.value,
        comment="LIVE, TEAM"
    )

    lifetime_total: Mapped[Decimal] = mapped_column(
        TotalMoneyType,
        default=Decimal("0.00"),
        nullable=False,
        comment="Sum of total earnings across all periods"
    )

    created_by_batch_id: Mapped[Optional[uuid.UUID]] = mapped_column(
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

    def __repr__(self) -> str:
        return f"<Manager(handle={self.handle}, type={self.type})>"


class Creator(Base):
    """Creator whose revenue generates commissions. Carries no financial rate."""
    __tablename__ = "creators"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    handle: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
        comment="Normalized handle"
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    created_by_batch_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Creator(handle={self.handle})>"
