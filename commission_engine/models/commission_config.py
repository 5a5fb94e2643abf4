"""Period-effective commission configuration."""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from commission_engine.database import Base
from commission_engine.db_types import UUIDType, JSONType


class CommissionConfig(Base):
    """
    Rate overrides applying from ``effective_from`` onwards.

    ``overrides`` holds any subset of:
        {"base_rates": {"LIVE": "0.30", "TEAM": "0.35"},
         "milestone_deductions": {"N": "300", ...},
         "milestone_payouts": {"LIVE": {"S": "75", ...}, "TEAM": {...}},
         "downline_rates": {"A": "0.10", "B": "0.075", "C": "0.05"}}
    Missing keys fall back to the built-in defaults.
    """
    __tablename__ = "commission_configs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    effective_from: Mapped[str] = mapped_column(
        String(6),
        nullable=False,
        index=True,
        comment="YYYYMM"
    )
    overrides: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<CommissionConfig(name={self.name}, effective_from={self.effective_from})>"
