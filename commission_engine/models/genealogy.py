"""Manager hierarchy edges used for downline commissions."""
import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import String, DateTime, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from commission_engine.database import Base
from commission_engine.db_types import UUIDType


class GenealogyLevel(str, Enum):
    A = "A"
    B = "B"
    C = "C"


class GenealogyEdge(Base):
    """
    Directed edge: ``team_manager_id`` receives a percentage of
    ``live_manager_id``'s base commission at ``level``.
    """
    __tablename__ = "genealogy_edges"
    __table_args__ = (
        UniqueConstraint("team_manager_id", "live_manager_id", name="uq_genealogy_team_live"),
        CheckConstraint("team_manager_id <> live_manager_id", name="ck_genealogy_no_self_edge"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    team_manager_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("managers.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    live_manager_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("managers.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    level: Mapped[str] = mapped_column(String(1), nullable=False, comment="A, B, C")

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
        return f"<GenealogyEdge(team={self.team_manager_id}, live={self.live_manager_id}, level={self.level})>"
