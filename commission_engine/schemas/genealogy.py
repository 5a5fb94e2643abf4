"""Pydantic schemas for genealogy administration."""
from datetime import datetime
from typing import List
from uuid import UUID

from pydantic import BaseModel

from commission_engine.models.genealogy import GenealogyLevel
from commission_engine.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema


class GenealogyEdgeCreate(BaseCreateSchema):
    team_manager_id: UUID
    live_manager_id: UUID
    level: GenealogyLevel


class GenealogyEdgeUpdate(BaseUpdateSchema):
    level: GenealogyLevel


class GenealogyEdgeResponse(BaseResponseSchema):
    id: UUID
    team_manager_id: UUID
    live_manager_id: UUID
    level: str
    created_at: datetime
    updated_at: datetime


class RecalculateResponse(BaseModel):
    periods: List[str]
    bonuses_written: int
