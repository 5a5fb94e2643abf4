"""API endpoints for genealogy administration."""
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from commission_engine.api.deps import DB
from commission_engine.schemas.genealogy import (
    GenealogyEdgeCreate,
    GenealogyEdgeUpdate,
    GenealogyEdgeResponse,
    RecalculateResponse,
)
from commission_engine.services.genealogy_service import (
    GenealogyService,
    GenealogyError,
    EdgeNotFoundError,
)

router = APIRouter()


@router.get("", response_model=List[GenealogyEdgeResponse])
async def list_edges(
    db: DB,
    team_manager_id: Optional[UUID] = None,
    live_manager_id: Optional[UUID] = None,
):
    """List genealogy edges, optionally filtered by team or live manager."""
    return await GenealogyService(db).list_edges(team_manager_id, live_manager_id)


@router.post("", response_model=GenealogyEdgeResponse, status_code=status.HTTP_201_CREATED)
async def create_edge(edge_in: GenealogyEdgeCreate, db: DB):
    """Create an edge and recalculate downline commissions for affected periods."""
    try:
        change = await GenealogyService(db).create_edge(
            edge_in.team_manager_id, edge_in.live_manager_id, edge_in.level.value
        )
    except GenealogyError as e:
        raise HTTPException(status_code=400, detail=str(e))

    await db.commit()
    await db.refresh(change.edge)
    return change.edge


@router.put("/{edge_id}", response_model=GenealogyEdgeResponse)
async def update_edge(edge_id: UUID, edge_in: GenealogyEdgeUpdate, db: DB):
    """Change an edge's level."""
    try:
        change = await GenealogyService(db).update_edge_level(edge_id, edge_in.level.value)
    except EdgeNotFoundError:
        raise HTTPException(status_code=404, detail="Genealogy edge not found")
    except GenealogyError as e:
        raise HTTPException(status_code=400, detail=str(e))

    await db.commit()
    await db.refresh(change.edge)
    return change.edge


@router.delete("/{edge_id}", response_model=RecalculateResponse)
async def delete_edge(edge_id: UUID, db: DB):
    """Delete an edge; its downline bonuses disappear on recalculation."""
    try:
        change = await GenealogyService(db).delete_edge(edge_id)
    except EdgeNotFoundError:
        raise HTTPException(status_code=404, detail="Genealogy edge not found")

    await db.commit()
    return RecalculateResponse(
        periods=change.recalculation.periods,
        bonuses_written=change.recalculation.bonuses_written,
    )


@router.post("/recalculate", response_model=RecalculateResponse)
async def recalculate(
    db: DB,
    period: str = Query(..., description="YYYYMM"),
):
    """Re-run downline propagation and the earnings refresh for a period."""
    try:
        outcome = await GenealogyService(db).recalculate([period])
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if outcome.skipped_periods:
        raise HTTPException(status_code=409, detail=f"A batch for {period} is still processing")

    await db.commit()
    return RecalculateResponse(periods=outcome.periods, bonuses_written=outcome.bonuses_written)
