from fastapi import APIRouter

from commission_engine.api.v1.endpoints import batches, genealogy, earnings

api_router = APIRouter(prefix="/api/v1")

# ==================== Upload Batches ====================
api_router.include_router(
    batches.router,
    prefix="/batches",
    tags=["Upload Batches"]
)

# ==================== Genealogy ====================
api_router.include_router(
    genealogy.router,
    prefix="/genealogy",
    tags=["Genealogy"]
)

# ==================== Earnings ====================
api_router.include_router(
    earnings.router,
    prefix="/earnings",
    tags=["Earnings"]
)
