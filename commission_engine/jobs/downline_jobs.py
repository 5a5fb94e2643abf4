"""
Downline Jobs

Monthly job that books downline commissions for the period that just closed
and refreshes its earnings.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from commission_engine.core.normalization import previous_period, validate_period
from commission_engine.models.upload_batch import UploadBatch

logger = logging.getLogger(__name__)


async def run_monthly_downline(
    period: Optional[str] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> Dict[str, Any]:
    """
    Propagate downline commissions for ``period`` (default: previous month)
    and refresh ManagerEarnings.
    """
    from commission_engine.database import async_session_factory
    from commission_engine.services.genealogy_service import GenealogyService

    period = validate_period(period) if period else previous_period()
    factory = session_factory or async_session_factory
    start_time = datetime.now(timezone.utc)
    logger.info(f"Starting downline propagation job for {period}...")

    async with factory() as session:
        result = await session.execute(
            select(UploadBatch.id).where(UploadBatch.period == period, UploadBatch.is_active == True)  # noqa: E712
        )
        if result.scalars().first() is None:
            logger.info(f"No active batch for {period}; downline job has nothing to do")
            return {"period": period, "status": "skipped", "bonuses_written": 0}

        outcome = await GenealogyService(session).recalculate([period])
        await session.commit()

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    status = "skipped" if outcome.skipped_periods else "completed"
    logger.info(
        f"Downline job for {period} {status}: {outcome.bonuses_written} bonuses in {duration:.2f}s"
    )
    return {
        "period": period,
        "status": status,
        "bonuses_written": outcome.bonuses_written,
        "duration_seconds": duration,
    }
