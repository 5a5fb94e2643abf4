from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from commission_engine.database import get_db
from commission_engine.services.batch_processor import BatchProcessor


def get_batch_processor() -> BatchProcessor:
    """Processor used by the batch control endpoints; overridable in tests."""
    return BatchProcessor()


# Type aliases for cleaner endpoint signatures
DB = Annotated[AsyncSession, Depends(get_db)]
Processor = Annotated[BatchProcessor, Depends(get_batch_processor)]
