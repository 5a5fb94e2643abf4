# Services module
from commission_engine.services.commission_calculator import (
    CommissionRates,
    DEFAULT_RATES,
    RowCommission,
    calculate_row,
    round2,
)
from commission_engine.services.commission_config_service import CommissionConfigService
from commission_engine.services.identity_resolver import IdentityCache, IdentityKind, IdentityResolver
from commission_engine.services.batch_writer import BatchWritePipeline, ChunkCommitError, ProgressEvent
from commission_engine.services.supersession_service import SupersessionService, SupersessionError
from commission_engine.services.earnings_aggregator import EarningsAggregator
from commission_engine.services.downline_propagator import DownlinePropagator
from commission_engine.services.batch_processor import BatchProcessor, BatchNotFoundError, StartResult
from commission_engine.services.batch_management_service import BatchManagementService, BatchBusyError
from commission_engine.services.genealogy_service import GenealogyService, GenealogyError

__all__ = [
    "CommissionRates",
    "DEFAULT_RATES",
    "RowCommission",
    "calculate_row",
    "round2",
    "CommissionConfigService",
    "IdentityCache",
    "IdentityKind",
    "IdentityResolver",
    "BatchWritePipeline",
    "ChunkCommitError",
    "ProgressEvent",
    "SupersessionService",
    "SupersessionError",
    "EarningsAggregator",
    "DownlinePropagator",
    "BatchProcessor",
    "BatchNotFoundError",
    "StartResult",
    "BatchManagementService",
    "BatchBusyError",
    "GenealogyService",
    "GenealogyError",
]
