from commission_engine.models.manager import Manager, Creator, ManagerType
from commission_engine.models.upload_batch import UploadBatch, BatchStatus, PipelineStage
from commission_engine.models.transaction import Transaction
from commission_engine.models.bonus import (
    Bonus,
    BonusType,
    BonusSource,
    MILESTONE_BONUS_TYPES,
    DOWNLINE_BONUS_TYPES,
    EXTRA_BONUS_TYPES,
)
from commission_engine.models.earnings import ManagerEarnings
from commission_engine.models.genealogy import GenealogyEdge, GenealogyLevel
from commission_engine.models.commission_config import CommissionConfig

__all__ = [
    "Manager",
    "Creator",
    "ManagerType",
    "UploadBatch",
    "BatchStatus",
    "PipelineStage",
    "Transaction",
    "Bonus",
    "BonusType",
    "BonusSource",
    "MILESTONE_BONUS_TYPES",
    "DOWNLINE_BONUS_TYPES",
    "EXTRA_BONUS_TYPES",
    "ManagerEarnings",
    "GenealogyEdge",
    "GenealogyLevel",
    "CommissionConfig",
]
