"""
Commission Configuration Service

Resolves the rate tables applying to a period: the newest CommissionConfig
with ``effective_from <= period`` overlaid on the built-in defaults.
Resolutions are cached in-process for COMMISSION_CONFIG_CACHE_SECONDS.
"""

import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from commission_engine.config import settings
from commission_engine.core.normalization import validate_period
from commission_engine.models.commission_config import CommissionConfig
from commission_engine.models.genealogy import GenealogyLevel
from commission_engine.models.manager import ManagerType
from commission_engine.services.commission_calculator import CommissionRates, DEFAULT_RATES

logger = logging.getLogger(__name__)

_MILESTONE_KINDS = {"N", "O", "P", "S"}
_TIERS = {t.value for t in ManagerType}
_LEVELS = {lvl.value for lvl in GenealogyLevel}

# period -> (expires_at, rates)
_rates_cache: Dict[str, Tuple[float, CommissionRates]] = {}


def invalidate_rates_cache() -> None:
    _rates_cache.clear()


class CommissionConfigError(ValueError):
    """Invalid commission configuration."""
    pass


def _check_amounts(section: str, values: dict, allowed: set) -> None:
    if not isinstance(values, dict):
        raise CommissionConfigError(f"'{section}' must be an object")
    for key, value in values.items():
        if key not in allowed:
            raise CommissionConfigError(f"Unknown key '{key}' in '{section}'")
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            raise CommissionConfigError(f"Invalid value for {section}.{key}: {value!r}")
        if amount < 0:
            raise CommissionConfigError(f"{section}.{key} cannot be negative")


def validate_overrides(overrides: dict) -> dict:
    """Check an override document; returns it unchanged when valid."""
    allowed = {"base_rates", "milestone_deductions", "milestone_payouts", "downline_rates"}
    unknown = set(overrides) - allowed
    if unknown:
        raise CommissionConfigError(f"Unknown override sections: {sorted(unknown)}")

    if "base_rates" in overrides:
        _check_amounts("base_rates", overrides["base_rates"], _TIERS)
    if "milestone_deductions" in overrides:
        _check_amounts("milestone_deductions", overrides["milestone_deductions"], _MILESTONE_KINDS)
    if "downline_rates" in overrides:
        _check_amounts("downline_rates", overrides["downline_rates"], _LEVELS)
    if "milestone_payouts" in overrides:
        payouts = overrides["milestone_payouts"]
        if not isinstance(payouts, dict):
            raise CommissionConfigError("'milestone_payouts' must be an object")
        for tier, table in payouts.items():
            if tier not in _TIERS:
                raise CommissionConfigError(f"Unknown manager type '{tier}' in 'milestone_payouts'")
            _check_amounts(f"milestone_payouts.{tier}", table, _MILESTONE_KINDS)
    return overrides


class CommissionConfigService:
    """Period-effective commission rate tables."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_rates_for_period(self, period: str) -> CommissionRates:
        period = validate_period(period)
        now = time.monotonic()

        cached = _rates_cache.get(period)
        if cached and cached[0] > now:
            return cached[1]

        result = await self.db.execute(
            select(CommissionConfig)
            .where(CommissionConfig.effective_from <= period)
            .order_by(CommissionConfig.effective_from.desc(), CommissionConfig.created_at.desc())
            .limit(1)
        )
        config = result.scalar_one_or_none()

        if config:
            rates = DEFAULT_RATES.with_overrides(config.overrides, name=config.name)
        else:
            rates = DEFAULT_RATES

        _rates_cache[period] = (now + settings.COMMISSION_CONFIG_CACHE_SECONDS, rates)
        logger.debug(f"Resolved commission rates for {period}: {rates.config_name}")
        return rates

    async def create_config(
        self,
        name: str,
        effective_from: str,
        overrides: dict,
        created_by: Optional[str] = None,
    ) -> CommissionConfig:
        config = CommissionConfig(
            name=name,
            effective_from=validate_period(effective_from),
            overrides=validate_overrides(overrides or {}),
            created_by=created_by,
        )
        self.db.add(config)
        await self.db.flush()
        invalidate_rates_cache()

        logger.info(f"Commission config '{name}' effective from {config.effective_from} created")
        return config

    async def list_configs(self) -> List[CommissionConfig]:
        result = await self.db.execute(
            select(CommissionConfig).order_by(CommissionConfig.effective_from.desc())
        )
        return list(result.scalars().all())
