"""
Tests for services/commission_config_service.py
"""

from decimal import Decimal

import pytest

from commission_engine.services.batch_management_service import BatchManagementService
from commission_engine.services.batch_processor import BatchProcessor
from commission_engine.services.commission_config_service import (
    CommissionConfigError,
    CommissionConfigService,
    validate_overrides,
)
from commission_engine.services.commission_calculator import DEFAULT_RATES
from tests.factories import InMemoryRowSource, make_row


class TestRateResolution:

    async def test_defaults_without_config(self, db):
        rates = await CommissionConfigService(db).get_rates_for_period("202508")
        assert rates is DEFAULT_RATES

    async def test_newest_effective_config_applies(self, db):
        service = CommissionConfigService(db)
        await service.create_config("2025 rates", "202501", {"base_rates": {"LIVE": "0.32"}})
        await service.create_config("Autumn rates", "202509", {"base_rates": {"LIVE": "0.40"}})

        august = await service.get_rates_for_period("202508")
        october = await service.get_rates_for_period("202510")
        before = await service.get_rates_for_period("202412")

        assert august.config_name == "2025 rates"
        assert august.rate_for("LIVE") == Decimal("0.32")
        assert august.rate_for("TEAM") == Decimal("0.35")
        assert october.rate_for("LIVE") == Decimal("0.40")
        assert before is DEFAULT_RATES

    async def test_new_config_invalidates_cache(self, db):
        service = CommissionConfigService(db)
        assert (await service.get_rates_for_period("202508")) is DEFAULT_RATES

        await service.create_config("Raise", "202508", {"downline_rates": {"A": "0.12"}})

        rates = await service.get_rates_for_period("202508")
        assert rates.downline_rate("A") == Decimal("0.12")

    async def test_list_newest_first(self, db):
        service = CommissionConfigService(db)
        await service.create_config("Old", "202401", {})
        await service.create_config("New", "202501", {})

        assert [c.name for c in await service.list_configs()] == ["New", "Old"]

    async def test_create_rejects_bad_period(self, db):
        with pytest.raises(ValueError):
            await CommissionConfigService(db).create_config("Bad", "202513", {})


class TestValidateOverrides:

    @pytest.mark.parametrize("overrides", [
        {"bonus_rates": {}},
        {"base_rates": {"GOLD": "0.5"}},
        {"base_rates": {"LIVE": "-0.1"}},
        {"milestone_deductions": {"X": "10"}},
        {"milestone_payouts": {"LIVE": {"N": "abc"}}},
        {"milestone_payouts": ["LIVE"]},
        {"downline_rates": {"D": "0.01"}},
    ])
    def test_rejected(self, overrides):
        with pytest.raises(CommissionConfigError):
            validate_overrides(overrides)

    def test_partial_document_accepted(self):
        overrides = {"milestone_payouts": {"TEAM": {"S": "90"}}}
        assert validate_overrides(overrides) is overrides


class TestProcessingUsesPeriodRates:

    async def test_batch_uses_configured_rates(self, session_factory):
        async with session_factory() as db:
            await CommissionConfigService(db).create_config(
                "Promo", "202508",
                {"base_rates": {"LIVE": "0.40"}, "milestone_payouts": {"LIVE": {"N": "200"}}},
            )
            batch = await BatchManagementService(db).create_batch("202508", "aug.xlsx")
            await db.commit()

        source = InMemoryRowSource({"aug.xlsx": [make_row(1, gross="1300", milestones="N")]})
        await BatchProcessor(session_factory, source).process(batch.id)

        async with session_factory() as db:
            batch = await BatchManagementService(db).get_batch(batch.id)
            assert batch.total_commissions == Decimal("400.00")
            assert batch.total_bonuses == Decimal("200.00")
