"""
Tests for services/commission_calculator.py

Test categories:
  1. REFERENCE SCENARIOS (fixed expected results)
  2. NET / BASE PROPERTIES over gross values and milestone subsets
  3. ROUNDING
  4. RATE OVERRIDES
"""

from decimal import Decimal
from itertools import combinations

import pytest

from commission_engine.models.manager import ManagerType
from commission_engine.services.commission_calculator import (
    DEFAULT_RATES,
    calculate_row,
    round2,
)


ALL_KINDS = ("N", "O", "P", "S")
DEDUCTIONS = {"N": Decimal("300"), "O": Decimal("1000"), "P": Decimal("240"), "S": Decimal("150")}


def all_subsets():
    for size in range(len(ALL_KINDS) + 1):
        for subset in combinations(ALL_KINDS, size):
            yield set(subset)


# ===========================================================================
# 1. Reference scenarios
# ===========================================================================

class TestReferenceScenarios:

    def test_live_all_milestones(self):
        result = calculate_row(Decimal("2000"), {"N", "O", "P", "S"}, ManagerType.LIVE.value)
        assert result.deductions == Decimal("1690.00")
        assert result.net_for_commission == Decimal("310.00")
        assert result.base_commission == Decimal("93.00")
        assert result.milestone_bonuses == {
            "S": Decimal("75.00"),
            "N": Decimal("150.00"),
            "O": Decimal("400.00"),
            "P": Decimal("100.00"),
        }

    def test_team_n_and_p(self):
        result = calculate_row(Decimal("1500"), {"N", "P"}, ManagerType.TEAM.value)
        assert result.deductions == Decimal("540.00")
        assert result.net_for_commission == Decimal("960.00")
        assert result.base_commission == Decimal("336.00")
        assert result.milestone_bonuses["N"] == Decimal("165.00")
        assert result.milestone_bonuses["P"] == Decimal("120.00")
        assert result.milestone_bonuses["S"] == Decimal("0.00")
        assert result.milestone_bonuses["O"] == Decimal("0.00")
        assert result.achieved_codes == "NP"

    def test_live_no_milestones(self):
        result = calculate_row(Decimal("800"), set(), ManagerType.LIVE.value)
        assert result.deductions == Decimal("0.00")
        assert result.net_for_commission == Decimal("800.00")
        assert result.base_commission == Decimal("240.00")
        assert result.milestone_total == Decimal("0.00")
        assert result.achieved_codes == ""


# ===========================================================================
# 2. Properties
# ===========================================================================

class TestProperties:

    @pytest.mark.parametrize("gross", ["0", "1", "149.99", "300", "1689.99", "1690", "2500.50", "100000"])
    def test_net_is_gross_minus_deductions_floored_at_zero(self, gross):
        gross = Decimal(gross)
        for achieved in all_subsets():
            result = calculate_row(gross, achieved, ManagerType.LIVE.value)
            expected = max(Decimal("0"), gross - sum((DEDUCTIONS[k] for k in achieved), Decimal("0")))
            assert result.net_for_commission == round2(expected)

    @pytest.mark.parametrize("manager_type,rate", [
        (ManagerType.LIVE.value, Decimal("0.30")),
        (ManagerType.TEAM.value, Decimal("0.35")),
    ])
    def test_base_is_rounded_net_times_rate(self, manager_type, rate):
        for gross in ("0", "333.33", "1000", "1234.56", "99999.99"):
            for achieved in all_subsets():
                result = calculate_row(Decimal(gross), achieved, manager_type)
                assert result.base_commission == round2(result.net_for_commission * rate)

    @pytest.mark.parametrize("gross", ["0", "10", "5000"])
    def test_milestone_bonus_independent_of_gross(self, gross):
        for achieved in all_subsets():
            result = calculate_row(Decimal(gross), achieved, ManagerType.TEAM.value)
            for kind in ALL_KINDS:
                expected = DEFAULT_RATES.milestone_payouts["TEAM"][kind] if kind in achieved else Decimal("0")
                assert result.milestone_bonuses[kind] == expected

    def test_negative_gross_rejected(self):
        with pytest.raises(ValueError):
            calculate_row(Decimal("-0.01"), set(), ManagerType.LIVE.value)

    def test_unknown_milestone_rejected(self):
        with pytest.raises(ValueError):
            calculate_row(Decimal("100"), {"X"}, ManagerType.LIVE.value)

    def test_unknown_manager_type_rejected(self):
        with pytest.raises(ValueError):
            calculate_row(Decimal("100"), set(), "REGIONAL")


# ===========================================================================
# 3. Rounding
# ===========================================================================

class TestRounding:

    def test_half_up(self):
        # 10.05 * 0.30 = 3.015
        result = calculate_row(Decimal("10.05"), set(), ManagerType.LIVE.value)
        assert result.base_commission == Decimal("3.02")

    def test_round2_helper(self):
        assert round2(Decimal("2.345")) == Decimal("2.35")
        assert round2(Decimal("2.344")) == Decimal("2.34")
        assert str(round2(Decimal("7"))) == "7.00"


# ===========================================================================
# 4. Rate overrides
# ===========================================================================

class TestRateOverrides:

    def test_partial_override_keeps_defaults(self):
        rates = DEFAULT_RATES.with_overrides({"base_rates": {"LIVE": "0.25"}}, name="promo")
        assert rates.config_name == "promo"
        assert rates.rate_for("LIVE") == Decimal("0.25")
        assert rates.rate_for("TEAM") == Decimal("0.35")
        assert rates.downline_rate("B") == Decimal("0.075")

    def test_override_payout_for_one_tier(self):
        rates = DEFAULT_RATES.with_overrides({"milestone_payouts": {"TEAM": {"S": "90"}}})
        assert rates.payout_for("TEAM", "S") == Decimal("90")
        assert rates.payout_for("TEAM", "N") == Decimal("165")
        assert rates.payout_for("LIVE", "S") == Decimal("75")

    def test_overrides_do_not_mutate_defaults(self):
        DEFAULT_RATES.with_overrides({"milestone_deductions": {"N": "500"}})
        assert DEFAULT_RATES.milestone_deductions["N"] == Decimal("300")

    def test_overridden_deduction_changes_net(self):
        rates = DEFAULT_RATES.with_overrides({"milestone_deductions": {"N": "500"}})
        result = calculate_row(Decimal("1000"), {"N"}, "LIVE", rates)
        assert result.net_for_commission == Decimal("500.00")
        assert result.base_commission == Decimal("150.00")

    def test_empty_override_returns_same_rates(self):
        assert DEFAULT_RATES.with_overrides({}) is DEFAULT_RATES
