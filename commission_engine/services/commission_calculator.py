"""
Row Commission Calculator

Pure per-row computation, no I/O:

    deductions         = sum of deduction(kind) for every achieved milestone
    net_for_commission = max(0, gross - deductions)
    base_commission    = round2(net_for_commission * rate(manager_type))
    milestone bonus    = payout(manager_type, kind) if achieved else 0

All amounts are Decimal, rounded to 2 places half-up.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, FrozenSet, Iterable, Optional

from commission_engine.models.manager import ManagerType


TWO_PLACES = Decimal("0.01")
MILESTONE_ORDER = ("S", "N", "O", "P")


def round2(value: Decimal) -> Decimal:
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _decimal_map(values: Dict[str, object]) -> Dict[str, Decimal]:
    return {str(k): Decimal(str(v)) for k, v in values.items()}


@dataclass(frozen=True)
class CommissionRates:
    """Rate tables applying to one period."""
    base_rates: Dict[str, Decimal]
    milestone_deductions: Dict[str, Decimal]
    milestone_payouts: Dict[str, Dict[str, Decimal]]
    downline_rates: Dict[str, Decimal]
    config_name: str = field(default="defaults", compare=False)

    def rate_for(self, manager_type: str) -> Decimal:
        return self.base_rates[ManagerType(manager_type).value]

    def payout_for(self, manager_type: str, kind: str) -> Decimal:
        return self.milestone_payouts[ManagerType(manager_type).value][kind]

    def downline_rate(self, level: str) -> Decimal:
        return self.downline_rates[level]

    def with_overrides(self, overrides: Optional[dict], name: str = "custom") -> "CommissionRates":
        """Overlay a (partial) override dict on these rates."""
        if not overrides:
            return self

        base_rates = dict(self.base_rates)
        base_rates.update(_decimal_map(overrides.get("base_rates") or {}))

        deductions = dict(self.milestone_deductions)
        deductions.update(_decimal_map(overrides.get("milestone_deductions") or {}))

        payouts = {tier: dict(table) for tier, table in self.milestone_payouts.items()}
        for tier, table in (overrides.get("milestone_payouts") or {}).items():
            payouts.setdefault(tier, {}).update(_decimal_map(table))

        downline = dict(self.downline_rates)
        downline.update(_decimal_map(overrides.get("downline_rates") or {}))

        return replace(
            self,
            base_rates=base_rates,
            milestone_deductions=deductions,
            milestone_payouts=payouts,
            downline_rates=downline,
            config_name=name,
        )


DEFAULT_RATES = CommissionRates(
    base_rates={
        ManagerType.LIVE.value: Decimal("0.30"),
        ManagerType.TEAM.value: Decimal("0.35"),
    },
    milestone_deductions={
        "N": Decimal("300"),
        "O": Decimal("1000"),
        "P": Decimal("240"),
        "S": Decimal("150"),
    },
    milestone_payouts={
        ManagerType.LIVE.value: {
            "S": Decimal("75"),
            "N": Decimal("150"),
            "O": Decimal("400"),
            "P": Decimal("100"),
        },
        ManagerType.TEAM.value: {
            "S": Decimal("80"),
            "N": Decimal("165"),
            "O": Decimal("450"),
            "P": Decimal("120"),
        },
    },
    downline_rates={
        "A": Decimal("0.10"),
        "B": Decimal("0.075"),
        "C": Decimal("0.05"),
    },
)


@dataclass(frozen=True)
class RowCommission:
    deductions: Decimal
    net_for_commission: Decimal
    base_commission: Decimal
    milestone_bonuses: Dict[str, Decimal]
    achieved: FrozenSet[str] = frozenset()

    @property
    def milestone_total(self) -> Decimal:
        return sum(self.milestone_bonuses.values(), Decimal("0.00"))

    @property
    def achieved_codes(self) -> str:
        """Achieved kinds as a compact string, e.g. 'NP'."""
        return "".join(k for k in ("N", "O", "P", "S") if k in self.achieved)


def calculate_row(
    gross: Decimal,
    achieved: Iterable[str],
    manager_type: str,
    rates: CommissionRates = DEFAULT_RATES,
) -> RowCommission:
    """
    Compute deductions, net, base commission and milestone bonuses for one row.

    Raises:
        ValueError: gross is negative, or a milestone kind / manager type is unknown
    """
    gross = Decimal(gross)
    if gross < 0:
        raise ValueError(f"Gross amount cannot be negative: {gross}")

    achieved = set(achieved)
    unknown = achieved - set(MILESTONE_ORDER)
    if unknown:
        raise ValueError(f"Unknown milestone kinds: {sorted(unknown)}")

    deductions = sum(
        (rates.milestone_deductions[kind] for kind in achieved),
        Decimal("0"),
    )
    net = round2(max(Decimal("0"), gross - deductions))
    base = round2(net * rates.rate_for(manager_type))

    bonuses = {
        kind: round2(rates.payout_for(manager_type, kind)) if kind in achieved else Decimal("0.00")
        for kind in MILESTONE_ORDER
    }

    return RowCommission(
        deductions=round2(deductions),
        net_for_commission=net,
        base_commission=base,
        milestone_bonuses=bonuses,
        achieved=frozenset(achieved),
    )
