"""Typed row contract consumed by the batch write pipeline."""
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from commission_engine.core.normalization import parse_amount
from commission_engine.models.manager import ManagerType


# Cell value that marks a milestone as achieved
MILESTONE_TRIGGERS = {
    "N": Decimal("300"),
    "O": Decimal("1000"),
    "P": Decimal("240"),
    "S": Decimal("150"),
}

MILESTONE_KINDS = ("N", "O", "P", "S")


def milestone_achieved(raw: Any, trigger: Decimal) -> bool:
    """
    True iff a milestone cell equals its trigger value.

    Numeric cells compare numerically (300.0 == 300); text cells must be the
    trigger digits once trimmed ("300", not "300.00" or "yes").
    """
    if raw is None or isinstance(raw, bool):
        return False
    if isinstance(raw, (int, float, Decimal)):
        try:
            return Decimal(str(raw)) == trigger
        except InvalidOperation:
            return False
    return str(raw).strip() == str(trigger)


class CommissionRow(BaseModel):
    """One spreadsheet row after cell normalization."""
    model_config = ConfigDict(frozen=True)

    row_index: int = Field(..., ge=0)
    period: Optional[str] = None
    manager_label: Optional[str] = None
    manager_type: ManagerType = ManagerType.TEAM
    creator_label: Optional[str] = None
    creator_name: Optional[str] = None
    gross_amount: Decimal = Decimal("0")

    milestone_n: bool = False
    milestone_o: bool = False
    milestone_p: bool = False
    milestone_s: bool = False

    @field_validator("gross_amount", mode="before")
    @classmethod
    def parse_gross(cls, v):
        return parse_amount(v)

    @field_validator("manager_label", "creator_label", "creator_name", "period", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @property
    def achieved(self) -> frozenset:
        flags = {
            "N": self.milestone_n,
            "O": self.milestone_o,
            "P": self.milestone_p,
            "S": self.milestone_s,
        }
        return frozenset(kind for kind, hit in flags.items() if hit)
