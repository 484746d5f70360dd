from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class RateTier(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    STANDARD = "standard"


class TaegMethod(str, Enum):
    ITERATIVE = "iterative"
    SIMPLIFIED = "simplified"


class SimulationInput(BaseModel):
    """Raw simulator fields. Bounds are checked by the calculator, not here,
    so in-progress input still yields a result flagged invalid."""

    property_price: Decimal = Decimal("0")
    notary_fees: Decimal = Decimal("0")
    agency_fees: Decimal = Decimal("0")
    works_amount: Decimal = Decimal("0")
    down_payment: Decimal = Decimal("0")
    duration_years: int

    @property
    def total_project_cost(self) -> Decimal:
        return self.property_price + self.notary_fees + self.agency_fees + self.works_amount


class SimulationResult(BaseModel):
    model_config = ConfigDict(json_encoders={Decimal: lambda value: str(value)})

    loan_amount: Decimal = Decimal("0")
    duration_months: int = 0
    rate_percent: Decimal = Decimal("0")
    monthly_credit: Decimal = Decimal("0")
    monthly_insurance: Decimal = Decimal("0")
    monthly_total: Decimal = Decimal("0")
    total_interest: Decimal = Decimal("0")
    total_insurance: Decimal = Decimal("0")
    bank_fees: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")
    taeg_estimate: Decimal = Decimal("0")
    is_valid: bool = False
    invalid_reasons: list[str] = Field(default_factory=list)


class RateQuoteDTO(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    tier: RateTier
    rate_percent: Decimal
    duration_bracket: int
    contribution_ratio: Decimal


class SimulationResponse(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    rate: RateQuoteDTO | None
    result: SimulationResult


class RateGridRow(BaseModel):
    duration_years: int
    rates: dict[str, Decimal]


class RateGridResponse(BaseModel):
    tiers: list[dict]
    rows: list[RateGridRow]
