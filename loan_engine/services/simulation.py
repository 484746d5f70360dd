from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP

from loan_engine.core.exceptions import InvalidInputError
from loan_engine.core.settings import Settings, get_settings
from loan_engine.schemas.simulation import SimulationInput, SimulationResult, TaegMethod
from loan_engine.services.rates import (
    DEFAULT_RATE_TABLE,
    RateQuote,
    RateTable,
    contribution_ratio,
    resolve_rate,
)

logger = logging.getLogger(__name__)

TWOPLACES = Decimal("0.01")
MONTHS_PER_YEAR = 12
# Legacy portal display formula: nominal rate + insurance + this margin.
SIMPLIFIED_TAEG_MARGIN = Decimal("0.2")
TAEG_TOLERANCE = Decimal("1e-10")
TAEG_MAX_ITERATIONS = 200
# Largest amount a Numeric(14, 2) column holds.
MAX_AMOUNT = Decimal("999999999999.99")
AMOUNT_FIELDS = ("property_price", "notary_fees", "agency_fees", "works_amount", "down_payment")


@dataclass(frozen=True)
class BankFeeSchedule:
    fixed_fee: Decimal = Decimal("500")
    percent_of_principal: Decimal = Decimal("1.2")

    def fees_for(self, loan_amount: Decimal) -> Decimal:
        return self.fixed_fee + loan_amount * self.percent_of_principal / Decimal("100")


@dataclass(frozen=True)
class PricingParameters:
    insurance_annual_rate_percent: Decimal = Decimal("0.31")
    bank_fees: BankFeeSchedule = field(default_factory=BankFeeSchedule)
    taeg_method: TaegMethod = TaegMethod.ITERATIVE
    min_duration_years: int = 5
    max_duration_years: int = 30
    max_amount: Decimal = MAX_AMOUNT


@dataclass(frozen=True)
class SimulationQuote:
    rate_quote: RateQuote | None
    contribution_ratio: Decimal
    result: SimulationResult


def pricing_from_settings(config: Settings | None = None) -> PricingParameters:
    config = config or get_settings()
    return PricingParameters(
        insurance_annual_rate_percent=Decimal(config.insurance_annual_rate_percent),
        bank_fees=BankFeeSchedule(
            fixed_fee=Decimal(config.origination_fee),
            percent_of_principal=Decimal(config.guarantee_rate_percent),
        ),
        taeg_method=TaegMethod(config.taeg_method),
        min_duration_years=config.min_duration_years,
        max_duration_years=config.max_duration_years,
    )


def _money(value: Decimal) -> Decimal:
    return value.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def _monthly_rate(annual_rate_percent: Decimal) -> Decimal:
    return annual_rate_percent / Decimal("1200")


def _annuity_payment(principal: Decimal, annual_rate_percent: Decimal, term_months: int) -> Decimal:
    rate = _monthly_rate(annual_rate_percent)
    if rate == 0:
        return principal / Decimal(term_months)
    factor = (Decimal("1") + rate) ** term_months
    return principal * rate * factor / (factor - Decimal("1"))


def _present_value(payment: Decimal, monthly_rate: Decimal, term_months: int) -> Decimal:
    if monthly_rate == 0:
        return payment * Decimal(term_months)
    return payment * (Decimal("1") - (Decimal("1") + monthly_rate) ** -term_months) / monthly_rate


def effective_annual_rate(monthly_payment: Decimal, principal: Decimal, term_months: int) -> Decimal:
    """Actuarial annual rate, in percent, of `term_months` payments repaying `principal`.

    Bisects on the monthly rate r where the annuity present value equals the
    principal, then annualizes as (1 + r)^12 - 1.
    """
    if principal <= 0 or term_months <= 0:
        raise InvalidInputError(
            "Effective rate needs a positive principal and term",
            details={"principal": str(principal), "term_months": term_months},
        )
    if monthly_payment * Decimal(term_months) <= principal:
        return Decimal("0")

    low = Decimal("0")
    high = Decimal("1")
    while _present_value(monthly_payment, high, term_months) > principal:
        high *= 2
    for _ in range(TAEG_MAX_ITERATIONS):
        mid = (low + high) / 2
        if _present_value(monthly_payment, mid, term_months) > principal:
            low = mid
        else:
            high = mid
        if high - low < TAEG_TOLERANCE:
            break
    monthly = (low + high) / 2
    return ((Decimal("1") + monthly) ** MONTHS_PER_YEAR - Decimal("1")) * Decimal("100")


def _oversized_amounts(simulation_input: SimulationInput, pricing: PricingParameters) -> list[str]:
    reasons = [f"{name}_too_large" for name in AMOUNT_FIELDS if getattr(simulation_input, name) > pricing.max_amount]
    if not reasons and simulation_input.total_project_cost > pricing.max_amount:
        reasons.append("project_cost_too_large")
    return reasons


def _invalid_reasons(
    simulation_input: SimulationInput, rate_percent: Decimal, pricing: PricingParameters
) -> list[str]:
    reasons: list[str] = []
    for name in AMOUNT_FIELDS:
        if getattr(simulation_input, name) < 0:
            reasons.append(f"{name}_negative")
    reasons.extend(_oversized_amounts(simulation_input, pricing))
    if simulation_input.property_price == 0:
        reasons.append("property_price_missing")
    if rate_percent < 0:
        reasons.append("rate_negative")
    if not pricing.min_duration_years <= simulation_input.duration_years <= pricing.max_duration_years:
        reasons.append("duration_out_of_range")
    if simulation_input.down_payment > simulation_input.total_project_cost:
        reasons.append("down_payment_exceeds_project_cost")
    if simulation_input.total_project_cost - simulation_input.down_payment <= 0:
        reasons.append("loan_amount_not_positive")
    return reasons


def simulate(
    simulation_input: SimulationInput,
    rate_percent: Decimal,
    pricing: PricingParameters | None = None,
) -> SimulationResult:
    pricing = pricing or PricingParameters()
    rate_percent = Decimal(rate_percent)
    reasons = _invalid_reasons(simulation_input, rate_percent, pricing)
    if reasons:
        return SimulationResult(is_valid=False, invalid_reasons=reasons)

    loan_amount = simulation_input.total_project_cost - simulation_input.down_payment
    term_months = simulation_input.duration_years * MONTHS_PER_YEAR

    monthly_credit = _annuity_payment(loan_amount, rate_percent, term_months)
    monthly_insurance = loan_amount * pricing.insurance_annual_rate_percent / Decimal("100") / Decimal(MONTHS_PER_YEAR)
    monthly_total = monthly_credit + monthly_insurance
    total_interest = monthly_credit * Decimal(term_months) - loan_amount
    total_insurance = monthly_insurance * Decimal(term_months)
    bank_fees = pricing.bank_fees.fees_for(loan_amount)
    total_cost = total_interest + total_insurance + bank_fees

    if pricing.taeg_method == TaegMethod.SIMPLIFIED:
        taeg = rate_percent + pricing.insurance_annual_rate_percent + SIMPLIFIED_TAEG_MARGIN
    else:
        taeg = effective_annual_rate(monthly_total, loan_amount, term_months)

    return SimulationResult(
        loan_amount=_money(loan_amount),
        duration_months=term_months,
        rate_percent=_money(rate_percent),
        monthly_credit=_money(monthly_credit),
        monthly_insurance=_money(monthly_insurance),
        monthly_total=_money(monthly_total),
        total_interest=_money(total_interest),
        total_insurance=_money(total_insurance),
        bank_fees=_money(bank_fees),
        total_cost=_money(total_cost),
        taeg_estimate=_money(taeg),
        is_valid=True,
    )


def run_simulation(
    simulation_input: SimulationInput,
    table: RateTable = DEFAULT_RATE_TABLE,
    pricing: PricingParameters | None = None,
) -> SimulationQuote:
    """Resolve the rate from the input's contribution ratio, then simulate.

    Bad input never raises here: the result is flagged invalid instead.
    """
    pricing = pricing or PricingParameters()
    if _oversized_amounts(simulation_input, pricing):
        return SimulationQuote(
            rate_quote=None,
            contribution_ratio=Decimal("0"),
            result=simulate(simulation_input, Decimal("0"), pricing),
        )
    ratio = contribution_ratio(simulation_input.down_payment, simulation_input.total_project_cost)
    try:
        quote = resolve_rate(simulation_input.duration_years, max(ratio, Decimal("0")), table)
    except InvalidInputError as exc:
        logger.debug("Rate resolution skipped", extra={"reason": exc.message, "details": exc.details})
        reasons = simulate(simulation_input, Decimal("0"), pricing).invalid_reasons
        result = SimulationResult(is_valid=False, invalid_reasons=reasons or ["rate_unavailable"])
        return SimulationQuote(rate_quote=None, contribution_ratio=ratio, result=result)
    return SimulationQuote(
        rate_quote=quote,
        contribution_ratio=ratio,
        result=simulate(simulation_input, quote.rate_percent, pricing),
    )
