from decimal import Decimal, ROUND_HALF_UP

from fastapi import APIRouter, Depends

from loan_engine.api import deps
from loan_engine.resources.rates import TIER_LABELS
from loan_engine.schemas.simulation import (
    RateGridResponse,
    RateGridRow,
    RateQuoteDTO,
    SimulationInput,
    SimulationResponse,
)
from loan_engine.services.rates import DEFAULT_RATE_TABLE
from loan_engine.services.simulation import PricingParameters, run_simulation

router = APIRouter(tags=["simulations"])


@router.get("/rates", response_model=RateGridResponse, summary="Published rate grid")
async def read_rates() -> RateGridResponse:
    return RateGridResponse(
        tiers=[
            {
                "tier": rule.tier.value,
                "label": TIER_LABELS[rule.tier],
                "min_contribution_ratio": str(rule.min_contribution_ratio),
            }
            for rule in DEFAULT_RATE_TABLE.tier_rules
        ],
        rows=[
            RateGridRow(duration_years=years, rates={tier.value: rate for tier, rate in row.items()})
            for years, row in DEFAULT_RATE_TABLE.grid()
        ],
    )


@router.post("/simulations", response_model=SimulationResponse, summary="Simulate a mortgage")
async def create_simulation(
    payload: SimulationInput,
    pricing: PricingParameters = Depends(deps.get_pricing),
) -> SimulationResponse:
    quote = run_simulation(payload, DEFAULT_RATE_TABLE, pricing)
    rate = None
    if quote.rate_quote is not None:
        rate = RateQuoteDTO(
            tier=quote.rate_quote.tier,
            rate_percent=quote.rate_quote.rate_percent,
            duration_bracket=quote.rate_quote.duration_bracket,
            contribution_ratio=quote.contribution_ratio.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP),
        )
    return SimulationResponse(rate=rate, result=quote.result)
