from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from loan_engine.core.exceptions import InvalidInputError
from loan_engine.models.loan_application import LoanApplication
from loan_engine.schemas.loan import EscrowStatus, LoanStatus, ProjectType
from loan_engine.schemas.simulation import SimulationInput
from loan_engine.services.loan_status import default_next_action
from loan_engine.services.loan_store import LoanStore
from loan_engine.services.rates import DEFAULT_RATE_TABLE, RateTable
from loan_engine.services.simulation import PricingParameters, pricing_from_settings, run_simulation

logger = logging.getLogger(__name__)


class LoanApplicationService:
    def __init__(
        self,
        store: LoanStore,
        *,
        table: RateTable = DEFAULT_RATE_TABLE,
        pricing: PricingParameters | None = None,
    ) -> None:
        self._store = store
        self._table = table
        self._pricing = pricing or pricing_from_settings()

    async def get(self, loan_id) -> LoanApplication:
        return await self._store.get_loan(loan_id)

    async def create_from_simulation(
        self,
        borrower_id,
        simulation_input: SimulationInput,
        project_type: ProjectType,
        has_coborrower: bool = False,
    ) -> LoanApplication:
        """Create a draft application with the simulation figures frozen on it."""
        project_type = ProjectType(project_type)
        quote = run_simulation(simulation_input, self._table, self._pricing)
        result = quote.result
        if quote.rate_quote is None or not result.is_valid:
            raise InvalidInputError(
                "Simulation is not valid",
                details={"invalid_reasons": result.invalid_reasons},
            )

        now = datetime.now(timezone.utc)
        loan = LoanApplication(
            id=uuid.uuid4(),
            borrower_id=borrower_id,
            status=LoanStatus.DRAFT.value,
            version=1,
            project_type=project_type.value,
            has_coborrower=has_coborrower,
            property_price=simulation_input.property_price,
            notary_fees=simulation_input.notary_fees,
            agency_fees=simulation_input.agency_fees,
            works_amount=simulation_input.works_amount,
            down_payment=simulation_input.down_payment,
            duration_years=simulation_input.duration_years,
            rate_tier=quote.rate_quote.tier.value,
            rate_percent=result.rate_percent,
            amount=result.loan_amount,
            monthly_credit=result.monthly_credit,
            monthly_insurance=result.monthly_insurance,
            monthly_total=result.monthly_total,
            total_interest=result.total_interest,
            total_insurance=result.total_insurance,
            bank_fees=result.bank_fees,
            total_cost=result.total_cost,
            taeg_estimate=result.taeg_estimate,
            documents_complete=False,
            sequestre_status=EscrowStatus.NONE.value,
            sequestre_amount_expected=Decimal("0"),
            sequestre_amount_received=Decimal("0"),
            sequestre_over_funded=False,
            sequestre_completion_signaled_at=None,
            next_action=default_next_action(LoanStatus.DRAFT),
            status_changed_at=now,
        )
        loan = await self._store.add_loan(loan)
        logger.info(
            "Loan application created",
            extra={
                "loan_id": str(loan.id),
                "borrower_id": str(borrower_id),
                "project_type": project_type.value,
                "rate_tier": loan.rate_tier,
                "amount": str(loan.amount),
            },
        )
        return loan
