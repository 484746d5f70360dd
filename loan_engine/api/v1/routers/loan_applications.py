from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status

from loan_engine.api import deps
from loan_engine.schemas.loan import (
    EscrowEvaluationResponse,
    EscrowUpdateRequest,
    LoanApplicationCreate,
    LoanApplicationDTO,
    LoanStatusHistoryDTO,
    LoanTransitionRequest,
)
from loan_engine.services.loan_applications import LoanApplicationService
from loan_engine.services.loan_lifecycle import LoanLifecycle
from loan_engine.services.loan_store import LoanStore

router = APIRouter(prefix="/loan-applications", tags=["loan-applications"])


@router.post(
    "",
    response_model=LoanApplicationDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Create a draft loan application from a simulation",
)
async def create_loan_application(
    payload: LoanApplicationCreate,
    service: LoanApplicationService = Depends(deps.get_loan_application_service),
) -> LoanApplicationDTO:
    loan = await service.create_from_simulation(
        payload.borrower_id,
        payload.simulation,
        payload.project_type,
        payload.has_coborrower,
    )
    return LoanApplicationDTO.model_validate(loan)


@router.get("/{loan_id}", response_model=LoanApplicationDTO, summary="Get a loan application")
async def get_loan_application(
    loan_id: UUID,
    service: LoanApplicationService = Depends(deps.get_loan_application_service),
) -> LoanApplicationDTO:
    return LoanApplicationDTO.model_validate(await service.get(loan_id))


@router.post("/{loan_id}/submit", response_model=LoanApplicationDTO, summary="Submit a draft application")
async def submit_loan_application(
    loan_id: UUID,
    lifecycle: LoanLifecycle = Depends(deps.get_lifecycle),
    actor_id: Optional[UUID] = Depends(deps.get_actor_id),
) -> LoanApplicationDTO:
    loan = await lifecycle.submit(loan_id, actor_id=actor_id)
    return LoanApplicationDTO.model_validate(loan)


@router.post(
    "/{loan_id}/transitions",
    response_model=LoanApplicationDTO,
    summary="Move a loan application to another status",
)
async def transition_loan_application(
    loan_id: UUID,
    payload: LoanTransitionRequest,
    lifecycle: LoanLifecycle = Depends(deps.get_lifecycle),
    actor_id: Optional[UUID] = Depends(deps.get_actor_id),
) -> LoanApplicationDTO:
    loan = await lifecycle.transition(
        loan_id,
        payload.target_status,
        actor_id=actor_id,
        reason=payload.reason,
        next_action=payload.next_action,
    )
    return LoanApplicationDTO.model_validate(loan)


@router.get(
    "/{loan_id}/history",
    response_model=list[LoanStatusHistoryDTO],
    summary="Status history of a loan application",
)
async def list_loan_history(
    loan_id: UUID,
    store: LoanStore = Depends(deps.get_loan_store),
) -> list[LoanStatusHistoryDTO]:
    await store.get_loan(loan_id)
    return [LoanStatusHistoryDTO.model_validate(entry) for entry in await store.list_history(loan_id)]


@router.put(
    "/{loan_id}/escrow",
    response_model=EscrowEvaluationResponse,
    summary="Record escrow amounts for a loan application",
)
async def update_escrow(
    loan_id: UUID,
    payload: EscrowUpdateRequest,
    lifecycle: LoanLifecycle = Depends(deps.get_lifecycle),
    store: LoanStore = Depends(deps.get_loan_store),
) -> EscrowEvaluationResponse:
    evaluation = await lifecycle.record_escrow(loan_id, payload.amount_expected, payload.amount_received)
    loan = await store.get_loan(loan_id)
    return EscrowEvaluationResponse(
        status=evaluation.status,
        fires_completion_event=evaluation.fires_completion_event,
        over_funded=evaluation.over_funded,
        excess_amount=evaluation.excess_amount,
        loan=LoanApplicationDTO.model_validate(loan),
    )
