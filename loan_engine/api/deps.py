from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from loan_engine.db.session import get_db
from loan_engine.services.documents import DocumentService
from loan_engine.services.loan_applications import LoanApplicationService
from loan_engine.services.loan_lifecycle import LoanLifecycle
from loan_engine.services.loan_store import LoanStore, SqlAlchemyLoanStore
from loan_engine.services.notifications import Notifier, get_notifier as build_notifier
from loan_engine.services.simulation import PricingParameters, pricing_from_settings


async def get_loan_store(db: AsyncSession = Depends(get_db)) -> LoanStore:
    return SqlAlchemyLoanStore(db)


def get_notifier() -> Notifier:
    return build_notifier()


def get_pricing() -> PricingParameters:
    return pricing_from_settings()


def get_lifecycle(
    store: LoanStore = Depends(get_loan_store),
    notifier: Notifier = Depends(get_notifier),
) -> LoanLifecycle:
    return LoanLifecycle(store, notifier)


def get_loan_application_service(
    store: LoanStore = Depends(get_loan_store),
    pricing: PricingParameters = Depends(get_pricing),
) -> LoanApplicationService:
    return LoanApplicationService(store, pricing=pricing)


def get_document_service(
    store: LoanStore = Depends(get_loan_store),
    lifecycle: LoanLifecycle = Depends(get_lifecycle),
) -> DocumentService:
    return DocumentService(store, lifecycle)


def get_actor_id(x_actor_id: Optional[str] = Header(default=None)) -> Optional[UUID]:
    if not x_actor_id:
        return None
    try:
        return UUID(x_actor_id)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "invalid_actor", "message": "X-Actor-ID must be a UUID"},
        ) from exc
