from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loan_engine.core.exceptions import ConcurrencyConflictError, DocumentNotFoundError, LoanNotFoundError
from loan_engine.models.loan_application import LoanApplication
from loan_engine.models.loan_document import LoanDocument
from loan_engine.models.loan_status_history import LoanStatusHistory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusHistoryEntry:
    old_status: str | None
    new_status: str
    trigger: str
    actor_id: Any = None
    reason: str | None = None
    next_action: str | None = None

    def to_model(self, loan_id) -> LoanStatusHistory:
        return LoanStatusHistory(
            id=uuid.uuid4(),
            loan_application_id=loan_id,
            old_status=self.old_status,
            new_status=self.new_status,
            trigger=self.trigger,
            actor_id=self.actor_id,
            reason=self.reason,
            next_action=self.next_action,
        )


class LoanStore(Protocol):
    async def get_loan(self, loan_id) -> LoanApplication: ...

    async def add_loan(self, loan: LoanApplication) -> LoanApplication: ...

    async def compare_and_set(
        self,
        loan_id,
        *,
        expected_version: int,
        expected_status: str,
        changes: dict[str, Any],
        history: StatusHistoryEntry | None = None,
    ) -> LoanApplication: ...

    async def list_documents(self, loan_id) -> list[LoanDocument]: ...

    async def get_document(self, loan_id, document_id) -> LoanDocument: ...

    async def add_document(self, document: LoanDocument) -> LoanDocument: ...

    async def update_document(self, document: LoanDocument, changes: dict[str, Any]) -> LoanDocument: ...

    async def list_history(self, loan_id) -> list[LoanStatusHistory]: ...


class SqlAlchemyLoanStore:
    """LoanStore over an AsyncSession.

    Status writes are a single ``UPDATE ... WHERE version = :v AND status = :s``
    so a concurrent writer loses with a conflict instead of overwriting.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_loan(self, loan_id) -> LoanApplication:
        stmt = (
            select(LoanApplication)
            .where(LoanApplication.id == loan_id)
            .execution_options(populate_existing=True)
        )
        loan = (await self.db.execute(stmt)).scalar_one_or_none()
        if loan is None:
            raise LoanNotFoundError(loan_id)
        return loan

    async def add_loan(self, loan: LoanApplication) -> LoanApplication:
        self.db.add(loan)
        await self._commit()
        await self.db.refresh(loan)
        return loan

    async def compare_and_set(
        self,
        loan_id,
        *,
        expected_version: int,
        expected_status: str,
        changes: dict[str, Any],
        history: StatusHistoryEntry | None = None,
    ) -> LoanApplication:
        stmt = (
            update(LoanApplication)
            .where(
                LoanApplication.id == loan_id,
                LoanApplication.version == expected_version,
                LoanApplication.status == expected_status,
            )
            .values(**changes, version=LoanApplication.version + 1, updated_at=func.now())
            .returning(LoanApplication)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        try:
            loan = (await self.db.execute(stmt)).scalar_one_or_none()
            if loan is None:
                await self.db.rollback()
                raise ConcurrencyConflictError(
                    loan_id,
                    expected_status=expected_status,
                    expected_version=expected_version,
                )
            if history is not None:
                self.db.add(history.to_model(loan_id))
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception("Loan update failed", extra={"loan_id": str(loan_id)})
            raise
        return loan

    async def list_documents(self, loan_id) -> list[LoanDocument]:
        stmt = (
            select(LoanDocument)
            .where(LoanDocument.loan_application_id == loan_id)
            .order_by(LoanDocument.uploaded_at.asc())
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def get_document(self, loan_id, document_id) -> LoanDocument:
        stmt = select(LoanDocument).where(
            LoanDocument.id == document_id,
            LoanDocument.loan_application_id == loan_id,
        )
        document = (await self.db.execute(stmt)).scalar_one_or_none()
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    async def add_document(self, document: LoanDocument) -> LoanDocument:
        self.db.add(document)
        await self._commit()
        await self.db.refresh(document)
        return document

    async def update_document(self, document: LoanDocument, changes: dict[str, Any]) -> LoanDocument:
        for key, value in changes.items():
            setattr(document, key, value)
        self.db.add(document)
        await self._commit()
        await self.db.refresh(document)
        return document

    async def list_history(self, loan_id) -> list[LoanStatusHistory]:
        stmt = (
            select(LoanStatusHistory)
            .where(LoanStatusHistory.loan_application_id == loan_id)
            .order_by(LoanStatusHistory.created_at.asc())
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
