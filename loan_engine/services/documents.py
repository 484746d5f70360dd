from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Iterable, Mapping

from loan_engine.core.exceptions import IllegalTransitionError, InvalidInputError
from loan_engine.models.loan_document import LoanDocument
from loan_engine.resources.document_checklists import BASE_CATEGORIES, CATEGORY_LABELS, PROJECT_CATEGORIES
from loan_engine.schemas.document import (
    DocumentCategory,
    DocumentDirection,
    DocumentOwner,
    DocumentStatus,
    DocumentUploadRequest,
)
from loan_engine.schemas.loan import ProjectType
from loan_engine.services.audit import record_audit_event

if TYPE_CHECKING:
    from loan_engine.services.loan_lifecycle import LoanLifecycle
    from loan_engine.services.loan_store import LoanStore

logger = logging.getLogger(__name__)

DOCUMENT_REVIEW_TRANSITIONS: Mapping[DocumentStatus, frozenset[DocumentStatus]] = MappingProxyType(
    {
        DocumentStatus.PENDING: frozenset({DocumentStatus.APPROVED, DocumentStatus.REJECTED}),
        DocumentStatus.APPROVED: frozenset(),
        DocumentStatus.REJECTED: frozenset(),
    }
)


@dataclass(frozen=True, order=True)
class RequiredDocument:
    category: DocumentCategory
    owner: DocumentOwner

    @property
    def label(self) -> str:
        return CATEGORY_LABELS.get(self.category, self.category.value)

    @property
    def key(self) -> tuple[str, str]:
        return self.category.value, self.owner.value


@dataclass(frozen=True)
class DocumentChecklist:
    base_categories: tuple[DocumentCategory, ...]
    project_categories: Mapping[ProjectType, tuple[DocumentCategory, ...]]


DEFAULT_CHECKLIST = DocumentChecklist(
    base_categories=BASE_CATEGORIES,
    project_categories=MappingProxyType(PROJECT_CATEGORIES),
)


@dataclass(frozen=True)
class CompletenessResult:
    required: frozenset[RequiredDocument]
    satisfied: frozenset[RequiredDocument] = field(default_factory=frozenset)

    @property
    def missing(self) -> frozenset[RequiredDocument]:
        return self.required - self.satisfied

    @property
    def is_complete(self) -> bool:
        return not self.missing

    @property
    def total(self) -> int:
        return len(self.required)

    @property
    def completed(self) -> int:
        return len(self.satisfied)

    @property
    def percentage(self) -> int:
        if not self.required:
            return 100
        ratio = Decimal(self.completed) * Decimal("100") / Decimal(self.total)
        return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _value(item) -> str:
    return item.value if isinstance(item, Enum) else str(item)


def required_documents(
    project_type: ProjectType | str,
    has_coborrower: bool,
    checklist: DocumentChecklist = DEFAULT_CHECKLIST,
) -> frozenset[RequiredDocument]:
    try:
        project_type = ProjectType(project_type)
    except ValueError as exc:
        raise InvalidInputError(
            "Unknown project type",
            details={"field": "project_type", "project_type": str(project_type)},
        ) from exc
    if project_type not in checklist.project_categories:
        raise InvalidInputError(
            "No document checklist for project type",
            details={"field": "project_type", "project_type": project_type.value},
        )

    owners = [DocumentOwner.PRIMARY]
    if has_coborrower:
        owners.append(DocumentOwner.CO_BORROWER)
    required = {
        RequiredDocument(category=category, owner=owner)
        for owner in owners
        for category in checklist.base_categories
    }
    required.update(
        RequiredDocument(category=category, owner=DocumentOwner.PRIMARY)
        for category in checklist.project_categories[project_type]
    )
    return frozenset(required)


def evaluate_completeness(
    required: Iterable[RequiredDocument],
    documents: Iterable,
) -> CompletenessResult:
    """Only approved outgoing documents satisfy a (category, owner) requirement."""
    required = frozenset(required)
    approved = {
        (_value(doc.category), _value(doc.owner))
        for doc in documents
        if _value(doc.direction) == DocumentDirection.OUTGOING.value
        and _value(doc.status) == DocumentStatus.APPROVED.value
    }
    satisfied = frozenset(item for item in required if item.key in approved)
    return CompletenessResult(required=required, satisfied=satisfied)


def validate_review(current: DocumentStatus | str, target: DocumentStatus | str, rejection_reason: str | None) -> None:
    current = DocumentStatus(current)
    target = DocumentStatus(target)
    allowed = DOCUMENT_REVIEW_TRANSITIONS[current]
    if target not in allowed:
        raise IllegalTransitionError(
            current.value,
            target.value,
            allowed=sorted(status.value for status in allowed),
            subject="document",
        )
    if target == DocumentStatus.REJECTED and not (rejection_reason and rejection_reason.strip()):
        raise InvalidInputError(
            "A rejection reason is required",
            details={"field": "rejection_reason"},
        )


class DocumentService:
    def __init__(self, store: "LoanStore", lifecycle: "LoanLifecycle") -> None:
        self._store = store
        self._lifecycle = lifecycle

    async def list_documents(self, loan_id) -> list[LoanDocument]:
        await self._store.get_loan(loan_id)
        return await self._store.list_documents(loan_id)

    async def completeness(self, loan_id) -> CompletenessResult:
        loan = await self._store.get_loan(loan_id)
        documents = await self._store.list_documents(loan_id)
        return evaluate_completeness(
            required_documents(loan.project_type, loan.has_coborrower, self._lifecycle.checklist),
            documents,
        )

    async def upload(self, loan_id, request: DocumentUploadRequest, *, actor_id=None) -> LoanDocument:
        loan = await self._store.get_loan(loan_id)
        owner = DocumentOwner(request.owner)
        if owner == DocumentOwner.CO_BORROWER and not loan.has_coborrower:
            raise InvalidInputError(
                "This application has no co-borrower",
                details={"field": "owner", "owner": owner.value},
            )
        document = LoanDocument(
            id=uuid.uuid4(),
            loan_application_id=loan.id,
            category=DocumentCategory(request.category).value,
            owner=owner.value,
            direction=DocumentDirection(request.direction).value,
            status=DocumentStatus.PENDING.value,
            file_name=request.file_name,
            storage_key=request.storage_key,
            content_type=request.content_type,
            uploaded_at=datetime.now(timezone.utc),
        )
        document = await self._store.add_document(document)
        logger.info(
            "Document uploaded",
            extra={
                "loan_id": str(loan.id),
                "document_id": str(document.id),
                "category": document.category,
                "owner": document.owner,
                "actor_id": str(actor_id) if actor_id else None,
            },
        )
        return document

    async def review(
        self,
        loan_id,
        document_id,
        status: DocumentStatus,
        *,
        rejection_reason: str | None = None,
        reviewer_id=None,
    ) -> tuple[LoanDocument, CompletenessResult]:
        document = await self._store.get_document(loan_id, document_id)
        old_status = document.status
        validate_review(old_status, status, rejection_reason)
        target = DocumentStatus(status)
        changes = {
            "status": target.value,
            "rejection_reason": rejection_reason if target == DocumentStatus.REJECTED else None,
            "reviewed_at": datetime.now(timezone.utc),
            "reviewed_by": reviewer_id,
        }
        document = await self._store.update_document(document, changes)
        record_audit_event(
            action="loan_document.reviewed",
            loan_id=loan_id,
            actor_id=reviewer_id,
            old_value={"document_id": str(document.id), "status": old_status},
            new_value={
                "document_id": str(document.id),
                "status": target.value,
                "rejection_reason": changes["rejection_reason"],
            },
        )
        completeness = await self._lifecycle.evaluate_documents(loan_id)
        return document, completeness
