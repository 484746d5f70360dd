from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status

from loan_engine.api import deps
from loan_engine.schemas.document import (
    CompletenessResponse,
    DocumentReviewRequest,
    DocumentUploadRequest,
    LoanDocumentDTO,
    RequiredDocumentDTO,
)
from loan_engine.services.documents import CompletenessResult, DocumentService

router = APIRouter(prefix="/loan-applications/{loan_id}", tags=["loan-documents"])


def _completeness_response(result: CompletenessResult) -> CompletenessResponse:
    return CompletenessResponse(
        is_complete=result.is_complete,
        completed=result.completed,
        total=result.total,
        percentage=result.percentage,
        missing=[
            RequiredDocumentDTO(category=item.category, owner=item.owner, label=item.label)
            for item in sorted(result.missing)
        ],
    )


@router.get("/documents", response_model=list[LoanDocumentDTO], summary="List loan documents")
async def list_documents(
    loan_id: UUID,
    service: DocumentService = Depends(deps.get_document_service),
) -> list[LoanDocumentDTO]:
    return [LoanDocumentDTO.model_validate(doc) for doc in await service.list_documents(loan_id)]


@router.post(
    "/documents",
    response_model=LoanDocumentDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Register an uploaded document",
)
async def upload_document(
    loan_id: UUID,
    payload: DocumentUploadRequest,
    service: DocumentService = Depends(deps.get_document_service),
    actor_id: Optional[UUID] = Depends(deps.get_actor_id),
) -> LoanDocumentDTO:
    document = await service.upload(loan_id, payload, actor_id=actor_id)
    return LoanDocumentDTO.model_validate(document)


@router.post(
    "/documents/{document_id}/review",
    response_model=LoanDocumentDTO,
    summary="Approve or reject a document",
)
async def review_document(
    loan_id: UUID,
    document_id: UUID,
    payload: DocumentReviewRequest,
    service: DocumentService = Depends(deps.get_document_service),
    actor_id: Optional[UUID] = Depends(deps.get_actor_id),
) -> LoanDocumentDTO:
    document, _ = await service.review(
        loan_id,
        document_id,
        payload.status,
        rejection_reason=payload.rejection_reason,
        reviewer_id=actor_id,
    )
    return LoanDocumentDTO.model_validate(document)


@router.get(
    "/completeness",
    response_model=CompletenessResponse,
    summary="Document completeness of a loan application",
)
async def read_completeness(
    loan_id: UUID,
    service: DocumentService = Depends(deps.get_document_service),
) -> CompletenessResponse:
    return _completeness_response(await service.completeness(loan_id))
