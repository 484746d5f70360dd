from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class DocumentCategory(str, Enum):
    IDENTITY = "identity"
    PROOF_OF_ADDRESS = "proof_of_address"
    TAX_NOTICE = "tax_notice"
    PAYSLIPS = "payslips"
    EMPLOYMENT_CONTRACT = "employment_contract"
    BANK_STATEMENTS = "bank_statements"
    COMPROMISE_OF_SALE = "compromise_of_sale"
    PROPERTY_DIAGNOSTICS = "property_diagnostics"
    PRIMARY_RESIDENCE_PROOF = "primary_residence_proof"
    RENTAL_ESTIMATION = "rental_estimation"
    LAND_PURCHASE_AGREEMENT = "land_purchase_agreement"
    BUILDING_PERMIT = "building_permit"
    CONSTRUCTION_CONTRACT = "construction_contract"
    CONSTRUCTION_PLANS = "construction_plans"
    BUILDER_INSURANCE = "builder_insurance"
    PROPERTY_TITLE = "property_title"
    RENOVATION_QUOTES = "renovation_quotes"
    OTHER = "other"


class DocumentOwner(str, Enum):
    PRIMARY = "primary"
    CO_BORROWER = "co_borrower"


class DocumentDirection(str, Enum):
    OUTGOING = "outgoing"  # borrower -> institution
    INCOMING = "incoming"  # institution -> borrower


class DocumentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class LoanDocumentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    loan_application_id: UUID
    category: DocumentCategory
    owner: DocumentOwner = DocumentOwner.PRIMARY
    direction: DocumentDirection = DocumentDirection.OUTGOING
    status: DocumentStatus = DocumentStatus.PENDING
    rejection_reason: str | None = None
    file_name: str
    storage_key: str
    content_type: str | None = None
    uploaded_at: datetime | None = None
    reviewed_at: datetime | None = None
    reviewed_by: UUID | None = None


class DocumentUploadRequest(BaseModel):
    category: DocumentCategory
    owner: DocumentOwner = DocumentOwner.PRIMARY
    direction: DocumentDirection = DocumentDirection.OUTGOING
    file_name: str = Field(min_length=1, max_length=255)
    storage_key: str = Field(min_length=1, max_length=1024)
    content_type: str | None = Field(default=None, max_length=100)


class DocumentReviewRequest(BaseModel):
    status: DocumentStatus
    rejection_reason: str | None = Field(default=None, max_length=1000)


class RequiredDocumentDTO(BaseModel):
    category: DocumentCategory
    owner: DocumentOwner
    label: str


class CompletenessResponse(BaseModel):
    is_complete: bool
    completed: int
    total: int
    percentage: int
    missing: list[RequiredDocumentDTO]
