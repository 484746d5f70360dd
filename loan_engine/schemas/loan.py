from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from loan_engine.schemas.simulation import SimulationInput


class LoanStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    IN_REVIEW = "in_review"
    DOCUMENTS_REQUIRED = "documents_required"
    PROCESSING = "processing"
    OFFER_ISSUED = "offer_issued"
    APPROVED = "approved"
    FUNDED = "funded"
    REJECTED = "rejected"


class ProjectType(str, Enum):
    PRIMARY_RESIDENCE = "primary_residence"
    SECONDARY_RESIDENCE = "secondary_residence"
    RENTAL_INVESTMENT = "rental_investment"
    CONSTRUCTION = "construction"
    RENOVATION = "renovation"


class EscrowStatus(str, Enum):
    NONE = "none"
    PARTIAL = "partial"
    COMPLETE = "complete"


class TransitionTrigger(str, Enum):
    MANUAL = "manual"
    DOCUMENTS_COMPLETE = "documents_complete"


class LoanApplicationDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True, json_encoders={Decimal: lambda value: str(value)})

    id: UUID
    borrower_id: UUID
    status: LoanStatus
    version: int = 1
    project_type: ProjectType
    has_coborrower: bool = False

    property_price: Decimal
    notary_fees: Decimal
    agency_fees: Decimal
    works_amount: Decimal
    down_payment: Decimal
    duration_years: int
    rate_tier: str
    rate_percent: Decimal

    amount: Decimal
    monthly_credit: Decimal
    monthly_insurance: Decimal
    monthly_total: Decimal
    total_interest: Decimal
    total_insurance: Decimal
    bank_fees: Decimal
    total_cost: Decimal
    taeg_estimate: Decimal

    documents_complete: bool = False
    sequestre_status: EscrowStatus = EscrowStatus.NONE
    sequestre_amount_expected: Decimal = Decimal("0")
    sequestre_amount_received: Decimal = Decimal("0")
    sequestre_over_funded: bool = False
    sequestre_completion_signaled_at: datetime | None = None

    rejection_reason: str | None = None
    next_action: str | None = None
    status_changed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class LoanApplicationCreate(BaseModel):
    borrower_id: UUID
    project_type: ProjectType
    has_coborrower: bool = False
    simulation: SimulationInput


class LoanTransitionRequest(BaseModel):
    target_status: LoanStatus
    reason: str | None = Field(default=None, max_length=1000)
    next_action: str | None = Field(default=None, max_length=500)


class EscrowUpdateRequest(BaseModel):
    amount_expected: Decimal
    amount_received: Decimal


class LoanStatusHistoryDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    loan_application_id: UUID
    old_status: LoanStatus | None = None
    new_status: LoanStatus
    trigger: TransitionTrigger
    actor_id: UUID | None = None
    reason: str | None = None
    next_action: str | None = None
    created_at: datetime | None = None


class EscrowEvaluationResponse(BaseModel):
    status: EscrowStatus
    fires_completion_event: bool
    over_funded: bool
    excess_amount: Decimal
    loan: LoanApplicationDTO
