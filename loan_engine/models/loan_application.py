import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from loan_engine.db.base import Base


LOAN_STATUSES = (
    "draft",
    "pending",
    "in_review",
    "documents_required",
    "processing",
    "offer_issued",
    "approved",
    "funded",
    "rejected",
)

PROJECT_TYPES = (
    "primary_residence",
    "secondary_residence",
    "rental_investment",
    "construction",
    "renovation",
)

SEQUESTRE_STATUSES = ("none", "partial", "complete")


def _in_clause(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


class LoanApplication(Base):
    __tablename__ = "loan_applications"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(_in_clause("status", LOAN_STATUSES), name="ck_loan_app_status"),
        CheckConstraint(_in_clause("project_type", PROJECT_TYPES), name="ck_loan_app_project_type"),
        CheckConstraint(
            _in_clause("sequestre_status", SEQUESTRE_STATUSES),
            name="ck_loan_app_sequestre_status",
        ),
        CheckConstraint("amount > 0", name="ck_loan_app_amount_positive"),
        CheckConstraint("duration_years BETWEEN 5 AND 30", name="ck_loan_app_duration_bounds"),
        CheckConstraint("rate_percent >= 0", name="ck_loan_app_rate_nonneg"),
        CheckConstraint("down_payment >= 0", name="ck_loan_app_down_payment_nonneg"),
        CheckConstraint("sequestre_amount_expected >= 0", name="ck_loan_app_sequestre_expected_nonneg"),
        CheckConstraint("sequestre_amount_received >= 0", name="ck_loan_app_sequestre_received_nonneg"),
        CheckConstraint("version >= 1", name="ck_loan_app_version_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    borrower_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    status = Column(String(30), nullable=False, default="draft", index=True)
    # Bumped by every compare-and-swap write.
    version = Column(Integer, nullable=False, default=1)
    project_type = Column(String(40), nullable=False)
    has_coborrower = Column(Boolean, nullable=False, default=False)

    property_price = Column(Numeric(14, 2), nullable=False)
    notary_fees = Column(Numeric(14, 2), nullable=False, default=0)
    agency_fees = Column(Numeric(14, 2), nullable=False, default=0)
    works_amount = Column(Numeric(14, 2), nullable=False, default=0)
    down_payment = Column(Numeric(14, 2), nullable=False, default=0)
    duration_years = Column(Integer, nullable=False)
    rate_tier = Column(String(20), nullable=False)
    rate_percent = Column(Numeric(6, 2), nullable=False)

    amount = Column(Numeric(14, 2), nullable=False)
    monthly_credit = Column(Numeric(14, 2), nullable=False)
    monthly_insurance = Column(Numeric(14, 2), nullable=False)
    monthly_total = Column(Numeric(14, 2), nullable=False)
    total_interest = Column(Numeric(14, 2), nullable=False)
    total_insurance = Column(Numeric(14, 2), nullable=False)
    bank_fees = Column(Numeric(14, 2), nullable=False)
    total_cost = Column(Numeric(14, 2), nullable=False)
    taeg_estimate = Column(Numeric(6, 2), nullable=False)

    documents_complete = Column(Boolean, nullable=False, default=False)
    sequestre_status = Column(String(20), nullable=False, default="none")
    sequestre_amount_expected = Column(Numeric(14, 2), nullable=False, default=0)
    sequestre_amount_received = Column(Numeric(14, 2), nullable=False, default=0)
    sequestre_over_funded = Column(Boolean, nullable=False, default=False)
    sequestre_completion_signaled_at = Column(DateTime(timezone=True), nullable=True)

    rejection_reason = Column(Text, nullable=True)
    next_action = Column(String(500), nullable=True)
    status_changed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    documents = relationship("LoanDocument", back_populates="loan_application")
    status_history = relationship(
        "LoanStatusHistory",
        back_populates="loan_application",
        order_by="LoanStatusHistory.created_at",
    )
