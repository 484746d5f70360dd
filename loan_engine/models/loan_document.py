import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from loan_engine.db.base import Base


class LoanDocument(Base):
    __tablename__ = "loan_documents"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_loan_document_status",
        ),
        CheckConstraint(
            "owner IN ('primary', 'co_borrower')",
            name="ck_loan_document_owner",
        ),
        CheckConstraint(
            "direction IN ('outgoing', 'incoming')",
            name="ck_loan_document_direction",
        ),
        Index("ix_loan_documents_loan_category_owner", "loan_application_id", "category", "owner"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loan_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category = Column(String(50), nullable=False)
    owner = Column(String(20), nullable=False, default="primary")
    direction = Column(String(20), nullable=False, default="outgoing")
    status = Column(String(20), nullable=False, default="pending")
    rejection_reason = Column(Text, nullable=True)
    file_name = Column(String(255), nullable=False)
    # Opaque blob-store reference; document bytes never pass through the engine.
    storage_key = Column(String(1024), nullable=False)
    content_type = Column(String(100), nullable=True)
    uploaded_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(UUID(as_uuid=True), nullable=True)

    loan_application = relationship("LoanApplication", back_populates="documents")
