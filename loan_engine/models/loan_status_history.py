import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from loan_engine.db.base import Base


class LoanStatusHistory(Base):
    __tablename__ = "loan_status_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loan_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    old_status = Column(String(30), nullable=True)
    new_status = Column(String(30), nullable=False)
    trigger = Column(String(30), nullable=False, default="manual")
    # Null for system-triggered transitions.
    actor_id = Column(UUID(as_uuid=True), nullable=True)
    reason = Column(Text, nullable=True)
    next_action = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    loan_application = relationship("LoanApplication", back_populates="status_history")
