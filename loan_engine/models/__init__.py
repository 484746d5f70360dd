from loan_engine.models.loan_application import LoanApplication
from loan_engine.models.loan_document import LoanDocument
from loan_engine.models.loan_status_history import LoanStatusHistory

__all__ = [
    "LoanApplication",
    "LoanDocument",
    "LoanStatusHistory",
]
