"""Domain error taxonomy for the underwriting and lifecycle engine.

Every error carries a stable ``code``, a human readable ``message`` and a
``details`` dict so the HTTP layer can render it without inspecting types.
"""

from __future__ import annotations

from typing import Any, Iterable


class LoanEngineError(Exception):
    code = "loan_engine_error"

    def __init__(self, message: str, *, code: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class InvalidInputError(LoanEngineError, ValueError):
    code = "invalid_input"


class RateTableConfigError(LoanEngineError):
    code = "rate_table_misconfigured"


class IllegalTransitionError(LoanEngineError):
    code = "illegal_transition"

    def __init__(self, current: str, target: str, allowed: Iterable[str] = (), *, subject: str = "loan") -> None:
        allowed = sorted(allowed)
        if allowed:
            message = (
                f"Cannot move {subject} from '{current}' to '{target}'. "
                f"Allowed targets: {', '.join(allowed)}"
            )
        else:
            message = f"Cannot move {subject} from '{current}' to '{target}': '{current}' is terminal"
        super().__init__(
            message,
            details={"current_status": current, "target_status": target, "allowed_statuses": allowed},
        )
        self.current = current
        self.target = target
        self.allowed = allowed


class ConcurrencyConflictError(LoanEngineError):
    code = "concurrent_update"
    retryable = True

    def __init__(self, loan_id, *, expected_status: str | None = None, expected_version: int | None = None) -> None:
        super().__init__(
            "The loan application was updated by another request. Please refresh and retry.",
            details={
                "loan_id": str(loan_id),
                "expected_status": expected_status,
                "expected_version": expected_version,
            },
        )
        self.loan_id = loan_id


class LoanNotFoundError(LoanEngineError):
    code = "loan_not_found"

    def __init__(self, loan_id) -> None:
        super().__init__("Loan application not found", details={"loan_id": str(loan_id)})


class DocumentNotFoundError(LoanEngineError):
    code = "document_not_found"

    def __init__(self, document_id) -> None:
        super().__init__("Document not found", details={"document_id": str(document_id)})
