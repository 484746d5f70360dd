from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from loan_engine.core.exceptions import IllegalTransitionError, InvalidInputError
from loan_engine.schemas.loan import LoanStatus


@dataclass(frozen=True)
class StatusDefinition:
    label: str
    description: str
    next_action: str | None = None


TRANSITIONS: Mapping[LoanStatus, frozenset[LoanStatus]] = MappingProxyType(
    {
        LoanStatus.DRAFT: frozenset({LoanStatus.PENDING, LoanStatus.REJECTED}),
        LoanStatus.PENDING: frozenset(
            {LoanStatus.IN_REVIEW, LoanStatus.DOCUMENTS_REQUIRED, LoanStatus.REJECTED}
        ),
        LoanStatus.IN_REVIEW: frozenset(
            {LoanStatus.DOCUMENTS_REQUIRED, LoanStatus.PROCESSING, LoanStatus.REJECTED}
        ),
        LoanStatus.DOCUMENTS_REQUIRED: frozenset(
            {LoanStatus.IN_REVIEW, LoanStatus.PROCESSING, LoanStatus.REJECTED}
        ),
        LoanStatus.PROCESSING: frozenset({LoanStatus.OFFER_ISSUED, LoanStatus.REJECTED}),
        LoanStatus.OFFER_ISSUED: frozenset({LoanStatus.APPROVED, LoanStatus.REJECTED}),
        LoanStatus.APPROVED: frozenset({LoanStatus.FUNDED, LoanStatus.REJECTED}),
        LoanStatus.FUNDED: frozenset(),
        LoanStatus.REJECTED: frozenset(),
    }
)

# Statuses from which a completeness flip advances the loan to in_review.
AUTO_REVIEW_SOURCES = frozenset({LoanStatus.PENDING, LoanStatus.DOCUMENTS_REQUIRED})

FUNDING_NEXT_ACTION = "Escrow funds received: confirm funding"

STATUS_DEFINITIONS: Mapping[LoanStatus, StatusDefinition] = MappingProxyType(
    {
        LoanStatus.DRAFT: StatusDefinition(
            label="Draft",
            description="Application started from a simulation, not yet submitted.",
            next_action="Submit the application",
        ),
        LoanStatus.PENDING: StatusDefinition(
            label="Pending",
            description="Application submitted and waiting for a first review.",
            next_action="Upload the required documents",
        ),
        LoanStatus.IN_REVIEW: StatusDefinition(
            label="In review",
            description="An advisor is reviewing the file.",
            next_action="Wait for the advisor review",
        ),
        LoanStatus.DOCUMENTS_REQUIRED: StatusDefinition(
            label="Documents required",
            description="Additional or corrected documents are needed.",
            next_action="Upload the missing documents",
        ),
        LoanStatus.PROCESSING: StatusDefinition(
            label="Processing",
            description="The file has been sent to the lending bank.",
            next_action="Wait for the bank decision",
        ),
        LoanStatus.OFFER_ISSUED: StatusDefinition(
            label="Offer issued",
            description="The bank has issued a loan offer.",
            next_action="Accept the loan offer",
        ),
        LoanStatus.APPROVED: StatusDefinition(
            label="Approved",
            description="Offer accepted; waiting for escrow funds.",
            next_action="Transfer the down payment to escrow",
        ),
        LoanStatus.FUNDED: StatusDefinition(
            label="Funded",
            description="Funds released; the loan is active.",
        ),
        LoanStatus.REJECTED: StatusDefinition(
            label="Rejected",
            description="The application was declined.",
        ),
    }
)


def allowed_transitions(
    current: LoanStatus, transitions: Mapping[LoanStatus, frozenset[LoanStatus]] = TRANSITIONS
) -> frozenset[LoanStatus]:
    return transitions.get(LoanStatus(current), frozenset())


def is_terminal(
    status: LoanStatus, transitions: Mapping[LoanStatus, frozenset[LoanStatus]] = TRANSITIONS
) -> bool:
    return not allowed_transitions(status, transitions)


def validate_transition(
    current: LoanStatus,
    target: LoanStatus,
    reason: str | None = None,
    transitions: Mapping[LoanStatus, frozenset[LoanStatus]] = TRANSITIONS,
) -> None:
    current = LoanStatus(current)
    target = LoanStatus(target)
    allowed = allowed_transitions(current, transitions)
    if target not in allowed:
        raise IllegalTransitionError(
            current.value,
            target.value,
            allowed=sorted(status.value for status in allowed),
        )
    if target == LoanStatus.REJECTED and not (reason and reason.strip()):
        raise InvalidInputError(
            "A reason is required to reject an application",
            details={"field": "reason", "target_status": target.value},
        )


def default_next_action(status: LoanStatus) -> str | None:
    return STATUS_DEFINITIONS[LoanStatus(status)].next_action
