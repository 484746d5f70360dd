from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from loan_engine.core.exceptions import InvalidInputError
from loan_engine.schemas.loan import EscrowStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EscrowEvaluation:
    status: EscrowStatus
    fires_completion_event: bool
    over_funded: bool = False
    excess_amount: Decimal = Decimal("0")


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def escrow_status(amount_expected: Decimal, amount_received: Decimal) -> EscrowStatus:
    if amount_received == 0:
        return EscrowStatus.NONE
    if amount_received < amount_expected:
        return EscrowStatus.PARTIAL
    return EscrowStatus.COMPLETE


def evaluate(
    loan_id,
    amount_expected,
    amount_received,
    already_signaled: bool = False,
) -> EscrowEvaluation:
    """Classify escrow funding and decide whether the completion event fires.

    The event fires at most once per loan: `already_signaled` comes from the
    loan record, never from the two amounts.
    """
    expected = _as_decimal(amount_expected)
    received = _as_decimal(amount_received)
    if expected <= 0:
        raise InvalidInputError(
            "Expected escrow amount must be greater than zero",
            details={"field": "amount_expected", "loan_id": str(loan_id), "amount_expected": str(expected)},
        )
    if received < 0:
        raise InvalidInputError(
            "Received escrow amount cannot be negative",
            details={"field": "amount_received", "loan_id": str(loan_id), "amount_received": str(received)},
        )

    status = escrow_status(expected, received)
    over_funded = received > expected
    excess = received - expected if over_funded else Decimal("0")
    if over_funded:
        logger.warning(
            "Escrow over-funded",
            extra={
                "loan_id": str(loan_id),
                "amount_expected": str(expected),
                "amount_received": str(received),
                "excess_amount": str(excess),
            },
        )
    return EscrowEvaluation(
        status=status,
        fires_completion_event=status == EscrowStatus.COMPLETE and not already_signaled,
        over_funded=over_funded,
        excess_amount=excess,
    )
