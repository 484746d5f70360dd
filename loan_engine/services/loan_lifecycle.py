"""Loan lifecycle orchestration.

Every status change follows the same order: validate the edge, write status,
timestamp, version bump and history row in one compare-and-swap, then emit one
notification. A failed write never notifies; a failed notification never undoes
the write.

Automatic consumers (document completeness, escrow funding) run under a per-loan
lock and retry on conflict. Manual transitions surface conflicts to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping

from loan_engine.core.context import reset_loan_id, set_loan_id
from loan_engine.core.exceptions import ConcurrencyConflictError
from loan_engine.core.settings import get_settings
from loan_engine.models.loan_application import LoanApplication
from loan_engine.schemas.loan import EscrowStatus, LoanStatus, ProjectType, TransitionTrigger
from loan_engine.services import escrow
from loan_engine.services.audit import record_audit_event
from loan_engine.services.documents import (
    DEFAULT_CHECKLIST,
    CompletenessResult,
    DocumentChecklist,
    evaluate_completeness,
    required_documents,
)
from loan_engine.services.loan_status import (
    AUTO_REVIEW_SOURCES,
    FUNDING_NEXT_ACTION,
    TRANSITIONS,
    default_next_action,
    validate_transition,
)
from loan_engine.services.loan_store import LoanStore, StatusHistoryEntry
from loan_engine.services.notifications import ESCROW_COMPLETED, LOAN_STATUS_CHANGED, Notifier

logger = logging.getLogger(__name__)


class LoanLockRegistry:
    """One asyncio.Lock per loan id, created on first use.

    Entries are weak: a lock disappears once no caller holds or awaits it.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        return len(self._locks)

    def lock_for(self, loan_id) -> asyncio.Lock:
        key = str(loan_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock


_LOCKS = LoanLockRegistry()


class LoanLifecycle:
    def __init__(
        self,
        store: LoanStore,
        notifier: Notifier,
        *,
        transitions: Mapping[LoanStatus, frozenset[LoanStatus]] = TRANSITIONS,
        locks: LoanLockRegistry | None = None,
        max_retries: int | None = None,
        checklist: DocumentChecklist = DEFAULT_CHECKLIST,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._transitions = transitions
        self.checklist = checklist
        self._locks = locks or _LOCKS
        self._max_retries = get_settings().transition_max_retries if max_retries is None else max_retries

    async def transition(
        self,
        loan_id,
        target: LoanStatus,
        *,
        actor_id=None,
        reason: str | None = None,
        next_action: str | None = None,
    ) -> LoanApplication:
        token = set_loan_id(loan_id)
        try:
            target = LoanStatus(target)
            async with self._locks.lock_for(loan_id):
                loan = await self._store.get_loan(loan_id)
                updated = await self._apply_transition(
                    loan,
                    target,
                    trigger=TransitionTrigger.MANUAL,
                    actor_id=actor_id,
                    reason=reason,
                    next_action=next_action,
                )
                if target != LoanStatus.PENDING:
                    return updated
                # Documents may have been completed while the loan was still a draft.
                await self._evaluate_documents(loan_id)
                return await self._store.get_loan(loan_id)
        finally:
            reset_loan_id(token)

    async def submit(self, loan_id, actor_id=None) -> LoanApplication:
        return await self.transition(loan_id, LoanStatus.PENDING, actor_id=actor_id)

    async def evaluate_documents(self, loan_id) -> CompletenessResult:
        """Persist the completeness flag and auto-advance to in_review on a false -> true flip.

        Re-evaluating an unchanged verdict writes nothing and notifies nobody.
        """
        token = set_loan_id(loan_id)
        try:
            async with self._locks.lock_for(loan_id):
                return await self._evaluate_documents(loan_id)
        finally:
            reset_loan_id(token)

    async def _evaluate_documents(self, loan_id) -> CompletenessResult:
        attempt = 0
        while True:
            loan = await self._store.get_loan(loan_id)
            documents = await self._store.list_documents(loan_id)
            completeness = evaluate_completeness(
                required_documents(ProjectType(loan.project_type), loan.has_coborrower, self.checklist),
                documents,
            )
            if completeness.is_complete == bool(loan.documents_complete):
                return completeness
            changes = {"documents_complete": completeness.is_complete}
            try:
                if completeness.is_complete and LoanStatus(loan.status) in AUTO_REVIEW_SOURCES:
                    await self._apply_transition(
                        loan,
                        LoanStatus.IN_REVIEW,
                        trigger=TransitionTrigger.DOCUMENTS_COMPLETE,
                        extra_changes=changes,
                    )
                else:
                    await self._store.compare_and_set(
                        loan.id,
                        expected_version=loan.version,
                        expected_status=loan.status,
                        changes=changes,
                    )
                logger.info(
                    "Document completeness updated",
                    extra={
                        "documents_complete": completeness.is_complete,
                        "completed": completeness.completed,
                        "total": completeness.total,
                    },
                )
                return completeness
            except ConcurrencyConflictError:
                attempt += 1
                if attempt > self._max_retries:
                    raise
                logger.info("Completeness write conflicted, retrying", extra={"attempt": attempt})

    async def record_escrow(
        self,
        loan_id,
        amount_expected: Decimal,
        amount_received: Decimal,
    ) -> escrow.EscrowEvaluation:
        """Persist escrow amounts and emit the completion event at most once per loan.

        Both amounts are running totals, not increments: receipts of 40000 then
        60000 against 100000 expected are reported as 40000 then 100000.
        """
        token = set_loan_id(loan_id)
        try:
            async with self._locks.lock_for(loan_id):
                attempt = 0
                while True:
                    loan = await self._store.get_loan(loan_id)
                    evaluation = escrow.evaluate(
                        loan.id,
                        amount_expected,
                        amount_received,
                        already_signaled=loan.sequestre_completion_signaled_at is not None,
                    )
                    changes: dict[str, Any] = {
                        "sequestre_status": evaluation.status.value,
                        "sequestre_amount_expected": Decimal(str(amount_expected)),
                        "sequestre_amount_received": Decimal(str(amount_received)),
                        "sequestre_over_funded": evaluation.over_funded,
                    }
                    if evaluation.fires_completion_event:
                        changes["sequestre_completion_signaled_at"] = datetime.now(timezone.utc)
                        if LoanStatus(loan.status) == LoanStatus.APPROVED:
                            changes["next_action"] = FUNDING_NEXT_ACTION
                    if not evaluation.fires_completion_event and self._unchanged(loan, changes):
                        return evaluation
                    try:
                        await self._store.compare_and_set(
                            loan.id,
                            expected_version=loan.version,
                            expected_status=loan.status,
                            changes=changes,
                        )
                    except ConcurrencyConflictError:
                        attempt += 1
                        if attempt > self._max_retries:
                            raise
                        logger.info("Escrow write conflicted, retrying", extra={"attempt": attempt})
                        continue
                    break
                if evaluation.fires_completion_event:
                    payload = {
                        "status": loan.status,
                        "amount_expected": changes["sequestre_amount_expected"],
                        "amount_received": changes["sequestre_amount_received"],
                        "over_funded": evaluation.over_funded,
                        "next_action": changes.get("next_action"),
                    }
                    record_audit_event(action=ESCROW_COMPLETED, loan_id=loan_id, new_value=payload)
                    await self._notify(ESCROW_COMPLETED, loan_id, payload)
                return evaluation
        finally:
            reset_loan_id(token)

    async def _apply_transition(
        self,
        loan: LoanApplication,
        target: LoanStatus,
        *,
        trigger: TransitionTrigger,
        actor_id=None,
        reason: str | None = None,
        next_action: str | None = None,
        extra_changes: dict[str, Any] | None = None,
    ) -> LoanApplication:
        current = LoanStatus(loan.status)
        validate_transition(current, target, reason, self._transitions)

        loan_id = loan.id
        expected_version = loan.version
        escrow_complete = loan.sequestre_status == EscrowStatus.COMPLETE.value
        if next_action is None:
            if target == LoanStatus.APPROVED and escrow_complete:
                next_action = FUNDING_NEXT_ACTION
            else:
                next_action = default_next_action(target)

        changes: dict[str, Any] = dict(extra_changes or {})
        changes.update(
            status=target.value,
            status_changed_at=datetime.now(timezone.utc),
            next_action=next_action,
        )
        if target == LoanStatus.REJECTED:
            changes["rejection_reason"] = reason
        if target in AUTO_REVIEW_SOURCES and trigger == TransitionTrigger.MANUAL:
            # Re-arms the automatic move to in_review for documents approved from here on.
            changes["documents_complete"] = False

        updated = await self._store.compare_and_set(
            loan_id,
            expected_version=expected_version,
            expected_status=current.value,
            changes=changes,
            history=StatusHistoryEntry(
                old_status=current.value,
                new_status=target.value,
                trigger=trigger.value,
                actor_id=actor_id,
                reason=reason,
                next_action=next_action,
            ),
        )

        payload = {
            "old_status": current.value,
            "new_status": target.value,
            "trigger": trigger.value,
            "actor_id": actor_id,
            "reason": reason,
            "next_action": next_action,
            "status_changed_at": changes["status_changed_at"],
        }
        record_audit_event(
            action=LOAN_STATUS_CHANGED,
            loan_id=loan_id,
            actor_id=actor_id,
            old_value={"status": current.value, "version": expected_version},
            new_value={"status": target.value, "version": expected_version + 1},
        )
        await self._notify(LOAN_STATUS_CHANGED, loan_id, payload)
        return updated

    async def _notify(self, event_type: str, loan_id, payload: dict[str, Any]) -> None:
        try:
            await self._notifier.notify(event_type, loan_id, payload)
        except Exception:
            logger.exception("Notification delivery failed", extra={"event_type": event_type})

    @staticmethod
    def _unchanged(loan: LoanApplication, changes: dict[str, Any]) -> bool:
        return all(getattr(loan, key) == value for key, value in changes.items())
