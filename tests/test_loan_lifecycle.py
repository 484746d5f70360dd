import gc
from datetime import datetime, timezone
from decimal import Decimal
from types import MappingProxyType
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from loan_engine.core.exceptions import ConcurrencyConflictError, IllegalTransitionError, InvalidInputError
from loan_engine.schemas.document import DocumentCategory
from loan_engine.schemas.loan import LoanStatus, ProjectType
from loan_engine.services.documents import DocumentChecklist
from loan_engine.services.loan_lifecycle import LoanLifecycle, LoanLockRegistry
from loan_engine.services.loan_status import FUNDING_NEXT_ACTION
from loan_engine.services.notifications import ESCROW_COMPLETED, LOAN_STATUS_CHANGED
from conftest import FailingNotifier, make_document, make_loan

FOUR_DOCUMENTS = DocumentChecklist(
    base_categories=(DocumentCategory.IDENTITY, DocumentCategory.PAYSLIPS),
    project_categories=MappingProxyType(
        {ProjectType.PRIMARY_RESIDENCE: (DocumentCategory.COMPROMISE_OF_SALE, DocumentCategory.PROPERTY_DIAGNOSTICS)}
    ),
)


def _concurrent_bump(new_status: str | None = None):
    def _hook(loan) -> None:
        loan.version += 1
        if new_status is not None:
            loan.status = new_status

    return _hook


@pytest.fixture
def small_checklist_lifecycle(store, notifier) -> LoanLifecycle:
    return LoanLifecycle(store, notifier, locks=LoanLockRegistry(), max_retries=3, checklist=FOUR_DOCUMENTS)


@pytest.mark.asyncio
async def test_submit_moves_draft_to_pending(store, notifier, lifecycle) -> None:
    actor = uuid4()
    loan = await store.add_loan(make_loan())

    updated = await lifecycle.submit(loan.id, actor_id=actor)

    assert updated.status == "pending"
    assert updated.version == 2
    assert updated.status_changed_at is not None
    assert updated.next_action == "Upload the required documents"
    [entry] = store.history
    assert (entry.old_status, entry.new_status, entry.trigger) == ("draft", "pending", "manual")
    assert entry.actor_id == actor
    [(event_type, loan_id, payload)] = notifier.events
    assert event_type == LOAN_STATUS_CHANGED
    assert loan_id == str(loan.id)
    assert payload["old_status"] == "draft"
    assert payload["new_status"] == "pending"
    assert payload["actor_id"] == actor


@pytest.mark.asyncio
async def test_illegal_transition_writes_nothing(store, notifier, lifecycle) -> None:
    loan = await store.add_loan(make_loan())

    with pytest.raises(IllegalTransitionError):
        await lifecycle.transition(loan.id, LoanStatus.APPROVED)

    assert loan.status == "draft"
    assert loan.version == 1
    assert store.writes == 0
    assert notifier.events == []


@pytest.mark.asyncio
async def test_terminal_loan_cannot_move(store, lifecycle) -> None:
    loan = await store.add_loan(make_loan(status="funded"))
    with pytest.raises(IllegalTransitionError) as exc:
        await lifecycle.transition(loan.id, LoanStatus.REJECTED, reason="too late")
    assert exc.value.details["allowed_statuses"] == []


@pytest.mark.asyncio
async def test_rejection_stores_reason(store, notifier, lifecycle) -> None:
    loan = await store.add_loan(make_loan(status="in_review", version=3))

    with pytest.raises(InvalidInputError):
        await lifecycle.transition(loan.id, LoanStatus.REJECTED)

    updated = await lifecycle.transition(loan.id, LoanStatus.REJECTED, reason="Debt ratio above 35%")
    assert updated.status == "rejected"
    assert updated.rejection_reason == "Debt ratio above 35%"
    assert updated.next_action is None
    assert store.history[-1].reason == "Debt ratio above 35%"
    assert len(notifier.events) == 1


@pytest.mark.asyncio
async def test_explicit_next_action_overrides_default(store, lifecycle) -> None:
    loan = await store.add_loan(make_loan(status="in_review"))
    updated = await lifecycle.transition(
        loan.id, LoanStatus.DOCUMENTS_REQUIRED, next_action="Upload a signed compromise of sale"
    )
    assert updated.next_action == "Upload a signed compromise of sale"


@pytest.mark.asyncio
async def test_scenario_c_completeness_advances_once(store, notifier, small_checklist_lifecycle) -> None:
    loan = await store.add_loan(make_loan(status="pending", version=2))
    for category in ("identity", "payslips", "compromise_of_sale"):
        await store.add_document(make_document(loan, category=category))

    result = await small_checklist_lifecycle.evaluate_documents(loan.id)
    assert result.is_complete is False
    assert loan.status == "pending"
    assert store.writes == 0

    await store.add_document(make_document(loan, category="property_diagnostics"))
    result = await small_checklist_lifecycle.evaluate_documents(loan.id)
    assert result.is_complete is True
    assert loan.status == "in_review"
    assert loan.documents_complete is True
    assert loan.version == 3
    assert store.history[-1].trigger == "documents_complete"
    assert store.history[-1].actor_id is None

    await small_checklist_lifecycle.evaluate_documents(loan.id)
    await small_checklist_lifecycle.evaluate_documents(loan.id)
    assert loan.version == 3
    assert len(notifier.of_type(LOAN_STATUS_CHANGED)) == 1


@pytest.mark.asyncio
async def test_documents_completed_while_draft_advance_on_submit(store, notifier, small_checklist_lifecycle) -> None:
    loan = await store.add_loan(make_loan())
    for category in ("identity", "payslips", "compromise_of_sale", "property_diagnostics"):
        await store.add_document(make_document(loan, category=category))

    await small_checklist_lifecycle.evaluate_documents(loan.id)
    assert loan.status == "draft"
    assert loan.documents_complete is True

    updated = await small_checklist_lifecycle.submit(loan.id)

    assert updated.status == "in_review"
    assert updated.documents_complete is True
    assert [(entry.new_status, entry.trigger) for entry in store.history] == [
        ("pending", "manual"),
        ("in_review", "documents_complete"),
    ]
    assert [event[2]["new_status"] for event in notifier.of_type(LOAN_STATUS_CHANGED)] == ["pending", "in_review"]

@pytest.mark.asyncio
async def test_completeness_outside_waiting_statuses_only_sets_flag(store, notifier, small_checklist_lifecycle) -> None:
    loan = await store.add_loan(make_loan(status="processing"))
    for category in ("identity", "payslips", "compromise_of_sale", "property_diagnostics"):
        await store.add_document(make_document(loan, category=category))

    await small_checklist_lifecycle.evaluate_documents(loan.id)

    assert loan.status == "processing"
    assert loan.documents_complete is True
    assert store.history == []
    assert notifier.events == []


@pytest.mark.asyncio
async def test_completeness_flag_drops_when_document_is_lost(store, notifier, small_checklist_lifecycle) -> None:
    loan = await store.add_loan(make_loan(status="in_review", documents_complete=True))
    for category in ("identity", "payslips", "compromise_of_sale"):
        await store.add_document(make_document(loan, category=category))

    result = await small_checklist_lifecycle.evaluate_documents(loan.id)

    assert result.is_complete is False
    assert loan.documents_complete is False
    assert loan.status == "in_review"
    assert notifier.events == []


@pytest.mark.asyncio
async def test_persistence_failure_sends_no_notification(store, notifier, lifecycle) -> None:
    loan = await store.add_loan(make_loan())
    store.fail_writes = True

    with pytest.raises(OperationalError):
        await lifecycle.submit(loan.id)

    assert loan.status == "draft"
    assert notifier.events == []


@pytest.mark.asyncio
async def test_notification_failure_keeps_transition(store) -> None:
    notifier = FailingNotifier()
    lifecycle = LoanLifecycle(store, notifier, locks=LoanLockRegistry(), max_retries=0)
    loan = await store.add_loan(make_loan())

    updated = await lifecycle.submit(loan.id)

    assert updated.status == "pending"
    assert len(store.history) == 1
    assert notifier.calls == 1


@pytest.mark.asyncio
async def test_manual_transition_surfaces_concurrent_update(store, notifier, lifecycle) -> None:
    loan = await store.add_loan(make_loan(status="in_review", version=5))
    store.before_write.append(_concurrent_bump())

    with pytest.raises(ConcurrencyConflictError):
        await lifecycle.transition(loan.id, LoanStatus.PROCESSING)

    assert loan.status == "in_review"
    assert loan.version == 6
    assert store.history == []
    assert notifier.events == []


@pytest.mark.asyncio
async def test_automatic_advance_retries_after_conflict(store, notifier, small_checklist_lifecycle) -> None:
    loan = await store.add_loan(make_loan(status="pending", version=2))
    for category in ("identity", "payslips", "compromise_of_sale", "property_diagnostics"):
        await store.add_document(make_document(loan, category=category))
    store.before_write.append(_concurrent_bump())

    await small_checklist_lifecycle.evaluate_documents(loan.id)

    assert loan.status == "in_review"
    assert loan.version == 4
    assert len(notifier.events) == 1


@pytest.mark.asyncio
async def test_automatic_advance_revalidates_after_conflict(store, notifier, small_checklist_lifecycle) -> None:
    loan = await store.add_loan(make_loan(status="pending", version=2))
    for category in ("identity", "payslips", "compromise_of_sale", "property_diagnostics"):
        await store.add_document(make_document(loan, category=category))
    # An advisor moved the file to processing while completeness was being written.
    store.before_write.append(_concurrent_bump("processing"))

    await small_checklist_lifecycle.evaluate_documents(loan.id)

    assert loan.status == "processing"
    assert loan.documents_complete is True
    assert notifier.events == []


@pytest.mark.asyncio
async def test_manual_documents_required_rearms_automatic_review(store, notifier, small_checklist_lifecycle) -> None:
    loan = await store.add_loan(make_loan(status="in_review", documents_complete=True))
    for category in ("identity", "payslips", "compromise_of_sale", "property_diagnostics"):
        await store.add_document(make_document(loan, category=category))

    await small_checklist_lifecycle.transition(loan.id, LoanStatus.DOCUMENTS_REQUIRED)
    assert loan.documents_complete is False

    await small_checklist_lifecycle.evaluate_documents(loan.id)
    assert loan.status == "in_review"
    assert [event[2]["new_status"] for event in notifier.events] == ["documents_required", "in_review"]


@pytest.mark.asyncio
async def test_scenario_d_escrow_completion_signals_once(store, notifier, lifecycle) -> None:
    loan = await store.add_loan(make_loan(status="approved", version=8))

    partial = await lifecycle.record_escrow(loan.id, Decimal("100000"), Decimal("40000"))
    assert partial.status.value == "partial"
    assert loan.sequestre_status == "partial"
    assert notifier.of_type(ESCROW_COMPLETED) == []

    complete = await lifecycle.record_escrow(loan.id, Decimal("100000"), Decimal("100000"))
    assert complete.fires_completion_event is True
    assert loan.sequestre_status == "complete"
    assert loan.sequestre_completion_signaled_at is not None
    assert loan.next_action == FUNDING_NEXT_ACTION
    assert loan.status == "approved"

    again = await lifecycle.record_escrow(loan.id, Decimal("100000"), Decimal("100000"))
    assert again.fires_completion_event is False
    writes = store.writes
    await lifecycle.record_escrow(loan.id, Decimal("100000"), Decimal("100000"))
    assert store.writes == writes

    [(_, _, payload)] = notifier.of_type(ESCROW_COMPLETED)
    assert payload["amount_received"] == Decimal("100000")
    assert payload["next_action"] == FUNDING_NEXT_ACTION


@pytest.mark.asyncio
async def test_escrow_completion_before_approval_sets_hint_on_approval(store, notifier, lifecycle) -> None:
    loan = await store.add_loan(make_loan(status="offer_issued", version=6))

    await lifecycle.record_escrow(loan.id, Decimal("50000"), Decimal("50000"))
    assert len(notifier.of_type(ESCROW_COMPLETED)) == 1
    assert loan.next_action is None

    updated = await lifecycle.transition(loan.id, LoanStatus.APPROVED)
    assert updated.next_action == FUNDING_NEXT_ACTION


@pytest.mark.asyncio
async def test_over_funded_escrow_is_flagged(store, notifier, lifecycle) -> None:
    loan = await store.add_loan(make_loan(status="approved"))

    evaluation = await lifecycle.record_escrow(loan.id, Decimal("100000"), Decimal("100500"))

    assert evaluation.over_funded is True
    assert loan.sequestre_status == "complete"
    assert loan.sequestre_over_funded is True
    assert notifier.of_type(ESCROW_COMPLETED)[0][2]["over_funded"] is True


@pytest.mark.asyncio
async def test_escrow_marker_survives_a_lower_receipt(store, notifier, lifecycle) -> None:
    loan = await store.add_loan(
        make_loan(
            status="approved",
            sequestre_status="complete",
            sequestre_amount_expected=Decimal("100000"),
            sequestre_amount_received=Decimal("100000"),
            sequestre_completion_signaled_at=datetime.now(timezone.utc),
        )
    )

    await lifecycle.record_escrow(loan.id, Decimal("100000"), Decimal("90000"))
    assert loan.sequestre_status == "partial"
    await lifecycle.record_escrow(loan.id, Decimal("100000"), Decimal("100000"))

    assert loan.sequestre_status == "complete"
    assert notifier.of_type(ESCROW_COMPLETED) == []


@pytest.mark.asyncio
async def test_funding_after_escrow(store, notifier, lifecycle) -> None:
    loan = await store.add_loan(make_loan(status="approved"))
    await lifecycle.record_escrow(loan.id, Decimal("30000"), Decimal("30000"))

    funded = await lifecycle.transition(loan.id, LoanStatus.FUNDED)

    assert funded.status == "funded"
    assert funded.next_action is None
    assert [event[0] for event in notifier.events] == [ESCROW_COMPLETED, LOAN_STATUS_CHANGED]


def test_lock_registry_returns_one_lock_per_loan() -> None:
    registry = LoanLockRegistry()
    loan_id = uuid4()
    assert registry.lock_for(loan_id) is registry.lock_for(str(loan_id))
    assert registry.lock_for(loan_id) is not registry.lock_for(uuid4())


@pytest.mark.asyncio
async def test_lock_registry_forgets_released_locks() -> None:
    registry = LoanLockRegistry()
    loan_id = uuid4()

    async with registry.lock_for(loan_id):
        assert len(registry) == 1
    gc.collect()

    assert len(registry) == 0
