from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from loan_engine.core.exceptions import ConcurrencyConflictError, DocumentNotFoundError, LoanNotFoundError
from loan_engine.models.loan_application import LoanApplication
from loan_engine.models.loan_status_history import LoanStatusHistory
from loan_engine.services.loan_store import SqlAlchemyLoanStore, StatusHistoryEntry
from conftest import FakeResult, entity_handler, make_document, make_loan


def _entry() -> StatusHistoryEntry:
    return StatusHistoryEntry(old_status="draft", new_status="pending", trigger="manual", actor_id=uuid4())


@pytest.mark.asyncio
async def test_get_loan_not_found(fake_db) -> None:
    store = SqlAlchemyLoanStore(fake_db)
    with pytest.raises(LoanNotFoundError):
        await store.get_loan(uuid4())


@pytest.mark.asyncio
async def test_get_loan_returns_row(fake_db) -> None:
    loan = make_loan()
    fake_db.on_execute(entity_handler(LoanApplication, FakeResult(scalar=loan)))
    store = SqlAlchemyLoanStore(fake_db)
    assert await store.get_loan(loan.id) is loan


@pytest.mark.asyncio
async def test_compare_and_set_conflict_rolls_back(fake_db) -> None:
    store = SqlAlchemyLoanStore(fake_db)
    loan_id = uuid4()

    with pytest.raises(ConcurrencyConflictError) as exc:
        await store.compare_and_set(
            loan_id,
            expected_version=3,
            expected_status="draft",
            changes={"status": "pending"},
            history=_entry(),
        )

    assert exc.value.details["expected_version"] == 3
    assert exc.value.details["expected_status"] == "draft"
    assert fake_db.rollbacks == 1
    assert fake_db.commits == 0
    assert fake_db.added == []


@pytest.mark.asyncio
async def test_compare_and_set_writes_history_in_same_commit(fake_db) -> None:
    loan = make_loan(status="pending", version=2)
    fake_db.on_execute_return(FakeResult(scalar=loan))
    store = SqlAlchemyLoanStore(fake_db)
    entry = _entry()

    updated = await store.compare_and_set(
        loan.id,
        expected_version=1,
        expected_status="draft",
        changes={"status": "pending"},
        history=entry,
    )

    assert updated is loan
    assert fake_db.commits == 1
    [history] = fake_db.added
    assert isinstance(history, LoanStatusHistory)
    assert history.loan_application_id == loan.id
    assert (history.old_status, history.new_status, history.actor_id) == ("draft", "pending", entry.actor_id)

    stmt = fake_db.executed[0]
    compiled = str(stmt.whereclause)
    assert "loan_applications.version" in compiled
    assert "loan_applications.status" in compiled


@pytest.mark.asyncio
async def test_compare_and_set_without_history(fake_db) -> None:
    loan = make_loan(documents_complete=True)
    fake_db.on_execute_return(FakeResult(scalar=loan))
    store = SqlAlchemyLoanStore(fake_db)

    await store.compare_and_set(
        loan.id, expected_version=1, expected_status="draft", changes={"documents_complete": True}
    )

    assert fake_db.added == []
    assert fake_db.commits == 1


@pytest.mark.asyncio
async def test_compare_and_set_database_error_rolls_back_and_raises(fake_db) -> None:
    fake_db.on_execute(lambda _stmt: OperationalError("UPDATE", {}, Exception("connection reset")))
    store = SqlAlchemyLoanStore(fake_db)

    with pytest.raises(OperationalError):
        await store.compare_and_set(
            uuid4(), expected_version=1, expected_status="draft", changes={"status": "pending"}, history=_entry()
        )

    assert fake_db.rollbacks == 1
    assert fake_db.commits == 0


@pytest.mark.asyncio
async def test_commit_failure_rolls_back(fake_db) -> None:
    loan = make_loan()
    fake_db.on_execute_return(FakeResult(scalar=loan))
    fake_db.fail_commit = OperationalError("COMMIT", {}, Exception("disk full"))
    store = SqlAlchemyLoanStore(fake_db)

    with pytest.raises(OperationalError):
        await store.compare_and_set(
            loan.id, expected_version=1, expected_status="draft", changes={"status": "pending"}, history=_entry()
        )

    assert fake_db.rollbacks == 1


@pytest.mark.asyncio
async def test_get_document_not_found(fake_db) -> None:
    store = SqlAlchemyLoanStore(fake_db)
    with pytest.raises(DocumentNotFoundError):
        await store.get_document(uuid4(), uuid4())


@pytest.mark.asyncio
async def test_list_documents(fake_db) -> None:
    loan = make_loan()
    documents = [make_document(loan), make_document(loan, category="payslips")]
    fake_db.on_execute_return(FakeResult(items=documents))
    store = SqlAlchemyLoanStore(fake_db)
    assert await store.list_documents(loan.id) == documents


@pytest.mark.asyncio
async def test_update_document_commits(fake_db) -> None:
    loan = make_loan()
    document = make_document(loan, status="pending")
    store = SqlAlchemyLoanStore(fake_db)

    updated = await store.update_document(document, {"status": "approved"})

    assert updated.status == "approved"
    assert fake_db.commits == 1
