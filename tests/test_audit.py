from decimal import Decimal
from uuid import uuid4

from loan_engine.services.audit import record_audit_event, serialize_for_audit


def test_record_audit_event_diffs_old_and_new_values() -> None:
    loan_id = uuid4()
    actor = uuid4()
    entry = record_audit_event(
        action="loan.status_changed",
        loan_id=loan_id,
        actor_id=actor,
        old_value={"status": "draft", "version": 1},
        new_value={"status": "pending", "version": 2},
    )
    assert entry["resource_id"] == str(loan_id)
    assert entry["actor_id"] == str(actor)
    assert entry["changes"] == {
        "status": {"from": "draft", "to": "pending"},
        "version": {"from": 1, "to": 2},
    }


def test_record_audit_event_without_old_value() -> None:
    entry = record_audit_event(
        action="escrow.completed", loan_id=uuid4(), new_value={"amount_received": Decimal("100000.00")}
    )
    assert entry["actor_id"] is None
    assert entry["old_value"] is None
    assert entry["new_value"] == {"amount_received": "100000.00"}
    assert entry["changes"] == {"amount_received": {"from": None, "to": "100000.00"}}


def test_serialize_for_audit_keeps_decimal_precision() -> None:
    assert serialize_for_audit({"rate": Decimal("3.10")}) == {"rate": "3.10"}
