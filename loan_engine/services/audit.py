from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from fastapi.encoders import jsonable_encoder

from loan_engine.core.logging import get_audit_logger


def serialize_for_audit(value: Any) -> Any:
    return jsonable_encoder(
        value,
        custom_encoder={
            Decimal: lambda v: str(v),
            datetime: lambda v: v.isoformat(),
            date: lambda v: v.isoformat(),
        },
    )


def _diff_values(old: Any, new: Any, prefix: str = "") -> dict[str, dict[str, Any]]:
    changes: dict[str, dict[str, Any]] = {}
    if isinstance(old, dict) and isinstance(new, dict):
        keys = set(old.keys()) | set(new.keys())
        for key in keys:
            path = f"{prefix}.{key}" if prefix else str(key)
            changes.update(_diff_values(old.get(key), new.get(key), path))
        return changes
    if old != new:
        changes[prefix or "value"] = {"from": old, "to": new}
    return changes


def _build_summary(action: str, changes: dict[str, dict[str, Any]] | None) -> str:
    if not changes:
        return action
    keys = sorted(changes.keys())
    snippet = ", ".join(keys[:3])
    suffix = "..." if len(keys) > 3 else ""
    return f"{action}: {snippet}{suffix}"


def record_audit_event(
    *,
    action: str,
    loan_id,
    actor_id=None,
    old_value: Any | None = None,
    new_value: Any | None = None,
) -> dict[str, Any]:
    """Write one entry to the audit stream and return it."""
    serialized_old = serialize_for_audit(old_value) if old_value is not None else None
    serialized_new = serialize_for_audit(new_value) if new_value is not None else None
    changes = None
    if serialized_old is not None or serialized_new is not None:
        changes = _diff_values(serialized_old or {}, serialized_new or {}) or None
    entry = {
        "action": action,
        "resource_type": "loan_application",
        "resource_id": str(loan_id),
        "actor_id": str(actor_id) if actor_id else None,
        "old_value": serialized_old,
        "new_value": serialized_new,
        "changes": changes,
    }
    get_audit_logger().info(_build_summary(action, changes), extra={"audit": entry, "loan_id": str(loan_id)})
    return entry
