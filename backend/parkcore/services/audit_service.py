"""
Audit trail as a decorator.

Service operations are wrapped with @audited(...) instead of calling an
audit helper by hand. The wrapper runs the operation without committing,
writes the AuditLog row (before/after snapshots) into the same
transaction, then commits if the caller asked for it. A failing operation
therefore leaves neither its changes nor an audit row behind.

Wrapped functions must accept a keyword-only ``commit`` argument.
"""

from __future__ import annotations

from functools import wraps
from typing import Callable

from ..extensions import db
from ..models import AuditLog
from ..time_utils import utcnow
from .concurrency import run_in_transaction


def _snapshot(obj) -> dict | None:
    if obj is None:
        return None
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, dict):
        return obj
    return None


def record(
    *,
    action: str,
    entity: str,
    entity_id: int | None,
    actor_id: int | None,
    before: dict | None = None,
    after: dict | None = None,
) -> AuditLog:
    """Add an audit row to the current transaction (flushes, never commits)."""
    row = AuditLog(
        actor_id=actor_id,
        action=action,
        entity=entity,
        entity_id=entity_id,
        before_json=before,
        after_json=after,
        at=utcnow(),
    )
    db.session.add(row)
    db.session.flush()
    return row


def audited(
    action: str,
    entity: str,
    *,
    load_before: Callable | None = None,
    target: Callable | None = None,
    actor_arg: str = "actor_id",
):
    """
    Record actor, action, entity and before/after snapshots for a service call.

    load_before(*args, **kwargs): returns the entity as it is before the call
    target(result): extracts the entity from the return value (default: result)
    actor_arg: keyword argument holding the acting operator id
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, commit: bool = True, **kwargs):
            def _op():
                before_obj = load_before(*args, **kwargs) if load_before else None
                before = _snapshot(before_obj)
                result = func(*args, commit=False, **kwargs)
                after_obj = target(result) if target else result
                record(
                    action=action,
                    entity=entity,
                    entity_id=getattr(after_obj, "id", None) or getattr(before_obj, "id", None),
                    actor_id=kwargs.get(actor_arg),
                    before=before,
                    after=_snapshot(after_obj),
                )
                return result

            return run_in_transaction(_op, commit=commit)

        return wrapper

    return decorator


def list_for_entity(entity: str, entity_id: int) -> list[AuditLog]:
    return (
        db.session.query(AuditLog)
        .filter_by(entity=entity, entity_id=entity_id)
        .order_by(AuditLog.id)
        .all()
    )
