# Overview: Transaction, locking and retry helpers shared by the core services.

from __future__ import annotations

import time

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import StateConflictError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_in_transaction(func, *, commit: bool = True, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run func as one all-or-nothing unit.

    commit=True: func runs in its own transaction (retried on lock/version
    conflicts) and is committed on success, rolled back on any error.
    commit=False: the caller owns the transaction; func only flushes.
    """
    if not commit:
        return func()

    def _op():
        try:
            result = func()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError):
            raise
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)


def insert_or_conflict(obj, *, error_cls=StateConflictError, message: str = "Duplicate record"):
    """
    Insert obj and flush, turning a unique-constraint violation into a conflict error.

    The uniqueness invariant lives in the database (partial unique indexes),
    so concurrent callers racing on the same key get exactly one winner.
    """
    db.session.add(obj)
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        raise error_cls(message) from exc
    return obj

