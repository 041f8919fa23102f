"""
At-most-once execution for externally retried operations.

execute(key, ...) stores the operation's JSON result under key and returns
the stored result on every later call with the same key. The unique
constraint on idempotency_keys.key is the only arbiter: two racing callers
both run the operation, but only the first insert commits; the loser rolls
its work back and returns the winner's stored result.

Failed operations store nothing, so the caller may retry them.
"""

from __future__ import annotations

import hashlib
import json
from typing import Callable

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import IdempotencyConflict, ValidationError
from ..extensions import db
from ..models import IdempotencyKey
from ..time_utils import utcnow
from .concurrency import run_with_retry


def hash_payload(payload) -> str:
    """sha256 of the canonical JSON form (sorted keys, no whitespace)."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def get_stored(key: str) -> IdempotencyKey | None:
    return db.session.query(IdempotencyKey).filter_by(key=key).first()


def _replay(stored: IdempotencyKey, payload_hash: str) -> dict:
    if stored.payload_hash != payload_hash:
        current_app.logger.warning("Idempotency key %s reused with a different payload", stored.key)
        raise IdempotencyConflict(
            f"Idempotency key {stored.key} was already used with a different payload",
            key=stored.key,
        )
    return stored.response


def execute(key: str, *, endpoint: str, payload, operation: Callable[[], dict]) -> dict:
    """
    Run operation() once per key and return its JSON-serializable result.

    operation must not commit; it runs inside the transaction that also
    inserts the key, and both commit (or roll back) together.
    """
    if not key or not str(key).strip():
        raise ValidationError("Idempotency key is required")
    payload_hash = hash_payload(payload)

    def _op():
        stored = get_stored(key)
        if stored is not None:
            return _replay(stored, payload_hash)

        try:
            response = operation()
            db.session.add(IdempotencyKey(
                key=key,
                endpoint=endpoint,
                payload_hash=payload_hash,
                response=response,
                created_at=utcnow(),
            ))
            db.session.flush()
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            winner = get_stored(key)
            if winner is None:
                raise
            current_app.logger.info("Idempotency key %s committed concurrently; replaying", key)
            return _replay(winner, payload_hash)
        except Exception:
            db.session.rollback()
            raise
        return response

    return run_with_retry(_op)
