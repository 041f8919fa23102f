# Overview: Pytest coverage for at-most-once execution keyed by idempotency keys.

import pytest

from parkcore.errors import IdempotencyConflict, ValidationError
from parkcore.models import IdempotencyKey, Sector
from parkcore.services import idempotency_service


class TestHashPayload:

    def test_key_order_does_not_matter(self):
        a = idempotency_service.hash_payload({"a": 1, "b": "x"})
        b = idempotency_service.hash_payload({"b": "x", "a": 1})
        assert a == b
        assert len(a) == 64

    def test_values_matter(self):
        assert idempotency_service.hash_payload({"a": 1}) != idempotency_service.hash_payload({"a": 2})


class TestExecute:

    def test_operation_runs_once(self, db_session):
        calls = []

        def operation():
            calls.append(1)
            sector = Sector(name=f"Sector {len(calls)}")
            db_session.add(sector)
            db_session.flush()
            return {"sector_id": sector.id}

        first = idempotency_service.execute("k-1", endpoint="test", payload={"n": 1}, operation=operation)
        second = idempotency_service.execute("k-1", endpoint="test", payload={"n": 1}, operation=operation)

        assert first == second
        assert len(calls) == 1
        assert db_session.query(Sector).count() == 1
        stored = idempotency_service.get_stored("k-1")
        assert stored.endpoint == "test"
        assert stored.response == first

    def test_different_payload_conflicts(self, db_session):
        idempotency_service.execute("k-2", endpoint="test", payload={"n": 1}, operation=lambda: {"ok": True})
        with pytest.raises(IdempotencyConflict):
            idempotency_service.execute("k-2", endpoint="test", payload={"n": 2}, operation=lambda: {"ok": True})

    def test_failed_operation_stores_nothing(self, db_session):
        def failing():
            db_session.add(Sector(name="Rolled back"))
            db_session.flush()
            raise RuntimeError("gateway exploded")

        with pytest.raises(RuntimeError):
            idempotency_service.execute("k-3", endpoint="test", payload={}, operation=failing)

        assert db_session.query(IdempotencyKey).count() == 0
        assert db_session.query(Sector).count() == 0

        # the key is free for a retry
        result = idempotency_service.execute("k-3", endpoint="test", payload={}, operation=lambda: {"ok": True})
        assert result == {"ok": True}

    def test_key_required(self, db_session):
        with pytest.raises(ValidationError):
            idempotency_service.execute(" ", endpoint="test", payload={}, operation=lambda: {})
