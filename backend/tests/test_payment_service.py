# Overview: Pytest coverage for payment recording, sale closure and gateway confirmations.

"""
Payment Ledger Tests

Closure is derived from COMPLETED payments only; these tests cover the
closure flip, FAILED exclusion, shift checks and the idempotent gateway
confirmation path.
"""

from decimal import Decimal

import pytest

from conftest import checked_out
from parkcore.errors import (
    IdempotencyConflict,
    InvalidAmount,
    NotFoundError,
    SaleAlreadyClosed,
    ShiftNotOpen,
    StateConflictError,
    ValidationError,
)
from parkcore.models import IdempotencyKey, Payment, ShiftOperation
from parkcore.services import payment_service, shift_service


@pytest.fixture
def to_pay(db_session, operator, open_session):
    """Session checked out after 20 minutes: sale total 1000."""
    return checked_out(open_session, 20, operator.id)


class TestRecordPayment:

    def test_partial_then_full_payment_closes_sale(self, db_session, operator, shift, to_pay):
        first = payment_service.record_payment(
            sale_id=to_pay.sale.id, method="CASH", amount="400", shift_id=shift.id,
            cashier_operator_id=operator.id,
        )
        assert first.sale_closed is False
        assert first.paid_total == Decimal("400.00")
        assert first.remaining == Decimal("600.00")
        assert first.sale.issued_at is None
        assert first.payment.session_id == to_pay.session.id

        second = payment_service.record_payment(
            sale_id=to_pay.sale.id, method="CARD", amount="600", shift_id=shift.id,
            cashier_operator_id=operator.id,
        )
        assert second.sale_closed is True
        assert second.remaining == Decimal("0.00")
        assert second.sale.issued_at is not None
        assert second.sale.session.status == "CLOSED"

    def test_payment_by_session_finds_its_sale(self, db_session, shift, to_pay):
        result = payment_service.record_payment(
            session_id=to_pay.session.id, method="CASH", amount="1000", shift_id=shift.id
        )
        assert result.payment.sale_id == to_pay.sale.id
        assert result.sale_closed is True

    def test_closure_never_flips_back(self, db_session, shift, to_pay):
        paid = payment_service.record_payment(sale_id=to_pay.sale.id, method="CASH", amount="1000", shift_id=shift.id)
        failed = payment_service.record_payment(
            sale_id=to_pay.sale.id, method="CARD", amount="50", shift_id=shift.id, status="FAILED"
        )
        assert failed.sale_closed is False
        assert payment_service.is_sale_closed(paid.sale) is True

    def test_closed_sale_refuses_more_money(self, db_session, shift, to_pay):
        payment_service.record_payment(sale_id=to_pay.sale.id, method="CASH", amount="1000", shift_id=shift.id)
        with pytest.raises(SaleAlreadyClosed):
            payment_service.record_payment(sale_id=to_pay.sale.id, method="CASH", amount="1000", shift_id=shift.id)

        assert payment_service.sale_paid_total(to_pay.sale.id) == Decimal("1000.00")
        assert shift_service.compute_totals(shift.id).sales_total == Decimal("1000.00")

    def test_amount_above_remaining_rejected(self, db_session, shift, to_pay):
        payment_service.record_payment(sale_id=to_pay.sale.id, method="CASH", amount="400", shift_id=shift.id)
        with pytest.raises(InvalidAmount):
            payment_service.record_payment(sale_id=to_pay.sale.id, method="CASH", amount="700", shift_id=shift.id)
        assert payment_service.sale_paid_total(to_pay.sale.id) == Decimal("400.00")

    def test_active_session_cannot_be_prepaid(self, db_session, shift, open_session):
        with pytest.raises(StateConflictError):
            payment_service.record_payment(session_id=open_session.id, method="CASH", amount="1000", shift_id=shift.id)
        assert db_session.query(Payment).count() == 0

        result = checked_out(open_session, 20)
        assert payment_service.sale_paid_total(result.sale.id) == Decimal("0.00")
        assert shift_service.compute_totals(shift.id).cash_collected == Decimal("0.00")

    @pytest.mark.parametrize("amount", ["0", "-10"])
    def test_non_positive_amount_rejected(self, db_session, shift, to_pay, amount):
        with pytest.raises(InvalidAmount):
            payment_service.record_payment(sale_id=to_pay.sale.id, method="CASH", amount=amount, shift_id=shift.id)
        assert db_session.query(Payment).count() == 0

    def test_unknown_method_rejected(self, db_session, to_pay):
        with pytest.raises(ValidationError):
            payment_service.record_payment(sale_id=to_pay.sale.id, method="BITCOIN", amount="10")

    def test_target_required(self, db_session):
        with pytest.raises(ValidationError):
            payment_service.record_payment(method="CASH", amount="10")

    def test_unknown_sale(self, db_session):
        with pytest.raises(NotFoundError):
            payment_service.record_payment(sale_id=999999, method="CASH", amount="10")

    def test_closed_shift_rejected(self, db_session, shift, to_pay):
        shift_service.close_shift(shift.id, declared_cash="10000")
        with pytest.raises(ShiftNotOpen):
            payment_service.record_payment(sale_id=to_pay.sale.id, method="CASH", amount="1000", shift_id=shift.id)
        assert db_session.query(Payment).count() == 0

    def test_failed_payment_is_excluded(self, db_session, shift, to_pay):
        failed = payment_service.record_payment(
            sale_id=to_pay.sale.id, method="CARD", amount="1000", shift_id=shift.id, status="FAILED"
        )
        assert failed.sale_closed is False
        assert failed.paid_total == Decimal("0.00")
        assert payment_service.sale_paid_total(to_pay.sale.id) == Decimal("0.00")
        assert to_pay.session.status == "TO_PAY"

    def test_completed_payment_logs_shift_operation(self, db_session, shift, to_pay):
        result = payment_service.record_payment(
            sale_id=to_pay.sale.id, method="CASH", amount="400", shift_id=shift.id
        )
        op = (
            db_session.query(ShiftOperation)
            .filter_by(shift_id=shift.id, kind="ADJUSTMENT")
            .one()
        )
        assert op.amount == Decimal("400.00")
        assert op.details["payment_id"] == result.payment.id

    def test_sale_summary(self, db_session, shift, to_pay):
        payment_service.record_payment(sale_id=to_pay.sale.id, method="CASH", amount="300", shift_id=shift.id)
        summary = payment_service.get_sale_summary(to_pay.sale.id)
        assert summary["total"] == "1000.00"
        assert summary["paid"] == "300.00"
        assert summary["remaining"] == "700.00"
        assert summary["is_closed"] is False
        assert len(summary["payments"]) == 1


class TestConfirmExternal:

    def test_repeated_confirmation_records_one_payment(self, db_session, to_pay):
        kwargs = dict(transaction_id="tx-1", session_id=to_pay.session.id, amount="1000")
        first = payment_service.confirm_external(**kwargs)
        second = payment_service.confirm_external(**kwargs)

        assert first == second
        assert first["sale_closed"] is True
        assert first["payment"]["method"] == "GATEWAY"
        assert db_session.query(Payment).filter_by(external_transaction_id="tx-1").count() == 1
        assert db_session.query(IdempotencyKey).filter_by(key=f"gateway_tx-1_{to_pay.session.id}").count() == 1

    def test_same_key_different_payload_conflicts(self, db_session, to_pay):
        payment_service.confirm_external(transaction_id="tx-2", session_id=to_pay.session.id, amount="400")
        with pytest.raises(IdempotencyConflict):
            payment_service.confirm_external(transaction_id="tx-2", session_id=to_pay.session.id, amount="600")
        assert db_session.query(Payment).count() == 1

    def test_failed_confirmation_is_stored_but_not_counted(self, db_session, to_pay):
        result = payment_service.confirm_external(
            transaction_id="tx-3", session_id=to_pay.session.id, amount="1000", status="failed"
        )
        assert result["payment"]["status"] == "FAILED"
        assert result["sale_closed"] is False
        assert payment_service.sale_paid_total(to_pay.sale.id) == Decimal("0.00")

    def test_invalid_status_rejected(self, db_session, to_pay):
        with pytest.raises(ValidationError):
            payment_service.confirm_external(
                transaction_id="tx-4", session_id=to_pay.session.id, amount="1000", status="PENDING"
            )

    def test_lands_on_open_shift_of_first_payment(self, db_session, shift, to_pay):
        payment_service.record_payment(sale_id=to_pay.sale.id, method="CASH", amount="400", shift_id=shift.id)
        result = payment_service.confirm_external(transaction_id="tx-5", session_id=to_pay.session.id, amount="600")
        assert result["payment"]["shift_id"] == shift.id
        assert result["sale_closed"] is True

    def test_no_shift_when_first_shift_is_closed(self, db_session, shift, to_pay):
        payment_service.record_payment(sale_id=to_pay.sale.id, method="CASH", amount="400", shift_id=shift.id)
        shift_service.close_shift(shift.id, declared_cash="10000")
        result = payment_service.confirm_external(transaction_id="tx-6", session_id=to_pay.session.id, amount="600")
        assert result["payment"]["shift_id"] is None

    def test_confirmation_on_paid_sale_stores_nothing(self, db_session, to_pay):
        payment_service.confirm_external(transaction_id="tx-8", session_id=to_pay.session.id, amount="1000")
        with pytest.raises(SaleAlreadyClosed):
            payment_service.confirm_external(transaction_id="tx-9", session_id=to_pay.session.id, amount="1000")
        assert db_session.query(Payment).count() == 1
        assert db_session.query(IdempotencyKey).count() == 1

    def test_unknown_session_stores_nothing(self, db_session):
        with pytest.raises(NotFoundError):
            payment_service.confirm_external(transaction_id="tx-7", session_id=999999, amount="100")
        assert db_session.query(IdempotencyKey).count() == 0
