# Overview: Pytest coverage for shortfall debts, manual debts, settlement and summaries.

from decimal import Decimal

import pytest

from conftest import minutes_after
from parkcore.errors import DebtNotPending, InsufficientAmount, InvalidAmount, StateConflictError, ValidationError
from parkcore.models import Debt, Payment, Sale
from parkcore.services import debt_service, parking_session_service, payment_service


@pytest.fixture
def shortfall(db_session, operator, shift, open_session):
    """
    100 minutes falls back to the first-hour rule: 5000 owed,
    3000 paid in cash, 2000 left as a SESSION debt.
    """
    return parking_session_service.checkout_with_payment(
        open_session.id,
        method="CASH",
        amount="3000",
        shift_id=shift.id,
        ended_at=minutes_after(open_session, 100),
        operator_out_id=operator.id,
    )


class TestShortfall:

    def test_shortfall_debt_and_open_sale(self, db_session, shortfall):
        assert shortfall.sale.total == Decimal("5000.00")
        assert shortfall.payment.amount == Decimal("3000.00")
        assert shortfall.debt.principal_amount == Decimal("2000.00")
        assert shortfall.debt.outstanding_amount == Decimal("2000.00")
        assert shortfall.debt.status == "PENDING"
        assert payment_service.is_sale_closed(shortfall.sale) is False

    def test_fully_paid_session_opens_no_debt(self, db_session, open_session):
        result = parking_session_service.checkout(open_session.id, ended_at=minutes_after(open_session, 20))
        assert debt_service.open_from_shortfall(result.session, "1000") is None
        assert db_session.query(Debt).count() == 0


class TestSettle:

    def test_settlement_closes_sale_and_session(self, db_session, operator, shift, shortfall):
        result = debt_service.settle(
            shortfall.debt.id, amount="2000", method="CASH", shift_id=shift.id, cashier_operator_id=operator.id
        )
        assert result.debt.status == "SETTLED"
        assert result.debt.outstanding_amount == Decimal("0.00")
        assert result.debt.settled_at is not None
        assert result.payment.amount == Decimal("2000.00")
        assert result.payment.debt_id == shortfall.debt.id
        assert result.sale.id == shortfall.sale.id
        assert result.change == Decimal("0.00")
        assert payment_service.is_sale_closed(result.sale) is True
        assert result.sale.session.status == "CLOSED"

    def test_overpaid_settlement_returns_change(self, db_session, shift, shortfall):
        result = debt_service.settle(shortfall.debt.id, amount="2500", method="CASH", shift_id=shift.id)
        assert result.payment.amount == Decimal("2000.00")
        assert result.change == Decimal("500.00")

    def test_settling_twice_conflicts_and_changes_nothing(self, db_session, shift, shortfall):
        debt_service.settle(shortfall.debt.id, amount="2000", method="CASH", shift_id=shift.id)
        paid_before = payment_service.sale_paid_total(shortfall.sale.id)
        payments_before = db_session.query(Payment).count()

        with pytest.raises(StateConflictError):
            debt_service.settle(shortfall.debt.id, amount="2000", method="CASH", shift_id=shift.id)

        assert payment_service.sale_paid_total(shortfall.sale.id) == paid_before
        assert db_session.query(Payment).count() == payments_before

    def test_insufficient_amount(self, db_session, shift, shortfall):
        with pytest.raises(InsufficientAmount):
            debt_service.settle(shortfall.debt.id, amount="1000", method="CASH", shift_id=shift.id)
        debt = db_session.get(Debt, shortfall.debt.id)
        assert debt.status == "PENDING"
        assert debt.outstanding_amount == Decimal("2000.00")

    def test_non_positive_amount(self, db_session, shortfall):
        with pytest.raises(InvalidAmount):
            debt_service.settle(shortfall.debt.id, amount="0", method="CASH")

    def test_manual_debt_settlement_creates_sale(self, db_session, shift):
        debt = debt_service.create_manual(plate="xy 99", amount="3000", origin="fine", notes="Double parking")
        assert debt.plate == "XY99"
        assert debt.origin == "FINE"
        assert debt.session_id is None

        result = debt_service.settle(debt.id, amount="3000", method="CARD", shift_id=shift.id)
        assert result.sale.session_id is None
        assert result.sale.total == Decimal("3000.00")
        assert payment_service.is_sale_closed(result.sale) is True
        assert db_session.query(Sale).count() == 1


class TestDirectPaymentOnShortfall:

    def test_paying_the_sale_settles_its_debt(self, db_session, shift, shortfall):
        result = payment_service.record_payment(
            sale_id=shortfall.sale.id, method="CASH", amount="2000", shift_id=shift.id
        )
        assert result.sale_closed is True

        debt = db_session.get(Debt, shortfall.debt.id)
        assert debt.status == "SETTLED"
        assert debt.outstanding_amount == Decimal("0.00")
        assert debt.settled_at is not None
        assert debt_service.pending_total_for_plate("ABCD12") == Decimal("0.00")

        with pytest.raises(DebtNotPending):
            debt_service.settle(debt.id, amount="2000", method="CASH", shift_id=shift.id)
        assert payment_service.sale_paid_total(shortfall.sale.id) == Decimal("5000.00")

    def test_partial_payment_reduces_debt(self, db_session, shift, shortfall):
        payment_service.record_payment(sale_id=shortfall.sale.id, method="CARD", amount="500", shift_id=shift.id)
        debt = db_session.get(Debt, shortfall.debt.id)
        assert debt.status == "PENDING"
        assert debt.principal_amount == Decimal("2000.00")
        assert debt.outstanding_amount == Decimal("1500.00")

        with pytest.raises(InsufficientAmount):
            debt_service.settle(debt.id, amount="1000", method="CASH", shift_id=shift.id)

        result = debt_service.settle(debt.id, amount="2000", method="CASH", shift_id=shift.id)
        assert result.payment.amount == Decimal("1500.00")
        assert result.change == Decimal("500.00")
        assert payment_service.sale_paid_total(shortfall.sale.id) == Decimal("5000.00")
        assert result.sale.session.status == "CLOSED"


class TestManualAndCancel:

    def test_session_origin_not_allowed_by_hand(self, db_session):
        with pytest.raises(ValidationError):
            debt_service.create_manual(plate="ABCD12", amount="1000", origin="SESSION")

    def test_amount_must_be_positive(self, db_session):
        with pytest.raises(InvalidAmount):
            debt_service.create_manual(plate="ABCD12", amount="0")

    def test_cancel(self, db_session):
        debt = debt_service.create_manual(plate="ABCD12", amount="1000")
        cancelled = debt_service.cancel(debt.id, notes="Appeal accepted")
        assert cancelled.status == "CANCELLED"
        assert cancelled.cancelled_at is not None
        assert "Appeal accepted" in cancelled.notes

        with pytest.raises(DebtNotPending):
            debt_service.cancel(debt.id)
        with pytest.raises(DebtNotPending):
            debt_service.settle(debt.id, amount="1000", method="CASH")


class TestQueries:

    def test_pending_total_for_plate(self, db_session, shortfall):
        debt_service.create_manual(plate="ABCD12", amount="1500", origin="FINE")
        assert debt_service.pending_total_for_plate("abcd12") == Decimal("3500.00")

    def test_plate_summary(self, db_session, shift, shortfall):
        debt_service.create_manual(plate="ABCD12", amount="1500")
        debt_service.settle(shortfall.debt.id, amount="2000", method="CASH", shift_id=shift.id)
        summary = debt_service.plate_summary("ABCD12")
        assert summary["total_debts"] == 2
        assert summary["pending_debts"] == 1
        assert summary["settled_debts"] == 1
        assert summary["total_pending_amount"] == "1500.00"

    def test_pending_summary(self, db_session, shortfall):
        debt_service.create_manual(plate="ABCD12", amount="1500", origin="FINE")
        debt_service.create_manual(plate="ZZ9999", amount="700")
        summary = debt_service.pending_summary()
        assert summary["total_debts"] == 3
        assert summary["total_amount"] == "4200.00"
        assert summary["by_origin"]["SESSION"] == {"count": 1, "total": "2000.00"}
        assert summary["by_origin"]["FINE"] == {"count": 1, "total": "1500.00"}
        assert summary["by_plate"]["ABCD12"]["count"] == 2
        assert summary["by_plate"]["ZZ9999"]["total"] == "700.00"
        assert summary["oldest_debt"] is not None

    def test_pending_summary_empty(self, db_session):
        summary = debt_service.pending_summary()
        assert summary["total_debts"] == 0
        assert summary["total_amount"] == "0.00"
        assert summary["oldest_debt"] is None
