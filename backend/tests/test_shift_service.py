# Overview: Pytest coverage for shift open/close/cancel, cash adjustments, totals and reports.

"""
Shift Cash Register Tests

Reconciliation identity under test:
    cash_expected == opening_float + cash_collected - withdrawals + deposits
"""

from decimal import Decimal

import pytest

from conftest import checked_out, minutes_after
from parkcore.errors import InvalidAmount, ShiftAlreadyOpen, ShiftNotOpen, ValidationError
from parkcore.models import AuditLog, CashAdjustment, ShiftOperation
from parkcore.services import parking_session_service, payment_service, shift_service


def _paid_session(session, shift_id, minutes=20, **kwargs):
    return parking_session_service.checkout_with_payment(
        session.id,
        method=kwargs.pop("method", "CASH"),
        shift_id=shift_id,
        ended_at=minutes_after(session, minutes),
        **kwargs,
    )


class TestOpenShift:

    def test_open_logs_event(self, db_session, operator, shift):
        assert shift.status == "OPEN"
        assert shift.opening_float == Decimal("10000.00")
        assert shift.device_key == ""
        ops = db_session.query(ShiftOperation).filter_by(shift_id=shift.id).all()
        assert [op.kind for op in ops] == ["OPEN"]
        assert db_session.query(AuditLog).filter_by(action="shift.open", entity_id=shift.id).count() == 1

    def test_second_open_same_device_rejected(self, db_session, operator, shift):
        with pytest.raises(ShiftAlreadyOpen):
            shift_service.open_shift(operator_id=operator.id)

    def test_other_device_may_open(self, db_session, operator, shift):
        other = shift_service.open_shift(operator_id=operator.id, device_id=" POS-2 ")
        assert other.device_key == "POS-2"
        assert shift_service.get_current_shift(operator.id, "POS-2").id == other.id
        assert shift_service.get_current_shift(operator.id).id == shift.id

    def test_reopen_after_close(self, db_session, operator, shift):
        shift_service.close_shift(shift.id, declared_cash="10000")
        again = shift_service.open_shift(operator_id=operator.id, opening_float="5000")
        assert again.id != shift.id

    def test_negative_float_rejected(self, db_session, operator):
        with pytest.raises(InvalidAmount):
            shift_service.open_shift(operator_id=operator.id, opening_float="-1")


class TestAdjustments:

    def test_kinds_are_kept_separate(self, db_session, operator, shift):
        shift_service.record_adjustment(shift.id, kind="withdrawal", amount="2000", reason="Drop", actor_id=operator.id)
        shift_service.record_adjustment(shift.id, kind="DEPOSIT", amount="500", reason="Change", actor_id=operator.id)
        rows = db_session.query(CashAdjustment).filter_by(shift_id=shift.id).order_by(CashAdjustment.id).all()
        assert [(r.kind, r.amount) for r in rows] == [
            ("WITHDRAWAL", Decimal("2000.00")),
            ("DEPOSIT", Decimal("500.00")),
        ]
        kinds = [op.kind for op in db_session.query(ShiftOperation).filter_by(shift_id=shift.id).order_by(ShiftOperation.id)]
        assert kinds == ["OPEN", "WITHDRAWAL", "DEPOSIT"]

    def test_invalid_kind(self, db_session, operator, shift):
        with pytest.raises(ValidationError):
            shift_service.record_adjustment(shift.id, kind="REFUND", amount="100", reason="x", actor_id=operator.id)

    def test_reason_required(self, db_session, operator, shift):
        with pytest.raises(ValidationError):
            shift_service.record_adjustment(shift.id, kind="DEPOSIT", amount="100", reason=" ", actor_id=operator.id)

    def test_amount_must_be_positive(self, db_session, operator, shift):
        with pytest.raises(InvalidAmount):
            shift_service.record_adjustment(shift.id, kind="DEPOSIT", amount="0", reason="x", actor_id=operator.id)

    def test_closed_shift_rejects_adjustments(self, db_session, operator, shift):
        shift_service.cancel_shift(shift.id, canceled_by=operator.id)
        with pytest.raises(ShiftNotOpen):
            shift_service.record_adjustment(shift.id, kind="DEPOSIT", amount="100", reason="x", actor_id=operator.id)
        assert db_session.query(CashAdjustment).count() == 0


class TestTotals:

    def test_reconciliation_identity(self, db_session, operator, shift, open_session):
        _paid_session(open_session, shift.id)
        shift_service.record_adjustment(shift.id, kind="WITHDRAWAL", amount="2000", reason="Drop", actor_id=operator.id)

        totals = shift_service.compute_totals(shift.id)
        assert totals.opening_float == Decimal("10000.00")
        assert totals.cash_collected == Decimal("1000.00")
        assert totals.cash_withdrawals == Decimal("2000.00")
        assert totals.cash_deposits == Decimal("0.00")
        assert totals.cash_expected == Decimal("9000.00")
        assert totals.tickets_count == 1
        assert totals.sales_total == Decimal("1000.00")

    def test_no_adjustments(self, db_session, shift, open_session):
        _paid_session(open_session, shift.id)
        totals = shift_service.compute_totals(shift.id)
        assert totals.cash_expected == totals.opening_float + totals.cash_collected

    def test_adjustment_order_does_not_matter(self, db_session, operator, cashier):
        first = shift_service.open_shift(operator_id=operator.id, opening_float="1000")
        second = shift_service.open_shift(operator_id=cashier.id, opening_float="1000")

        for kind, amount in [("WITHDRAWAL", "300"), ("DEPOSIT", "200"), ("WITHDRAWAL", "50")]:
            shift_service.record_adjustment(first.id, kind=kind, amount=amount, reason="x", actor_id=operator.id)
        for kind, amount in [("WITHDRAWAL", "50"), ("WITHDRAWAL", "300"), ("DEPOSIT", "200")]:
            shift_service.record_adjustment(second.id, kind=kind, amount=amount, reason="x", actor_id=cashier.id)

        a = shift_service.compute_totals(first.id)
        b = shift_service.compute_totals(second.id)
        assert a.cash_expected == b.cash_expected == Decimal("850.00")

    def test_cash_on_open_sale_is_not_collected_yet(self, db_session, shift, open_session):
        _paid_session(open_session, shift.id, amount="400")
        totals = shift_service.compute_totals(shift.id)
        assert totals.cash_collected == Decimal("0.00")
        assert totals.tickets_count == 0
        assert totals.sales_total == Decimal("0.00")
        assert [m.to_dict() for m in totals.payments_by_method] == [
            {"method": "CASH", "collected": "400.00", "count": 1}
        ]

    def test_card_payments_are_not_cash(self, db_session, shift, open_session):
        _paid_session(open_session, shift.id, method="CARD")
        totals = shift_service.compute_totals(shift.id)
        assert totals.cash_collected == Decimal("0.00")
        assert totals.tickets_count == 1
        assert totals.sales_total == Decimal("1000.00")

    def test_sale_paid_across_two_shifts(self, db_session, operator, cashier, shift, open_session):
        other = shift_service.open_shift(operator_id=cashier.id, opening_float="0")
        sale = checked_out(open_session, 20).sale

        payment_service.record_payment(sale_id=sale.id, method="CASH", amount="400", shift_id=shift.id)
        before = shift_service.compute_totals(shift.id)
        assert before.cash_collected == Decimal("0.00")

        payment_service.record_payment(sale_id=sale.id, method="CASH", amount="600", shift_id=other.id)
        a = shift_service.compute_totals(shift.id)
        b = shift_service.compute_totals(other.id)

        assert a.sales_total == Decimal("400.00")
        assert b.sales_total == Decimal("600.00")
        assert a.sales_total + b.sales_total == Decimal("1000.00")
        assert a.tickets_count == b.tickets_count == 1
        assert a.cash_collected == Decimal("400.00")
        assert b.cash_collected == Decimal("600.00")

    def test_failed_payments_are_ignored(self, db_session, shift, open_session):
        sale = checked_out(open_session, 20).sale
        payment_service.record_payment(sale_id=sale.id, method="CASH", amount="1000", shift_id=shift.id, status="FAILED")
        totals = shift_service.compute_totals(shift.id)
        assert totals.cash_collected == Decimal("0.00")
        assert totals.payments_by_method == []


class TestCloseAndCancel:

    def test_close_records_variance(self, db_session, operator, shift, open_session):
        _paid_session(open_session, shift.id)
        shift_service.record_adjustment(shift.id, kind="WITHDRAWAL", amount="2000", reason="Drop", actor_id=operator.id)

        closure = shift_service.close_shift(shift.id, declared_cash="8500", closed_by=operator.id, notes="Short")
        closed = closure.shift
        assert closed.status == "CLOSED"
        assert closed.closed_at is not None
        assert closed.closed_by == operator.id
        assert closed.cash_expected == Decimal("9000.00")
        assert closed.closing_declared_cash == Decimal("8500.00")
        assert closed.cash_over_short == Decimal("-500.00")
        assert closure.totals.cash_over_short == Decimal("-500.00")
        assert closure.totals.cash_declared == Decimal("8500.00")

        close_op = db_session.query(ShiftOperation).filter_by(shift_id=shift.id, kind="CLOSE").one()
        assert close_op.details["cash_over_short"] == "-500.00"

    def test_close_twice_rejected(self, db_session, shift):
        shift_service.close_shift(shift.id, declared_cash="10000")
        with pytest.raises(ShiftNotOpen):
            shift_service.close_shift(shift.id, declared_cash="10000")

    def test_negative_declared_cash_rejected(self, db_session, shift):
        with pytest.raises(InvalidAmount):
            shift_service.close_shift(shift.id, declared_cash="-5")

    def test_cancel(self, db_session, operator, shift):
        canceled = shift_service.cancel_shift(shift.id, canceled_by=operator.id, notes="Wrong drawer")
        assert canceled.status == "CANCELED"
        assert canceled.cash_over_short is None
        assert shift_service.get_current_shift(operator.id) is None
        with pytest.raises(ShiftNotOpen):
            shift_service.cancel_shift(shift.id)


class TestReport:

    def test_report_snapshot(self, db_session, operator, sector, open_session):
        shift = shift_service.open_shift(operator_id=operator.id, opening_float="10000", sector_id=sector.id)
        _paid_session(open_session, shift.id)
        shift_service.record_adjustment(shift.id, kind="DEPOSIT", amount="500", reason="Coins", actor_id=operator.id)

        report = shift_service.shift_report(shift.id)
        assert report["shift"]["operator"] == {"id": operator.id, "name": operator.name}
        assert report["shift"]["sector"]["id"] == sector.id
        assert report["cash_summary"]["cash_expected"] == "11500.00"
        assert report["sales_summary"] == {"tickets_count": 1, "sales_total": "1000.00"}
        assert report["payments_by_method"][0]["method"] == "CASH"
        assert len(report["recent_payments"]) == 1
        assert report["cash_adjustments"][0]["kind"] == "DEPOSIT"
        assert report["generated_at"].endswith("Z")

    def test_recent_payments_limit(self, db_session, shift, open_session):
        sale = checked_out(open_session, 20).sale
        for _ in range(3):
            payment_service.record_payment(sale_id=sale.id, method="CASH", amount="100", shift_id=shift.id)
        report = shift_service.shift_report(shift.id, recent_limit=2)
        assert len(report["recent_payments"]) == 2

    def test_list_shifts(self, db_session, operator, shift):
        assert [s.id for s in shift_service.list_shifts(status="open")] == [shift.id]
        assert shift_service.list_shifts(status="CLOSED") == []
