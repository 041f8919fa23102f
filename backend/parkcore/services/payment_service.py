"""
Payment ledger.

Payments are append-only rows against a sale and/or a session, tagged to
the shift active at payment time. Whether a sale is closed (fully paid) is
never stored: it is recomputed from COMPLETED payment rows every time.

DESIGN:
- The sale row is locked and touched (last_payment_at) by every payment,
  so two concurrent payments on the same sale serialize (row lock) or
  collide on version_id and are retried; the closure check always sees
  the other payment
- When a sale becomes closed: issued_at is stamped and its session moves
  TO_PAY -> PAID -> CLOSED in the same transaction
- When the checkout flow leaves a shortfall, a debt is opened for it
- A PENDING shortfall debt of the sale's session follows the sale: its
  outstanding amount never exceeds what the sale still owes, and it is
  SETTLED when the sale closes by direct payment
- Completed payments are refused on a closed sale and may not exceed the
  remaining balance; a session can only be paid once it has a sale
- FAILED payments are terminal and excluded from every sum
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..errors import (
    InvalidAmount,
    NotFoundError,
    SaleAlreadyClosed,
    ShiftNotOpen,
    StateConflictError,
    ValidationError,
)
from ..extensions import db
from ..models import Debt, Payment, Sale, Shift
from ..money import ZERO, money_json, to_money
from ..time_utils import utcnow
from . import idempotency_service, parking_session_service
from .concurrency import lock_for_update, run_in_transaction


# =============================================================================
# METHODS / STATUSES (CONSTANTS)
# =============================================================================

METHOD_CASH = "CASH"
METHOD_CARD = "CARD"
METHOD_GATEWAY = "GATEWAY"
METHOD_TRANSFER = "TRANSFER"

VALID_METHODS = [METHOD_CASH, METHOD_CARD, METHOD_GATEWAY, METHOD_TRANSFER]

STATUS_PENDING = "PENDING"
STATUS_COMPLETED = "COMPLETED"
STATUS_FAILED = "FAILED"
STATUS_CANCELLED = "CANCELLED"

VALID_STATUSES = [STATUS_PENDING, STATUS_COMPLETED, STATUS_FAILED, STATUS_CANCELLED]


@dataclass
class PaymentResult:
    payment: Payment
    sale: Sale | None
    paid_total: Decimal
    sale_closed: bool
    debt: Debt | None = None

    @property
    def remaining(self) -> Decimal:
        if self.sale is None:
            return ZERO
        return max(to_money(self.sale.total) - self.paid_total, ZERO)

    def to_dict(self) -> dict:
        return {
            "payment": self.payment.to_dict(),
            "sale": self.sale.to_dict() if self.sale else None,
            "paid_total": money_json(self.paid_total),
            "remaining": money_json(self.remaining),
            "sale_closed": self.sale_closed,
            "debt": self.debt.to_dict() if self.debt else None,
        }


def normalize_method(method: str | None) -> str:
    value = (method or "").strip().upper()
    if value not in VALID_METHODS:
        raise ValidationError(f"Invalid payment method: {method}. Must be one of {VALID_METHODS}")
    return value


def get_payment(payment_id: int) -> Payment:
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError(f"Payment {payment_id} not found", payment_id=payment_id)
    return payment


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", sale_id=sale_id)
    return sale


# =============================================================================
# CLOSURE (derived, never stored)
# =============================================================================

def sale_paid_total(sale_id: int) -> Decimal:
    """Sum of COMPLETED payments for a sale, summed as Decimals."""
    amounts = (
        db.session.query(Payment.amount)
        .filter(Payment.sale_id == sale_id, Payment.status == STATUS_COMPLETED)
        .all()
    )
    return sum((to_money(a) for (a,) in amounts), ZERO)


def is_sale_closed(sale: Sale) -> bool:
    return sale_paid_total(sale.id) >= to_money(sale.total)


def get_sale_summary(sale_id: int) -> dict:
    sale = get_sale(sale_id)
    paid = sale_paid_total(sale.id)
    total = to_money(sale.total)
    payments = (
        db.session.query(Payment)
        .filter_by(sale_id=sale.id)
        .order_by(Payment.paid_at, Payment.id)
        .all()
    )
    return {
        "sale": sale.to_dict(),
        "total": money_json(total),
        "paid": money_json(paid),
        "remaining": money_json(max(total - paid, ZERO)),
        "is_closed": paid >= total,
        "payments": [p.to_dict() for p in payments],
    }


def _sync_session_debts(sale: Sale, paid: Decimal, *, exclude_debt_id: int | None) -> None:
    """Bring PENDING shortfall debts of the sale's session in line with what the sale still owes."""
    from . import debt_service

    if sale.session_id is None:
        return
    remaining = max(to_money(sale.total) - paid, ZERO)
    debts = lock_for_update(
        db.session.query(Debt).filter_by(
            session_id=sale.session_id,
            origin=debt_service.ORIGIN_SESSION,
            status=debt_service.STATUS_PENDING,
        )
    ).all()
    for debt in debts:
        if debt.id == exclude_debt_id:
            continue
        if remaining == ZERO:
            debt.status = debt_service.STATUS_SETTLED
            debt.outstanding_amount = ZERO
            debt.settled_at = utcnow()
            current_app.logger.info("Debt %s settled by direct payment on sale %s", debt.id, sale.id)
        elif to_money(debt.outstanding_amount) > remaining:
            debt.outstanding_amount = remaining
            current_app.logger.info("Debt %s reduced to %s by payment on sale %s", debt.id, remaining, sale.id)


def _reconcile_sale(
    sale: Sale, *, actor_id: int | None, exclude_debt_id: int | None = None
) -> tuple[Decimal, bool]:
    """
    Recompute closure after a payment was flushed. Returns (paid_total, closed).

    exclude_debt_id is the debt being settled by this payment, if any; the
    settlement updates that debt itself.
    """
    paid = sale_paid_total(sale.id)
    closed = paid >= to_money(sale.total)
    _sync_session_debts(sale, paid, exclude_debt_id=exclude_debt_id)
    if not closed:
        return paid, False

    if sale.issued_at is None:
        sale.issued_at = utcnow()

    session = sale.session
    if session is not None and session.status == parking_session_service.STATUS_TO_PAY:
        parking_session_service.mark_paid(session.id, actor_id=actor_id, commit=False)
        parking_session_service.close_session(session.id, actor_id=actor_id, commit=False)

    current_app.logger.info("Sale %s closed (paid %s of %s)", sale.id, paid, sale.total)
    return paid, True


# =============================================================================
# RECORDING
# =============================================================================

def _require_open_shift(shift_id: int) -> Shift:
    shift = db.session.get(Shift, shift_id)
    if shift is None:
        raise NotFoundError(f"Shift {shift_id} not found", shift_id=shift_id)
    if shift.status != "OPEN":
        raise ShiftNotOpen(f"Shift {shift_id} is {shift.status}", shift_id=shift_id)
    return shift


def record_payment(
    *,
    method: str,
    amount,
    shift_id: int | None = None,
    sale_id: int | None = None,
    session_id: int | None = None,
    debt_id: int | None = None,
    cashier_operator_id: int | None = None,
    authorization_code: str | None = None,
    external_transaction_id: str | None = None,
    provider_ref: str | None = None,
    payload_hash: str | None = None,
    status: str = STATUS_COMPLETED,
    settle_shortfall: bool = False,
    commit: bool = True,
) -> PaymentResult:
    """
    Record one payment and reconcile its sale.

    Raises:
        InvalidAmount: amount <= 0, or a completed amount above the remaining balance
        ValidationError: unknown method/status, or neither sale nor session given
        ShiftNotOpen: the shift exists but is not OPEN
        SaleAlreadyClosed: completed payment on a fully paid sale
        StateConflictError: the session has not been checked out yet
    """
    from . import debt_service

    method = normalize_method(method)
    if status not in VALID_STATUSES:
        raise ValidationError(f"Invalid payment status: {status}")
    amount = to_money(amount)
    if amount <= 0:
        raise InvalidAmount("Payment amount must be positive", amount=money_json(amount))
    if sale_id is None and session_id is None:
        raise ValidationError("sale_id or session_id is required")

    def _op():
        session = None
        if session_id is not None:
            session = parking_session_service.get_session(session_id)

        target_sale_id = sale_id
        if target_sale_id is None and session is not None and session.sale is not None:
            target_sale_id = session.sale.id

        sale = None
        if target_sale_id is not None:
            sale = lock_for_update(db.session.query(Sale).filter_by(id=target_sale_id)).first()
            if sale is None:
                raise NotFoundError(f"Sale {target_sale_id} not found", sale_id=target_sale_id)
            if session is not None and sale.session_id not in (None, session.id):
                raise ValidationError(f"Sale {sale.id} does not belong to session {session.id}")
        elif session is not None:
            raise StateConflictError(
                f"Session {session.id} is {session.status} and has no sale to pay",
                session_id=session.id,
                status=session.status,
            )

        if sale is not None and status == STATUS_COMPLETED:
            remaining = to_money(sale.total) - sale_paid_total(sale.id)
            if remaining <= 0:
                raise SaleAlreadyClosed(f"Sale {sale.id} is already paid", sale_id=sale.id)
            if amount > remaining:
                raise InvalidAmount(
                    f"Amount {amount} exceeds the remaining balance {remaining}",
                    sale_id=sale.id,
                    remaining=money_json(remaining),
                )

        if shift_id is not None:
            _require_open_shift(shift_id)

        now = utcnow()
        payment = Payment(
            sale_id=sale.id if sale else None,
            session_id=session.id if session else (sale.session_id if sale else None),
            shift_id=shift_id,
            debt_id=debt_id,
            cashier_operator_id=cashier_operator_id,
            method=method,
            amount=amount,
            status=status,
            paid_at=now,
            authorization_code=authorization_code,
            external_transaction_id=external_transaction_id,
            provider_ref=provider_ref,
            payload_hash=payload_hash,
        )
        db.session.add(payment)
        if sale is not None:
            sale.last_payment_at = now
        db.session.flush()

        if status == STATUS_COMPLETED and shift_id is not None:
            from .shift_service import log_operation
            log_operation(
                shift_id,
                kind="ADJUSTMENT",
                amount=amount,
                actor_id=cashier_operator_id,
                details={"ref_type": "payment", "payment_id": payment.id, "method": method},
            )

        current_app.logger.info(
            "Payment recorded: id=%s sale=%s session=%s shift=%s method=%s amount=%s status=%s",
            payment.id, payment.sale_id, payment.session_id, shift_id, method, amount, status,
        )

        if sale is None or status != STATUS_COMPLETED:
            paid = sale_paid_total(sale.id) if sale else ZERO
            return PaymentResult(payment=payment, sale=sale, paid_total=paid, sale_closed=False)

        paid, closed = _reconcile_sale(sale, actor_id=cashier_operator_id, exclude_debt_id=debt_id)
        result = PaymentResult(payment=payment, sale=sale, paid_total=paid, sale_closed=closed)

        if not closed and settle_shortfall and sale.session is not None:
            result.debt = debt_service.open_from_shortfall(sale.session, paid, commit=False)
        return result

    return run_in_transaction(_op, commit=commit)


# =============================================================================
# EXTERNAL GATEWAY CONFIRMATION
# =============================================================================

def gateway_key(transaction_id: str, session_id: int) -> str:
    return f"gateway_{transaction_id}_{session_id}"


def confirm_external(
    *,
    transaction_id: str,
    session_id: int,
    amount,
    status: str = STATUS_COMPLETED,
    provider_ref: str | None = None,
    authorization_code: str | None = None,
    payload: dict | None = None,
) -> dict:
    """
    Record a gateway confirmation at most once per (transaction, session).

    A repeated callback returns the stored result unchanged; the same key
    with a different payload is an IdempotencyConflict. The payment lands
    on the shift of the sale's first shift-tagged payment while that shift
    is still OPEN, otherwise on no shift.
    """
    if not transaction_id or not str(transaction_id).strip():
        raise ValidationError("transaction_id is required")
    status = (status or "").strip().upper()
    if status not in (STATUS_COMPLETED, STATUS_FAILED):
        raise ValidationError("status must be COMPLETED or FAILED")

    if payload is None:
        payload = {
            "transaction_id": transaction_id,
            "session_id": session_id,
            "amount": money_json(to_money(amount)),
            "status": status,
            "provider_ref": provider_ref,
            "authorization_code": authorization_code,
        }
    key = gateway_key(transaction_id, session_id)
    payload_hash = idempotency_service.hash_payload(payload)

    def _operation() -> dict:
        session = parking_session_service.get_session(session_id)
        sale = session.sale

        shift_id = None
        if sale is not None:
            first = (
                db.session.query(Payment)
                .filter(Payment.sale_id == sale.id, Payment.shift_id.isnot(None))
                .order_by(Payment.id)
                .first()
            )
            if first is not None and first.shift.status == "OPEN":
                shift_id = first.shift_id

        result = record_payment(
            sale_id=sale.id if sale else None,
            session_id=session.id,
            method=METHOD_GATEWAY,
            amount=amount,
            shift_id=shift_id,
            status=status,
            external_transaction_id=transaction_id,
            provider_ref=provider_ref,
            authorization_code=authorization_code,
            payload_hash=payload_hash,
            commit=False,
        )
        return result.to_dict()

    return idempotency_service.execute(
        key,
        endpoint="payments.confirm_external",
        payload=payload,
        operation=_operation,
    )
