"""
Parking session lifecycle.

STATES:
- CREATED -> ACTIVE -> TO_PAY -> PAID -> CLOSED
- CREATED / ACTIVE / TO_PAY -> CANCELED

CLOSED and CANCELED are terminal. Sessions are never deleted.

DESIGN:
- Check-in relies on the partial unique index over (plate, sector_id)
  WHERE status = 'ACTIVE': a concurrent duplicate check-in loses on flush
  and gets a StateConflictError
- Checkout prices the stay, stores gross/discount/net, moves the session
  to TO_PAY and creates its (unissued) Sale in one transaction
- Re-invoking checkout on a TO_PAY session is rejected (SessionNotActive)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app

from ..errors import (
    InvalidAmount,
    InvalidTransition,
    NotFoundError,
    SessionNotActive,
    StateConflictError,
    ValidationError,
)
from ..extensions import db
from ..models import Debt, Operator, OperatorAssignment, ParkingSession, Payment, Sale, Street
from ..money import ZERO, money_json, to_money
from ..time_utils import utcnow
from . import quota_service, tariff_service
from .audit_service import audited
from .concurrency import insert_or_conflict, lock_for_update, run_in_transaction


STATUS_CREATED = "CREATED"
STATUS_ACTIVE = "ACTIVE"
STATUS_TO_PAY = "TO_PAY"
STATUS_PAID = "PAID"
STATUS_CLOSED = "CLOSED"
STATUS_CANCELED = "CANCELED"

TRANSITIONS = {
    STATUS_CREATED: {STATUS_ACTIVE, STATUS_CANCELED},
    STATUS_ACTIVE: {STATUS_TO_PAY, STATUS_CANCELED},
    STATUS_TO_PAY: {STATUS_PAID, STATUS_CANCELED},
    STATUS_PAID: {STATUS_CLOSED},
    STATUS_CLOSED: set(),
    STATUS_CANCELED: set(),
}


@dataclass
class CheckInResult:
    session: ParkingSession
    pending_debt_total: Decimal

    @property
    def has_pending_debts(self) -> bool:
        return self.pending_debt_total > 0

    def to_dict(self) -> dict:
        return {
            "session": self.session.to_dict(),
            "pending_debt_total": money_json(self.pending_debt_total),
            "has_pending_debts": self.has_pending_debts,
        }


@dataclass
class CheckoutResult:
    session: ParkingSession
    sale: Sale
    price: tariff_service.SessionPrice

    def to_dict(self) -> dict:
        return {
            "session": self.session.to_dict(),
            "sale": self.sale.to_dict(),
            "quote": self.price.to_dict(),
        }


@dataclass
class CheckoutPaymentResult:
    session: ParkingSession
    sale: Sale
    price: tariff_service.SessionPrice
    payment: Payment | None = None
    debt: Debt | None = None
    change: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            "session": self.session.to_dict(),
            "sale": self.sale.to_dict(),
            "quote": self.price.to_dict(),
            "payment": self.payment.to_dict() if self.payment else None,
            "debt": self.debt.to_dict() if self.debt else None,
            "change": money_json(self.change),
        }


def normalize_plate(plate: str | None) -> str:
    if plate is None or not str(plate).strip():
        raise ValidationError("plate is required")
    normalized = "".join(str(plate).split()).upper()
    if len(normalized) > 16:
        raise ValidationError("plate exceeds max length 16")
    return normalized


def get_session(session_id: int) -> ParkingSession:
    session = db.session.get(ParkingSession, session_id)
    if session is None:
        raise NotFoundError(f"Parking session {session_id} not found", session_id=session_id)
    return session


def _lock_session(session_id: int) -> ParkingSession:
    session = lock_for_update(db.session.query(ParkingSession).filter_by(id=session_id)).first()
    if session is None:
        raise NotFoundError(f"Parking session {session_id} not found", session_id=session_id)
    return session


def _transition(session: ParkingSession, to_status: str) -> None:
    allowed = TRANSITIONS.get(session.status, set())
    if to_status not in allowed:
        raise InvalidTransition(
            f"Cannot move session {session.id} from {session.status} to {to_status}",
            session_id=session.id,
            from_status=session.status,
            to_status=to_status,
        )
    current_app.logger.info("Session %s: %s -> %s", session.id, session.status, to_status)
    session.status = to_status


def _require_assigned_operator(operator_id: int, sector_id: int, street_id: int | None, at: datetime) -> Operator:
    operator = db.session.get(Operator, operator_id)
    if operator is None:
        raise NotFoundError(f"Operator {operator_id} not found", operator_id=operator_id)
    if not operator.is_active:
        raise StateConflictError(f"Operator {operator_id} is not active", operator_id=operator_id)

    assignments = (
        db.session.query(OperatorAssignment)
        .filter_by(operator_id=operator_id, sector_id=sector_id)
        .all()
    )
    for assignment in assignments:
        if not assignment.is_valid_at(at):
            continue
        if assignment.street_id is None or assignment.street_id == street_id:
            return operator

    raise StateConflictError(
        f"Operator {operator_id} is not assigned to sector {sector_id}",
        operator_id=operator_id,
        sector_id=sector_id,
        street_id=street_id,
    )


# =============================================================================
# CHECK-IN
# =============================================================================

@audited("session.open", "parking_session", target=lambda r: r.session, actor_arg="operator_id")
def open_session(
    *,
    plate: str,
    sector_id: int,
    operator_id: int,
    street_id: int | None = None,
    is_full_day: bool = False,
    quota: quota_service.QuotaChecker | None = None,
    commit: bool = True,
) -> CheckInResult:
    """
    Check a vehicle in.

    Verifies the operator is ACTIVE and assigned to the sector (or street)
    right now, asks the quota collaborator, then inserts the ACTIVE session.
    The result also carries the plate's pending debt total.
    """
    from . import debt_service

    plate = normalize_plate(plate)
    now = utcnow()

    def _op():
        if street_id is not None:
            street = db.session.get(Street, street_id)
            if street is None or street.sector_id != sector_id:
                raise ValidationError(f"Street {street_id} does not belong to sector {sector_id}")

        _require_assigned_operator(operator_id, sector_id, street_id, now)
        quota_service.ensure_can_create(quota, quota_service.SESSION)

        session = ParkingSession(
            plate=plate,
            sector_id=sector_id,
            street_id=street_id,
            operator_in_id=operator_id,
            started_at=now,
            is_full_day=bool(is_full_day),
            status=STATUS_ACTIVE,
        )
        insert_or_conflict(
            session,
            message=f"Plate {plate} already has an active session in sector {sector_id}",
        )
        current_app.logger.info("Check-in: plate %s sector %s session %s", plate, sector_id, session.id)
        return CheckInResult(session=session, pending_debt_total=debt_service.pending_total_for_plate(plate))

    return run_in_transaction(_op, commit=commit)


def get_active_by_plate(plate: str, sector_id: int | None = None) -> ParkingSession | None:
    query = db.session.query(ParkingSession).filter_by(plate=normalize_plate(plate), status=STATUS_ACTIVE)
    if sector_id is not None:
        query = query.filter_by(sector_id=sector_id)
    return query.order_by(ParkingSession.started_at.desc()).first()


# =============================================================================
# PRICING / CHECKOUT
# =============================================================================

def quote_session(session_id: int, *, ended_at: datetime | None = None) -> tariff_service.SessionPrice:
    """Price an ACTIVE session up to ended_at (default now) without changing it."""
    session = get_session(session_id)
    if session.status != STATUS_ACTIVE:
        raise SessionNotActive(f"Session {session_id} is {session.status}", session_id=session_id)
    return tariff_service.price_window(
        session.sector_id,
        session.started_at,
        ended_at or utcnow(),
        is_full_day=session.is_full_day,
    )


@audited(
    "session.checkout",
    "parking_session",
    load_before=lambda session_id, **_: get_session(session_id),
    target=lambda r: r.session,
    actor_arg="operator_out_id",
)
def checkout(
    session_id: int,
    *,
    ended_at: datetime | None = None,
    operator_out_id: int | None = None,
    commit: bool = True,
) -> CheckoutResult:
    """
    End an ACTIVE session: price it, store amounts, move to TO_PAY and
    create its unissued Sale (total = net_amount).
    """
    def _op():
        session = _lock_session(session_id)
        if session.status != STATUS_ACTIVE:
            raise SessionNotActive(
                f"Session {session_id} is {session.status}, not {STATUS_ACTIVE}",
                session_id=session_id,
                status=session.status,
            )

        end = ended_at or utcnow()
        price = tariff_service.price_window(
            session.sector_id,
            session.started_at,
            end,
            is_full_day=session.is_full_day,
        )

        session.ended_at = end
        session.seconds_total = price.seconds
        session.operator_out_id = operator_out_id
        session.gross_amount = price.gross
        session.discount_amount = price.discount
        session.net_amount = price.net
        _transition(session, STATUS_TO_PAY)

        sale = Sale(
            session_id=session.id,
            cashier_operator_id=operator_out_id,
            doc_type="BOLETA",
            net=price.net,
            tax=ZERO,
            total=price.net,
        )
        insert_or_conflict(sale, message=f"Session {session_id} already has a sale")

        current_app.logger.info(
            "Checkout: session %s minutes=%s gross=%s discount=%s net=%s",
            session.id, price.minutes, price.gross, price.discount, price.net,
        )
        return CheckoutResult(session=session, sale=sale, price=price)

    return run_in_transaction(_op, commit=commit)


# =============================================================================
# PLAIN TRANSITIONS
# =============================================================================

@audited("session.mark_paid", "parking_session", load_before=lambda session_id, **_: get_session(session_id))
def mark_paid(session_id: int, *, actor_id: int | None = None, commit: bool = True) -> ParkingSession:
    def _op():
        session = _lock_session(session_id)
        _transition(session, STATUS_PAID)
        return session

    return run_in_transaction(_op, commit=commit)


@audited("session.close", "parking_session", load_before=lambda session_id, **_: get_session(session_id))
def close_session(session_id: int, *, actor_id: int | None = None, commit: bool = True) -> ParkingSession:
    """PAID -> CLOSED. Stamps the sale's issued_at if it is not set yet."""
    def _op():
        session = _lock_session(session_id)
        _transition(session, STATUS_CLOSED)
        sale = session.sale
        if sale is not None and sale.issued_at is None:
            sale.issued_at = utcnow()
        return session

    return run_in_transaction(_op, commit=commit)


@audited("session.cancel", "parking_session", load_before=lambda session_id, **_: get_session(session_id))
def cancel_session(session_id: int, *, actor_id: int | None = None, commit: bool = True) -> ParkingSession:
    def _op():
        session = _lock_session(session_id)
        _transition(session, STATUS_CANCELED)
        return session

    return run_in_transaction(_op, commit=commit)


# =============================================================================
# CHECKOUT + PAYMENT
# =============================================================================

def checkout_with_payment(
    session_id: int,
    *,
    method: str,
    shift_id: int | None,
    amount=None,
    ended_at: datetime | None = None,
    operator_out_id: int | None = None,
    authorization_code: str | None = None,
    commit: bool = True,
) -> CheckoutPaymentResult:
    """
    Checkout and take payment in one transaction.

    amount is what the customer handed over:
    - omitted: the terminal charged exactly the net amount
    - 0: nothing received, the full net becomes a debt
    - below net: the payment is recorded and the shortfall becomes a debt
    - above net: the payment is capped at net and the excess is change
    A zero-net session is closed immediately without a payment.
    """
    from . import debt_service, payment_service

    method = payment_service.normalize_method(method)
    received = None if amount is None else to_money(amount)
    if received is not None and received < 0:
        raise InvalidAmount("amount cannot be negative")

    def _op():
        co = checkout(session_id, ended_at=ended_at, operator_out_id=operator_out_id, commit=False)
        session, sale, net = co.session, co.sale, co.price.net
        result = CheckoutPaymentResult(session=session, sale=sale, price=co.price)

        if net == ZERO:
            mark_paid(session.id, actor_id=operator_out_id, commit=False)
            close_session(session.id, actor_id=operator_out_id, commit=False)
            return result

        paid = net if received is None else received
        if paid == ZERO:
            result.debt = debt_service.open_from_shortfall(session, ZERO, commit=False)
            return result

        charge = min(paid, net)
        recorded = payment_service.record_payment(
            sale_id=sale.id,
            session_id=session.id,
            method=method,
            amount=charge,
            shift_id=shift_id,
            cashier_operator_id=operator_out_id,
            authorization_code=authorization_code,
            settle_shortfall=True,
            commit=False,
        )
        result.payment = recorded.payment
        result.debt = recorded.debt
        result.change = paid - charge
        return result

    return run_in_transaction(_op, commit=commit)
