"""
Debt management.

A debt is one outstanding shortfall owed by a plate. It is opened from a
checkout shortfall or entered by hand (fines, manual charges) and settled
in full by a single payment; partial settlement is not modeled.

Settlement (sale if missing + payment + debt update) is one transaction.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..errors import DebtNotPending, InsufficientAmount, InvalidAmount, NotFoundError, ValidationError
from ..extensions import db
from ..models import Debt, ParkingSession, Payment, Sale
from ..money import ZERO, money_json, to_money
from ..time_utils import to_utc_z, utcnow
from . import payment_service
from .audit_service import audited
from .concurrency import lock_for_update, run_in_transaction
from .parking_session_service import normalize_plate


ORIGIN_SESSION = "SESSION"
ORIGIN_FINE = "FINE"
ORIGIN_MANUAL = "MANUAL"

VALID_ORIGINS = [ORIGIN_SESSION, ORIGIN_FINE, ORIGIN_MANUAL]
MANUAL_ORIGINS = [ORIGIN_FINE, ORIGIN_MANUAL]

STATUS_PENDING = "PENDING"
STATUS_SETTLED = "SETTLED"
STATUS_CANCELLED = "CANCELLED"


@dataclass
class SettlementResult:
    debt: Debt
    payment: Payment
    sale: Sale
    change: Decimal

    def to_dict(self) -> dict:
        return {
            "debt": self.debt.to_dict(),
            "payment": self.payment.to_dict(),
            "sale": self.sale.to_dict(),
            "change": money_json(self.change),
        }


def get_debt(debt_id: int) -> Debt:
    debt = db.session.get(Debt, debt_id)
    if debt is None:
        raise NotFoundError(f"Debt {debt_id} not found", debt_id=debt_id)
    return debt


def _lock_debt(debt_id: int) -> Debt:
    debt = lock_for_update(db.session.query(Debt).filter_by(id=debt_id)).first()
    if debt is None:
        raise NotFoundError(f"Debt {debt_id} not found", debt_id=debt_id)
    return debt


# =============================================================================
# CREATION
# =============================================================================

def open_from_shortfall(session: ParkingSession, paid_amount, *, commit: bool = True) -> Debt | None:
    """
    Open a SESSION debt for net_amount - paid_amount.

    No-op (returns None) when the session is fully paid.
    """
    paid = to_money(paid_amount)
    net = to_money(session.net_amount)
    if paid >= net:
        return None

    def _op():
        shortfall = net - paid
        debt = Debt(
            plate=session.plate,
            session_id=session.id,
            origin=ORIGIN_SESSION,
            principal_amount=shortfall,
            outstanding_amount=shortfall,
            status=STATUS_PENDING,
            created_at=utcnow(),
        )
        db.session.add(debt)
        db.session.flush()
        current_app.logger.info(
            "Debt opened: id=%s plate=%s session=%s amount=%s", debt.id, debt.plate, session.id, shortfall
        )
        return debt

    return run_in_transaction(_op, commit=commit)


@audited("debt.create", "debt")
def create_manual(
    *,
    plate: str,
    amount,
    origin: str = ORIGIN_MANUAL,
    notes: str | None = None,
    actor_id: int | None = None,
    commit: bool = True,
) -> Debt:
    """Fine or manually entered charge, not tied to a session."""
    plate = normalize_plate(plate)
    origin = (origin or "").strip().upper()
    if origin not in MANUAL_ORIGINS:
        raise ValidationError(f"Invalid debt origin: {origin}. Must be one of {MANUAL_ORIGINS}")
    amount = to_money(amount)
    if amount <= 0:
        raise InvalidAmount("Debt amount must be positive")

    def _op():
        debt = Debt(
            plate=plate,
            origin=origin,
            principal_amount=amount,
            outstanding_amount=amount,
            status=STATUS_PENDING,
            notes=notes,
            created_at=utcnow(),
        )
        db.session.add(debt)
        db.session.flush()
        current_app.logger.info("Manual debt created: id=%s plate=%s origin=%s amount=%s", debt.id, plate, origin, amount)
        return debt

    return run_in_transaction(_op, commit=commit)


# =============================================================================
# SETTLEMENT / CANCELLATION
# =============================================================================

@audited(
    "debt.settle",
    "debt",
    load_before=lambda debt_id, **_: get_debt(debt_id),
    target=lambda r: r.debt,
    actor_arg="cashier_operator_id",
)
def settle(
    debt_id: int,
    *,
    amount,
    method: str,
    shift_id: int | None = None,
    cashier_operator_id: int | None = None,
    authorization_code: str | None = None,
    commit: bool = True,
) -> SettlementResult:
    """
    Settle a PENDING debt in full.

    The payment recorded is the outstanding amount; anything handed over
    beyond it is returned as change.

    Raises:
        DebtNotPending: debt is SETTLED or CANCELLED
        InsufficientAmount: amount below the outstanding amount
    """
    method = payment_service.normalize_method(method)
    received = to_money(amount)
    if received <= 0:
        raise InvalidAmount("Settlement amount must be positive")

    def _op():
        debt = _lock_debt(debt_id)
        if debt.status != STATUS_PENDING:
            raise DebtNotPending(f"Debt {debt_id} is {debt.status}", debt_id=debt_id, status=debt.status)

        outstanding = to_money(debt.outstanding_amount)
        if received < outstanding:
            raise InsufficientAmount(
                f"Amount {received} is below the outstanding {outstanding}",
                debt_id=debt_id,
                outstanding=money_json(outstanding),
            )

        session = debt.session
        sale = session.sale if session is not None else None
        if sale is None:
            sale = Sale(
                session_id=debt.session_id,
                cashier_operator_id=cashier_operator_id,
                doc_type="BOLETA",
                net=outstanding,
                tax=ZERO,
                total=outstanding,
            )
            db.session.add(sale)
            db.session.flush()

        recorded = payment_service.record_payment(
            sale_id=sale.id,
            session_id=debt.session_id,
            debt_id=debt.id,
            method=method,
            amount=outstanding,
            shift_id=shift_id,
            cashier_operator_id=cashier_operator_id,
            authorization_code=authorization_code,
            commit=False,
        )

        debt.status = STATUS_SETTLED
        debt.settled_at = utcnow()
        debt.outstanding_amount = ZERO
        db.session.flush()

        current_app.logger.info(
            "Debt settled: id=%s plate=%s amount=%s payment=%s", debt.id, debt.plate, outstanding, recorded.payment.id
        )
        return SettlementResult(
            debt=debt,
            payment=recorded.payment,
            sale=recorded.sale,
            change=received - outstanding,
        )

    return run_in_transaction(_op, commit=commit)


@audited("debt.cancel", "debt", load_before=lambda debt_id, **_: get_debt(debt_id))
def cancel(debt_id: int, *, actor_id: int | None = None, notes: str | None = None, commit: bool = True) -> Debt:
    def _op():
        debt = _lock_debt(debt_id)
        if debt.status != STATUS_PENDING:
            raise DebtNotPending(f"Debt {debt_id} is {debt.status}", debt_id=debt_id, status=debt.status)
        debt.status = STATUS_CANCELLED
        debt.cancelled_at = utcnow()
        if notes:
            debt.notes = f"{debt.notes}\n{notes}" if debt.notes else notes
        current_app.logger.info("Debt cancelled: id=%s", debt.id)
        return debt

    return run_in_transaction(_op, commit=commit)


# =============================================================================
# QUERIES
# =============================================================================

def pending_total_for_plate(plate: str) -> Decimal:
    amounts = (
        db.session.query(Debt.outstanding_amount)
        .filter(Debt.plate == normalize_plate(plate), Debt.status == STATUS_PENDING)
        .all()
    )
    return sum((to_money(a) for (a,) in amounts), ZERO)


def list_by_plate(plate: str, status: str | None = None) -> list[Debt]:
    query = db.session.query(Debt).filter_by(plate=normalize_plate(plate))
    if status:
        query = query.filter_by(status=status.upper())
    return query.order_by(Debt.created_at.desc(), Debt.id.desc()).all()


def plate_summary(plate: str) -> dict:
    debts = list_by_plate(plate)
    pending = [d for d in debts if d.status == STATUS_PENDING]
    return {
        "plate": normalize_plate(plate),
        "total_debts": len(debts),
        "pending_debts": len(pending),
        "settled_debts": sum(1 for d in debts if d.status == STATUS_SETTLED),
        "total_pending_amount": money_json(sum((to_money(d.outstanding_amount) for d in pending), ZERO)),
        "debts": [d.to_dict() for d in debts],
    }


def pending_summary() -> dict:
    debts = db.session.query(Debt).filter_by(status=STATUS_PENDING).all()

    by_origin: dict[str, dict] = defaultdict(lambda: {"count": 0, "total": ZERO})
    by_plate: dict[str, dict] = defaultdict(lambda: {"count": 0, "total": ZERO})
    total = ZERO
    for debt in debts:
        amount = to_money(debt.outstanding_amount)
        total += amount
        for bucket in (by_origin[debt.origin], by_plate[debt.plate]):
            bucket["count"] += 1
            bucket["total"] += amount

    oldest = db.session.query(func.min(Debt.created_at)).filter_by(status=STATUS_PENDING).scalar()
    newest = db.session.query(func.max(Debt.created_at)).filter_by(status=STATUS_PENDING).scalar()

    def _render(groups):
        return {k: {"count": v["count"], "total": money_json(v["total"])} for k, v in sorted(groups.items())}

    return {
        "total_debts": len(debts),
        "total_amount": money_json(total),
        "by_origin": _render(by_origin),
        "by_plate": _render(by_plate),
        "oldest_debt": to_utc_z(oldest),
        "newest_debt": to_utc_z(newest),
    }
