"""
Shift cash register.

A shift is one cash-drawer custody period for an operator (and optionally
a device).

LIFECYCLE:
- OPEN -> CLOSED (declared cash counted, variance stored)
- OPEN -> CANCELED (no financial computation)

DESIGN:
- One OPEN shift per (operator, device): enforced by the partial unique
  index on (operator_id, device_key) WHERE status = 'OPEN'
- Withdrawals and deposits are separate append-only rows, netted only
  when totals are computed
- Totals are always recomputed from payment and adjustment rows; nothing
  is kept as a running counter
- Sale closure is evaluated across ALL shifts (a sale may be paid partly
  in one shift and partly in another); each shift only reports its own
  payments of closed sales, so summing sales_total across shifts gives
  exactly the sale total
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app

from ..errors import (
    InvalidAmount,
    NotFoundError,
    ShiftAlreadyOpen,
    ShiftNotOpen,
    StateConflictError,
    ValidationError,
)
from ..extensions import db
from ..models import CashAdjustment, Operator, Payment, Sale, Shift, ShiftOperation
from ..money import ZERO, money_json, to_money
from ..time_utils import to_utc_z, utcnow
from .audit_service import audited
from .concurrency import insert_or_conflict, lock_for_update, run_in_transaction


STATUS_OPEN = "OPEN"
STATUS_CLOSED = "CLOSED"
STATUS_CANCELED = "CANCELED"

ADJUSTMENT_WITHDRAWAL = "WITHDRAWAL"
ADJUSTMENT_DEPOSIT = "DEPOSIT"
ADJUSTMENT_KINDS = [ADJUSTMENT_WITHDRAWAL, ADJUSTMENT_DEPOSIT]

OP_OPEN = "OPEN"
OP_CLOSE = "CLOSE"
OP_ADJUSTMENT = "ADJUSTMENT"
OP_CANCEL = "CANCEL"


@dataclass(frozen=True)
class MethodTotal:
    method: str
    collected: Decimal
    count: int

    def to_dict(self) -> dict:
        return {"method": self.method, "collected": money_json(self.collected), "count": self.count}


@dataclass(frozen=True)
class ShiftTotals:
    """Canonical shift summary consumed by reports and printing."""
    shift_id: int
    opening_float: Decimal
    cash_collected: Decimal
    cash_withdrawals: Decimal
    cash_deposits: Decimal
    cash_expected: Decimal
    cash_declared: Decimal | None
    cash_over_short: Decimal | None
    tickets_count: int
    sales_total: Decimal
    payments_by_method: list[MethodTotal] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "shift_id": self.shift_id,
            "opening_float": money_json(self.opening_float),
            "cash_collected": money_json(self.cash_collected),
            "cash_withdrawals": money_json(self.cash_withdrawals),
            "cash_deposits": money_json(self.cash_deposits),
            "cash_expected": money_json(self.cash_expected),
            "cash_declared": money_json(self.cash_declared),
            "cash_over_short": money_json(self.cash_over_short),
            "tickets_count": self.tickets_count,
            "sales_total": money_json(self.sales_total),
            "payments_by_method": [m.to_dict() for m in self.payments_by_method],
        }


@dataclass
class ShiftClosure:
    shift: Shift
    totals: ShiftTotals

    def to_dict(self) -> dict:
        return {"shift": self.shift.to_dict(), "totals": self.totals.to_dict()}


def device_key(device_id: str | None) -> str:
    """Normalized device id; '' when the shift has no device."""
    return (device_id or "").strip()


def get_shift(shift_id: int) -> Shift:
    shift = db.session.get(Shift, shift_id)
    if shift is None:
        raise NotFoundError(f"Shift {shift_id} not found", shift_id=shift_id)
    return shift


def _lock_shift(shift_id: int) -> Shift:
    shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
    if shift is None:
        raise NotFoundError(f"Shift {shift_id} not found", shift_id=shift_id)
    return shift


def _require_open(shift: Shift) -> None:
    if shift.status != STATUS_OPEN:
        raise ShiftNotOpen(f"Shift {shift.id} is {shift.status}", shift_id=shift.id, status=shift.status)


def log_operation(
    shift_id: int,
    *,
    kind: str,
    amount=None,
    actor_id: int | None = None,
    details: dict | None = None,
) -> ShiftOperation:
    """Append a shift event to the current transaction (never commits)."""
    op = ShiftOperation(
        shift_id=shift_id,
        kind=kind,
        amount=to_money(amount) if amount is not None else None,
        actor_id=actor_id,
        details=details,
        occurred_at=utcnow(),
    )
    db.session.add(op)
    db.session.flush()
    return op


# =============================================================================
# OPEN
# =============================================================================

@audited("shift.open", "shift", actor_arg="operator_id")
def open_shift(
    *,
    operator_id: int,
    opening_float=0,
    sector_id: int | None = None,
    device_id: str | None = None,
    notes: str | None = None,
    created_by: int | None = None,
    commit: bool = True,
) -> Shift:
    """
    Open a shift and log its OPEN event atomically.

    Raises:
        ShiftAlreadyOpen: the (operator, device) pair already has an OPEN
            shift, including when a concurrent open wins the insert race
    """
    opening = to_money(opening_float, field="opening_float")
    if opening < 0:
        raise InvalidAmount("opening_float must be >= 0")
    key = device_key(device_id)

    def _op():
        operator = db.session.get(Operator, operator_id)
        if operator is None:
            raise NotFoundError(f"Operator {operator_id} not found", operator_id=operator_id)
        if not operator.is_active:
            raise StateConflictError(f"Operator {operator_id} is not active", operator_id=operator_id)

        existing = get_current_shift(operator_id, device_id)
        if existing is not None:
            raise ShiftAlreadyOpen(
                f"Operator {operator_id} already has open shift {existing.id}",
                shift_id=existing.id,
            )

        shift = Shift(
            operator_id=operator_id,
            sector_id=sector_id,
            device_id=device_id or None,
            device_key=key,
            status=STATUS_OPEN,
            opening_float=opening,
            opened_at=utcnow(),
            created_by=created_by or operator_id,
            notes=notes,
        )
        insert_or_conflict(
            shift,
            error_cls=ShiftAlreadyOpen,
            message=f"Operator {operator_id} already has an open shift on this device",
        )
        log_operation(shift.id, kind=OP_OPEN, amount=opening, actor_id=created_by or operator_id)
        current_app.logger.info("Shift opened: id=%s operator=%s device=%r float=%s", shift.id, operator_id, key, opening)
        return shift

    return run_in_transaction(_op, commit=commit)


def get_current_shift(operator_id: int, device_id: str | None = None) -> Shift | None:
    return (
        db.session.query(Shift)
        .filter_by(operator_id=operator_id, device_key=device_key(device_id), status=STATUS_OPEN)
        .first()
    )


def list_shifts(*, status: str | None = None, operator_id: int | None = None, limit: int = 100) -> list[Shift]:
    query = db.session.query(Shift)
    if status:
        query = query.filter_by(status=status.upper())
    if operator_id is not None:
        query = query.filter_by(operator_id=operator_id)
    return query.order_by(Shift.opened_at.desc(), Shift.id.desc()).limit(limit).all()


# =============================================================================
# CASH ADJUSTMENTS
# =============================================================================

@audited("shift.adjustment", "cash_adjustment")
def record_adjustment(
    shift_id: int,
    *,
    kind: str,
    amount,
    reason: str,
    actor_id: int,
    approved_by: int | None = None,
    receipt_number: str | None = None,
    commit: bool = True,
) -> CashAdjustment:
    """Append a WITHDRAWAL or DEPOSIT to an OPEN shift."""
    kind = (kind or "").strip().upper()
    if kind not in ADJUSTMENT_KINDS:
        raise ValidationError(f"Invalid adjustment type: {kind}. Must be one of {ADJUSTMENT_KINDS}")
    amount = to_money(amount)
    if amount <= 0:
        raise InvalidAmount("Adjustment amount must be positive")
    if not reason or not str(reason).strip():
        raise ValidationError("reason is required")

    def _op():
        shift = _lock_shift(shift_id)
        _require_open(shift)

        adjustment = CashAdjustment(
            shift_id=shift.id,
            kind=kind,
            amount=amount,
            reason=str(reason).strip(),
            actor_id=actor_id,
            approved_by=approved_by,
            receipt_number=receipt_number,
            created_at=utcnow(),
        )
        db.session.add(adjustment)
        db.session.flush()
        log_operation(
            shift.id,
            kind=kind,
            amount=amount,
            actor_id=actor_id,
            details={"cash_adjustment_id": adjustment.id, "approved_by": approved_by},
        )
        current_app.logger.info("Cash %s on shift %s: %s", kind.lower(), shift.id, amount)
        return adjustment

    return run_in_transaction(_op, commit=commit)


# =============================================================================
# TOTALS
# =============================================================================

def _closed_sale_ids(sale_ids: set[int]) -> set[int]:
    """
    Of the given sales, those whose COMPLETED payments across every shift
    reach the sale total.
    """
    if not sale_ids:
        return set()

    paid: dict[int, Decimal] = defaultdict(lambda: ZERO)
    rows = (
        db.session.query(Payment.sale_id, Payment.amount)
        .filter(Payment.sale_id.in_(sale_ids), Payment.status == "COMPLETED")
        .all()
    )
    for sale_id, amount in rows:
        paid[sale_id] += to_money(amount)

    totals = db.session.query(Sale.id, Sale.total).filter(Sale.id.in_(sale_ids)).all()
    return {sale_id for sale_id, total in totals if paid[sale_id] >= to_money(total)}


def compute_totals(shift_id: int) -> ShiftTotals:
    shift = get_shift(shift_id)

    payments = (
        db.session.query(Payment)
        .filter(Payment.shift_id == shift.id, Payment.status == "COMPLETED")
        .all()
    )

    closed = _closed_sale_ids({p.sale_id for p in payments if p.sale_id is not None})

    cash_collected = ZERO
    sales_total = ZERO
    tickets: set[int] = set()
    by_method: dict[str, list] = defaultdict(lambda: [ZERO, 0])

    for p in payments:
        amount = to_money(p.amount)
        in_closed_sale = p.sale_id is not None and p.sale_id in closed
        direct_session = p.sale_id is None and p.session_id is not None

        if p.method == "CASH" and (direct_session or in_closed_sale):
            cash_collected += amount
        if in_closed_sale:
            tickets.add(p.sale_id)
            sales_total += amount

        bucket = by_method[p.method]
        bucket[0] += amount
        bucket[1] += 1

    withdrawals = ZERO
    deposits = ZERO
    for adj in db.session.query(CashAdjustment).filter_by(shift_id=shift.id).all():
        if adj.kind == ADJUSTMENT_WITHDRAWAL:
            withdrawals += to_money(adj.amount)
        elif adj.kind == ADJUSTMENT_DEPOSIT:
            deposits += to_money(adj.amount)

    opening = to_money(shift.opening_float)
    expected = opening + cash_collected - withdrawals + deposits

    declared = to_money(shift.closing_declared_cash) if shift.closing_declared_cash is not None else None
    over_short = to_money(shift.cash_over_short) if shift.cash_over_short is not None else None

    return ShiftTotals(
        shift_id=shift.id,
        opening_float=opening,
        cash_collected=cash_collected,
        cash_withdrawals=withdrawals,
        cash_deposits=deposits,
        cash_expected=expected,
        cash_declared=declared,
        cash_over_short=over_short,
        tickets_count=len(tickets),
        sales_total=sales_total,
        payments_by_method=[
            MethodTotal(method=m, collected=v[0], count=v[1]) for m, v in sorted(by_method.items())
        ],
    )


# =============================================================================
# CLOSE / CANCEL
# =============================================================================

@audited(
    "shift.close",
    "shift",
    load_before=lambda shift_id, **_: get_shift(shift_id),
    target=lambda r: r.shift,
    actor_arg="closed_by",
)
def close_shift(
    shift_id: int,
    *,
    declared_cash,
    closed_by: int | None = None,
    notes: str | None = None,
    commit: bool = True,
) -> ShiftClosure:
    """
    Close an OPEN shift: cash_over_short = declared - expected.
    """
    declared = to_money(declared_cash, field="declared_cash")
    if declared < 0:
        raise InvalidAmount("declared_cash must be >= 0")

    def _op():
        shift = _lock_shift(shift_id)
        _require_open(shift)

        totals = compute_totals(shift.id)
        over_short = declared - totals.cash_expected

        shift.closing_declared_cash = declared
        shift.cash_expected = totals.cash_expected
        shift.cash_over_short = over_short
        shift.closed_at = utcnow()
        shift.closed_by = closed_by
        shift.status = STATUS_CLOSED
        if notes:
            shift.notes = f"{shift.notes}\n{notes}" if shift.notes else notes

        log_operation(
            shift.id,
            kind=OP_CLOSE,
            amount=declared,
            actor_id=closed_by,
            details={
                "cash_expected": money_json(totals.cash_expected),
                "cash_over_short": money_json(over_short),
            },
        )
        db.session.flush()

        current_app.logger.info(
            "Shift closed: id=%s expected=%s declared=%s over_short=%s",
            shift.id, totals.cash_expected, declared, over_short,
        )
        return ShiftClosure(shift=shift, totals=compute_totals(shift.id))

    return run_in_transaction(_op, commit=commit)


@audited("shift.cancel", "shift", load_before=lambda shift_id, **_: get_shift(shift_id), actor_arg="canceled_by")
def cancel_shift(
    shift_id: int,
    *,
    canceled_by: int | None = None,
    notes: str | None = None,
    commit: bool = True,
) -> Shift:
    def _op():
        shift = _lock_shift(shift_id)
        _require_open(shift)
        shift.status = STATUS_CANCELED
        shift.closed_at = utcnow()
        shift.closed_by = canceled_by
        if notes:
            shift.notes = f"{shift.notes}\n{notes}" if shift.notes else notes
        log_operation(shift.id, kind=OP_CANCEL, actor_id=canceled_by, details={"notes": notes} if notes else None)
        current_app.logger.info("Shift canceled: id=%s", shift.id)
        return shift

    return run_in_transaction(_op, commit=commit)


# =============================================================================
# REPORT
# =============================================================================

def shift_report(shift_id: int, *, recent_limit: int | None = None) -> dict:
    """Plain snapshot for printing/reporting collaborators."""
    shift = get_shift(shift_id)
    totals = compute_totals(shift.id)
    if recent_limit is None:
        recent_limit = current_app.config.get("RECENT_PAYMENTS_LIMIT", 50)

    recent = (
        db.session.query(Payment)
        .filter(Payment.shift_id == shift.id, Payment.status == "COMPLETED")
        .order_by(Payment.paid_at.desc(), Payment.id.desc())
        .limit(recent_limit)
        .all()
    )
    adjustments = (
        db.session.query(CashAdjustment)
        .filter_by(shift_id=shift.id)
        .order_by(CashAdjustment.created_at.desc(), CashAdjustment.id.desc())
        .all()
    )
    operator = shift.operator
    totals_dict = totals.to_dict()

    return {
        "shift": {
            **shift.to_dict(),
            "operator": {"id": operator.id, "name": operator.name} if operator else None,
            "sector": {"id": shift.sector.id, "name": shift.sector.name} if shift.sector else None,
        },
        "cash_summary": {
            k: totals_dict[k]
            for k in (
                "opening_float",
                "cash_collected",
                "cash_withdrawals",
                "cash_deposits",
                "cash_expected",
                "cash_declared",
                "cash_over_short",
            )
        },
        "sales_summary": {
            "tickets_count": totals.tickets_count,
            "sales_total": totals_dict["sales_total"],
        },
        "payments_by_method": totals_dict["payments_by_method"],
        "recent_payments": [
            {
                "id": p.id,
                "amount": money_json(p.amount),
                "method": p.method,
                "paid_at": to_utc_z(p.paid_at),
                "sale_id": p.sale_id,
                "session_id": p.session_id,
            }
            for p in recent
        ],
        "cash_adjustments": [a.to_dict() for a in adjustments],
        "generated_at": to_utc_z(utcnow()),
    }
