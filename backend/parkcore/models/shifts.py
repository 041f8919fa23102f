from __future__ import annotations

from ..extensions import db
from ..money import money_json
from ..time_utils import to_utc_z


class Shift(db.Model):
    """
    Cash-drawer custody period for one operator (and optionally one device).

    LIFECYCLE:
    - OPEN: payments and cash adjustments may be tagged to it
    - CLOSED: declared cash counted, variance stored
    - CANCELED: abandoned without a count

    At most one OPEN shift per (operator_id, device_key). device_key is the
    normalized device id, '' when the shift has no device, so device-less
    shifts are covered by the same partial unique index.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_open_operator_device",
            "operator_id",
            "device_key",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    operator_id = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=False, index=True)
    sector_id = db.Column(db.Integer, db.ForeignKey("sectors.id"), nullable=True, index=True)
    device_id = db.Column(db.String(128), nullable=True)
    device_key = db.Column(db.String(128), nullable=False, default="")

    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)  # OPEN, CLOSED, CANCELED

    opening_float = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    closing_declared_cash = db.Column(db.Numeric(12, 2), nullable=True)
    cash_expected = db.Column(db.Numeric(12, 2), nullable=True)
    cash_over_short = db.Column(db.Numeric(12, 2), nullable=True)  # declared - expected

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=True)
    closed_by = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    operator = db.relationship("Operator", foreign_keys=[operator_id], backref=db.backref("shifts", lazy=True))
    sector = db.relationship("Sector")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "operator_id": self.operator_id,
            "sector_id": self.sector_id,
            "device_id": self.device_id,
            "status": self.status,
            "opening_float": money_json(self.opening_float),
            "closing_declared_cash": money_json(self.closing_declared_cash),
            "cash_expected": money_json(self.cash_expected),
            "cash_over_short": money_json(self.cash_over_short),
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "created_by": self.created_by,
            "closed_by": self.closed_by,
            "notes": self.notes,
            "version_id": self.version_id,
        }


class ShiftOperation(db.Model):
    """
    Append-only event log per shift (OPEN, CLOSE, ADJUSTMENT, WITHDRAWAL, DEPOSIT).

    Audit trail only; totals are always computed from payments and adjustments.
    """
    __tablename__ = "shift_operations"
    __table_args__ = (
        db.Index("ix_shift_operations_shift_occurred", "shift_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)
    kind = db.Column(db.String(16), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=True)
    actor_id = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=True)
    details = db.Column(db.JSON, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    shift = db.relationship("Shift", backref=db.backref("operations", lazy=True, order_by="ShiftOperation.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "kind": self.kind,
            "amount": money_json(self.amount),
            "actor_id": self.actor_id,
            "details": self.details or {},
            "occurred_at": to_utc_z(self.occurred_at),
        }


class CashAdjustment(db.Model):
    """
    Cash taken out of (WITHDRAWAL) or put into (DEPOSIT) a shift's drawer.

    Stored unsigned and per type; netted only when totals are computed.
    """
    __tablename__ = "cash_adjustments"
    __table_args__ = (
        db.Index("ix_cash_adjustments_shift_kind", "shift_id", "kind"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)
    kind = db.Column(db.String(16), nullable=False)  # WITHDRAWAL, DEPOSIT
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    actor_id = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=False)
    approved_by = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=True)
    receipt_number = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    shift = db.relationship("Shift", backref=db.backref("cash_adjustments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "kind": self.kind,
            "amount": money_json(self.amount),
            "reason": self.reason,
            "actor_id": self.actor_id,
            "approved_by": self.approved_by,
            "receipt_number": self.receipt_number,
            "created_at": to_utc_z(self.created_at),
        }
