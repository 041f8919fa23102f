from __future__ import annotations

from ..extensions import db
from ..money import money_json
from ..time_utils import to_utc_z


class Sale(db.Model):
    """
    Billable record for a session (or a manual debt).

    total is fixed at creation and never edited. Closure (fully paid) is
    derived from COMPLETED payment rows on every read, never stored;
    issued_at is stamped the first time the sale is found closed.
    """
    __tablename__ = "sales"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("parking_sessions.id"), nullable=True, unique=True)
    cashier_operator_id = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=True, index=True)

    doc_type = db.Column(db.String(16), nullable=False, default="BOLETA")  # BOLETA, FACTURA
    net = db.Column(db.Numeric(12, 2), nullable=False)
    tax = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    issued_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Touched by every payment so concurrent payers collide on version_id
    last_payment_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    session = db.relationship("ParkingSession", backref=db.backref("sale", uselist=False))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "cashier_operator_id": self.cashier_operator_id,
            "doc_type": self.doc_type,
            "net": money_json(self.net),
            "tax": money_json(self.tax),
            "total": money_json(self.total),
            "created_at": to_utc_z(self.created_at),
            "issued_at": to_utc_z(self.issued_at),
            "version_id": self.version_id,
        }


class Payment(db.Model):
    """
    One money movement against a sale and/or a session.

    Append-only: a COMPLETED payment is never edited; FAILED is terminal
    and excluded from every reconciliation sum.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_shift_status_method", "shift_id", "status", "method"),
        db.Index("ix_payments_sale_status", "sale_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    session_id = db.Column(db.Integer, db.ForeignKey("parking_sessions.id"), nullable=True, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True)
    debt_id = db.Column(db.Integer, db.ForeignKey("debts.id"), nullable=True, index=True)
    cashier_operator_id = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=True)

    method = db.Column(db.String(16), nullable=False)  # CASH, CARD, GATEWAY, TRANSFER
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)

    # Terminal / gateway references
    authorization_code = db.Column(db.String(64), nullable=True)
    external_transaction_id = db.Column(db.String(128), nullable=True, index=True)
    provider_ref = db.Column(db.String(128), nullable=True)
    payload_hash = db.Column(db.String(64), nullable=True)

    sale = db.relationship("Sale", backref=db.backref("payments", lazy=True))
    session = db.relationship("ParkingSession", backref=db.backref("payments", lazy=True))
    shift = db.relationship("Shift", backref=db.backref("payments", lazy=True))
    debt = db.relationship("Debt", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "session_id": self.session_id,
            "shift_id": self.shift_id,
            "debt_id": self.debt_id,
            "cashier_operator_id": self.cashier_operator_id,
            "method": self.method,
            "amount": money_json(self.amount),
            "status": self.status,
            "paid_at": to_utc_z(self.paid_at),
            "authorization_code": self.authorization_code,
            "external_transaction_id": self.external_transaction_id,
            "provider_ref": self.provider_ref,
        }


class Debt(db.Model):
    """
    Outstanding shortfall owed by a plate.

    principal_amount is what was owed when the debt was opened;
    outstanding_amount drops to zero only together with the settling
    payment (no partial settlement).
    """
    __tablename__ = "debts"
    __table_args__ = (
        db.Index("ix_debts_plate_status", "plate", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    plate = db.Column(db.String(16), nullable=False, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey("parking_sessions.id"), nullable=True, index=True)
    origin = db.Column(db.String(16), nullable=False)  # SESSION, FINE, MANUAL
    principal_amount = db.Column(db.Numeric(12, 2), nullable=False)
    outstanding_amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)  # PENDING, SETTLED, CANCELLED
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    settled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    session = db.relationship("ParkingSession", backref=db.backref("debts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "plate": self.plate,
            "session_id": self.session_id,
            "origin": self.origin,
            "principal_amount": money_json(self.principal_amount),
            "outstanding_amount": money_json(self.outstanding_amount),
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "settled_at": to_utc_z(self.settled_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "version_id": self.version_id,
        }
