from __future__ import annotations

from ..extensions import db
from ..money import money_json
from ..time_utils import to_utc_z


class Sector(db.Model):
    """
    Metered parking area. Pricing profiles, operator assignments and
    sessions all hang off a sector.
    """
    __tablename__ = "sectors"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    is_private = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Sector id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_private": self.is_private,
            "created_at": to_utc_z(self.created_at),
        }


class Street(db.Model):
    __tablename__ = "streets"
    __table_args__ = (
        db.UniqueConstraint("sector_id", "name", name="uq_streets_sector_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sector_id = db.Column(db.Integer, db.ForeignKey("sectors.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    sector = db.relationship("Sector", backref=db.backref("streets", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sector_id": self.sector_id,
            "name": self.name,
            "notes": self.notes,
        }


class Operator(db.Model):
    """
    Field attendant / cashier. Authentication is handled upstream;
    the core only needs identity, status and assignments.
    """
    __tablename__ = "operators"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    rut = db.Column(db.String(32), nullable=True, unique=True)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)  # ACTIVE, INACTIVE
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "rut": self.rut,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class OperatorAssignment(db.Model):
    """
    Operator posted to a sector (optionally a single street) for a validity window.

    A NULL street_id covers every street of the sector. A NULL valid_to is open-ended.
    """
    __tablename__ = "operator_assignments"
    __table_args__ = (
        db.Index("ix_operator_assignments_operator_sector", "operator_id", "sector_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    operator_id = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=False, index=True)
    sector_id = db.Column(db.Integer, db.ForeignKey("sectors.id"), nullable=False, index=True)
    street_id = db.Column(db.Integer, db.ForeignKey("streets.id"), nullable=True)
    valid_from = db.Column(db.DateTime(timezone=True), nullable=False)
    valid_to = db.Column(db.DateTime(timezone=True), nullable=True)

    operator = db.relationship("Operator", backref=db.backref("assignments", lazy=True))

    def is_valid_at(self, at) -> bool:
        if self.valid_from > at:
            return False
        if self.valid_to is not None and self.valid_to < at:
            return False
        return True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "operator_id": self.operator_id,
            "sector_id": self.sector_id,
            "street_id": self.street_id,
            "valid_from": to_utc_z(self.valid_from),
            "valid_to": to_utc_z(self.valid_to),
        }


class ParkingSession(db.Model):
    """
    One vehicle's metered stay.

    LIFECYCLE:
    - CREATED -> ACTIVE -> TO_PAY -> PAID -> CLOSED
    - CREATED / ACTIVE / TO_PAY -> CANCELED

    Never deleted. CLOSED and CANCELED are terminal.

    At most one ACTIVE session per (plate, sector): enforced by a partial
    unique index so concurrent check-ins cannot both succeed.
    """
    __tablename__ = "parking_sessions"
    __table_args__ = (
        db.Index(
            "uq_parking_sessions_active_plate_sector",
            "plate",
            "sector_id",
            unique=True,
            sqlite_where=db.text("status = 'ACTIVE'"),
            postgresql_where=db.text("status = 'ACTIVE'"),
        ),
        db.Index("ix_parking_sessions_plate_status", "plate", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    plate = db.Column(db.String(16), nullable=False, index=True)
    sector_id = db.Column(db.Integer, db.ForeignKey("sectors.id"), nullable=False, index=True)
    street_id = db.Column(db.Integer, db.ForeignKey("streets.id"), nullable=True)
    operator_in_id = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=False, index=True)
    operator_out_id = db.Column(db.Integer, db.ForeignKey("operators.id"), nullable=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    ended_at = db.Column(db.DateTime(timezone=True), nullable=True)
    seconds_total = db.Column(db.Integer, nullable=True)
    is_full_day = db.Column(db.Boolean, nullable=False, default=False)

    # Amounts set at checkout (net = gross - discount, never negative)
    gross_amount = db.Column(db.Numeric(12, 2), nullable=True)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=True)
    net_amount = db.Column(db.Numeric(12, 2), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    sector = db.relationship("Sector", backref=db.backref("parking_sessions", lazy=True))
    street = db.relationship("Street")
    operator_in = db.relationship("Operator", foreign_keys=[operator_in_id])
    operator_out = db.relationship("Operator", foreign_keys=[operator_out_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "plate": self.plate,
            "sector_id": self.sector_id,
            "street_id": self.street_id,
            "operator_in_id": self.operator_in_id,
            "operator_out_id": self.operator_out_id,
            "started_at": to_utc_z(self.started_at),
            "ended_at": to_utc_z(self.ended_at),
            "seconds_total": self.seconds_total,
            "is_full_day": self.is_full_day,
            "gross_amount": money_json(self.gross_amount),
            "discount_amount": money_json(self.discount_amount),
            "net_amount": money_json(self.net_amount),
            "status": self.status,
            "version_id": self.version_id,
        }
