"""
Sectors, streets, operators and their assignments.

Creation of sectors and operators goes through the quota collaborator.
Uniqueness (sector name, street name per sector, operator rut) is left to
the database and surfaces as StateConflictError.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Operator, OperatorAssignment, Sector, Street
from ..time_utils import utcnow
from . import quota_service
from .audit_service import audited
from .concurrency import insert_or_conflict, run_in_transaction

OPERATOR_STATUSES = ["ACTIVE", "INACTIVE"]


def _required_text(value, field: str, max_length: int) -> str:
    text = (value or "").strip() if isinstance(value, str) or value is None else str(value).strip()
    if not text:
        raise ValidationError(f"{field} is required")
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


# =============================================================================
# SECTORS / STREETS
# =============================================================================

def get_sector(sector_id: int) -> Sector:
    sector = db.session.get(Sector, sector_id)
    if sector is None:
        raise NotFoundError(f"Sector {sector_id} not found", sector_id=sector_id)
    return sector


def list_sectors() -> list[Sector]:
    return db.session.query(Sector).order_by(Sector.name).all()


@audited("sector.create", "sector")
def create_sector(
    *,
    name: str,
    is_private: bool = False,
    quota: quota_service.QuotaChecker | None = None,
    actor_id: int | None = None,
    commit: bool = True,
) -> Sector:
    name = _required_text(name, "name", 120)

    def _op():
        quota_service.ensure_can_create(quota, quota_service.SECTOR)
        sector = Sector(name=name, is_private=bool(is_private))
        insert_or_conflict(sector, message=f"Sector '{name}' already exists")
        current_app.logger.info("Sector created: id=%s name=%s", sector.id, name)
        return sector

    return run_in_transaction(_op, commit=commit)


def create_street(sector_id: int, *, name: str, notes: str | None = None, commit: bool = True) -> Street:
    name = _required_text(name, "name", 120)

    def _op():
        get_sector(sector_id)
        street = Street(sector_id=sector_id, name=name, notes=notes)
        insert_or_conflict(street, message=f"Street '{name}' already exists in sector {sector_id}")
        return street

    return run_in_transaction(_op, commit=commit)


# =============================================================================
# OPERATORS
# =============================================================================

def get_operator(operator_id: int) -> Operator:
    operator = db.session.get(Operator, operator_id)
    if operator is None:
        raise NotFoundError(f"Operator {operator_id} not found", operator_id=operator_id)
    return operator


def list_operators(status: str | None = None) -> list[Operator]:
    query = db.session.query(Operator)
    if status:
        query = query.filter_by(status=status.upper())
    return query.order_by(Operator.name).all()


@audited("operator.create", "operator")
def create_operator(
    *,
    name: str,
    rut: str | None = None,
    quota: quota_service.QuotaChecker | None = None,
    actor_id: int | None = None,
    commit: bool = True,
) -> Operator:
    name = _required_text(name, "name", 120)
    rut = rut.strip() if rut and rut.strip() else None

    def _op():
        quota_service.ensure_can_create(quota, quota_service.OPERATOR)
        operator = Operator(name=name, rut=rut, status="ACTIVE")
        insert_or_conflict(operator, message=f"Operator with rut {rut} already exists")
        current_app.logger.info("Operator created: id=%s", operator.id)
        return operator

    return run_in_transaction(_op, commit=commit)


@audited("operator.set_status", "operator", load_before=lambda operator_id, **_: get_operator(operator_id))
def set_operator_status(
    operator_id: int,
    *,
    status: str,
    actor_id: int | None = None,
    commit: bool = True,
) -> Operator:
    status = (status or "").strip().upper()
    if status not in OPERATOR_STATUSES:
        raise ValidationError(f"Invalid operator status: {status}. Must be one of {OPERATOR_STATUSES}")

    def _op():
        operator = get_operator(operator_id)
        operator.status = status
        return operator

    return run_in_transaction(_op, commit=commit)


@audited("operator.assign", "operator_assignment")
def assign_operator(
    operator_id: int,
    *,
    sector_id: int,
    street_id: int | None = None,
    valid_from: datetime | None = None,
    valid_to: datetime | None = None,
    actor_id: int | None = None,
    commit: bool = True,
) -> OperatorAssignment:
    """Post an operator to a sector (or one street of it) for a validity window."""
    valid_from = valid_from or utcnow()
    if valid_to is not None and valid_to < valid_from:
        raise ValidationError("valid_to must be >= valid_from")

    def _op():
        get_operator(operator_id)
        get_sector(sector_id)
        if street_id is not None:
            street = db.session.get(Street, street_id)
            if street is None or street.sector_id != sector_id:
                raise ValidationError(f"Street {street_id} does not belong to sector {sector_id}")

        assignment = OperatorAssignment(
            operator_id=operator_id,
            sector_id=sector_id,
            street_id=street_id,
            valid_from=valid_from,
            valid_to=valid_to,
        )
        db.session.add(assignment)
        db.session.flush()
        return assignment

    return run_in_transaction(_op, commit=commit)


def list_assignments(operator_id: int) -> list[OperatorAssignment]:
    return (
        db.session.query(OperatorAssignment)
        .filter_by(operator_id=operator_id)
        .order_by(OperatorAssignment.valid_from.desc())
        .all()
    )
