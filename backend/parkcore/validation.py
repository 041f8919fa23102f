from __future__ import annotations
from datetime import datetime
from decimal import Decimal

from dataclasses import dataclass
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .money import to_money
from .time_utils import parse_iso_datetime


# Largest amount accepted on any money column (Numeric(12, 2))
MAX_AMOUNT = Decimal("9999999999.99")

DISCOUNT_KINDS = {"PERCENTAGE", "FIXED"}
DISCOUNT_CONDITION_KEYS = {"min_amount", "max_amount", "min_minutes", "max_minutes", "days_of_week"}


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    # Money
    if isinstance(coltype, Numeric):
        amount = to_money(value, field=col.key)
        if amount < 0:
            raise ValidationError(f"{col.key} must be >= 0")
        if amount > MAX_AMOUNT:
            raise ValidationError(f"{col.key} cannot exceed {MAX_AMOUNT}")
        return amount

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, JSON):
        if not isinstance(value, dict):
            raise ValidationError(f"{col.key} must be an object")
        return value

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_pricing_profile(patch: dict) -> None:
    active_from = patch.get("active_from")
    active_to = patch.get("active_to")
    if active_from is not None and active_to is not None and active_to < active_from:
        raise ValidationError("active_to must be >= active_from")


def enforce_rules_pricing_rule(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    """
    min_minutes = patch.get("min_duration_minutes")
    max_minutes = patch.get("max_duration_minutes")
    if min_minutes is not None and min_minutes < 0:
        raise ValidationError("min_duration_minutes must be >= 0")
    if max_minutes is not None and max_minutes < (min_minutes or 0):
        raise ValidationError("max_duration_minutes must be >= min_duration_minutes")

    if patch.get("price_per_min") is None and not patch.get("fixed_price"):
        raise ValidationError("price_per_min or fixed_price is required")

    if patch.get("min_amount_is_base"):
        if patch.get("min_amount") is None:
            raise ValidationError("min_amount is required when min_amount_is_base is set")
        base_minutes = patch.get("base_duration_minutes")
        if base_minutes is None or base_minutes < 0:
            raise ValidationError("base_duration_minutes must be >= 0 when min_amount_is_base is set")


def enforce_rules_discount_rule(patch: dict) -> None:
    kind = patch.get("kind")
    if kind is not None:
        kind = kind.upper()
        if kind not in DISCOUNT_KINDS:
            raise ValidationError(f"kind must be one of {', '.join(sorted(DISCOUNT_KINDS))}")
        patch["kind"] = kind

    if kind == "PERCENTAGE" and patch.get("value") is not None and patch["value"] > 100:
        raise ValidationError("PERCENTAGE value cannot exceed 100")

    conditions = patch.get("conditions") or {}
    unknown = set(conditions) - DISCOUNT_CONDITION_KEYS
    if unknown:
        raise ValidationError(f"Unknown discount conditions: {', '.join(sorted(unknown))}")

    days = conditions.get("days_of_week")
    if days is not None:
        if not isinstance(days, list) or any(
            isinstance(d, bool) or not isinstance(d, int) or d < 0 or d > 6 for d in days
        ):
            raise ValidationError("days_of_week must be a list of integers 0 (Sunday) to 6 (Saturday)")


def parse_datetime_field(value, field: str):
    """Optional ISO-8601 request field -> UTC-naive datetime (None when absent)."""
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def parse_int_field(value, field: str, *, required: bool = False):
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer")
