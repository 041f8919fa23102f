# Overview: Decimal money helpers (2 decimal places, half-up).

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value, *, field: str = "amount") -> Decimal:
    """
    Coerce a number or numeric string into a 2-place Decimal.

    Floats go through str() so 0.1 stays 0.10 rather than its binary expansion.
    Booleans are rejected even though they are ints.
    """
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        dec = value
    elif isinstance(value, (int, float, str)):
        try:
            dec = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")

    if not dec.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return dec.quantize(CENT, rounding=ROUND_HALF_UP)


def money_json(value) -> str | None:
    """Serialize money for JSON payloads ("500.00")."""
    if value is None:
        return None
    return str(to_money(value))
