# Overview: Flask API routes for parking sessions (check-in, quote, checkout, cancel).

"""
Parking Session API Routes

DESIGN:
- Check-in: POST /api/sessions (quota checked, reports pending debts)
- Quote: POST /api/sessions/<id>/quote (no state change)
- Checkout: POST /api/sessions/<id>/checkout; with "method" in the body
  the payment is taken in the same transaction
- Cancel: POST /api/sessions/<id>/cancel

The acting operator comes from the X-Operator-Id header.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import handles_core_errors, json_body, require_operator
from ..errors import NotFoundError, ValidationError
from ..services import parking_session_service, quota_service, shift_service
from ..validation import parse_datetime_field, parse_int_field


sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/sessions")


@sessions_bp.post("/")
@sessions_bp.post("")
@require_operator
@handles_core_errors("open parking session")
def open_session_route():
    """
    Check a vehicle in.

    Request body:
    {
        "plate": "ABCD12",
        "sector_id": 1,
        "street_id": 3,        (optional)
        "is_full_day": false   (optional)
    }
    """
    data = json_body()
    result = parking_session_service.open_session(
        plate=data.get("plate"),
        sector_id=parse_int_field(data.get("sector_id"), "sector_id", required=True),
        street_id=parse_int_field(data.get("street_id"), "street_id"),
        operator_id=g.current_operator.id,
        is_full_day=bool(data.get("is_full_day", False)),
        quota=quota_service.get_checker(),
    )
    return jsonify(result.to_dict()), 201


@sessions_bp.get("/active-by-plate")
@require_operator
@handles_core_errors("look up active session")
def active_by_plate_route():
    plate = request.args.get("plate")
    if not plate:
        raise ValidationError("plate is required")
    sector_id = request.args.get("sector_id", type=int)
    session = parking_session_service.get_active_by_plate(plate, sector_id)
    if session is None:
        raise NotFoundError(f"No active session for plate {plate}")
    return jsonify({"session": session.to_dict()}), 200


@sessions_bp.get("/<int:session_id>")
@require_operator
@handles_core_errors("get parking session")
def get_session_route(session_id: int):
    session = parking_session_service.get_session(session_id)
    d = session.to_dict()
    d["sale"] = session.sale.to_dict() if session.sale else None
    return jsonify({"session": d}), 200


@sessions_bp.post("/<int:session_id>/quote")
@require_operator
@handles_core_errors("quote parking session")
def quote_session_route(session_id: int):
    data = json_body()
    price = parking_session_service.quote_session(
        session_id,
        ended_at=parse_datetime_field(data.get("ended_at"), "ended_at"),
    )
    return jsonify({"quote": price.to_dict()}), 200


@sessions_bp.post("/<int:session_id>/checkout")
@require_operator
@handles_core_errors("checkout parking session")
def checkout_route(session_id: int):
    """
    Checkout a session.

    Request body (all optional):
    {
        "ended_at": "2026-01-01T12:00:00Z",
        "method": "CASH",            (take payment now)
        "amount": "2000",            (received; omitted = exact net)
        "shift_id": 4,               (default: operator's open shift)
        "device_id": "POS-1",
        "authorization_code": "A1B2"
    }
    """
    data = json_body()
    ended_at = parse_datetime_field(data.get("ended_at"), "ended_at")
    operator_id = g.current_operator.id

    if not data.get("method"):
        result = parking_session_service.checkout(
            session_id, ended_at=ended_at, operator_out_id=operator_id
        )
        return jsonify(result.to_dict()), 200

    shift_id = parse_int_field(data.get("shift_id"), "shift_id")
    if shift_id is None:
        shift = shift_service.get_current_shift(operator_id, data.get("device_id"))
        shift_id = shift.id if shift else None

    result = parking_session_service.checkout_with_payment(
        session_id,
        method=data.get("method"),
        amount=data.get("amount"),
        shift_id=shift_id,
        ended_at=ended_at,
        operator_out_id=operator_id,
        authorization_code=data.get("authorization_code"),
    )
    return jsonify(result.to_dict()), 200


@sessions_bp.post("/<int:session_id>/cancel")
@require_operator
@handles_core_errors("cancel parking session")
def cancel_session_route(session_id: int):
    session = parking_session_service.cancel_session(session_id, actor_id=g.current_operator.id)
    return jsonify({"session": session.to_dict()}), 200
