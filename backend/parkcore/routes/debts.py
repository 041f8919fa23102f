# Overview: Flask API routes for debts (manual creation, settlement, cancellation, summaries).

from flask import Blueprint, g, jsonify, request

from ..decorators import handles_core_errors, json_body, require_operator
from ..errors import ValidationError
from ..services import debt_service, shift_service
from ..validation import parse_int_field


debts_bp = Blueprint("debts", __name__, url_prefix="/api/debts")


@debts_bp.post("/")
@debts_bp.post("")
@require_operator
@handles_core_errors("create debt")
def create_debt_route():
    """
    Request body:
    {
        "plate": "ABCD12",
        "amount": "15000",
        "origin": "FINE",    (FINE or MANUAL)
        "notes": "..."
    }
    """
    data = json_body()
    debt = debt_service.create_manual(
        plate=data.get("plate"),
        amount=data.get("amount"),
        origin=data.get("origin", debt_service.ORIGIN_MANUAL),
        notes=data.get("notes"),
        actor_id=g.current_operator.id,
    )
    return jsonify({"debt": debt.to_dict()}), 201


@debts_bp.get("/by-plate")
@require_operator
@handles_core_errors("list debts by plate")
def debts_by_plate_route():
    plate = request.args.get("plate")
    if not plate:
        raise ValidationError("plate is required")
    return jsonify(debt_service.plate_summary(plate)), 200


@debts_bp.get("/pending-summary")
@require_operator
@handles_core_errors("summarize pending debts")
def pending_summary_route():
    return jsonify(debt_service.pending_summary()), 200


@debts_bp.get("/<int:debt_id>")
@require_operator
@handles_core_errors("get debt")
def get_debt_route(debt_id: int):
    return jsonify({"debt": debt_service.get_debt(debt_id).to_dict()}), 200


@debts_bp.post("/<int:debt_id>/settle")
@require_operator
@handles_core_errors("settle debt")
def settle_debt_route(debt_id: int):
    """
    Request body:
    {
        "amount": "2000",          (must cover the outstanding amount)
        "method": "CASH",
        "shift_id": 3,             (default: operator's open shift)
        "device_id": "POS-1",
        "authorization_code": "..."
    }
    """
    data = json_body()
    shift_id = parse_int_field(data.get("shift_id"), "shift_id")
    if shift_id is None:
        shift = shift_service.get_current_shift(g.current_operator.id, data.get("device_id"))
        shift_id = shift.id if shift else None

    result = debt_service.settle(
        debt_id,
        amount=data.get("amount"),
        method=data.get("method"),
        shift_id=shift_id,
        cashier_operator_id=g.current_operator.id,
        authorization_code=data.get("authorization_code"),
    )
    return jsonify(result.to_dict()), 200


@debts_bp.post("/<int:debt_id>/cancel")
@require_operator
@handles_core_errors("cancel debt")
def cancel_debt_route(debt_id: int):
    data = json_body()
    debt = debt_service.cancel(debt_id, actor_id=g.current_operator.id, notes=data.get("notes"))
    return jsonify({"debt": debt.to_dict()}), 200
