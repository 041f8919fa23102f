# Overview: Flask API routes for shift lifecycle, cash adjustments, totals and reports.

"""
Shift API Routes

DESIGN:
- Shift lifecycle: open -> close | cancel (immutable once closed)
- One OPEN shift per (operator, device); a second open returns 409
- Cash adjustments (withdrawals/deposits) recorded against OPEN shifts
- Totals and report are recomputed from payments/adjustments on each call
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import handles_core_errors, json_body, require_operator
from ..errors import NotFoundError
from ..services import shift_service
from ..validation import parse_int_field


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


@shifts_bp.get("/")
@shifts_bp.get("")
@require_operator
@handles_core_errors("list shifts")
def list_shifts_route():
    shifts = shift_service.list_shifts(
        status=request.args.get("status"),
        operator_id=request.args.get("operator_id", type=int),
        limit=request.args.get("limit", default=100, type=int),
    )
    return jsonify({"shifts": [s.to_dict() for s in shifts]}), 200


@shifts_bp.post("/open")
@require_operator
@handles_core_errors("open shift")
def open_shift_route():
    """
    Request body:
    {
        "opening_float": "10000",
        "sector_id": 1,        (optional)
        "device_id": "POS-1",  (optional)
        "notes": "..."         (optional)
    }
    """
    data = json_body()
    shift = shift_service.open_shift(
        operator_id=g.current_operator.id,
        opening_float=data.get("opening_float", 0),
        sector_id=parse_int_field(data.get("sector_id"), "sector_id"),
        device_id=data.get("device_id"),
        notes=data.get("notes"),
        created_by=g.current_operator.id,
    )
    return jsonify({"shift": shift.to_dict()}), 201


@shifts_bp.get("/current")
@require_operator
@handles_core_errors("get current shift")
def current_shift_route():
    shift = shift_service.get_current_shift(g.current_operator.id, request.args.get("device_id"))
    if shift is None:
        raise NotFoundError("No open shift for this operator and device")
    return jsonify({"shift": shift.to_dict()}), 200


@shifts_bp.get("/<int:shift_id>")
@require_operator
@handles_core_errors("get shift")
def get_shift_route(shift_id: int):
    return jsonify({"shift": shift_service.get_shift(shift_id).to_dict()}), 200


@shifts_bp.get("/<int:shift_id>/totals")
@require_operator
@handles_core_errors("compute shift totals")
def shift_totals_route(shift_id: int):
    return jsonify({"totals": shift_service.compute_totals(shift_id).to_dict()}), 200


@shifts_bp.post("/<int:shift_id>/adjustments")
@require_operator
@handles_core_errors("record cash adjustment")
def record_adjustment_route(shift_id: int):
    """
    Request body:
    {
        "type": "WITHDRAWAL",    (WITHDRAWAL or DEPOSIT)
        "amount": "2000",
        "reason": "Cash drop",
        "approved_by": 2,        (optional)
        "receipt_number": "R-1"  (optional)
    }
    """
    data = json_body()
    adjustment = shift_service.record_adjustment(
        shift_id,
        kind=data.get("type"),
        amount=data.get("amount"),
        reason=data.get("reason"),
        actor_id=g.current_operator.id,
        approved_by=parse_int_field(data.get("approved_by"), "approved_by"),
        receipt_number=data.get("receipt_number"),
    )
    return jsonify({"adjustment": adjustment.to_dict()}), 201


@shifts_bp.post("/<int:shift_id>/close")
@require_operator
@handles_core_errors("close shift")
def close_shift_route(shift_id: int):
    """
    Request body:
    {
        "declared_cash": "9000",
        "notes": "..."
    }
    """
    data = json_body()
    closure = shift_service.close_shift(
        shift_id,
        declared_cash=data.get("declared_cash"),
        closed_by=g.current_operator.id,
        notes=data.get("notes"),
    )
    return jsonify(closure.to_dict()), 200


@shifts_bp.post("/<int:shift_id>/cancel")
@require_operator
@handles_core_errors("cancel shift")
def cancel_shift_route(shift_id: int):
    data = json_body()
    shift = shift_service.cancel_shift(shift_id, canceled_by=g.current_operator.id, notes=data.get("notes"))
    return jsonify({"shift": shift.to_dict()}), 200


@shifts_bp.get("/<int:shift_id>/report")
@require_operator
@handles_core_errors("build shift report")
def shift_report_route(shift_id: int):
    return jsonify(shift_service.shift_report(shift_id)), 200
