# Overview: Flask API routes for payments, gateway confirmations and sale summaries.

from flask import Blueprint, g, jsonify

from ..decorators import handles_core_errors, json_body, require_operator
from ..errors import ValidationError
from ..services import payment_service, shift_service
from ..validation import parse_int_field


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/")
@payments_bp.post("")
@require_operator
@handles_core_errors("record payment")
def record_payment_route():
    """
    Record a payment against a sale and/or a session.

    Request body:
    {
        "sale_id": 10,            (sale_id or session_id required)
        "session_id": 7,
        "method": "CASH",         (CASH, CARD, GATEWAY, TRANSFER)
        "amount": "1500",
        "shift_id": 3,            (default: operator's open shift)
        "device_id": "POS-1",
        "authorization_code": "..."
    }
    """
    data = json_body()
    shift_id = parse_int_field(data.get("shift_id"), "shift_id")
    if shift_id is None:
        shift = shift_service.get_current_shift(g.current_operator.id, data.get("device_id"))
        shift_id = shift.id if shift else None

    result = payment_service.record_payment(
        sale_id=parse_int_field(data.get("sale_id"), "sale_id"),
        session_id=parse_int_field(data.get("session_id"), "session_id"),
        method=data.get("method"),
        amount=data.get("amount"),
        shift_id=shift_id,
        cashier_operator_id=g.current_operator.id,
        authorization_code=data.get("authorization_code"),
        external_transaction_id=data.get("external_transaction_id"),
    )
    return jsonify(result.to_dict()), 201


@payments_bp.post("/webhook")
@handles_core_errors("confirm gateway payment")
def gateway_webhook_route():
    """
    Gateway confirmation callback. Safe to retry: the same
    (transaction_id, session_id) yields the same stored response.

    Request body:
    {
        "transaction_id": "tx-123",
        "session_id": 7,
        "amount": "2500",
        "status": "COMPLETED",    (or FAILED)
        "provider_ref": "..."
    }
    """
    data = json_body()
    if not data.get("transaction_id"):
        raise ValidationError("transaction_id is required")
    result = payment_service.confirm_external(
        transaction_id=str(data["transaction_id"]),
        session_id=parse_int_field(data.get("session_id"), "session_id", required=True),
        amount=data.get("amount"),
        status=data.get("status", "COMPLETED"),
        provider_ref=data.get("provider_ref"),
        authorization_code=data.get("authorization_code"),
        payload=data,
    )
    return jsonify(result), 200


@payments_bp.get("/<int:payment_id>")
@require_operator
@handles_core_errors("get payment")
def get_payment_route(payment_id: int):
    return jsonify({"payment": payment_service.get_payment(payment_id).to_dict()}), 200


@payments_bp.get("/sales/<int:sale_id>/summary")
@require_operator
@handles_core_errors("get sale summary")
def sale_summary_route(sale_id: int):
    return jsonify(payment_service.get_sale_summary(sale_id)), 200
