# Overview: Flask API routes for sectors, streets, operators and assignments.

from flask import Blueprint, g, jsonify, request

from ..decorators import handles_core_errors, json_body, require_operator
from ..services import operator_service, quota_service
from ..validation import parse_datetime_field, parse_int_field


operators_bp = Blueprint("operators", __name__, url_prefix="/api")


@operators_bp.get("/sectors")
@require_operator
@handles_core_errors("list sectors")
def list_sectors_route():
    sectors = operator_service.list_sectors()
    return jsonify({"sectors": [s.to_dict() for s in sectors]}), 200


@operators_bp.post("/sectors")
@require_operator
@handles_core_errors("create sector")
def create_sector_route():
    data = json_body()
    sector = operator_service.create_sector(
        name=data.get("name"),
        is_private=bool(data.get("is_private", False)),
        quota=quota_service.get_checker(),
        actor_id=g.current_operator.id,
    )
    return jsonify({"sector": sector.to_dict()}), 201


@operators_bp.post("/sectors/<int:sector_id>/streets")
@require_operator
@handles_core_errors("create street")
def create_street_route(sector_id: int):
    data = json_body()
    street = operator_service.create_street(sector_id, name=data.get("name"), notes=data.get("notes"))
    return jsonify({"street": street.to_dict()}), 201


@operators_bp.get("/operators")
@require_operator
@handles_core_errors("list operators")
def list_operators_route():
    operators = operator_service.list_operators(request.args.get("status"))
    return jsonify({"operators": [o.to_dict() for o in operators]}), 200


@operators_bp.post("/operators")
@require_operator
@handles_core_errors("create operator")
def create_operator_route():
    data = json_body()
    operator = operator_service.create_operator(
        name=data.get("name"),
        rut=data.get("rut"),
        quota=quota_service.get_checker(),
        actor_id=g.current_operator.id,
    )
    return jsonify({"operator": operator.to_dict()}), 201


@operators_bp.post("/operators/<int:operator_id>/status")
@require_operator
@handles_core_errors("change operator status")
def operator_status_route(operator_id: int):
    data = json_body()
    operator = operator_service.set_operator_status(
        operator_id, status=data.get("status"), actor_id=g.current_operator.id
    )
    return jsonify({"operator": operator.to_dict()}), 200


@operators_bp.post("/operators/<int:operator_id>/assignments")
@require_operator
@handles_core_errors("assign operator")
def assign_operator_route(operator_id: int):
    """
    Request body:
    {
        "sector_id": 1,
        "street_id": 2,                        (optional, null = whole sector)
        "valid_from": "2026-01-01T00:00:00Z",  (optional, default now)
        "valid_to": null
    }
    """
    data = json_body()
    assignment = operator_service.assign_operator(
        operator_id,
        sector_id=parse_int_field(data.get("sector_id"), "sector_id", required=True),
        street_id=parse_int_field(data.get("street_id"), "street_id"),
        valid_from=parse_datetime_field(data.get("valid_from"), "valid_from"),
        valid_to=parse_datetime_field(data.get("valid_to"), "valid_to"),
        actor_id=g.current_operator.id,
    )
    return jsonify({"assignment": assignment.to_dict()}), 201
