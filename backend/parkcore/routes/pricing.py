# Overview: Flask API routes for pricing profiles, rules, discount rules and tariff simulation.

from flask import Blueprint, g, jsonify, request

from ..decorators import handles_core_errors, json_body, require_operator
from ..errors import ValidationError
from ..services import pricing_service, quota_service, tariff_service
from ..time_utils import utcnow
from ..validation import parse_datetime_field, parse_int_field


pricing_bp = Blueprint("pricing", __name__, url_prefix="/api/pricing")


@pricing_bp.get("/profiles")
@require_operator
@handles_core_errors("list pricing profiles")
def list_profiles_route():
    profiles = pricing_service.list_profiles(request.args.get("sector_id", type=int))
    return jsonify({"profiles": [p.to_dict() for p in profiles]}), 200


@pricing_bp.post("/profiles")
@require_operator
@handles_core_errors("create pricing profile")
def create_profile_route():
    """
    Request body:
    {
        "sector_id": 1,
        "name": "Weekday",
        "description": "...",
        "active_from": "2026-01-01T00:00:00Z",   (default now)
        "active_to": null
    }
    """
    profile = pricing_service.create_profile(
        json_body(),
        quota=quota_service.get_checker(),
        actor_id=g.current_operator.id,
    )
    return jsonify({"profile": profile.to_dict(include_rules=True)}), 201


@pricing_bp.get("/profiles/<int:profile_id>")
@require_operator
@handles_core_errors("get pricing profile")
def get_profile_route(profile_id: int):
    profile = pricing_service.get_profile(profile_id)
    return jsonify({"profile": profile.to_dict(include_rules=True)}), 200


@pricing_bp.post("/profiles/<int:profile_id>/toggle")
@require_operator
@handles_core_errors("toggle pricing profile")
def toggle_profile_route(profile_id: int):
    data = json_body()
    if not isinstance(data.get("is_active"), bool):
        raise ValidationError("is_active must be a boolean")
    profile = pricing_service.set_profile_active(
        profile_id, is_active=data["is_active"], actor_id=g.current_operator.id
    )
    return jsonify({"profile": profile.to_dict()}), 200


@pricing_bp.post("/profiles/<int:profile_id>/rules")
@require_operator
@handles_core_errors("create pricing rule")
def create_rule_route(profile_id: int):
    """
    Request body:
    {
        "name": "First hour",
        "min_duration_minutes": 0,
        "max_duration_minutes": 60,
        "price_per_min": "50",
        "fixed_price": null,
        "min_amount": "500",
        "min_amount_is_base": false,
        "base_duration_minutes": null,
        "daily_max_amount": "8000",
        "priority": 1
    }
    """
    rule = pricing_service.create_rule(profile_id, json_body(), actor_id=g.current_operator.id)
    return jsonify({"rule": rule.to_dict()}), 201


@pricing_bp.post("/profiles/<int:profile_id>/discount-rules")
@require_operator
@handles_core_errors("create discount rule")
def create_discount_rule_route(profile_id: int):
    rule = pricing_service.create_discount_rule(profile_id, json_body(), actor_id=g.current_operator.id)
    return jsonify({"discount_rule": rule.to_dict()}), 201


@pricing_bp.post("/sectors/<int:sector_id>/simulate")
@require_operator
@handles_core_errors("simulate tariff")
def simulate_route(sector_id: int):
    """
    Request body:
    {
        "minutes": 45,
        "at": "2026-01-01T12:00:00Z"   (optional, default now)
    }
    """
    data = json_body()
    minutes = parse_int_field(data.get("minutes"), "minutes", required=True)
    at = parse_datetime_field(data.get("at"), "at") or utcnow()
    price = tariff_service.simulate(sector_id, minutes, at=at)
    return jsonify({"quote": price.to_dict()}), 200
