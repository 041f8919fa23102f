"""
Pricing administration: profiles, duration rules and discount rules.

Payloads are validated against model metadata through the
ModelValidationPolicy layer, then checked for tariff-specific rules.
"""

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError
from ..extensions import db
from ..models import DiscountRule, PricingProfile, PricingRule
from ..time_utils import utcnow
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_discount_rule,
    enforce_rules_pricing_profile,
    enforce_rules_pricing_rule,
    validate_payload,
)
from . import quota_service
from .audit_service import audited
from .concurrency import run_in_transaction
from .operator_service import get_sector


PROFILE_POLICY = ModelValidationPolicy(
    writable_fields={"sector_id", "name", "description", "is_active", "active_from", "active_to"},
    required_on_create={"sector_id", "name"},
)

RULE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "min_duration_minutes",
        "max_duration_minutes",
        "price_per_min",
        "fixed_price",
        "min_amount",
        "min_amount_is_base",
        "base_duration_minutes",
        "daily_max_amount",
        "priority",
        "is_active",
    },
    required_on_create={"name"},
)

DISCOUNT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "kind", "conditions", "value", "max_amount", "priority", "is_active"},
    required_on_create={"kind", "value"},
)


def get_profile(profile_id: int) -> PricingProfile:
    profile = db.session.get(PricingProfile, profile_id)
    if profile is None:
        raise NotFoundError(f"Pricing profile {profile_id} not found", profile_id=profile_id)
    return profile


def list_profiles(sector_id: int | None = None) -> list[PricingProfile]:
    query = db.session.query(PricingProfile)
    if sector_id is not None:
        query = query.filter_by(sector_id=sector_id)
    return query.order_by(PricingProfile.active_from.desc(), PricingProfile.id.desc()).all()


@audited("pricing_profile.create", "pricing_profile")
def create_profile(
    payload: dict,
    *,
    quota: quota_service.QuotaChecker | None = None,
    actor_id: int | None = None,
    commit: bool = True,
) -> PricingProfile:
    patch = validate_payload(model=PricingProfile, payload=payload, policy=PROFILE_POLICY, partial=False)
    patch.setdefault("active_from", utcnow())
    enforce_rules_pricing_profile(patch)

    def _op():
        get_sector(patch["sector_id"])
        quota_service.ensure_can_create(quota, quota_service.PRICING_PROFILE)
        profile = PricingProfile(**patch)
        db.session.add(profile)
        db.session.flush()
        current_app.logger.info("Pricing profile created: id=%s sector=%s", profile.id, profile.sector_id)
        return profile

    return run_in_transaction(_op, commit=commit)


@audited("pricing_rule.create", "pricing_rule")
def create_rule(profile_id: int, payload: dict, *, actor_id: int | None = None, commit: bool = True) -> PricingRule:
    patch = validate_payload(model=PricingRule, payload=payload, policy=RULE_POLICY, partial=False)
    enforce_rules_pricing_rule(patch)

    def _op():
        get_profile(profile_id)
        rule = PricingRule(profile_id=profile_id, **patch)
        db.session.add(rule)
        db.session.flush()
        return rule

    return run_in_transaction(_op, commit=commit)


@audited("discount_rule.create", "discount_rule")
def create_discount_rule(profile_id: int, payload: dict, *, actor_id: int | None = None, commit: bool = True) -> DiscountRule:
    patch = validate_payload(model=DiscountRule, payload=payload, policy=DISCOUNT_POLICY, partial=False)
    enforce_rules_discount_rule(patch)

    def _op():
        get_profile(profile_id)
        rule = DiscountRule(profile_id=profile_id, **patch)
        db.session.add(rule)
        db.session.flush()
        return rule

    return run_in_transaction(_op, commit=commit)


@audited("pricing_profile.toggle", "pricing_profile", load_before=lambda profile_id, **_: get_profile(profile_id))
def set_profile_active(profile_id: int, *, is_active: bool, actor_id: int | None = None, commit: bool = True) -> PricingProfile:
    def _op():
        profile = get_profile(profile_id)
        profile.is_active = bool(is_active)
        return profile

    return run_in_transaction(_op, commit=commit)
