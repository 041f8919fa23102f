"""
Tariff evaluation.

Pure pricing: a pricing profile (with its rules) and a billed duration go
in, an amount plus an audit breakdown come out. The only database access
is get_active_profile(), which looks up the profile to evaluate.

DESIGN:
- Elapsed time is always rounded UP to whole minutes (61s bills as 2 min)
- One rule is selected per evaluation: the active rule whose duration
  range contains the billed minutes (lowest priority wins ties); when no
  range matches, the first active rule by priority, then range start
- fixed_price (non-zero) replaces the per-minute amount
- Floor (min_amount) then cap (daily_max_amount)
- Discounts are applied on top of the gross amount, capped at gross
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import or_

from ..errors import ConfigurationError, NoActiveTariff, NoPricingRules, ValidationError
from ..extensions import db
from ..models import DiscountRule, PricingProfile, PricingRule
from ..money import CENT, ZERO, money_json, to_money

FULL_DAY_RULE_NAME = "Full day"


@dataclass(frozen=True)
class TariffQuote:
    """Amount owed for one rule evaluation plus its breakdown."""
    amount: Decimal
    breakdown: dict

    def to_dict(self) -> dict:
        return {"amount": money_json(self.amount), "breakdown": self.breakdown}


@dataclass(frozen=True)
class SessionPrice:
    """Gross/discount/net for a session window."""
    seconds: int
    minutes: int
    gross: Decimal
    discount: Decimal
    net: Decimal
    profile_id: int
    profile_name: str
    breakdown: dict
    discounts: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "seconds": self.seconds,
            "minutes": self.minutes,
            "gross_amount": money_json(self.gross),
            "discount_amount": money_json(self.discount),
            "net_amount": money_json(self.net),
            "pricing_profile_id": self.profile_id,
            "pricing_profile": self.profile_name,
            "breakdown": self.breakdown,
            "discounts": self.discounts,
        }


def billed_minutes(seconds: int) -> int:
    """Ceiling of seconds / 60. Partial minutes always bill as a full minute."""
    if seconds < 0:
        raise ValidationError("Elapsed time cannot be negative")
    return math.ceil(seconds / 60)


def elapsed_seconds(started_at: datetime, ended_at: datetime) -> int:
    if ended_at < started_at:
        raise ValidationError("ended_at cannot be before started_at")
    delta = ended_at - started_at
    # Sub-second remainders still round the minute up
    return math.ceil(delta.total_seconds())


def get_active_profile(sector_id: int, at: datetime) -> PricingProfile:
    """
    Profile in force for a sector at a moment.

    Several overlapping profiles resolve to the most recently started one.
    """
    profile = (
        db.session.query(PricingProfile)
        .filter(
            PricingProfile.sector_id == sector_id,
            PricingProfile.is_active.is_(True),
            PricingProfile.active_from <= at,
            or_(PricingProfile.active_to.is_(None), PricingProfile.active_to >= at),
        )
        .order_by(PricingProfile.active_from.desc(), PricingProfile.id.desc())
        .first()
    )
    if profile is None:
        raise NoActiveTariff(f"No active pricing profile for sector {sector_id}", sector_id=sector_id)
    return profile


def _active_rules(profile: PricingProfile) -> list[PricingRule]:
    rules = [r for r in profile.rules if r.is_active]
    if not rules:
        raise NoPricingRules(f"Pricing profile {profile.id} has no active rules", profile_id=profile.id)
    return sorted(rules, key=lambda r: (r.priority, r.min_duration_minutes or 0, r.id or 0))


def select_rule(rules: list[PricingRule], minutes: int) -> tuple[PricingRule, bool]:
    """
    Returns (rule, used_fallback). rules must already be in priority order.
    """
    for rule in rules:
        if rule.covers(minutes):
            return rule, False
    return rules[0], True


def price_with_rule(rule: PricingRule, minutes: int) -> TariffQuote:
    rate = to_money(rule.price_per_min) if rule.price_per_min is not None else ZERO
    base = (rate * minutes).quantize(CENT)
    amount = base

    fixed_applied = False
    if rule.fixed_price is not None and to_money(rule.fixed_price) != ZERO:
        amount = to_money(rule.fixed_price)
        fixed_applied = True

    min_applied = False
    min_amount = to_money(rule.min_amount) if rule.min_amount is not None else None
    if min_amount is not None:
        base_mode = (
            rule.min_amount_is_base
            and rule.base_duration_minutes is not None
            and not fixed_applied
        )
        if base_mode:
            if minutes <= rule.base_duration_minutes:
                amount = min_amount
            else:
                amount = min_amount + rate * (minutes - rule.base_duration_minutes)
            min_applied = True
        elif amount < min_amount:
            amount = min_amount
            min_applied = True

    max_applied = False
    daily_max = to_money(rule.daily_max_amount) if rule.daily_max_amount is not None else None
    if daily_max is not None and amount > daily_max:
        amount = daily_max
        max_applied = True

    amount = to_money(amount)
    return TariffQuote(
        amount=amount,
        breakdown={
            "rule_id": rule.id,
            "rule_name": rule.name,
            "minutes": minutes,
            "rate_per_minute": money_json(rate),
            "base_amount": money_json(base),
            "fixed_price_applied": fixed_applied,
            "min_amount": money_json(min_amount),
            "min_amount_applied": min_applied,
            "min_amount_is_base": bool(rule.min_amount_is_base),
            "daily_max_amount": money_json(daily_max),
            "daily_max_applied": max_applied,
            "final_amount": money_json(amount),
        },
    )


def evaluate(profile: PricingProfile, minutes: int) -> TariffQuote:
    """Price a number of billed minutes under a profile."""
    if minutes < 0:
        raise ValidationError("minutes must be >= 0")
    rules = _active_rules(profile)
    rule, used_fallback = select_rule(rules, minutes)
    quote = price_with_rule(rule, minutes)
    quote.breakdown["fallback_rule"] = used_fallback
    quote.breakdown["pricing_profile_id"] = profile.id
    return quote


def evaluate_full_day(profile: PricingProfile, minutes: int = 0) -> TariffQuote:
    """Full-day sessions pay the highest daily maximum among the active rules."""
    rules = _active_rules(profile)
    caps = [to_money(r.daily_max_amount) for r in rules if r.daily_max_amount is not None]
    if not caps:
        raise ConfigurationError(
            f"Pricing profile {profile.id} has no daily maximum for full-day sessions",
            profile_id=profile.id,
        )
    amount = max(caps)
    return TariffQuote(
        amount=amount,
        breakdown={
            "rule_id": None,
            "rule_name": FULL_DAY_RULE_NAME,
            "minutes": minutes,
            "rate_per_minute": None,
            "base_amount": money_json(amount),
            "fixed_price_applied": False,
            "min_amount": None,
            "min_amount_applied": False,
            "min_amount_is_base": False,
            "daily_max_amount": money_json(amount),
            "daily_max_applied": True,
            "final_amount": money_json(amount),
            "fallback_rule": False,
            "pricing_profile_id": profile.id,
        },
    )


# =============================================================================
# DISCOUNTS
# =============================================================================

def day_of_week(at: datetime) -> int:
    """0=Sunday .. 6=Saturday."""
    return at.isoweekday() % 7


def discount_applies(rule: DiscountRule, *, gross: Decimal, minutes: int, weekday: int) -> bool:
    if not rule.is_active:
        return False
    conditions = rule.conditions or {}

    if conditions.get("min_amount") is not None and gross < to_money(conditions["min_amount"]):
        return False
    if conditions.get("max_amount") is not None and gross > to_money(conditions["max_amount"]):
        return False
    if conditions.get("min_minutes") is not None and minutes < int(conditions["min_minutes"]):
        return False
    if conditions.get("max_minutes") is not None and minutes > int(conditions["max_minutes"]):
        return False
    days = conditions.get("days_of_week")
    if days is not None and weekday not in days:
        return False
    return True


def discount_amount(rule: DiscountRule, gross: Decimal) -> Decimal:
    value = to_money(rule.value)
    if rule.kind == "PERCENTAGE":
        amount = to_money(gross * value / Decimal(100))
    elif rule.kind == "FIXED":
        amount = value
    else:
        amount = ZERO

    if rule.max_amount is not None and amount > to_money(rule.max_amount):
        amount = to_money(rule.max_amount)
    return amount


def apply_discounts(
    profile: PricingProfile,
    gross: Decimal,
    *,
    minutes: int,
    at: datetime,
) -> tuple[Decimal, list[dict]]:
    """
    Sum of applicable discounts in priority order, never more than gross.

    Returns (total_discount, applied) where applied lists each matching rule.
    """
    weekday = day_of_week(at)
    total = ZERO
    applied: list[dict] = []
    for rule in sorted(profile.discount_rules, key=lambda r: (r.priority, r.id or 0)):
        if not discount_applies(rule, gross=gross, minutes=minutes, weekday=weekday):
            continue
        amount = discount_amount(rule, gross)
        total += amount
        applied.append({
            "discount_rule_id": rule.id,
            "name": rule.name,
            "kind": rule.kind,
            "amount": money_json(amount),
        })
    return min(total, gross), applied


# =============================================================================
# SESSION PRICING
# =============================================================================

def price_window(
    sector_id: int,
    started_at: datetime,
    ended_at: datetime,
    *,
    is_full_day: bool = False,
) -> SessionPrice:
    """
    Price a stay in a sector. The profile in force at ended_at is used.
    """
    seconds = elapsed_seconds(started_at, ended_at)
    minutes = billed_minutes(seconds)
    profile = get_active_profile(sector_id, ended_at)

    if is_full_day:
        quote = evaluate_full_day(profile, minutes)
    else:
        quote = evaluate(profile, minutes)

    gross = quote.amount
    discount, applied = apply_discounts(profile, gross, minutes=minutes, at=started_at)
    net = max(gross - discount, ZERO)

    return SessionPrice(
        seconds=seconds,
        minutes=minutes,
        gross=gross,
        discount=discount,
        net=net,
        profile_id=profile.id,
        profile_name=profile.name,
        breakdown=quote.breakdown,
        discounts=applied,
    )


def simulate(sector_id: int, minutes: int, *, at: datetime) -> SessionPrice:
    """Price a hypothetical stay of `minutes` ending at `at` (tariff simulation)."""
    if minutes < 0:
        raise ValidationError("minutes must be >= 0")
    profile = get_active_profile(sector_id, at)
    quote = evaluate(profile, minutes)
    gross = quote.amount
    discount, applied = apply_discounts(profile, gross, minutes=minutes, at=at)
    return SessionPrice(
        seconds=minutes * 60,
        minutes=minutes,
        gross=gross,
        discount=discount,
        net=max(gross - discount, ZERO),
        profile_id=profile.id,
        profile_name=profile.name,
        breakdown=quote.breakdown,
        discounts=applied,
    )
