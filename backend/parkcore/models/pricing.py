from __future__ import annotations

from ..extensions import db
from ..money import money_json
from ..time_utils import to_utc_z


class PricingProfile(db.Model):
    """
    Tariff for a sector over an activity window.

    A profile is usable when is_active and active_from <= t <= active_to
    (NULL active_to is open-ended). When several overlap, the most recently
    started one wins.
    """
    __tablename__ = "pricing_profiles"
    __table_args__ = (
        db.Index("ix_pricing_profiles_sector_active_from", "sector_id", "active_from"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sector_id = db.Column(db.Integer, db.ForeignKey("sectors.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    active_from = db.Column(db.DateTime(timezone=True), nullable=False)
    active_to = db.Column(db.DateTime(timezone=True), nullable=True)

    sector = db.relationship("Sector", backref=db.backref("pricing_profiles", lazy=True))
    rules = db.relationship(
        "PricingRule",
        backref="profile",
        lazy=True,
        order_by="PricingRule.priority",
    )
    discount_rules = db.relationship(
        "DiscountRule",
        backref="profile",
        lazy=True,
        order_by="DiscountRule.priority",
    )

    def is_active_at(self, at) -> bool:
        if not self.is_active:
            return False
        if self.active_from > at:
            return False
        if self.active_to is not None and self.active_to < at:
            return False
        return True

    def to_dict(self, *, include_rules: bool = False) -> dict:
        d = {
            "id": self.id,
            "sector_id": self.sector_id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "active_from": to_utc_z(self.active_from),
            "active_to": to_utc_z(self.active_to),
        }
        if include_rules:
            d["rules"] = [r.to_dict() for r in self.rules]
            d["discount_rules"] = [r.to_dict() for r in self.discount_rules]
        return d


class PricingRule(db.Model):
    """
    Duration-range pricing rule.

    PRICING:
    - per minute: billed_minutes * price_per_min
    - fixed_price (non-zero) replaces the per-minute amount entirely
    - min_amount floor, either legacy (raise to minimum) or as a base
      covering the first base_duration_minutes (min_amount_is_base)
    - daily_max_amount clamps the result down
    """
    __tablename__ = "pricing_rules"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    profile_id = db.Column(db.Integer, db.ForeignKey("pricing_profiles.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)

    # Duration range the rule applies to: [min, max] minutes; NULL max is open-ended
    min_duration_minutes = db.Column(db.Integer, nullable=False, default=0)
    max_duration_minutes = db.Column(db.Integer, nullable=True)

    price_per_min = db.Column(db.Numeric(12, 2), nullable=True)
    fixed_price = db.Column(db.Numeric(12, 2), nullable=True)

    min_amount = db.Column(db.Numeric(12, 2), nullable=True)
    min_amount_is_base = db.Column(db.Boolean, nullable=False, default=False)
    base_duration_minutes = db.Column(db.Integer, nullable=True)
    daily_max_amount = db.Column(db.Numeric(12, 2), nullable=True)

    priority = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def covers(self, minutes: int) -> bool:
        if minutes < (self.min_duration_minutes or 0):
            return False
        if self.max_duration_minutes is not None and minutes > self.max_duration_minutes:
            return False
        return True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "profile_id": self.profile_id,
            "name": self.name,
            "min_duration_minutes": self.min_duration_minutes,
            "max_duration_minutes": self.max_duration_minutes,
            "price_per_min": money_json(self.price_per_min),
            "fixed_price": money_json(self.fixed_price),
            "min_amount": money_json(self.min_amount),
            "min_amount_is_base": self.min_amount_is_base,
            "base_duration_minutes": self.base_duration_minutes,
            "daily_max_amount": money_json(self.daily_max_amount),
            "priority": self.priority,
            "is_active": self.is_active,
        }


class DiscountRule(db.Model):
    """
    Conditional discount attached to a profile.

    KINDS:
    - PERCENTAGE: value percent of gross
    - FIXED: flat value

    conditions (all optional, all must hold): min_amount, max_amount,
    min_minutes, max_minutes, days_of_week (0=Sunday .. 6=Saturday).
    """
    __tablename__ = "discount_rules"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    profile_id = db.Column(db.Integer, db.ForeignKey("pricing_profiles.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=True)
    kind = db.Column(db.String(16), nullable=False)
    conditions = db.Column(db.JSON, nullable=True)
    value = db.Column(db.Numeric(12, 2), nullable=False)
    max_amount = db.Column(db.Numeric(12, 2), nullable=True)
    priority = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "profile_id": self.profile_id,
            "name": self.name,
            "kind": self.kind,
            "conditions": self.conditions or {},
            "value": money_json(self.value),
            "max_amount": money_json(self.max_amount),
            "priority": self.priority,
            "is_active": self.is_active,
        }
