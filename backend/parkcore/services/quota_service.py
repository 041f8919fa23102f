"""
Plan quota checks.

Subscription plans are enforced outside the core; the core only asks a
QuotaChecker before creating a limited resource. The checker is injected
(the app keeps the configured one in app.extensions["parkcore.quota"]).

A checker that raises blocks the operation (ExternalDependencyError):
quota checks never fail open.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from flask import current_app

from ..errors import CoreError, ExternalDependencyError, QuotaExceededError
from ..extensions import db
from ..models import Operator, ParkingSession, PricingProfile, Sector
from ..time_utils import month_start, utcnow

EXTENSION_KEY = "parkcore.quota"

OPERATOR = "operator"
SECTOR = "sector"
PRICING_PROFILE = "pricing_profile"
SESSION = "session"

RESOURCE_KINDS = {OPERATOR, SECTOR, PRICING_PROFILE, SESSION}


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    current: int | None = None
    limit: int | None = None
    message: str | None = None

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "current": self.current,
            "limit": self.limit,
            "message": self.message,
        }


class QuotaChecker(Protocol):
    def can_create(self, resource_kind: str) -> QuotaDecision:
        ...


class UnlimitedQuotaChecker:
    """Allows everything. Used when no plan limits are configured."""

    def can_create(self, resource_kind: str) -> QuotaDecision:
        return QuotaDecision(allowed=True)


class PlanLimitQuotaChecker:
    """
    Counts existing rows against fixed limits.

    limits maps a resource kind to its maximum (None = unlimited).
    Operators count only ACTIVE ones; sessions count those started in the
    current calendar month.
    """

    def __init__(self, limits: dict[str, int | None]):
        self.limits = dict(limits)

    @classmethod
    def from_config(cls, config) -> "PlanLimitQuotaChecker":
        return cls({
            OPERATOR: config.get("PLAN_MAX_OPERATORS"),
            SECTOR: config.get("PLAN_MAX_SECTORS"),
            PRICING_PROFILE: config.get("PLAN_MAX_PRICING_PROFILES"),
            SESSION: config.get("PLAN_MAX_MONTHLY_SESSIONS"),
        })

    def _count(self, resource_kind: str) -> int:
        if resource_kind == OPERATOR:
            return db.session.query(Operator).filter_by(status="ACTIVE").count()
        if resource_kind == SECTOR:
            return db.session.query(Sector).count()
        if resource_kind == PRICING_PROFILE:
            return db.session.query(PricingProfile).count()
        if resource_kind == SESSION:
            return (
                db.session.query(ParkingSession)
                .filter(ParkingSession.started_at >= month_start(utcnow()))
                .count()
            )
        raise ValueError(f"Unknown resource kind: {resource_kind}")

    def can_create(self, resource_kind: str) -> QuotaDecision:
        limit = self.limits.get(resource_kind)
        if limit is None:
            return QuotaDecision(allowed=True)

        current = self._count(resource_kind)
        if current >= limit:
            return QuotaDecision(
                allowed=False,
                current=current,
                limit=limit,
                message=f"Plan does not allow more {resource_kind} records. Limit: {limit}",
            )
        return QuotaDecision(allowed=True, current=current, limit=limit)


def build_checker(config) -> QuotaChecker:
    """Plan limits when any PLAN_MAX_* is set, otherwise unlimited."""
    checker = PlanLimitQuotaChecker.from_config(config)
    if all(v is None for v in checker.limits.values()):
        return UnlimitedQuotaChecker()
    return checker


def get_checker() -> QuotaChecker:
    return current_app.extensions[EXTENSION_KEY]


def ensure_can_create(checker: QuotaChecker | None, resource_kind: str) -> QuotaDecision | None:
    """
    Ask the checker and raise unless creation is allowed.

    checker=None skips the check (internal callers such as seeding).
    """
    if checker is None:
        return None

    try:
        decision = checker.can_create(resource_kind)
    except CoreError:
        raise
    except Exception as exc:
        current_app.logger.exception("Quota check failed for %s", resource_kind)
        raise ExternalDependencyError(f"Quota check failed for {resource_kind}") from exc

    if not decision.allowed:
        current_app.logger.warning(
            "Quota denied for %s (current=%s, limit=%s)", resource_kind, decision.current, decision.limit
        )
        raise QuotaExceededError(
            decision.message or f"Quota exceeded for {resource_kind}",
            resource=resource_kind,
            current=decision.current,
            limit=decision.limit,
        )
    return decision
