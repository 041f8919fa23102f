# Overview: Error taxonomy shared by all core services.

"""
Core error taxonomy.

Every failure a service raises is a CoreError subclass carrying a stable
machine-readable ``kind`` and the HTTP status the API layer maps it to.
Services never return partial results: the transaction is rolled back and
the error propagates to the caller.
"""

from __future__ import annotations


class CoreError(Exception):
    """Base class for structured core failures."""

    kind = "core_error"
    http_status = 500

    def __init__(self, message: str = "", **details):
        super().__init__(message or self.kind)
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.kind, "message": str(self)}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(CoreError, ValueError):
    """400-level input problem (bad shape or range)."""

    kind = "validation_error"
    http_status = 400


class StateConflictError(CoreError):
    """409-level conflict: wrong status for a transition or a uniqueness violation."""

    kind = "state_conflict"
    http_status = 409


class NotFoundError(CoreError, LookupError):
    kind = "not_found"
    http_status = 404


class ConfigurationError(CoreError):
    """Sector has no usable tariff configuration."""

    kind = "configuration_error"
    http_status = 422


class ExternalDependencyError(CoreError):
    """A collaborator (quota check, gateway) failed or timed out."""

    kind = "external_dependency_error"
    http_status = 503


class QuotaExceededError(CoreError):
    kind = "quota_exceeded"
    http_status = 403


# =============================================================================
# NAMED FAILURES
# =============================================================================

class InvalidAmount(ValidationError):
    kind = "invalid_amount"


class InsufficientAmount(ValidationError):
    kind = "insufficient_amount"


class SessionNotActive(StateConflictError):
    kind = "session_not_active"


class InvalidTransition(StateConflictError):
    kind = "invalid_transition"


class DebtNotPending(StateConflictError):
    kind = "debt_not_pending"


class SaleAlreadyClosed(StateConflictError):
    """Sale is fully paid; further completed payments are refused."""

    kind = "sale_closed"


class ShiftAlreadyOpen(StateConflictError):
    kind = "shift_already_open"


class ShiftNotOpen(StateConflictError):
    kind = "shift_not_open"


class IdempotencyConflict(StateConflictError):
    """Key reused with a different payload."""

    kind = "idempotency_conflict"


class NoActiveTariff(ConfigurationError):
    kind = "no_active_tariff"


class NoPricingRules(ConfigurationError):
    kind = "no_pricing_rules"
