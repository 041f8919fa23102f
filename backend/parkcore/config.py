# backend/parkcore/config.py
from __future__ import annotations
import os


def _optional_int(name: str) -> int | None:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/parkcore.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///parkcore.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Plan limits (None = unlimited)
    PLAN_MAX_OPERATORS = _optional_int("PLAN_MAX_OPERATORS")
    PLAN_MAX_SECTORS = _optional_int("PLAN_MAX_SECTORS")
    PLAN_MAX_PRICING_PROFILES = _optional_int("PLAN_MAX_PRICING_PROFILES")
    PLAN_MAX_MONTHLY_SESSIONS = _optional_int("PLAN_MAX_MONTHLY_SESSIONS")

    # Shift report
    RECENT_PAYMENTS_LIMIT = int(os.environ.get("RECENT_PAYMENTS_LIMIT", "50"))
