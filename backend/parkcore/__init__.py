# backend/parkcore/__init__.py
from __future__ import annotations

import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Plan quota collaborator (tests may inject their own checker)
    from .services import quota_service
    checker = app.config.get("QUOTA_CHECKER") or quota_service.build_checker(app.config)
    app.extensions[quota_service.EXTENSION_KEY] = checker

    # Register blueprints
    from .routes.system import system_bp
    from .routes.sessions import sessions_bp
    from .routes.payments import payments_bp
    from .routes.debts import debts_bp
    from .routes.shifts import shifts_bp
    from .routes.pricing import pricing_bp
    from .routes.operators import operators_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(sessions_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(debts_bp)
    app.register_blueprint(shifts_bp)
    app.register_blueprint(pricing_bp)
    app.register_blueprint(operators_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
