# Overview: Request decorators for API routes (operator identity, error mapping).

from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import CoreError
from .extensions import db
from .models import Operator

OPERATOR_HEADER = "X-Operator-Id"


def require_operator(f):
    """
    Establish the acting operator from the X-Operator-Id header.

    Authentication happens upstream (gateway); the core only checks that
    the id names an ACTIVE operator. Sets g.current_operator.

    Returns 401 if the header is missing, malformed, unknown or inactive.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(OPERATOR_HEADER, "").strip()
        if not raw.isdigit():
            return jsonify({"error": "unauthorized", "message": "Operator identification required"}), 401

        operator = db.session.get(Operator, int(raw))
        if operator is None or not operator.is_active:
            return jsonify({"error": "unauthorized", "message": "Unknown or inactive operator"}), 401

        g.current_operator = operator
        return f(*args, **kwargs)

    return decorated_function


def handles_core_errors(description: str):
    """
    Map CoreError to its JSON body and status; log anything else as a 500.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except CoreError as e:
                db.session.rollback()
                return jsonify(e.to_dict()), e.http_status
            except Exception:
                db.session.rollback()
                current_app.logger.exception("Failed to %s", description)
                return jsonify({"error": "internal_error", "message": "Internal server error"}), 500

        return decorated_function

    return decorator


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
