# Overview: Request decorators and error mapping for API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .validation import ValidationError, ConflictError
from .services.concurrency import StoreUnavailableError

# Actor ids are stored in String(64) columns
MAX_ACTOR_ID_LENGTH = 64


def require_actor(f):
    """
    Require the acting user's identity.

    The identity is resolved upstream (gateway / session layer) and arrives
    in the IDENTITY_HEADER request header. Nothing is authenticated here;
    the value is only checked for presence and length and stored as
    g.actor_id.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        header = current_app.config.get("IDENTITY_HEADER", "X-Actor-Id")
        actor_id = (request.headers.get(header) or "").strip()

        if not actor_id:
            return jsonify({"error": "Actor identity required"}), 401
        if len(actor_id) > MAX_ACTOR_ID_LENGTH:
            return jsonify({"error": "Actor identity too long"}), 400

        g.actor_id = actor_id
        return f(*args, **kwargs)

    return decorated_function


def error_response(exc: Exception, *, not_found=(), conflict=(), action: str = "process request"):
    """
    Map a service exception to a JSON error response.

    not_found / conflict: exception classes answered with 404 / 409.
    ValidationError is 400, StoreUnavailableError 503, anything else is
    logged and answered with 500.
    """
    if not_found and isinstance(exc, not_found):
        return jsonify({"error": str(exc)}), 404
    if conflict and isinstance(exc, conflict):
        return jsonify({"error": str(exc)}), 409
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc)}), 409
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc)}), 400
    if isinstance(exc, StoreUnavailableError):
        current_app.logger.warning("Store unavailable while trying to %s: %s", action, exc)
        return jsonify({"error": "Service temporarily unavailable, please retry", "retryable": True}), 503
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500
