# Overview: Request and access decorators for API routes.

import hmac
from functools import wraps
from flask import request, jsonify, g, current_app

from .services import auth_service, session_service
from .services.session_service import AuthError
from .services.storage import StorageError


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def access_token_from_request() -> str | None:
    """Access token from the `session` cookie, or an Authorization: Bearer header."""
    return request.cookies.get(current_app.config["ACCESS_COOKIE_NAME"]) or _bearer_token()


def require_auth(f):
    """
    Require a valid access token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.auth_context: The AuthContext (session id, claims, store verification)

    SECURITY: Returns 401 if:
    - No token in the `session` cookie or Authorization header
    - Invalid signature, wrong token type, or expired token
    - Session logged out or expired
    - User account deactivated

    Returns 503 if the user row cannot be read. When only the session
    table is unreachable the token may still be accepted on its signature
    (AVAILABILITY_OVER_STRICT_REVOCATION), but a handler always needs the
    User, so a full database outage fails protected routes.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = access_token_from_request()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        try:
            context = session_service.validate_access_token(token)
        except AuthError as e:
            return jsonify({"error": "Invalid or expired token", "code": e.code}), 401

        try:
            user = auth_service.get_active_user(context.user_id)
        except StorageError:
            current_app.logger.exception("User lookup failed for session %s", context.session_id)
            return jsonify({"error": "Service temporarily unavailable"}), 503
        if user is None:
            return jsonify({"error": "Invalid or expired token", "code": "user_inactive"}), 401

        g.current_user = user
        g.auth_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require the authenticated user to be an administrator. Use after @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, "current_user"):
            return jsonify({"error": "Authentication required"}), 401
        if not g.current_user.is_admin:
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)
    return decorated_function


def require_cron_secret(f):
    """
    Require `Authorization: Bearer <CRON_SECRET>`.

    Scheduler-invoked endpoints; a wrong or missing secret is rejected
    before any work is done.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("CRON_SECRET")
        supplied = _bearer_token()
        if not expected or not supplied or not hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8")):
            current_app.logger.warning("Rejected cron request to %s", request.path)
            return jsonify({"error": "Unauthorized"}), 401
        return f(*args, **kwargs)
    return decorated_function
