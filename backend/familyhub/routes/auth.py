# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

COOKIES:
- `session`        access token, 1 hour
- `refresh_token`  refresh token, 7 days, sent only to /api/auth
Both HttpOnly, SameSite=Lax, Secure when SESSION_COOKIE_SECURE is set.

Every route also returns the tokens' expiry times in the body so clients
that cannot read HttpOnly cookies know when to refresh.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services.session_service import AuthError, StorageUnavailable
from ..services.storage import StorageError
from ..decorators import require_auth, access_token_from_request
from ..time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

REFRESH_COOKIE_PATH = "/api/auth"


def _set_access_cookie(response, token: str) -> None:
    config = current_app.config
    response.set_cookie(
        config["ACCESS_COOKIE_NAME"],
        token,
        max_age=int(config["ACCESS_TOKEN_TTL"].total_seconds()),
        httponly=True,
        secure=config["SESSION_COOKIE_SECURE"],
        samesite="Lax",
        path="/",
    )


def _set_refresh_cookie(response, token: str) -> None:
    config = current_app.config
    response.set_cookie(
        config["REFRESH_COOKIE_NAME"],
        token,
        max_age=int(config["REFRESH_TOKEN_TTL"].total_seconds()),
        httponly=True,
        secure=config["SESSION_COOKIE_SECURE"],
        samesite="Lax",
        path=REFRESH_COOKIE_PATH,
    )


def _clear_cookies(response) -> None:
    config = current_app.config
    response.delete_cookie(config["ACCESS_COOKIE_NAME"], path="/")
    response.delete_cookie(config["REFRESH_COOKIE_NAME"], path=REFRESH_COOKIE_PATH)


@auth_bp.post("/register")
def register_route():
    """
    Self-registration is disabled.

    Accounts are created by administrators via the CLI: flask users create
    """
    return jsonify({
        "error": "Self-registration is disabled. Contact an administrator to create an account."
    }), 403


@auth_bp.post("/login")
def login_route():
    """
    Authenticate with email and password, start a session and set both cookies.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        issued = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        response = jsonify({
            "user": user.to_dict(),
            "session": issued.session.to_dict(),
            "access_expires_at": to_utc_z(issued.access_expires_at),
            "refresh_expires_at": to_utc_z(issued.refresh_expires_at),
            "message": "Login successful",
        })
        _set_access_cookie(response, issued.access_token)
        _set_refresh_cookie(response, issued.refresh_token)
        return response, 200

    except StorageError:
        current_app.logger.exception("Session store unavailable during login")
        return jsonify({"error": "Service temporarily unavailable"}), 503
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/refresh")
def refresh_route():
    """
    Mint a new access token from the refresh cookie.

    The refresh token is only replaced when ROTATE_REFRESH_TOKENS is on.
    """
    refresh_token = request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])
    if not refresh_token:
        data = request.get_json(silent=True) or {}
        refresh_token = data.get("refresh_token")
    if not refresh_token:
        return jsonify({"error": "Refresh token required"}), 401

    try:
        refreshed = session_service.refresh_access_token(refresh_token)
    except StorageUnavailable:
        current_app.logger.error("Session store unavailable; refresh rejected")
        return jsonify({"error": "Service temporarily unavailable", "code": StorageUnavailable.code}), 503
    except AuthError as e:
        response = jsonify({"error": "Invalid or expired refresh token", "code": e.code})
        _clear_cookies(response)
        return response, 401
    except Exception:
        current_app.logger.exception("Failed to refresh session")
        return jsonify({"error": "Internal server error"}), 500

    response = jsonify({
        "access_expires_at": to_utc_z(refreshed.access_expires_at),
        "refresh_expires_at": to_utc_z(refreshed.refresh_expires_at),
        "rotated": refreshed.rotated,
    })
    _set_access_cookie(response, refreshed.access_token)
    if refreshed.rotated:
        _set_refresh_cookie(response, refreshed.refresh_token)
    return response, 200


@auth_bp.post("/logout")
def logout_route():
    """
    Delete the session and clear both cookies.

    Idempotent: logging out twice, or with an already expired token,
    still succeeds. Both the access and the refresh token are tried, so a
    stale access cookie cannot leave the refresh token's session alive.
    """
    try:
        session_service.logout_with_tokens(
            access_token_from_request(),
            request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"]),
        )
    except StorageError:
        current_app.logger.exception("Session store unavailable during logout")
        return jsonify({"error": "Service temporarily unavailable"}), 503
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500

    response = jsonify({"message": "Logout successful"})
    _clear_cookies(response)
    return response, 200


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user and session, as seen by access-token validation."""
    context = g.auth_context
    return jsonify({
        "user": g.current_user.to_dict(),
        "session_id": context.session_id,
        "access_expires_at": to_utc_z(context.claims.expires_at),
        "verified_against_store": context.verified_against_store,
    }), 200
