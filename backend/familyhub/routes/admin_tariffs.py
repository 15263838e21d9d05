# Overview: Flask API routes for admin tariff management; manual tier changes with audit history.

"""
Admin tariff endpoints

All changes go through tariff_service so they are recorded in the tariff
history with the acting administrator.

    GET    /api/admin/venues/<id>/tariff   entitlement + full history
    POST   /api/admin/venues/<id>/tariff   set tier {tier, expiresAt?, autoRenew?, price?, reason?}
    PATCH  /api/admin/venues/<id>/tariff   edit paid period {expiresAt?, autoRenew?, price?}
    DELETE /api/admin/venues/<id>/tariff   cancel -> FREE {reason?}
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_admin
from ..entitlements import EntitlementStateError
from ..services import entitlement_store, tariff_service, venue_service
from ..services.entitlement_store import EntitlementNotFoundError
from ..services.storage import StorageError
from ..services.tariff_service import TariffConflictError
from ..services.venue_service import VenueNotFoundError
from ..validation import (
    ValidationError,
    first_present,
    parse_bool,
    parse_optional_datetime,
    parse_optional_text,
    parse_price_cents,
    require_json_object,
)


admin_tariffs_bp = Blueprint("admin_tariffs", __name__, url_prefix="/api/admin/venues")


def _tariff_payload(venue_id: int, row) -> dict:
    return {
        "venue": venue_service.get_venue(venue_id).to_dict(),
        "entitlement": row.to_dict(),
        "history": [entry.to_dict() for entry in entitlement_store.list_history(venue_id)],
    }


def _handle_errors(action: str, venue_id: int, exc: Exception):
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc)}), 400
    if isinstance(exc, (VenueNotFoundError, EntitlementNotFoundError)):
        return jsonify({"error": "Venue not found"}), 404
    if isinstance(exc, TariffConflictError):
        return jsonify({"error": str(exc)}), 409
    if isinstance(exc, StorageError):
        current_app.logger.exception("Failed to %s tariff for venue %s", action, venue_id)
        return jsonify({"error": "Service temporarily unavailable"}), 503
    current_app.logger.exception("Failed to %s tariff for venue %s", action, venue_id)
    return jsonify({"error": "Internal server error"}), 500


@admin_tariffs_bp.get("/<int:venue_id>/tariff")
@require_auth
@require_admin
def get_venue_tariff_route(venue_id: int):
    try:
        venue_service.get_venue(venue_id)
        row = entitlement_store.get_required(venue_id)
        payload = _tariff_payload(venue_id, row)
        payload["status"] = tariff_service.get_status(venue_id).to_dict()
        return jsonify(payload), 200
    except EntitlementStateError as e:
        current_app.logger.error("Venue %s entitlement is inconsistent: %s", venue_id, e)
        return jsonify({"error": str(e)}), 409
    except Exception as e:
        return _handle_errors("read", venue_id, e)


@admin_tariffs_bp.post("/<int:venue_id>/tariff")
@require_auth
@require_admin
def set_venue_tariff_route(venue_id: int):
    """
    Set a venue's tier.

    Paid tiers default to a one-month period at list price. A tier change
    closes the current history entry and opens a new one attributed to the
    calling administrator.
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        venue_service.get_venue(venue_id)

        auto_renew = first_present(data, "autoRenew", "auto_renew")
        row = tariff_service.admin_set_tariff(
            venue_id,
            tier=data.get("tier"),
            changed_by_user_id=g.current_user.id,
            expires_at=parse_optional_datetime(first_present(data, "expiresAt", "expires_at"), "expiresAt"),
            auto_renew=False if auto_renew is None else parse_bool(auto_renew, "autoRenew"),
            price_cents=parse_price_cents(first_present(data, "price", "price_cents")),
            reason=parse_optional_text(data.get("reason"), "reason", max_length=255),
        )
        return jsonify(_tariff_payload(venue_id, row)), 200
    except Exception as e:
        return _handle_errors("set", venue_id, e)


@admin_tariffs_bp.patch("/<int:venue_id>/tariff")
@require_auth
@require_admin
def update_venue_tariff_route(venue_id: int):
    """Edit expiry, auto-renew or price of the current paid period."""
    try:
        data = require_json_object(request.get_json(silent=True))
        venue_service.get_venue(venue_id)

        auto_renew = first_present(data, "autoRenew", "auto_renew")
        row = tariff_service.admin_update_tariff(
            venue_id,
            changed_by_user_id=g.current_user.id,
            expires_at=parse_optional_datetime(first_present(data, "expiresAt", "expires_at"), "expiresAt"),
            auto_renew=None if auto_renew is None else parse_bool(auto_renew, "autoRenew"),
            price_cents=parse_price_cents(first_present(data, "price", "price_cents")),
        )
        return jsonify(_tariff_payload(venue_id, row)), 200
    except Exception as e:
        return _handle_errors("update", venue_id, e)


@admin_tariffs_bp.delete("/<int:venue_id>/tariff")
@require_auth
@require_admin
def cancel_venue_tariff_route(venue_id: int):
    """Downgrade to FREE now. Cancelling a FREE venue returns cancelled=false."""
    try:
        data = require_json_object(request.get_json(silent=True))
        venue_service.get_venue(venue_id)

        row, cancelled = tariff_service.admin_cancel_tariff(
            venue_id,
            changed_by_user_id=g.current_user.id,
            reason=parse_optional_text(data.get("reason"), "reason", max_length=255),
        )
        payload = _tariff_payload(venue_id, row)
        payload["cancelled"] = cancelled
        return jsonify(payload), 200
    except Exception as e:
        return _handle_errors("cancel", venue_id, e)
