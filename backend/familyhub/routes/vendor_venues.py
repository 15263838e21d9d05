# Overview: Flask API routes for vendor venue operations; tariff status, upgrade requests and news posts.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth
from ..entitlements import EntitlementStateError
from ..services import news_service, tariff_service, venue_service
from ..services.entitlement_store import EntitlementNotFoundError
from ..services.news_service import NewsLimitError
from ..services.storage import StorageError
from ..services.venue_service import VenueNotFoundError
from ..validation import (
    MAX_NEWS_TITLE_LENGTH,
    ValidationError,
    first_present,
    parse_bool,
    parse_optional_text,
    parse_required_text,
    require_json_object,
)


vendor_venues_bp = Blueprint("vendor_venues", __name__, url_prefix="/api/vendor/venues")


@vendor_venues_bp.get("/<int:venue_id>/tariff")
@require_auth
def get_tariff_route(venue_id: int):
    """
    Current tariff of a venue.

    Returns tier, status (free | active | expiring | grace_period | expired),
    days_until_expiry, grace_period_days, limits, this month's news usage and
    the tariff history.
    """
    try:
        venue_service.get_venue_for_user(venue_id, g.current_user)
        overview = tariff_service.get_tariff_overview(venue_id)
        return jsonify(overview), 200
    except VenueNotFoundError:
        return jsonify({"error": "Venue not found"}), 404
    except EntitlementNotFoundError:
        current_app.logger.error("Venue %s has no entitlement row", venue_id)
        return jsonify({"error": "Tariff not found"}), 404
    except EntitlementStateError:
        current_app.logger.exception("Venue %s entitlement is inconsistent", venue_id)
        return jsonify({"error": "Internal server error"}), 500
    except StorageError:
        current_app.logger.exception("Failed to read tariff for venue %s", venue_id)
        return jsonify({"error": "Service temporarily unavailable"}), 503
    except Exception:
        current_app.logger.exception("Failed to read tariff for venue %s", venue_id)
        return jsonify({"error": "Internal server error"}), 500


@vendor_venues_bp.post("/<int:venue_id>/tariff")
@require_auth
def request_upgrade_route(venue_id: int):
    """
    Request an upgrade to a paid tier.

    Body: {tier: "SUPER" | "MAXIMUM", durationDays?: 1..365 (default 30)}

    Returns a payment request. The venue's tariff is unchanged until the
    payment is confirmed.
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        venue_service.get_venue_for_user(venue_id, g.current_user)
        payment = tariff_service.request_upgrade(
            venue_id,
            data.get("tier"),
            first_present(data, "durationDays", "duration_days", "duration"),
        )
        current_app.logger.info(
            "User %s requested %s for venue %s (%s day(s), total %s)",
            g.current_user.id, payment["tier"], venue_id, payment["duration_days"], payment["total_cents"],
        )
        return jsonify({"payment": payment}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except VenueNotFoundError:
        return jsonify({"error": "Venue not found"}), 404
    except EntitlementNotFoundError:
        return jsonify({"error": "Tariff not found"}), 404
    except StorageError:
        current_app.logger.exception("Failed to create upgrade request for venue %s", venue_id)
        return jsonify({"error": "Service temporarily unavailable"}), 503
    except Exception:
        current_app.logger.exception("Failed to create upgrade request for venue %s", venue_id)
        return jsonify({"error": "Internal server error"}), 500


@vendor_venues_bp.get("/<int:venue_id>/news")
@require_auth
def list_news_route(venue_id: int):
    """News posts of a venue plus the remaining monthly allowance."""
    try:
        venue_service.get_venue_for_user(venue_id, g.current_user)
        posts = news_service.list_news(venue_id)
        status = tariff_service.feature_status(venue_id)
        return jsonify({
            "news": [p.to_dict() for p in posts],
            "tier": status.tier,
            "news_per_month": status.effective_limits.news_per_month,
        }), 200
    except VenueNotFoundError:
        return jsonify({"error": "Venue not found"}), 404
    except StorageError:
        current_app.logger.exception("Failed to list news for venue %s", venue_id)
        return jsonify({"error": "Service temporarily unavailable"}), 503
    except Exception:
        current_app.logger.exception("Failed to list news for venue %s", venue_id)
        return jsonify({"error": "Internal server error"}), 500


@vendor_venues_bp.post("/<int:venue_id>/news")
@require_auth
def create_news_route(venue_id: int):
    """
    Publish a news post.

    Body: {title, content, imageUrl?, isPublished?}

    403 when the tier has no news allowance or this month's is used up.
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        venue_service.get_venue_for_user(venue_id, g.current_user)

        is_published = first_present(data, "isPublished", "is_published")
        post = news_service.create_news_post(
            venue_id,
            author_user_id=g.current_user.id,
            title=parse_required_text(data.get("title"), "title", max_length=MAX_NEWS_TITLE_LENGTH),
            content=parse_required_text(data.get("content"), "content"),
            image_url=parse_optional_text(first_present(data, "imageUrl", "image_url"), "imageUrl", max_length=1024),
            is_published=True if is_published is None else parse_bool(is_published, "isPublished"),
        )
        return jsonify({"news": post.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NewsLimitError as e:
        return jsonify({"error": str(e), "limit": e.limit, "used": e.used}), 403
    except VenueNotFoundError:
        return jsonify({"error": "Venue not found"}), 404
    except EntitlementNotFoundError:
        return jsonify({"error": "Tariff not found"}), 404
    except StorageError:
        current_app.logger.exception("Failed to create news for venue %s", venue_id)
        return jsonify({"error": "Service temporarily unavailable"}), 503
    except Exception:
        current_app.logger.exception("Failed to create news for venue %s", venue_id)
        return jsonify({"error": "Internal server error"}), 500
