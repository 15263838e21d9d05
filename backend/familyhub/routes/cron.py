# Overview: Flask API routes for scheduler-invoked jobs; runs the tariff sweep and session cleanup.

"""
Scheduled job endpoints

Called by an external scheduler (cron, a platform scheduler, a CI job) with
`Authorization: Bearer <CRON_SECRET>`. Both jobs are idempotent, so a
retried or overlapping invocation is harmless.

Per-venue failures are part of a normal 200 summary. A 500 means the batch
could not run at all (candidate venues could not be listed).
"""

from flask import Blueprint, jsonify, current_app

from ..decorators import require_cron_secret
from ..services import session_service
from ..services.tariff_sweep_service import run_tariff_sweep
from ..time_utils import to_utc_z, utcnow


cron_bp = Blueprint("cron", __name__, url_prefix="/api/cron")


@cron_bp.route("/check-venue-tariffs", methods=["GET", "POST"])
@require_cron_secret
def check_venue_tariffs_route():
    """
    Run one tariff sweep.

    Returns {processed, renewed, gracePeriodStarted, downgraded,
    countersReset, errors: [{venueId, message}], timestamp}.
    """
    try:
        result = run_tariff_sweep()
    except Exception:
        current_app.logger.exception("Venue tariff sweep failed")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result.to_dict()), 200


@cron_bp.route("/cleanup-sessions", methods=["GET", "POST"])
@require_cron_secret
def cleanup_sessions_route():
    """Delete expired sessions."""
    now = utcnow()
    try:
        deleted = session_service.cleanup_expired_sessions(now=now)
    except Exception:
        current_app.logger.exception("Session cleanup failed")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"deleted": deleted, "timestamp": to_utc_z(now)}), 200
