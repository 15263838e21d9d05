# Overview: Flask API routes for system health; database, session store and tariff sweep backlog.

"""
System health endpoint.

Each dependency is reported separately so a scheduler or load balancer can
tell a database outage from a stalled cron job:

    database       reachable, basic counts
    session_store  expired rows awaiting cleanup (degraded once overdue)
    tariff_sweep   paid venues past expiry the sweep has not handled yet
"""

import time
from datetime import timedelta

from flask import Blueprint, current_app, jsonify
from sqlalchemy import or_

from ..entitlements import PAID_TIERS
from ..extensions import db
from ..models import AuthSession, User, Venue, VenueEntitlement
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")

# Both jobs run at least daily; anything overdue by more than this is a backlog
JOB_BACKLOG_TOLERANCE = timedelta(days=1)


def _timed(name: str, check) -> dict:
    started = time.perf_counter()
    try:
        result = {"status": "healthy", "details": check()}
    except Exception:
        db.session.rollback()
        current_app.logger.exception("%s health check failed", name)
        result = {"status": "unhealthy", "error": f"{name} error"}
    result["latency_ms"] = round((time.perf_counter() - started) * 1000, 2)
    return result


def check_database_health() -> dict:
    def counts():
        return {
            "users": db.session.query(User).count(),
            "venues": db.session.query(Venue).count(),
            "paid_venues": db.session.query(VenueEntitlement).filter(
                VenueEntitlement.tier.in_(PAID_TIERS)
            ).count(),
        }
    return _timed("Database", counts)


def check_session_store_health() -> dict:
    """
    Sessions that expired since the last cleanup are normal. Rows expired
    for longer than JOB_BACKLOG_TOLERANCE mean the cleanup job is not
    running (degraded).
    """
    def sessions():
        now = utcnow()
        return {
            "active_sessions": db.session.query(AuthSession).filter(AuthSession.expires_at > now).count(),
            "expired_pending_cleanup": db.session.query(AuthSession).filter(AuthSession.expires_at <= now).count(),
            "overdue_cleanup": db.session.query(AuthSession).filter(
                AuthSession.expires_at <= now - JOB_BACKLOG_TOLERANCE
            ).count(),
        }
    result = _timed("Session store", sessions)
    if result["status"] == "healthy" and result["details"]["overdue_cleanup"]:
        result["status"] = "degraded"
    return result


def check_tariff_sweep_health() -> dict:
    def backlog():
        cutoff = utcnow() - JOB_BACKLOG_TOLERANCE
        overdue = db.session.query(VenueEntitlement).filter(
            VenueEntitlement.tier.in_(PAID_TIERS),
            or_(
                (VenueEntitlement.grace_period_ends_at.is_(None)) & (VenueEntitlement.expires_at < cutoff),
                VenueEntitlement.grace_period_ends_at < cutoff,
            ),
        ).count()
        return {"overdue_venues": overdue}
    result = _timed("Tariff sweep", backlog)
    if result["status"] == "healthy" and result["details"]["overdue_venues"]:
        result["status"] = "degraded"
    return result


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (jobs lagging, requests still served)
    - 503: database or session store unreachable
    """
    started = time.perf_counter()
    checks = {
        "database": check_database_health(),
        "session_store": check_session_store_health(),
        "tariff_sweep": check_tariff_sweep_health(),
    }
    statuses = {check["status"] for check in checks.values()}

    if "unhealthy" in statuses:
        overall, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall, http_status = "degraded", 200
    else:
        overall, http_status = "healthy", 200

    return jsonify({
        "status": overall,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.perf_counter() - started) * 1000, 2),
        "checks": checks,
    }), http_status
