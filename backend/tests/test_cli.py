"""
CLI command tests (flask tariffs / sessions).
"""

import json
from datetime import datetime, timedelta

from familyhub.extensions import db
from familyhub.models import VenueEntitlement
from familyhub.services import session_service
from familyhub.time_utils import utcnow


def _entitlement(venue_id):
    db.session.expire_all()
    return db.session.query(VenueEntitlement).filter_by(venue_id=venue_id).one()


def test_sweep_prints_summary(app, venue, make_paid):
    make_paid(venue.id, expires_at=datetime(2026, 4, 30), auto_renew=True,
              feature_counter_reset_at=datetime(2026, 5, 1))

    result = app.test_cli_runner().invoke(args=["tariffs", "sweep", "--now", "2026-05-01T00:00:00Z"])

    assert result.exit_code == 0
    summary = json.loads(result.output)
    assert summary["renewed"] == 1
    assert summary["timestamp"] == "2026-05-01T00:00:00Z"
    assert _entitlement(venue.id).expires_at == datetime(2026, 6, 1)


def test_sweep_rejects_bad_time(app, db_session):
    result = app.test_cli_runner().invoke(args=["tariffs", "sweep", "--now", "tomorrow"])
    assert result.exit_code != 0


def test_apply_payment(app, venue):
    result = app.test_cli_runner().invoke(
        args=["tariffs", "apply-payment", str(venue.id), "--tier", "MAXIMUM", "--days", "30"]
    )

    assert result.exit_code == 0
    assert "PASS" in result.output
    ent = _entitlement(venue.id)
    assert ent.tier == "MAXIMUM"
    assert ent.price_cents == 129000


def test_apply_payment_rejects_bad_duration(app, venue):
    result = app.test_cli_runner().invoke(
        args=["tariffs", "apply-payment", str(venue.id), "--tier", "SUPER", "--days", "0"]
    )

    assert "FAIL" in result.output
    assert _entitlement(venue.id).tier == "FREE"


def test_sessions_cleanup(app, vendor_user):
    session_service.create_session(vendor_user.id, now=datetime(2026, 1, 1))
    session_service.create_session(vendor_user.id, now=utcnow() + timedelta(days=1))

    result = app.test_cli_runner().invoke(args=["sessions", "cleanup"])

    assert result.exit_code == 0
    assert "Deleted 1 expired session(s)" in result.output
