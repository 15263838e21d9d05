"""
Tariff management and news allowance tests.

Verifies:
- New venues start FREE with an open FREE history entry
- Upgrade requests quote a price and change nothing
- Confirmed payments extend or switch the paid period
- Admin set / update / cancel keep the history continuous
- News posts consume the monthly allowance; grace still counts as paid
"""

from datetime import datetime, timedelta

import pytest

from familyhub.extensions import db
from familyhub.models import VenueEntitlement, VenueNews, VenueTariffHistory
from familyhub.services import entitlement_store, news_service, tariff_service
from familyhub.services.news_service import NewsLimitError
from familyhub.services.storage import StorageError
from familyhub.services.tariff_service import TariffConflictError
from familyhub.validation import ValidationError


NOW = datetime(2026, 4, 10, 12, 0, 0)


def _entitlement(venue_id):
    db.session.expire_all()
    return db.session.query(VenueEntitlement).filter_by(venue_id=venue_id).one()


def _history(venue_id):
    return db.session.query(VenueTariffHistory).filter_by(
        venue_id=venue_id
    ).order_by(VenueTariffHistory.started_at, VenueTariffHistory.id).all()


def _assert_continuous(venue_id):
    entries = _history(venue_id)
    assert [e.ended_at for e in entries].count(None) == 1
    for previous, following in zip(entries, entries[1:]):
        assert previous.ended_at == following.started_at


class TestVenueCreation:

    def test_new_venue_is_free(self, venue):
        ent = _entitlement(venue.id)
        assert ent.tier == "FREE"
        assert ent.expires_at is None
        assert ent.monthly_feature_count == 0

        entries = _history(venue.id)
        assert len(entries) == 1
        assert entries[0].tier == "FREE"
        assert entries[0].ended_at is None


# =============================================================================
# UPGRADE REQUEST
# =============================================================================


class TestRequestUpgrade:

    def test_quote(self, venue):
        payment = tariff_service.request_upgrade(venue.id, "super", 45, now=NOW)

        assert payment["tier"] == "SUPER"
        assert payment["current_tier"] == "FREE"
        assert payment["duration_days"] == 45
        assert payment["price_cents"] == 69000
        assert payment["total_cents"] == 103500
        assert payment["currency"] == "RUB"
        assert payment["payment_url"] is None

    def test_default_duration(self, venue):
        payment = tariff_service.request_upgrade(venue.id, "MAXIMUM", None, now=NOW)
        assert payment["duration_days"] == 30
        assert payment["total_cents"] == 129000

    def test_does_not_mutate(self, venue):
        tariff_service.request_upgrade(venue.id, "MAXIMUM", 30, now=NOW)
        assert _entitlement(venue.id).tier == "FREE"
        assert len(_history(venue.id)) == 1

    @pytest.mark.parametrize("tier", ["FREE", "GOLD", "", None, 5])
    def test_invalid_tier(self, venue, tier):
        with pytest.raises(ValidationError):
            tariff_service.request_upgrade(venue.id, tier, 30, now=NOW)

    @pytest.mark.parametrize("days", [0, 366, -1, 1.5, "ten", True])
    def test_invalid_duration(self, venue, days):
        with pytest.raises(ValidationError):
            tariff_service.request_upgrade(venue.id, "SUPER", days, now=NOW)


# =============================================================================
# PAYMENT CONFIRMATION
# =============================================================================


class TestApplyPaidPeriod:

    def test_free_to_paid(self, venue):
        tariff_service.apply_paid_period(venue.id, "SUPER", 30, now=NOW)

        ent = _entitlement(venue.id)
        assert ent.tier == "SUPER"
        assert ent.expires_at == NOW + timedelta(days=30)
        assert ent.price_cents == 69000
        assert _history(venue.id)[-1].tier == "SUPER"
        _assert_continuous(venue.id)

    def test_same_tier_extends_from_current_expiry(self, venue, make_paid):
        make_paid(venue.id, expires_at=NOW + timedelta(days=5))
        history_count = len(_history(venue.id))

        tariff_service.apply_paid_period(venue.id, "SUPER", 30, now=NOW)

        assert _entitlement(venue.id).expires_at == NOW + timedelta(days=35)
        assert len(_history(venue.id)) == history_count

    def test_payment_during_grace_restarts_from_now(self, venue, make_paid):
        make_paid(venue.id, expires_at=NOW - timedelta(days=1), grace_period_ends_at=NOW + timedelta(days=2))

        tariff_service.apply_paid_period(venue.id, "SUPER", 30, now=NOW)

        ent = _entitlement(venue.id)
        assert ent.expires_at == NOW + timedelta(days=30)
        assert ent.grace_period_ends_at is None

    def test_tier_switch(self, venue, make_paid):
        make_paid(venue.id, expires_at=NOW + timedelta(days=5))

        tariff_service.apply_paid_period(venue.id, "MAXIMUM", 30, price_cents=120000, now=NOW)

        ent = _entitlement(venue.id)
        assert ent.tier == "MAXIMUM"
        assert ent.price_cents == 120000
        assert ent.expires_at == NOW + timedelta(days=30)
        entries = _history(venue.id)
        assert entries[-1].tier == "MAXIMUM"
        assert entries[-2].tier == "SUPER"
        assert entries[-2].ended_at == NOW
        _assert_continuous(venue.id)


# =============================================================================
# ADMIN OPERATIONS
# =============================================================================


class TestAdminOperations:

    def test_set_paid_defaults(self, venue, admin_user):
        tariff_service.admin_set_tariff(
            venue.id, tier="MAXIMUM", changed_by_user_id=admin_user.id, reason="partner", now=NOW
        )

        ent = _entitlement(venue.id)
        assert ent.tier == "MAXIMUM"
        assert ent.expires_at == datetime(2026, 5, 10, 12, 0, 0)
        assert ent.price_cents == 129000

        latest = _history(venue.id)[-1]
        assert latest.changed_by_user_id == admin_user.id
        assert latest.reason == "partner"
        _assert_continuous(venue.id)

    def test_set_clears_grace(self, venue, make_paid, admin_user):
        make_paid(venue.id, expires_at=NOW - timedelta(days=1), grace_period_ends_at=NOW + timedelta(days=2))

        tariff_service.admin_set_tariff(
            venue.id, tier="SUPER", changed_by_user_id=admin_user.id,
            expires_at=NOW + timedelta(days=60), auto_renew=True, now=NOW,
        )

        ent = _entitlement(venue.id)
        assert ent.grace_period_ends_at is None
        assert ent.auto_renew is True
        # Same tier: no new history period
        assert _history(venue.id)[-1].changed_by_user_id is None

    def test_set_past_expiry_rejected(self, venue, admin_user):
        with pytest.raises(TariffConflictError):
            tariff_service.admin_set_tariff(
                venue.id, tier="SUPER", changed_by_user_id=admin_user.id,
                expires_at=NOW - timedelta(days=1), now=NOW,
            )

    def test_update_paid_period(self, venue, make_paid, admin_user):
        make_paid(venue.id, expires_at=NOW - timedelta(days=1), grace_period_ends_at=NOW + timedelta(days=2))

        tariff_service.admin_update_tariff(
            venue.id, changed_by_user_id=admin_user.id,
            expires_at=NOW + timedelta(days=10), price_cents=50000, now=NOW,
        )

        ent = _entitlement(venue.id)
        assert ent.expires_at == NOW + timedelta(days=10)
        assert ent.grace_period_ends_at is None
        assert ent.price_cents == 50000

    def test_update_free_rejected(self, venue, admin_user):
        with pytest.raises(TariffConflictError):
            tariff_service.admin_update_tariff(venue.id, changed_by_user_id=admin_user.id, auto_renew=True, now=NOW)

    def test_cancel(self, venue, make_paid, admin_user):
        make_paid(venue.id, expires_at=NOW + timedelta(days=10), auto_renew=True)

        row, cancelled = tariff_service.admin_cancel_tariff(
            venue.id, changed_by_user_id=admin_user.id, now=NOW
        )

        assert cancelled is True
        ent = _entitlement(venue.id)
        assert ent.tier == "FREE"
        assert ent.expires_at is None
        assert ent.auto_renew is False
        latest = _history(venue.id)[-1]
        assert latest.tier == "FREE"
        assert latest.started_at == NOW
        assert latest.reason == "cancelled by admin"
        _assert_continuous(venue.id)

    def test_cancel_free_is_noop(self, venue, admin_user):
        _, cancelled = tariff_service.admin_cancel_tariff(venue.id, changed_by_user_id=admin_user.id, now=NOW)
        assert cancelled is False
        assert len(_history(venue.id)) == 1


# =============================================================================
# STATUS & FEATURE GATES
# =============================================================================


class TestFeatureStatus:

    def test_overview(self, venue, make_paid):
        make_paid(venue.id, expires_at=NOW + timedelta(days=3), monthly_feature_count=1,
                  feature_counter_reset_at=datetime(2026, 4, 1))

        overview = tariff_service.get_tariff_overview(venue.id, now=NOW)

        assert overview["tier"] == "SUPER"
        assert overview["status"] == "expiring"
        assert overview["days_until_expiry"] == 3
        assert overview["usage"] == {"news_this_month": 1, "news_limit": 3, "news_remaining": 2}
        assert len(overview["history"]) == 2

    def test_degrades_to_free_on_storage_error(self, venue, make_paid, monkeypatch):
        make_paid(venue.id, expires_at=NOW + timedelta(days=10))

        def unavailable(venue_id, *, for_update=False):
            raise StorageError("connection reset")

        monkeypatch.setattr(tariff_service.entitlement_store, "get_required", unavailable)

        status = tariff_service.feature_status(venue.id, now=NOW)
        assert status.tier == "FREE"
        assert status.effective_limits.news_per_month == 0

    def test_degrades_to_free_on_inconsistent_row(self, venue):
        db.session.query(VenueEntitlement).filter_by(venue_id=venue.id).update(
            {VenueEntitlement.tier: "SUPER"}
        )
        db.session.commit()

        assert tariff_service.feature_status(venue.id, now=NOW).tier == "FREE"


class TestNewsAllowance:

    def _post(self, venue, vendor_user, now=NOW, title="Open day"):
        return news_service.create_news_post(
            venue.id, author_user_id=vendor_user.id, title=title, content="Come along", now=now,
        )

    def test_free_tier_has_no_news(self, venue, vendor_user):
        with pytest.raises(NewsLimitError) as exc:
            self._post(venue, vendor_user)
        assert exc.value.limit == 0
        assert db.session.query(VenueNews).count() == 0

    def test_super_allows_three_per_month(self, venue, vendor_user, make_paid):
        make_paid(venue.id, expires_at=NOW + timedelta(days=20))

        for i in range(3):
            self._post(venue, vendor_user, title=f"Post {i}")

        with pytest.raises(NewsLimitError) as exc:
            self._post(venue, vendor_user, title="One too many")
        assert exc.value.used == 3

        ent = _entitlement(venue.id)
        assert ent.monthly_feature_count == 3
        assert ent.feature_counter_reset_at == datetime(2026, 4, 1)
        assert db.session.query(VenueNews).filter_by(venue_id=venue.id).count() == 3

    def test_grace_period_still_allows_news(self, venue, vendor_user, make_paid):
        make_paid(venue.id, expires_at=NOW - timedelta(days=1), grace_period_ends_at=NOW + timedelta(days=2))
        post = self._post(venue, vendor_user)
        assert post.id is not None

    def test_stale_counter_counts_as_zero(self, venue, vendor_user, make_paid):
        make_paid(venue.id, tier="MAXIMUM", expires_at=NOW + timedelta(days=20), price_cents=129000,
                  monthly_feature_count=5, feature_counter_reset_at=datetime(2026, 3, 1))

        self._post(venue, vendor_user)

        ent = _entitlement(venue.id)
        assert ent.monthly_feature_count == 1
        assert ent.feature_counter_reset_at == datetime(2026, 4, 1)

    def test_list_news_newest_first(self, venue, vendor_user, make_paid):
        make_paid(venue.id, expires_at=NOW + timedelta(days=20))
        self._post(venue, vendor_user, now=NOW - timedelta(days=1), title="Older")
        self._post(venue, vendor_user, now=NOW, title="Newer")

        assert [p.title for p in news_service.list_news(venue.id)] == ["Newer", "Older"]
