# Overview: Service-layer operations for venue tariffs; status reads, upgrade quotes, payment confirmation and admin changes.

"""
Venue Tariff Management

Everything that writes a venue entitlement outside of the periodic sweep
lives here:

    request_upgrade     quote only, never writes
    apply_paid_period   called once a payment has been confirmed
    admin_set_tariff    manual tier change (POST /api/admin/venues/<id>/tariff)
    admin_update_tariff manual period edit (PATCH)
    admin_cancel_tariff manual downgrade to FREE (DELETE)

RULES:
1. Each write is one transaction over the entitlement row (locked) and the
   history ledger
2. A tier change closes the open history entry and opens the next one at
   the same instant; same-tier edits leave the history untouched
3. Every write that gives a venue a future expiry clears grace_period_ends_at
4. Reads that gate features degrade to FREE limits when the entitlement
   cannot be read; vendor-facing status reads report the failure instead
"""

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app

from ..entitlements import (
    CURRENCY,
    PRICING_PERIOD_DAYS,
    TIER_FREE,
    TIER_PRICES_CENTS,
    EntitlementStateError,
    EntitlementStatus,
    compute_status,
    free_status,
    from_row,
    is_paid_tier,
    quote_upgrade,
)
from ..time_utils import add_months, first_day_of_month, to_utc_z, utcnow
from ..validation import parse_duration_days, parse_tier
from . import entitlement_store
from .entitlement_store import EntitlementNotFoundError
from .storage import StorageError, atomic


class TariffError(Exception):
    """Base class for tariff management failures."""
    pass


class TariffConflictError(TariffError):
    """The requested change does not apply to the venue's current tier."""
    pass


def status_for_row(row, now: datetime) -> EntitlementStatus:
    return compute_status(
        from_row(row),
        now,
        expiring_soon_days=current_app.config["TARIFF_EXPIRING_SOON_DAYS"],
    )


def effective_feature_count(row, now: datetime) -> int:
    """
    News posts counted against the current calendar month.

    A counter last reset before this month's first day is stale (the sweep
    has not reached it yet, or the venue is FREE) and counts as zero.
    """
    month_start = first_day_of_month(now)
    if row.feature_counter_reset_at is None or row.feature_counter_reset_at < month_start:
        return 0
    return row.monthly_feature_count


def get_status(venue_id: int, now: datetime | None = None) -> EntitlementStatus:
    """Vendor-facing status. Raises StorageError / EntitlementStateError."""
    now = now or utcnow()
    row = entitlement_store.get_required(venue_id)
    return status_for_row(row, now)


def feature_status(venue_id: int, now: datetime | None = None) -> EntitlementStatus:
    """
    Status used by feature gates.

    Never raises: an unreadable or inconsistent entitlement is treated as
    FREE so a storage problem can only take features away, never grant them.
    """
    now = now or utcnow()
    try:
        row = entitlement_store.get_required(venue_id)
        return status_for_row(row, now)
    except (StorageError, EntitlementStateError, EntitlementNotFoundError) as exc:
        current_app.logger.warning(
            "Entitlement for venue %s unavailable, applying FREE limits: %s", venue_id, exc
        )
        return free_status()


def get_tariff_overview(venue_id: int, now: datetime | None = None) -> dict:
    """Entitlement read for the vendor dashboard: status, limits, usage and history."""
    now = now or utcnow()
    row = entitlement_store.get_required(venue_id)
    status = status_for_row(row, now)
    history = entitlement_store.list_history(venue_id)

    news_limit = status.effective_limits.news_per_month
    news_used = effective_feature_count(row, now)

    return {
        "venue_id": venue_id,
        **status.to_dict(),
        "auto_renew": row.auto_renew,
        "price_cents": row.price_cents,
        "currency": CURRENCY,
        "usage": {
            "news_this_month": news_used,
            "news_limit": news_limit,
            "news_remaining": max(news_limit - news_used, 0),
        },
        "history": [entry.to_dict() for entry in history],
    }


def request_upgrade(venue_id: int, tier, duration_days=None, now: datetime | None = None) -> dict:
    """
    Build the payment request for a paid tier. Does not write anything:
    the entitlement changes only when apply_paid_period is called after
    the payment has been confirmed.

    Raises ValidationError for a non-paid tier or a duration outside 1..365.
    """
    now = now or utcnow()
    tier = parse_tier(tier, paid_only=True)
    duration_days = parse_duration_days(duration_days)
    price, total = quote_upgrade(tier, duration_days)

    current = entitlement_store.get_required(venue_id)

    return {
        "venue_id": venue_id,
        "current_tier": current.tier,
        "tier": tier,
        "duration_days": duration_days,
        "price_cents": price,
        "period_days": PRICING_PERIOD_DAYS,
        "total_cents": total,
        "currency": CURRENCY,
        "description": f"{tier} tariff for venue {venue_id}, {duration_days} day(s)",
        "status": "pending_payment",
        # Payment gateway integration is not wired up
        "payment_url": None,
        "requested_at": to_utc_z(now),
    }


def apply_paid_period(
    venue_id: int,
    tier,
    duration_days,
    price_cents: int | None = None,
    now: datetime | None = None,
    *,
    changed_by_user_id: int | None = None,
):
    """
    Apply a confirmed payment.

    Same paid tier: the period is extended from max(expires_at, now), so
    paying early never loses days and paying during grace restarts from now.
    Different tier (including FREE -> paid): the tier switches at `now`
    with a history transition and the new period starts at `now`.
    """
    now = now or utcnow()
    tier = parse_tier(tier, paid_only=True)
    duration_days = parse_duration_days(duration_days)
    if price_cents is None:
        price_cents = TIER_PRICES_CENTS[tier]

    with atomic():
        row = entitlement_store.get_required(venue_id, for_update=True)
        current = from_row(row)

        if current.tier == tier:
            base = max(current.expires_at, now)
            entitlement_store.update(
                row,
                expires_at=base + timedelta(days=duration_days),
                grace_period_ends_at=None,
                price_cents=price_cents,
            )
        else:
            entitlement_store.start_period(
                venue_id,
                at=now,
                tier=tier,
                price_cents=price_cents,
                auto_renewed=False,
                changed_by_user_id=changed_by_user_id,
                reason="payment",
            )
            entitlement_store.update(
                row,
                tier=tier,
                expires_at=now + timedelta(days=duration_days),
                grace_period_ends_at=None,
                price_cents=price_cents,
            )

    current_app.logger.info(
        "Venue %s paid period applied: %s for %d day(s), expires %s",
        venue_id, tier, duration_days, to_utc_z(row.expires_at),
    )
    return row


# =============================================================================
# ADMIN OPERATIONS
# =============================================================================

def admin_set_tariff(
    venue_id: int,
    *,
    tier,
    changed_by_user_id: int,
    expires_at: datetime | None = None,
    auto_renew: bool = False,
    price_cents: int | None = None,
    reason: str | None = None,
    now: datetime | None = None,
):
    """
    Set a venue's tier directly.

    Paid tiers default to a one-month period and the list price. Setting
    FREE clears the period fields. A tier change is recorded in the history
    with the acting administrator and reason.
    """
    now = now or utcnow()
    tier = parse_tier(tier)

    if is_paid_tier(tier):
        expires_at = expires_at or add_months(now, current_app.config["TARIFF_RENEWAL_MONTHS"])
        if expires_at <= now:
            raise TariffConflictError("expiresAt must be in the future")
        if price_cents is None:
            price_cents = TIER_PRICES_CENTS[tier]
        fields = {
            "tier": tier,
            "expires_at": expires_at,
            "auto_renew": bool(auto_renew),
            "price_cents": price_cents,
            "grace_period_ends_at": None,
        }
    else:
        fields = {
            "tier": TIER_FREE,
            "expires_at": None,
            "auto_renew": False,
            "price_cents": None,
            "grace_period_ends_at": None,
        }

    with atomic():
        row = entitlement_store.get_required(venue_id, for_update=True)
        previous_tier = row.tier
        if previous_tier != tier:
            entitlement_store.start_period(
                venue_id,
                at=now,
                tier=tier,
                price_cents=fields["price_cents"],
                auto_renewed=False,
                changed_by_user_id=changed_by_user_id,
                reason=reason,
            )
        entitlement_store.update(row, **fields)

    current_app.logger.info(
        "Admin %s set venue %s tariff %s -> %s", changed_by_user_id, venue_id, previous_tier, tier
    )
    return row


def admin_update_tariff(
    venue_id: int,
    *,
    changed_by_user_id: int,
    expires_at: datetime | None = None,
    auto_renew: bool | None = None,
    price_cents: int | None = None,
    now: datetime | None = None,
):
    """
    Edit the current paid period without changing the tier.

    A new expiry in the future ends any running grace window.
    Raises TariffConflictError on a FREE venue.
    """
    now = now or utcnow()

    with atomic():
        row = entitlement_store.get_required(venue_id, for_update=True)
        if not is_paid_tier(row.tier):
            raise TariffConflictError("FREE tier has no paid period to update")

        fields = {}
        if expires_at is not None:
            fields["expires_at"] = expires_at
            if expires_at > now:
                fields["grace_period_ends_at"] = None
        if auto_renew is not None:
            fields["auto_renew"] = bool(auto_renew)
        if price_cents is not None:
            fields["price_cents"] = price_cents

        if fields:
            entitlement_store.update(row, **fields)

    current_app.logger.info(
        "Admin %s updated venue %s tariff: %s", changed_by_user_id, venue_id, ", ".join(sorted(fields)) or "no changes"
    )
    return row


def admin_cancel_tariff(
    venue_id: int,
    *,
    changed_by_user_id: int,
    reason: str | None = None,
    now: datetime | None = None,
):
    """Downgrade to FREE immediately. Cancelling a FREE venue is a no-op."""
    now = now or utcnow()

    with atomic():
        row = entitlement_store.get_required(venue_id, for_update=True)
        if row.tier == TIER_FREE:
            return row, False

        entitlement_store.start_period(
            venue_id,
            at=now,
            tier=TIER_FREE,
            price_cents=None,
            auto_renewed=False,
            changed_by_user_id=changed_by_user_id,
            reason=reason or "cancelled by admin",
        )
        entitlement_store.update(
            row,
            tier=TIER_FREE,
            expires_at=None,
            auto_renew=False,
            price_cents=None,
            grace_period_ends_at=None,
        )

    current_app.logger.info("Admin %s cancelled venue %s tariff", changed_by_user_id, venue_id)
    return row, True
