# Overview: Persistence for venue entitlements and the tariff history ledger; no business rules.

"""
Entitlement Store & Tariff History Ledger

Plain persistence over venue_entitlements and venue_tariff_history.

CONTRACT:
- get / update / append_history / close_open_history never commit; the
  caller wraps them in storage.atomic() so one venue's transition lands as a
  single transaction
- every SQLAlchemy failure surfaces as StorageError
- list_* queries feed the sweep and return venue ids only, so each venue is
  re-read (and locked) inside its own unit of work
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_

from ..entitlements import PAID_TIERS, TIER_FREE
from ..extensions import db
from ..models import VenueEntitlement, VenueTariffHistory
from .storage import lock_for_update, storage_operation


UPDATABLE_FIELDS = {
    "tier",
    "expires_at",
    "auto_renew",
    "grace_period_ends_at",
    "price_cents",
    "monthly_feature_count",
    "feature_counter_reset_at",
}


class EntitlementNotFoundError(LookupError):
    """No entitlement row exists for the venue."""
    pass


@storage_operation
def get(venue_id: int, *, for_update: bool = False) -> VenueEntitlement | None:
    query = db.session.query(VenueEntitlement).filter_by(venue_id=venue_id)
    if for_update:
        query = lock_for_update(query)
    return query.first()


def get_required(venue_id: int, *, for_update: bool = False) -> VenueEntitlement:
    row = get(venue_id, for_update=for_update)
    if row is None:
        raise EntitlementNotFoundError(f"No entitlement for venue {venue_id}")
    return row


@storage_operation
def create_free(venue_id: int, started_at: datetime) -> VenueEntitlement:
    """Create the FREE entitlement and its first open history entry."""
    row = VenueEntitlement(
        venue_id=venue_id,
        tier=TIER_FREE,
        expires_at=None,
        auto_renew=False,
        grace_period_ends_at=None,
        price_cents=None,
        monthly_feature_count=0,
        feature_counter_reset_at=None,
    )
    db.session.add(row)
    db.session.add(VenueTariffHistory(
        venue_id=venue_id,
        tier=TIER_FREE,
        started_at=started_at,
        price_cents=None,
        auto_renewed=False,
    ))
    db.session.flush()
    return row


@storage_operation
def update(row: VenueEntitlement, **fields) -> VenueEntitlement:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown entitlement fields: {', '.join(sorted(unknown))}")
    for key, value in fields.items():
        setattr(row, key, value)
    db.session.flush()
    return row


@storage_operation
def close_open_history(venue_id: int, ended_at: datetime, *, changed_by_user_id: int | None = None) -> int:
    """Close the open history entry (if any). Returns the number of rows closed."""
    values = {VenueTariffHistory.ended_at: ended_at}
    if changed_by_user_id is not None:
        values[VenueTariffHistory.changed_by_user_id] = changed_by_user_id
    closed = db.session.query(VenueTariffHistory).filter(
        VenueTariffHistory.venue_id == venue_id,
        VenueTariffHistory.ended_at.is_(None),
    ).update(values, synchronize_session=False)
    return closed


@storage_operation
def append_history(
    venue_id: int,
    *,
    tier: str,
    started_at: datetime,
    price_cents: int | None,
    auto_renewed: bool,
    changed_by_user_id: int | None = None,
    reason: str | None = None,
) -> VenueTariffHistory:
    entry = VenueTariffHistory(
        venue_id=venue_id,
        tier=tier,
        started_at=started_at,
        ended_at=None,
        price_cents=price_cents,
        auto_renewed=auto_renewed,
        changed_by_user_id=changed_by_user_id,
        reason=reason,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def start_period(
    venue_id: int,
    *,
    at: datetime,
    tier: str,
    price_cents: int | None,
    auto_renewed: bool,
    changed_by_user_id: int | None = None,
    reason: str | None = None,
) -> VenueTariffHistory:
    """Close the current history period and open the next one at the same instant."""
    close_open_history(venue_id, at)
    return append_history(
        venue_id,
        tier=tier,
        started_at=at,
        price_cents=price_cents,
        auto_renewed=auto_renewed,
        changed_by_user_id=changed_by_user_id,
        reason=reason,
    )


@storage_operation
def list_history(venue_id: int) -> list[VenueTariffHistory]:
    """History for a venue, newest period first."""
    return db.session.query(VenueTariffHistory).filter_by(
        venue_id=venue_id
    ).order_by(VenueTariffHistory.started_at.desc(), VenueTariffHistory.id.desc()).all()


@storage_operation
def get_open_history(venue_id: int) -> VenueTariffHistory | None:
    return db.session.query(VenueTariffHistory).filter(
        VenueTariffHistory.venue_id == venue_id,
        VenueTariffHistory.ended_at.is_(None),
    ).first()


# =============================================================================
# SWEEP CANDIDATES
# =============================================================================

@storage_operation
def list_expired_without_grace(now: datetime) -> list[int]:
    rows = db.session.query(VenueEntitlement.venue_id).filter(
        VenueEntitlement.tier.in_(PAID_TIERS),
        VenueEntitlement.expires_at < now,
        VenueEntitlement.grace_period_ends_at.is_(None),
    ).order_by(VenueEntitlement.venue_id).all()
    return [venue_id for (venue_id,) in rows]


@storage_operation
def list_grace_elapsed(now: datetime) -> list[int]:
    rows = db.session.query(VenueEntitlement.venue_id).filter(
        VenueEntitlement.tier.in_(PAID_TIERS),
        VenueEntitlement.grace_period_ends_at < now,
    ).order_by(VenueEntitlement.venue_id).all()
    return [venue_id for (venue_id,) in rows]


@storage_operation
def list_counter_reset_due(month_start: datetime) -> list[int]:
    rows = db.session.query(VenueEntitlement.venue_id).filter(
        VenueEntitlement.tier.in_(PAID_TIERS),
        or_(
            VenueEntitlement.feature_counter_reset_at.is_(None),
            VenueEntitlement.feature_counter_reset_at < month_start,
        ),
    ).order_by(VenueEntitlement.venue_id).all()
    return [venue_id for (venue_id,) in rows]
