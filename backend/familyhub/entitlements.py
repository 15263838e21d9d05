# Overview: Tier definitions, feature limits and the typed entitlement view; pure computation, no database access.

"""
Venue Tariff Entitlements

TIERS:
    FREE     -> no expiry, no price, no grace window
    SUPER    -> paid, monthly period
    MAXIMUM  -> paid, monthly period

A persisted entitlement row is converted to one of two variants before any
business rule looks at it:

    FreeEntitlement
    PaidEntitlement(tier, expires_at, auto_renew, grace_period_ends_at, price_cents)

A row that does not fit either variant (FREE with an expiry, a paid tier with
no expiry, grace set on FREE) raises EntitlementStateError instead of being
silently interpreted.

STATUS (derived, never stored):
    free          tier is FREE
    active        paid and expires_at is in the future
    expiring      active, with at most TARIFF_EXPIRING_SOON_DAYS left
    grace_period  paid, expired, grace window still open
    expired       paid, expired, no grace or grace elapsed (sweep pending)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Union

from .time_utils import days_until, to_utc_z


TIER_FREE = "FREE"
TIER_SUPER = "SUPER"
TIER_MAXIMUM = "MAXIMUM"

TIERS = (TIER_FREE, TIER_SUPER, TIER_MAXIMUM)
PAID_TIERS = (TIER_SUPER, TIER_MAXIMUM)
Tier = Literal["FREE", "SUPER", "MAXIMUM"]

STATUS_FREE = "free"
STATUS_ACTIVE = "active"
STATUS_EXPIRING = "expiring"
STATUS_GRACE_PERIOD = "grace_period"
STATUS_EXPIRED = "expired"

EXPIRING_SOON_DAYS = 7

# Price per 30-day period, in minor currency units (kopecks).
TIER_PRICES_CENTS = {
    TIER_SUPER: 69000,
    TIER_MAXIMUM: 129000,
}
CURRENCY = "RUB"
PRICING_PERIOD_DAYS = 30


@dataclass(frozen=True)
class TierLimits:
    photos: int
    news_per_month: int
    has_rich_description: bool
    has_features: bool
    has_analytics: bool
    has_price_fields: bool

    def to_dict(self) -> dict:
        return {
            "photos": self.photos,
            "news_per_month": self.news_per_month,
            "has_rich_description": self.has_rich_description,
            "has_features": self.has_features,
            "has_analytics": self.has_analytics,
            "has_price_fields": self.has_price_fields,
        }


TIER_LIMITS: dict[str, TierLimits] = {
    TIER_FREE: TierLimits(4, 0, False, False, False, False),
    TIER_SUPER: TierLimits(10, 3, True, True, True, True),
    TIER_MAXIMUM: TierLimits(15, 5, True, True, True, True),
}


class EntitlementStateError(ValueError):
    """A persisted entitlement row violates the tier invariants."""


@dataclass(frozen=True)
class FreeEntitlement:
    venue_id: int
    tier: Tier = TIER_FREE

    @property
    def is_paid(self) -> bool:
        return False


@dataclass(frozen=True)
class PaidEntitlement:
    venue_id: int
    tier: Tier
    expires_at: datetime
    auto_renew: bool
    grace_period_ends_at: datetime | None
    price_cents: int | None

    @property
    def is_paid(self) -> bool:
        return True

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now

    def in_grace(self) -> bool:
        return self.grace_period_ends_at is not None


Entitlement = Union[FreeEntitlement, PaidEntitlement]


def is_paid_tier(tier: str) -> bool:
    return tier in PAID_TIERS


def limits_for(tier: str) -> TierLimits:
    return TIER_LIMITS.get(tier, TIER_LIMITS[TIER_FREE])


def from_row(row) -> Entitlement:
    """
    Build the typed variant from a VenueEntitlement row (or any object with
    the same attribute names).

    Raises EntitlementStateError for rows no variant can represent.
    """
    if row.tier == TIER_FREE:
        if row.expires_at is not None or row.grace_period_ends_at is not None or row.price_cents is not None:
            raise EntitlementStateError(
                f"Venue {row.venue_id}: FREE tier must not carry expiry, grace period or price"
            )
        return FreeEntitlement(venue_id=row.venue_id)

    if row.tier not in PAID_TIERS:
        raise EntitlementStateError(f"Venue {row.venue_id}: unknown tier '{row.tier}'")

    if row.expires_at is None:
        raise EntitlementStateError(f"Venue {row.venue_id}: paid tier {row.tier} has no expiry")

    return PaidEntitlement(
        venue_id=row.venue_id,
        tier=row.tier,
        expires_at=row.expires_at,
        auto_renew=bool(row.auto_renew),
        grace_period_ends_at=row.grace_period_ends_at,
        price_cents=row.price_cents,
    )


@dataclass(frozen=True)
class EntitlementStatus:
    tier: str
    status: str
    days_until_expiry: int | None
    grace_period_days: int | None
    expires_at: datetime | None
    grace_period_ends_at: datetime | None
    limits: TierLimits

    @property
    def has_paid_features(self) -> bool:
        """Paid features stay usable through the grace window."""
        return self.status in (STATUS_ACTIVE, STATUS_EXPIRING, STATUS_GRACE_PERIOD)

    @property
    def effective_limits(self) -> TierLimits:
        if self.has_paid_features:
            return self.limits
        return TIER_LIMITS[TIER_FREE]

    def to_dict(self) -> dict:
        return {
            "tier": self.tier,
            "status": self.status,
            "days_until_expiry": self.days_until_expiry,
            "grace_period_days": self.grace_period_days,
            "expires_at": to_utc_z(self.expires_at),
            "grace_period_ends_at": to_utc_z(self.grace_period_ends_at),
            "limits": self.limits.to_dict(),
        }


def compute_status(
    entitlement: Entitlement,
    now: datetime,
    *,
    expiring_soon_days: int = EXPIRING_SOON_DAYS,
) -> EntitlementStatus:
    """Derive the vendor-facing status for an entitlement snapshot at `now`."""
    if isinstance(entitlement, FreeEntitlement):
        return EntitlementStatus(
            tier=TIER_FREE,
            status=STATUS_FREE,
            days_until_expiry=None,
            grace_period_days=None,
            expires_at=None,
            grace_period_ends_at=None,
            limits=TIER_LIMITS[TIER_FREE],
        )

    days_left = days_until(entitlement.expires_at, now)
    grace_days = None

    if days_left > 0:
        status = STATUS_EXPIRING if days_left <= expiring_soon_days else STATUS_ACTIVE
    else:
        days_left = None
        status = STATUS_EXPIRED
        if entitlement.grace_period_ends_at is not None:
            remaining = days_until(entitlement.grace_period_ends_at, now)
            if remaining > 0:
                status = STATUS_GRACE_PERIOD
                grace_days = remaining

    return EntitlementStatus(
        tier=entitlement.tier,
        status=status,
        days_until_expiry=days_left,
        grace_period_days=grace_days,
        expires_at=entitlement.expires_at,
        grace_period_ends_at=entitlement.grace_period_ends_at,
        limits=limits_for(entitlement.tier),
    )


def free_status() -> EntitlementStatus:
    """Status used when the entitlement cannot be read."""
    return compute_status(FreeEntitlement(venue_id=0), datetime.min)


def quote_upgrade(tier: str, duration_days: int) -> tuple[int, int]:
    """
    Return (price_per_period_cents, total_cents) for a paid tier and duration.

    Total is pro-rated against a 30-day period and rounded to the nearest unit.
    """
    price = TIER_PRICES_CENTS[tier]
    total = round(price * duration_days / PRICING_PERIOD_DAYS)
    return price, total
