# Overview: Service-layer operations for venues; creation with the initial FREE entitlement and ownership lookups.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import User, Venue
from ..time_utils import utcnow
from . import entitlement_store
from .storage import atomic


class VenueNotFoundError(LookupError):
    """Venue does not exist or is not visible to the caller."""
    pass


def create_venue(name: str, owner_user_id: int | None = None, now: datetime | None = None) -> Venue:
    """
    Create a venue at the FREE tier.

    The venue, its entitlement and the first open FREE history entry are
    written in one transaction, so every venue has a continuous history from
    the moment it exists.
    """
    name = (name or "").strip()
    if not name:
        raise ValueError("Venue name is required")
    now = now or utcnow()

    with atomic():
        venue = Venue(name=name, owner_user_id=owner_user_id, is_active=True, created_at=now)
        db.session.add(venue)
        db.session.flush()
        entitlement_store.create_free(venue.id, started_at=now)

    return venue


def get_venue(venue_id: int) -> Venue:
    venue = db.session.get(Venue, venue_id)
    if venue is None:
        raise VenueNotFoundError(f"Venue {venue_id} not found")
    return venue


def get_venue_for_user(venue_id: int, user: User) -> Venue:
    """
    Venue visible to `user`: administrators see every venue, vendors only
    their own. Anything else is reported as not found.
    """
    venue = get_venue(venue_id)
    if user.is_admin or venue.owner_user_id == user.id:
        return venue
    raise VenueNotFoundError(f"Venue {venue_id} not found")
