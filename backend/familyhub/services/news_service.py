# Overview: Service-layer operations for venue news; enforces the tier's monthly news allowance.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..entitlements import TIER_LIMITS, TIER_FREE, EntitlementStateError
from ..extensions import db
from ..models import VenueNews
from ..time_utils import first_day_of_month, utcnow
from . import entitlement_store
from .storage import atomic, storage_operation
from .tariff_service import status_for_row, effective_feature_count


class NewsLimitError(Exception):
    """The venue's tier does not allow (more) news posts this month."""

    def __init__(self, message: str, *, limit: int, used: int):
        super().__init__(message)
        self.limit = limit
        self.used = used


def _news_limit(row, now: datetime) -> int:
    try:
        status = status_for_row(row, now)
    except EntitlementStateError as exc:
        current_app.logger.warning(
            "Entitlement for venue %s is inconsistent, applying FREE limits: %s", row.venue_id, exc
        )
        return TIER_LIMITS[TIER_FREE].news_per_month
    return status.effective_limits.news_per_month


def create_news_post(
    venue_id: int,
    *,
    author_user_id: int | None,
    title: str,
    content: str,
    image_url: str | None = None,
    is_published: bool = True,
    now: datetime | None = None,
) -> VenueNews:
    """
    Publish a news post and consume one unit of the monthly allowance.

    The entitlement row is locked while the allowance is checked, so two
    concurrent posts cannot both take the last slot. The post and the
    counter increment commit together.

    Raises NewsLimitError when the tier has no news allowance or it is used up.
    """
    now = now or utcnow()
    month_start = first_day_of_month(now)

    with atomic():
        row = entitlement_store.get_required(venue_id, for_update=True)
        limit = _news_limit(row, now)
        used = effective_feature_count(row, now)

        if limit <= 0:
            raise NewsLimitError("News posts are not available on the current tariff", limit=limit, used=used)
        if used >= limit:
            raise NewsLimitError(
                f"Monthly news limit reached ({used}/{limit})", limit=limit, used=used
            )

        post = VenueNews(
            venue_id=venue_id,
            author_user_id=author_user_id,
            title=title,
            content=content,
            image_url=image_url,
            is_published=is_published,
            created_at=now,
            updated_at=now,
        )
        db.session.add(post)
        entitlement_store.update(
            row,
            monthly_feature_count=used + 1,
            feature_counter_reset_at=month_start,
        )

    return post


@storage_operation
def list_news(venue_id: int) -> list[VenueNews]:
    """Posts for a venue, newest first."""
    return db.session.query(VenueNews).filter_by(
        venue_id=venue_id
    ).order_by(VenueNews.created_at.desc(), VenueNews.id.desc()).all()
