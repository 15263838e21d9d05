from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class VenueEntitlement(db.Model):
    """
    Current tariff of a venue (one row per venue).

    INVARIANTS:
    - tier = FREE  =>  expires_at, grace_period_ends_at and price_cents are NULL
    - grace_period_ends_at is set only between paid-period expiry and downgrade
    - Written only by the tariff sweep and the tariff management service

    monthly_feature_count counts news posts in the window that started at
    feature_counter_reset_at (the first day of a calendar month).
    """
    __tablename__ = "venue_entitlements"
    __table_args__ = (
        db.UniqueConstraint("venue_id", name="uq_venue_entitlements_venue"),
        db.CheckConstraint("tier IN ('FREE', 'SUPER', 'MAXIMUM')", name="ck_venue_entitlements_tier"),
        db.CheckConstraint(
            "tier <> 'FREE' OR (expires_at IS NULL AND grace_period_ends_at IS NULL AND price_cents IS NULL)",
            name="ck_venue_entitlements_free_has_no_period",
        ),
        db.CheckConstraint("monthly_feature_count >= 0", name="ck_venue_entitlements_feature_count"),
        db.Index("ix_venue_entitlements_tier_expires", "tier", "expires_at"),
        db.Index("ix_venue_entitlements_tier_grace", "tier", "grace_period_ends_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    venue_id = db.Column(db.Integer, db.ForeignKey("venues.id"), nullable=False)

    tier = db.Column(db.String(16), nullable=False, default="FREE")
    expires_at = db.Column(db.DateTime, nullable=True)
    auto_renew = db.Column(db.Boolean, nullable=False, default=False)
    grace_period_ends_at = db.Column(db.DateTime, nullable=True)
    price_cents = db.Column(db.Integer, nullable=True)

    monthly_feature_count = db.Column(db.Integer, nullable=False, default=0)
    feature_counter_reset_at = db.Column(db.DateTime, nullable=True)

    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    venue = db.relationship("Venue", backref=db.backref("entitlement", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "venue_id": self.venue_id,
            "tier": self.tier,
            "expires_at": to_utc_z(self.expires_at),
            "auto_renew": self.auto_renew,
            "grace_period_ends_at": to_utc_z(self.grace_period_ends_at),
            "price_cents": self.price_cents,
            "monthly_feature_count": self.monthly_feature_count,
            "feature_counter_reset_at": to_utc_z(self.feature_counter_reset_at),
        }


class VenueTariffHistory(db.Model):
    """
    Append-only ledger of tier periods.

    INVARIANTS:
    - At most one open entry (ended_at IS NULL) per venue
    - The previous open entry is closed in the same transaction that opens
      the next, with ended_at == next.started_at (no gaps)
    """
    __tablename__ = "venue_tariff_history"
    __table_args__ = (
        db.CheckConstraint("tier IN ('FREE', 'SUPER', 'MAXIMUM')", name="ck_venue_tariff_history_tier"),
        db.Index("ix_venue_tariff_history_venue_started", "venue_id", "started_at"),
        db.Index("ix_venue_tariff_history_venue_open", "venue_id", "ended_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    venue_id = db.Column(db.Integer, db.ForeignKey("venues.id"), nullable=False, index=True)

    tier = db.Column(db.String(16), nullable=False)
    started_at = db.Column(db.DateTime, nullable=False)
    ended_at = db.Column(db.DateTime, nullable=True)
    price_cents = db.Column(db.Integer, nullable=True)
    auto_renewed = db.Column(db.Boolean, nullable=False, default=False)

    # Set for manual changes made through the admin tariff endpoints
    changed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reason = db.Column(db.String(255), nullable=True)

    changed_by = db.relationship("User")

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "venue_id": self.venue_id,
            "tier": self.tier,
            "started_at": to_utc_z(self.started_at),
            "ended_at": to_utc_z(self.ended_at),
            "price_cents": self.price_cents,
            "auto_renewed": self.auto_renewed,
            "changed_by_user_id": self.changed_by_user_id,
            "reason": self.reason,
        }
