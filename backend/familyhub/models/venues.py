from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Venue(db.Model):
    """
    A venue listing (play centre, studio, club) owned by a vendor.

    Only the fields the tariff core needs live here; catalogue content is
    managed elsewhere. Every venue has exactly one VenueEntitlement.
    """
    __tablename__ = "venues"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    owner = db.relationship("User", backref=db.backref("venues", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "owner_user_id": self.owner_user_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class VenueNews(db.Model):
    """
    News post published by a venue. Creating one consumes the venue's
    monthly news allowance (VenueEntitlement.monthly_feature_count).
    """
    __tablename__ = "venue_news"
    __table_args__ = (
        db.Index("ix_venue_news_venue_created", "venue_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    venue_id = db.Column(db.Integer, db.ForeignKey("venues.id"), nullable=False, index=True)
    author_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    title = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=False)
    image_url = db.Column(db.String(1024), nullable=True)
    is_published = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    venue = db.relationship("Venue", backref=db.backref("news", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "venue_id": self.venue_id,
            "author_user_id": self.author_user_id,
            "title": self.title,
            "content": self.content,
            "image_url": self.image_url,
            "is_published": self.is_published,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
