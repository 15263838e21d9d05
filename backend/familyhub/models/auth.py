from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


ROLE_ADMIN = "ADMIN"
ROLE_VENDOR = "VENDOR"
ROLE_USER = "USER"
ROLES = (ROLE_ADMIN, ROLE_VENDOR, ROLE_USER)


class User(db.Model):
    """
    Accounts for parents, vendors and administrators.

    Email is globally unique and is the login identifier.
    Vendors own venues; administrators manage tariffs for any venue.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        db.CheckConstraint("role IN ('ADMIN', 'VENDOR', 'USER')", name="ck_users_role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default=ROLE_USER)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime, nullable=True)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class AuthSession(db.Model):
    """
    Server-side record backing a refresh token.

    One row per login. The row is the only revocation point for refresh
    tokens: deleting it (logout, cleanup) invalidates the refresh token even
    though its signature still verifies.

    The refresh token is never stored; refresh_token_hash is its SHA-256.
    Rotation (when enabled) replaces the hash in place, keeping the id.
    """
    __tablename__ = "auth_sessions"
    __table_args__ = (
        db.UniqueConstraint("refresh_token_hash", name="uq_auth_sessions_refresh_token_hash"),
        db.Index("ix_auth_sessions_id_refresh", "id", "refresh_token_hash"),
    )

    # Session id (UUID4 string), embedded in both tokens as `sid`
    id = db.Column(db.String(36), primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    refresh_token_hash = db.Column(db.String(64), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)

    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # Client information (for security monitoring)
    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)  # IPv6 max length

    user = db.relationship("User", backref=db.backref("auth_sessions", lazy=True, passive_deletes=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "expires_at": to_utc_z(self.expires_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
