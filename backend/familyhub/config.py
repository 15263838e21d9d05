# backend/familyhub/config.py
from __future__ import annotations
import os
from datetime import timedelta


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/familyhub.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///familyhub.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Token signing. JWT_SECRET falls back to SECRET_KEY when unset.
    JWT_SECRET = os.environ.get("JWT_SECRET")
    JWT_ALGORITHM = "HS256"
    JWT_ISSUER = "familyhub"
    ACCESS_TOKEN_TTL = timedelta(seconds=int(os.environ.get("ACCESS_TOKEN_TTL_SECONDS", "3600")))
    REFRESH_TOKEN_TTL = timedelta(seconds=int(os.environ.get("REFRESH_TOKEN_TTL_SECONDS", str(7 * 24 * 3600))))

    # Cookies: `session` carries the access token, `refresh_token` the refresh token
    ACCESS_COOKIE_NAME = "session"
    REFRESH_COOKIE_NAME = "refresh_token"
    SESSION_COOKIE_SECURE = _env_bool(
        "SESSION_COOKIE_SECURE",
        os.environ.get("FLASK_ENV", "").lower() == "production",
    )

    # Access-token validation accepts a correctly signed token when the
    # session table cannot be read. Refresh never does.
    AVAILABILITY_OVER_STRICT_REVOCATION = _env_bool("AVAILABILITY_OVER_STRICT_REVOCATION", True)

    # Off: a refresh token stays valid for its whole TTL. On: every refresh
    # replaces the stored token and returns a new one.
    ROTATE_REFRESH_TOKENS = _env_bool("ROTATE_REFRESH_TOKENS", False)

    # Shared secret for the scheduler-invoked endpoints (Authorization: Bearer <secret>)
    CRON_SECRET = os.environ.get("CRON_SECRET", "cron-secret-key")

    # Tariff lifecycle
    TARIFF_GRACE_PERIOD_DAYS = int(os.environ.get("TARIFF_GRACE_PERIOD_DAYS", "3"))
    TARIFF_RENEWAL_MONTHS = 1
    TARIFF_EXPIRING_SOON_DAYS = 7
