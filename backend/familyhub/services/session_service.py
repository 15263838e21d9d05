# Overview: Service-layer operations for session; encapsulates the access/refresh token lifecycle and its database work.

"""
Session & Token Lifecycle

STATES (per login):
    NoSession -> Active -> AccessExpired -> Expired

    Active         access token valid, session row present
    AccessExpired  access token past exp, refresh token + session still valid
    Expired        session row deleted (logout, cleanup) or past expires_at

TOKENS:
- Access token: 1 hour, self-verifying. Validation also checks that the
  session row still exists; if the database cannot be read, the signed
  token is accepted when AVAILABILITY_OVER_STRICT_REVOCATION is on. This
  only covers the session check: require_auth still loads the User and
  answers 503 when that read fails too.
- Refresh token: 7 days, only valid while its session row exists, is
  unexpired and stores the SHA-256 of exactly this token. Storage failures
  always reject the refresh.

REFRESH TOKEN ROTATION:
  Off by default: refreshing mints a new access token and the refresh token
  stays valid until the session expires, so a leaked refresh token can be
  replayed for the rest of its lifetime. ROTATE_REFRESH_TOKENS=True replaces
  the stored hash on every refresh (same session id, same fixed expiry) and
  the previous refresh token stops working.
"""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import AuthSession
from ..time_utils import utcnow
from .storage import StorageError, atomic, storage_operation
from .token_service import (
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH,
    AuthError,
    InvalidSignature,
    TokenClaims,
    TokenExpired,
    WrongTokenType,
    decode_token,
    issue_token,
)


__all__ = [
    "AuthError",
    "InvalidSignature",
    "TokenExpired",
    "WrongTokenType",
    "SessionNotFound",
    "SessionExpired",
    "StorageUnavailable",
]


class SessionNotFound(AuthError):
    """The session behind a token was logged out, cleaned up, or rotated away."""
    code = "session_not_found"


class SessionExpired(AuthError):
    """The session row exists but its expires_at has passed."""
    code = "session_expired"


class StorageUnavailable(AuthError):
    """The session table could not be read, and the operation fails closed."""
    code = "storage_unavailable"


@dataclass
class IssuedTokens:
    session_id: str
    session: AuthSession
    access_token: str
    access_expires_at: datetime
    refresh_token: str
    refresh_expires_at: datetime


@dataclass
class RefreshedTokens:
    access_token: str
    access_expires_at: datetime
    refresh_token: str
    refresh_expires_at: datetime
    rotated: bool


@dataclass
class AuthContext:
    """
    Result of access-token validation.

    verified_against_store is False when the token was accepted on its
    signature alone because the session table was unreachable.
    """
    user_id: int
    session_id: str
    claims: TokenClaims
    verified_against_store: bool


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a token, as stored in auth_sessions.refresh_token_hash."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _config(key: str):
    return current_app.config[key]


@storage_operation
def _load_session(session_id: str) -> AuthSession | None:
    return db.session.get(AuthSession, session_id)


@storage_operation
def _find_refresh_session(session_id: str, refresh_token: str) -> AuthSession | None:
    return db.session.query(AuthSession).filter_by(
        id=session_id,
        refresh_token_hash=hash_token(refresh_token),
    ).first()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
    now: datetime | None = None,
) -> IssuedTokens:
    """
    Start a session for an authenticated user.

    Returns the persisted session plus both tokens. The refresh token is
    returned once and only its hash is stored.

    Raises StorageError if the session row cannot be written.
    """
    now = now or utcnow()
    session_id = str(uuid.uuid4())
    access_expires_at = now + _config("ACCESS_TOKEN_TTL")
    refresh_expires_at = now + _config("REFRESH_TOKEN_TTL")

    access_token = issue_token(
        session_id=session_id,
        user_id=user_id,
        token_type=TOKEN_TYPE_ACCESS,
        expires_at=access_expires_at,
        now=now,
    )
    refresh_token = issue_token(
        session_id=session_id,
        user_id=user_id,
        token_type=TOKEN_TYPE_REFRESH,
        expires_at=refresh_expires_at,
        now=now,
    )

    with atomic():
        session = AuthSession(
            id=session_id,
            user_id=user_id,
            refresh_token_hash=hash_token(refresh_token),
            expires_at=refresh_expires_at,
            created_at=now,
            updated_at=now,
            user_agent=user_agent[:512] if user_agent else None,
            ip_address=ip_address,
        )
        db.session.add(session)

    return IssuedTokens(
        session_id=session_id,
        session=session,
        access_token=access_token,
        access_expires_at=access_expires_at,
        refresh_token=refresh_token,
        refresh_expires_at=refresh_expires_at,
    )


def validate_access_token(token: str, now: datetime | None = None) -> AuthContext:
    """
    Validate an access token.

    Raises InvalidSignature, WrongTokenType, TokenExpired, SessionNotFound,
    SessionExpired, or StorageUnavailable (only when strict revocation is
    configured).
    """
    now = now or utcnow()
    claims = decode_token(token, expected_type=TOKEN_TYPE_ACCESS, now=now)

    try:
        session = _load_session(claims.session_id)
    except StorageError as exc:
        if not _config("AVAILABILITY_OVER_STRICT_REVOCATION"):
            raise StorageUnavailable("Session store unavailable") from exc
        current_app.logger.warning(
            "Session store unavailable; accepting access token for session %s on signature alone: %s",
            claims.session_id,
            exc,
        )
        return AuthContext(
            user_id=claims.user_id,
            session_id=claims.session_id,
            claims=claims,
            verified_against_store=False,
        )

    if session is None:
        raise SessionNotFound("Session not found")
    if session.expires_at <= now:
        raise SessionExpired("Session has expired")

    return AuthContext(
        user_id=session.user_id,
        session_id=session.id,
        claims=claims,
        verified_against_store=True,
    )


def refresh_access_token(refresh_token: str, now: datetime | None = None) -> RefreshedTokens:
    """
    Mint a new access token from a refresh token.

    The session must exist, store exactly this refresh token, and be
    unexpired. Fails closed on storage errors.
    """
    now = now or utcnow()
    claims = decode_token(refresh_token, expected_type=TOKEN_TYPE_REFRESH, now=now)

    try:
        session = _find_refresh_session(claims.session_id, refresh_token)
    except StorageError as exc:
        raise StorageUnavailable("Session store unavailable") from exc

    if session is None:
        raise SessionNotFound("Session not found")
    if session.expires_at <= now:
        raise SessionExpired("Session has expired")

    access_expires_at = min(now + _config("ACCESS_TOKEN_TTL"), session.expires_at)
    access_token = issue_token(
        session_id=session.id,
        user_id=session.user_id,
        token_type=TOKEN_TYPE_ACCESS,
        expires_at=access_expires_at,
        now=now,
    )

    if not _config("ROTATE_REFRESH_TOKENS"):
        return RefreshedTokens(
            access_token=access_token,
            access_expires_at=access_expires_at,
            refresh_token=refresh_token,
            refresh_expires_at=session.expires_at,
            rotated=False,
        )

    new_refresh_token = issue_token(
        session_id=session.id,
        user_id=session.user_id,
        token_type=TOKEN_TYPE_REFRESH,
        expires_at=session.expires_at,
        now=now,
    )
    try:
        with atomic():
            rotated = db.session.query(AuthSession).filter_by(
                id=session.id,
                refresh_token_hash=hash_token(refresh_token),
            ).update(
                {
                    AuthSession.refresh_token_hash: hash_token(new_refresh_token),
                    AuthSession.updated_at: now,
                },
                synchronize_session=False,
            )
    except StorageError as exc:
        raise StorageUnavailable("Session store unavailable") from exc

    if rotated != 1:
        # A concurrent refresh already consumed this token
        raise SessionNotFound("Refresh token already used")

    return RefreshedTokens(
        access_token=access_token,
        access_expires_at=access_expires_at,
        refresh_token=new_refresh_token,
        refresh_expires_at=session.expires_at,
        rotated=True,
    )


def logout(session_id: str) -> bool:
    """
    Delete the session. Idempotent: returns False if it was already gone.

    Raises StorageError if the delete cannot be performed.
    """
    with atomic():
        deleted = db.session.query(AuthSession).filter_by(id=session_id).delete(
            synchronize_session=False
        )
    return deleted > 0


def logout_with_token(token: str) -> bool:
    """
    Logout using either token of the session.

    The signature must verify; expiry is not checked so an expired access
    token can still end its session.
    """
    claims = decode_token(token, expected_type=None, verify_expiry=False)
    return logout(claims.session_id)


def logout_with_tokens(*tokens: str | None) -> int:
    """
    End every session that any of the given tokens belongs to.

    A client can hold a stale access cookie next to a valid refresh cookie,
    so each token is tried in turn; unreadable ones are skipped.
    Returns the number of sessions deleted.
    """
    session_ids = []
    for token in tokens:
        if not token:
            continue
        try:
            claims = decode_token(token, expected_type=None, verify_expiry=False)
        except AuthError as exc:
            current_app.logger.info("Ignoring unreadable token on logout: %s", exc.code)
            continue
        if claims.session_id not in session_ids:
            session_ids.append(claims.session_id)

    return sum(1 for session_id in session_ids if logout(session_id))


def revoke_all_user_sessions(user_id: int) -> int:
    """Delete every session of a user (password change, account lock). Returns count."""
    with atomic():
        deleted = db.session.query(AuthSession).filter_by(user_id=user_id).delete(
            synchronize_session=False
        )
    return deleted


def cleanup_expired_sessions(now: datetime | None = None) -> int:
    """
    Delete sessions whose expires_at has passed.

    Storage hygiene only: expired sessions are already rejected on the
    request path. Safe to run concurrently and repeatedly.
    """
    now = now or utcnow()
    with atomic():
        deleted = db.session.query(AuthSession).filter(
            AuthSession.expires_at <= now
        ).delete(synchronize_session=False)
    current_app.logger.info("Deleted %d expired session(s)", deleted)
    return deleted
