"""
Session and token lifecycle tests.

Verifies:
- Login issues an access/refresh pair backed by one session row
- Access validation: signature, type, expiry, session presence
- Refresh is rejected after logout even though the signature verifies
- Storage outage: access validation degrades (configurable), refresh fails closed
- Optional refresh-token rotation
- Expired-session cleanup
"""

from datetime import datetime, timedelta

import jwt
import pytest

from familyhub.extensions import db
from familyhub.models import AuthSession
from familyhub.services import session_service
from familyhub.services.session_service import (
    InvalidSignature,
    SessionExpired,
    SessionNotFound,
    StorageUnavailable,
    TokenExpired,
    WrongTokenType,
    hash_token,
)
from familyhub.services.storage import StorageError
from familyhub.services.token_service import TOKEN_TYPE_ACCESS, decode_token


NOW = datetime(2026, 4, 10, 12, 0, 0)


def _storage_down(*args, **kwargs):
    raise StorageError("could not connect to server")


@pytest.fixture
def issued(vendor_user):
    return session_service.create_session(vendor_user.id, user_agent="pytest", ip_address="127.0.0.1", now=NOW)


# =============================================================================
# ISSUANCE
# =============================================================================


class TestCreateSession:

    def test_tokens_and_session_row(self, issued, vendor_user):
        assert issued.access_expires_at == NOW + timedelta(hours=1)
        assert issued.refresh_expires_at == NOW + timedelta(days=7)

        row = db.session.get(AuthSession, issued.session_id)
        assert row.user_id == vendor_user.id
        assert row.expires_at == NOW + timedelta(days=7)
        assert row.user_agent == "pytest"

    def test_refresh_token_stored_only_as_hash(self, issued):
        row = db.session.get(AuthSession, issued.session_id)
        assert row.refresh_token_hash == hash_token(issued.refresh_token)
        assert issued.refresh_token not in row.refresh_token_hash

    def test_claims(self, issued, vendor_user):
        claims = decode_token(issued.access_token, expected_type=TOKEN_TYPE_ACCESS, now=NOW)
        assert claims.session_id == issued.session_id
        assert claims.user_id == vendor_user.id
        assert claims.expires_at == NOW + timedelta(hours=1)

    def test_each_login_gets_its_own_session(self, vendor_user):
        first = session_service.create_session(vendor_user.id, now=NOW)
        second = session_service.create_session(vendor_user.id, now=NOW)
        assert first.session_id != second.session_id
        assert first.refresh_token != second.refresh_token


# =============================================================================
# ACCESS VALIDATION
# =============================================================================


class TestValidateAccessToken:

    def test_valid(self, issued, vendor_user):
        context = session_service.validate_access_token(issued.access_token, now=NOW + timedelta(minutes=30))
        assert context.user_id == vendor_user.id
        assert context.session_id == issued.session_id
        assert context.verified_against_store is True

    def test_expired_access_token(self, issued):
        with pytest.raises(TokenExpired):
            session_service.validate_access_token(issued.access_token, now=NOW + timedelta(hours=1))

    def test_refresh_token_rejected_as_access(self, issued):
        with pytest.raises(WrongTokenType):
            session_service.validate_access_token(issued.refresh_token, now=NOW)

    def test_tampered_token(self, issued):
        header, payload, signature = issued.access_token.split(".")
        tampered = ".".join([header, payload, signature[::-1]])
        with pytest.raises(InvalidSignature):
            session_service.validate_access_token(tampered, now=NOW)

    def test_token_signed_with_other_key(self, issued, app):
        forged = jwt.encode(
            {"sid": issued.session_id, "sub": "1", "type": "access", "iss": app.config["JWT_ISSUER"],
             "iat": 1775822400, "exp": 1775826000},
            "some-other-secret-that-is-long-enough-for-hs256",
            algorithm="HS256",
        )
        with pytest.raises(InvalidSignature):
            session_service.validate_access_token(forged, now=NOW)

    def test_garbage(self):
        with pytest.raises(InvalidSignature):
            session_service.validate_access_token("not-a-token", now=NOW)

    def test_after_logout(self, issued):
        session_service.logout(issued.session_id)
        with pytest.raises(SessionNotFound):
            session_service.validate_access_token(issued.access_token, now=NOW)

    def test_session_expired(self, issued):
        db.session.query(AuthSession).filter_by(id=issued.session_id).update(
            {AuthSession.expires_at: NOW + timedelta(minutes=10)}
        )
        db.session.commit()
        with pytest.raises(SessionExpired):
            session_service.validate_access_token(issued.access_token, now=NOW + timedelta(minutes=20))

    def test_storage_outage_accepts_signed_token(self, issued, monkeypatch):
        monkeypatch.setattr(session_service, "_load_session", _storage_down)

        context = session_service.validate_access_token(issued.access_token, now=NOW)

        assert context.session_id == issued.session_id
        assert context.verified_against_store is False

    def test_storage_outage_strict_mode(self, issued, app, monkeypatch):
        monkeypatch.setitem(app.config, "AVAILABILITY_OVER_STRICT_REVOCATION", False)
        monkeypatch.setattr(session_service, "_load_session", _storage_down)

        with pytest.raises(StorageUnavailable):
            session_service.validate_access_token(issued.access_token, now=NOW)

    def test_storage_outage_does_not_rescue_bad_signature(self, monkeypatch):
        monkeypatch.setattr(session_service, "_load_session", _storage_down)
        with pytest.raises(InvalidSignature):
            session_service.validate_access_token("a.b.c", now=NOW)


# =============================================================================
# REFRESH
# =============================================================================


class TestRefresh:

    def test_refresh_mints_new_access_token(self, issued):
        later = NOW + timedelta(hours=2)

        refreshed = session_service.refresh_access_token(issued.refresh_token, now=later)

        assert refreshed.rotated is False
        assert refreshed.refresh_token == issued.refresh_token
        assert refreshed.access_expires_at == later + timedelta(hours=1)
        context = session_service.validate_access_token(refreshed.access_token, now=later)
        assert context.session_id == issued.session_id

    def test_access_expiry_capped_at_session_expiry(self, issued):
        late = NOW + timedelta(days=7) - timedelta(minutes=15)
        refreshed = session_service.refresh_access_token(issued.refresh_token, now=late)
        assert refreshed.access_expires_at == NOW + timedelta(days=7)

    def test_refresh_rejected_after_logout(self, issued):
        session_service.logout(issued.session_id)

        with pytest.raises(SessionNotFound):
            session_service.refresh_access_token(issued.refresh_token, now=NOW + timedelta(minutes=5))

    def test_refresh_after_expiry(self, issued):
        with pytest.raises(TokenExpired):
            session_service.refresh_access_token(issued.refresh_token, now=NOW + timedelta(days=7))

    def test_access_token_rejected_for_refresh(self, issued):
        with pytest.raises(WrongTokenType):
            session_service.refresh_access_token(issued.access_token, now=NOW)

    def test_refresh_token_from_another_session(self, vendor_user, issued):
        other = session_service.create_session(vendor_user.id, now=NOW)
        session_service.logout(other.session_id)
        with pytest.raises(SessionNotFound):
            session_service.refresh_access_token(other.refresh_token, now=NOW)
        # The first session is unaffected
        assert session_service.refresh_access_token(issued.refresh_token, now=NOW).access_token

    def test_storage_outage_fails_closed(self, issued, monkeypatch):
        monkeypatch.setattr(session_service, "_load_session", _storage_down)
        monkeypatch.setattr(session_service, "_find_refresh_session", _storage_down)

        # Access still validates on signature alone...
        session_service.validate_access_token(issued.access_token, now=NOW)
        # ...but a refresh never does
        with pytest.raises(StorageUnavailable):
            session_service.refresh_access_token(issued.refresh_token, now=NOW)

    def test_rotation_replaces_refresh_token(self, issued, app, monkeypatch):
        monkeypatch.setitem(app.config, "ROTATE_REFRESH_TOKENS", True)
        later = NOW + timedelta(hours=2)

        refreshed = session_service.refresh_access_token(issued.refresh_token, now=later)

        assert refreshed.rotated is True
        assert refreshed.refresh_token != issued.refresh_token
        assert refreshed.refresh_expires_at == NOW + timedelta(days=7)
        row = db.session.get(AuthSession, issued.session_id)
        db.session.refresh(row)
        assert row.refresh_token_hash == hash_token(refreshed.refresh_token)

        with pytest.raises(SessionNotFound):
            session_service.refresh_access_token(issued.refresh_token, now=later)
        assert session_service.refresh_access_token(refreshed.refresh_token, now=later).rotated is True


# =============================================================================
# LOGOUT & CLEANUP
# =============================================================================


class TestLogoutAndCleanup:

    def test_logout_is_idempotent(self, issued):
        assert session_service.logout(issued.session_id) is True
        assert session_service.logout(issued.session_id) is False

    def test_logout_with_expired_access_token(self, issued):
        # Issued at a fixed past time: expired by the wall clock
        assert session_service.logout_with_token(issued.access_token) is True
        assert db.session.get(AuthSession, issued.session_id) is None

    def test_logout_with_forged_token(self):
        with pytest.raises(InvalidSignature):
            session_service.logout_with_token("forged.token.value")

    def test_cleanup_removes_only_expired(self, vendor_user):
        old = session_service.create_session(vendor_user.id, now=NOW - timedelta(days=8))
        current = session_service.create_session(vendor_user.id, now=NOW)

        deleted = session_service.cleanup_expired_sessions(now=NOW)

        assert deleted == 1
        db.session.expire_all()
        assert db.session.get(AuthSession, old.session_id) is None
        assert db.session.get(AuthSession, current.session_id) is not None
        assert session_service.cleanup_expired_sessions(now=NOW) == 0

    def test_revoke_all_user_sessions(self, vendor_user, issued):
        session_service.create_session(vendor_user.id, now=NOW)
        assert session_service.revoke_all_user_sessions(vendor_user.id) == 2
        with pytest.raises(SessionNotFound):
            session_service.validate_access_token(issued.access_token, now=NOW)

    def test_logout_with_tokens_skips_unreadable(self, issued):
        deleted = session_service.logout_with_tokens("stale-garbage", None, issued.refresh_token)

        assert deleted == 1
        with pytest.raises(SessionNotFound):
            session_service.refresh_access_token(issued.refresh_token, now=NOW)

    def test_logout_with_tokens_ends_each_session_once(self, vendor_user, issued):
        other = session_service.create_session(vendor_user.id, now=NOW)

        deleted = session_service.logout_with_tokens(
            issued.access_token, issued.refresh_token, other.refresh_token
        )

        assert deleted == 2
        assert session_service.logout_with_tokens(issued.access_token) == 0
