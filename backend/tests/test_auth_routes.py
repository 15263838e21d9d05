"""
Authentication route tests.

Verifies:
- Login sets HttpOnly SameSite=Lax cookies and returns expiry times
- /me works from the cookie and from a Bearer header
- Refresh mints a new access cookie; rejected after logout
- Logout is idempotent and clears cookies
- Self-registration stays disabled
"""

from familyhub.services import auth_service, session_service
from familyhub.services.storage import StorageError


TEST_PASSWORD = "Password123"


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


def _login(client, email="vendor@familyhub.test", password=TEST_PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def _set_cookie_headers(response, name):
    return [h for h in response.headers.getlist("Set-Cookie") if h.startswith(f"{name}=")]


class TestLogin:

    def test_login_sets_cookies(self, client, vendor_user):
        response = _login(client)

        assert response.status_code == 200
        data = response.get_json()
        assert data["user"]["email"] == "vendor@familyhub.test"
        assert data["access_expires_at"].endswith("Z")
        assert data["refresh_expires_at"].endswith("Z")
        assert "password_hash" not in data["user"]

        access_cookie = _set_cookie_headers(response, "session")[0]
        assert "HttpOnly" in access_cookie
        assert "SameSite=Lax" in access_cookie
        assert "Max-Age=3600" in access_cookie

        refresh_cookie = _set_cookie_headers(response, "refresh_token")[0]
        assert "HttpOnly" in refresh_cookie
        assert "Path=/api/auth" in refresh_cookie
        assert "Max-Age=604800" in refresh_cookie

    def test_email_is_case_insensitive(self, client, vendor_user):
        assert _login(client, email="  Vendor@FamilyHub.test ").status_code == 200

    def test_wrong_password(self, client, vendor_user):
        response = _login(client, password="WrongPassword1")
        assert response.status_code == 401
        assert not _set_cookie_headers(response, "session")

    def test_missing_fields(self, client, db_session):
        assert client.post("/api/auth/login", json={"email": "x@y.z"}).status_code == 400

    def test_registration_disabled(self, client, db_session):
        response = client.post("/api/auth/register", json={"email": "new@familyhub.test", "password": "Password123"})
        assert response.status_code == 403


class TestMe:

    def test_me_from_cookie(self, client, vendor_user):
        _login(client)

        response = client.get("/api/auth/me")

        assert response.status_code == 200
        data = response.get_json()
        assert data["user"]["id"] == vendor_user.id
        assert data["verified_against_store"] is True

    def test_me_from_bearer(self, client, vendor_headers):
        assert client.get("/api/auth/me", headers=vendor_headers).status_code == 200

    def test_me_without_token(self, client, db_session):
        assert client.get("/api/auth/me").status_code == 401

    def test_me_with_garbage_token(self, client, db_session):
        response = client.get("/api/auth/me", headers=auth_headers("garbage"))
        assert response.status_code == 401
        assert response.get_json()["code"] == "invalid_signature"

    def test_me_when_session_table_unreachable(self, client, vendor_headers, monkeypatch):
        def unavailable(session_id):
            raise StorageError("connection refused")

        monkeypatch.setattr(session_service, "_load_session", unavailable)

        response = client.get("/api/auth/me", headers=vendor_headers)

        assert response.status_code == 200
        assert response.get_json()["verified_against_store"] is False

    def test_me_when_database_unreachable(self, client, vendor_headers, monkeypatch):
        def unavailable(*args):
            raise StorageError("connection refused")

        monkeypatch.setattr(session_service, "_load_session", unavailable)
        monkeypatch.setattr(auth_service, "get_active_user", unavailable)

        response = client.get("/api/auth/me", headers=vendor_headers)

        assert response.status_code == 503


class TestRefreshAndLogout:

    def test_refresh(self, client, vendor_user):
        _login(client)

        response = client.post("/api/auth/refresh")

        assert response.status_code == 200
        data = response.get_json()
        assert data["rotated"] is False
        assert _set_cookie_headers(response, "session")
        assert not _set_cookie_headers(response, "refresh_token")

    def test_refresh_without_cookie(self, client, db_session):
        assert client.post("/api/auth/refresh").status_code == 401

    def test_refresh_rejected_after_logout(self, client, vendor_user):
        login = _login(client)
        refresh_cookie = _set_cookie_headers(login, "refresh_token")[0]
        refresh_token = refresh_cookie.split(";", 1)[0].split("=", 1)[1]

        assert client.post("/api/auth/logout").status_code == 200

        response = client.post("/api/auth/refresh", json={"refresh_token": refresh_token})
        assert response.status_code == 401
        assert response.get_json()["code"] == "session_not_found"

    def test_logout_is_idempotent(self, client, vendor_user):
        _login(client)

        first = client.post("/api/auth/logout")
        second = client.post("/api/auth/logout")

        assert first.status_code == 200
        assert second.status_code == 200
        assert client.get("/api/auth/me").status_code == 401

    def test_access_token_rejected_after_logout(self, client, vendor_user):
        login = _login(client)
        access_cookie = _set_cookie_headers(login, "session")[0]
        access_token = access_cookie.split(";", 1)[0].split("=", 1)[1]

        client.post("/api/auth/logout")

        response = client.get("/api/auth/me", headers=auth_headers(access_token))
        assert response.status_code == 401

    def test_logout_with_stale_access_cookie_ends_refresh_session(self, client, vendor_user):
        login = _login(client)
        refresh_cookie = _set_cookie_headers(login, "refresh_token")[0]
        refresh_token = refresh_cookie.split(";", 1)[0].split("=", 1)[1]
        client.set_cookie("session", "stale-garbage")

        assert client.post("/api/auth/logout").status_code == 200

        response = client.post("/api/auth/refresh", json={"refresh_token": refresh_token})
        assert response.status_code == 401
        assert response.get_json()["code"] == "session_not_found"
