"""Tests for /api/auth/* endpoints: register, login, refresh, reset-password, /me."""

from auth.jwt import create_refresh_token, create_verification_token


def _register_body(email: str, password: str = "secret123") -> dict:
    return {
        "email": email,
        "password": password,
        "verification_token": create_verification_token(email),
    }


class TestRegister:
    async def test_register_returns_201_with_tokens(self, test_client):
        resp = await test_client.post("/api/auth/register", json=_register_body("new@example.com"))
        assert resp.status_code == 201
        data = resp.json()
        assert "access_token" in data
        assert "refresh_token" in data
        assert data["token_type"] == "bearer"

    async def test_email_is_stored_lowercase(self, test_client):
        body = _register_body("New@Example.com")
        await test_client.post("/api/auth/register", json=body)
        resp = await test_client.post(
            "/api/auth/login", json={"email": "new@example.com", "password": "secret123"}
        )
        assert resp.status_code == 200

    async def test_duplicate_email_returns_409(self, test_client, registered_user):
        resp = await test_client.post(
            "/api/auth/register", json=_register_body(registered_user["email"], "otherpass")
        )
        assert resp.status_code == 409
        assert "already registered" in resp.json()["detail"].lower()

    async def test_missing_verification_returns_400(self, test_client):
        resp = await test_client.post(
            "/api/auth/register", json={"email": "new@example.com", "password": "secret123"}
        )
        assert resp.status_code == 400

    async def test_short_password_returns_400(self, test_client):
        resp = await test_client.post("/api/auth/register", json=_register_body("new@example.com", "abc"))
        assert resp.status_code == 400


class TestLogin:
    async def test_valid_credentials(self, test_client, registered_user):
        resp = await test_client.post(
            "/api/auth/login",
            json={"email": "test@example.com", "password": "password123"},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert "access_token" in data
        assert "refresh_token" in data

    async def test_wrong_password_returns_401(self, test_client, registered_user):
        resp = await test_client.post(
            "/api/auth/login",
            json={"email": "test@example.com", "password": "wrongpass"},
        )
        assert resp.status_code == 401
        assert "invalid" in resp.json()["detail"].lower()

    async def test_unknown_email_returns_401(self, test_client):
        resp = await test_client.post(
            "/api/auth/login",
            json={"email": "nobody@example.com", "password": "whatever"},
        )
        assert resp.status_code == 401


class TestRefresh:
    async def test_valid_refresh_token(self, test_client, registered_user):
        login_resp = await test_client.post(
            "/api/auth/login",
            json={"email": "test@example.com", "password": "password123"},
        )
        refresh_token = login_resp.json()["refresh_token"]

        resp = await test_client.post("/api/auth/refresh", json={"refresh_token": refresh_token})
        assert resp.status_code == 200
        data = resp.json()
        assert "access_token" in data
        assert "refresh_token" in data

    async def test_access_token_is_not_a_refresh_token(self, test_client, registered_user):
        resp = await test_client.post(
            "/api/auth/refresh", json={"refresh_token": registered_user["access_token"]}
        )
        assert resp.status_code == 401

    async def test_invalid_refresh_token(self, test_client):
        resp = await test_client.post(
            "/api/auth/refresh",
            json={"refresh_token": "garbage.token.value"},
        )
        assert resp.status_code == 401

    async def test_refreshed_token_keeps_identity(self, test_client, registered_user):
        token = create_refresh_token(registered_user["id"], registered_user["email"])
        resp = await test_client.post("/api/auth/refresh", json={"refresh_token": token})
        access = resp.json()["access_token"]
        me = await test_client.get("/api/auth/me", headers={"Authorization": f"Bearer {access}"})
        assert me.json()["email"] == registered_user["email"]


class TestResetPassword:
    async def test_unknown_account_returns_404(self, test_client):
        resp = await test_client.post(
            "/api/auth/reset-password", json=_register_body("ghost@example.com", "newpass1")
        )
        assert resp.status_code == 404

    async def test_old_password_stops_working(self, test_client, registered_user):
        resp = await test_client.post(
            "/api/auth/reset-password", json=_register_body(registered_user["email"], "newpass1")
        )
        assert resp.status_code == 200
        old = await test_client.post(
            "/api/auth/login", json={"email": registered_user["email"], "password": "password123"}
        )
        assert old.status_code == 401


class TestGetMe:
    async def test_returns_user_info(self, test_client, auth_headers):
        resp = await test_client.get("/api/auth/me", headers=auth_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["email"] == "test@example.com"
        assert "id" in data

    async def test_no_auth_returns_401(self, test_client):
        resp = await test_client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"

    async def test_deleted_user_returns_404(self, test_client, registered_user, db_session):
        """Token valid but user row deleted → 404."""
        from sqlalchemy import delete
        from models.user import User

        await db_session.execute(delete(User).where(User.id == registered_user["id"]))
        await db_session.commit()

        resp = await test_client.get("/api/auth/me", headers=registered_user["headers"])
        assert resp.status_code == 404
