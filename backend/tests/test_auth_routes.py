# Overview: Pytest coverage for the authentication HTTP endpoints.

"""
Authentication API Tests

Verifies:
- register/login responses carry the full token payload
- refresh rotation over HTTP is single-use (R1 -> R2, R1 dead)
- revoke-token requires an access token, logout does not
- error bodies never reveal which credential was wrong
"""

import pytest

from invoicing.extensions import db
from invoicing.models import User

from conftest import auth_headers, login


TOKEN_KEYS = {"accessToken", "refreshToken", "accessTokenExpiry", "refreshTokenExpiry", "username", "role"}


class TestRegisterRoute:

    def test_register_returns_session(self, client):
        resp = client.post("/api/auth/register", json={
            "username": "carol",
            "email": "carol@example.com",
            "password": "CarolPass1",
            "role": "User",
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert set(body) == TOKEN_KEYS
        assert body["username"] == "carol"
        assert body["role"] == "User"
        assert body["accessTokenExpiry"].endswith("Z")

    def test_user_type_alias(self, client):
        resp = client.post("/api/auth/register", json={
            "username": "dave",
            "email": "dave@example.com",
            "password": "DavePass1",
            "userType": "Admin",
        })
        assert resp.status_code == 201
        assert resp.get_json()["role"] == "Admin"

    def test_duplicate_is_conflict(self, client, user_u):
        resp = client.post("/api/auth/register", json={
            "username": "USER_U",
            "email": "fresh@example.com",
            "password": "Whatever1",
            "role": "User",
        })
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "Username already exists"

    def test_non_ascii_duplicate_is_conflict(self, client):
        payload = {"username": "Ärzte", "email": "aerzte@example.com", "password": "Whatever1", "role": "User"}
        assert client.post("/api/auth/register", json=payload).status_code == 201

        resp = client.post("/api/auth/register", json=dict(payload, username="äRZTE", email="other@example.com"))
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "Username already exists"

        body = login(client, "ärzte", "Whatever1", "User")
        assert body["username"] == "Ärzte"

    def test_validation_error_has_details(self, client):
        resp = client.post("/api/auth/register", json={
            "username": "erin",
            "email": "erin@example.com",
            "password": "123",
            "role": "User",
        })
        assert resp.status_code == 400
        assert "password" in resp.get_json()["details"]
        assert db.session.query(User).count() == 0


class TestLoginRoute:

    def test_login_success(self, client, user_u):
        body = login(client, "user_u", "UserPass1", "User")
        assert set(body) == TOKEN_KEYS
        assert body["username"] == "user_u"

    @pytest.mark.parametrize(
        "username,password",
        [("user_u", "WrongPass"), ("nobody", "UserPass1")],
    )
    def test_bad_credentials_are_uniform(self, client, user_u, username, password):
        resp = client.post("/api/auth/login", json={"username": username, "password": password, "role": "User"})
        assert resp.status_code == 401
        assert resp.get_json() == {"error": "Invalid credentials"}

    def test_role_mismatch(self, client, user_u):
        resp = client.post("/api/auth/login", json={"username": "user_u", "password": "UserPass1", "role": "Admin"})
        assert resp.status_code == 401

    def test_unknown_role_is_validation_error(self, client, user_u):
        resp = client.post("/api/auth/login", json={"username": "user_u", "password": "UserPass1", "role": "Root"})
        assert resp.status_code == 400

    def test_admin_login_joins_admins_group(self, client, push_channel, admin):
        login(client, "admin_a", "AdminPass1", "Admin")
        assert admin.id in push_channel.members("Admins")


class TestRefreshRoute:

    def test_r1_r2_scenario(self, client, user_u):
        r1 = login(client, "user_u", "UserPass1", "User")["refreshToken"]

        resp = client.post("/api/auth/refresh-token", json={"refreshToken": r1})
        assert resp.status_code == 200
        r2 = resp.get_json()["refreshToken"]
        assert r2 != r1

        resp = client.post("/api/auth/refresh-token", json={"refreshToken": r1})
        assert resp.status_code == 401
        assert resp.get_json() == {"error": "Invalid or expired token"}

        resp = client.post("/api/auth/refresh-token", json={"refreshToken": r2})
        assert resp.status_code == 200

    def test_refreshed_access_token_works(self, client, user_u):
        r1 = login(client, "user_u", "UserPass1", "User")["refreshToken"]
        access = client.post("/api/auth/refresh-token", json={"refreshToken": r1}).get_json()["accessToken"]

        resp = client.get("/api/invoices", headers=auth_headers(access))
        assert resp.status_code == 200

    def test_missing_token(self, client):
        assert client.post("/api/auth/refresh-token", json={}).status_code == 401


class TestRevokeAndLogout:

    def test_revoke_requires_access_token(self, client, user_u):
        r1 = login(client, "user_u", "UserPass1", "User")["refreshToken"]
        resp = client.post("/api/auth/revoke-token", json={"refreshToken": r1})
        assert resp.status_code == 401

    def test_revoke_then_refresh_fails(self, client, user_u):
        session = login(client, "user_u", "UserPass1", "User")
        headers = auth_headers(session["accessToken"])

        resp = client.post("/api/auth/revoke-token", json={"refreshToken": session["refreshToken"]}, headers=headers)
        assert resp.status_code == 200

        resp = client.post("/api/auth/revoke-token", json={"refreshToken": session["refreshToken"]}, headers=headers)
        assert resp.status_code == 400
        assert resp.get_json() == {"error": "Failed to revoke token"}

        resp = client.post("/api/auth/refresh-token", json={"refreshToken": session["refreshToken"]})
        assert resp.status_code == 401

    def test_logout_always_succeeds(self, client, user_u):
        session = login(client, "user_u", "UserPass1", "User")

        assert client.post("/api/auth/logout", json={"refreshToken": session["refreshToken"]}).status_code == 200
        assert client.post("/api/auth/logout", json={"refreshToken": "unknown"}).status_code == 200
        assert client.post(
            "/api/auth/refresh-token", json={"refreshToken": session["refreshToken"]}
        ).status_code == 401
