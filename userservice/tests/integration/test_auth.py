"""
tests/integration/test_auth.py — Integration tests for authentication endpoints.

Endpoints covered:
  POST /auth/register  → 201
  POST /auth/login     → 200
  POST /auth/refresh   → 200
  POST /auth/logout    → 200
  GET  /users/me       → 200
  POST /users/<id>/revoke-sessions → 200 (ADMIN)

Error cases:
  DUPLICATE_EMAIL       409 — email already registered
  INVALID_CREDENTIALS   401 — wrong password / unknown email
  REFRESH_TOKEN_INVALID 401 — every refresh-token failure, whatever the cause
  TOKEN_MISSING         401 — no Authorization header
  TOKEN_INVALID         401 — malformed, foreign or expired access token
  ACCESS_DENIED         403 — authenticated without the ADMIN role
  USER_NOT_FOUND        404 — user vanished behind a valid access token
"""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from userservice.app.extensions import db
from userservice.app.models.refresh_token import RefreshToken
from userservice.app.models.user import User
from userservice.app.services import refresh_token_store

from .conftest import auth_headers, login, make_admin, register


def _refresh_token_count(app) -> int:
    with app.app_context():
        return db.session.execute(
            select(func.count()).select_from(RefreshToken)
        ).scalar_one()


def _stored_token(app, raw_token: str) -> RefreshToken | None:
    with app.app_context():
        record = refresh_token_store.find(db.session, raw_token)
        if record is not None:
            db.session.expunge(record)
        return record


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/register
# ═══════════════════════════════════════════════════════════════════════════

class TestRegister:

    def test_register_minimal_payload_returns_201_with_profile(self, client):
        resp = client.post("/auth/register", json={
            "email": "a@x.com",
            "password": "secret123",
        })
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert isinstance(data["id"], int)
        assert data["email"] == "a@x.com"
        assert data["role"] == "USER"
        # register issues no tokens
        assert "accessToken" not in data
        assert "refreshToken" not in data
        # the password hash must NEVER appear in the response
        assert "password" not in data
        assert "password_hash" not in data

    def test_register_returns_names_in_camel_case(self, client):
        data = register(client, "bob@test.com", first_name="Bob", last_name="Builder")
        assert data["firstName"] == "Bob"
        assert data["lastName"] == "Builder"
        assert "createdAt" in data

    def test_register_creates_no_refresh_token(self, client, app):
        register(client)
        assert _refresh_token_count(app) == 0

    def test_duplicate_email_returns_409_duplicate_email(self, client):
        payload = {"email": "a@x.com", "password": "secret123"}
        assert client.post("/auth/register", json=payload).status_code == 201

        resp = client.post("/auth/register", json=payload)
        assert resp.status_code == 409
        error = resp.get_json()["error"]
        assert error["code"] == "DUPLICATE_EMAIL"
        assert error["field"] == "email"

    def test_weak_password_no_digit_returns_400(self, client):
        resp = client.post("/auth/register", json={
            "email": "a@b.com", "password": "password",
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "password"

    def test_invalid_email_format_returns_400(self, client):
        resp = client.post("/auth/register", json={
            "email": "notanemail", "password": "Password1",
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_FIELD"

    def test_missing_fields_return_400(self, client):
        resp = client.post("/auth/register", json={})
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "MISSING_FIELD"


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/login
# ═══════════════════════════════════════════════════════════════════════════

class TestLogin:

    def test_login_success_returns_token_pair(self, client, app):
        register(client)
        resp = client.post("/auth/login", json={
            "email": "alice@test.com", "password": "Password1",
        })
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["tokenType"] == "Bearer"
        assert data["expiresIn"] == int(app.config["JWT_ACCESS_TOKEN_EXPIRES"].total_seconds())
        assert data["accessToken"].count(".") == 2
        # refresh tokens are opaque, not JWTs
        assert "." not in data["refreshToken"]

    def test_wrong_password_returns_401_and_creates_no_token(self, client, app):
        register(client)
        resp = client.post("/auth/login", json={
            "email": "alice@test.com", "password": "WrongPass1",
        })
        assert resp.status_code == 401
        body = resp.get_json()
        assert body["error"]["code"] == "INVALID_CREDENTIALS"
        assert "data" not in body
        assert _refresh_token_count(app) == 0

    def test_unknown_email_returns_401_invalid_credentials(self, client):
        """Same error for unknown user and wrong password — avoids enumeration."""
        resp = client.post("/auth/login", json={
            "email": "ghost@test.com", "password": "Password1",
        })
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_second_login_revokes_first_session(self, client, app):
        register(client)
        first = login(client)
        second = login(client)

        assert _stored_token(app, first["refreshToken"]).revoked is True
        assert _stored_token(app, second["refreshToken"]).revoked is False

        resp = client.post("/auth/refresh", json={"refreshToken": first["refreshToken"]})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "REFRESH_TOKEN_INVALID"

    def test_sessions_coexist_when_revoke_on_login_disabled(self, client, app, monkeypatch):
        monkeypatch.setitem(app.config, "REVOKE_SESSIONS_ON_LOGIN", False)
        register(client)
        first = login(client)
        login(client)

        resp = client.post("/auth/refresh", json={"refreshToken": first["refreshToken"]})
        assert resp.status_code == 200

    def test_missing_fields_return_400(self, client):
        resp = client.post("/auth/login", json={})
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "MISSING_FIELD"


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/refresh
# ═══════════════════════════════════════════════════════════════════════════

class TestRefresh:

    def test_refresh_rotates_refresh_token(self, client, app):
        register(client)
        tokens = login(client)

        resp = client.post("/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["refreshToken"] != tokens["refreshToken"]
        assert data["tokenType"] == "Bearer"

        # the old row is gone, the new one is active
        assert _stored_token(app, tokens["refreshToken"]) is None
        assert _stored_token(app, data["refreshToken"]).revoked is False

    def test_refresh_token_cannot_be_used_twice(self, client):
        register(client)
        tokens = login(client)
        payload = {"refreshToken": tokens["refreshToken"]}

        assert client.post("/auth/refresh", json=payload).status_code == 200
        resp = client.post("/auth/refresh", json=payload)
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "REFRESH_TOKEN_INVALID"

    def test_rotated_token_keeps_the_same_user(self, client):
        register(client)
        tokens = login(client)
        resp = client.post("/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
        new_access = resp.get_json()["data"]["accessToken"]

        me = client.get("/users/me", headers=auth_headers(new_access))
        assert me.status_code == 200
        assert me.get_json()["data"]["email"] == "alice@test.com"

    def test_refresh_token_accepted_from_bearer_header(self, client):
        register(client)
        tokens = login(client)
        resp = client.post("/auth/refresh", headers=auth_headers(tokens["refreshToken"]))
        assert resp.status_code == 200

    def test_refresh_token_accepted_from_custom_header(self, client):
        register(client)
        tokens = login(client)
        resp = client.post(
            "/auth/refresh",
            headers={"X-Refresh-Token": tokens["refreshToken"]},
        )
        assert resp.status_code == 200

    def test_unknown_refresh_token_returns_401(self, client):
        resp = client.post("/auth/refresh", json={
            "refreshToken": "completely_invalid_token_value",
        })
        assert resp.status_code == 401
        error = resp.get_json()["error"]
        assert error["code"] == "REFRESH_TOKEN_INVALID"

    def test_failures_share_one_generic_message(self, client):
        """Unknown and revoked tokens must be indistinguishable to the client."""
        register(client)
        tokens = login(client)
        client.post(
            "/auth/logout",
            json={"refreshToken": tokens["refreshToken"]},
            headers=auth_headers(tokens["accessToken"]),
        )

        revoked = client.post("/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
        unknown = client.post("/auth/refresh", json={"refreshToken": "nope"})
        assert revoked.status_code == unknown.status_code == 401
        assert revoked.get_json() == unknown.get_json()

    def test_missing_refresh_token_returns_400(self, client):
        resp = client.post("/auth/refresh", json={})
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "MISSING_FIELD"

    @pytest.mark.parametrize("body", [["abc"], "abc", 42])
    def test_non_object_body_returns_400(self, client, body):
        resp = client.post("/auth/refresh", json=body)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_FIELD"


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/logout
# ═══════════════════════════════════════════════════════════════════════════

class TestLogout:

    def test_logout_success_returns_acknowledgement(self, client, app):
        register(client)
        tokens = login(client)
        resp = client.post(
            "/auth/logout",
            json={"refreshToken": tokens["refreshToken"]},
            headers=auth_headers(tokens["accessToken"]),
        )
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["success"] is True
        assert "message" in data
        assert _stored_token(app, tokens["refreshToken"]).revoked is True

    def test_logout_accepts_refresh_token_header(self, client):
        register(client)
        tokens = login(client)
        resp = client.post(
            "/auth/logout",
            headers={
                **auth_headers(tokens["accessToken"]),
                "X-Refresh-Token": tokens["refreshToken"],
            },
        )
        assert resp.status_code == 200

    def test_logout_requires_auth(self, client):
        resp = client.post("/auth/logout", json={"refreshToken": "anything"})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"

    @pytest.mark.parametrize("body", [["abc"], "abc"])
    def test_non_object_body_returns_400(self, client, body):
        register(client)
        tokens = login(client)
        resp = client.post(
            "/auth/logout",
            json=body,
            headers=auth_headers(tokens["accessToken"]),
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_FIELD"

    def test_double_logout_returns_401(self, client):
        register(client)
        tokens = login(client)
        headers = auth_headers(tokens["accessToken"])
        payload = {"refreshToken": tokens["refreshToken"]}

        assert client.post("/auth/logout", json=payload, headers=headers).status_code == 200
        resp = client.post("/auth/logout", json=payload, headers=headers)
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "REFRESH_TOKEN_INVALID"

    def test_logout_with_another_users_token_returns_401(self, client, app):
        register(client, "alice@test.com")
        register(client, "bob@test.com")
        alice = login(client, "alice@test.com")
        bob = login(client, "bob@test.com")

        resp = client.post(
            "/auth/logout",
            json={"refreshToken": bob["refreshToken"]},
            headers=auth_headers(alice["accessToken"]),
        )
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "REFRESH_TOKEN_INVALID"
        # bob's session is untouched
        assert _stored_token(app, bob["refreshToken"]).revoked is False


# ═══════════════════════════════════════════════════════════════════════════
# GET /users/me
# ═══════════════════════════════════════════════════════════════════════════

class TestMe:

    def test_me_returns_user_profile(self, client):
        register(client)
        tokens = login(client)
        resp = client.get("/users/me", headers=auth_headers(tokens["accessToken"]))
        assert resp.status_code == 200
        user = resp.get_json()["data"]
        assert user["email"] == "alice@test.com"
        assert user["firstName"] == "Alice"
        assert "id" in user
        assert "password_hash" not in user

    def test_me_without_token_returns_401_token_missing(self, client):
        resp = client.get("/users/me")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"

    def test_me_with_invalid_token_returns_401_token_invalid(self, client):
        resp = client.get("/users/me", headers=auth_headers("bad.token.here"))
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_me_with_malformed_bearer_header_returns_401(self, client):
        resp = client.get("/users/me", headers={"Authorization": "notbearer xyz"})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_me_rejects_refresh_token_as_access_token(self, client):
        register(client)
        tokens = login(client)
        resp = client.get("/users/me", headers=auth_headers(tokens["refreshToken"]))
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_me_returns_404_when_user_vanished(self, client, app):
        register(client)
        tokens = login(client)
        with app.app_context():
            user = db.session.execute(
                select(User).where(User.email == "alice@test.com")
            ).scalar_one()
            db.session.delete(user)
            db.session.commit()

        resp = client.get("/users/me", headers=auth_headers(tokens["accessToken"]))
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "USER_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════
# POST /users/<id>/revoke-sessions
# ═══════════════════════════════════════════════════════════════════════════

class TestRevokeSessions:

    def test_admin_revokes_all_sessions_of_a_user(self, client, app, monkeypatch):
        monkeypatch.setitem(app.config, "REVOKE_SESSIONS_ON_LOGIN", False)
        bob_profile = register(client, "bob@test.com")
        bob_first = login(client, "bob@test.com")
        bob_second = login(client, "bob@test.com")

        register(client, "admin@test.com")
        make_admin(app, "admin@test.com")
        admin = login(client, "admin@test.com")

        resp = client.post(
            f"/users/{bob_profile['id']}/revoke-sessions",
            headers=auth_headers(admin["accessToken"]),
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["revoked"] == 2
        assert _stored_token(app, bob_first["refreshToken"]).revoked is True
        assert _stored_token(app, bob_second["refreshToken"]).revoked is True

    def test_non_admin_gets_403(self, client):
        profile = register(client)
        tokens = login(client)
        resp = client.post(
            f"/users/{profile['id']}/revoke-sessions",
            headers=auth_headers(tokens["accessToken"]),
        )
        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "ACCESS_DENIED"

    def test_unknown_user_returns_404(self, client, app):
        register(client, "admin@test.com")
        make_admin(app, "admin@test.com")
        admin = login(client, "admin@test.com")
        resp = client.post(
            "/users/999999/revoke-sessions",
            headers=auth_headers(admin["accessToken"]),
        )
        assert resp.status_code == 404


# ═══════════════════════════════════════════════════════════════════════════
# Envelope, CORS, unknown routes
# ═══════════════════════════════════════════════════════════════════════════

class TestEnvelope:

    def test_error_response_has_correct_envelope(self, client):
        resp = client.post("/auth/login", json={
            "email": "nobody@test.com", "password": "Password1",
        })
        body = resp.get_json()
        assert set(body["error"]) >= {"code", "message"}
        assert "Traceback" not in str(body)

    def test_success_response_has_data_and_warnings_keys(self, client):
        resp = client.post("/auth/register", json={
            "email": "carol@test.com", "password": "Password1",
        })
        body = resp.get_json()
        assert "data" in body
        assert body["warnings"] == []

    def test_unknown_route_returns_json_404(self, client):
        resp = client.get("/nowhere")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "NOT_FOUND"

    def test_cors_reflects_origin_in_testing(self, client):
        resp = client.post(
            "/auth/login",
            json={"email": "nobody@test.com", "password": "Password1"},
            headers={"Origin": "http://localhost:8000"},
        )
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:8000"
        assert "X-Refresh-Token" in resp.headers["Access-Control-Allow-Headers"]
