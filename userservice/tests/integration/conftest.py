"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing"), which
    points at an in-memory SQLite database (TEST_DATABASE_URL overrides it,
    e.g. with a PostgreSQL URL).
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted so tests are isolated.

Helper functions (not fixtures) are provided for common operations:
  - register(client, ...)    → user profile dict
  - login(client, ...)       → token pair dict
  - auth_headers(token)      → {"Authorization": "Bearer <token>"}
  - make_admin(app, email)   → promotes a registered user to ADMIN

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test.
"""

from __future__ import annotations

import pytest
from sqlalchemy import select, text

from userservice.app import create_app
from userservice.app.extensions import db as _db
from userservice.app.models.user import Role, User


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire
    test session, with all tables created. Tables are dropped at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows after every test.

    refresh_tokens is deleted before users (CASCADE would handle it on
    PostgreSQL, but SQLite does not enforce foreign keys by default).
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM refresh_tokens"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client / context fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


@pytest.fixture
def app_ctx(app):
    """Pushes an application context for tests that use db.session directly."""
    with app.app_context():
        yield app


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

DEFAULT_PASSWORD = "Password1"


def register(
    client,
    email: str = "alice@test.com",
    password: str = DEFAULT_PASSWORD,
    first_name: str = "Alice",
    last_name: str = "Liddell",
) -> dict:
    """Registers a new user and returns the profile dict from the response."""
    resp = client.post(
        "/auth/register",
        json={
            "email": email,
            "password": password,
            "firstName": first_name,
            "lastName": last_name,
        },
    )
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp.get_json()["data"]


def login(client, email: str = "alice@test.com", password: str = DEFAULT_PASSWORD) -> dict:
    """
    Logs in a user and returns the token pair.
    Returns: {"accessToken", "refreshToken", "tokenType", "expiresIn"}
    """
    resp = client.post(
        "/auth/login",
        json={"email": email, "password": password},
    )
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    return resp.get_json()["data"]


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def make_admin(app, email: str) -> None:
    with app.app_context():
        user = _db.session.execute(
            select(User).where(User.email == email)
        ).scalar_one()
        user.role = Role.ADMIN
        _db.session.commit()
