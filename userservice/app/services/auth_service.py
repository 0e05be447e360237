"""
services/auth_service.py — Authentication business logic.

Responsibilities:
  - User registration and credential validation
  - Access + refresh token pair issuance
  - Refresh token rotation, logout and bulk revocation
  - The periodic sweep of expired refresh tokens

Layer rules:
  - No imports from routes or schemas other than the response schema
  - No use of flask.request, flask.g, or HTTP routing
  - current_app is used to read JWT / bcrypt / session-policy config and to log.
  - The authenticated principal is always an explicit argument.

Flow policies:
  register — creates the user and returns the profile only; no tokens.
  login    — revokes every refresh token the user already holds when
             REVOKE_SESSIONS_ON_LOGIN is set, then issues a fresh pair.
  refresh  — rotation: the old row is deleted atomically, a new pair issued.
             An expired row is deleted even though the request fails.
  logout   — the row is flagged revoked; the sweep removes it after expiry.

Every function only flushes. The route commits once the flow succeeded; a
raised AppError leaves the transaction uncommitted and it is rolled back at
teardown. The one exception is the expired-token cleanup in refresh, which
commits on its own because the request itself fails.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from userservice.app.errors import AppError, ErrorCode
from userservice.app.models.refresh_token import RefreshToken
from userservice.app.models.user import Role, User
from userservice.app.schemas.user_schema import UserResponseSchema
from userservice.app.services import refresh_token_store, token_service
from userservice.app.services.credentials import (
    CredentialLookup,
    SqlAlchemyCredentialLookup,
    authenticate,
    hash_password,
)


# ── Private helpers ────────────────────────────────────────────────────────

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _create_access_token(user: User, now: datetime) -> str:
    """
    Signed JWT for `user`. sub = email, role = [role name].
    TTL from current_app.config["JWT_ACCESS_TOKEN_EXPIRES"] (timedelta).
    """
    return token_service.issue(
        subject=user.email,
        claims={"role": [user.role.value]},
        ttl=current_app.config["JWT_ACCESS_TOKEN_EXPIRES"],
        secret=current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
        now=now,
    )


def _build_token_pair(user: User, session: Session, now: datetime) -> dict:
    access_ttl: timedelta = current_app.config["JWT_ACCESS_TOKEN_EXPIRES"]
    access_token = _create_access_token(user, now)
    raw_refresh_token, _ = refresh_token_store.create(
        session,
        user_id=user.id,
        ttl=current_app.config["JWT_REFRESH_TOKEN_EXPIRES"],
        now=now,
    )
    return {
        "accessToken":  access_token,
        "refreshToken": raw_refresh_token,
        "tokenType":    "Bearer",
        "expiresIn":    int(access_ttl.total_seconds()),
    }


def _build_user_dict(user: User) -> dict:
    return UserResponseSchema().dump(user)


def _is_expired(record: RefreshToken, now: datetime) -> bool:
    skew: timedelta = current_app.config.get("JWT_CLOCK_SKEW", timedelta(0))
    return refresh_token_store.as_utc(record.expires_at) + skew < now


def _discard_expired(session: Session, record: RefreshToken) -> None:
    """
    Best-effort delete of an expired refresh token.

    Committed here because the surrounding request fails and its transaction
    is never committed. A failure is logged; it never changes the response.
    """
    token_id = record.id
    try:
        refresh_token_store.delete(session, record)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        current_app.logger.warning(
            "Could not delete expired refresh token id=%s", token_id, exc_info=True
        )


def _invalid_refresh_token() -> AppError:
    return AppError(
        ErrorCode.INVALID_REFRESH_TOKEN,
        "Invalid refresh token.",
        401,
    )


# ── Public service functions ───────────────────────────────────────────────

def register_user(
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        session: Session,
) -> dict:
    """
    Creates a new account with role USER. Does not issue tokens.

    Raises:
      AppError(DUPLICATE_EMAIL, 409) — email already registered

    Returns: the user profile dict.
    """
    current_app.logger.info("Registering user with email %s", email)

    existing = session.execute(
        select(User).where(User.email == email)
    ).scalar_one_or_none()
    if existing is not None:
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            409,
            field="email",
        )

    user = User(
        email=email,
        password_hash=hash_password(
            password, rounds=current_app.config.get("BCRYPT_LOG_ROUNDS", 12)
        ),
        first_name=first_name,
        last_name=last_name,
        role=Role.USER,
    )
    session.add(user)
    try:
        session.flush()
    except IntegrityError:
        # A concurrent registration won the unique constraint on email.
        session.rollback()
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            409,
            field="email",
        )

    current_app.logger.info("User registered with id %s", user.id)
    return _build_user_dict(user)


def login_user(
        email: str,
        password: str,
        session: Session,
        lookup: CredentialLookup | None = None,
) -> dict:
    """
    Validates credentials and issues a new access + refresh token pair.

    Raises:
      AppError(INVALID_CREDENTIALS, 401) — email unknown or password wrong.
        No refresh token row is created in that case.

    Returns: {"accessToken", "refreshToken", "tokenType", "expiresIn"}
    """
    current_app.logger.info("Login attempt for %s", email)
    user = authenticate(lookup or SqlAlchemyCredentialLookup(session), email, password)

    if current_app.config.get("REVOKE_SESSIONS_ON_LOGIN", True):
        revoked = refresh_token_store.revoke_all(session, user.id)
        if revoked:
            current_app.logger.info(
                "Revoked %s earlier session(s) for user %s", revoked, user.id
            )

    tokens = _build_token_pair(user, session, _utcnow())
    current_app.logger.info("User %s authenticated", user.id)
    return tokens


def refresh_tokens(raw_refresh_token: str, session: Session) -> dict:
    """
    Rotates a refresh token: the presented token is consumed and a new
    access + refresh pair for the same user is returned.

    Raises:
      AppError(INVALID_REFRESH_TOKEN, 401) — unknown, or consumed concurrently
      AppError(TOKEN_REVOKED, 401)         — revoked by logout or a later login
      AppError(REFRESH_TOKEN_EXPIRED, 401) — expires_at + JWT_CLOCK_SKEW < now;
                                             the stale row is deleted
    """
    now = _utcnow()
    record = refresh_token_store.find(session, raw_refresh_token)

    if record is None:
        current_app.logger.warning("Refresh attempted with unknown token")
        raise _invalid_refresh_token()

    if record.revoked:
        current_app.logger.warning(
            "Refresh attempted with revoked token (user_id=%s)", record.user_id
        )
        raise AppError(ErrorCode.TOKEN_REVOKED, "Refresh token has been revoked.", 401)

    if _is_expired(record, now):
        current_app.logger.warning(
            "Refresh attempted with expired token (user_id=%s)", record.user_id
        )
        _discard_expired(session, record)
        raise AppError(
            ErrorCode.REFRESH_TOKEN_EXPIRED, "Refresh token has expired.", 401
        )

    user_id = record.user_id
    if not refresh_token_store.consume(session, record):
        current_app.logger.warning(
            "Refresh token for user %s was already used by a concurrent request", user_id
        )
        raise _invalid_refresh_token()

    user = session.get(User, user_id)
    if user is None:
        raise _invalid_refresh_token()

    tokens = _build_token_pair(user, session, now)
    current_app.logger.info("Tokens refreshed for user %s", user_id)
    return tokens


def logout_user(
        raw_refresh_token: str,
        principal_email: str,
        session: Session,
) -> dict:
    """
    Revokes the refresh token of the authenticated principal.

    Access tokens are short-lived and are not revocable without a server-side
    denylist; they expire naturally.

    Raises:
      AppError(INVALID_REFRESH_TOKEN, 401) — unknown token
      AppError(OWNERSHIP_MISMATCH, 401)    — token belongs to another user
      AppError(TOKEN_REVOKED, 401)         — already revoked

    Returns: {"success": True, "message": "..."}
    """
    record = refresh_token_store.find(session, raw_refresh_token)
    if record is None:
        current_app.logger.warning("Logout attempted with unknown refresh token")
        raise _invalid_refresh_token()

    if record.user.email != principal_email:
        current_app.logger.warning(
            "Logout by %s presented a refresh token of user %s",
            principal_email,
            record.user_id,
        )
        raise AppError(
            ErrorCode.OWNERSHIP_MISMATCH,
            "Refresh token does not belong to the authenticated user.",
            401,
        )

    if record.revoked or not refresh_token_store.revoke(session, record):
        current_app.logger.warning(
            "Logout attempted with already revoked token (user_id=%s)", record.user_id
        )
        raise AppError(
            ErrorCode.TOKEN_REVOKED, "Refresh token has already been revoked.", 401
        )

    current_app.logger.info("User %s logged out", record.user_id)
    return {"success": True, "message": "Logged out successfully."}


def get_current_user(email: str, session: Session) -> dict:
    """
    Returns the profile of the authenticated user.

    Raises:
      AppError(USER_NOT_FOUND, 404) — the user behind a still-valid access
        token no longer exists.
    """
    user = session.execute(
        select(User).where(User.email == email)
    ).scalar_one_or_none()
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            "User not found.",
            404,
        )
    return _build_user_dict(user)


def revoke_user_sessions(user_id: int, session: Session) -> dict:
    """
    Revokes every active refresh token of `user_id` (administrative action).

    Raises:
      AppError(USER_NOT_FOUND, 404)
    """
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )
    revoked = refresh_token_store.revoke_all(session, user.id)
    current_app.logger.info("All refresh tokens revoked for user %s (%s)", user.id, revoked)
    return {"userId": user.id, "revoked": revoked}


def purge_expired_refresh_tokens(session: Session, before: datetime | None = None) -> int:
    """Deletes refresh tokens that expired before `before` (default: now)."""
    deleted = refresh_token_store.sweep(session, before or _utcnow())
    current_app.logger.info("Purged %s expired refresh token(s)", deleted)
    return deleted
