"""
services/refresh_token_store.py — Refresh-token persistence.

Refresh tokens are opaque random strings (not JWTs). The raw value is handed
to the client once; only its SHA-256 digest is stored.

Every function takes the SQLAlchemy session explicitly and only flushes;
committing is the route's job (one transaction per auth flow).

Single-use guarantees do not rely on in-process locks:
  consume() — DELETE ... WHERE id = :id AND revoked = FALSE
  revoke()  — UPDATE ... SET revoked = TRUE WHERE id = :id AND revoked = FALSE
Whichever concurrent request's statement affects the row wins; the other
sees rowcount == 0.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta, timezone

import sqlalchemy as sa
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from userservice.app.models.refresh_token import RefreshToken


def hash_token(raw_token: str) -> str:
    """SHA-256 hex digest of a raw token string."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def create(
        session: Session,
        user_id: int,
        ttl: timedelta,
        now: datetime | None = None,
) -> tuple[str, RefreshToken]:
    """
    Stores a new refresh token for `user_id` expiring `ttl` after `now`.

    Returns (raw_token, record). The raw value is never persisted.
    """
    now = now or datetime.now(timezone.utc)
    raw_token = secrets.token_hex(32)
    record = RefreshToken(
        user_id=user_id,
        token_hash=hash_token(raw_token),
        expires_at=now + ttl,
        revoked=False,
    )
    session.add(record)
    session.flush()
    return raw_token, record


def find(session: Session, raw_token: str) -> RefreshToken | None:
    return session.execute(
        sa.select(RefreshToken).where(RefreshToken.token_hash == hash_token(raw_token))
    ).scalar_one_or_none()


def revoke(session: Session, record: RefreshToken) -> bool:
    """
    Flags `record` revoked. Idempotent.

    Returns True only if this call moved the row from active to revoked.
    """
    result = session.execute(
        sa.update(RefreshToken)
        .where(RefreshToken.id == record.id, RefreshToken.revoked.is_(False))
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    # Keep the loaded instance in step without marking it dirty.
    set_committed_value(record, "revoked", True)
    return True


def delete(session: Session, record: RefreshToken) -> None:
    session.execute(
        sa.delete(RefreshToken)
        .where(RefreshToken.id == record.id)
        .execution_options(synchronize_session=False)
    )
    if record in session:
        session.expunge(record)


def consume(session: Session, record: RefreshToken) -> bool:
    """
    Deletes `record` if, and only if, it is still active.

    Used by rotation: True means this caller owns the single permitted use of
    the token; False means a concurrent request already consumed or revoked it.
    """
    result = session.execute(
        sa.delete(RefreshToken)
        .where(RefreshToken.id == record.id, RefreshToken.revoked.is_(False))
        .execution_options(synchronize_session=False)
    )
    if record in session:
        session.expunge(record)
    return result.rowcount == 1


def revoke_all(session: Session, user_id: int) -> int:
    """Revokes every active refresh token of `user_id`. Returns the row count."""
    result = session.execute(
        sa.update(RefreshToken)
        .where(RefreshToken.user_id == user_id, RefreshToken.revoked.is_(False))
        .values(revoked=True)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


def sweep(session: Session, before: datetime) -> int:
    """Deletes every refresh token with expires_at < `before`. Returns the row count."""
    result = session.execute(
        sa.delete(RefreshToken)
        .where(RefreshToken.expires_at < before)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount
