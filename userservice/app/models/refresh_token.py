"""
models/refresh_token.py — Persisted refresh-token sessions.

One row per issued refresh token. A row is live while revoked is FALSE and
expires_at (plus JWT_CLOCK_SKEW) has not passed. It leaves the live state by
exactly one of:
  - rotation: POST /auth/refresh deletes it (refresh_token_store.consume)
  - logout / re-login / admin revoke: revoked flips to TRUE
  - expiry: the scheduled sweep deletes it

Index and constraint names match migrations/versions/001_initial_schema.py.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from userservice.app.extensions import db


class RefreshToken(db.Model):
    __tablename__ = "refresh_tokens"

    __table_args__ = (
        UniqueConstraint("token_hash", name="uq_refresh_tokens_hash"),
        # revoke_all() filters by owner.
        Index("idx_refresh_tokens_user", "user_id"),
        # sweep() deletes by expiry.
        Index("idx_refresh_tokens_expires_at", "expires_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE", name="fk_refresh_tokens_user"),
        nullable=False,
    )

    # hex(sha256(raw)); lookups hash the presented value first.
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Flipped only through the conditional UPDATE in refresh_token_store.revoke().
    revoked: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="refresh_tokens",
    )

    def __repr__(self) -> str:  # pragma: no cover
        state = "revoked" if self.revoked else "active"
        return f"<RefreshToken #{self.id} user={self.user_id} {state} until {self.expires_at}>"
