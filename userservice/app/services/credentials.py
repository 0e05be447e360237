"""
services/credentials.py — Password hashing and credential checks.

bcrypt is the only password primitive in this service.

The authenticator depends on a narrow CredentialLookup capability instead of
querying the users table itself, so tests and alternative user stores can
supply their own lookup.
"""

from __future__ import annotations

from typing import Protocol

import bcrypt
from sqlalchemy import select
from sqlalchemy.orm import Session

from userservice.app.errors import AppError, ErrorCode
from userservice.app.models.user import User


class CredentialLookup(Protocol):

    def find_by_email(self, email: str) -> User | None:
        ...


class SqlAlchemyCredentialLookup:
    """CredentialLookup over the users table."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_email(self, email: str) -> User | None:
        return self.session.execute(
            select(User).where(User.email == email)
        ).scalar_one_or_none()


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds),
    ).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    # bcrypt.checkpw compares in constant time.
    return bcrypt.checkpw(
        password.encode("utf-8"),
        password_hash.encode("utf-8"),
    )


def authenticate(lookup: CredentialLookup, email: str, password: str) -> User:
    """
    Returns the user owning `email` if `password` matches.

    Raises:
      AppError(INVALID_CREDENTIALS, 401) — email not found or password wrong.
      Uses the same error for both to avoid account enumeration.
    """
    user = lookup.find_by_email(email)
    if user is None or not check_password(password, user.password_hash):
        raise AppError(
            ErrorCode.INVALID_CREDENTIALS,
            "The email or password is incorrect.",
            401,
        )
    return user
