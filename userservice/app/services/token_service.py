"""
services/token_service.py — Access-token issuance and verification.

Pure functions over PyJWT. No Flask, no database, no module state: the secret,
TTL and clock skew are passed in by the caller (middleware and auth_service
read them from current_app.config).

Token design:
  - Access token: JWT, HMAC (HS256 by default), sub = user email,
    iat/exp as NumericDate seconds, optional extra claims (e.g. "role").
  - Refresh tokens are NOT JWTs; see refresh_token_store.py.

verify() never raises for a bad token. It returns a TokenVerification whose
`error` tells the caller which check failed:
  INVALID_SIGNATURE — signature does not match the secret (checked before expiry)
  MALFORMED         — not decodable, or sub/exp missing or of the wrong type
  EXPIRED           — exp + clock_skew < now
so the middleware can answer "refresh your token" for EXPIRED and
"rejected" for everything else.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import jwt

from userservice.app.errors import ConfigurationError
from userservice.config import MIN_SECRET_BYTES


class TokenErrorKind(str, enum.Enum):
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    MALFORMED         = "MALFORMED"
    EXPIRED           = "EXPIRED"


@dataclass(frozen=True)
class TokenVerification:
    subject: str | None = None
    claims: dict = field(default_factory=dict)
    error: TokenErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _check_secret(secret: str | None) -> None:
    if not secret or len(secret.encode("utf-8")) < MIN_SECRET_BYTES:
        raise ConfigurationError(
            f"JWT secret must be a non-empty string of at least {MIN_SECRET_BYTES} bytes."
        )


def issue(
        subject: str,
        claims: dict | None,
        ttl: timedelta,
        secret: str,
        algorithm: str = "HS256",
        now: datetime | None = None,
) -> str:
    """
    Builds a signed token for `subject` that expires `ttl` after `now`.

    Extra `claims` are merged first so they can never override sub/iat/exp.

    Raises:
      ConfigurationError — secret empty or shorter than MIN_SECRET_BYTES.
    """
    _check_secret(secret)
    now = now or datetime.now(timezone.utc)
    payload = dict(claims or {})
    payload.update({
        "sub": subject,
        "iat": int(now.timestamp()),
        # Rounded up so the token never expires before now + ttl.
        "exp": math.ceil((now + ttl).timestamp()),
    })
    return jwt.encode(payload, secret, algorithm=algorithm)


def verify(
        token: str,
        secret: str,
        clock_skew: timedelta = timedelta(0),
        algorithm: str = "HS256",
        now: datetime | None = None,
) -> TokenVerification:
    """
    Validates signature, structure and expiry of `token`.

    A token is accepted while exp + clock_skew >= now.

    Raises:
      ConfigurationError — secret empty or shorter than MIN_SECRET_BYTES.
      Token problems are returned, never raised.
    """
    _check_secret(secret)
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            # Expiry is evaluated below with an explicit clock and skew.
            options={"verify_exp": False, "verify_iat": False},
        )
    except jwt.InvalidSignatureError:
        return TokenVerification(error=TokenErrorKind.INVALID_SIGNATURE)
    except jwt.InvalidTokenError:
        return TokenVerification(error=TokenErrorKind.MALFORMED)

    subject = payload.get("sub")
    exp = payload.get("exp")
    if not isinstance(subject, str) or not subject:
        return TokenVerification(error=TokenErrorKind.MALFORMED)
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return TokenVerification(error=TokenErrorKind.MALFORMED)

    now = now or datetime.now(timezone.utc)
    if exp + clock_skew.total_seconds() < now.timestamp():
        return TokenVerification(
            subject=subject,
            claims=payload,
            error=TokenErrorKind.EXPIRED,
        )

    return TokenVerification(subject=subject, claims=payload)
