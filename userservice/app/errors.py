"""
errors.py — AppError base class and error code registry.

Every error returned by the userservice API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
  - Token failures keep their specific code internally (logs, tests) but are
    rendered generically at the HTTP boundary:
      refresh tokens -> REFRESH_TOKEN_INVALID (revoked, expired, unknown, foreign)
      access tokens  -> TOKEN_INVALID (bad signature, malformed, expired)
    so a client cannot tell which check failed.
"""

from __future__ import annotations


class ConfigurationError(Exception):
    """
    Deployment misconfiguration (missing database URL, unusable signing secret).

    Not an AppError: it is never a client's fault and is never rendered with a
    specific code. Raised at startup or, for a bad JWT secret, on first use.
    """


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def public(self) -> AppError:
        """
        Returns the error as it may be shown to a client.

        Refresh-token failures collapse into one generic REFRESH_TOKEN_INVALID
        error and access-token failures into one generic TOKEN_INVALID error;
        every other error is returned unchanged.
        """
        if self.code in REFRESH_TOKEN_FAILURES:
            return AppError(
                ErrorCode.REFRESH_TOKEN_INVALID,
                "The refresh token is invalid, expired, or has been revoked.",
                401,
            )
        if self.code in ACCESS_TOKEN_FAILURES:
            return AppError(
                ErrorCode.TOKEN_INVALID,
                "The access token is invalid or has expired.",
                401,
            )
        return self

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL            = "DUPLICATE_EMAIL"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed (unauthorized)
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"    # 401
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401, public form of access-token failures
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401, internal only

    # Refresh-token failures: internal codes, rendered as REFRESH_TOKEN_INVALID.
    INVALID_REFRESH_TOKEN      = "INVALID_REFRESH_TOKEN"  # 401, unknown or already used
    TOKEN_REVOKED              = "TOKEN_REVOKED"          # 401
    REFRESH_TOKEN_EXPIRED      = "REFRESH_TOKEN_EXPIRED"  # 401
    OWNERSHIP_MISMATCH         = "OWNERSHIP_MISMATCH"     # 401
    REFRESH_TOKEN_INVALID      = "REFRESH_TOKEN_INVALID"  # 401, public form of the above

    ACCESS_DENIED              = "ACCESS_DENIED"          # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"


REFRESH_TOKEN_FAILURES: frozenset[str] = frozenset({
    ErrorCode.INVALID_REFRESH_TOKEN,
    ErrorCode.TOKEN_REVOKED,
    ErrorCode.REFRESH_TOKEN_EXPIRED,
    ErrorCode.OWNERSHIP_MISMATCH,
})

ACCESS_TOKEN_FAILURES: frozenset[str] = frozenset({
    ErrorCode.TOKEN_INVALID,
    ErrorCode.TOKEN_EXPIRED,
})
