"""
middleware/auth_middleware.py — JWT authentication decorators.

The @require_auth decorator:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Verifies signature, structure and expiry via token_service.verify()
     (expiry honours JWT_CLOCK_SKEW)
  3. Attaches the principal's email and roles to flask.g for the request
  4. Raises the appropriate 401 AppError if any step fails

@require_role(role) additionally demands that role in the token's "role"
claim and raises 403 ACCESS_DENIED otherwise.

Strict responsibility boundary:
  - This middleware authenticates. Routes pass g.current_user_email to
    services as a plain argument; services never read flask.g.
  - Ownership checks (e.g. "is this your refresh token?") belong to services.

Error codes:
  TOKEN_MISSING  (401) — no Authorization header
  TOKEN_INVALID  (401) — malformed header, bad signature or bad payload
  TOKEN_EXPIRED  (401) — valid token whose exp (plus skew) has passed
  ACCESS_DENIED  (403) — authenticated, but lacking the required role

TOKEN_INVALID and TOKEN_EXPIRED are internal: both reach the client as one
generic TOKEN_INVALID error (AppError.public), so a response never reveals
whether the signature or the expiry check failed. The log keeps the detail.
"""

from __future__ import annotations

import functools
from datetime import timedelta
from typing import Callable

from flask import current_app, g, request

from userservice.app.errors import AppError, ErrorCode
from userservice.app.services import token_service
from userservice.app.services.token_service import TokenErrorKind


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces JWT authentication.

    Usage:
        @users_bp.route("/me")
        @require_auth
        def me():
            email = g.current_user_email
            ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def require_role(role: str) -> Callable[[Callable], Callable]:
    """Route decorator: authenticated AND holding `role`."""
    def decorator(f: Callable) -> Callable:
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            _authenticate_request()
            if role not in g.current_user_roles:
                current_app.logger.info(
                    "Access denied for %s: missing role %s", g.current_user_email, role
                )
                raise AppError(
                    ErrorCode.ACCESS_DENIED,
                    "Access denied.",
                    403,
                )
            return f(*args, **kwargs)

        return decorated

    return decorator


def bearer_token() -> str | None:
    """
    Returns the token of a well-formed "Bearer <token>" Authorization header,
    or None when the header is absent or has another shape.
    """
    parts = request.headers.get("Authorization", "").split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def _authenticate_request() -> None:
    """
    Performs the full JWT authentication sequence and sets
    g.current_user_email / g.current_user_roles.

    Raises AppError on any authentication failure (never returns a response
    directly — error propagates to the global Flask error handler).
    """
    if not request.headers.get("Authorization"):
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    raw_token = bearer_token()
    if raw_token is None:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )

    result = token_service.verify(
        raw_token,
        current_app.config["JWT_SECRET_KEY"],
        clock_skew=current_app.config.get("JWT_CLOCK_SKEW", timedelta(0)),
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )

    if result.error is TokenErrorKind.EXPIRED:
        current_app.logger.debug("Expired access token for %s", result.subject)
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "Access token expired.",
            401,
        )
    if not result.ok:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            f"Access token rejected: {result.error.value}.",
            401,
        )

    roles = result.claims.get("role") or []
    if isinstance(roles, str):
        roles = [roles]

    g.current_user_email = result.subject
    g.current_user_roles = list(roles)
