"""
routes/auth.py — Authentication route handlers.

Layer rules:
  - Parse request body
  - Validate with the appropriate schema (raises ValidationError on bad input)
  - Call exactly ONE service function
  - Commit the DB session
  - Return the standard response envelope: {"data": {...}, "warnings": []}

No business logic here. No DB queries.
AppError propagates to the global error handler in app/__init__.py — routes
never catch it.

Endpoints (url_prefix = <API_PREFIX>/auth):
  POST   /auth/register  → 201
  POST   /auth/login     → 200
  POST   /auth/refresh   → 200
  POST   /auth/logout    → 200
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from userservice.app.extensions import db
from userservice.app.middleware.auth_middleware import bearer_token, require_auth
from userservice.app.schemas.auth_schema import LoginSchema, RefreshTokenSchema, RegisterSchema
from userservice.app.services import auth_service

auth_bp = Blueprint("auth", __name__)

REFRESH_TOKEN_HEADER = "X-Refresh-Token"


def _refresh_token_payload(allow_authorization: bool):
    """
    Request body, with refreshToken filled from a header when the body omits it.

    Header sources, in order: X-Refresh-Token, then (refresh only)
    "Authorization: Bearer <refresh token>".

    A body that is not a JSON object is returned as-is; the schema rejects it.
    """
    body = request.get_json(silent=True)
    if body is None:
        body = {}
    if not isinstance(body, dict):
        return body

    payload = dict(body)
    if payload.get("refreshToken"):
        return payload

    header_token = request.headers.get(REFRESH_TOKEN_HEADER)
    if not header_token and allow_authorization:
        header_token = bearer_token()
    if header_token:
        payload["refreshToken"] = header_token
    return payload


@auth_bp.route("/register", methods=["POST"])
def register():
    """POST /auth/register — Create account; return the profile. (No auth required.)"""
    data = RegisterSchema().load(request.get_json(silent=True) or {})
    result = auth_service.register_user(
        email=data["email"],
        password=data["password"],
        first_name=data["first_name"],
        last_name=data["last_name"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    """POST /auth/login — Authenticate; return tokens. (No auth required.)"""
    data = LoginSchema().load(request.get_json(silent=True) or {})
    result = auth_service.login_user(
        email=data["email"],
        password=data["password"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """POST /auth/refresh — Exchange a refresh token for a new token pair."""
    data = RefreshTokenSchema().load(_refresh_token_payload(allow_authorization=True))
    result = auth_service.refresh_tokens(
        raw_refresh_token=data["refresh_token"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/logout", methods=["POST"])
@require_auth
def logout():
    """POST /auth/logout — Revoke the caller's refresh token. (Auth required.)"""
    data = RefreshTokenSchema().load(_refresh_token_payload(allow_authorization=False))
    result = auth_service.logout_user(
        raw_refresh_token=data["refresh_token"],
        principal_email=g.current_user_email,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200
