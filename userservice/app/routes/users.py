"""
routes/users.py — User profile and administration routes.

Endpoints (url_prefix = <API_PREFIX>/users):
  GET    /users/me                      → 200 (auth required)
  POST   /users/<id>/revoke-sessions    → 200 (ADMIN role required)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from userservice.app.extensions import db
from userservice.app.middleware.auth_middleware import require_auth, require_role
from userservice.app.models.user import Role
from userservice.app.services import auth_service

users_bp = Blueprint("users", __name__)


@users_bp.route("/me", methods=["GET"])
@require_auth
def me():
    """GET /users/me — Return the current user's profile."""
    result = auth_service.get_current_user(
        email=g.current_user_email,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@users_bp.route("/<int:user_id>/revoke-sessions", methods=["POST"])
@require_role(Role.ADMIN.value)
def revoke_sessions(user_id: int):
    """POST /users/<id>/revoke-sessions — Revoke every refresh token of a user."""
    result = auth_service.revoke_user_sessions(
        user_id=user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200
