"""
schemas/user_schema.py — Response schemas for user profiles.

Dump-only. Never exposes password_hash.
"""

from __future__ import annotations

from marshmallow import fields

from userservice.app.extensions import ma
from userservice.app.models.user import Role


class UserResponseSchema(ma.Schema):
    id = fields.Int()
    email = fields.Str()
    first_name = fields.Str(data_key="firstName")
    last_name = fields.Str(data_key="lastName")
    role = fields.Enum(Role, by_value=True)
    created_at = fields.DateTime(data_key="createdAt")
