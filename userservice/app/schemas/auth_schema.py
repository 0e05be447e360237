"""
schemas/auth_schema.py — Marshmallow schemas for authentication endpoints.

Validation responsibility:
  - This file: field types, lengths, formats.
  - services/auth_service.py: DUPLICATE_EMAIL (needs a DB lookup — not a
    schema concern) and every credential / token check.

Wire names are camelCase (firstName, refreshToken); loaded dicts use
snake_case keys via data_key.

All request schemas inherit from marshmallow.Schema directly so they can be
loaded in unit tests without a Flask application (see extensions.py).
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validates, validate


class RegisterSchema(Schema):
    """
    POST /auth/register

    Field rules:
      email     : valid email format, at most 255 chars
      password  : min 8 chars, at least one letter and one digit
      firstName : optional, at most 100 chars
      lastName  : optional, at most 100 chars
    """

    email = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )

    # Checked in @validates below to produce a clear message per missing rule.
    password = fields.Str(required=True, load_only=True)

    first_name = fields.Str(
        data_key="firstName",
        load_default="",
        validate=validate.Length(max=100),
    )
    last_name = fields.Str(
        data_key="lastName",
        load_default="",
        validate=validate.Length(max=100),
    )

    @validates("password")
    def validate_password_strength(self, value: str, **kwargs) -> None:
        if len(value) < 8:
            raise ValidationError("Password must be at least 8 characters long.")
        if not any(c.isalpha() for c in value):
            raise ValidationError("Password must contain at least one letter.")
        if not any(c.isdigit() for c in value):
            raise ValidationError("Password must contain at least one digit.")


class LoginSchema(Schema):
    """
    POST /auth/login

    Credential correctness is checked in auth_service.py (INVALID_CREDENTIALS, 401).
    """

    email = fields.Email(required=True)
    password = fields.Str(required=True, load_only=True)


class RefreshTokenSchema(Schema):
    """
    POST /auth/refresh, POST /auth/logout

    The route fills refreshToken from a header when the body omits it.
    Token validity (unknown, revoked, expired, foreign) is checked in
    auth_service.py.
    """

    refresh_token = fields.Str(
        data_key="refreshToken",
        required=True,
        validate=validate.Length(min=1, error="refreshToken must not be empty."),
    )
