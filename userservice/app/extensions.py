"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy and marshmallow as module-level objects so they can be
imported anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` or `ma` from here wherever needed.

    from userservice.app.extensions import db, ma

Do not pass the app object directly to SQLAlchemy() or Marshmallow() at import
time — that would prevent running tests with a separate test app instance.
"""

from flask_sqlalchemy import SQLAlchemy
from flask_marshmallow import Marshmallow

db = SQLAlchemy()

# Schema inheritance rule:
#   Request validation schemas (LoginSchema, RegisterSchema, ...) inherit from
#   marshmallow.Schema directly so they load without an application.
#   Response schemas inherit from ma.Schema; they only ever dump.
ma = Marshmallow()
