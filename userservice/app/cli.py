"""
cli.py — Flask CLI commands.

    flask --app userservice.wsgi purge-refresh-tokens
"""

from __future__ import annotations

import click
from flask import Flask

from userservice.app.extensions import db
from userservice.app.services import auth_service


def register_commands(app: Flask) -> None:

    @app.cli.command("purge-refresh-tokens")
    def purge_refresh_tokens():
        """Delete every refresh token that has already expired."""
        deleted = auth_service.purge_expired_refresh_tokens(db.session)
        db.session.commit()
        click.echo(f"Deleted {deleted} expired refresh token(s).")
