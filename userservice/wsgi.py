"""
WSGI / Celery entry point.

    gunicorn userservice.wsgi:app
    celery -A userservice.wsgi:celery_app worker --beat
"""

import os

from userservice.app import create_app

app = create_app(os.getenv("FLASK_ENV", "development"))
celery_app = app.extensions["celery"]
