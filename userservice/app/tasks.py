"""
tasks.py — Celery integration and the scheduled refresh-token sweep.

celery_init_app() binds a Celery instance to the Flask app (every task runs
inside an application context) and installs the beat schedule for the sweep
from REFRESH_TOKEN_CLEANUP_CRON.

Run the scheduler and a worker with:
    celery -A userservice.wsgi:celery_app worker --beat
"""

from __future__ import annotations

from celery import Celery, Task, shared_task
from celery.schedules import ParseException, crontab
from flask import Flask

from userservice.app.errors import ConfigurationError
from userservice.app.extensions import db
from userservice.app.services import auth_service

PURGE_TASK_NAME = "userservice.purge_expired_refresh_tokens"


def cron_schedule(expression: str) -> crontab:
    """Converts a five-field cron expression into a celery crontab."""
    fields = expression.split()
    if len(fields) != 5:
        raise ConfigurationError(
            f"REFRESH_TOKEN_CLEANUP_CRON must have 5 fields, got {expression!r}."
        )
    minute, hour, day_of_month, month_of_year, day_of_week = fields
    try:
        return crontab(
            minute=minute,
            hour=hour,
            day_of_month=day_of_month,
            month_of_year=month_of_year,
            day_of_week=day_of_week,
        )
    except (ParseException, ValueError) as exc:
        raise ConfigurationError(
            f"Invalid REFRESH_TOKEN_CLEANUP_CRON {expression!r}: {exc}"
        ) from exc


def celery_init_app(app: Flask) -> Celery:

    class FlaskTask(Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery_app = Celery(app.name, task_cls=FlaskTask)
    celery_app.config_from_object(app.config["CELERY"])
    celery_app.conf.beat_schedule = {
        "purge-expired-refresh-tokens": {
            "task": PURGE_TASK_NAME,
            "schedule": cron_schedule(app.config["REFRESH_TOKEN_CLEANUP_CRON"]),
        },
    }
    celery_app.set_default()
    app.extensions["celery"] = celery_app
    return celery_app


@shared_task(name=PURGE_TASK_NAME, ignore_result=True)
def purge_expired_refresh_tokens() -> int:
    deleted = auth_service.purge_expired_refresh_tokens(db.session)
    db.session.commit()
    return deleted
