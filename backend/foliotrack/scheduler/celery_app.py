"""
Celery worker and beat configuration.

Run with::

    celery -A foliotrack.scheduler.celery_app worker --beat
"""
from celery import Celery
from celery.schedules import crontab

from foliotrack.core.config import settings
from foliotrack.core.logging import setup_logging

setup_logging()

app = Celery(
    "foliotrack",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["foliotrack.tasks.snapshots"],
)

app.conf.update(
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=True,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    # Redelivered after a worker crash
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=24 * 3600,
)

app.conf.beat_schedule = {
    "create-daily-snapshots": {
        "task": "foliotrack.tasks.snapshots.create_daily_snapshots",
        "schedule": crontab(hour=settings.SNAPSHOT_HOUR, minute=settings.SNAPSHOT_MINUTE),
    },
}
