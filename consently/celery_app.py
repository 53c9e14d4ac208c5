"""Celery application instance.

Usage:
    celery -A consently.celery_app worker --loglevel=info
"""

from celery import Celery

from consently.config import settings

app = Celery(
    "consently",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_ignore_result=True,
    task_routes={
        "consently.tasks.aggregate_analytics.*": {"queue": "analytics"},
        "consently.tasks.send_email.*": {"queue": "email"},
    },
)

app.autodiscover_tasks(["consently.tasks"])

# Explicit imports to ensure tasks are always registered
import consently.tasks.aggregate_analytics  # noqa: F401, E402
import consently.tasks.send_email  # noqa: F401, E402
