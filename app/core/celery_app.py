"""
Celery application: broker and result backend from settings.
Tasks are in app.workers.tasks (notification dispatch).
"""
from celery import Celery
from celery.schedules import crontab

from app.core.config import settings

celery_app = Celery(
    "app",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "app.workers.tasks.notifications",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    task_time_limit=600,
    result_expires=86400,
    beat_schedule={
        # Picks up deliveries whose enqueue was lost (broker down during emit)
        "sweep-pending-notifications": {
            "task": "app.workers.tasks.notifications.dispatch_pending_notifications",
            "schedule": crontab(minute="*/5"),
        },
    },
)

celery_app.conf.task_routes = {
    "app.workers.tasks.notifications.dispatch_pending_notifications": {"queue": "notifications"},
}
