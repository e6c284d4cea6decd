"""
Celery Application Configuration
"""
from celery import Celery
from geoattend.config import settings

# Create Celery app
celery_app = Celery(
    "geoattend_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "geoattend.worker.tasks"
    ]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,
    task_soft_time_limit=240,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=3600,
    beat_schedule={
        "complete-expired-events": {
            "task": "geoattend.worker.tasks.complete_expired_events",
            "schedule": settings.EVENT_STATUS_INTERVAL_SEC,
        },
    }
)

# Task routing
celery_app.conf.task_routes = {
    "geoattend.worker.tasks.*": {"queue": "default"},
}
