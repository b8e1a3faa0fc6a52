# calsync/config/celery_config.py
"""Celery configuration and task routing"""
from celery import Celery
from kombu import Queue

from calsync.config.settings import get_settings

settings = get_settings()


def create_celery_app() -> Celery:
    """Create and configure Celery application"""

    celery_app = Celery(
        "calsync",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
    )

    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,

        # Task routing
        task_routes={
            "calsync.tasks.calendar_tasks.sync_*": {"queue": "calendar_sync"},
            "calsync.tasks.calendar_tasks.push_*": {"queue": "calendar_push"},
        },

        # Queue definitions
        task_queues=(
            Queue("calendar_sync", routing_key="calendar_sync"),
            Queue("calendar_push", routing_key="calendar_push"),
        ),

        # Periodic pull of provider changes
        beat_schedule={
            "sync-all-companies": {
                "task": "calsync.tasks.calendar_tasks.sync_all_companies",
                "schedule": settings.PERIODIC_SYNC_MINUTES * 60,
            },
        },

        # Worker settings
        worker_max_tasks_per_child=1000,
        worker_prefetch_multiplier=1,
        task_acks_late=True,

        # Retry settings
        task_retry_max_retries=3,
        task_retry_delay=60,  # 1 minute

        broker_connection_retry_on_startup=True,
    )

    celery_app.autodiscover_tasks([
        "calsync.tasks.calendar_tasks",
    ])

    return celery_app


# Create the Celery app instance
celery_app = create_celery_app()
