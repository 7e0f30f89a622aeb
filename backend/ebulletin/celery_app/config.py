"""
Celery configuration settings.

This module provides configuration values for Celery workers, including the
periodic maintenance schedule.
"""

from celery.schedules import crontab

from ebulletin.core.config import settings


class CeleryConfig:
    """Celery configuration class."""

    # Broker and backend URLs
    broker_url = settings.celery_broker_url
    result_backend = settings.celery_result_backend

    # Serialization
    task_serializer = "json"
    result_serializer = "json"
    accept_content = ["json"]

    # Timezone
    timezone = "Asia/Manila"
    enable_utc = True

    # Task settings
    task_track_started = True
    task_time_limit = 1800  # 30 minutes hard limit
    task_soft_time_limit = 1500  # 25 minutes soft limit

    # Result settings
    result_expires = 86400  # 24 hours

    # Worker settings
    worker_prefetch_multiplier = 1
    worker_concurrency = 1

    # Task routing
    task_routes = {
        "ebulletin.celery_app.tasks.maintenance.*": {"queue": "maintenance"},
    }

    # Default queue
    task_default_queue = "default"

    # Periodic tasks
    beat_schedule = {
        "cleanup-audit-logs": {
            "task": "ebulletin.celery_app.tasks.maintenance.cleanup_audit_logs",
            "schedule": crontab(hour=3, minute=0),  # daily, 03:00
            "kwargs": {"days_to_keep": settings.AUDIT_RETENTION_DAYS},
        },
    }

    # Retry settings
    task_acks_late = True  # Acknowledge after task completion
    task_reject_on_worker_lost = True  # Requeue if worker dies
