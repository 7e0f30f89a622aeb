"""
Celery application initialization.

This module creates and configures the Celery app instance and sets up task
autodiscovery. Periodic jobs are declared in ``CeleryConfig.beat_schedule``;
run them with ``celery -A ebulletin.celery_app worker --beat``.
"""

import logging
from celery import Celery
from celery.signals import worker_ready

from ebulletin.celery_app.config import CeleryConfig

logger = logging.getLogger(__name__)

# Create Celery app
celery_app = Celery("ebulletin")

# Load configuration
celery_app.config_from_object(CeleryConfig)

# Auto-discover tasks in the tasks package
celery_app.autodiscover_tasks(
    [
        "ebulletin.celery_app.tasks",
    ],
    force=True,
)


@worker_ready.connect
def on_worker_ready(sender, **kwargs):
    """Log the schedule a freshly started worker will run."""
    scheduled = ", ".join(sorted(CeleryConfig.beat_schedule)) or "none"
    logger.info(f"Celery worker ready, periodic tasks: {scheduled}")
