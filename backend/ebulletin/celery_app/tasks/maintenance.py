"""
Periodic maintenance tasks.
"""

import logging
from typing import Optional

from ebulletin.celery_app.celery import celery_app
from ebulletin.core.config import settings
from ebulletin.db.session import SessionLocal
from ebulletin.services.audit import cleanup_old_logs

logger = logging.getLogger(__name__)


@celery_app.task(name="ebulletin.celery_app.tasks.maintenance.cleanup_audit_logs")
def cleanup_audit_logs_task(days_to_keep: Optional[int] = None) -> dict:
    """
    Delete audit log entries older than the retention window.

    Args:
        days_to_keep: Retention in days (defaults to AUDIT_RETENTION_DAYS)

    Returns:
        Dict with the number of deleted entries and the retention used
    """
    days = days_to_keep or settings.AUDIT_RETENTION_DAYS
    if days < settings.AUDIT_CLEANUP_MIN_DAYS:
        raise ValueError(
            f"days_to_keep must be at least {settings.AUDIT_CLEANUP_MIN_DAYS}, got {days}"
        )

    logger.info(f"Starting scheduled audit log cleanup (keeping {days} days)")

    db = SessionLocal()
    try:
        deleted = cleanup_old_logs(db, days)
    finally:
        db.close()

    logger.info(f"Scheduled audit log cleanup removed {deleted} entries")
    return {"deleted_count": deleted, "days_kept": days}
