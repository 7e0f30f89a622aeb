"""
Celery tasks package.

- maintenance: audit log retention cleanup
"""

from ebulletin.celery_app.tasks.maintenance import cleanup_audit_logs_task

__all__ = [
    "cleanup_audit_logs_task",
]
