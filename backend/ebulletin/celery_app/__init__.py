"""
Celery application package for scheduled maintenance.

This package provides:
- Celery app configuration and beat schedule
- Task definitions (audit log retention)
"""

from ebulletin.celery_app.celery import celery_app

__all__ = ["celery_app"]
