"""
Health check endpoints.
"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from ebulletin.core.config import settings
from ebulletin.core.deps import get_db
from ebulletin.services.audit_queue import audit_writer

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check():
    """
    Basic health check endpoint.

    Returns:
        Simple status message indicating the API is running
    """
    return {
        "status": "ok",
        "service": settings.PROJECT_NAME,
    }


@router.get("/full")
async def full_health_check(db: Session = Depends(get_db)):
    """
    Database connectivity and audit writer state.
    """
    try:
        db.execute(text("SELECT 1"))
        database = {"status": "ok"}
    except Exception as e:
        database = {"status": "error", "error": str(e)}

    return {
        "status": "ok" if database["status"] == "ok" else "degraded",
        "service": settings.PROJECT_NAME,
        "database": database,
        "audit_writer": {
            "running": audit_writer.running,
            "asynchronous": audit_writer.asynchronous,
            "pending": audit_writer.pending,
            "dropped": audit_writer.dropped,
        },
    }
