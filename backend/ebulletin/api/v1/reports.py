"""
Reporting endpoints for administrators.
"""
from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from ebulletin.core.actor import Actor
from ebulletin.core.audit_middleware import AuditRoute, audit_system_event
from ebulletin.core.deps import get_current_admin, get_db
from ebulletin.models.admin import AdminAccount
from ebulletin.models.announcement import Announcement
from ebulletin.models.category import Category
from ebulletin.models.student import StudentAccount
from ebulletin.schemas.common import ok

router = APIRouter(prefix="/reports", tags=["reports"], route_class=AuditRoute)


@router.get("/summary")
@audit_system_event("REPORT_VIEW", "Summary report generated")
async def summary_report(
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    """Headline counts for the admin dashboard."""
    announcements_by_status = dict(
        db.query(Announcement.status, func.count(Announcement.announcement_id))
        .filter(Announcement.deleted_at.is_(None))
        .group_by(Announcement.status)
        .all()
    )
    return ok(
        "Summary report generated",
        {
            "announcements": {
                "published": announcements_by_status.get("published", 0),
                "draft": announcements_by_status.get("draft", 0),
            },
            "categories": db.query(func.count(Category.category_id)).scalar(),
            "students": db.query(func.count(StudentAccount.student_id)).scalar(),
            "admins": db.query(func.count(AdminAccount.admin_id)).scalar(),
        },
    )
