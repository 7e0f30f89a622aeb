"""
Announcement endpoints.

Lifecycle changes (create, update, soft delete, restore, permanent delete,
publish) are recorded with the content-action audit wrapper; image uploads
with the file-action wrapper.
"""
import logging
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from sqlalchemy.orm import Session

from ebulletin.core.actor import Actor
from ebulletin.core.audit_middleware import (
    AuditRoute,
    audit_content_action,
    audit_file_action,
)
from ebulletin.core.config import settings
from ebulletin.core.deps import get_current_actor, get_current_admin, get_db
from ebulletin.core.exceptions import BadRequestError, NotFoundError
from ebulletin.models.announcement import Announcement, AnnouncementImage
from ebulletin.models.category import Category
from ebulletin.schemas.common import ok
from ebulletin.schemas.content import AnnouncementCreate, AnnouncementOut, AnnouncementUpdate
from ebulletin.services.file_validator import MIME_TYPES, FileValidationError, validate_image
from ebulletin.services.storage import LocalStorageService, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/announcements", tags=["announcements"], route_class=AuditRoute)

CONTENT_TYPE = "announcements"


def _serialize(announcement: Announcement) -> dict:
    return AnnouncementOut.model_validate(announcement).model_dump(mode="json")


def _get_announcement_or_404(
    db: Session, announcement_id: int, include_deleted: bool = False
) -> Announcement:
    query = db.query(Announcement).filter(Announcement.announcement_id == announcement_id)
    if not include_deleted:
        query = query.filter(Announcement.deleted_at.is_(None))
    announcement = query.first()
    if not announcement:
        raise NotFoundError("Announcement not found")
    return announcement


def _check_category(db: Session, category_id) -> None:
    if category_id is None:
        return
    if not db.query(Category).filter(Category.category_id == category_id).first():
        raise BadRequestError("Category does not exist")


@router.get("")
async def list_announcements(
    include_deleted: bool = Query(False),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """
    List announcements.

    Students only see published announcements; admins see drafts too and may
    ask for soft-deleted ones.
    """
    query = db.query(Announcement)
    if actor.user_type != "admin":
        query = query.filter(
            Announcement.status == "published", Announcement.deleted_at.is_(None)
        )
    elif not include_deleted:
        query = query.filter(Announcement.deleted_at.is_(None))

    announcements = query.order_by(Announcement.created_at.desc()).all()
    return ok("Announcements retrieved successfully", [_serialize(a) for a in announcements])


@router.get("/{announcement_id}")
async def get_announcement(
    announcement_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    announcement = _get_announcement_or_404(db, announcement_id)
    if actor.user_type != "admin" and announcement.status != "published":
        raise NotFoundError("Announcement not found")
    return ok("Announcement retrieved successfully", _serialize(announcement))


@router.post("", status_code=status.HTTP_201_CREATED)
@audit_content_action("CREATE", CONTENT_TYPE)
async def create_announcement(
    data: AnnouncementCreate,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    """Create an announcement. Requires admin role."""
    _check_category(db, data.category_id)

    announcement = Announcement(**data.model_dump(), created_by=admin.user_id)
    db.add(announcement)
    db.commit()
    db.refresh(announcement)

    logger.info(f"Admin {admin.email} created announcement {announcement.announcement_id}")
    return ok("Announcement created successfully", _serialize(announcement))


@router.put("/{announcement_id}")
@audit_content_action("UPDATE", CONTENT_TYPE)
async def update_announcement(
    announcement_id: int,
    data: AnnouncementUpdate,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    announcement = _get_announcement_or_404(db, announcement_id)
    updates = data.model_dump(exclude_unset=True)
    _check_category(db, updates.get("category_id"))

    for field, value in updates.items():
        setattr(announcement, field, value)
    db.commit()
    db.refresh(announcement)

    logger.info(f"Admin {admin.email} updated announcement {announcement_id}")
    return ok("Announcement updated successfully", _serialize(announcement))


@router.put("/{announcement_id}/publish")
@audit_content_action("PUBLISH", CONTENT_TYPE)
async def publish_announcement(
    announcement_id: int,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    announcement = _get_announcement_or_404(db, announcement_id)
    if announcement.status == "published":
        return {"success": False, "message": "Announcement is already published", "data": None}

    announcement.status = "published"
    db.commit()
    db.refresh(announcement)

    logger.info(f"Admin {admin.email} published announcement {announcement_id}")
    return ok("Announcement published successfully", _serialize(announcement))


@router.delete("/{announcement_id}")
@audit_content_action("DELETE", CONTENT_TYPE)
async def delete_announcement(
    announcement_id: int,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    """Soft-delete an announcement (restorable)."""
    announcement = _get_announcement_or_404(db, announcement_id)
    announcement.deleted_at = datetime.now(timezone.utc)
    db.commit()

    logger.info(f"Admin {admin.email} deleted announcement {announcement_id}")
    return ok("Announcement deleted successfully", {"announcement_id": announcement_id})


@router.put("/{announcement_id}/restore")
@audit_content_action("RESTORE", CONTENT_TYPE)
async def restore_announcement(
    announcement_id: int,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    announcement = _get_announcement_or_404(db, announcement_id, include_deleted=True)
    if announcement.deleted_at is None:
        raise BadRequestError("Announcement is not deleted")

    announcement.deleted_at = None
    db.commit()
    db.refresh(announcement)

    logger.info(f"Admin {admin.email} restored announcement {announcement_id}")
    return ok("Announcement restored successfully", _serialize(announcement))


@router.delete("/{announcement_id}/permanent")
@audit_content_action("PERMANENT_DELETE", CONTENT_TYPE)
async def permanently_delete_announcement(
    announcement_id: int,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
    storage: LocalStorageService = Depends(get_storage),
):
    """Remove an announcement and its images for good."""
    announcement = _get_announcement_or_404(db, announcement_id, include_deleted=True)
    for image in announcement.images:
        storage.delete(image.file_path)
    db.delete(announcement)
    db.commit()

    logger.info(f"Admin {admin.email} permanently deleted announcement {announcement_id}")
    return ok("Announcement permanently deleted", {"announcement_id": announcement_id})


@router.post("/{announcement_id}/images", status_code=status.HTTP_201_CREATED)
@audit_file_action("ADD_IMAGES")
async def add_images(
    announcement_id: int,
    files: List[UploadFile] = File(...),
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
    storage: LocalStorageService = Depends(get_storage),
):
    """Attach one or more images to an announcement."""
    announcement = _get_announcement_or_404(db, announcement_id)

    # The whole batch is validated before anything is written to disk
    validated = []
    for upload in files:
        content = await upload.read()
        try:
            extension = validate_image(upload.filename, content, settings.MAX_UPLOAD_SIZE_MB)
        except FileValidationError as e:
            raise BadRequestError(f"{upload.filename}: {e.message}")
        validated.append((upload, extension, content))

    stored = []
    for upload, extension, content in validated:
        path = storage.upload(f"announcements/{announcement_id}", extension, content)
        image = AnnouncementImage(
            announcement_id=announcement.announcement_id,
            file_name=upload.filename,
            file_path=path,
            file_size=len(content),
            mime_type=MIME_TYPES[extension],
        )
        db.add(image)
        stored.append(image)
    db.commit()

    logger.info(f"Admin {admin.email} added {len(stored)} images to announcement {announcement_id}")
    db.refresh(announcement)
    return ok("Images added successfully", _serialize(announcement))
