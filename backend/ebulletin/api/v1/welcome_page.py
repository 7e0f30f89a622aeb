"""
Welcome page content manager: info cards and carousel images.

Reorders only report how many items moved, so they are recorded explicitly
through the hot audit helpers instead of the response wrappers.
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, File, Request, UploadFile, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from ebulletin.core.actor import Actor
from ebulletin.core.audit_middleware import (
    AuditRoute,
    audit_content_action,
    audit_file_action,
)
from ebulletin.core.config import settings
from ebulletin.core.deps import get_current_admin, get_db
from ebulletin.core.exceptions import BadRequestError, NotFoundError
from ebulletin.models.welcome_page import CarouselImage, WelcomeCard
from ebulletin.schemas.common import ok
from ebulletin.schemas.content import (
    CarouselImageOut,
    ReorderRequest,
    WelcomeCardCreate,
    WelcomeCardOut,
    WelcomeCardUpdate,
)
from ebulletin.services.file_validator import MIME_TYPES, FileValidationError, validate_image
from ebulletin.services.hot_audit import log_card_reorder, log_carousel_reorder
from ebulletin.services.storage import LocalStorageService, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/welcome-page", tags=["welcome-page"], route_class=AuditRoute)

CARDS = "welcome_cards"


def _card(card: WelcomeCard) -> dict:
    return WelcomeCardOut.model_validate(card).model_dump(mode="json")


def _image(image: CarouselImage) -> dict:
    return CarouselImageOut.model_validate(image).model_dump(mode="json")


def _get_card_or_404(db: Session, card_id: int, include_deleted: bool = False) -> WelcomeCard:
    query = db.query(WelcomeCard).filter(WelcomeCard.card_id == card_id)
    if not include_deleted:
        query = query.filter(WelcomeCard.deleted_at.is_(None))
    card = query.first()
    if not card:
        raise NotFoundError("Welcome card not found")
    return card


def _apply_order(items: list, ids: list[int], key: str) -> int:
    by_id = {getattr(item, key): item for item in items}
    unknown = [item_id for item_id in ids if item_id not in by_id]
    if unknown:
        raise BadRequestError(f"Unknown ids: {unknown}")
    for position, item_id in enumerate(ids):
        by_id[item_id].display_order = position
    return len(ids)


# ===========================================
# Public content
# ===========================================


@router.get("/cards")
async def list_cards(db: Session = Depends(get_db)):
    """Active cards in display order (public)."""
    cards = (
        db.query(WelcomeCard)
        .filter(WelcomeCard.deleted_at.is_(None), WelcomeCard.is_active.is_(True))
        .order_by(WelcomeCard.display_order.asc())
        .all()
    )
    return ok("Welcome cards retrieved successfully", [_card(c) for c in cards])


@router.get("/carousel")
async def list_carousel(db: Session = Depends(get_db)):
    """Active carousel images in display order (public)."""
    images = (
        db.query(CarouselImage)
        .filter(CarouselImage.is_active.is_(True))
        .order_by(CarouselImage.display_order.asc())
        .all()
    )
    return ok("Carousel images retrieved successfully", [_image(i) for i in images])


# ===========================================
# Cards (admin)
# ===========================================


@router.put("/admin/cards/reorder")
async def reorder_cards(
    data: ReorderRequest,
    request: Request,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    cards = db.query(WelcomeCard).filter(WelcomeCard.deleted_at.is_(None)).all()
    count = _apply_order(cards, data.ids, "card_id")
    db.commit()

    log_card_reorder(db, admin, count, request=request)
    return ok("Welcome cards reordered successfully", {"reordered": count})


@router.post("/admin/cards", status_code=status.HTTP_201_CREATED)
@audit_content_action("CREATE", CARDS)
async def create_card(
    data: WelcomeCardCreate,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    next_order = db.query(func.coalesce(func.max(WelcomeCard.display_order), -1)).scalar() + 1
    card = WelcomeCard(**data.model_dump(), display_order=next_order)
    db.add(card)
    db.commit()
    db.refresh(card)

    logger.info(f"Admin {admin.email} created welcome card {card.card_id}")
    return ok("Welcome card created successfully", _card(card))


@router.put("/admin/cards/{card_id}")
@audit_content_action("UPDATE", CARDS)
async def update_card(
    card_id: int,
    data: WelcomeCardUpdate,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    card = _get_card_or_404(db, card_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(card, field, value)
    db.commit()
    db.refresh(card)
    return ok("Welcome card updated successfully", _card(card))


@router.patch("/admin/cards/{card_id}/toggle")
@audit_content_action("TOGGLE_STATUS", CARDS)
async def toggle_card(
    card_id: int,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    card = _get_card_or_404(db, card_id)
    card.is_active = not card.is_active
    db.commit()
    db.refresh(card)

    state = "activated" if card.is_active else "deactivated"
    return ok(f"Welcome card {state}", _card(card))


@router.delete("/admin/cards/{card_id}")
@audit_content_action("DELETE", CARDS)
async def delete_card(
    card_id: int,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    card = _get_card_or_404(db, card_id)
    card.deleted_at = datetime.now(timezone.utc)
    db.commit()
    return ok("Welcome card deleted successfully", {"card_id": card_id})


@router.put("/admin/cards/{card_id}/restore")
@audit_content_action("RESTORE", CARDS)
async def restore_card(
    card_id: int,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    card = _get_card_or_404(db, card_id, include_deleted=True)
    if card.deleted_at is None:
        raise BadRequestError("Welcome card is not deleted")
    card.deleted_at = None
    db.commit()
    db.refresh(card)
    return ok("Welcome card restored successfully", _card(card))


# ===========================================
# Carousel (admin)
# ===========================================


@router.put("/admin/carousel/reorder")
async def reorder_carousel(
    data: ReorderRequest,
    request: Request,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    images = db.query(CarouselImage).all()
    count = _apply_order(images, data.ids, "image_id")
    db.commit()

    log_carousel_reorder(db, admin, count, request=request)
    return ok("Carousel images reordered successfully", {"reordered": count})


@router.post("/admin/carousel", status_code=status.HTTP_201_CREATED)
@audit_file_action("UPLOAD")
async def upload_carousel_image(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
    storage: LocalStorageService = Depends(get_storage),
):
    content = await file.read()
    try:
        extension = validate_image(file.filename, content, settings.MAX_UPLOAD_SIZE_MB)
    except FileValidationError as e:
        raise BadRequestError(e.message)

    path = storage.upload("carousel", extension, content)
    next_order = db.query(func.coalesce(func.max(CarouselImage.display_order), -1)).scalar() + 1
    image = CarouselImage(
        file_name=file.filename,
        file_path=path,
        file_size=len(content),
        mime_type=MIME_TYPES[extension],
        display_order=next_order,
    )
    db.add(image)
    db.commit()
    db.refresh(image)

    logger.info(f"Admin {admin.email} uploaded carousel image {image.image_id}")
    return ok("Carousel image uploaded successfully", _image(image))
