"""
Explicit audit helpers for welcome page operations.

Used by handlers whose outcome cannot be read back from the response, such
as reorders that only report how many items moved.
"""
import logging
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from ebulletin.core.actor import Actor
from ebulletin.services.audit import AuditAction, TargetTable, log_content_action

logger = logging.getLogger(__name__)


def log_welcome_page_operation(
    db: Session,
    actor: Optional[Actor],
    operation: str,
    action: str,
    target_table: str = TargetTable.WELCOME_CARDS,
    record_id: Optional[int] = None,
    additional_info: str = "",
    request: Optional[Request] = None,
) -> bool:
    """
    Record a welcome page operation.

    Returns:
        True if the entry was written
    """
    identifier = (actor or Actor.system()).identifier()
    description = f"{identifier} performed {action} on {target_table}"
    if record_id:
        description += f" (ID: {record_id})"
    if additional_info:
        description += f" - {additional_info}"

    entry = log_content_action(
        db,
        actor,
        action,
        target_table,
        record_id,
        new_data={"operation": operation},
        description=description,
        request=request,
    )
    if entry is None:
        logger.warning(f"Welcome page audit entry not written: {operation}")
        return False
    return True


def log_card_reorder(
    db: Session,
    actor: Optional[Actor],
    card_count: int = 1,
    request: Optional[Request] = None,
) -> bool:
    return log_welcome_page_operation(
        db,
        actor,
        "Card Reorder",
        AuditAction.REORDER,
        target_table=TargetTable.WELCOME_CARDS,
        additional_info=f"Reordered {card_count} cards",
        request=request,
    )


def log_carousel_reorder(
    db: Session,
    actor: Optional[Actor],
    image_count: int = 1,
    request: Optional[Request] = None,
) -> bool:
    return log_welcome_page_operation(
        db,
        actor,
        "Carousel Reorder",
        AuditAction.REORDER,
        target_table=TargetTable.CAROUSEL_IMAGES,
        additional_info=f"Reordered {image_count} carousel images",
        request=request,
    )
