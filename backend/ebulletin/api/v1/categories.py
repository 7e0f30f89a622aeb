"""
Category endpoints. Changes are recorded through the CRUD audit wrapper.
"""
import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ebulletin.core.actor import Actor
from ebulletin.core.audit_middleware import AuditRoute, audit_crud
from ebulletin.core.deps import get_current_actor, get_current_admin, get_db
from ebulletin.core.exceptions import BadRequestError, NotFoundError
from ebulletin.models.category import Category
from ebulletin.schemas.common import ok
from ebulletin.schemas.content import CategoryCreate, CategoryOut, CategoryUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/categories", tags=["categories"], route_class=AuditRoute)


def _category_id(ctx) -> int:
    return ctx.path_params.get("category_id") or ctx.data.get("category_id")


def _serialize(category: Category) -> dict:
    return CategoryOut.model_validate(category).model_dump(mode="json")


def _get_category_or_404(db: Session, category_id: int) -> Category:
    category = db.query(Category).filter(Category.category_id == category_id).first()
    if not category:
        raise NotFoundError("Category not found")
    return category


@router.get("")
async def list_categories(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """List categories (students only see active ones)."""
    query = db.query(Category)
    if actor.user_type != "admin":
        query = query.filter(Category.is_active.is_(True))
    categories = query.order_by(Category.name.asc()).all()
    return ok("Categories retrieved successfully", [_serialize(c) for c in categories])


@router.get("/{category_id}")
async def get_category(
    category_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    category = _get_category_or_404(db, category_id)
    return ok("Category retrieved successfully", _serialize(category))


@router.post("", status_code=status.HTTP_201_CREATED)
@audit_crud("categories", get_record_id=_category_id)
async def create_category(
    data: CategoryCreate,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    """Create a category. Requires admin role."""
    if db.query(Category).filter(Category.name == data.name).first():
        raise BadRequestError("A category with this name already exists")

    category = Category(**data.model_dump())
    db.add(category)
    db.commit()
    db.refresh(category)

    logger.info(f"Admin {admin.email} created category {category.name}")
    return ok("Category created successfully", _serialize(category))


@router.put("/{category_id}")
@audit_crud(
    "categories",
    get_record_id=_category_id,
    get_old_data=lambda ctx: ctx.data.get("previous"),
    get_new_data=lambda ctx: ctx.body,
)
async def update_category(
    category_id: int,
    data: CategoryUpdate,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    """Update a category. Requires admin role."""
    category = _get_category_or_404(db, category_id)
    previous = _serialize(category)

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(category, field, value)
    db.commit()
    db.refresh(category)

    logger.info(f"Admin {admin.email} updated category {category_id}")
    return ok(
        "Category updated successfully",
        {**_serialize(category), "previous": previous},
    )


@router.delete("/{category_id}")
@audit_crud("categories", get_record_id=_category_id)
async def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    """Delete a category. Requires admin role."""
    category = _get_category_or_404(db, category_id)
    db.delete(category)
    db.commit()

    logger.info(f"Admin {admin.email} deleted category {category_id}")
    return ok("Category deleted successfully", {"category_id": category_id})
