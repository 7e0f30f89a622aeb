"""
Administrator account management. Only accessible by super administrators.
"""
import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ebulletin.core.actor import Actor
from ebulletin.core.audit_middleware import AuditRoute, audit_admin_action
from ebulletin.core.deps import get_db, require_super_admin
from ebulletin.core.exceptions import BadRequestError, NotFoundError
from ebulletin.models.admin import AdminAccount, AdminProfile
from ebulletin.schemas.accounts import AdminCreate, AdminUpdate
from ebulletin.schemas.common import ok
from ebulletin.services.auth import get_password_hash, serialize_account

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admins", tags=["admins"], route_class=AuditRoute)

PROFILE_FIELDS = ("first_name", "last_name", "position", "department")


def _serialize(admin: AdminAccount) -> dict:
    data = serialize_account(admin)
    data.update(
        {
            "admin_id": admin.admin_id,
            "is_active": admin.is_active,
            "department": admin.profile.department if admin.profile else None,
        }
    )
    return data


def _get_admin_or_404(db: Session, admin_id: int) -> AdminAccount:
    admin = db.query(AdminAccount).filter(AdminAccount.admin_id == admin_id).first()
    if not admin:
        raise NotFoundError("Admin not found")
    return admin


@router.get("")
async def list_admins(
    db: Session = Depends(get_db),
    current: Actor = Depends(require_super_admin),
):
    admins = db.query(AdminAccount).order_by(AdminAccount.admin_id.asc()).all()
    return ok("Admins retrieved successfully", [_serialize(a) for a in admins])


@router.post("", status_code=status.HTTP_201_CREATED)
@audit_admin_action("CREATE")
async def create_admin(
    data: AdminCreate,
    db: Session = Depends(get_db),
    current: Actor = Depends(require_super_admin),
):
    if db.query(AdminAccount).filter(AdminAccount.email == data.email).first():
        raise BadRequestError("An admin with this email already exists")

    admin = AdminAccount(email=data.email, password_hash=get_password_hash(data.password))
    admin.profile = AdminProfile(**data.model_dump(include=set(PROFILE_FIELDS)))
    db.add(admin)
    db.commit()
    db.refresh(admin)

    logger.info(f"Super admin {current.email} created admin {admin.email}")
    return ok("Admin created successfully", _serialize(admin))


@router.put("/{admin_id}")
@audit_admin_action("UPDATE")
async def update_admin(
    admin_id: int,
    data: AdminUpdate,
    db: Session = Depends(get_db),
    current: Actor = Depends(require_super_admin),
):
    admin = _get_admin_or_404(db, admin_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        if field in PROFILE_FIELDS:
            setattr(admin.profile, field, value)
        else:
            setattr(admin, field, value)
    db.commit()
    db.refresh(admin)
    return ok("Admin updated successfully", _serialize(admin))


@router.delete("/{admin_id}")
@audit_admin_action("DELETE")
async def delete_admin(
    admin_id: int,
    db: Session = Depends(get_db),
    current: Actor = Depends(require_super_admin),
):
    if admin_id == current.user_id:
        raise BadRequestError("You cannot delete your own account")

    admin = _get_admin_or_404(db, admin_id)
    db.delete(admin)
    db.commit()

    logger.info(f"Super admin {current.email} deleted admin {admin_id}")
    return ok("Admin deleted successfully", {"admin_id": admin_id})
