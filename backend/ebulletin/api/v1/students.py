"""
Student account management. Only accessible by administrators.
"""
import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ebulletin.core.actor import Actor
from ebulletin.core.audit_middleware import (
    AuditRoute,
    audit_crud,
    audit_security_event,
    audit_student_action,
)
from ebulletin.core.deps import get_current_admin, get_db
from ebulletin.core.exceptions import BadRequestError, NotFoundError
from ebulletin.models.student import StudentAccount, StudentProfile
from ebulletin.schemas.accounts import StudentCreate, StudentUpdate
from ebulletin.schemas.auth import PasswordReset
from ebulletin.schemas.common import ok
from ebulletin.services.auth import get_password_hash, serialize_account

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/students", tags=["students"], route_class=AuditRoute)

PROFILE_FIELDS = ("first_name", "last_name", "grade_level", "section")


def _serialize(student: StudentAccount) -> dict:
    data = serialize_account(student)
    data.update(
        {
            "student_id": student.student_id,
            "is_active": student.is_active,
            "grade_level": student.profile.grade_level if student.profile else None,
            "section": student.profile.section if student.profile else None,
        }
    )
    return data


def _get_student_or_404(db: Session, student_id: int) -> StudentAccount:
    student = db.query(StudentAccount).filter(StudentAccount.student_id == student_id).first()
    if not student:
        raise NotFoundError("Student not found")
    return student


@router.get("")
@audit_crud("students", action="READ")
async def list_students(
    search: str = Query(None, min_length=1, max_length=100),
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    """List student accounts, optionally filtered by name, email or number."""
    query = db.query(StudentAccount).outerjoin(StudentProfile)
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                StudentAccount.email.ilike(pattern),
                StudentAccount.student_number.ilike(pattern),
                StudentProfile.first_name.ilike(pattern),
                StudentProfile.last_name.ilike(pattern),
            )
        )
    students = query.order_by(StudentAccount.student_id.asc()).all()
    return ok("Students retrieved successfully", [_serialize(s) for s in students])


@router.get("/{student_id}")
@audit_student_action("READ")
async def get_student(
    student_id: int,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    return ok("Student retrieved successfully", _serialize(_get_student_or_404(db, student_id)))


@router.post("", status_code=status.HTTP_201_CREATED)
@audit_student_action("CREATE")
async def create_student(
    data: StudentCreate,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    duplicate = (
        db.query(StudentAccount)
        .filter(
            or_(
                StudentAccount.email == data.email,
                StudentAccount.student_number == data.student_number,
            )
        )
        .first()
    )
    if duplicate:
        raise BadRequestError("A student with this email or student number already exists")

    student = StudentAccount(
        email=data.email,
        student_number=data.student_number,
        password_hash=get_password_hash(data.password),
    )
    student.profile = StudentProfile(**data.model_dump(include=set(PROFILE_FIELDS)))
    db.add(student)
    db.commit()
    db.refresh(student)

    logger.info(f"Admin {admin.email} created student {student.student_number}")
    return ok("Student created successfully", _serialize(student))


@router.put("/{student_id}")
@audit_student_action("UPDATE")
async def update_student(
    student_id: int,
    data: StudentUpdate,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    student = _get_student_or_404(db, student_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        if field in PROFILE_FIELDS:
            setattr(student.profile, field, value)
        else:
            setattr(student, field, value)
    db.commit()
    db.refresh(student)
    return ok("Student updated successfully", _serialize(student))


@router.delete("/{student_id}")
@audit_student_action("DELETE")
async def delete_student(
    student_id: int,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    student = _get_student_or_404(db, student_id)
    db.delete(student)
    db.commit()

    logger.info(f"Admin {admin.email} deleted student {student_id}")
    return ok("Student deleted successfully", {"student_id": student_id})


@router.post(
    "/{student_id}/reset-password",
    dependencies=[Depends(audit_security_event("PASSWORD_RESET", "high"))],
)
@audit_student_action("RESET_PASSWORD")
async def reset_student_password(
    student_id: int,
    data: PasswordReset,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    """Set a new password and invalidate the student's existing sessions."""
    student = _get_student_or_404(db, student_id)
    student.password_hash = get_password_hash(data.new_password)
    student.token_version = (student.token_version or 0) + 1
    db.commit()

    logger.info(f"Admin {admin.email} reset password for student {student_id}")
    return ok("Password reset successfully", {"student_id": student_id})
