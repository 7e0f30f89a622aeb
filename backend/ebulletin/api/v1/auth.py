"""
Authentication endpoints: login, logout, logout everywhere, current user.
"""
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ebulletin.core.actor import Actor
from ebulletin.core.audit_middleware import AuditRoute, audit_auth
from ebulletin.core.config import settings
from ebulletin.core.deps import get_current_actor, get_db
from ebulletin.core.exceptions import NotFoundError, UnauthorizedError
from ebulletin.schemas.auth import LoginRequest
from ebulletin.schemas.common import ok
from ebulletin.services.auth import (
    authenticate_admin,
    authenticate_student,
    bump_token_version,
    create_token_for,
    get_account,
    record_login,
    revoked_tokens,
    serialize_account,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"], route_class=AuditRoute)


@router.post("/login")
@audit_auth("LOGIN")
async def login(
    data: LoginRequest,
    db: Session = Depends(get_db),
):
    """
    Authenticate an admin (by email) or a student (by email or student number)
    and return a JWT access token.
    """
    if data.user_type == "student" or data.student_number:
        account = authenticate_student(
            db, data.password, email=data.email, student_number=data.student_number
        )
    else:
        account = authenticate_admin(db, data.email, data.password)

    if account is None:
        logger.warning(f"Failed login attempt for {data.email or data.student_number}")
        raise UnauthorizedError("Invalid credentials")

    record_login(db, account)
    access_token = create_token_for(account)

    logger.info(f"User logged in: {account.email}")

    return ok(
        "Login successful",
        {
            "user": serialize_account(account),
            "access_token": access_token,
            "token_type": "bearer",
            "expires_in": settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        },
    )


@router.post("/logout")
@audit_auth("LOGOUT")
async def logout(
    request: Request,
    actor: Actor = Depends(get_current_actor),
):
    """Revoke the token used for this request."""
    revoked_tokens.revoke(getattr(request.state, "token_jti", None))
    logger.info(f"User logged out: {actor.identifier()}")
    return ok("Logged out successfully")


@router.post("/logout-all")
@audit_auth("LOGOUT_ALL")
async def logout_all(
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Invalidate every token issued to the current account."""
    account = get_account(db, actor.user_type, actor.user_id)
    bump_token_version(db, account)
    logger.info(f"User logged out from all sessions: {actor.identifier()}")
    return ok("Logged out from all sessions")


@router.get("/me")
async def get_me(
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Get current authenticated user information."""
    account = get_account(db, actor.user_type, actor.user_id)
    if account is None:
        raise NotFoundError("User not found")
    return ok("User retrieved", serialize_account(account))
