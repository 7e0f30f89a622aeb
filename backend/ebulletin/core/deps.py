"""
Common dependencies for FastAPI endpoints.
"""
from typing import Generator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ebulletin.core.actor import Actor
from ebulletin.db.session import SessionLocal
from ebulletin.schemas.auth import TokenData
from ebulletin.services.auth import actor_for, decode_access_token, get_account

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired authentication token",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_token_data(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> TokenData:
    """Decoded payload of the bearer token; 401 when absent or invalid."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token_data = decode_access_token(credentials.credentials)
    if token_data is None or token_data.user_id is None:
        raise _credentials_exception()
    return token_data


async def get_current_actor(
    request: Request,
    token_data: TokenData = Depends(get_token_data),
    db: Session = Depends(get_db),
) -> Actor:
    """
    Resolve the authenticated principal and publish it on ``request.state.actor``.

    The audit interception layer reads the actor from the request state, so
    every audited route must depend on this (directly or through
    ``get_current_admin``).

    Raises:
        HTTPException: If token is invalid, revoked, or the account is gone
    """
    account = get_account(db, token_data.role, token_data.user_id)
    if account is None or not account.is_active:
        raise _credentials_exception()
    if (account.token_version or 0) != token_data.version:
        raise _credentials_exception()

    actor = actor_for(account)
    request.state.actor = actor
    request.state.token_jti = token_data.jti
    return actor


async def get_current_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Require an authenticated administrator."""
    if actor.user_type != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return actor


async def require_super_admin(actor: Actor = Depends(get_current_admin)) -> Actor:
    """Require an administrator whose position is ``super_admin``."""
    if not actor.is_super_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super admin access required",
        )
    return actor
