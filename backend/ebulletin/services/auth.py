"""
Authentication service - JWT token management and password hashing.
"""

import uuid
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Optional, Union

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ebulletin.core.actor import Actor
from ebulletin.core.config import settings
from ebulletin.models.admin import AdminAccount
from ebulletin.models.student import StudentAccount
from ebulletin.schemas.auth import TokenData

Account = Union[AdminAccount, StudentAccount]

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class RevokedTokenRegistry:
    """
    In-process set of revoked token ids (``jti``).

    A single logout only invalidates the presented token; "logout everywhere"
    bumps the account's ``token_version`` instead.
    """

    def __init__(self):
        self._revoked: set[str] = set()
        self._lock = Lock()

    def revoke(self, jti: Optional[str]) -> None:
        if not jti:
            return
        with self._lock:
            self._revoked.add(jti)

    def is_revoked(self, jti: Optional[str]) -> bool:
        if not jti:
            return False
        with self._lock:
            return jti in self._revoked

    def clear(self) -> None:
        with self._lock:
            self._revoked.clear()


revoked_tokens = RevokedTokenRegistry()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a plain password."""
    return pwd_context.hash(password)


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Payload data to encode in the token
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode.update({"exp": expire, "jti": uuid.uuid4().hex})
    encoded_jwt = jwt.encode(
        to_encode,
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )
    return encoded_jwt


def create_token_for(account: Account) -> str:
    """Issue an access token for an admin or student account."""
    if isinstance(account, AdminAccount):
        data = {"sub": str(account.admin_id), "role": "admin"}
    else:
        data = {"sub": str(account.student_id), "role": "student"}
    data.update({"email": account.email, "ver": account.token_version or 0})
    return create_access_token(data)


def decode_access_token(token: str) -> Optional[TokenData]:
    """
    Decode and validate a JWT access token.

    Args:
        token: JWT token string

    Returns:
        TokenData if valid, None if invalid, expired or revoked
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
        user_id = payload.get("sub")
        role = payload.get("role")

        if user_id is None or role not in ("admin", "student"):
            return None

        jti = payload.get("jti")
        if revoked_tokens.is_revoked(jti):
            return None

        return TokenData(
            user_id=int(user_id),
            role=role,
            email=payload.get("email"),
            version=payload.get("ver", 0),
            jti=jti,
        )
    except (JWTError, ValueError):
        return None


def get_account(db: Session, role: str, user_id: int) -> Optional[Account]:
    """Load the account a token refers to."""
    if role == "admin":
        return db.query(AdminAccount).filter(AdminAccount.admin_id == user_id).first()
    return db.query(StudentAccount).filter(StudentAccount.student_id == user_id).first()


def authenticate_admin(db: Session, email: str, password: str) -> Optional[AdminAccount]:
    """
    Authenticate an administrator by email and password.

    Returns:
        AdminAccount if authentication successful, None otherwise
    """
    admin = db.query(AdminAccount).filter(AdminAccount.email == email).first()
    if not admin or not admin.is_active:
        return None
    if not verify_password(password, admin.password_hash):
        return None
    return admin


def authenticate_student(
    db: Session,
    password: str,
    email: Optional[str] = None,
    student_number: Optional[str] = None,
) -> Optional[StudentAccount]:
    """Authenticate a student by email or student number."""
    query = db.query(StudentAccount)
    if student_number:
        query = query.filter(StudentAccount.student_number == student_number)
    elif email:
        query = query.filter(StudentAccount.email == email)
    else:
        return None

    student = query.first()
    if not student or not student.is_active:
        return None
    if not verify_password(password, student.password_hash):
        return None
    return student


def actor_for(account: Account) -> Actor:
    """Build the audit principal for a loaded account."""
    profile = account.profile
    names = {}
    if profile is not None:
        names = {"first_name": profile.first_name, "last_name": profile.last_name}

    if isinstance(account, AdminAccount):
        return Actor.admin(
            account.admin_id,
            account.email,
            position=profile.position if profile is not None else None,
            **names,
        )
    return Actor.student(
        account.student_id,
        account.email,
        account.student_number,
        **names,
    )


def serialize_account(account: Account) -> dict:
    """Public representation of an account, as returned by login and /me."""
    actor = actor_for(account)
    return {
        "id": actor.user_id,
        "role": actor.user_type,
        "email": actor.email,
        "student_number": actor.student_number,
        "first_name": actor.first_name,
        "last_name": actor.last_name,
        "position": actor.position,
    }


def record_login(db: Session, account: Account) -> None:
    account.last_login = datetime.now(timezone.utc)
    db.commit()


def bump_token_version(db: Session, account: Account) -> int:
    """Invalidate every token issued to an account so far."""
    account.token_version = (account.token_version or 0) + 1
    db.commit()
    return account.token_version
