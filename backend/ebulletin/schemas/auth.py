import re
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

# Password complexity requirements
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128


def validate_password_complexity(v: str) -> str:
    """
    Validate password meets complexity requirements:
    - At least 8 characters
    - At least one lowercase letter
    - At least one uppercase letter
    - At least one digit
    """
    if len(v) < PASSWORD_MIN_LENGTH:
        raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")

    if not re.search(r"[a-z]", v):
        raise ValueError("Password must contain a lowercase letter")

    if not re.search(r"[A-Z]", v):
        raise ValueError("Password must contain an uppercase letter")

    if not re.search(r"\d", v):
        raise ValueError("Password must contain a digit")

    return v


class LoginRequest(BaseModel):
    """Login with an email address (admins, students) or a student number."""

    email: Optional[str] = Field(None, max_length=255)
    student_number: Optional[str] = Field(None, max_length=50)
    password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LENGTH)
    user_type: Literal["admin", "student"] = "admin"

    @model_validator(mode="after")
    def require_identifier(self) -> "LoginRequest":
        if not self.email and not self.student_number:
            raise ValueError("Either email or student_number is required")
        return self


class TokenData(BaseModel):
    """JWT payload."""

    user_id: Optional[int] = None
    role: Optional[str] = None
    email: Optional[str] = None
    version: int = 0
    jti: Optional[str] = None


class UserOut(BaseModel):
    """Authenticated principal as returned by login and /me."""

    id: int
    role: Literal["admin", "student"]
    email: str
    student_number: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    position: Optional[str] = None


class PasswordReset(BaseModel):
    new_password: str = Field(
        ..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH
    )

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        return validate_password_complexity(v)
