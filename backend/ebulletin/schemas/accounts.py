"""
Schemas for admin-side account management (students and administrators).
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ebulletin.schemas.auth import (
    PASSWORD_MAX_LENGTH,
    PASSWORD_MIN_LENGTH,
    validate_password_complexity,
)

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class StudentCreate(BaseModel):
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    student_number: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    grade_level: Optional[int] = Field(None, ge=1, le=12)
    section: Optional[str] = Field("1", max_length=20)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return validate_password_complexity(v)


class StudentUpdate(BaseModel):
    email: Optional[str] = Field(None, max_length=255, pattern=EMAIL_PATTERN)
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    grade_level: Optional[int] = Field(None, ge=1, le=12)
    section: Optional[str] = Field(None, max_length=20)
    is_active: Optional[bool] = None


class AdminCreate(BaseModel):
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    position: str = Field(default="professor", pattern=r"^(super_admin|professor)$")
    department: Optional[str] = Field(None, max_length=100)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return validate_password_complexity(v)


class AdminUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    position: Optional[str] = Field(None, pattern=r"^(super_admin|professor)$")
    department: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None
