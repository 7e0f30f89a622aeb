"""
Schemas for bulletin content: categories, announcements and welcome page items.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    color_code: Optional[str] = Field(None, pattern=r"^#[0-9a-fA-F]{6}$")


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    color_code: Optional[str] = Field(None, pattern=r"^#[0-9a-fA-F]{6}$")
    is_active: Optional[bool] = None


class CategoryOut(BaseModel):
    category_id: int
    name: str
    description: Optional[str] = None
    color_code: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AnnouncementCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    category_id: Optional[int] = None
    status: str = Field(default="draft", pattern=r"^(draft|published)$")


class AnnouncementUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = Field(None, min_length=1)
    category_id: Optional[int] = None


class AnnouncementImageOut(BaseModel):
    attachment_id: int
    file_name: str
    file_path: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None

    class Config:
        from_attributes = True


class AnnouncementOut(BaseModel):
    announcement_id: int
    title: str
    content: str
    category_id: Optional[int] = None
    status: str
    created_by: Optional[int] = None
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    images: List[AnnouncementImageOut] = []

    class Config:
        from_attributes = True


class WelcomeCardCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    icon: Optional[str] = Field(None, max_length=100)


class WelcomeCardUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    icon: Optional[str] = Field(None, max_length=100)


class WelcomeCardOut(BaseModel):
    card_id: int
    title: str
    description: Optional[str] = None
    icon: Optional[str] = None
    display_order: int
    is_active: bool
    deleted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CarouselImageOut(BaseModel):
    image_id: int
    file_name: str
    file_path: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    display_order: int
    is_active: bool

    class Config:
        from_attributes = True


class ReorderRequest(BaseModel):
    """New display order: item ids from first to last."""

    ids: List[int] = Field(..., min_length=1)
