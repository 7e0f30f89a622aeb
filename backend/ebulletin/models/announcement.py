from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ebulletin.db.base import Base


class Announcement(Base):
    __tablename__ = "announcements"

    announcement_id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    category_id = Column(
        Integer, ForeignKey("categories.category_id"), nullable=True
    )
    status = Column(String(20), nullable=False, default="draft")  # "draft" or "published"
    created_by = Column(
        Integer, ForeignKey("admin_accounts.admin_id"), nullable=True
    )
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    images = relationship(
        "AnnouncementImage",
        back_populates="announcement",
        cascade="all, delete-orphan",
    )


class AnnouncementImage(Base):
    __tablename__ = "announcement_images"

    attachment_id = Column(Integer, primary_key=True, autoincrement=True)
    announcement_id = Column(
        Integer,
        ForeignKey("announcements.announcement_id", ondelete="CASCADE"),
        nullable=False,
    )
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(512), nullable=False)
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    announcement = relationship("Announcement", back_populates="images")
