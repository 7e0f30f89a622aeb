from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ebulletin.db.base import Base


class StudentAccount(Base):
    __tablename__ = "student_accounts"

    student_id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False)
    student_number = Column(String(50), unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    token_version = Column(Integer, nullable=False, default=0)
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    profile = relationship(
        "StudentProfile",
        back_populates="account",
        uselist=False,
        cascade="all, delete-orphan",
    )


class StudentProfile(Base):
    __tablename__ = "student_profiles"

    student_id = Column(
        Integer,
        ForeignKey("student_accounts.student_id", ondelete="CASCADE"),
        primary_key=True,
    )
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    grade_level = Column(Integer, nullable=True)
    section = Column(String(20), nullable=True, default="1")

    account = relationship("StudentAccount", back_populates="profile")
