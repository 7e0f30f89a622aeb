from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ebulletin.db.base import Base


class AdminAccount(Base):
    __tablename__ = "admin_accounts"

    admin_id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    # Incremented by "logout everywhere"; tokens carrying an older version are rejected
    token_version = Column(Integer, nullable=False, default=0)
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    profile = relationship(
        "AdminProfile",
        back_populates="account",
        uselist=False,
        cascade="all, delete-orphan",
    )


class AdminProfile(Base):
    __tablename__ = "admin_profiles"

    admin_id = Column(
        Integer,
        ForeignKey("admin_accounts.admin_id", ondelete="CASCADE"),
        primary_key=True,
    )
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    position = Column(String(50), nullable=False, default="professor")  # "super_admin" or "professor"
    department = Column(String(100), nullable=True)

    account = relationship("AdminAccount", back_populates="profile")
