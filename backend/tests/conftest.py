"""
Pytest configuration and fixtures for the test suite.
"""
import os
import tempfile
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

# Set test environment before importing app
os.environ["ENV"] = "development"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-testing-purposes-only-32chars"
os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", "sqlite:///./test.db")
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="ebulletin-uploads-")
# Audit entries are written inline so tests can assert on them right away
os.environ["AUDIT_ASYNC_WRITES"] = "false"

from ebulletin.main import app
from ebulletin.db.base import Base
from ebulletin.db.session import SessionLocal, engine
from ebulletin.models.admin import AdminAccount, AdminProfile
from ebulletin.models.audit_log import AuditLog
from ebulletin.models.student import StudentAccount, StudentProfile
from ebulletin.services.auth import create_token_for, get_password_hash, revoked_tokens

ADMIN_PASSWORD = "AdminPass123"
STUDENT_PASSWORD = "StudentPass123"


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_revoked_tokens():
    yield
    revoked_tokens.clear()


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Test client bound to the same database the audit writer uses."""
    with TestClient(app) as test_client:
        yield test_client


def _make_admin(db: Session, email: str, position: str, first_name: str, last_name: str) -> AdminAccount:
    admin = AdminAccount(email=email, password_hash=get_password_hash(ADMIN_PASSWORD))
    admin.profile = AdminProfile(first_name=first_name, last_name=last_name, position=position)
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin


@pytest.fixture
def admin(db: Session) -> AdminAccount:
    """A regular (professor) administrator."""
    return _make_admin(db, "professor@school.edu", "professor", "Paula", "Reyes")


@pytest.fixture
def super_admin(db: Session) -> AdminAccount:
    return _make_admin(db, "principal@school.edu", "super_admin", "Marco", "Santos")


@pytest.fixture
def student(db: Session) -> StudentAccount:
    student = StudentAccount(
        email="student@school.edu",
        student_number="2024-0001",
        password_hash=get_password_hash(STUDENT_PASSWORD),
    )
    student.profile = StudentProfile(first_name="Lia", last_name="Cruz", grade_level=10)
    db.add(student)
    db.commit()
    db.refresh(student)
    return student


@pytest.fixture
def admin_headers(admin: AdminAccount) -> dict:
    return {"Authorization": f"Bearer {create_token_for(admin)}"}


@pytest.fixture
def super_admin_headers(super_admin: AdminAccount) -> dict:
    return {"Authorization": f"Bearer {create_token_for(super_admin)}"}


@pytest.fixture
def student_headers(student: StudentAccount) -> dict:
    return {"Authorization": f"Bearer {create_token_for(student)}"}


@pytest.fixture
def audit_entries(db: Session):
    """Return a function listing stored audit rows, optionally filtered by column values."""

    def fetch(**filters) -> list[AuditLog]:
        db.expire_all()
        query = db.query(AuditLog)
        for column, value in filters.items():
            query = query.filter(getattr(AuditLog, column) == value)
        return query.order_by(AuditLog.log_id.asc()).all()

    return fetch
