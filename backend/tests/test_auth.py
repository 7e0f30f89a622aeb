"""
Tests for authentication endpoints and their audit entries.
"""
import json

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from ebulletin.models.admin import AdminAccount
from ebulletin.models.student import StudentAccount
from ebulletin.services.auth import create_token_for, decode_access_token


class TestLogin:
    """Tests for the login endpoint."""

    def test_admin_login_success(self, client: TestClient, admin: AdminAccount, audit_entries):
        """Test admin login returns a token and records a successful LOGIN."""
        response = client.post(
            "/api/auth/login",
            json={"email": admin.email, "password": "AdminPass123"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["token_type"] == "bearer"
        assert body["data"]["user"]["role"] == "admin"
        assert decode_access_token(body["data"]["access_token"]).user_id == admin.admin_id

        entries = audit_entries(action_type="LOGIN")
        assert len(entries) == 1
        entry = entries[0]
        assert entry.user_type == "admin"
        assert entry.user_id == admin.admin_id
        assert entry.target_table == "authentication"
        assert entry.description == f"LOGIN successful for {admin.email}"
        assert entry.new_values is None

    def test_student_login_by_number(
        self, client: TestClient, student: StudentAccount, audit_entries
    ):
        """Test student login with a student number."""
        response = client.post(
            "/api/auth/login",
            json={
                "student_number": student.student_number,
                "password": "StudentPass123",
                "user_type": "student",
            },
        )
        assert response.status_code == 200
        assert response.json()["data"]["user"]["student_number"] == student.student_number

        entry = audit_entries(action_type="LOGIN")[0]
        assert entry.user_type == "student"
        assert entry.user_id == student.student_id

    def test_login_wrong_password_is_recorded(
        self, client: TestClient, admin: AdminAccount, audit_entries
    ):
        """Test a failed login is rejected and still audited as a failure."""
        response = client.post(
            "/api/auth/login",
            json={"email": admin.email, "password": "WrongPass999"},
        )
        assert response.status_code == 401
        assert response.json()["success"] is False
        assert response.json()["message"] == "Invalid credentials"

        entries = audit_entries(action_type="LOGIN")
        assert len(entries) == 1
        entry = entries[0]
        assert entry.description == f"LOGIN failed for {admin.email}. Authentication failed"
        assert json.loads(entry.new_values) == {
            "error": "Invalid credentials",
            "reason": "Authentication failed",
        }

    def test_login_password_never_stored(self, client: TestClient, admin: AdminAccount, audit_entries):
        """Test that the submitted password does not end up in the trail."""
        client.post("/api/auth/login", json={"email": admin.email, "password": "WrongPass999"})
        for entry in audit_entries():
            assert "WrongPass999" not in (entry.new_values or "")
            assert "WrongPass999" not in (entry.description or "")

    def test_login_requires_identifier(self, client: TestClient, db: Session):
        """Test login without email or student number is a validation error."""
        response = client.post("/api/auth/login", json={"password": "whatever"})
        assert response.status_code == 422


class TestLogout:
    """Tests for logout and logout-all."""

    def test_logout_revokes_token(
        self, client: TestClient, admin: AdminAccount, admin_headers: dict, audit_entries
    ):
        """Test logout invalidates the presented token and records LOGOUT."""
        response = client.post("/api/auth/logout", headers=admin_headers)
        assert response.status_code == 200

        response = client.get("/api/auth/me", headers=admin_headers)
        assert response.status_code == 401

        entry = audit_entries(action_type="LOGOUT")[0]
        assert entry.user_type == "admin"
        assert entry.user_id == admin.admin_id
        assert entry.description == f"LOGOUT successful for {admin.email}"

    def test_logout_all_invalidates_other_tokens(
        self, client: TestClient, db: Session, student: StudentAccount, audit_entries
    ):
        """Test logout-all rejects every token issued before it."""
        first = {"Authorization": f"Bearer {create_token_for(student)}"}
        second = {"Authorization": f"Bearer {create_token_for(student)}"}

        response = client.post("/api/auth/logout-all", headers=first)
        assert response.status_code == 200

        assert client.get("/api/auth/me", headers=second).status_code == 401

        db.refresh(student)
        assert student.token_version == 1
        entry = audit_entries(action_type="LOGOUT_ALL")[0]
        assert entry.user_type == "student"
        assert "successful" in entry.description


class TestMe:
    """Tests for the current-user endpoint."""

    def test_me(self, client: TestClient, admin: AdminAccount, admin_headers: dict):
        response = client.get("/api/auth/me", headers=admin_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["email"] == admin.email
        assert data["position"] == "professor"

    def test_me_without_token(self, client: TestClient, db: Session):
        response = client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.json()["message"] == "Access token required"

    def test_me_with_garbage_token(self, client: TestClient, db: Session):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
