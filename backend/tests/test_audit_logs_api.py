"""
Tests for the audit log HTTP endpoints.
"""
import json
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from ebulletin.models.admin import AdminAccount
from ebulletin.models.audit_log import AuditLog
from ebulletin.schemas.audit_log import (
    AuditLogFilters,
    AuditLogOut,
    AuditLogPagination,
    PaginationMeta,
)
from ebulletin.services.audit import CSV_HEADERS, get_audit_logs, log_action


def _seed_categories(db: Session, count: int) -> None:
    for i in range(count):
        log_action(
            db,
            action_type="UPDATE",
            target_table="categories",
            target_id=i + 1,
            description=f"category change {i}",
        )


def _insert_aged(db: Session, days_old: int) -> None:
    db.add(
        AuditLog(
            user_type="system",
            action_type="UPDATE",
            target_table="categories",
            description=f"{days_old} days old",
            performed_at=datetime.now(timezone.utc) - timedelta(days=days_old),
        )
    )
    db.commit()


class TestAccess:
    """Tests for endpoint authorization."""

    def test_requires_token(self, client: TestClient, db: Session):
        response = client.get("/api/audit-logs")
        assert response.status_code == 401

    def test_students_rejected(self, client: TestClient, student_headers: dict):
        response = client.get("/api/audit-logs", headers=student_headers)
        assert response.status_code == 403
        assert response.json()["message"] == "Admin access required"

    def test_entries_cannot_be_modified(self, client: TestClient, db: Session, admin_headers: dict):
        """Test there is no update route for a stored entry."""
        entry = log_action(db, action_type="CREATE", target_table="categories")
        url = f"/api/audit-logs/{entry['log_id']}"

        assert client.put(url, json={"description": "x"}, headers=admin_headers).status_code == 405
        assert client.patch(url, json={"description": "x"}, headers=admin_headers).status_code == 405
        assert client.delete(url, headers=admin_headers).status_code == 405


class TestList:
    """Tests for GET /api/audit-logs."""

    def test_second_page(self, client: TestClient, db: Session, admin_headers: dict):
        """Test page 2 of 12 matching rows at 5 per page."""
        _seed_categories(db, 12)

        response = client.get(
            "/api/audit-logs",
            params={"target_table": "categories", "page": 2, "limit": 5},
            headers=admin_headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert len(body["data"]) == 5
        assert body["pagination"]["total_pages"] == 3
        assert body["pagination"]["total_records"] == 12
        assert body["pagination"]["has_prev_page"] is True
        assert body["pagination"]["has_next_page"] is True
        assert body["filters"] == {"target_table": "categories"}

    def test_access_is_recorded(
        self, client: TestClient, admin: AdminAccount, admin_headers: dict, audit_entries
    ):
        client.get("/api/audit-logs", params={"action_type": "LOGIN"}, headers=admin_headers)

        entries = audit_entries(target_table="audit_logs")
        assert len(entries) == 1
        entry = entries[0]
        assert entry.action_type == "READ"
        assert entry.user_type == "admin"
        assert entry.user_id == admin.admin_id
        assert entry.description == (
            f'Admin {admin.email} accessed audit logs with filters: {{"action_type": "LOGIN"}}'
        )
        assert entry.ip_address == "testclient"

    def test_user_name_in_rows(self, client: TestClient, db: Session, admin: AdminAccount, admin_headers: dict):
        log_action(db, user_type="admin", user_id=admin.admin_id, action_type="CREATE", target_table="categories")
        response = client.get(
            "/api/audit-logs", params={"target_table": "categories"}, headers=admin_headers
        )
        row = response.json()["data"][0]
        assert row["user_name"] == "Paula Reyes"
        assert row["user_email"] == admin.email

    @pytest.mark.parametrize(
        "params",
        [
            {"page": 0},
            {"limit": 101},
            {"sort_by": "description"},
            {"sort_order": "sideways"},
            {"user_type": "robot"},
            {"user_id": 0},
            {"search": ""},
        ],
    )
    def test_invalid_query(self, client: TestClient, admin_headers: dict, params: dict):
        response = client.get("/api/audit-logs", params=params, headers=admin_headers)
        assert response.status_code == 422


class TestSingleEntry:
    """Tests for GET /api/audit-logs/{log_id}."""

    def test_get(self, client: TestClient, db: Session, admin_headers: dict):
        entry = log_action(
            db, action_type="CREATE", target_table="welcome_cards", target_id=5, new_values={"a": 1}
        )
        response = client.get(f"/api/audit-logs/{entry['log_id']}", headers=admin_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["target_id"] == 5
        assert data["new_values"] == {"a": 1}

    def test_not_found(self, client: TestClient, admin_headers: dict):
        response = client.get("/api/audit-logs/99999", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["message"] == "Audit log not found"


class TestScopedListings:
    """Tests for the per-user and per-table listings."""

    def test_by_user(self, client: TestClient, db: Session, admin_headers: dict):
        log_action(db, user_type="student", user_id=42, action_type="LOGIN", target_table="authentication")
        log_action(db, user_type="student", user_id=43, action_type="LOGIN", target_table="authentication")

        response = client.get("/api/audit-logs/user/42", headers=admin_headers)
        assert response.status_code == 200
        assert [row["user_id"] for row in response.json()["data"]] == [42]

    def test_by_table_and_record(self, client: TestClient, db: Session, admin_headers: dict):
        _seed_categories(db, 3)
        response = client.get(
            "/api/audit-logs/table/categories", params={"target_id": 2}, headers=admin_headers
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert len(data) == 1
        assert data[0]["target_id"] == 2

    def test_rows_follow_response_schema(self, client: TestClient, db: Session, admin_headers: dict):
        log_action(db, user_type="student", user_id=42, action_type="LOGIN", target_table="authentication")

        body = client.get("/api/audit-logs/user/42", headers=admin_headers).json()
        assert set(body) == {"success", "message", "data", "pagination"}
        assert set(body["data"][0]) == set(AuditLogOut.model_fields)
        assert set(body["pagination"]) == set(PaginationMeta.model_fields)

    def test_table_name_validated(self, client: TestClient, admin_headers: dict):
        response = client.get("/api/audit-logs/table/1abc", headers=admin_headers)
        assert response.status_code == 422


class TestStatsAndSummary:
    """Tests for statistics and the dashboard summary."""

    def test_stats(self, client: TestClient, db: Session, admin_headers: dict):
        log_action(db, action_type="CREATE", target_table="categories")
        log_action(db, action_type="DELETE", target_table="categories")

        response = client.get("/api/audit-logs/stats", headers=admin_headers)
        assert response.status_code == 200
        stats = response.json()["data"]
        assert stats["total_logs"] == 2
        assert stats["create_actions"] == 1
        assert stats["delete_actions"] == 1

    def test_summary(self, client: TestClient, db: Session, admin_headers: dict):
        log_action(db, action_type="DELETE", target_table="announcements", target_id=1)
        log_action(db, action_type="CREATE", target_table="announcements", target_id=2)

        response = client.get("/api/audit-logs/summary", params={"days": 30}, headers=admin_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["period_days"] == 30
        assert data["statistics"]["total_logs"] == 2
        assert [e["action_type"] for e in data["recent_critical_events"]] == ["DELETE"]

    def test_summary_days_bounds(self, client: TestClient, admin_headers: dict):
        response = client.get("/api/audit-logs/summary", params={"days": 366}, headers=admin_headers)
        assert response.status_code == 422


class TestExport:
    """Tests for GET /api/audit-logs/export."""

    def test_csv(self, client: TestClient, db: Session, admin_headers: dict):
        """Test the CSV header and that rows match a parallel listing."""
        _seed_categories(db, 4)
        expected = get_audit_logs(db, AuditLogFilters(), AuditLogPagination(page=1, limit=10000))

        response = client.get("/api/audit-logs/export", params={"format": "csv"}, headers=admin_headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        disposition = response.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="audit-logs-')
        assert disposition.endswith('Z.csv"')

        lines = response.text.split("\n")
        assert lines[0] == ",".join(CSV_HEADERS)
        assert len(lines) - 1 == len(expected["data"])

    def test_json(self, client: TestClient, db: Session, admin_headers: dict):
        _seed_categories(db, 2)
        expected_ids = {
            row["log_id"]
            for row in get_audit_logs(db, AuditLogFilters(), AuditLogPagination(page=1, limit=10000))["data"]
        }

        response = client.get("/api/audit-logs/export", headers=admin_headers)
        assert response.status_code == 200
        assert {row["log_id"] for row in json.loads(response.text)} == expected_ids

    def test_export_is_recorded(self, client: TestClient, admin_headers: dict, audit_entries):
        client.get("/api/audit-logs/export", params={"format": "csv"}, headers=admin_headers)
        entry = audit_entries(action_type="EXPORT")[0]
        assert entry.target_table == "audit_logs"
        assert json.loads(entry.new_values)["format"] == "csv"

    def test_unsupported_format(self, client: TestClient, admin_headers: dict):
        response = client.get("/api/audit-logs/export", params={"format": "xml"}, headers=admin_headers)
        assert response.status_code == 400
        assert "xml" in response.json()["message"]


class TestCleanup:
    """Tests for DELETE /api/audit-logs/cleanup."""

    def test_super_admin_cleanup(self, client: TestClient, db: Session, super_admin_headers: dict):
        """Test rows aged 10, 40 and 400 days with a 30 day window."""
        for days in (10, 40, 400):
            _insert_aged(db, days)

        response = client.request(
            "DELETE",
            "/api/audit-logs/cleanup",
            json={"days_to_keep": 30},
            headers=super_admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"] == {"deleted_count": 2, "days_kept": 30}

        db.expire_all()
        descriptions = [row.description for row in db.query(AuditLog).all()]
        assert "10 days old" in descriptions
        assert "40 days old" not in descriptions
        assert "400 days old" not in descriptions

    def test_professor_forbidden(self, client: TestClient, db: Session, admin_headers: dict):
        for days in (40, 400):
            _insert_aged(db, days)

        response = client.request(
            "DELETE",
            "/api/audit-logs/cleanup",
            json={"days_to_keep": 30},
            headers=admin_headers,
        )
        assert response.status_code == 403
        assert response.json()["message"] == "Only super administrators can perform audit log cleanup"
        assert db.query(AuditLog).count() == 2

    def test_default_retention(self, client: TestClient, db: Session, super_admin_headers: dict):
        _insert_aged(db, 400)
        _insert_aged(db, 100)

        response = client.delete("/api/audit-logs/cleanup", headers=super_admin_headers)
        assert response.status_code == 200
        assert response.json()["data"] == {"deleted_count": 1, "days_kept": 365}

    @pytest.mark.parametrize("days", [29, 3651])
    def test_days_bounds(self, client: TestClient, super_admin_headers: dict, days: int):
        response = client.request(
            "DELETE",
            "/api/audit-logs/cleanup",
            json={"days_to_keep": days},
            headers=super_admin_headers,
        )
        assert response.status_code == 422
