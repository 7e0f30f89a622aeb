"""
Tests for the response interception layer (AuditRoute and the audit_* wrappers).

A small local app exercises the wrappers in isolation from the real routers.
"""
import json

import pytest
from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from ebulletin.core.actor import Actor
from ebulletin.core.audit_middleware import (
    AuditRoute,
    audit_auth,
    audit_content_action,
    audit_crud,
    audit_file_action,
    audit_logger,
    audit_system_event,
)
from ebulletin.core.exceptions import (
    AppException,
    BadRequestError,
    app_exception_handler,
    http_exception_handler,
)
from ebulletin.schemas.common import ok
from ebulletin.services import audit_query
from ebulletin.services.audit_queue import audit_writer


def as_editor(request: Request) -> Actor:
    actor = Actor.admin(7, "editor@school.edu", position="professor")
    request.state.actor = actor
    return actor


def explode(ctx):
    raise KeyError("missing")


router = APIRouter(route_class=AuditRoute)


@router.post("/widgets")
@audit_logger()
async def create_widget(payload: dict, actor: Actor = Depends(as_editor)):
    return ok("Widget created", {"id": 12, **payload})


@router.put("/widgets/{id}")
@audit_crud("widgets")
async def update_widget(id: str, payload: dict, actor: Actor = Depends(as_editor)):
    return ok("Widget updated", {"id": id})


@router.delete("/widgets/{id}")
@audit_crud("widgets")
async def delete_locked_widget(id: str, actor: Actor = Depends(as_editor)):
    return {"success": False, "message": "Widget is locked", "data": None}


@router.post("/widgets/rejected")
@audit_crud("widgets")
async def reject_widget(actor: Actor = Depends(as_editor)):
    raise BadRequestError("Widget rejected")


@router.get("/reports")
@audit_logger(action="READ")
async def anonymous_report():
    return ok("Report", {"rows": 0})


@router.post("/imports")
@audit_crud("imports", skip_condition=lambda ctx: ctx.body.get("dry_run"))
async def run_import(payload: dict, actor: Actor = Depends(as_editor)):
    return ok("Import finished", {"id": 3})


@router.post("/broken-extractor")
@audit_crud("widgets", get_record_id=explode)
async def broken_extractor(actor: Actor = Depends(as_editor)):
    return ok("Still fine", {"id": 1})


@router.post("/broken-skip")
@audit_crud("widgets", skip_condition=explode)
async def broken_skip(actor: Actor = Depends(as_editor)):
    return ok("Still fine", {"id": 1})


@router.post("/described")
@audit_crud("widgets", get_description=lambda ctx: f"Widget {ctx.data['id']} stamped")
async def described(actor: Actor = Depends(as_editor)):
    return ok("Stamped", {"id": 4})


@router.post("/quirky-logout")
@audit_auth("LOGOUT")
async def quirky_logout(actor: Actor = Depends(as_editor)):
    return {"success": False, "message": "Session already closed"}


@router.post("/crashing-logout")
@audit_auth("LOGOUT_ALL")
async def crashing_logout(actor: Actor = Depends(as_editor)):
    raise HTTPException(status_code=503, detail="Session store unavailable")


@router.put("/boards/{event_id}/comments/{comment_id}")
@audit_content_action("UPDATE", "comments")
async def update_comment(event_id: int, comment_id: int, actor: Actor = Depends(as_editor)):
    return ok("Comment updated", {"comment_id": comment_id})


@router.post("/boards")
@audit_content_action("CREATE", "boards")
async def create_board(actor: Actor = Depends(as_editor)):
    return ok("Board created", {"card_id": 21})


@router.post("/uploads")
@audit_file_action("UPLOAD")
async def upload(file: UploadFile = File(...), actor: Actor = Depends(as_editor)):
    await file.read()
    return ok("Uploaded", {"name": file.filename})


@router.post("/uploads/rejected")
@audit_file_action("UPLOAD")
async def rejected_upload(file: UploadFile = File(...), actor: Actor = Depends(as_editor)):
    raise BadRequestError("Unsupported file")


@router.get("/dashboard")
@audit_system_event("REPORT_VIEW", "Dashboard generated")
async def dashboard(actor: Actor = Depends(as_editor)):
    return ok("Dashboard", {})


local_app = FastAPI()
local_app.add_exception_handler(AppException, app_exception_handler)
local_app.add_exception_handler(StarletteHTTPException, http_exception_handler)
local_app.include_router(router)


@pytest.fixture
def local_client(db: Session) -> TestClient:
    return TestClient(local_app)


def _values(raw):
    return json.loads(raw) if raw else None


class TestDefaultInference:
    """Tests for the inference rules of the generic wrapper."""

    def test_create_defaults(self, local_client: TestClient, audit_entries):
        """Test action from the method, table from the path and id from response data."""
        response = local_client.post("/widgets", json={"name": "Gear", "password": "hunter2"})
        assert response.status_code == 200

        entries = audit_entries()
        assert len(entries) == 1
        entry = entries[0]
        assert entry.action_type == "CREATE"
        assert entry.target_table == "widgets"
        assert entry.target_id == 12
        assert entry.user_type == "admin"
        assert entry.user_id == 7
        assert entry.description == "editor@school.edu performed CREATE on widgets (ID: 12)"
        assert _values(entry.new_values) == {"name": "Gear", "password": "[REDACTED]"}
        assert entry.ip_address == "testclient"
        assert entry.user_agent == "testclient"

    def test_response_is_untouched(self, local_client: TestClient):
        response = local_client.post("/widgets", json={"name": "Gear"})
        assert response.json() == {
            "success": True,
            "message": "Widget created",
            "data": {"id": 12, "name": "Gear"},
        }

    def test_update_uses_path_id(self, local_client: TestClient, audit_entries):
        local_client.put("/widgets/5", json={"name": "Cog"})
        entry = audit_entries()[0]
        assert entry.action_type == "UPDATE"
        assert entry.target_id == 5
        assert _values(entry.new_values) == {"name": "Cog"}

    def test_non_numeric_id_is_kept_out_of_target_id(self, local_client: TestClient, audit_entries):
        local_client.put("/widgets/abc", json={})
        entry = audit_entries()[0]
        assert entry.target_id is None
        assert entry.description.endswith("(ID: abc)")

    def test_no_actor_is_system(self, local_client: TestClient, audit_entries):
        local_client.get("/reports")
        entry = audit_entries()[0]
        assert entry.user_type == "system"
        assert entry.user_id is None
        assert entry.action_type == "READ"
        assert entry.description == "Unknown user performed READ on reports"

    def test_custom_description(self, local_client: TestClient, audit_entries):
        local_client.post("/described")
        assert audit_entries()[0].description == "Widget 4 stamped"


class TestSuccessGating:
    """Tests that only successful outcomes are recorded by the CRUD wrappers."""

    def test_success_false_not_recorded(self, local_client: TestClient, audit_entries):
        response = local_client.delete("/widgets/5")
        assert response.status_code == 200
        assert audit_entries() == []

    def test_error_status_not_recorded(self, local_client: TestClient, audit_entries):
        response = local_client.post("/widgets/rejected")
        assert response.status_code == 400
        assert response.json()["message"] == "Widget rejected"
        assert audit_entries() == []

    def test_skip_condition(self, local_client: TestClient, audit_entries):
        local_client.post("/imports", json={"dry_run": True})
        assert audit_entries() == []

        local_client.post("/imports", json={"dry_run": False})
        entries = audit_entries()
        assert len(entries) == 1
        assert entries[0].target_table == "imports"


class TestFailureIsolation:
    """Tests that audit problems never reach the client."""

    def test_extractor_exception(self, local_client: TestClient, audit_entries):
        response = local_client.post("/broken-extractor")
        assert response.status_code == 200
        assert response.json()["message"] == "Still fine"
        assert audit_entries() == []

    def test_skip_condition_exception(self, local_client: TestClient, audit_entries):
        response = local_client.post("/broken-skip")
        assert response.status_code == 200
        assert audit_entries() == []

    def test_storage_failure(self, local_client: TestClient, audit_entries, monkeypatch):
        """Test a failing insert leaves status and body unchanged."""

        def broken_insert(*args, **kwargs):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(audit_query, "create_audit_log", broken_insert)

        response = local_client.post("/widgets", json={"name": "Gear"})
        assert response.status_code == 200
        assert response.json()["data"] == {"id": 12, "name": "Gear"}
        assert audit_entries() == []


class TestAuthWrapper:
    """Tests for logout handling in the auth wrapper."""

    def test_logout_with_failed_body_is_successful(self, local_client: TestClient, audit_entries):
        local_client.post("/quirky-logout")
        entry = audit_entries()[0]
        assert entry.action_type == "LOGOUT"
        assert entry.description == "LOGOUT successful for editor@school.edu"
        assert entry.new_values is None

    def test_logout_all_with_error_status_is_successful(self, local_client: TestClient, audit_entries):
        response = local_client.post("/crashing-logout")
        assert response.status_code == 503

        entry = audit_entries()[0]
        assert entry.action_type == "LOGOUT_ALL"
        assert entry.description == "LOGOUT_ALL successful for editor@school.edu"


class TestContentWrapper:
    """Tests for content record id resolution."""

    def test_path_param_priority(self, local_client: TestClient, audit_entries):
        """Test event_id wins over comment_id in the fixed priority order."""
        local_client.put("/boards/3/comments/8")
        entry = audit_entries()[0]
        assert entry.target_table == "comments"
        assert entry.target_id == 3
        assert entry.description == "editor@school.edu performed UPDATE on comments (ID: 3)"

    def test_id_from_response_data(self, local_client: TestClient, audit_entries):
        local_client.post("/boards")
        entry = audit_entries()[0]
        assert entry.target_id == 21


class TestFileAndSystemWrappers:
    """Tests for the upload and system event wrappers."""

    def test_upload_recorded(self, local_client: TestClient, audit_entries):
        response = local_client.post(
            "/uploads", files={"file": ("banner.png", b"\x89PNG\r\n\x1a\nrest", "image/png")}
        )
        assert response.status_code == 200

        entry = audit_entries()[0]
        assert entry.target_table == "files"
        assert entry.action_type == "UPLOAD"
        values = _values(entry.new_values)
        assert values["fileName"] == "banner.png"
        assert values["fileType"] == "image/png"
        assert entry.description == "editor@school.edu performed UPLOAD on file: banner.png"

    def test_failed_upload_not_recorded(self, local_client: TestClient, audit_entries):
        response = local_client.post(
            "/uploads/rejected", files={"file": ("run.exe", b"MZ", "application/octet-stream")}
        )
        assert response.status_code == 400
        assert audit_entries() == []

    def test_system_event(self, local_client: TestClient, audit_entries):
        local_client.get("/dashboard")
        entry = audit_entries()[0]
        assert entry.user_type == "system"
        assert entry.target_table == "system"
        assert entry.action_type == "REPORT_VIEW"
        assert entry.description == "Dashboard generated"
        assert _values(entry.new_values) == {
            "path": "/dashboard",
            "method": "GET",
            "user": "editor@school.edu",
        }


@pytest.fixture
def background_writer(monkeypatch):
    """The shared writer switched to its background thread for one test."""
    monkeypatch.setattr(audit_writer, "asynchronous", True)
    yield audit_writer
    audit_writer.stop(drain=True, timeout=5)


class TestDeferredWrites:
    """Tests for interception handing entries to the background writer."""

    def test_entry_written_after_flush(
        self, local_client: TestClient, background_writer, audit_entries
    ):
        response = local_client.post("/widgets", json={"name": "Gear"})
        assert response.status_code == 200

        assert background_writer.flush(timeout=5) is True
        assert background_writer.running is True

        entry = audit_entries()[0]
        assert entry.action_type == "CREATE"
        assert entry.target_table == "widgets"
        assert entry.target_id == 12
        assert entry.user_id == 7

    def test_failed_request_queues_nothing(
        self, local_client: TestClient, background_writer, audit_entries
    ):
        local_client.delete("/widgets/5")

        assert background_writer.flush(timeout=5) is True
        assert background_writer.pending == 0
        assert audit_entries() == []
