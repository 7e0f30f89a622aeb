"""
Response interception for the audit trail.

Endpoints opt in with one of the ``audit_*`` decorators, placed below the
router decorator::

    router = APIRouter(route_class=AuditRoute)

    @router.post("/")
    @audit_crud("categories")
    async def create_category(...): ...

The decorator attaches an audit configuration to the endpoint. ``AuditRoute``
wraps the route handler: once the handler has produced its response, a
snapshot of the request and the outcome (``AuditContext``) is taken and,
when the outcome qualifies, a follow-up job is handed to the background
``audit_writer``. The response itself is returned untouched; anything that
goes wrong in the follow-up is only logged.

Without explicit configuration the action is derived from the HTTP method,
the target table is the last path segment, and the record id is the ``id``
path parameter or the ``id`` field of the response ``data`` object.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from fastapi import Depends, Request, Response
from fastapi.routing import APIRoute
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from ebulletin.core.actor import Actor
from ebulletin.core.deps import get_current_actor, get_db
from ebulletin.core.exceptions import AppException
from ebulletin.services.audit import (
    AuditAction,
    get_client_info,
    log_action,
    log_auth,
    log_file_action,
    log_security_event,
    log_system_event,
)
from ebulletin.services.audit_queue import audit_writer

logger = logging.getLogger(__name__)

ACTIONS_BY_METHOD = {
    "POST": AuditAction.CREATE,
    "PUT": AuditAction.UPDATE,
    "PATCH": AuditAction.UPDATE,
    "DELETE": AuditAction.DELETE,
    "GET": AuditAction.READ,
}

# Path parameters (and response data fields) naming the affected content row,
# in priority order
CONTENT_ID_KEYS = (
    "announcement_id",
    "event_id",
    "category_id",
    "subcategory_id",
    "comment_id",
    "calendar_id",
    "card_id",
    "image_id",
    "id",
)

Extractor = Callable[["AuditContext"], Any]


@dataclass
class AuditContext:
    """Snapshot of one audited request and its outcome."""

    method: str
    path: str
    path_params: dict = field(default_factory=dict)
    query_params: dict = field(default_factory=dict)
    body: Any = None
    files: list = field(default_factory=list)
    actor: Optional[Actor] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    status_code: int = 200
    payload: Any = None

    @property
    def succeeded(self) -> bool:
        """The handler reported success: status below 400 and ``success`` not false."""
        if self.status_code >= 400:
            return False
        if isinstance(self.payload, dict) and self.payload.get("success") is False:
            return False
        return True

    @property
    def data(self) -> dict:
        """The ``data`` object of the response envelope, or an empty dict."""
        if isinstance(self.payload, dict) and isinstance(self.payload.get("data"), dict):
            return self.payload["data"]
        return {}

    @property
    def message(self) -> Optional[str]:
        if isinstance(self.payload, dict):
            error = self.payload.get("error")
            if isinstance(error, dict) and error.get("message"):
                return error["message"]
            return self.payload.get("message")
        return None

    @property
    def last_path_segment(self) -> Optional[str]:
        segments = [segment for segment in self.path.split("/") if segment]
        return segments[-1] if segments else None

    @property
    def first_file(self) -> dict:
        return self.files[0] if self.files else {}

    def resolved_actor(self) -> Actor:
        return self.actor or Actor.system()


async def capture_context(request: Request) -> AuditContext:
    """Snapshot the parts of ``request`` the audit follow-up needs."""
    body: Any = None
    files: list = []
    content_type = request.headers.get("content-type", "")

    try:
        if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
            form = await request.form()
            body = {}
            for key, value in form.multi_items():
                if isinstance(value, UploadFile):
                    files.append(
                        {
                            "field": key,
                            "filename": value.filename,
                            "size": value.size,
                            "content_type": value.content_type,
                        }
                    )
                else:
                    body[key] = value
        else:
            raw = await request.body()
            if raw:
                body = json.loads(raw)
    except (ValueError, RuntimeError) as e:
        logger.debug(f"Could not read request body for audit context: {e}")

    ip_address, user_agent = get_client_info(request)
    return AuditContext(
        method=request.method,
        path=request.url.path,
        path_params=dict(request.path_params),
        query_params=dict(request.query_params),
        body=body,
        files=files,
        actor=getattr(request.state, "actor", None),
        ip_address=ip_address or "unknown",
        user_agent=user_agent or "unknown",
    )


def _response_payload(response: Response) -> Any:
    body = getattr(response, "body", None)
    if not body or "json" not in (response.media_type or ""):
        return None
    try:
        return json.loads(body)
    except ValueError:
        return None


def _coerce_id(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class AuditSpec:
    """Audit configuration attached to an endpoint by an ``audit_*`` decorator."""

    recorder: Callable[[AuditContext, Session], None]
    record_failures: bool = False
    skip_condition: Optional[Extractor] = None

    def dispatch(self, ctx: AuditContext) -> bool:
        """Queue the follow-up for ``ctx`` if the outcome qualifies."""
        if not self.record_failures and not ctx.succeeded:
            return False
        try:
            if self.skip_condition is not None and self.skip_condition(ctx):
                return False
        except Exception as e:
            logger.error(f"Audit skip condition failed on {ctx.method} {ctx.path}: {e}", exc_info=True)
            return False
        return audit_writer.submit(lambda db: self.recorder(ctx, db))


def _attach(spec: AuditSpec) -> Callable:
    def decorator(endpoint: Callable) -> Callable:
        endpoint.__audit__ = spec
        return endpoint

    return decorator


class AuditRoute(APIRoute):
    """APIRoute that hands the outcome of audited endpoints to the audit writer."""

    def get_route_handler(self) -> Callable:
        original_route_handler = super().get_route_handler()
        spec: Optional[AuditSpec] = getattr(self.endpoint, "__audit__", None)
        if spec is None:
            return original_route_handler

        async def audited_route_handler(request: Request) -> Response:
            try:
                response = await original_route_handler(request)
            except (StarletteHTTPException, AppException) as exc:
                if spec.record_failures:
                    message = exc.message if isinstance(exc, AppException) else exc.detail
                    ctx = await capture_context(request)
                    ctx.status_code = exc.status_code
                    ctx.payload = {"success": False, "message": message}
                    spec.dispatch(ctx)
                raise

            ctx = await capture_context(request)
            ctx.status_code = response.status_code
            ctx.payload = _response_payload(response)
            spec.dispatch(ctx)
            return response

        return audited_route_handler


# ===========================================
# Wrappers
# ===========================================


def audit_logger(
    action: Optional[str] = None,
    table: Optional[str] = None,
    get_record_id: Optional[Extractor] = None,
    get_old_data: Optional[Extractor] = None,
    get_new_data: Optional[Extractor] = None,
    get_description: Optional[Extractor] = None,
    skip_condition: Optional[Extractor] = None,
) -> Callable:
    """
    Record successful calls of the decorated endpoint.

    Args:
        action: Action type; defaults to one derived from the HTTP method
        table: Target table; defaults to the last path segment
        get_record_id: ``ctx -> id``; defaults to the ``id`` path parameter,
            then ``data.id`` of the response
        get_old_data: ``ctx -> snapshot`` before the change
        get_new_data: ``ctx -> snapshot`` after the change; defaults to the
            request body for CREATE and UPDATE
        get_description: ``ctx -> str``
        skip_condition: ``ctx -> bool``; a true result suppresses the entry
    """

    def record(ctx: AuditContext, db: Session) -> None:
        action_type = (action or ACTIONS_BY_METHOD.get(ctx.method, ctx.method)).upper()
        table_name = table or ctx.last_path_segment

        if get_record_id is not None:
            record_id = get_record_id(ctx)
        elif ctx.path_params.get("id") is not None:
            record_id = ctx.path_params["id"]
        else:
            record_id = ctx.data.get("id")

        old_data = get_old_data(ctx) if get_old_data is not None else None
        if get_new_data is not None:
            new_data = get_new_data(ctx)
        elif action_type in (AuditAction.CREATE, AuditAction.UPDATE):
            new_data = ctx.body
        else:
            new_data = None

        if get_description is not None:
            description = get_description(ctx)
        else:
            identifier = ctx.resolved_actor().identifier("Unknown user")
            description = f"{identifier} performed {action_type} on {table_name}"
            if record_id:
                description += f" (ID: {record_id})"

        actor = ctx.resolved_actor()
        log_action(
            db,
            user_type=actor.user_type,
            user_id=actor.user_id,
            action_type=action_type,
            target_table=table_name,
            target_id=_coerce_id(record_id),
            old_values=old_data,
            new_values=new_data,
            description=description,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
        )

    return _attach(AuditSpec(recorder=record, skip_condition=skip_condition))


def audit_crud(table: str, **options: Any) -> Callable:
    """``audit_logger`` with a fixed target table."""
    return audit_logger(table=table, **options)


def audit_auth(action: str) -> Callable:
    """
    Record login/logout attempts, successful or not.

    For a successful LOGIN the actor is the user returned in the response;
    for LOGOUT and LOGOUT_ALL it is the authenticated principal; otherwise it
    is derived from the submitted credentials.
    """
    action = action.upper()

    def record(ctx: AuditContext, db: Session) -> None:
        success = ctx.succeeded
        if action == AuditAction.LOGIN and success and isinstance(ctx.data.get("user"), dict):
            actor = Actor.from_mapping(ctx.data["user"])
        else:
            actor = ctx.actor or Actor.from_mapping(_credentials(ctx.body))

        log_auth(
            db,
            action,
            actor,
            success=success,
            reason=None if success else "Authentication failed",
            error=None if success else ctx.message,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
        )

    return _attach(AuditSpec(recorder=record, record_failures=True))


def _credentials(body: Any) -> Optional[dict]:
    if not isinstance(body, dict):
        return None
    return {
        key: body[key]
        for key in ("email", "student_number", "user_type")
        if body.get(key) is not None
    }


def _first_param(ctx: AuditContext, *keys: str) -> Any:
    for key in keys:
        if ctx.path_params.get(key) is not None:
            return ctx.path_params[key]
    return None


def audit_admin_action(action: str, target_table: str = "admins") -> Callable:
    """Record an administrator managing admin accounts (or ``target_table``)."""

    def record_id(ctx: AuditContext) -> Any:
        return _first_param(ctx, "admin_id", "id") or ctx.data.get("admin_id") or ctx.data.get("id")

    def describe(ctx: AuditContext) -> str:
        admin_email = ctx.actor.email if ctx.actor and ctx.actor.email else "Unknown admin"
        target_id = _first_param(ctx, "admin_id", "id")
        suffix = f" (ID: {target_id})" if target_id else ""
        return f"{admin_email} performed {action} on {target_table}{suffix}"

    return audit_logger(
        action=action,
        table=target_table,
        get_record_id=record_id,
        get_description=describe,
    )


def audit_student_action(action: str) -> Callable:
    """Record an administrator managing student accounts."""

    def record_id(ctx: AuditContext) -> Any:
        return _first_param(ctx, "student_id", "id")

    def describe(ctx: AuditContext) -> str:
        admin_email = ctx.actor.email if ctx.actor and ctx.actor.email else "Unknown admin"
        student_id = record_id(ctx)
        suffix = f" (ID: {student_id})" if student_id else ""
        return f"{admin_email} performed {action} on student{suffix}"

    return audit_logger(
        action=action,
        table="students",
        get_record_id=record_id,
        get_description=describe,
    )


def audit_content_action(action: str, content_type: str) -> Callable:
    """Record an action on announcements, welcome page content and the like."""

    def record_id(ctx: AuditContext) -> Any:
        found = _first_param(ctx, *CONTENT_ID_KEYS)
        if found is not None:
            return found
        for key in CONTENT_ID_KEYS:
            if ctx.data.get(key) is not None:
                return ctx.data[key]
        return None

    def describe(ctx: AuditContext) -> str:
        identifier = ctx.resolved_actor().identifier("Unknown user")
        content_id = record_id(ctx)
        suffix = f" (ID: {content_id})" if content_id else ""
        return f"{identifier} performed {action} on {content_type}{suffix}"

    return audit_logger(
        action=action,
        table=content_type,
        get_record_id=record_id,
        get_description=describe,
    )


def audit_file_action(action: str) -> Callable:
    """Record a successful upload, described by the first uploaded file."""

    def record(ctx: AuditContext, db: Session) -> None:
        upload = ctx.first_file
        log_file_action(
            db,
            ctx.actor,
            action,
            upload.get("filename") or "unknown",
            file_size=upload.get("size"),
            file_type=upload.get("content_type"),
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
        )

    return _attach(AuditSpec(recorder=record))


def audit_system_event(action: str, description: str) -> Callable:
    """Record a system event after a successful call."""

    def record(ctx: AuditContext, db: Session) -> None:
        actor = ctx.actor
        log_system_event(
            db,
            action,
            description,
            {
                "path": ctx.path,
                "method": ctx.method,
                "user": actor.identifier() if actor else None,
            },
        )

    return _attach(AuditSpec(recorder=record))


def audit_security_event(event_type: str, severity: str = "medium") -> Callable:
    """
    Dependency that records a security event before the handler runs.

    Usage::

        @router.post("/{student_id}/reset-password",
                     dependencies=[Depends(audit_security_event("PASSWORD_RESET", "high"))])
    """

    async def record_security_event(
        request: Request,
        actor: Actor = Depends(get_current_actor),
        db: Session = Depends(get_db),
    ) -> None:
        log_security_event(
            db,
            event_type,
            f"Security event: {event_type}",
            severity=severity,
            details={
                "user_id": actor.user_id,
                "user_email": actor.email,
                "path": request.url.path,
                "method": request.method,
            },
            request=request,
        )

    return record_security_event
