"""
Audit logging service.

``log_action`` is the single funnel through which every audit entry is
created. The ``log_*`` helpers pre-fill it for common call shapes and apply
the standard description templates. Write-path failures are logged and
swallowed so that auditing can never break the request that triggered it;
read-path functions log and re-raise.
"""
import json
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from ebulletin.core.actor import Actor
from ebulletin.core.config import settings
from ebulletin.schemas.audit_log import AuditLogFilters, AuditLogPagination
from ebulletin.services import audit_query

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"
SENSITIVE_FIELDS = frozenset(
    {
        "password",
        "password_hash",
        "new_password",
        "current_password",
        "confirm_password",
        "access_token",
        "token",
    }
)

CSV_HEADERS = [
    "Log ID",
    "User Type",
    "User ID",
    "User Name",
    "User Email",
    "Action Type",
    "Target Table",
    "Target ID",
    "Description",
    "IP Address",
    "User Agent",
    "Performed At",
]

EXPORT_FORMATS = ("json", "csv")


class AuditAction:
    """Constants for audit action types. Call sites may use other names."""

    # CRUD
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

    # Authentication
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    LOGOUT_ALL = "LOGOUT_ALL"

    # Content lifecycle
    PUBLISH = "PUBLISH"
    RESTORE = "RESTORE"
    PERMANENT_DELETE = "PERMANENT_DELETE"
    TOGGLE_STATUS = "TOGGLE_STATUS"
    REORDER = "REORDER"

    # Files
    UPLOAD = "UPLOAD"
    ADD_IMAGES = "ADD_IMAGES"

    # Audit trail and system
    EXPORT = "EXPORT"
    CLEANUP = "CLEANUP"
    SECURITY_EVENT = "SECURITY_EVENT"
    REPORT_VIEW = "REPORT_VIEW"


class TargetTable:
    """Constants for common audit targets."""

    AUTHENTICATION = "authentication"
    AUDIT_LOGS = "audit_logs"
    ADMINS = "admins"
    STUDENTS = "students"
    CATEGORIES = "categories"
    ANNOUNCEMENTS = "announcements"
    WELCOME_CARDS = "welcome_cards"
    CAROUSEL_IMAGES = "carousel_images"
    FILES = "files"
    SYSTEM = "system"
    SECURITY = "security"


def get_client_info(request: Request) -> tuple[Optional[str], Optional[str]]:
    """
    Extract client IP and user agent from request.

    Args:
        request: FastAPI request object

    Returns:
        Tuple of (ip_address, user_agent)
    """
    # Get IP address
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    else:
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            ip_address = real_ip.strip()
        elif request.client:
            ip_address = request.client.host
        else:
            ip_address = None

    # Get user agent
    user_agent = request.headers.get("User-Agent")

    return ip_address, user_agent


def redact(values: Any) -> Any:
    """Replace credential-like fields in a snapshot, recursively."""
    if isinstance(values, dict):
        return {
            key: REDACTED if str(key).lower() in SENSITIVE_FIELDS else redact(value)
            for key, value in values.items()
        }
    if isinstance(values, list):
        return [redact(item) for item in values]
    return values


def log_action(
    db: Session,
    *,
    action_type: str,
    target_table: str,
    user_type: str = "system",
    user_id: Optional[int] = None,
    target_id: Optional[int] = None,
    old_values: Any = None,
    new_values: Any = None,
    description: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    request: Optional[Request] = None,
) -> Optional[dict]:
    """
    Record an audit entry.

    Args:
        db: Database session
        action_type: Action name (see AuditAction), stored upper-cased
        target_table: Logical resource acted upon
        user_type: "admin", "student" or "system"
        user_id: Account id within the table selected by ``user_type``
        target_id: Id of the affected row
        old_values: Snapshot before the change (any JSON-serializable value)
        new_values: Snapshot after the change
        description: Human-readable summary
        ip_address: Client IP; extracted from ``request`` when omitted
        user_agent: Client user agent; extracted from ``request`` when omitted
        request: Originating request, if any

    Returns:
        The persisted entry, or None if it could not be written
    """
    try:
        if request is not None:
            request_ip, request_agent = get_client_info(request)
            ip_address = ip_address or request_ip or "unknown"
            user_agent = user_agent or request_agent or "unknown"

        entry = audit_query.create_audit_log(
            db,
            user_type=user_type,
            user_id=user_id,
            action_type=action_type.upper(),
            target_table=target_table,
            target_id=target_id,
            old_values=redact(old_values),
            new_values=redact(new_values),
            description=description,
            ip_address=ip_address,
            user_agent=user_agent,
        )
    except Exception as e:
        logger.error(f"Error creating audit log ({action_type} on {target_table}): {e}", exc_info=True)
        return None

    if entry is not None:
        logger.info(
            "Audit log created: log_id=%s user_type=%s user_id=%s action_type=%s "
            "target_table=%s target_id=%s description=%s",
            entry["log_id"],
            entry["user_type"],
            entry["user_id"],
            entry["action_type"],
            entry["target_table"],
            entry["target_id"],
            entry["description"],
        )
    return entry


def _actor_fields(actor: Optional[Actor]) -> dict:
    actor = actor or Actor.system()
    return {"user_type": actor.user_type, "user_id": actor.user_id}


def log_auth(
    db: Session,
    action: str,
    actor: Optional[Actor],
    success: bool = True,
    reason: Optional[str] = None,
    error: Optional[str] = None,
    request: Optional[Request] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Optional[dict]:
    """
    Record a login/logout attempt on the ``authentication`` target.

    LOGOUT and LOGOUT_ALL are always recorded as successful with no error
    detail; outcome detection from the response is unreliable for those two.
    """
    action = action.upper()
    if action in (AuditAction.LOGOUT, AuditAction.LOGOUT_ALL):
        success = True
        reason = None
        error = None

    actor = actor or Actor.system()
    outcome = "successful" if success else "failed"
    description = f"{action} {outcome} for {actor.identifier()}"
    if reason:
        description = f"{description}. {reason}"

    return log_action(
        db,
        action_type=action,
        target_table=TargetTable.AUTHENTICATION,
        description=description,
        new_values=None if success else {"error": error, "reason": reason},
        ip_address=ip_address,
        user_agent=user_agent,
        request=request,
        **_actor_fields(actor),
    )


def log_crud(
    db: Session,
    actor: Optional[Actor],
    action: str,
    table: str,
    record_id: Optional[int] = None,
    old_data: Any = None,
    new_data: Any = None,
    request: Optional[Request] = None,
) -> Optional[dict]:
    """Record a create/read/update/delete on ``table``."""
    action = action.upper()
    identifier = (actor or Actor.system()).identifier("system")

    if action == AuditAction.CREATE:
        description = f"{identifier} created new {table} record"
    elif action == AuditAction.UPDATE:
        description = f"{identifier} updated {table} record ID {record_id}"
    elif action == AuditAction.DELETE:
        description = f"{identifier} deleted {table} record ID {record_id}"
    elif action == AuditAction.READ:
        description = f"{identifier} accessed {table} record ID {record_id}"
    else:
        description = f"{identifier} performed {action} on {table}"

    return log_action(
        db,
        action_type=action,
        target_table=table,
        target_id=record_id,
        old_values=old_data,
        new_values=new_data,
        description=description,
        request=request,
        **_actor_fields(actor),
    )


def _admin_identifier(admin: Optional[Actor]) -> str:
    if admin is None:
        return "Admin ID None"
    return admin.email or f"Admin ID {admin.user_id}"


def log_admin_action(
    db: Session,
    admin: Optional[Actor],
    action: str,
    target_table: str,
    target_id: Optional[int] = None,
    old_data: Any = None,
    new_data: Any = None,
    description: Optional[str] = None,
    request: Optional[Request] = None,
) -> Optional[dict]:
    """Record an action performed by an administrator."""
    return log_action(
        db,
        user_type="admin",
        user_id=admin.user_id if admin else None,
        action_type=action,
        target_table=target_table,
        target_id=target_id,
        old_values=old_data,
        new_values=new_data,
        description=description
        or f"{_admin_identifier(admin)} performed {action.upper()} on {target_table}",
        request=request,
    )


def log_student_action(
    db: Session,
    admin: Optional[Actor],
    action: str,
    student_id: Optional[int],
    old_data: Any = None,
    new_data: Any = None,
    description: Optional[str] = None,
    request: Optional[Request] = None,
) -> Optional[dict]:
    """Record an administrator's action on a student account."""
    return log_action(
        db,
        user_type="admin",
        user_id=admin.user_id if admin else None,
        action_type=action,
        target_table=TargetTable.STUDENTS,
        target_id=student_id,
        old_values=old_data,
        new_values=new_data,
        description=description
        or f"{_admin_identifier(admin)} performed {action.upper()} on student ID {student_id}",
        request=request,
    )


def log_content_action(
    db: Session,
    actor: Optional[Actor],
    action: str,
    content_type: str,
    content_id: Optional[int] = None,
    old_data: Any = None,
    new_data: Any = None,
    description: Optional[str] = None,
    request: Optional[Request] = None,
) -> Optional[dict]:
    """Record an action on announcements, welcome page content and similar."""
    identifier = (actor or Actor.system()).identifier()
    return log_action(
        db,
        action_type=action,
        target_table=content_type,
        target_id=content_id,
        old_values=old_data,
        new_values=new_data,
        description=description
        or f"{identifier} performed {action.upper()} on {content_type} ID {content_id}",
        request=request,
        **_actor_fields(actor),
    )


def log_file_action(
    db: Session,
    actor: Optional[Actor],
    action: str,
    file_name: Optional[str],
    file_size: Optional[int] = None,
    file_type: Optional[str] = None,
    request: Optional[Request] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Optional[dict]:
    """Record an upload or other operation on a file."""
    identifier = (actor or Actor.system()).identifier()
    return log_action(
        db,
        action_type=action,
        target_table=TargetTable.FILES,
        description=f"{identifier} performed {action.upper()} on file: {file_name}",
        new_values={"fileName": file_name, "fileSize": file_size, "fileType": file_type},
        ip_address=ip_address,
        user_agent=user_agent,
        request=request,
        **_actor_fields(actor),
    )


def log_system_event(
    db: Session,
    action: str,
    description: str,
    details: Optional[dict] = None,
    request: Optional[Request] = None,
) -> Optional[dict]:
    """Record an event not attributable to a user."""
    return log_action(
        db,
        user_type="system",
        user_id=None,
        action_type=action,
        target_table=TargetTable.SYSTEM,
        description=description,
        new_values=details or {},
        request=request,
    )


def log_security_event(
    db: Session,
    event_type: str,
    description: str,
    severity: str = "medium",
    details: Optional[dict] = None,
    request: Optional[Request] = None,
) -> Optional[dict]:
    """
    Record a security-relevant event.

    Always stored with ``user_type="system"``; the user involved, if any, is
    taken from ``details["user_id"]``.
    """
    details = dict(details or {})
    return log_action(
        db,
        user_type="system",
        user_id=details.get("user_id"),
        action_type=AuditAction.SECURITY_EVENT,
        target_table=TargetTable.SECURITY,
        description=f"SECURITY: {description}",
        new_values={"event_type": event_type, "severity": severity, **details},
        request=request,
    )


# ===========================================
# Read side
# ===========================================


def get_audit_logs(
    db: Session,
    filters: Optional[AuditLogFilters] = None,
    pagination: Optional[AuditLogPagination] = None,
) -> dict:
    try:
        return audit_query.get_audit_logs(db, filters, pagination)
    except Exception as e:
        logger.error(f"Error retrieving audit logs: {e}")
        raise


def get_audit_log_stats(
    db: Session,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> dict:
    try:
        return audit_query.get_audit_log_stats(db, start_date, end_date)
    except Exception as e:
        logger.error(f"Error retrieving audit log statistics: {e}")
        raise


def get_audit_log_summary(db: Session, days: int = 7) -> dict:
    """Statistics for the last ``days`` days plus the ten most recent DELETE entries."""
    start_date = datetime.now(timezone.utc) - timedelta(days=days)
    statistics = get_audit_log_stats(db, start_date=start_date)
    recent = get_audit_logs(
        db,
        AuditLogFilters(action_type=AuditAction.DELETE, start_date=start_date),
        AuditLogPagination(page=1, limit=10),
    )
    return {
        "period_days": days,
        "statistics": statistics,
        "recent_critical_events": recent["data"],
    }


def _json_default(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _quoted(value: Any) -> str:
    return '"' + str(value or "").replace('"', '""') + '"'


def _csv_field(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    text = str(value)
    if any(ch in text for ch in (",", '"', "\n", "\r")):
        return _quoted(text)
    return text


def convert_to_csv(rows: list[dict]) -> str:
    """
    Render audit rows as CSV with the fixed 12-column header.

    Description and user agent are always quoted with embedded quotes doubled.
    """
    if not rows:
        return "No data available"

    lines = [",".join(CSV_HEADERS)]
    for row in rows:
        fields = [
            _csv_field(row.get("log_id")),
            _csv_field(row.get("user_type")),
            _csv_field(row.get("user_id")),
            _csv_field(row.get("user_name")),
            _csv_field(row.get("user_email")),
            _csv_field(row.get("action_type")),
            _csv_field(row.get("target_table")),
            _csv_field(row.get("target_id")),
            _quoted(row.get("description")),
            _csv_field(row.get("ip_address")),
            _quoted(row.get("user_agent")),
            _csv_field(row.get("performed_at")),
        ]
        lines.append(",".join(fields))
    return "\n".join(lines)


def export_audit_logs(
    db: Session,
    filters: Optional[AuditLogFilters] = None,
    format: str = "json",
) -> str:
    """
    Serialize up to ``AUDIT_EXPORT_MAX_ROWS`` matching entries.

    Raises:
        ValueError: If ``format`` is not json or csv
    """
    export_format = (format or "").lower()
    if export_format not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {format}")

    try:
        result = audit_query.get_audit_logs(
            db,
            filters,
            AuditLogPagination(page=1, limit=settings.AUDIT_EXPORT_MAX_ROWS),
        )
    except Exception as e:
        logger.error(f"Error exporting audit logs: {e}")
        raise

    rows = result["data"]
    if export_format == "csv":
        return convert_to_csv(rows)
    return json.dumps(rows, indent=2, default=_json_default)


def cleanup_old_logs(db: Session, days_to_keep: int = 365) -> int:
    """Delete entries older than ``days_to_keep`` days and record the cleanup."""
    try:
        deleted_count = audit_query.delete_old_logs(db, days_to_keep)
    except Exception as e:
        logger.error(f"Error during audit log cleanup: {e}")
        raise

    log_system_event(
        db,
        AuditAction.CLEANUP,
        f"Audit log cleanup completed: {deleted_count} old records deleted",
        {"deletedCount": deleted_count, "daysToKeep": days_to_keep},
    )
    return deleted_count
