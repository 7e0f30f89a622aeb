"""
Audit log API endpoints.

Only accessible by administrators; cleanup additionally requires the
``super_admin`` position. Reading the trail is itself recorded as a READ on
``audit_logs`` (EXPORT for downloads).
"""
import json
import logging
from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Path, Query, Request, Response
from sqlalchemy.orm import Session

from ebulletin.core.actor import Actor
from ebulletin.core.config import settings
from ebulletin.core.deps import get_current_admin, get_db
from ebulletin.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from ebulletin.schemas.audit_log import (
    AuditLogFilters,
    AuditLogListResponse,
    AuditLogPage,
    AuditLogPagination,
    AuditLogResponse,
    AuditLogStatsResponse,
    AuditLogSummaryResponse,
    CleanupRequest,
    CleanupResponse,
    SortColumn,
    SortOrder,
)
from ebulletin.schemas.common import ok
from ebulletin.services import audit_query
from ebulletin.services.audit import (
    AuditAction,
    TargetTable,
    cleanup_old_logs,
    export_audit_logs,
    get_audit_log_stats,
    get_audit_log_summary,
    get_audit_logs,
    log_action,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/audit-logs", tags=["audit-logs"])

TABLE_NAME_PATTERN = r"^[a-zA-Z_][a-zA-Z0-9_]*$"

EXPORT_MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "json": "application/json",
}


def pagination_params(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: SortColumn = Query("performed_at"),
    sort_order: SortOrder = Query("DESC"),
) -> AuditLogPagination:
    return AuditLogPagination(page=page, limit=limit, sort_by=sort_by, sort_order=sort_order)


def filter_params(
    user_type: Optional[Literal["admin", "student", "system"]] = Query(None),
    user_id: Optional[int] = Query(None, ge=1),
    action_type: Optional[str] = Query(None, max_length=50),
    target_table: Optional[str] = Query(None, min_length=1, max_length=100),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    search: Optional[str] = Query(None, min_length=1, max_length=255),
) -> AuditLogFilters:
    return AuditLogFilters(
        user_type=user_type,
        user_id=user_id,
        action_type=action_type,
        target_table=target_table,
        start_date=start_date,
        end_date=end_date,
        search=search,
    )


def _record_access(
    db: Session,
    admin: Actor,
    request: Request,
    description: str,
    action: str = AuditAction.READ,
    new_values: Optional[dict] = None,
) -> None:
    log_action(
        db,
        user_type="admin",
        user_id=admin.user_id,
        action_type=action,
        target_table=TargetTable.AUDIT_LOGS,
        new_values=new_values,
        description=description,
        request=request,
    )


@router.get("", response_model=AuditLogListResponse)
async def list_audit_logs(
    request: Request,
    filters: AuditLogFilters = Depends(filter_params),
    pagination: AuditLogPagination = Depends(pagination_params),
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    """List audit logs with filtering and pagination."""
    result = get_audit_logs(db, filters, pagination)

    active_filters = filters.active()
    _record_access(
        db,
        admin,
        request,
        f"Admin {admin.email} accessed audit logs with filters: {json.dumps(active_filters)}",
    )

    return ok(
        "Audit logs retrieved successfully",
        result["data"],
        pagination=result["pagination"],
        filters=active_filters,
    )


@router.get("/stats", response_model=AuditLogStatsResponse)
async def audit_log_stats(
    request: Request,
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    """Aggregate counts, optionally limited to a date range."""
    stats = get_audit_log_stats(db, start_date=start_date, end_date=end_date)
    _record_access(db, admin, request, f"Admin {admin.email} accessed audit log statistics")
    return ok("Audit log statistics retrieved successfully", stats)


@router.get("/summary", response_model=AuditLogSummaryResponse)
async def audit_log_summary(
    request: Request,
    days: int = Query(7, ge=1, le=365),
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    """Statistics for the last ``days`` days plus the most recent DELETE entries."""
    summary = get_audit_log_summary(db, days)
    _record_access(
        db, admin, request, f"Admin {admin.email} accessed audit log summary for {days} days"
    )
    return ok("Audit log summary retrieved successfully", summary)


@router.get("/export")
async def export_logs(
    request: Request,
    format: str = Query("json", max_length=10),
    filters: AuditLogFilters = Depends(filter_params),
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    """Download matching entries as a JSON or CSV file."""
    try:
        content = export_audit_logs(db, filters, format)
    except ValueError as e:
        raise BadRequestError(f'{e}. Use "json" or "csv".')

    export_format = format.lower()
    _record_access(
        db,
        admin,
        request,
        f"Admin {admin.email} exported audit logs in {export_format} format",
        action=AuditAction.EXPORT,
        new_values={"format": export_format, "filters": filters.active()},
    )

    now = datetime.now(timezone.utc)
    timestamp = now.strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"
    filename = f"audit-logs-{timestamp}.{export_format}"

    logger.info(f"Admin {admin.email} exported audit logs as {filename}")

    return Response(
        content=content,
        media_type=EXPORT_MEDIA_TYPES[export_format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/user/{user_id}", response_model=AuditLogPage)
async def user_audit_logs(
    request: Request,
    user_id: int = Path(..., ge=1),
    action_type: Optional[str] = Query(None, max_length=50),
    target_table: Optional[str] = Query(None, min_length=1, max_length=100),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    pagination: AuditLogPagination = Depends(pagination_params),
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    """Audit logs attributed to one user id."""
    filters = AuditLogFilters(
        user_id=user_id,
        action_type=action_type,
        target_table=target_table,
        start_date=start_date,
        end_date=end_date,
    )
    result = get_audit_logs(db, filters, pagination)
    _record_access(
        db, admin, request, f"Admin {admin.email} accessed audit logs for user ID {user_id}"
    )
    return ok(
        "User audit logs retrieved successfully",
        result["data"],
        pagination=result["pagination"],
    )


@router.get("/table/{table_name}", response_model=AuditLogPage)
async def table_audit_logs(
    request: Request,
    table_name: str = Path(..., min_length=1, max_length=100, pattern=TABLE_NAME_PATTERN),
    target_id: Optional[int] = Query(None, ge=1),
    action_type: Optional[str] = Query(None, max_length=50),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    pagination: AuditLogPagination = Depends(pagination_params),
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    """Audit logs for one target table (optionally one record)."""
    filters = AuditLogFilters(
        target_table=table_name,
        target_id=target_id,
        action_type=action_type,
        start_date=start_date,
        end_date=end_date,
    )
    result = get_audit_logs(db, filters, pagination)
    _record_access(
        db, admin, request, f"Admin {admin.email} accessed audit logs for table {table_name}"
    )
    return ok(
        f"Audit logs for table {table_name} retrieved successfully",
        result["data"],
        pagination=result["pagination"],
    )


@router.delete("/cleanup", response_model=CleanupResponse)
async def cleanup_logs(
    data: Optional[CleanupRequest] = None,
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    """Delete entries older than ``days_to_keep`` days. Super admins only."""
    if not admin.is_super_admin:
        logger.warning(f"Audit log cleanup refused for {admin.email} (position {admin.position})")
        raise ForbiddenError("Only super administrators can perform audit log cleanup")

    days_to_keep = data.days_to_keep if data else settings.AUDIT_RETENTION_DAYS
    deleted_count = cleanup_old_logs(db, days_to_keep)

    logger.info(f"Admin {admin.email} cleaned up {deleted_count} audit logs older than {days_to_keep} days")

    return ok(
        f"Audit log cleanup completed. {deleted_count} old records deleted.",
        {"deleted_count": deleted_count, "days_kept": days_to_keep},
    )


@router.get("/{log_id}", response_model=AuditLogResponse)
async def get_audit_log(
    request: Request,
    log_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    admin: Actor = Depends(get_current_admin),
):
    """Get a single audit log entry."""
    entry = audit_query.get_audit_log_by_id(db, log_id)
    if entry is None:
        raise NotFoundError("Audit log not found")

    _record_access(db, admin, request, f"Admin {admin.email} accessed audit log ID {log_id}")
    return ok("Audit log retrieved successfully", entry)
