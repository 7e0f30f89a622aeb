"""
Audit log storage and query functions.

Rows are shaped into plain dictionaries carrying the actor's display name and
email, resolved with outer joins against the admin or student tables selected
by ``user_type``. Every database error is logged and re-raised: callers that
must never fail (the write funnel in ``ebulletin.services.audit``) absorb
errors themselves.
"""
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import String, and_, case, cast, distinct, func, literal, or_
from sqlalchemy.orm import Query, Session

from ebulletin.models.admin import AdminAccount, AdminProfile
from ebulletin.models.audit_log import AuditLog
from ebulletin.models.student import StudentAccount, StudentProfile
from ebulletin.schemas.audit_log import AuditLogFilters, AuditLogPagination

logger = logging.getLogger(__name__)


def encode_values(value: Any) -> Optional[str]:
    """JSON-encode a before/after snapshot; None stays None."""
    if value is None:
        return None
    return json.dumps(value, default=str)


def decode_values(raw: Optional[str]) -> Any:
    """Parse a stored snapshot. Unparsable text is treated as absent."""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return None


def _user_name():
    admin_name = AdminProfile.first_name + " " + AdminProfile.last_name
    student_name = StudentProfile.first_name + " " + StudentProfile.last_name
    return case(
        (AuditLog.user_type == "admin", admin_name),
        (AuditLog.user_type == "student", student_name),
        else_=literal("System"),
    )


def _user_email():
    return case(
        (AuditLog.user_type == "admin", AdminAccount.email),
        (AuditLog.user_type == "student", StudentAccount.email),
        else_=None,
    )


def _joined_query(db: Session) -> Query:
    """Audit rows with the actor's name and email attached."""
    return (
        db.query(
            AuditLog,
            _user_name().label("user_name"),
            _user_email().label("user_email"),
        )
        .outerjoin(
            AdminAccount,
            and_(AuditLog.user_type == "admin", AdminAccount.admin_id == AuditLog.user_id),
        )
        .outerjoin(AdminProfile, AdminProfile.admin_id == AdminAccount.admin_id)
        .outerjoin(
            StudentAccount,
            and_(
                AuditLog.user_type == "student",
                StudentAccount.student_id == AuditLog.user_id,
            ),
        )
        .outerjoin(StudentProfile, StudentProfile.student_id == StudentAccount.student_id)
    )


def _apply_filters(query: Query, filters: AuditLogFilters) -> Query:
    if filters.user_type:
        query = query.filter(AuditLog.user_type == filters.user_type)
    if filters.user_id is not None:
        query = query.filter(AuditLog.user_id == filters.user_id)
    if filters.action_type:
        query = query.filter(AuditLog.action_type == filters.action_type)
    if filters.target_table:
        query = query.filter(AuditLog.target_table == filters.target_table)
    if filters.target_id is not None:
        query = query.filter(AuditLog.target_id == filters.target_id)
    if filters.start_date:
        query = query.filter(AuditLog.performed_at >= filters.start_date)
    if filters.end_date:
        query = query.filter(AuditLog.performed_at <= filters.end_date)
    if filters.search:
        pattern = f"%{filters.search}%"
        query = query.filter(
            or_(
                AuditLog.description.ilike(pattern),
                AuditLog.target_table.ilike(pattern),
                _user_name().ilike(pattern),
                _user_email().ilike(pattern),
            )
        )
    return query


def _shape(log: AuditLog, user_name: Optional[str], user_email: Optional[str]) -> dict:
    return {
        "log_id": log.log_id,
        "user_type": log.user_type,
        "user_id": log.user_id,
        "user_name": user_name,
        "user_email": user_email,
        "action_type": log.action_type,
        "target_table": log.target_table,
        "target_id": log.target_id,
        "old_values": decode_values(log.old_values),
        "new_values": decode_values(log.new_values),
        "description": log.description,
        "ip_address": log.ip_address,
        "user_agent": log.user_agent,
        "performed_at": log.performed_at,
    }


def create_audit_log(
    db: Session,
    *,
    user_type: str,
    action_type: str,
    target_table: str,
    user_id: Optional[int] = None,
    target_id: Optional[int] = None,
    old_values: Any = None,
    new_values: Any = None,
    description: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Optional[dict]:
    """
    Insert one audit entry and return it re-fetched by id.

    ``performed_at`` is assigned by the database.
    """
    try:
        log = AuditLog(
            user_type=user_type,
            user_id=user_id,
            action_type=action_type,
            target_table=target_table,
            target_id=target_id,
            old_values=encode_values(old_values),
            new_values=encode_values(new_values),
            description=description,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.add(log)
        db.commit()
        return get_audit_log_by_id(db, log.log_id)
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating audit log: {e}")
        raise


def get_audit_log_by_id(db: Session, log_id: int) -> Optional[dict]:
    """Fetch a single entry with the actor's name/email resolved, or None."""
    try:
        row = _joined_query(db).filter(AuditLog.log_id == log_id).first()
        if row is None:
            return None
        return _shape(*row)
    except Exception as e:
        logger.error(f"Error getting audit log {log_id}: {e}")
        raise


def get_audit_logs(
    db: Session,
    filters: Optional[AuditLogFilters] = None,
    pagination: Optional[AuditLogPagination] = None,
) -> dict:
    """
    Filtered, sorted, paginated listing.

    Returns:
        ``{"data": [...], "pagination": {...}}``
    """
    filters = filters or AuditLogFilters()
    pagination = pagination or AuditLogPagination()

    try:
        query = _apply_filters(_joined_query(db), filters)
        total_records = query.with_entities(func.count(AuditLog.log_id)).scalar() or 0

        sort_column = getattr(AuditLog, pagination.sort_by)
        if pagination.sort_order == "ASC":
            query = query.order_by(sort_column.asc(), AuditLog.log_id.asc())
        else:
            query = query.order_by(sort_column.desc(), AuditLog.log_id.desc())

        offset = (pagination.page - 1) * pagination.limit
        rows = query.offset(offset).limit(pagination.limit).all()

        total_pages = (total_records + pagination.limit - 1) // pagination.limit
        return {
            "data": [_shape(*row) for row in rows],
            "pagination": {
                "current_page": pagination.page,
                "per_page": pagination.limit,
                "total_pages": total_pages,
                "total_records": total_records,
                "has_next_page": pagination.page < total_pages,
                "has_prev_page": pagination.page > 1,
            },
        }
    except Exception as e:
        logger.error(f"Error getting audit logs: {e}")
        raise


def get_audit_log_stats(
    db: Session,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> dict:
    """Aggregate counts over an optional date range, in a single query."""

    def count_where(condition):
        return func.count(case((condition, 1)))

    # (user_type, user_id) pairs; system rows have no user id and are not counted
    actor_key = AuditLog.user_type + ":" + cast(AuditLog.user_id, String)

    try:
        query = db.query(
            func.count(AuditLog.log_id).label("total_logs"),
            func.count(distinct(actor_key)).label("unique_users"),
            count_where(AuditLog.action_type == "CREATE").label("create_actions"),
            count_where(AuditLog.action_type == "UPDATE").label("update_actions"),
            count_where(AuditLog.action_type == "DELETE").label("delete_actions"),
            count_where(AuditLog.action_type == "LOGIN").label("login_actions"),
            count_where(AuditLog.action_type == "LOGOUT").label("logout_actions"),
            count_where(AuditLog.user_type == "admin").label("admin_actions"),
            count_where(AuditLog.user_type == "student").label("student_actions"),
            count_where(AuditLog.user_type == "system").label("system_actions"),
        )
        if start_date:
            query = query.filter(AuditLog.performed_at >= start_date)
        if end_date:
            query = query.filter(AuditLog.performed_at <= end_date)

        row = query.one()
        return {key: int(value or 0) for key, value in row._mapping.items()}
    except Exception as e:
        logger.error(f"Error getting audit log statistics: {e}")
        raise


def delete_old_logs(db: Session, days_to_keep: int = 365) -> int:
    """Delete entries older than ``days_to_keep`` days; return the number removed."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=days_to_keep)
    try:
        deleted = (
            db.query(AuditLog)
            .filter(AuditLog.performed_at < cutoff)
            .delete(synchronize_session=False)
        )
        db.commit()
        logger.info(f"Deleted {deleted} old audit log entries older than {days_to_keep} days")
        return deleted
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting old audit logs: {e}")
        raise
