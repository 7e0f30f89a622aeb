"""
Audit log schemas: query filters, pagination and response rows.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from ebulletin.core.config import settings
from ebulletin.schemas.common import Envelope

SortColumn = Literal["performed_at", "user_type", "action_type", "target_table", "user_id"]
SortOrder = Literal["ASC", "DESC"]


class AuditLogFilters(BaseModel):
    """Predicates applied to audit log listings, statistics and exports."""

    user_type: Optional[Literal["admin", "student", "system"]] = None
    user_id: Optional[int] = Field(None, ge=1)
    action_type: Optional[str] = None
    target_table: Optional[str] = None
    target_id: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    search: Optional[str] = None

    def active(self) -> dict:
        """Only the filters that were actually supplied, JSON-friendly."""
        return self.model_dump(mode="json", exclude_none=True)


class AuditLogPagination(BaseModel):
    """Page selection and ordering for audit log listings."""

    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1)
    sort_by: SortColumn = "performed_at"
    sort_order: SortOrder = "DESC"


class PaginationMeta(BaseModel):
    current_page: int
    per_page: int
    total_pages: int
    total_records: int
    has_next_page: bool
    has_prev_page: bool


class AuditLogOut(BaseModel):
    """One audit entry with the actor's display name and email resolved."""

    log_id: int
    user_type: str
    user_id: Optional[int] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    action_type: str
    target_table: str
    target_id: Optional[int] = None
    old_values: Optional[Any] = None
    new_values: Optional[Any] = None
    description: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    performed_at: Optional[datetime] = None


class AuditLogStats(BaseModel):
    total_logs: int = 0
    unique_users: int = 0
    create_actions: int = 0
    update_actions: int = 0
    delete_actions: int = 0
    login_actions: int = 0
    logout_actions: int = 0
    admin_actions: int = 0
    student_actions: int = 0
    system_actions: int = 0


class CleanupRequest(BaseModel):
    """Body of ``DELETE /audit-logs/cleanup``."""

    days_to_keep: int = Field(
        settings.AUDIT_RETENTION_DAYS,
        ge=settings.AUDIT_CLEANUP_MIN_DAYS,
        le=settings.AUDIT_CLEANUP_MAX_DAYS,
        description="Entries older than this many days are deleted",
    )


class AuditLogSummary(BaseModel):
    period_days: int
    statistics: AuditLogStats
    recent_critical_events: List[AuditLogOut]


class CleanupResult(BaseModel):
    deleted_count: int
    days_kept: int


class AuditLogPage(Envelope[List[AuditLogOut]]):
    """A page of entries with its pagination metadata."""

    pagination: PaginationMeta


class AuditLogListResponse(AuditLogPage):
    filters: Dict[str, Any] = Field(default_factory=dict)


AuditLogResponse = Envelope[AuditLogOut]
AuditLogStatsResponse = Envelope[AuditLogStats]
AuditLogSummaryResponse = Envelope[AuditLogSummary]
CleanupResponse = Envelope[CleanupResult]
