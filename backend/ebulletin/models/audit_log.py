"""
Audit Log model for the append-only trail of attributed actions.
"""

from sqlalchemy import Column, DateTime, Index, Integer, String, Text
from sqlalchemy.sql import func

from ebulletin.db.base import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    log_id = Column(Integer, primary_key=True, autoincrement=True)
    user_type = Column(String(20), nullable=False)  # "admin", "student" or "system"
    user_id = Column(Integer, nullable=True)  # admin_id or student_id depending on user_type
    action_type = Column(String(50), nullable=False)  # e.g. "CREATE", "LOGIN", "SECURITY_EVENT"
    target_table = Column(String(100), nullable=False)
    target_id = Column(Integer, nullable=True)
    old_values = Column(Text, nullable=True)  # JSON-encoded snapshot
    new_values = Column(Text, nullable=True)  # JSON-encoded snapshot
    description = Column(Text, nullable=True)
    ip_address = Column(String, nullable=True)  # client-supplied, unbounded
    user_agent = Column(Text, nullable=True)
    performed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_audit_logs_user", "user_type", "user_id"),
        Index("ix_audit_logs_action_type", "action_type"),
        Index("ix_audit_logs_target_table", "target_table"),
        Index("ix_audit_logs_performed_at", "performed_at"),
    )
