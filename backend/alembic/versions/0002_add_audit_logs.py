"""add audit_logs table

Revision ID: 0002_add_audit_logs
Revises: 0001_init_tables
Create Date: 2026-10-17 00:01:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0002_add_audit_logs"
down_revision = "0001_init_tables"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # (user_type, user_id) refers to admin_accounts or student_accounts
    # depending on user_type, so no foreign key is declared
    op.create_table(
        "audit_logs",
        sa.Column("log_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_type", sa.String(20), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(100), nullable=False),
        sa.Column("target_id", sa.Integer(), nullable=True),
        sa.Column("old_values", sa.Text(), nullable=True),
        sa.Column("new_values", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column(
            "performed_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    # Create indexes for the common filters
    op.create_index("ix_audit_logs_user", "audit_logs", ["user_type", "user_id"])
    op.create_index("ix_audit_logs_action_type", "audit_logs", ["action_type"])
    op.create_index("ix_audit_logs_target_table", "audit_logs", ["target_table"])
    op.create_index("ix_audit_logs_performed_at", "audit_logs", ["performed_at"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_performed_at")
    op.drop_index("ix_audit_logs_target_table")
    op.drop_index("ix_audit_logs_action_type")
    op.drop_index("ix_audit_logs_user")
    op.drop_table("audit_logs")
