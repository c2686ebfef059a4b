"""Add backup job and backup history tables.

Revision ID: 20261018_01
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261018_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


backup_frequency_enum = sa.Enum("daily", "weekly", "monthly", "custom", name="backup_frequency_enum")
backup_run_status_enum = sa.Enum("success", "failed", "running", name="backup_run_status_enum")
backup_history_status_enum = sa.Enum("running", "completed", "failed", name="backup_history_status_enum")


def upgrade() -> None:
    op.create_table(
        "backup_jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("frequency", backup_frequency_enum, nullable=False),
        sa.Column("cron_expression", sa.String(length=120), nullable=True),
        sa.Column("collections", sa.JSON(), nullable=False),
        sa.Column("retention_days", sa.Integer(), nullable=True),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_run_status", backup_run_status_enum, nullable=True),
        sa.Column("last_run_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "retention_days IS NULL OR retention_days >= 0",
            name="ck_backup_jobs_retention_days_non_negative",
        ),
    )
    op.create_index("ix_backup_jobs_enabled_last_run", "backup_jobs", ["enabled", "last_run_at"])

    op.create_table(
        "backup_history",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("job_id", sa.Uuid(), nullable=True),
        sa.Column("job_name", sa.String(length=100), nullable=True),
        sa.Column("filename", sa.String(length=255), nullable=False),
        sa.Column("file_path", sa.String(length=1024), nullable=False),
        sa.Column("size_bytes", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("collections", sa.JSON(), nullable=False),
        sa.Column("status", backup_history_status_enum, nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_backup_history_job_started", "backup_history", ["job_id", "started_at"])


def downgrade() -> None:
    op.drop_index("ix_backup_history_job_started", table_name="backup_history")
    op.drop_table("backup_history")
    op.drop_index("ix_backup_jobs_enabled_last_run", table_name="backup_jobs")
    op.drop_table("backup_jobs")
    bind = op.get_bind()
    backup_history_status_enum.drop(bind, checkfirst=True)
    backup_run_status_enum.drop(bind, checkfirst=True)
    backup_frequency_enum.drop(bind, checkfirst=True)
