"""Backup job definitions and their execution history."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    Index,
    Integer,
    String,
    Text,
    func,
    true,
)
from sqlalchemy.dialects.postgresql import UUID

from patientrec_api.db.base import Base


class BackupFrequencyEnum(str, Enum):
    """Schedule presets for backup jobs; ``custom`` uses an explicit cron expression."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class BackupRunStatusEnum(str, Enum):
    """Outcome of the most recent run of a job."""

    SUCCESS = "success"
    FAILED = "failed"
    RUNNING = "running"


class BackupHistoryStatusEnum(str, Enum):
    """Lifecycle of a single backup artifact."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_HISTORY_STATUSES: tuple[BackupHistoryStatusEnum, ...] = (
    BackupHistoryStatusEnum.COMPLETED,
    BackupHistoryStatusEnum.FAILED,
)


class BackupJob(Base):
    """Recurring backup definition managed by operators."""

    __tablename__ = "backup_jobs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(String(500), nullable=True)
    enabled = Column(Boolean, nullable=False, default=True, server_default=true())
    frequency = Column(
        SqlEnum(
            BackupFrequencyEnum,
            name="backup_frequency_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=BackupFrequencyEnum.DAILY,
    )
    cron_expression = Column(String(120), nullable=True)
    collections = Column(JSON, nullable=False, default=list)
    retention_days = Column(Integer, nullable=True)

    last_run_at = Column(DateTime(timezone=True), nullable=True)
    last_run_status = Column(
        SqlEnum(
            BackupRunStatusEnum,
            name="backup_run_status_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=True,
    )
    last_run_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "retention_days IS NULL OR retention_days >= 0",
            name="ck_backup_jobs_retention_days_non_negative",
        ),
        Index("ix_backup_jobs_enabled_last_run", "enabled", "last_run_at"),
    )


class BackupHistory(Base):
    """One backup artifact produced by a job run (or an ad-hoc backup)."""

    __tablename__ = "backup_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    # Plain reference: history outlives job deletion.
    job_id = Column(UUID(as_uuid=True), nullable=True)
    job_name = Column(String(100), nullable=True)
    filename = Column(String(255), nullable=False)
    file_path = Column(String(1024), nullable=False)
    size_bytes = Column(BigInteger, nullable=False, default=0)
    collections = Column(JSON, nullable=False, default=list)
    status = Column(
        SqlEnum(
            BackupHistoryStatusEnum,
            name="backup_history_status_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=BackupHistoryStatusEnum.RUNNING,
    )
    error = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_backup_history_job_started", "job_id", "started_at"),)


__all__ = [
    "BackupFrequencyEnum",
    "BackupHistory",
    "BackupHistoryStatusEnum",
    "BackupJob",
    "BackupRunStatusEnum",
    "TERMINAL_HISTORY_STATUSES",
]
