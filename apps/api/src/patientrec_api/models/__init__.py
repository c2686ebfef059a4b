"""SQLAlchemy models package."""

from .backup import (  # noqa: F401
    TERMINAL_HISTORY_STATUSES,
    BackupFrequencyEnum,
    BackupHistory,
    BackupHistoryStatusEnum,
    BackupJob,
    BackupRunStatusEnum,
)
