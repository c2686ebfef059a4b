"""Recurring backup job scheduling."""

from .config import BackupJobDefinition, BackupJobView, load_job_definitions
from .cron import ApschedulerCronLibrary
from .errors import BackupSchedulerError, InvalidCronExpression, JobNotFound, MissingCronExpression
from .lifecycle import BackupScheduler, SchedulerState
from .registry import ScheduleRegistry
from .resolver import CRON_PRESETS, CronExpressionResolver
from .retention import CleanupFailure, CleanupReport, RetentionReaper
from .runner import BackupExecutionPipeline, ExecutionFailure, ExecutionResult

__all__ = [
    "ApschedulerCronLibrary",
    "BackupExecutionPipeline",
    "BackupJobDefinition",
    "BackupJobView",
    "BackupScheduler",
    "BackupSchedulerError",
    "CRON_PRESETS",
    "CleanupFailure",
    "CleanupReport",
    "CronExpressionResolver",
    "ExecutionFailure",
    "ExecutionResult",
    "InvalidCronExpression",
    "JobNotFound",
    "MissingCronExpression",
    "RetentionReaper",
    "ScheduleRegistry",
    "SchedulerState",
    "load_job_definitions",
]
