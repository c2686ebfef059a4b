"""Errors reported synchronously by the backup scheduling API."""

from __future__ import annotations


class BackupSchedulerError(Exception):
    """Base class for registration-time scheduler errors."""


class InvalidCronExpression(BackupSchedulerError):
    def __init__(self, expression: str) -> None:
        super().__init__(f"Invalid cron expression: {expression}")
        self.expression = expression


class MissingCronExpression(BackupSchedulerError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Backup job {job_id} uses a custom frequency without a cron expression")
        self.job_id = job_id


class JobNotFound(BackupSchedulerError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Backup job not found: {job_id}")
        self.job_id = job_id


__all__ = [
    "BackupSchedulerError",
    "InvalidCronExpression",
    "JobNotFound",
    "MissingCronExpression",
]
