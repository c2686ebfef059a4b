"""Age-based cleanup of backup artifacts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

from loguru import logger

from patientrec_api.models.backup import TERMINAL_HISTORY_STATUSES

from .config import BackupJobView
from .interfaces import BackupService, JobRepository


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class CleanupFailure:
    """An artifact that could not be removed; retried on the next run."""

    history_id: str
    filename: str
    error: str


@dataclass(slots=True)
class CleanupReport:
    job_id: str
    cutoff: datetime | None = None
    examined: int = 0
    deleted: list[str] = field(default_factory=list)
    purged_history: int = 0
    failures: list[CleanupFailure] = field(default_factory=list)
    error: str | None = None

    @property
    def skipped(self) -> bool:
        return self.cutoff is None

    def as_dict(self) -> dict[str, object]:
        return {
            "job_id": self.job_id,
            "cutoff": self.cutoff.isoformat() if self.cutoff else None,
            "examined": self.examined,
            "deleted": list(self.deleted),
            "purged_history": self.purged_history,
            "failures": [
                {"history_id": failure.history_id, "filename": failure.filename, "error": failure.error}
                for failure in self.failures
            ],
            "error": self.error,
        }


class RetentionReaper:
    """Deletes a job's terminal backups once they fall outside its retention window."""

    def __init__(
        self,
        repository: JobRepository,
        backup_service: BackupService,
        *,
        purge_history: bool = True,
        batch_limit: int = 1000,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._backup_service = backup_service
        self._purge_history = purge_history
        self._batch_limit = batch_limit
        self._clock = clock

    async def cleanup_old_backups(self, job: BackupJobView, *, now: datetime | None = None) -> CleanupReport:
        report = CleanupReport(job_id=job.id)
        if job.retention_days is None:
            return report

        if job.retention_days < 0:
            report.error = f"Invalid retention_days: {job.retention_days}"
            logger.error("Refusing cleanup with negative retention", job_id=job.id, retention_days=job.retention_days)
            return report

        try:
            report.cutoff = (now or self._clock()) - timedelta(days=job.retention_days)
            expired = await self._repository.find_history_older_than(
                job.id,
                report.cutoff,
                TERMINAL_HISTORY_STATUSES,
                limit=self._batch_limit,
            )
        except Exception as exc:
            report.error = str(exc) or exc.__class__.__name__
            logger.exception("Failed to select expired backups", job_id=job.id, error=report.error)
            return report

        report.examined = len(expired)
        logger.info(
            "Found expired backups",
            job_id=job.id,
            count=report.examined,
            retention_days=job.retention_days,
            cutoff=report.cutoff.isoformat(),
        )

        for record in expired:
            history_id = str(record.id)
            try:
                await self._backup_service.delete_backup_file(history_id)
                if self._purge_history:
                    if await self._repository.delete_history(history_id):
                        report.purged_history += 1
            except Exception as exc:
                failure = CleanupFailure(
                    history_id=history_id,
                    filename=record.filename,
                    error=str(exc) or exc.__class__.__name__,
                )
                report.failures.append(failure)
                logger.error(
                    "Failed to delete expired backup",
                    job_id=job.id,
                    history_id=history_id,
                    filename=record.filename,
                    error=failure.error,
                )
                continue
            report.deleted.append(history_id)
            logger.info("Deleted expired backup", job_id=job.id, history_id=history_id, filename=record.filename)

        return report


__all__ = ["CleanupFailure", "CleanupReport", "RetentionReaper"]
