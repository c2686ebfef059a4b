"""Execution pipeline for a single backup job run."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Literal

from loguru import logger

from patientrec_api.models.backup import BackupRunStatusEnum
from patientrec_api.observability.scheduler import (
    BackupSchedulerObservabilityStore,
    get_backup_scheduler_store,
)
from patientrec_api.observability.tracing import get_backup_tracer

from .config import BackupJobView
from .errors import JobNotFound
from .interfaces import BackupService, JobRepository
from .retention import CleanupReport, RetentionReaper

RunStatus = Literal["success", "failed", "skipped"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class ExecutionFailure:
    """Error raised by the backup producer, captured instead of propagated."""

    job_id: str
    error: str
    error_type: str


@dataclass(slots=True)
class ExecutionResult:
    job_id: str
    status: RunStatus
    started_at: datetime
    completed_at: datetime | None = None
    filename: str | None = None
    size_bytes: int | None = None
    failure: ExecutionFailure | None = None
    cleanup: CleanupReport | None = None

    @property
    def error(self) -> str | None:
        return self.failure.error if self.failure else None

    def as_dict(self) -> dict[str, object]:
        return {
            "job_id": self.job_id,
            "status": self.status,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "filename": self.filename,
            "size_bytes": self.size_bytes,
            "error": self.error,
            "cleanup": self.cleanup.as_dict() if self.cleanup else None,
        }


class BackupExecutionPipeline:
    """Runs one backup job end to end and records the outcome.

    At most one run per job id is in flight at any time; a fire that arrives
    while the previous run is still going is skipped.
    """

    def __init__(
        self,
        repository: JobRepository,
        backup_service: BackupService,
        reaper: RetentionReaper,
        *,
        observability: BackupSchedulerObservabilityStore | None = None,
    ) -> None:
        self._repository = repository
        self._backup_service = backup_service
        self._reaper = reaper
        self._observability = observability or get_backup_scheduler_store()
        self._in_flight: set[str] = set()
        self._in_flight_lock = Lock()

    @property
    def in_flight(self) -> frozenset[str]:
        with self._in_flight_lock:
            return frozenset(self._in_flight)

    def is_running(self, job_id: str) -> bool:
        with self._in_flight_lock:
            return job_id in self._in_flight

    async def trigger_backup(self, job_id: str) -> ExecutionResult:
        """Run a job immediately, outside of its schedule."""

        job = await self._repository.find_job_by_id(job_id)
        if job is None:
            raise JobNotFound(job_id)
        logger.info("Manually triggering backup", job_id=job.id, job_name=job.name)
        return await self.execute_backup(job)

    async def execute_backup(self, job: BackupJobView) -> ExecutionResult:
        if not self._claim(job.id):
            self._observability.record_skipped(job.id)
            logger.warning("Backup already in flight, skipping fire", job_id=job.id, job_name=job.name)
            return ExecutionResult(job_id=job.id, status="skipped", started_at=_utcnow())

        try:
            with get_backup_tracer().start_as_current_span("backup.run") as span:
                span.set_attribute("backup.job_id", job.id)
                result = await self._run(job)
                span.set_attribute("backup.status", result.status)
                return result
        finally:
            self._release(job.id)

    async def wait_until_idle(self, timeout: float | None = None, *, poll_interval: float = 0.1) -> bool:
        """Wait for in-flight runs to drain; returns False if the timeout elapsed first."""

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None
        while self.in_flight:
            if deadline is not None and loop.time() >= deadline:
                return False
            await asyncio.sleep(poll_interval)
        return True

    async def _run(self, job: BackupJobView) -> ExecutionResult:
        result = ExecutionResult(job_id=job.id, status="failed", started_at=_utcnow())
        started = time.perf_counter()
        self._observability.record_dispatch(job.id)
        logger.info("Starting backup", job_id=job.id, job_name=job.name)

        try:
            await self._repository.update_job_last_run(job.id, BackupRunStatusEnum.RUNNING)
            artifact = await self._backup_service.create_backup(job)
        except Exception as exc:
            return await self._fail(job, result, exc, started)

        result.filename = artifact.filename
        result.size_bytes = artifact.size_bytes
        try:
            await self._repository.update_job_last_run(job.id, BackupRunStatusEnum.SUCCESS)
        except Exception as exc:
            return await self._fail(job, result, exc, started)

        result.status = "success"
        result.completed_at = _utcnow()
        self._observability.record_success(
            job.id,
            runtime_seconds=time.perf_counter() - started,
            artifact=artifact.filename,
        )
        logger.info(
            "Backup completed",
            job_id=job.id,
            filename=artifact.filename,
            size_bytes=artifact.size_bytes,
        )

        # Cleanup outcome never changes the recorded run status.
        try:
            result.cleanup = await self._reaper.cleanup_old_backups(job)
        except Exception as exc:
            result.cleanup = CleanupReport(job_id=job.id, error=str(exc) or exc.__class__.__name__)
            logger.exception("Retention cleanup crashed", job_id=job.id, error=result.cleanup.error)
        self._observability.record_cleanup(
            job.id,
            deleted=len(result.cleanup.deleted),
            failures=len(result.cleanup.failures),
        )
        return result

    async def _fail(
        self,
        job: BackupJobView,
        result: ExecutionResult,
        exc: BaseException,
        started: float,
    ) -> ExecutionResult:
        message = str(exc) or exc.__class__.__name__
        result.failure = ExecutionFailure(job_id=job.id, error=message, error_type=exc.__class__.__name__)
        result.status = "failed"
        result.completed_at = _utcnow()
        logger.opt(exception=exc).error("Backup failed", job_id=job.id, job_name=job.name, error=message)
        self._observability.record_failure(job.id, runtime_seconds=time.perf_counter() - started, error=message)
        try:
            await self._repository.update_job_last_run(job.id, BackupRunStatusEnum.FAILED, message)
        except Exception as persist_exc:
            logger.exception("Failed to record backup failure", job_id=job.id, error=str(persist_exc))
        return result

    def _claim(self, job_id: str) -> bool:
        with self._in_flight_lock:
            if job_id in self._in_flight:
                return False
            self._in_flight.add(job_id)
            return True

    def _release(self, job_id: str) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(job_id)


__all__ = ["BackupExecutionPipeline", "ExecutionFailure", "ExecutionResult"]
