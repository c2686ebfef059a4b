"""Process-level lifecycle for the recurring backup scheduler."""

from __future__ import annotations

import asyncio
from datetime import datetime
from enum import Enum

from loguru import logger

from patientrec_api.observability.scheduler import (
    BackupSchedulerObservabilityStore,
    get_backup_scheduler_store,
)

from .config import BackupJobView
from .errors import JobNotFound
from .interfaces import BackupService, CronLibrary, JobRepository
from .registry import ScheduleRegistry
from .resolver import SCHEDULE_TIMEZONE, CronExpressionResolver
from .retention import RetentionReaper
from .runner import BackupExecutionPipeline, ExecutionResult


class SchedulerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"


class BackupScheduler:
    """Turns persisted backup jobs into cron timers and runs them.

    One instance is built by the application's composition root and kept on
    ``app.state``; ``initialize``/``shutdown`` are its explicit lifecycle.
    """

    # meta: scheduler: backup-jobs

    def __init__(
        self,
        *,
        repository: JobRepository,
        backup_service: BackupService,
        cron_library: CronLibrary,
        timezone: str = SCHEDULE_TIMEZONE,
        purge_expired_history: bool = True,
        retention_batch_limit: int = 1000,
        observability: BackupSchedulerObservabilityStore | None = None,
    ) -> None:
        self._repository = repository
        self._observability = observability or get_backup_scheduler_store()
        self.resolver = CronExpressionResolver(cron_library, timezone=timezone)
        self.reaper = RetentionReaper(
            repository,
            backup_service,
            purge_history=purge_expired_history,
            batch_limit=retention_batch_limit,
        )
        self.pipeline = BackupExecutionPipeline(
            repository,
            backup_service,
            self.reaper,
            observability=self._observability,
        )
        self.registry = ScheduleRegistry(self.resolver, cron_library, self._on_timer_fire)
        self._state = SchedulerState.UNINITIALIZED
        self._init_lock = asyncio.Lock()

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state is SchedulerState.INITIALIZED

    async def initialize(self) -> None:
        """Schedule every enabled job; calling it again is a no-op."""

        async with self._init_lock:
            if self._state is not SchedulerState.UNINITIALIZED:
                logger.warning("Backup scheduler already initialized", state=self._state.value)
                return
            self._state = SchedulerState.INITIALIZING

            try:
                jobs = await self._repository.find_all_enabled_jobs()
            except Exception as exc:
                self._state = SchedulerState.UNINITIALIZED
                logger.exception("Failed to initialize backup scheduler", error=str(exc))
                raise

            logger.info("Found enabled backup jobs to schedule", count=len(jobs))
            scheduled = 0
            for job in jobs:
                try:
                    self.registry.schedule_job(job)
                except Exception as exc:
                    logger.error("Failed to schedule backup job", job_id=job.id, job_name=job.name, error=str(exc))
                    continue
                scheduled += 1

            self._state = SchedulerState.INITIALIZED
            logger.info("Backup scheduler initialized", scheduled=scheduled, skipped=len(jobs) - scheduled)

    def shutdown(self) -> None:
        """Cancel every pending timer; in-flight runs are left to finish."""

        logger.info("Shutting down backup scheduler")
        cancelled = self.registry.clear()
        self._state = SchedulerState.UNINITIALIZED
        logger.info(
            "Backup scheduler shutdown complete",
            cancelled=cancelled,
            in_flight=len(self.pipeline.in_flight),
        )

    def schedule_job(self, job: BackupJobView) -> None:
        self.registry.schedule_job(job)

    def unschedule_job(self, job_id: str) -> None:
        self.registry.unschedule_job(job_id)

    def reschedule_job(self, job: BackupJobView) -> None:
        self.registry.reschedule_job(job)

    async def sync_job(self, job_id: str) -> BackupJobView:
        """Re-read a job after an edit and bring its timer in line with it."""

        job = await self._repository.find_job_by_id(job_id)
        if job is None:
            self.registry.unschedule_job(job_id)
            raise JobNotFound(job_id)
        self.registry.reschedule_job(job)
        return job

    async def trigger_backup(self, job_id: str) -> ExecutionResult:
        return await self.pipeline.trigger_backup(job_id)

    def list_scheduled(self) -> list[dict[str, object]]:
        return self.registry.list_scheduled()

    def validate_cron_expression(self, expression: str) -> bool:
        return self.resolver.validate(expression)

    def describe_schedule(self, job: BackupJobView) -> str:
        return self.resolver.describe(job)

    def next_run_time(self, job: BackupJobView, now: datetime | None = None) -> datetime | None:
        return self.resolver.next_run_time(job, now)

    async def wait_until_idle(self, timeout: float | None = None) -> bool:
        return await self.pipeline.wait_until_idle(timeout)

    def health(self) -> dict[str, object]:
        """Return scheduler health metadata suitable for diagnostics."""

        snapshot = self._observability.snapshot()
        jobs: list[dict[str, object]] = []
        for task in self.registry:
            next_run = self.registry.next_run_time(task.job_id)
            job_metrics = snapshot.jobs.get(task.job_id)
            jobs.append(
                {
                    "id": task.job_id,
                    "name": task.job_name,
                    "cron": task.expression,
                    "next_run_at": next_run.isoformat() if next_run else None,
                    "in_flight": self.pipeline.is_running(task.job_id),
                    "metrics": job_metrics.as_dict() if job_metrics else None,
                }
            )

        return {
            "state": self._state.value,
            "running": self.is_initialized,
            "scheduled_jobs": len(self.registry),
            "in_flight": sorted(self.pipeline.in_flight),
            "totals": snapshot.totals,
            "jobs": jobs,
        }

    async def _on_timer_fire(self, job: BackupJobView) -> ExecutionResult | None:
        # Nothing may escape a timer callback.
        try:
            return await self.pipeline.execute_backup(job)
        except Exception as exc:  # pragma: no cover
            logger.exception("Scheduled backup callback failed", job_id=job.id, error=str(exc))
            return None


__all__ = ["BackupScheduler", "SchedulerState"]
