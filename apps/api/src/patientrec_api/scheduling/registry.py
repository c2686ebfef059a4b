"""In-memory registry holding one cron timer per backup job."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Awaitable, Callable, Dict, Iterator, Tuple

from loguru import logger

from .config import BackupJobView
from .errors import InvalidCronExpression
from .interfaces import CancellableHandle, CronLibrary
from .resolver import CronExpressionResolver

FireCallback = Callable[[BackupJobView], Awaitable[object]]


@dataclass(slots=True)
class ScheduledTask:
    job_id: str
    handle: CancellableHandle
    expression: str
    job_name: str


class ScheduleRegistry:
    """Owns the cron timers of all scheduled backup jobs.

    Every mutation for a job id happens under that id's lock, so concurrent
    ``schedule_job``/``unschedule_job`` calls for the same job can never leave
    two timers behind. No collaborator I/O happens while a lock is held.
    """

    def __init__(
        self,
        resolver: CronExpressionResolver,
        cron_library: CronLibrary,
        on_fire: FireCallback,
    ) -> None:
        self._resolver = resolver
        self._cron = cron_library
        self._on_fire = on_fire
        self._tasks: Dict[str, ScheduledTask] = {}
        # job id -> (lock, number of callers holding or waiting on it)
        self._locks: Dict[str, Tuple[Lock, int]] = {}
        self._guard = Lock()

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._tasks

    @contextmanager
    def _key_lock(self, job_id: str) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(job_id, (None, 0))
            if lock is None:
                lock = Lock()
            self._locks[job_id] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                _, users = self._locks[job_id]
                if users <= 1:
                    del self._locks[job_id]
                else:
                    self._locks[job_id] = (lock, users - 1)

    def schedule_job(self, job: BackupJobView) -> None:
        """Replace whatever timer the job had with one matching its current definition."""

        with self._key_lock(job.id):
            expression: str | None = None
            if job.enabled:
                # Reject bad definitions before touching the existing timer.
                expression = self._resolver.resolve(job)
                if not self._resolver.validate(expression):
                    raise InvalidCronExpression(expression)

            self._cancel_locked(job.id)

            if expression is None:
                logger.info("Backup job disabled, not scheduling", job_id=job.id, job_name=job.name)
                return

            handle = self._cron.schedule(
                expression,
                self._resolver.timezone,
                self._bind(job),
                name=job.id,
            )
            task = ScheduledTask(job_id=job.id, handle=handle, expression=expression, job_name=job.name)
            with self._guard:
                self._tasks[job.id] = task

        logger.info(
            "Scheduled backup job",
            job_id=job.id,
            job_name=job.name,
            cron=expression,
            timezone=self._resolver.timezone,
        )

    def reschedule_job(self, job: BackupJobView) -> None:
        self.schedule_job(job)

    def unschedule_job(self, job_id: str) -> bool:
        with self._key_lock(job_id):
            removed = self._cancel_locked(job_id)
        if removed:
            logger.info("Unscheduled backup job", job_id=job_id)
        return removed

    def clear(self) -> int:
        """Cancel every timer; returns how many were active."""

        cancelled = 0
        for job_id in self.scheduled_job_ids():
            if self.unschedule_job(job_id):
                cancelled += 1
        return cancelled

    def scheduled_job_ids(self) -> list[str]:
        with self._guard:
            return list(self._tasks.keys())

    def list_scheduled(self) -> list[dict[str, object]]:
        # Presence in the registry means "has an active schedule", not "executing now".
        return [{"job_id": job_id, "is_running": True} for job_id in self.scheduled_job_ids()]

    def get(self, job_id: str) -> ScheduledTask | None:
        return self._tasks.get(job_id)

    def next_run_time(self, job_id: str, now: datetime | None = None) -> datetime | None:
        task = self._tasks.get(job_id)
        if task is None:
            return None
        return self._cron.next_fire_time(task.expression, self._resolver.timezone, now)

    def __iter__(self) -> Iterator[ScheduledTask]:
        return iter(list(self._tasks.values()))

    def _cancel_locked(self, job_id: str) -> bool:
        with self._guard:
            task = self._tasks.pop(job_id, None)
        if task is None:
            return False
        task.handle.cancel()
        return True

    def _bind(self, job: BackupJobView) -> Callable[[], Awaitable[object]]:
        on_fire = self._on_fire

        async def _fire() -> object:
            return await on_fire(job)

        return _fire


__all__ = ["FireCallback", "ScheduleRegistry", "ScheduledTask"]
