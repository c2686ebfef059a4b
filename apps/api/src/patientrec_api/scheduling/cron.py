"""APScheduler-backed timer facility used by the backup schedule registry."""

from __future__ import annotations

import inspect
from datetime import datetime
from zoneinfo import ZoneInfo

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from .interfaces import TimerCallback

JOB_ID_PREFIX = "backup-job:"

_WEEKDAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def _parse_weekday(token: str) -> int:
    lowered = token.strip().lower()
    if lowered in _WEEKDAY_NAMES:
        return _WEEKDAY_NAMES.index(lowered)
    value = int(lowered)
    if not 0 <= value <= 7:
        raise ValueError(f"Day of week out of range: {token}")
    return value % 7


def crontab_day_of_week(field: str) -> str:
    """Translate a crontab day-of-week field (0 or 7 = Sunday) into weekday names.

    APScheduler 3 numbers weekdays from Monday, so numeric crontab values are
    expanded to names before they reach ``CronTrigger``.
    """

    if field == "*":
        return field
    days: set[int] = set()
    for part in field.split(","):
        base, _, step_text = part.partition("/")
        step = int(step_text) if step_text else 1
        if step < 1:
            raise ValueError(f"Invalid step in day of week: {part}")
        if base == "*":
            start, end = 0, 6
        elif "-" in base:
            first, last = base.split("-", 1)
            start, end = _parse_weekday(first), _parse_weekday(last)
            # 1-7 is Monday through Sunday.
            if end == 0 and last.strip() == "7":
                end = 7
            if start > end:
                raise ValueError(f"Invalid day of week range: {part}")
        else:
            start = end = _parse_weekday(base)
            if step_text:
                end = 6
        days.update(day % 7 for day in range(start, end + 1, step))
    if not days:
        raise ValueError(f"Empty day of week field: {field}")
    return ",".join(_WEEKDAY_NAMES[day] for day in sorted(days))


class ApschedulerHandle:
    """Cancellable handle for one APScheduler cron job."""

    def __init__(self, scheduler: AsyncIOScheduler, job: Job, trigger: CronTrigger) -> None:
        self._scheduler = scheduler
        self._job = job
        self._trigger = trigger
        self._cancelled = False

    @property
    def job_id(self) -> str:
        return self._job.id

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        # A later add with replace_existing may own the id now; leave that one alone.
        if self._scheduler.get_job(self._job.id) is not self._job:
            return
        try:
            self._scheduler.remove_job(self._job.id)
        except JobLookupError:
            pass

    def next_fire_time(self, now: datetime | None = None) -> datetime | None:
        if self._cancelled:
            return None
        reference = now or datetime.now(self._trigger.timezone)
        return self._trigger.get_next_fire_time(None, reference)


class ApschedulerCronLibrary:
    """Validate crontab expressions and register cron timers on an ``AsyncIOScheduler``."""

    # meta: scheduler: backup-cron

    def __init__(
        self,
        scheduler: AsyncIOScheduler | None = None,
        *,
        timezone: str = "UTC",
        misfire_grace_seconds: int = 300,
    ) -> None:
        self._scheduler = scheduler or AsyncIOScheduler(timezone=ZoneInfo(timezone))
        self._misfire_grace_seconds = misfire_grace_seconds

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    def start(self) -> None:
        if self.running:
            return
        self._scheduler.start()
        logger.info("Backup cron facility started")

    async def stop(self) -> None:
        if not self.running:
            return
        result = self._scheduler.shutdown(wait=False)
        if inspect.isawaitable(result):
            await result
        logger.info("Backup cron facility stopped")

    def build_trigger(self, expression: str, timezone: str) -> CronTrigger:
        """Build a trigger from a five-field crontab or a six-field one led by seconds."""

        fields = expression.split()
        if len(fields) == 5:
            second = "0"
        elif len(fields) == 6:
            second = fields.pop(0)
        else:
            raise ValueError(f"Wrong number of fields; got {len(fields)}, expected 5 or 6")
        minute, hour, day, month, day_of_week = fields
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=crontab_day_of_week(day_of_week),
            timezone=ZoneInfo(timezone),
        )

    def validate(self, expression: str) -> bool:
        if not isinstance(expression, str) or not expression.strip():
            return False
        try:
            self.build_trigger(expression, "UTC")
        except (ValueError, TypeError):
            return False
        return True

    def schedule(
        self,
        expression: str,
        timezone: str,
        callback: TimerCallback,
        *,
        name: str,
    ) -> ApschedulerHandle:
        trigger = self.build_trigger(expression, timezone)
        job = self._scheduler.add_job(
            callback,
            trigger=trigger,
            id=f"{JOB_ID_PREFIX}{name}",
            name=name,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=self._misfire_grace_seconds,
        )
        return ApschedulerHandle(self._scheduler, job, trigger)

    def next_fire_time(self, expression: str, timezone: str, now: datetime | None = None) -> datetime | None:
        try:
            trigger = self.build_trigger(expression, timezone)
        except (ValueError, TypeError):
            return None
        reference = now or datetime.now(trigger.timezone)
        return trigger.get_next_fire_time(None, reference)


__all__ = ["ApschedulerCronLibrary", "ApschedulerHandle", "JOB_ID_PREFIX", "crontab_day_of_week"]
