"""Map backup job frequencies onto cron expressions."""

from __future__ import annotations

from datetime import datetime

from patientrec_api.models.backup import BackupFrequencyEnum

from .config import BackupJobView
from .errors import MissingCronExpression
from .interfaces import CronLibrary

SCHEDULE_TIMEZONE = "UTC"

# Presets run at 02:00 UTC, outside clinic hours.
CRON_PRESETS: dict[str, str] = {
    BackupFrequencyEnum.DAILY.value: "0 2 * * *",
    BackupFrequencyEnum.WEEKLY.value: "0 2 * * 0",
    BackupFrequencyEnum.MONTHLY.value: "0 2 1 * *",
}

_PRESET_DESCRIPTIONS: dict[str, str] = {
    BackupFrequencyEnum.DAILY.value: "Every day at 2:00 AM (UTC)",
    BackupFrequencyEnum.WEEKLY.value: "Every Sunday at 2:00 AM (UTC)",
    BackupFrequencyEnum.MONTHLY.value: "First day of every month at 2:00 AM (UTC)",
}


class CronExpressionResolver:
    """Resolve, validate and describe the effective schedule of a job."""

    def __init__(self, cron_library: CronLibrary, *, timezone: str = SCHEDULE_TIMEZONE) -> None:
        self._cron = cron_library
        self._timezone = timezone

    @property
    def timezone(self) -> str:
        return self._timezone

    def resolve(self, job: BackupJobView) -> str:
        if job.frequency == BackupFrequencyEnum.CUSTOM.value:
            expression = (job.cron_expression or "").strip()
            if not expression:
                raise MissingCronExpression(job.id)
            return expression
        return CRON_PRESETS.get(job.frequency, CRON_PRESETS[BackupFrequencyEnum.DAILY.value])

    def validate(self, expression: str) -> bool:
        return self._cron.validate(expression)

    def describe(self, job: BackupJobView) -> str:
        if job.frequency == BackupFrequencyEnum.CUSTOM.value:
            return job.cron_expression or "Custom schedule"
        return _PRESET_DESCRIPTIONS.get(job.frequency, "Unknown schedule")

    def next_run_time(self, job: BackupJobView, now: datetime | None = None) -> datetime | None:
        """Next fire time computed by the same cron evaluator that drives the timers."""

        try:
            expression = self.resolve(job)
        except MissingCronExpression:
            return None
        return self.next_fire_time(expression, now)

    def next_fire_time(self, expression: str, now: datetime | None = None) -> datetime | None:
        if not self.validate(expression):
            return None
        return self._cron.next_fire_time(expression, self._timezone, now)


__all__ = ["CRON_PRESETS", "CronExpressionResolver", "SCHEDULE_TIMEZONE"]
