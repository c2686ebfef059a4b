"""Collaborator contracts consumed by the backup scheduler."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Protocol, Sequence, runtime_checkable

from patientrec_api.models.backup import BackupHistory, BackupHistoryStatusEnum, BackupRunStatusEnum

from .config import BackupJobView

TimerCallback = Callable[[], Awaitable[Any]]


@dataclass(slots=True)
class BackupArtifact:
    """What a backup producer hands back after writing an archive."""

    history_id: str
    filename: str
    size_bytes: int


class JobRepository(Protocol):
    async def find_all_enabled_jobs(self) -> list[BackupJobView]: ...

    async def find_job_by_id(self, job_id: str) -> BackupJobView | None: ...

    async def update_job_last_run(
        self,
        job_id: str,
        status: BackupRunStatusEnum,
        error_message: str | None = None,
    ) -> None: ...

    async def find_history_older_than(
        self,
        job_id: str,
        cutoff: datetime,
        statuses: Iterable[BackupHistoryStatusEnum],
        *,
        limit: int = 1000,
    ) -> Sequence[BackupHistory]: ...

    async def delete_history(self, history_id: str) -> bool: ...


class BackupService(Protocol):
    async def create_backup(self, job: BackupJobView) -> BackupArtifact: ...

    async def delete_backup_file(self, history_id: str) -> None: ...


@runtime_checkable
class CancellableHandle(Protocol):
    def cancel(self) -> None: ...


class CronLibrary(Protocol):
    def validate(self, expression: str) -> bool: ...

    def schedule(
        self,
        expression: str,
        timezone: str,
        callback: TimerCallback,
        *,
        name: str,
    ) -> CancellableHandle: ...

    def next_fire_time(self, expression: str, timezone: str, now: datetime | None = None) -> datetime | None: ...


__all__ = [
    "BackupArtifact",
    "BackupService",
    "CancellableHandle",
    "CronLibrary",
    "JobRepository",
    "TimerCallback",
]
