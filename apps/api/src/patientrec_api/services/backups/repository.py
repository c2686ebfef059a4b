"""SQLAlchemy persistence for backup jobs and backup history."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Sequence
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from patientrec_api.models.backup import (
    BackupFrequencyEnum,
    BackupHistory,
    BackupHistoryStatusEnum,
    BackupJob,
    BackupRunStatusEnum,
)
from patientrec_api.scheduling.config import BackupJobDefinition, BackupJobView

SessionFactory = Callable[[], Awaitable[AsyncSession]] | Callable[[], AsyncSession]


async def ensure_session(session_factory: SessionFactory) -> AsyncSession:
    maybe_session = session_factory()
    if isinstance(maybe_session, AsyncSession):
        return maybe_session
    return await maybe_session


def _check_retention_days(retention_days: int | None) -> int | None:
    if retention_days is not None and retention_days < 0:
        raise ValueError(f"retention_days must be non-negative, got {retention_days}")
    return retention_days


def _as_uuid(value: str | UUID) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class BackupRepository:
    """Short-lived session per call; returns detached views and rows."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def _ensure_session(self) -> AsyncSession:
        return await ensure_session(self._session_factory)

    # Backup jobs

    async def find_all_enabled_jobs(self) -> list[BackupJobView]:
        session = await self._ensure_session()
        async with session as managed_session:
            stmt = select(BackupJob).where(BackupJob.enabled.is_(True)).order_by(BackupJob.created_at.desc())
            result = await managed_session.execute(stmt)
            return [BackupJobView.from_model(job) for job in result.scalars().all()]

    async def find_job_by_id(self, job_id: str) -> BackupJobView | None:
        job_uuid = _as_uuid(job_id)
        if job_uuid is None:
            return None
        session = await self._ensure_session()
        async with session as managed_session:
            job = await managed_session.get(BackupJob, job_uuid)
            return BackupJobView.from_model(job) if job else None

    async def create_job(
        self,
        *,
        name: str,
        frequency: BackupFrequencyEnum | str = BackupFrequencyEnum.DAILY,
        cron_expression: str | None = None,
        enabled: bool = True,
        retention_days: int | None = None,
        collections: Iterable[str] = (),
        description: str | None = None,
    ) -> BackupJobView:
        _check_retention_days(retention_days)
        session = await self._ensure_session()
        async with session as managed_session:
            job = BackupJob(
                name=name,
                description=description,
                frequency=BackupFrequencyEnum(frequency),
                cron_expression=cron_expression,
                enabled=enabled,
                retention_days=retention_days,
                collections=list(collections),
            )
            managed_session.add(job)
            await managed_session.commit()
            await managed_session.refresh(job)
            return BackupJobView.from_model(job)

    async def upsert_job_definition(self, definition: BackupJobDefinition) -> tuple[BackupJobView, bool]:
        """Create or update a job by name; returns the job and whether it was created."""

        _check_retention_days(definition.retention_days)
        session = await self._ensure_session()
        async with session as managed_session:
            result = await managed_session.execute(select(BackupJob).where(BackupJob.name == definition.name))
            job = result.scalar_one_or_none()
            created = job is None
            if job is None:
                job = BackupJob(name=definition.name)
                managed_session.add(job)
            job.description = definition.description
            job.frequency = BackupFrequencyEnum(definition.frequency)
            job.cron_expression = definition.cron_expression
            job.enabled = definition.enabled
            job.retention_days = definition.retention_days
            job.collections = list(definition.collections)
            await managed_session.commit()
            await managed_session.refresh(job)
            return BackupJobView.from_model(job), created

    async def update_job_last_run(
        self,
        job_id: str,
        status: BackupRunStatusEnum,
        error_message: str | None = None,
    ) -> None:
        job_uuid = _as_uuid(job_id)
        if job_uuid is None:
            return
        session = await self._ensure_session()
        async with session as managed_session:
            await managed_session.execute(
                update(BackupJob)
                .where(BackupJob.id == job_uuid)
                .values(
                    last_run_at=datetime.now(timezone.utc),
                    last_run_status=status,
                    last_run_error=error_message or None,
                )
            )
            await managed_session.commit()

    # Backup history

    async def create_history(
        self,
        *,
        job: BackupJobView | None,
        filename: str,
        file_path: str,
        collections: Iterable[str] = (),
        started_at: datetime | None = None,
    ) -> BackupHistory:
        session = await self._ensure_session()
        async with session as managed_session:
            record = BackupHistory(
                job_id=_as_uuid(job.id) if job else None,
                job_name=job.name if job else None,
                filename=filename,
                file_path=file_path,
                collections=list(collections),
                status=BackupHistoryStatusEnum.RUNNING,
                started_at=started_at or datetime.now(timezone.utc),
            )
            managed_session.add(record)
            await managed_session.commit()
            await managed_session.refresh(record)
            return record

    async def complete_history(
        self,
        history_id: str,
        *,
        size_bytes: int = 0,
        error: str | None = None,
    ) -> None:
        history_uuid = _as_uuid(history_id)
        if history_uuid is None:
            return
        session = await self._ensure_session()
        async with session as managed_session:
            await managed_session.execute(
                update(BackupHistory)
                .where(BackupHistory.id == history_uuid)
                .values(
                    status=BackupHistoryStatusEnum.FAILED if error else BackupHistoryStatusEnum.COMPLETED,
                    completed_at=datetime.now(timezone.utc),
                    size_bytes=size_bytes,
                    error=error,
                )
            )
            await managed_session.commit()

    async def find_history_by_id(self, history_id: str) -> BackupHistory | None:
        history_uuid = _as_uuid(history_id)
        if history_uuid is None:
            return None
        session = await self._ensure_session()
        async with session as managed_session:
            return await managed_session.get(BackupHistory, history_uuid)

    async def find_history_for_job(self, job_id: str, *, limit: int = 100) -> list[BackupHistory]:
        job_uuid = _as_uuid(job_id)
        if job_uuid is None:
            return []
        session = await self._ensure_session()
        async with session as managed_session:
            stmt = (
                select(BackupHistory)
                .where(BackupHistory.job_id == job_uuid)
                .order_by(BackupHistory.started_at.desc())
                .limit(limit)
            )
            result = await managed_session.execute(stmt)
            return list(result.scalars().all())

    async def find_history_older_than(
        self,
        job_id: str,
        cutoff: datetime,
        statuses: Iterable[BackupHistoryStatusEnum],
        *,
        limit: int = 1000,
    ) -> Sequence[BackupHistory]:
        job_uuid = _as_uuid(job_id)
        if job_uuid is None:
            return []
        session = await self._ensure_session()
        async with session as managed_session:
            stmt = (
                select(BackupHistory)
                .where(
                    BackupHistory.job_id == job_uuid,
                    BackupHistory.started_at < cutoff,
                    BackupHistory.status.in_(list(statuses)),
                )
                .order_by(BackupHistory.started_at.asc())
                .limit(limit)
            )
            result = await managed_session.execute(stmt)
            return list(result.scalars().all())

    async def delete_history(self, history_id: str) -> bool:
        history_uuid = _as_uuid(history_id)
        if history_uuid is None:
            return False
        session = await self._ensure_session()
        async with session as managed_session:
            result = await managed_session.execute(delete(BackupHistory).where(BackupHistory.id == history_uuid))
            await managed_session.commit()
            return bool(result.rowcount)


__all__ = ["BackupRepository", "SessionFactory", "ensure_session"]
