"""Local filesystem backup producer: one gzipped tarball of JSON table dumps per run."""

from __future__ import annotations

import asyncio
import io
import json
import tarfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping
from uuid import uuid4

from loguru import logger
from sqlalchemy import MetaData, select

from patientrec_api.core.settings import Settings, get_settings
from patientrec_api.db.base import Base
from patientrec_api.scheduling.config import BackupJobView
from patientrec_api.scheduling.interfaces import BackupArtifact

from .repository import BackupRepository, SessionFactory, ensure_session


class BackupNotFound(LookupError):
    def __init__(self, history_id: str) -> None:
        super().__init__(f"Backup not found: {history_id}")
        self.history_id = history_id


class LocalBackupService:
    """Writes backup archives under ``backup_storage_path`` and deletes them on request."""

    def __init__(
        self,
        session_factory: SessionFactory,
        repository: BackupRepository,
        *,
        settings: Settings | None = None,
        metadata: MetaData | None = None,
        storage_path: Path | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._repository = repository
        self._settings = settings or get_settings()
        self._metadata = metadata or Base.metadata
        self._storage_path = (storage_path or Path(self._settings.backup_storage_path)).resolve()
        self._excluded = set(self._settings.backup_excluded_tables)

    @property
    def storage_path(self) -> Path:
        return self._storage_path

    async def create_backup(self, job: BackupJobView) -> BackupArtifact:
        started_at = datetime.now(timezone.utc)
        filename = f"backup-{started_at.strftime('%Y%m%dT%H%M%SZ')}-{uuid4().hex[:8]}.tar.gz"
        archive_path = self._storage_path / filename
        history = await self._repository.create_history(
            job=job,
            filename=filename,
            file_path=str(archive_path),
            collections=job.collections,
            started_at=started_at,
        )
        history_id = str(history.id)

        try:
            tables = self._select_tables(job.collections)
            dumps = await self._export_tables(tables)
            manifest = {
                "job_id": job.id,
                "job_name": job.name,
                "created_at": started_at.isoformat(),
                "collections": {name: len(rows) for name, rows in dumps.items()},
            }
            size_bytes = await asyncio.to_thread(self._write_archive, archive_path, dumps, manifest)
        except Exception as exc:
            await self._repository.complete_history(history_id, error=str(exc) or exc.__class__.__name__)
            await asyncio.to_thread(archive_path.unlink, missing_ok=True)
            raise

        await self._repository.complete_history(history_id, size_bytes=size_bytes)
        logger.info("Backup archive written", job_id=job.id, filename=filename, size_bytes=size_bytes)
        return BackupArtifact(history_id=history_id, filename=filename, size_bytes=size_bytes)

    async def delete_backup_file(self, history_id: str) -> None:
        record = await self._repository.find_history_by_id(history_id)
        if record is None:
            raise BackupNotFound(history_id)

        path = Path(record.file_path).resolve()
        if not path.is_relative_to(self._storage_path):
            raise ValueError(f"Refusing to delete {path}: outside backup storage {self._storage_path}")
        # An artifact that is already gone counts as deleted.
        await asyncio.to_thread(path.unlink, missing_ok=True)
        logger.info("Backup file deleted", history_id=history_id, filename=record.filename)

    def _select_tables(self, requested: Iterable[str]) -> list[str]:
        available = [name for name in self._metadata.tables if name not in self._excluded]
        names = list(requested)
        if not names:
            return available
        unknown = sorted(set(names) - set(available))
        if unknown:
            raise ValueError(f"Unknown collections: {', '.join(unknown)}")
        return names

    async def _export_tables(self, tables: list[str]) -> dict[str, list[dict[str, Any]]]:
        session = await ensure_session(self._session_factory)
        dumps: dict[str, list[dict[str, Any]]] = {}
        async with session as managed_session:
            for name in tables:
                table = self._metadata.tables[name]
                result = await managed_session.execute(select(table))
                dumps[name] = [dict(row._mapping) for row in result]
        return dumps

    @staticmethod
    def _write_archive(
        archive_path: Path,
        dumps: Mapping[str, list[dict[str, Any]]],
        manifest: Mapping[str, Any],
    ) -> int:
        archive_path.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive_path, "w:gz") as archive:
            members = {"manifest.json": manifest, **{f"{name}.json": rows for name, rows in dumps.items()}}
            for member_name, payload in members.items():
                data = json.dumps(payload, default=str, indent=2).encode("utf-8")
                info = tarfile.TarInfo(name=member_name)
                info.size = len(data)
                info.mtime = int(datetime.now(timezone.utc).timestamp())
                archive.addfile(info, io.BytesIO(data))
        return archive_path.stat().st_size


__all__ = ["BackupNotFound", "LocalBackupService"]
