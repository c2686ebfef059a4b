import json
import tarfile
from pathlib import Path

import pytest

from patientrec_api.core.settings import Settings
from patientrec_api.models.backup import BackupHistoryStatusEnum
from patientrec_api.services.backups import BackupNotFound, BackupRepository, LocalBackupService


@pytest.mark.asyncio
async def test_create_backup_writes_archive_and_history(session_factory, backup_settings) -> None:
    repository = BackupRepository(session_factory)
    service = LocalBackupService(session_factory, repository, settings=backup_settings)
    job = await repository.create_job(name="full", collections=["backup_jobs"])

    artifact = await service.create_backup(job)

    archive_path = service.storage_path / artifact.filename
    assert archive_path.exists()
    assert artifact.size_bytes == archive_path.stat().st_size
    with tarfile.open(archive_path, "r:gz") as archive:
        names = set(archive.getnames())
        manifest = json.load(archive.extractfile("manifest.json"))
        rows = json.load(archive.extractfile("backup_jobs.json"))
    assert names == {"manifest.json", "backup_jobs.json"}
    assert manifest["job_id"] == job.id
    assert manifest["collections"] == {"backup_jobs": 1}
    assert rows[0]["name"] == "full"

    record = await repository.find_history_by_id(artifact.history_id)
    assert record.status == BackupHistoryStatusEnum.COMPLETED
    assert record.size_bytes == artifact.size_bytes
    assert record.completed_at is not None


@pytest.mark.asyncio
async def test_create_backup_without_collections_exports_all_tables(session_factory, tmp_path: Path) -> None:
    settings = Settings(backup_storage_path=str(tmp_path), backup_excluded_tables="backup_history")
    repository = BackupRepository(session_factory)
    service = LocalBackupService(session_factory, repository, settings=settings)
    job = await repository.create_job(name="everything")

    artifact = await service.create_backup(job)

    with tarfile.open(service.storage_path / artifact.filename, "r:gz") as archive:
        assert set(archive.getnames()) == {"manifest.json", "backup_jobs.json"}


@pytest.mark.asyncio
async def test_create_backup_with_unknown_collection_fails_history(session_factory, backup_settings) -> None:
    repository = BackupRepository(session_factory)
    service = LocalBackupService(session_factory, repository, settings=backup_settings)
    job = await repository.create_job(name="ghost", collections=["ghosts"])

    with pytest.raises(ValueError, match="ghosts"):
        await service.create_backup(job)

    (record,) = await repository.find_history_for_job(job.id)
    assert record.status == BackupHistoryStatusEnum.FAILED
    assert "ghosts" in record.error
    assert not Path(record.file_path).exists()


@pytest.mark.asyncio
async def test_delete_backup_file_removes_artifact(session_factory, backup_settings) -> None:
    repository = BackupRepository(session_factory)
    service = LocalBackupService(session_factory, repository, settings=backup_settings)
    job = await repository.create_job(name="delete-me")
    artifact = await service.create_backup(job)

    await service.delete_backup_file(artifact.history_id)
    # Already gone is not an error.
    await service.delete_backup_file(artifact.history_id)

    assert not (service.storage_path / artifact.filename).exists()


@pytest.mark.asyncio
async def test_delete_backup_file_unknown_history(session_factory, backup_settings) -> None:
    repository = BackupRepository(session_factory)
    service = LocalBackupService(session_factory, repository, settings=backup_settings)

    with pytest.raises(BackupNotFound):
        await service.delete_backup_file("00000000-0000-0000-0000-000000000000")


@pytest.mark.asyncio
async def test_delete_backup_file_refuses_paths_outside_storage(session_factory, backup_settings, tmp_path: Path) -> None:
    repository = BackupRepository(session_factory)
    service = LocalBackupService(session_factory, repository, settings=backup_settings)
    outside = tmp_path / "elsewhere.txt"
    outside.write_text("keep me")
    record = await repository.create_history(job=None, filename=outside.name, file_path=str(outside))

    with pytest.raises(ValueError):
        await service.delete_backup_file(str(record.id))

    assert outside.exists()
