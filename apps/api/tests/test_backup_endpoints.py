import pytest
from httpx import ASGITransport, AsyncClient

from patientrec_api.core.settings import settings
from patientrec_api.scheduling import ApschedulerCronLibrary, BackupScheduler
from patientrec_api.services.backups import BackupRepository, LocalBackupService


async def _attach_scheduler(app, session_factory, backup_settings) -> tuple[BackupScheduler, BackupRepository]:
    repository = BackupRepository(session_factory)
    scheduler = BackupScheduler(
        repository=repository,
        backup_service=LocalBackupService(session_factory, repository, settings=backup_settings),
        cron_library=ApschedulerCronLibrary(timezone="UTC"),
    )
    app.state.backup_scheduler = scheduler
    return scheduler, repository


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_endpoints_unavailable_without_scheduler(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        response = await client.get("/api/v1/backups/schedules")

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_list_schedules_after_initialize(app_with_db, backup_settings) -> None:
    app, session_factory = app_with_db
    scheduler, repository = await _attach_scheduler(app, session_factory, backup_settings)
    job = await repository.create_job(name="nightly")
    await repository.create_job(name="paused", enabled=False)
    await scheduler.initialize()

    async with _client(app) as client:
        response = await client.get("/api/v1/backups/schedules")

    assert response.status_code == 200
    payload = response.json()
    assert [entry["job_id"] for entry in payload] == [job.id]
    assert payload[0]["is_running"] is True
    assert payload[0]["next_run_at"] is not None
    scheduler.shutdown()


@pytest.mark.asyncio
async def test_trigger_backup_runs_job(app_with_db, backup_settings) -> None:
    app, session_factory = app_with_db
    _, repository = await _attach_scheduler(app, session_factory, backup_settings)
    job = await repository.create_job(name="manual", collections=["backup_jobs"])

    async with _client(app) as client:
        response = await client.post(f"/api/v1/backups/jobs/{job.id}/trigger")
        missing = await client.post("/api/v1/backups/jobs/00000000-0000-0000-0000-000000000000/trigger")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "success"
    assert payload["filename"].endswith(".tar.gz")
    assert payload["cleanup"]["cutoff"] is None
    assert missing.status_code == 404
    refreshed = await repository.find_job_by_id(job.id)
    assert refreshed.last_run_status == "success"


@pytest.mark.asyncio
async def test_sync_and_unschedule_job(app_with_db, backup_settings) -> None:
    app, session_factory = app_with_db
    scheduler, repository = await _attach_scheduler(app, session_factory, backup_settings)
    job = await repository.create_job(name="weekly", frequency="weekly")
    broken = await repository.create_job(name="broken", frequency="custom", cron_expression="70 * * * *")

    async with _client(app) as client:
        synced = await client.post(f"/api/v1/backups/jobs/{job.id}/schedule")
        invalid = await client.post(f"/api/v1/backups/jobs/{broken.id}/schedule")
        unscheduled = await client.delete(f"/api/v1/backups/jobs/{job.id}/schedule")
        unknown = await client.post("/api/v1/backups/jobs/not-a-job/schedule")

    assert synced.status_code == 200
    body = synced.json()
    assert body["scheduled"] is True
    assert body["description"] == "Every Sunday at 2:00 AM (UTC)"
    assert invalid.status_code == 422
    assert unscheduled.status_code == 204
    assert unknown.status_code == 404
    assert len(scheduler.registry) == 0


@pytest.mark.asyncio
async def test_validate_cron_expression(app_with_db, backup_settings) -> None:
    app, session_factory = app_with_db
    await _attach_scheduler(app, session_factory, backup_settings)

    async with _client(app) as client:
        valid = await client.post("/api/v1/backups/cron/validate", json={"expression": "*/30 * * * *"})
        invalid = await client.post("/api/v1/backups/cron/validate", json={"expression": "every day"})

    assert valid.json()["valid"] is True
    assert valid.json()["next_run_at"] is not None
    assert invalid.json() == {"expression": "every day", "valid": False, "next_run_at": None}


@pytest.mark.asyncio
async def test_scheduler_health_and_readiness(app_with_db, backup_settings) -> None:
    app, session_factory = app_with_db
    scheduler, repository = await _attach_scheduler(app, session_factory, backup_settings)
    await repository.create_job(name="nightly")

    async with _client(app) as client:
        before = await client.get("/api/v1/health/readyz")
        await scheduler.initialize()
        health = await client.get("/api/v1/backups/scheduler/health")
        after = await client.get("/api/v1/health/readyz")

    assert before.json()["components"]["backup_scheduler"]["status"] == "starting"
    assert health.status_code == 200
    assert health.json()["state"] == "initialized"
    assert health.json()["scheduled_jobs"] == 1
    ready = after.json()
    assert ready["components"]["database"]["status"] == "ready"
    assert ready["components"]["backup_scheduler"]["status"] == "ready"
    assert ready["status"] == "ready"
    scheduler.shutdown()


@pytest.mark.asyncio
async def test_operator_key_required_when_configured(app_with_db, backup_settings) -> None:
    app, session_factory = app_with_db
    await _attach_scheduler(app, session_factory, backup_settings)

    previous_key = settings.operator_api_key
    settings.operator_api_key = "operator-key"
    try:
        async with _client(app) as client:
            denied = await client.get("/api/v1/backups/schedules")
            allowed = await client.get("/api/v1/backups/schedules", headers={"X-API-Key": "operator-key"})
    finally:
        settings.operator_api_key = previous_key

    assert denied.status_code == 401
    assert allowed.status_code == 200
