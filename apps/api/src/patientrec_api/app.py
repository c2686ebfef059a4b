from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from loguru import logger

from patientrec_api.core.settings import settings
from patientrec_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .scheduling import ApschedulerCronLibrary, BackupScheduler, load_job_definitions
from .services.backups import BackupRepository, LocalBackupService


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


async def _seed_jobs(repository: BackupRepository, seed_path: Path) -> None:
    definitions = load_job_definitions(seed_path)
    for definition in definitions:
        job, created = await repository.upsert_job_definition(definition)
        logger.info("Seeded backup job", job_id=job.id, job_name=job.name, created=created)


@asynccontextmanager
async def lifespan(app: FastAPI):
    repository = BackupRepository(_session_factory)
    backup_service = LocalBackupService(_session_factory, repository, settings=settings)
    cron_library = ApschedulerCronLibrary(
        timezone=settings.backup_scheduler_timezone,
        misfire_grace_seconds=settings.backup_misfire_grace_seconds,
    )
    backup_scheduler = BackupScheduler(
        repository=repository,
        backup_service=backup_service,
        cron_library=cron_library,
        timezone=settings.backup_scheduler_timezone,
        purge_expired_history=settings.backup_purge_expired_history,
        retention_batch_limit=settings.backup_retention_batch_limit,
    )

    app.state.backup_repository = repository
    app.state.backup_service = backup_service
    app.state.backup_cron_library = cron_library
    app.state.backup_scheduler = backup_scheduler

    scheduler_enabled = settings.backup_scheduler_enabled
    if scheduler_enabled:
        if settings.backup_job_seed_path:
            seed_path = Path(settings.backup_job_seed_path)
            try:
                await _seed_jobs(repository, seed_path)
            except FileNotFoundError as exc:
                logger.exception("Backup job seeding skipped", error=str(exc))

        cron_library.start()
        try:
            await backup_scheduler.initialize()
        except Exception as exc:
            logger.exception("Backup scheduler failed to start", error=str(exc))
        else:
            logger.info(
                "Backup scheduler enabled",
                timezone=settings.backup_scheduler_timezone,
                scheduled_jobs=len(backup_scheduler.registry),
                storage_path=str(backup_service.storage_path),
            )
    else:
        logger.info(
            "Backup scheduler disabled",
            reason="backup_scheduler_enabled is false",
        )

    try:
        yield
    finally:
        if scheduler_enabled:
            backup_scheduler.shutdown()
            drained = await backup_scheduler.wait_until_idle(settings.backup_drain_timeout_seconds)
            if not drained:
                logger.warning(
                    "Backup runs still in flight at shutdown",
                    in_flight=sorted(backup_scheduler.pipeline.in_flight),
                )
            await cron_library.stop()


def create_app() -> FastAPI:
    """Application factory for the patient-record backup API."""
    configure_logging(
        service_name="patientrec-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="Patient Record Backup API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        settings=settings,
        service_name="patientrec-api",
        service_version=APP_VERSION,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
