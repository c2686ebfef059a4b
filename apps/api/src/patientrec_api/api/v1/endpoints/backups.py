"""Operator endpoints for the recurring backup scheduler."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from patientrec_api.api.dependencies.security import require_operator_api_key
from patientrec_api.scheduling import (
    BackupScheduler,
    InvalidCronExpression,
    JobNotFound,
    MissingCronExpression,
)
from patientrec_api.schemas.backup import (
    BackupRunResponse,
    CronValidationRequest,
    CronValidationResponse,
    JobScheduleResponse,
    ScheduledJobResponse,
    SchedulerHealthResponse,
)

router = APIRouter(
    prefix="/backups",
    tags=["Backups"],
    dependencies=[Depends(require_operator_api_key)],
)


def _get_scheduler(request: Request) -> BackupScheduler:
    scheduler = getattr(request.app.state, "backup_scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Backup scheduler unavailable")
    return scheduler


@router.get("/schedules", summary="List active backup schedules", response_model=list[ScheduledJobResponse])
async def list_schedules(request: Request) -> list[ScheduledJobResponse]:
    scheduler = _get_scheduler(request)
    return [
        ScheduledJobResponse(
            job_id=str(entry["job_id"]),
            is_running=bool(entry["is_running"]),
            next_run_at=scheduler.registry.next_run_time(str(entry["job_id"])),
        )
        for entry in scheduler.list_scheduled()
    ]


@router.post(
    "/jobs/{job_id}/trigger",
    summary="Run a backup job now",
    response_model=BackupRunResponse,
)
async def trigger_backup(job_id: str, request: Request) -> BackupRunResponse:
    scheduler = _get_scheduler(request)
    try:
        result = await scheduler.trigger_backup(job_id)
    except JobNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return BackupRunResponse.model_validate(result.as_dict())


@router.post(
    "/jobs/{job_id}/schedule",
    summary="Reload a backup job and refresh its schedule",
    response_model=JobScheduleResponse,
)
async def sync_job_schedule(job_id: str, request: Request) -> JobScheduleResponse:
    scheduler = _get_scheduler(request)
    try:
        job = await scheduler.sync_job(job_id)
    except JobNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (InvalidCronExpression, MissingCronExpression) as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    scheduled = job.id in scheduler.registry
    return JobScheduleResponse(
        job_id=job.id,
        enabled=job.enabled,
        scheduled=scheduled,
        description=scheduler.describe_schedule(job),
        next_run_at=scheduler.next_run_time(job) if scheduled else None,
    )


@router.delete(
    "/jobs/{job_id}/schedule",
    summary="Stop scheduling a backup job",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def unschedule_job(job_id: str, request: Request) -> None:
    scheduler = _get_scheduler(request)
    scheduler.unschedule_job(job_id)


@router.post(
    "/cron/validate",
    summary="Validate a cron expression",
    response_model=CronValidationResponse,
)
async def validate_cron(payload: CronValidationRequest, request: Request) -> CronValidationResponse:
    scheduler = _get_scheduler(request)
    expression = payload.expression.strip()
    valid = scheduler.validate_cron_expression(expression)
    next_run_at = None
    if valid:
        next_run_at = scheduler.resolver.next_fire_time(expression)
    return CronValidationResponse(expression=expression, valid=valid, next_run_at=next_run_at)


@router.get(
    "/scheduler/health",
    summary="Backup scheduler health",
    response_model=SchedulerHealthResponse,
)
async def scheduler_health(request: Request) -> SchedulerHealthResponse:
    scheduler = _get_scheduler(request)
    return SchedulerHealthResponse.model_validate(scheduler.health())


__all__ = ["router"]
