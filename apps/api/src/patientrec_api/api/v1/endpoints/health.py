from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from patientrec_api.core.settings import settings
from patientrec_api.db.session import get_session

router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "starting", "disabled", "error", "degraded"]
    detail: str | None = Field(default=None, description="Human readable status detail")
    last_error_at: str | None = Field(default=None, description="ISO timestamp of most recent error")
    last_success_at: str | None = Field(default=None, description="ISO timestamp of most recent success")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
    except Exception as exc:
        components["database"] = ComponentStatus(status="error", detail=str(exc))
        status = "error"
    else:
        components["database"] = ComponentStatus(status="ready")

    scheduler = getattr(request.app.state, "backup_scheduler", None)
    if not settings.backup_scheduler_enabled or scheduler is None:
        components["backup_scheduler"] = ComponentStatus(
            status="disabled",
            detail="Backup scheduler disabled via settings",
        )
    else:
        health = scheduler.health()
        latest_success: str | None = None
        latest_error: str | None = None
        failing: list[str] = []
        for job in health["jobs"]:
            metrics = job.get("metrics") or {}
            if metrics.get("last_success_at"):
                latest_success = max(latest_success or "", metrics["last_success_at"])
            if metrics.get("last_error_at"):
                latest_error = max(latest_error or "", metrics["last_error_at"])
            if metrics.get("last_error"):
                failing.append(str(job["id"]))

        if not health["running"]:
            component_status: Literal["ready", "starting", "degraded"] = "starting"
            detail: str | None = "Backup scheduler not initialized"
        elif failing:
            component_status = "degraded"
            detail = f"Last run failed for jobs: {', '.join(failing)}"
        else:
            component_status = "ready"
            detail = f"{health['scheduled_jobs']} jobs scheduled"
        if component_status != "ready" and status == "ready":
            status = "degraded"
        components["backup_scheduler"] = ComponentStatus(
            status=component_status,
            detail=detail,
            last_error_at=latest_error,
            last_success_at=latest_success,
        )

    return ReadinessPayload(status=status, components=components)
