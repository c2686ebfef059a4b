"""Response and request payloads for backup operator endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class ScheduledJobResponse(BaseModel):
    job_id: str
    is_running: bool = Field(description="Job has an active schedule (not whether a run is executing)")
    next_run_at: datetime | None = None


class CronValidationRequest(BaseModel):
    expression: str = Field(..., min_length=1, max_length=120)


class CronValidationResponse(BaseModel):
    expression: str
    valid: bool
    next_run_at: datetime | None = None


class CleanupFailurePayload(BaseModel):
    history_id: str
    filename: str
    error: str


class CleanupReportPayload(BaseModel):
    job_id: str
    cutoff: datetime | None = None
    examined: int = 0
    deleted: list[str] = Field(default_factory=list)
    purged_history: int = 0
    failures: list[CleanupFailurePayload] = Field(default_factory=list)
    error: str | None = None


class BackupRunResponse(BaseModel):
    job_id: str
    status: Literal["success", "failed", "skipped"]
    started_at: datetime
    completed_at: datetime | None = None
    filename: str | None = None
    size_bytes: int | None = None
    error: str | None = None
    cleanup: CleanupReportPayload | None = None


class JobScheduleResponse(BaseModel):
    job_id: str
    enabled: bool
    scheduled: bool
    description: str
    next_run_at: datetime | None = None


class SchedulerHealthResponse(BaseModel):
    state: str
    running: bool
    scheduled_jobs: int
    in_flight: list[str]
    totals: dict[str, int]
    jobs: list[dict[str, Any]]


__all__ = [
    "BackupRunResponse",
    "CleanupReportPayload",
    "CronValidationRequest",
    "CronValidationResponse",
    "JobScheduleResponse",
    "ScheduledJobResponse",
    "SchedulerHealthResponse",
]
