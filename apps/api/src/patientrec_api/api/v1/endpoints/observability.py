"""Prometheus-style metrics for the backup scheduler."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from patientrec_api.api.dependencies.security import require_operator_api_key
from patientrec_api.observability.scheduler import get_backup_scheduler_store

router = APIRouter(prefix="/observability", tags=["Observability"])

_TOTAL_METRICS = (
    ("runs", "patientrec_backup_runs_total", "Backup runs dispatched"),
    ("success", "patientrec_backup_success_total", "Backup runs that completed"),
    ("failures", "patientrec_backup_failures_total", "Backup runs that failed"),
    ("skipped", "patientrec_backup_skipped_total", "Timer fires skipped because a run was in flight"),
    ("artifacts_deleted", "patientrec_backup_artifacts_deleted_total", "Expired backup artifacts deleted"),
    ("cleanup_failures", "patientrec_backup_cleanup_failures_total", "Expired backup artifacts that failed to delete"),
)


def _format_metric(
    name: str,
    help_text: str,
    value: int | float,
    labels: dict[str, str] | None = None,
    *,
    metric_type: str = "counter",
) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {help_text}",
        f"# TYPE {name} {metric_type}",
        f"{name}{label_fragment} {value}",
    ]


@router.get(
    "/metrics",
    summary="Prometheus metrics for backup scheduling",
    response_class=PlainTextResponse,
    dependencies=[Depends(require_operator_api_key)],
)
async def scheduler_metrics() -> PlainTextResponse:
    snapshot = get_backup_scheduler_store().snapshot()
    lines: list[str] = []
    for key, name, help_text in _TOTAL_METRICS:
        lines.extend(_format_metric(name, help_text, snapshot.totals.get(key, 0)))

    for job_id, job_snapshot in snapshot.jobs.items():
        lines.extend(
            _format_metric(
                "patientrec_backup_job_consecutive_failures",
                "Consecutive failed runs per backup job",
                job_snapshot.totals.get("consecutive_failures", 0),
                {"job_id": job_id},
                metric_type="gauge",
            )
        )
    return PlainTextResponse(content="\n".join(lines) + "\n", media_type="text/plain; version=0.0.4")
