"""Observability store for backup scheduler runs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class BackupJobSnapshot:
    """Serializable view of one job's run counters."""

    job_id: str
    totals: Dict[str, int]
    timings: Dict[str, float]
    last_started_at: datetime | None
    last_completed_at: datetime | None
    last_success_at: datetime | None
    last_error_at: datetime | None
    last_error: str | None
    last_artifact: str | None

    def as_dict(self) -> Dict[str, object]:
        return {
            "job_id": self.job_id,
            "totals": self.totals,
            "timings": self.timings,
            "last_started_at": _iso(self.last_started_at),
            "last_completed_at": _iso(self.last_completed_at),
            "last_success_at": _iso(self.last_success_at),
            "last_error_at": _iso(self.last_error_at),
            "last_error": self.last_error,
            "last_artifact": self.last_artifact,
        }


@dataclass
class BackupSchedulerSnapshot:
    totals: Dict[str, int]
    jobs: Dict[str, BackupJobSnapshot]

    def as_dict(self) -> Dict[str, object]:
        return {
            "totals": self.totals,
            "jobs": {job_id: snapshot.as_dict() for job_id, snapshot in self.jobs.items()},
        }


@dataclass
class BackupJobState:
    job_id: str
    total_runs: int = 0
    total_success: int = 0
    total_failures: int = 0
    total_skipped: int = 0
    total_artifacts_deleted: int = 0
    total_cleanup_failures: int = 0
    total_runtime_seconds: float = 0.0
    consecutive_failures: int = 0
    last_started_at: datetime | None = None
    last_completed_at: datetime | None = None
    last_success_at: datetime | None = None
    last_error_at: datetime | None = None
    last_error: str | None = None
    last_artifact: str | None = None

    def snapshot(self) -> BackupJobSnapshot:
        return BackupJobSnapshot(
            job_id=self.job_id,
            totals={
                "runs": self.total_runs,
                "success": self.total_success,
                "failures": self.total_failures,
                "skipped": self.total_skipped,
                "artifacts_deleted": self.total_artifacts_deleted,
                "cleanup_failures": self.total_cleanup_failures,
                "consecutive_failures": self.consecutive_failures,
            },
            timings={"total_runtime_seconds": self.total_runtime_seconds},
            last_started_at=self.last_started_at,
            last_completed_at=self.last_completed_at,
            last_success_at=self.last_success_at,
            last_error_at=self.last_error_at,
            last_error=self.last_error,
            last_artifact=self.last_artifact,
        )


class BackupSchedulerObservabilityStore:
    """Tracks backup run outcomes per job."""

    # meta: observability: backup-scheduler

    def __init__(self) -> None:
        self._lock: Lock = Lock()
        self._jobs: Dict[str, BackupJobState] = {}

    def reset(self) -> None:
        with self._lock:
            self._jobs.clear()

    def _get_state(self, job_id: str) -> BackupJobState:
        state = self._jobs.get(job_id)
        if state is None:
            state = BackupJobState(job_id=job_id)
            self._jobs[job_id] = state
        return state

    def record_dispatch(self, job_id: str) -> None:
        with self._lock:
            state = self._get_state(job_id)
            state.total_runs += 1
            state.last_started_at = _utcnow()
            state.last_completed_at = None

    def record_skipped(self, job_id: str) -> None:
        with self._lock:
            self._get_state(job_id).total_skipped += 1

    def record_success(self, job_id: str, *, runtime_seconds: float, artifact: str | None = None) -> None:
        with self._lock:
            state = self._get_state(job_id)
            state.total_success += 1
            state.total_runtime_seconds += runtime_seconds
            state.last_completed_at = _utcnow()
            state.last_success_at = state.last_completed_at
            state.last_artifact = artifact
            state.consecutive_failures = 0
            state.last_error = None
            state.last_error_at = None

    def record_failure(self, job_id: str, *, runtime_seconds: float, error: str) -> None:
        with self._lock:
            state = self._get_state(job_id)
            state.total_failures += 1
            state.total_runtime_seconds += runtime_seconds
            state.consecutive_failures += 1
            state.last_completed_at = _utcnow()
            state.last_error = error
            state.last_error_at = state.last_completed_at

    def record_cleanup(self, job_id: str, *, deleted: int, failures: int) -> None:
        with self._lock:
            state = self._get_state(job_id)
            state.total_artifacts_deleted += deleted
            state.total_cleanup_failures += failures

    def snapshot(self) -> BackupSchedulerSnapshot:
        with self._lock:
            jobs = {job_id: state.snapshot() for job_id, state in self._jobs.items()}
            states = list(self._jobs.values())
            totals = {
                "runs": sum(state.total_runs for state in states),
                "success": sum(state.total_success for state in states),
                "failures": sum(state.total_failures for state in states),
                "skipped": sum(state.total_skipped for state in states),
                "artifacts_deleted": sum(state.total_artifacts_deleted for state in states),
                "cleanup_failures": sum(state.total_cleanup_failures for state in states),
            }
        return BackupSchedulerSnapshot(totals=totals, jobs=jobs)


_SCHEDULER_STORE = BackupSchedulerObservabilityStore()


def get_backup_scheduler_store() -> BackupSchedulerObservabilityStore:
    return _SCHEDULER_STORE


__all__ = [
    "BackupSchedulerObservabilityStore",
    "BackupSchedulerSnapshot",
    "get_backup_scheduler_store",
]
