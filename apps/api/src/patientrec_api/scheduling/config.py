"""Backup job definitions as seen by the scheduler, plus the TOML seed loader."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import tomllib

from patientrec_api.models.backup import BackupFrequencyEnum, BackupJob


@dataclass(frozen=True, slots=True)
class BackupJobView:
    """Detached, read-only snapshot of a backup job for one scheduling decision."""

    id: str
    name: str
    enabled: bool
    frequency: str
    cron_expression: str | None = None
    retention_days: int | None = None
    collections: tuple[str, ...] = ()
    last_run_status: str | None = None
    last_run_at: datetime | None = None
    last_run_error: str | None = None

    @classmethod
    def from_model(cls, job: BackupJob) -> "BackupJobView":
        frequency = job.frequency.value if isinstance(job.frequency, BackupFrequencyEnum) else str(job.frequency)
        last_status = job.last_run_status
        return cls(
            id=str(job.id),
            name=job.name,
            enabled=bool(job.enabled),
            frequency=frequency,
            cron_expression=job.cron_expression,
            retention_days=job.retention_days,
            collections=tuple(job.collections or ()),
            last_run_status=getattr(last_status, "value", last_status),
            last_run_at=job.last_run_at,
            last_run_error=job.last_run_error,
        )


@dataclass(slots=True)
class BackupJobDefinition:
    """Declarative job entry loaded from a seed file."""

    name: str
    frequency: str
    cron_expression: str | None = None
    description: str | None = None
    enabled: bool = True
    retention_days: int | None = None
    collections: list[str] = field(default_factory=list)


_FREQUENCIES = {member.value for member in BackupFrequencyEnum}


def load_job_definitions(config_path: Path) -> list[BackupJobDefinition]:
    """Load backup job definitions from a TOML seed file.

    Entries live under ``[jobs.<key>]``; the key doubles as the job name unless
    ``name`` is given. Entries with an unknown frequency or a ``custom``
    frequency without ``cron`` are skipped.
    """

    if not config_path.exists():
        raise FileNotFoundError(f"Backup job seed file not found: {config_path}")

    data = tomllib.loads(config_path.read_text())
    job_entries = data.get("jobs", {})
    definitions: list[BackupJobDefinition] = []
    for key, payload in job_entries.items():
        if not isinstance(payload, dict):
            continue
        name = payload.get("name") or key
        frequency = str(payload.get("frequency", BackupFrequencyEnum.DAILY.value)).lower()
        cron_expression: Any = payload.get("cron")
        if frequency not in _FREQUENCIES:
            continue
        if frequency == BackupFrequencyEnum.CUSTOM.value and not isinstance(cron_expression, str):
            continue

        retention = payload.get("retention_days")
        retention_days = max(int(retention), 0) if retention is not None else None
        collections = payload.get("collections", [])
        if not isinstance(collections, list):
            collections = []

        definitions.append(
            BackupJobDefinition(
                name=str(name),
                frequency=frequency,
                cron_expression=cron_expression if isinstance(cron_expression, str) else None,
                description=payload.get("description"),
                enabled=bool(payload.get("enabled", True)),
                retention_days=retention_days,
                collections=[str(item) for item in collections],
            )
        )

    return definitions


__all__ = ["BackupJobDefinition", "BackupJobView", "load_job_definitions"]
