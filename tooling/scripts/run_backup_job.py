#!/usr/bin/env python3
"""Run one backup job immediately, outside the API process.

Example:
    python tooling/scripts/run_backup_job.py --job-id 6f1c0c9e-...

Runs through the same pipeline as scheduled fires: the job's last-run status is
updated and retention cleanup follows a successful backup. Exits non-zero when
the run fails.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Trigger a backup job run")
    parser.add_argument("--job-id", required=True, help="Backup job identifier.")
    return parser.parse_args()


async def _run(job_id: str) -> dict[str, object] | None:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from patientrec_api.core.settings import settings  # type: ignore import-position
    from patientrec_api.db.session import async_session  # type: ignore import-position
    from patientrec_api.scheduling import (  # type: ignore import-position
        BackupExecutionPipeline,
        JobNotFound,
        RetentionReaper,
    )
    from patientrec_api.services.backups import (  # type: ignore import-position
        BackupRepository,
        LocalBackupService,
    )

    repository = BackupRepository(lambda: async_session())
    backup_service = LocalBackupService(lambda: async_session(), repository, settings=settings)
    reaper = RetentionReaper(
        repository,
        backup_service,
        purge_history=settings.backup_purge_expired_history,
        batch_limit=settings.backup_retention_batch_limit,
    )
    pipeline = BackupExecutionPipeline(repository, backup_service, reaper)
    try:
        result = await pipeline.trigger_backup(job_id)
    except JobNotFound as exc:
        logger.error("Backup job not found", job_id=job_id, error=str(exc))
        return None
    return result.as_dict()


def main() -> int:
    args = parse_args()
    payload = asyncio.run(_run(args.job_id))
    if payload is None:
        return 1

    print(json.dumps(payload, indent=2, default=str))
    if payload["status"] != "success":
        logger.error("Backup run failed", job_id=args.job_id, error=payload.get("error"))
        return 1
    logger.success("Backup run completed", job_id=args.job_id, filename=payload.get("filename"))
    return 0


if __name__ == "__main__":
    sys.exit(main())
