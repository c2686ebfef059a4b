#!/usr/bin/env python3
"""Upsert backup job definitions from a TOML seed file.

Example:
    python tooling/scripts/seed_backup_jobs.py --config apps/api/config/backup_jobs.toml

Jobs are matched by name; existing jobs are updated in place. The running API
picks up edits through ``POST /api/v1/backups/jobs/{id}/schedule`` or on restart.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger

REPO_ROOT = Path(__file__).resolve().parents[2]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed backup job definitions")
    parser.add_argument(
        "--config",
        type=Path,
        default=REPO_ROOT / "apps" / "api" / "config" / "backup_jobs.toml",
        help="Path to the TOML seed file.",
    )
    return parser.parse_args()


async def _run(config_path: Path) -> tuple[int, int]:
    api_src = REPO_ROOT / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from patientrec_api.db.session import async_session  # type: ignore import-position
    from patientrec_api.scheduling import load_job_definitions  # type: ignore import-position
    from patientrec_api.services.backups import BackupRepository  # type: ignore import-position

    repository = BackupRepository(lambda: async_session())
    created = updated = 0
    for definition in load_job_definitions(config_path):
        job, was_created = await repository.upsert_job_definition(definition)
        logger.info("Backup job seeded", job_id=job.id, job_name=job.name, created=was_created)
        if was_created:
            created += 1
        else:
            updated += 1
    return created, updated


def main() -> int:
    args = parse_args()
    try:
        created, updated = asyncio.run(_run(args.config))
    except FileNotFoundError as exc:
        logger.error("Seed file missing", error=str(exc))
        return 1
    logger.success("Backup jobs seeded", created=created, updated=updated, config=str(args.config))
    return 0


if __name__ == "__main__":
    sys.exit(main())
