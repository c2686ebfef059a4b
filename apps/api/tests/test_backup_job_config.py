from pathlib import Path

import pytest

from patientrec_api.scheduling.config import load_job_definitions


def test_load_job_definitions_parses_entries(tmp_path: Path) -> None:
    config = tmp_path / "backup_jobs.toml"
    config.write_text(
        """
[jobs.nightly]
frequency = "daily"
retention_days = 30

[jobs.snapshot]
name = "clinic-hours"
frequency = "custom"
cron = "0 8-18 * * 1-5"
collections = ["backup_jobs"]
enabled = false
description = "Clinic hours snapshot"

[jobs.broken]
frequency = "custom"

[jobs.hourly]
frequency = "hourly"
"""
    )

    definitions = load_job_definitions(config)

    assert [definition.name for definition in definitions] == ["nightly", "clinic-hours"]
    nightly, snapshot = definitions
    assert nightly.frequency == "daily"
    assert nightly.retention_days == 30
    assert nightly.enabled is True
    assert snapshot.cron_expression == "0 8-18 * * 1-5"
    assert snapshot.collections == ["backup_jobs"]
    assert snapshot.enabled is False
    assert snapshot.description == "Clinic hours snapshot"


def test_load_job_definitions_clamps_negative_retention(tmp_path: Path) -> None:
    config = tmp_path / "backup_jobs.toml"
    config.write_text('[jobs.nightly]\nfrequency = "WEEKLY"\nretention_days = -4\n')

    (definition,) = load_job_definitions(config)

    assert definition.frequency == "weekly"
    assert definition.retention_days == 0


def test_load_job_definitions_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_job_definitions(tmp_path / "missing.toml")


def test_bundled_seed_file_is_valid() -> None:
    seed = Path(__file__).resolve().parents[1] / "config" / "backup_jobs.toml"

    names = {definition.name for definition in load_job_definitions(seed)}

    assert {"nightly-full", "weekly-archive", "business-hours-snapshot"} <= names
