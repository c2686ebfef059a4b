from datetime import datetime, timezone

import pytest

from patientrec_api.scheduling.cron import JOB_ID_PREFIX, ApschedulerCronLibrary


async def _noop() -> None:
    return None


@pytest.mark.asyncio
async def test_schedule_registers_job_and_cancel_removes_it() -> None:
    cron = ApschedulerCronLibrary(timezone="UTC")
    cron.start()
    try:
        handle = cron.schedule("0 2 * * *", "UTC", _noop, name="job-1")

        job = cron.scheduler.get_job(f"{JOB_ID_PREFIX}job-1")
        assert job is not None
        assert job.coalesce is True
        assert job.max_instances == 1

        handle.cancel()
        handle.cancel()

        assert handle.cancelled
        assert cron.scheduler.get_job(f"{JOB_ID_PREFIX}job-1") is None
    finally:
        await cron.stop()

    assert cron.running is False


@pytest.mark.asyncio
async def test_stale_handle_does_not_remove_replacement_job() -> None:
    cron = ApschedulerCronLibrary(timezone="UTC")
    cron.start()
    try:
        stale = cron.schedule("0 2 * * *", "UTC", _noop, name="job-2")
        fresh = cron.schedule("0 3 * * *", "UTC", _noop, name="job-2")

        stale.cancel()

        assert cron.scheduler.get_job(f"{JOB_ID_PREFIX}job-2") is not None
        fresh.cancel()
        assert cron.scheduler.get_job(f"{JOB_ID_PREFIX}job-2") is None
    finally:
        await cron.stop()


def test_handle_next_fire_time_follows_trigger() -> None:
    cron = ApschedulerCronLibrary(timezone="UTC")
    now = datetime(2026, 5, 10, 12, 0, tzinfo=timezone.utc)

    assert cron.next_fire_time("0 2 1 * *", "UTC", now) == datetime(2026, 6, 1, 2, 0, tzinfo=timezone.utc)
    assert cron.next_fire_time("garbage", "UTC", now) is None


def test_schedule_timezone_applies_to_fire_time() -> None:
    cron = ApschedulerCronLibrary()
    now = datetime(2026, 1, 15, 0, 0, tzinfo=timezone.utc)

    next_fire = cron.next_fire_time("0 2 * * *", "America/New_York", now)

    assert next_fire.astimezone(timezone.utc) == datetime(2026, 1, 15, 7, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_stop_is_safe_when_never_started() -> None:
    cron = ApschedulerCronLibrary()
    await cron.stop()
    assert cron.running is False
