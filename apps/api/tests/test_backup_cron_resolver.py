from datetime import datetime, timezone

import pytest

from patientrec_api.scheduling import CronExpressionResolver, MissingCronExpression
from patientrec_api.scheduling.cron import ApschedulerCronLibrary, crontab_day_of_week

from fakes import make_job


@pytest.fixture
def resolver() -> CronExpressionResolver:
    return CronExpressionResolver(ApschedulerCronLibrary(), timezone="UTC")


@pytest.mark.parametrize(
    ("frequency", "expected"),
    [
        ("daily", "0 2 * * *"),
        ("weekly", "0 2 * * 0"),
        ("monthly", "0 2 1 * *"),
    ],
)
def test_resolve_presets(resolver: CronExpressionResolver, frequency: str, expected: str) -> None:
    assert resolver.resolve(make_job(frequency=frequency)) == expected


def test_resolve_custom_uses_expression(resolver: CronExpressionResolver) -> None:
    job = make_job(frequency="custom", cron_expression=" */15 * * * * ")
    assert resolver.resolve(job) == "*/15 * * * *"


@pytest.mark.parametrize("cron_expression", [None, "", "   "])
def test_resolve_custom_without_expression_raises(resolver: CronExpressionResolver, cron_expression) -> None:
    job = make_job(frequency="custom", cron_expression=cron_expression)
    with pytest.raises(MissingCronExpression):
        resolver.resolve(job)


def test_resolve_unknown_frequency_falls_back_to_daily(resolver: CronExpressionResolver) -> None:
    assert resolver.resolve(make_job(frequency="hourly")) == "0 2 * * *"


def test_describe_schedules(resolver: CronExpressionResolver) -> None:
    assert resolver.describe(make_job(frequency="daily")) == "Every day at 2:00 AM (UTC)"
    assert resolver.describe(make_job(frequency="weekly")) == "Every Sunday at 2:00 AM (UTC)"
    assert resolver.describe(make_job(frequency="monthly")) == "First day of every month at 2:00 AM (UTC)"
    assert resolver.describe(make_job(frequency="custom", cron_expression="5 4 * * *")) == "5 4 * * *"
    assert resolver.describe(make_job(frequency="custom")) == "Custom schedule"
    assert resolver.describe(make_job(frequency="hourly")) == "Unknown schedule"


@pytest.mark.parametrize("expression", ["0 2 * * *", "*/5 * * * *", "0 8-18 * * 1-5", "0 0 1 1 *", "0 2 * * 7"])
def test_validate_accepts_standard_crontab(resolver: CronExpressionResolver, expression: str) -> None:
    assert resolver.validate(expression) is True


@pytest.mark.parametrize("expression", ["30 0 2 * * *", "*/30 * * * * *", "0 0 2 * * 0"])
def test_validate_accepts_leading_seconds_field(resolver: CronExpressionResolver, expression: str) -> None:
    assert resolver.validate(expression) is True


@pytest.mark.parametrize(
    "expression",
    ["", "   ", "not a cron", "0 2 * *", "0 0 2 * * * *", "61 0 2 * * *", "61 2 * * *", "0 25 * * *", "0 2 32 * *", "0 2 * * 8"],
)
def test_validate_rejects_malformed(resolver: CronExpressionResolver, expression: str) -> None:
    assert resolver.validate(expression) is False


def test_next_run_time_for_presets(resolver: CronExpressionResolver) -> None:
    # Thursday
    now = datetime(2026, 1, 1, 3, 0, tzinfo=timezone.utc)

    assert resolver.next_run_time(make_job(frequency="daily"), now) == datetime(2026, 1, 2, 2, 0, tzinfo=timezone.utc)
    assert resolver.next_run_time(make_job(frequency="weekly"), now) == datetime(2026, 1, 4, 2, 0, tzinfo=timezone.utc)
    assert resolver.next_run_time(make_job(frequency="monthly"), now) == datetime(2026, 2, 1, 2, 0, tzinfo=timezone.utc)


def test_next_run_time_for_invalid_custom_is_none(resolver: CronExpressionResolver) -> None:
    assert resolver.next_run_time(make_job(frequency="custom", cron_expression="bogus")) is None
    assert resolver.next_run_time(make_job(frequency="custom")) is None


@pytest.mark.parametrize(
    ("field", "expected"),
    [
        ("*", "*"),
        ("0", "sun"),
        ("7", "sun"),
        ("1-5", "mon,tue,wed,thu,fri"),
        ("5-7", "sun,fri,sat"),
        ("*/2", "sun,tue,thu,sat"),
        ("sat,sun", "sun,sat"),
    ],
)
def test_crontab_day_of_week_counts_from_sunday(field: str, expected: str) -> None:
    assert crontab_day_of_week(field) == expected


def test_crontab_day_of_week_rejects_reversed_range() -> None:
    with pytest.raises(ValueError):
        crontab_day_of_week("5-1")


def test_next_run_time_honours_leading_seconds_field(resolver: CronExpressionResolver) -> None:
    # Thursday
    now = datetime(2026, 1, 1, 3, 0, 10, tzinfo=timezone.utc)

    every_half_minute = make_job(frequency="custom", cron_expression="*/30 * * * * *")
    assert resolver.next_run_time(every_half_minute, now) == datetime(2026, 1, 1, 3, 0, 30, tzinfo=timezone.utc)

    five_field = make_job(frequency="custom", cron_expression="*/5 * * * *")
    assert resolver.next_run_time(five_field, now) == datetime(2026, 1, 1, 3, 5, 0, tzinfo=timezone.utc)

    sunday_with_seconds = make_job(frequency="custom", cron_expression="15 0 2 * * 0")
    assert resolver.next_run_time(sunday_with_seconds, now) == datetime(2026, 1, 4, 2, 0, 15, tzinfo=timezone.utc)
