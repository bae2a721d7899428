import asyncio
from datetime import datetime, timedelta

import pytest

from jobpipe.core.outcome import ExtractionOutcome
from jobpipe.scrapers.scraper_utils import (
    RetryConfig,
    ScraperMetrics,
    clean_text,
    normalize_employment_type,
    parse_date_string,
    parse_salary,
    resolve_url,
    retry_async,
)


@pytest.mark.parametrize("text, expected", [
    ("HK$20,000 - HK$30,000", (20000, 30000)),
    ("HK$20,000 - HK$30,000 per month", (20000, 30000)),
    ("20K-30K", (20000, 30000)),
    ("20-30k", (20000, 30000)),
    ("$18,500 /month", (18500, 18500)),
    ("Negotiable", (None, None)),
    ("", (None, None)),
])
def test_parse_salary(text, expected):
    salary = parse_salary(text)
    assert (salary.min, salary.max) == expected
    assert salary.currency == "HKD"


@pytest.mark.parametrize("value, expected", [
    ("Full time", "Full-time"),
    ("Permanent, Full-time", "Full-time"),
    ("Part Time", "Part-time"),
    ("Contract/Temp", "Contract"),
    ("Internship", "Internship"),
    ("Casual", "Casual"),
    ("", None),
])
def test_normalize_employment_type(value, expected):
    assert normalize_employment_type(value) == expected


def test_parse_date_string_formats():
    assert parse_date_string("2024-03-05") == datetime(2024, 3, 5)
    assert parse_date_string("2024-03-05T10:30:00Z") == datetime(2024, 3, 5, 10, 30)
    assert parse_date_string("2024-03-05T10:30:00+08:00") == datetime(2024, 3, 5, 10, 30)
    assert parse_date_string("Closing: 31/12/2024") == datetime(2024, 12, 31)
    assert parse_date_string("31/02/2024") is None
    assert parse_date_string("yesterday-ish") is None
    assert parse_date_string(None) is None


def test_parse_date_string_relative():
    before = datetime.now()
    parsed = parse_date_string("3 days ago")
    assert before - timedelta(days=3, minutes=1) < parsed < datetime.now() - timedelta(days=3) + timedelta(minutes=1)


def test_clean_text_and_resolve_url():
    assert clean_text("  Senior \n\t Engineer ") == "Senior Engineer"
    assert clean_text(None) == ""
    assert resolve_url("https://hk.jobsdb.com", "/job/1") == "https://hk.jobsdb.com/job/1"
    assert resolve_url("https://hk.jobsdb.com/", "job/1") == "https://hk.jobsdb.com/job/1"
    assert resolve_url("https://hk.jobsdb.com", "https://other.example/x") == "https://other.example/x"
    assert resolve_url("https://hk.jobsdb.com", "//cdn.example/x") == "https://cdn.example/x"


def test_retry_delay_grows_linearly():
    config = RetryConfig(max_retries=3, base_delay=2.0)
    assert [config.get_delay(n) for n in (1, 2, 3)] == [2.0, 4.0, 6.0]


def test_retry_config_rejects_zero_attempts():
    with pytest.raises(ValueError):
        RetryConfig(max_retries=0)


def test_retry_async_returns_attempts_used():
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 2:
            raise ConnectionError("reset")
        return "ok"

    result, attempts = asyncio.run(retry_async(flaky, RetryConfig(max_retries=3, base_delay=0)))

    assert result == "ok"
    assert attempts == 2


def test_retry_async_reraises_last_error():
    async def always_fails():
        raise ConnectionError("down")

    with pytest.raises(ConnectionError):
        asyncio.run(retry_async(always_fails, RetryConfig(max_retries=2, base_delay=0)))


def test_scraper_metrics_records_outcomes():
    metrics = ScraperMetrics(source="jobsdb")
    metrics.record_run(ExtractionOutcome(source="jobsdb", success=True, scraped=10, new=4, duration_seconds=2.0))
    metrics.record_run(ExtractionOutcome(source="jobsdb", success=False, errors=("timeout",), duration_seconds=4.0))

    data = metrics.to_dict()

    assert data["total_runs"] == 2
    assert data["success_rate"] == "50.0%"
    assert data["total_jobs_found"] == 10
    assert data["total_jobs_saved"] == 4
    assert data["avg_duration"] == "3.00s"
    assert data["last_error"] == "timeout"
