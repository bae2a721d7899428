import asyncio
import random
import re
from datetime import datetime, timedelta
from typing import Optional, TypeVar, Callable, Awaitable
from dataclasses import dataclass, field

from jobpipe.core.outcome import ExtractionOutcome


T = TypeVar('T')


def clean_text(text: Optional[str]) -> str:
    if not text:
        return ""
    return re.sub(r'\s+', ' ', text).strip()


def parse_date_string(date_str: Optional[str]) -> Optional[datetime]:
    if not date_str:
        return None

    date_str = date_str.strip()

    # 1. Try generic ISO formats
    for fmt in ["%Y-%m-%dT%H:%M:%S", "%Y-%m-%d", "%Y-%m-%dT%H:%M:%S.%f", "%Y-%m-%dT%H:%M:%SZ"]:
        try:
            return datetime.strptime(date_str.split('+')[0], fmt)
        except ValueError:
            continue

    # 2. Day-first dates used by the HK portals ("31/12/2024", "31-12-2024")
    day_first = re.search(r'(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})', date_str)
    if day_first:
        day, month, year = (int(g) for g in day_first.groups())
        try:
            return datetime(year, month, day)
        except ValueError:
            return None

    # 3. Try Relative Dates ("2 days ago", "1 month ago")
    now = datetime.now()
    date_low = date_str.lower()
    if "ago" in date_low:
        value_match = re.search(r'(\d+)', date_str)
        if not value_match:
            return None

        value = int(value_match.group(1))

        if "minute" in date_low:
            return now - timedelta(minutes=value)
        elif "hour" in date_low:
            return now - timedelta(hours=value)
        elif "day" in date_low:
            return now - timedelta(days=value)
        elif "week" in date_low:
            return now - timedelta(weeks=value)
        elif "month" in date_low:
            return now - timedelta(days=value * 30)
        elif "year" in date_low:
            return now - timedelta(days=value * 365)

    return None


@dataclass
class SalaryRange:
    min: Optional[float] = None
    max: Optional[float] = None
    currency: str = "HKD"


def _salary_value(number: str, suffix: str) -> float:
    value = float(number)
    if suffix and suffix.lower() == 'k':
        value *= 1000
    return value


def parse_salary(salary_text: Optional[str], currency: str = "HKD") -> SalaryRange:
    """Extract a min/max range from compensation text like 'HK$20,000 - HK$30,000' or '20K-30K'"""
    if not salary_text:
        return SalaryRange(currency=currency)

    cleaned = re.sub(r'HK\$|HKD|\$|,', '', salary_text)
    cleaned = re.sub(r'per month|/month|monthly|p\.m\.', '', cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r'per annum|/annum|annually|p\.a\.', '', cleaned, flags=re.IGNORECASE)
    cleaned = cleaned.strip()

    range_match = re.search(r'(\d+(?:\.\d+)?)\s*([kK]?)\s*[-–—~]\s*(\d+(?:\.\d+)?)\s*([kK]?)', cleaned)
    if range_match:
        low, low_suffix, high, high_suffix = range_match.groups()
        # "20-30K" means both bounds are in thousands
        low_suffix = low_suffix or high_suffix
        return SalaryRange(
            min=_salary_value(low, low_suffix),
            max=_salary_value(high, high_suffix),
            currency=currency,
        )

    single_match = re.search(r'(\d+(?:\.\d+)?)\s*([kK]?)', cleaned)
    if single_match:
        value = _salary_value(*single_match.groups())
        return SalaryRange(min=value, max=value, currency=currency)

    return SalaryRange(currency=currency)


EMPLOYMENT_TYPES = (
    (("full time", "full-time", "permanent"), "Full-time"),
    (("part time", "part-time"), "Part-time"),
    (("contract",), "Contract"),
    (("temporary", "temp "), "Temporary"),
    (("intern",), "Internship"),
)


def normalize_employment_type(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    lowered = value.lower()
    for needles, label in EMPLOYMENT_TYPES:
        if any(needle in lowered for needle in needles):
            return label
    return value.strip()


def resolve_url(base_url: str, url: Optional[str]) -> str:
    if not url:
        return ""
    if url.startswith("http"):
        return url
    if url.startswith("//"):
        return f"https:{url}"
    if url.startswith("/"):
        return f"{base_url.rstrip('/')}{url}"
    return f"{base_url.rstrip('/')}/{url}"


@dataclass
class ScraperMetrics:
    source: str
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    total_jobs_found: int = 0
    total_jobs_saved: int = 0
    avg_duration: float = 0.0
    last_run: Optional[datetime] = None
    last_error: Optional[str] = None
    run_history: list[dict] = field(default_factory=list)

    def record_run(self, outcome: ExtractionOutcome):
        self.total_runs += 1
        self.last_run = outcome.finished_at or datetime.now()

        if outcome.success:
            self.successful_runs += 1
            self.total_jobs_found += outcome.scraped
            self.total_jobs_saved += outcome.new
        else:
            self.failed_runs += 1
        if outcome.errors:
            self.last_error = outcome.errors[-1]

        durations = [r["duration"] for r in self.run_history[-10:]] + [outcome.duration_seconds]
        self.avg_duration = sum(durations) / len(durations)

        self.run_history.append({
            "timestamp": self.last_run.isoformat(),
            "success": outcome.success,
            "scraped": outcome.scraped,
            "new": outcome.new,
            "updated": outcome.updated,
            "duration": outcome.duration_seconds,
            "errors": len(outcome.errors),
        })

        self.run_history = self.run_history[-50:]

    @property
    def success_rate(self) -> float:
        if self.total_runs == 0:
            return 0.0
        return self.successful_runs / self.total_runs

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "total_runs": self.total_runs,
            "successful_runs": self.successful_runs,
            "failed_runs": self.failed_runs,
            "success_rate": f"{self.success_rate:.1%}",
            "total_jobs_found": self.total_jobs_found,
            "total_jobs_saved": self.total_jobs_saved,
            "avg_duration": f"{self.avg_duration:.2f}s",
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_error": self.last_error,
        }


class RetryConfig:
    def __init__(self, max_retries: int = 3, base_delay: float = 2.0, max_delay: float = 60.0, exponential: bool = False, jitter: float = 0.0):
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential = exponential
        self.jitter = jitter

    def get_delay(self, attempt: int) -> float:
        """Delay after the given 1-based failed attempt"""
        if self.exponential:
            delay = self.base_delay * (2 ** (attempt - 1))
        else:
            delay = self.base_delay * attempt

        if self.jitter:
            delay += random.uniform(0, delay * self.jitter)
        return min(delay, self.max_delay)


async def retry_async(
    func: Callable[..., Awaitable[T]],
    config: RetryConfig = None,
    *args,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    on_retry: Callable[[int, BaseException], None] = None,
    **kwargs,
) -> tuple[T, int]:
    """
    Await func up to config.max_retries times.
    Returns (result, attempts_used); re-raises the last error once attempts run out.
    """
    config = config or RetryConfig()
    last_exception = None

    for attempt in range(1, config.max_retries + 1):
        try:
            result = await func(*args, **kwargs)
            return result, attempt
        except retry_on as e:
            last_exception = e
            if on_retry:
                on_retry(attempt, e)
            if attempt < config.max_retries:
                await asyncio.sleep(config.get_delay(attempt))

    raise last_exception
