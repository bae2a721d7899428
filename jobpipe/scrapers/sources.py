"""
Built-in Hong Kong job portals and their quirks
"""

import re
from typing import Callable, Optional

from jobpipe.scrapers.extractor import (
    PageExtractor,
    SourceConfig,
    SelectorMap,
    PaginationConfig,
    Enricher,
)
from jobpipe.utils.browser import BrowserSession
from jobpipe.utils.logger import logger


JOBSDB = SourceConfig(
    name="jobsdb",
    portal="JobsDB",
    base_url="https://hk.jobsdb.com",
    start_path="/jobs?keywords=&location=Hong%20Kong",
    selectors=SelectorMap(
        container="article[data-search-sol-meta]",
        title='h3[data-automation="job-card-title"] a',
        organization='a[data-automation="job-card-employer"]',
        link='h3[data-automation="job-card-title"] a',
        location='span[data-automation="job-card-location"]',
        description='div[data-automation="job-card-snippet"]',
        compensation='span[data-automation="job-card-salary"]',
        employment_type='span[data-automation="job-card-work-type"]',
        category='span[data-automation="job-card-classification"]',
        posted_date="time[datetime]",
    ),
    pagination=PaginationConfig(next_selector='a[data-automation="page-next"]', max_pages=10),
    request_delay=2.0,
    max_retries=3,
    cookie_selector='button[data-automation="accept-cookies-button"]',
)

RECRUIT = SourceConfig(
    name="recruit",
    portal="Recruit",
    base_url="https://www.recruit.com.hk",
    start_path="/jobs",
    selectors=SelectorMap(
        container=".job-item, .job-listing",
        title=".job-title a, h3 a",
        organization=".company-name, .company",
        link=".job-title a, h3 a",
        location=".location, .job-location",
        description=".job-summary, .description",
        compensation=".salary-range, .salary",
    ),
    pagination=PaginationConfig(next_selector=".pagination .next, .next-page", max_pages=10),
    request_delay=2.5,
    max_retries=3,
)

CTGOODJOBS = SourceConfig(
    name="ctgoodjobs",
    portal="CT Good Jobs",
    base_url="https://goodjobs.com.hk",
    start_path="/jobs",
    selectors=SelectorMap(
        container=".job-item, .job-card",
        title=".job-title a, h3 a",
        organization=".company-name, .employer-name",
        link=".job-title a, h3 a",
        location=".job-location, .location",
        description=".job-summary, .job-description",
        compensation=".salary, .job-salary",
    ),
    pagination=PaginationConfig(next_selector=".pagination .next, .pager-next", max_pages=8),
    request_delay=3.0,
    max_retries=3,
)

UNIVERSITY = SourceConfig(
    name="university",
    portal="University Jobs",
    base_url="https://jobs.edu.hk",
    start_path="/jobs",
    selectors=SelectorMap(
        container=".job-item, .vacancy-item, .position-item",
        title=".job-title, .position-title, h3",
        organization=".department, .faculty, .university",
        link=".job-title a, .position-title a, h3 a",
        location=".location, .campus",
        description=".job-description, .summary, .details",
        deadline=".deadline, .closing-date",
    ),
    pagination=PaginationConfig(next_selector=".pagination .next, .next-page", max_pages=5),
    request_delay=4.0,
    max_retries=2,
)


DEADLINE_PATTERN = re.compile(r"\d{1,2}[/-]\d{1,2}[/-]\d{4}")


async def jobsdb_enricher(element, data: dict, config: SourceConfig) -> None:
    """Cards carry a stable job id; the canonical URL is built from it"""
    job_id = await element.get_attribute("data-job-id")
    if job_id:
        data["link"] = f"{config.base_url}/job/{job_id.strip()}"


async def university_enricher(element, data: dict, config: SourceConfig) -> None:
    """Deadlines are often only mentioned in the card text"""
    if not data.get("category"):
        data["category"] = "Education"

    if not data.get("deadline"):
        text = await element.text_content() or ""
        match = DEADLINE_PATTERN.search(text)
        if match:
            data["deadline"] = match.group(0)


SOURCES: dict[str, tuple[SourceConfig, Optional[Enricher]]] = {
    "jobsdb": (JOBSDB, jobsdb_enricher),
    "recruit": (RECRUIT, None),
    "ctgoodjobs": (CTGOODJOBS, None),
    "university": (UNIVERSITY, university_enricher),
}


def build_extractors(settings, repository, session_factory: Callable = None) -> list[PageExtractor]:
    """
    Create one extractor per enabled source, with settings overrides applied.
    session_factory defaults to a BrowserSession built from the browser settings.
    """
    if session_factory is None:
        def session_factory():
            return BrowserSession(settings.browser)

    extractors = []
    for name, (config, enricher) in SOURCES.items():
        config = config.with_overrides(settings.source_override(name))
        if not config.enabled:
            logger.info(f"⏭️ Source {name} disabled in settings")
            continue
        extractors.append(PageExtractor(config, repository, session_factory, enricher))
    return extractors
