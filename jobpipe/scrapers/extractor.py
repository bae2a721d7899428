"""
Page extractor - config-driven listing extraction over a browser session
"""

import asyncio
import time
from contextlib import AsyncExitStack
from typing import Any, Awaitable, Callable, Optional, Protocol

from pydantic import BaseModel, Field

from jobpipe.core.listing import ListingCandidate
from jobpipe.core.outcome import ExtractionOutcome, OutcomeTally
from jobpipe.utils.config import SourceOverride
from jobpipe.utils.logger import logger
from jobpipe.scrapers.scraper_utils import (
    RetryConfig,
    retry_async,
    clean_text,
    parse_date_string,
    parse_salary,
    normalize_employment_type,
    resolve_url,
)


class NavigationError(Exception):
    """Raised when a page could not be loaded after all retry attempts"""


class BlockedError(NavigationError):
    """Raised when the site answers with a block or captcha interstitial"""


BLOCKED_TITLE_MARKERS = (
    "blocked",
    "captcha",
    "access denied",
    "cloudflare",
    "just a moment",
)

BLOCKED_BODY_MARKERS = (
    "you have been blocked",
    "suspicious activity",
)


def looks_blocked(title: Optional[str], body: Optional[str] = None) -> bool:
    lowered_title = (title or "").lower()
    lowered_body = (body or "").lower()
    return (
        any(marker in lowered_title for marker in BLOCKED_TITLE_MARKERS)
        or any(marker in lowered_body for marker in BLOCKED_BODY_MARKERS)
    )


class SelectorMap(BaseModel):
    """CSS selectors for one listing card. Only container/title/organization/link are required."""
    container: str
    title: str
    organization: str
    link: str
    location: Optional[str] = None
    description: Optional[str] = None
    compensation: Optional[str] = None
    employment_type: Optional[str] = None
    category: Optional[str] = None
    posted_date: Optional[str] = None
    deadline: Optional[str] = None


class PaginationConfig(BaseModel):
    next_selector: Optional[str] = None
    max_pages: int = Field(default=10, ge=1)


class SourceConfig(BaseModel):
    """Everything a PageExtractor needs to know about one listing site"""
    name: str = Field(..., description="Registry name, lower case")
    portal: str = Field(..., description="Human readable site name")
    base_url: str
    start_path: str = "/"
    selectors: SelectorMap
    pagination: PaginationConfig = Field(default_factory=PaginationConfig)

    # Timing (seconds unless noted)
    request_delay: float = Field(default=2.0, ge=0, description="Pause between result pages")
    max_retries: int = Field(default=3, ge=1)
    base_delay: float = Field(default=2.0, ge=0, description="Retry delay grows as base_delay * attempt")
    navigation_timeout_ms: int = 30000
    container_timeout_ms: int = 10000
    wait_until: str = "domcontentloaded"

    cookie_selector: Optional[str] = None
    enabled: bool = True

    @property
    def start_url(self) -> str:
        return resolve_url(self.base_url, self.start_path)

    def with_overrides(self, override: Optional[SourceOverride]) -> "SourceConfig":
        """Return a copy with the non-empty settings overrides applied"""
        if override is None:
            return self

        update: dict[str, Any] = {"enabled": override.enabled}
        for name in ("max_retries", "request_delay", "base_delay"):
            value = getattr(override, name)
            if value is not None:
                update[name] = value

        config = self.model_copy(update=update)
        if override.max_pages is not None:
            config.pagination = self.pagination.model_copy(update={"max_pages": override.max_pages})
        return config


# Source quirks hook: may fill or rewrite the raw field dict before it is validated
Enricher = Callable[[Any, dict, SourceConfig], Awaitable[None]]


class Extractor(Protocol):
    """Anything the extraction manager can run"""
    name: str

    async def scrape(self) -> ExtractionOutcome:
        ...


class PageExtractor:
    """
    Generic extractor driven by a SourceConfig.

    Opens one browser session per run, walks the result pages and upserts
    every readable listing card into the repository.
    """

    def __init__(
        self,
        config: SourceConfig,
        repository,
        session_factory: Callable[[], Any],
        enricher: Optional[Enricher] = None,
    ):
        self.config = config
        self.name = config.name.lower()
        self.repository = repository
        self.session_factory = session_factory
        self.enricher = enricher
        self.retry_config = RetryConfig(
            max_retries=config.max_retries,
            base_delay=config.base_delay,
        )

    def __repr__(self) -> str:
        return f"PageExtractor(name='{self.name}', start_url='{self.config.start_url}')"

    async def scrape(self) -> ExtractionOutcome:
        tally = OutcomeTally(source=self.name)
        start_time = time.monotonic()
        logger.info(f"🔍 Scraping {self.config.portal} ({self.config.start_url})")

        async with AsyncExitStack() as stack:
            try:
                session = await stack.enter_async_context(self.session_factory())
            except Exception as e:
                logger.error(f"❌ {self.config.portal}: could not open browser session: {e}")
                tally.errors.append(f"Failed to open browser session: {e}")
                tally.stop_reason = "open_failed"
                return tally.finish(time.monotonic() - start_time)

            try:
                await self._walk_pages(session.page, tally)
            except NavigationError as e:
                logger.error(f"❌ {self.config.portal}: {e}")
                tally.errors.append(f"Fatal error: {e}")
                tally.stop_reason = "navigation_failed"
            except Exception as e:
                logger.exception(f"❌ {self.config.portal}: scrape aborted")
                tally.errors.append(f"Fatal error: {e}")
                tally.stop_reason = "fatal"

        outcome = tally.finish(time.monotonic() - start_time)
        logger.info(
            f"{'✅' if outcome.success else '⚠️'} {self.config.portal}: "
            f"{outcome.scraped} scraped ({outcome.new} new, {outcome.updated} updated), "
            f"{len(outcome.errors)} errors, {outcome.pages_visited} pages, stop={outcome.stop_reason}"
        )
        return outcome

    async def _walk_pages(self, page, tally: OutcomeTally) -> None:
        await self.navigate(page, self.config.start_url)
        await self._dismiss_cookie_banner(page)

        max_pages = self.config.pagination.max_pages
        for page_number in range(1, max_pages + 1):
            tally.pages_visited = page_number
            try:
                await self._extract_page(page, page_number, tally)
            except Exception as e:
                logger.warning(f"⚠️ {self.config.portal} page {page_number} failed: {e}")
                tally.errors.append(f"Page {page_number}: {e}")

            stop_reason = await self._next_control_state(page)
            if stop_reason:
                tally.stop_reason = stop_reason
                return

            if page_number >= max_pages:
                tally.stop_reason = "max_pages"
                return

            await self._go_to_next_page(page, page_number)
            if self.config.request_delay:
                await asyncio.sleep(self.config.request_delay)

    async def navigate(self, page, url: str) -> int:
        """
        Load url, retrying up to max_retries times.
        Returns the number of attempts used; raises NavigationError on exhaustion.
        """
        async def attempt():
            await page.goto(
                url,
                timeout=self.config.navigation_timeout_ms,
                wait_until=self.config.wait_until,
            )
            title = await page.title()
            body = await page.text_content("body")
            if looks_blocked(title, body):
                raise BlockedError(f"Blocked by {self.config.portal} (page title '{title}')")

        try:
            _, attempts = await retry_async(
                attempt,
                self.retry_config,
                on_retry=lambda n, e: logger.warning(
                    f"Navigation attempt {n}/{self.retry_config.max_retries} failed for {url}: {e}"
                ),
            )
        except Exception as e:
            raise NavigationError(
                f"Failed to load {url} after {self.retry_config.max_retries} attempts: {e}"
            ) from e
        return attempts

    async def _dismiss_cookie_banner(self, page) -> None:
        if not self.config.cookie_selector:
            return
        try:
            button = await page.query_selector(self.config.cookie_selector)
            if button:
                await button.click()
                logger.debug(f"{self.config.portal}: cookie banner dismissed")
        except Exception as e:
            logger.debug(f"{self.config.portal}: cookie banner not dismissed: {e}")

    async def _extract_page(self, page, page_number: int, tally: OutcomeTally) -> None:
        container = self.config.selectors.container
        await page.wait_for_selector(container, timeout=self.config.container_timeout_ms)
        items = await page.query_selector_all(container)
        logger.info(f"📄 {self.config.portal} page {page_number}: {len(items)} cards")

        for index, element in enumerate(items):
            try:
                candidate = await self.extract_item(element)
            except Exception as e:
                logger.warning(f"Skipping unreadable card {index} on page {page_number}: {e}")
                continue

            # Cards without title, organization or link are not listings
            if candidate is None:
                continue

            try:
                _, is_new = self.repository.upsert(candidate)
            except Exception as e:
                logger.error(f"Failed to save '{candidate.title}': {e}")
                tally.errors.append(f"Failed to save '{candidate.title}': {e}")
                continue
            tally.record_save(is_new)

    async def extract_item(self, element) -> Optional[ListingCandidate]:
        selectors = self.config.selectors
        data = {
            "title": await self._text(element, selectors.title),
            "organization": await self._text(element, selectors.organization),
            "link": await self._attribute(element, selectors.link, "href"),
            "location": await self._text(element, selectors.location),
            "description": await self._text(element, selectors.description),
            "compensation": await self._text(element, selectors.compensation),
            "employment_type": await self._text(element, selectors.employment_type),
            "category": await self._text(element, selectors.category),
            "posted_at": await self._posted_date(element, selectors.posted_date),
            "deadline": await self._text(element, selectors.deadline),
        }

        if self.enricher:
            await self.enricher(element, data, self.config)

        if not (data["title"] and data["organization"] and data["link"]):
            return None

        salary = parse_salary(data["compensation"])
        return ListingCandidate(
            title=data["title"],
            organization=data["organization"],
            location=data["location"],
            description=data["description"],
            compensation=data["compensation"] or None,
            salary_min=salary.min,
            salary_max=salary.max,
            salary_currency=salary.currency if salary.min is not None else None,
            employment_type=normalize_employment_type(data["employment_type"]),
            category=data["category"] or None,
            posted_at=data["posted_at"],
            deadline=parse_date_string(data["deadline"]),
            source_url=resolve_url(self.config.base_url, data["link"]),
            source=self.name,
        )

    async def _text(self, element, selector: Optional[str]) -> str:
        if not selector:
            return ""
        node = await element.query_selector(selector)
        if node is None:
            return ""
        return clean_text(await node.text_content())

    async def _attribute(self, element, selector: Optional[str], name: str) -> str:
        if not selector:
            return ""
        node = await element.query_selector(selector)
        if node is None:
            return ""
        return (await node.get_attribute(name) or "").strip()

    async def _posted_date(self, element, selector: Optional[str]):
        if not selector:
            return None
        node = await element.query_selector(selector)
        if node is None:
            return None
        value = await node.get_attribute("datetime") or await node.text_content()
        return parse_date_string(clean_text(value))

    async def _next_control_state(self, page) -> Optional[str]:
        """None when the next-page control can be used, otherwise the stop reason"""
        control = await self._find_next_control(page)
        if control is None:
            return "no_next_control"
        if await control.get_attribute("aria-disabled") == "true":
            return "next_disabled"
        if await control.get_attribute("disabled") is not None:
            return "next_disabled"
        if await control.is_hidden():
            return "next_hidden"
        return None

    async def _find_next_control(self, page):
        selector = self.config.pagination.next_selector
        if not selector:
            return None
        return await page.query_selector(selector)

    async def _go_to_next_page(self, page, page_number: int) -> None:
        """
        Click the next control, then wait for the new page to load.
        The two steps are retried separately and a click that went through
        is never repeated.
        """
        async def click_next():
            control = await self._find_next_control(page)
            if control is None:
                raise NavigationError("next page control disappeared")
            await control.click()

        async def wait_loaded():
            await page.wait_for_load_state(
                self.config.wait_until,
                timeout=self.config.navigation_timeout_ms,
            )

        def on_retry(step: str):
            return lambda n, e: logger.warning(
                f"Advancing past page {page_number}: {step} failed (attempt {n}/{self.retry_config.max_retries}): {e}"
            )

        try:
            await retry_async(click_next, self.retry_config, on_retry=on_retry("click"))
            await retry_async(wait_loaded, self.retry_config, on_retry=on_retry("load"))
        except Exception as e:
            raise NavigationError(
                f"Could not advance past page {page_number} after {self.retry_config.max_retries} attempts: {e}"
            ) from e
