"""
Extraction manager - runs extractors by name with failure isolation
"""

import asyncio
import time
from datetime import datetime
from typing import Iterable, Optional

from jobpipe.core.outcome import ExtractionOutcome
from jobpipe.scrapers.extractor import Extractor
from jobpipe.scrapers.scraper_utils import ScraperMetrics
from jobpipe.utils.logger import logger


class UnknownSourceError(KeyError):
    """Raised when a source name is not registered"""

    def __init__(self, name: str, available: list[str]):
        self.name = name
        self.available = available
        super().__init__(name)

    def __str__(self) -> str:
        return f"Unknown scraper: {self.name}. Available: {', '.join(self.available)}"


class ExtractionManager:
    """
    Registry of extractors keyed by lower-case name.

    Every run goes through run(), which turns any failure into a failed
    ExtractionOutcome and forwards the outcome to the audit sink.
    """

    def __init__(
        self,
        extractors: Iterable[Extractor] = (),
        audit_sink=None,
        inter_run_delay: float = 5.0,
        chunk_delay: float = 10.0,
    ):
        self.extractors: dict[str, Extractor] = {}
        self.metrics: dict[str, ScraperMetrics] = {}
        self.audit_sink = audit_sink
        self.inter_run_delay = inter_run_delay
        self.chunk_delay = chunk_delay

        for extractor in extractors:
            self.register(extractor)

    def register(self, extractor: Extractor) -> None:
        name = extractor.name.lower()
        self.extractors[name] = extractor
        self.metrics.setdefault(name, ScraperMetrics(source=name))

    def available_sources(self) -> list[str]:
        return list(self.extractors.keys())

    def get_extractor(self, name: str) -> Extractor:
        extractor = self.extractors.get(name.lower())
        if extractor is None:
            raise UnknownSourceError(name, self.available_sources())
        return extractor

    async def run(self, name: str) -> ExtractionOutcome:
        """Run one extractor. Never raises."""
        started_at = datetime.now()
        start_time = time.monotonic()
        source = name.lower()

        try:
            extractor = self.get_extractor(source)
        except UnknownSourceError as e:
            logger.error(f"❌ {e}")
            outcome = ExtractionOutcome.failed(source, str(e), started_at=started_at)
        else:
            try:
                outcome = await extractor.scrape()
            except Exception as e:
                logger.exception(f"❌ Scraper {source} crashed")
                outcome = ExtractionOutcome.failed(
                    source,
                    str(e),
                    started_at=started_at,
                    duration_seconds=time.monotonic() - start_time,
                )

        self._record(outcome)
        return outcome

    async def run_all(self) -> list[ExtractionOutcome]:
        """Run every registered extractor in turn, pausing between sources"""
        names = self.available_sources()
        logger.info(f"🚀 Running {len(names)} scrapers sequentially")

        outcomes = []
        for index, name in enumerate(names):
            outcomes.append(await self.run(name))
            if index < len(names) - 1 and self.inter_run_delay:
                await asyncio.sleep(self.inter_run_delay)

        self._log_summary(outcomes)
        return outcomes

    async def run_concurrent(self, names: Optional[list[str]] = None, max_concurrent: int = 2) -> list[ExtractionOutcome]:
        """
        Run the named extractors (all when names is None) in chunks of
        max_concurrent. Outcomes come back in input order.
        """
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")

        names = list(names) if names is not None else self.available_sources()
        logger.info(f"🚀 Running {len(names)} scrapers, {max_concurrent} at a time")

        outcomes: list[ExtractionOutcome] = []
        for start in range(0, len(names), max_concurrent):
            chunk = names[start:start + max_concurrent]
            results = await asyncio.gather(*(self.run(name) for name in chunk), return_exceptions=True)

            for name, result in zip(chunk, results):
                if isinstance(result, BaseException):
                    if isinstance(result, asyncio.CancelledError):
                        raise result
                    logger.error(f"❌ Scraper {name} failed outside the run boundary: {result}")
                    result = ExtractionOutcome.failed(name.lower(), str(result))
                outcomes.append(result)

            if start + max_concurrent < len(names) and self.chunk_delay:
                await asyncio.sleep(self.chunk_delay)

        self._log_summary(outcomes)
        return outcomes

    def _record(self, outcome: ExtractionOutcome) -> None:
        metrics = self.metrics.setdefault(outcome.source, ScraperMetrics(source=outcome.source))
        metrics.record_run(outcome)

        status = "✅" if outcome.success else "❌"
        logger.info(
            f"{status} {outcome.source}: {outcome.scraped} scraped, {outcome.new} new, "
            f"{outcome.updated} updated in {outcome.duration_seconds:.1f}s"
        )
        for error in outcome.errors:
            logger.warning(f"   {outcome.source}: {error}")

        if self.audit_sink is None:
            return
        try:
            self.audit_sink.log_outcome(outcome)
        except Exception as e:
            logger.error(f"Failed to write audit log for {outcome.source}: {e}")

    def _log_summary(self, outcomes: list[ExtractionOutcome]) -> None:
        succeeded = sum(1 for o in outcomes if o.success)
        logger.info(
            f"📊 {succeeded}/{len(outcomes)} scrapers succeeded, "
            f"{sum(o.scraped for o in outcomes)} scraped, {sum(o.new for o in outcomes)} new"
        )

    def get_status(self) -> dict:
        return {
            "sources": self.available_sources(),
            "metrics": {name: metrics.to_dict() for name, metrics in self.metrics.items()},
        }
