"""
Orchestrator - wires the pipeline components together

Database -> DeduplicationRepository -> PageExtractors -> ExtractionManager
TaskQueue (scraping + cleanup handlers) <- Scheduler (default task set)
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Iterable, Optional

from jobpipe.core.repository import DeduplicationRepository
from jobpipe.queue.task_queue import TaskQueue
from jobpipe.scheduler.scheduler import Scheduler
from jobpipe.scheduler.tasks import register_default_tasks, register_queue_handlers
from jobpipe.scrapers.extractor import Extractor
from jobpipe.scrapers.manager import ExtractionManager
from jobpipe.scrapers.sources import build_extractors
from jobpipe.utils.config import Settings, get_settings
from jobpipe.utils.database import Database, get_database
from jobpipe.utils.logger import logger, configure_logging


@dataclass
class Pipeline:
    settings: Settings
    db: Database
    repository: DeduplicationRepository
    manager: ExtractionManager
    queue: TaskQueue
    scheduler: Scheduler

    async def start(self) -> None:
        """Start the queue runner and the scheduler"""
        await self.queue.start()
        await self.scheduler.start()

    async def stop(self) -> None:
        if self.scheduler.running:
            await self.scheduler.stop()
        await self.queue.stop()

    def get_status(self) -> dict:
        return {
            "listings": self.db.get_listing_stats(),
            "scrapers": self.manager.get_status(),
            "queue": self.queue.stats(),
            "scheduler": self.scheduler.get_status(),
        }


def build_pipeline(
    settings: Optional[Settings] = None,
    db: Optional[Database] = None,
    extractors: Optional[Iterable[Extractor]] = None,
    session_factory: Optional[Callable] = None,
    setup_logging: bool = True,
) -> Pipeline:
    """
    Build every component from settings.

    extractors replaces the built-in sources entirely; session_factory only
    swaps how the built-in sources open their browser.
    """
    settings = settings or get_settings()
    if setup_logging:
        configure_logging(
            settings.logging.level,
            settings.logging.file,
            settings.logging.max_size,
            settings.logging.backup_count,
            settings.logging.memory_capacity,
        )

    db = db or get_database(settings)
    repository = DeduplicationRepository(db)

    if extractors is None:
        extractors = build_extractors(settings, repository, session_factory)

    manager = ExtractionManager(
        extractors,
        audit_sink=db,
        inter_run_delay=settings.scraping.inter_run_delay,
        chunk_delay=settings.scraping.chunk_delay,
    )

    queue = TaskQueue(
        poll_interval=settings.queue.poll_interval,
        retention=timedelta(minutes=settings.queue.retention_minutes),
        default_max_attempts=settings.queue.max_attempts,
    )
    register_queue_handlers(queue, manager, repository, settings)

    scheduler = Scheduler(timezone=settings.scheduler.timezone, queue=queue)
    register_default_tasks(scheduler, queue, settings)

    logger.info(
        f"🧩 Pipeline ready: {len(manager.available_sources())} sources, "
        f"{len(scheduler.tasks)} scheduled tasks, database {db.db_path}"
    )
    return Pipeline(
        settings=settings,
        db=db,
        repository=repository,
        manager=manager,
        queue=queue,
        scheduler=scheduler,
    )
