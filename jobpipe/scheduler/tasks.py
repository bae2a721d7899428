"""
Default scheduled tasks and the queue handlers they feed
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from jobpipe.queue.task_queue import TaskQueue, QueueJob
from jobpipe.scheduler.scheduler import Scheduler
from jobpipe.utils.logger import logger


DEFAULT_TASKS = {
    "daily-scraping": ("0 3 * * *", "Run all job scrapers daily at 3 AM"),
    "cleanup-listings": ("0 1 * * 0", "Deactivate listings not seen for a while (Sundays 1 AM)"),
    "cleanup-queue": ("0 */6 * * *", "Clean up old queue jobs every 6 hours"),
    "cleanup-logs": ("0 2 * * *", "Delete old log files daily at 2 AM"),
}


def cleanup_log_files(log_dir: str | Path, days_to_keep: int = 30, now: Optional[datetime] = None) -> int:
    """Delete *.log files in log_dir last modified more than days_to_keep days ago"""
    log_dir = Path(log_dir)
    if not log_dir.is_dir():
        logger.warning(f"Log directory {log_dir} does not exist, nothing to clean")
        return 0

    cutoff = ((now or datetime.now()) - timedelta(days=days_to_keep)).timestamp()
    deleted = 0
    for path in log_dir.glob("*.log"):
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                deleted += 1
        except OSError as e:
            logger.error(f"Failed to delete log file {path}: {e}")

    logger.info(f"🧹 Cleaned up {deleted} old log files")
    return deleted


def register_queue_handlers(queue: TaskQueue, manager, repository, settings) -> None:
    """Wire the scraping and cleanup job types to the pipeline components"""

    async def handle_scraping(job: QueueJob):
        source = job.payload.get("source", "all")
        max_concurrent = job.payload.get("max_concurrent")

        if source == "all":
            if max_concurrent:
                outcomes = await manager.run_concurrent(None, max_concurrent=max_concurrent)
            else:
                outcomes = await manager.run_all()
        elif isinstance(source, list):
            outcomes = await manager.run_concurrent(
                source, max_concurrent=max_concurrent or settings.scraping.max_concurrent
            )
        else:
            outcomes = [await manager.run(source)]

        # Failed outcomes are already in the audit log; the job itself succeeded
        failed = [o.source for o in outcomes if not o.success]
        if failed:
            logger.warning(f"Scraping job {job.id} finished with failed sources: {', '.join(failed)}")

    def handle_cleanup_listings(job: QueueJob):
        days_old = job.payload.get("days_old", settings.scraping.stale_after_days)
        count = repository.deactivate_stale(days_old)
        logger.info(f"Deactivated {count} old job listings")

    def handle_cleanup_logs(job: QueueJob):
        days_to_keep = job.payload.get("days_to_keep", settings.scheduler.log_retention_days)
        log_dir = job.payload.get("log_dir") or Path(settings.logging.file).parent
        cleanup_log_files(log_dir, days_to_keep)

    queue.register_handler("scraping", handle_scraping)
    queue.register_handler("cleanup-listings", handle_cleanup_listings)
    queue.register_handler("cleanup-logs", handle_cleanup_logs)


def register_default_tasks(scheduler: Scheduler, queue: TaskQueue, settings) -> None:
    """Add the built-in task set, applying schedule/enabled overrides from settings"""
    handlers = {
        "daily-scraping": lambda: queue.enqueue("scraping", {"source": "all"}),
        "cleanup-listings": lambda: queue.enqueue(
            "cleanup-listings", {"days_old": settings.scraping.stale_after_days}
        ),
        "cleanup-queue": lambda: queue.cleanup_old_jobs(24),
        "cleanup-logs": lambda: queue.enqueue(
            "cleanup-logs", {"days_to_keep": settings.scheduler.log_retention_days}
        ),
    }

    for name, (schedule, description) in DEFAULT_TASKS.items():
        override = settings.scheduler.tasks.get(name)
        enabled = True
        if override:
            schedule = override.schedule or schedule
            if override.enabled is not None:
                enabled = override.enabled

        scheduler.add_task(
            name=name,
            schedule=schedule,
            handler=handlers[name],
            description=description,
            enabled=enabled,
        )
