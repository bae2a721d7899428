"""
In-process task queue - single consumer, FIFO, with retries
"""

import asyncio
import inspect
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Optional

from jobpipe.utils.logger import logger


class JobStatus(str, Enum):
    """Queue job lifecycle"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class QueueJob:
    type: str
    payload: dict = field(default_factory=dict)
    id: str = field(default_factory=lambda: f"job_{uuid.uuid4().hex[:12]}")
    attempts: int = 0
    max_attempts: int = 3
    status: JobStatus = JobStatus.PENDING
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "payload": self.payload,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "status": self.status.value,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "failed_at": self.failed_at.isoformat() if self.failed_at else None,
        }


# handler(job) may be a plain function or a coroutine function
JobHandler = Callable[[QueueJob], Any]
JobObserver = Callable[[str, QueueJob], None]


class TaskQueue:
    """
    Memory-only job queue processed one job at a time.

    Jobs that raise go back to pending until they have used max_attempts,
    then stay failed. Completed jobs are forgotten after `retention`.
    """

    def __init__(
        self,
        poll_interval: float = 1.0,
        retention: timedelta = timedelta(hours=1),
        default_max_attempts: int = 3,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.poll_interval = poll_interval
        self.retention = retention
        self.default_max_attempts = default_max_attempts
        self.clock = clock

        self.jobs: dict[str, QueueJob] = {}
        self.handlers: dict[str, JobHandler] = {}
        self.observers: list[JobObserver] = []

        self.running = False
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    # Registration
    def register_handler(self, job_type: str, handler: JobHandler) -> None:
        self.handlers[job_type] = handler
        logger.info(f"Registered handler for job type: {job_type}")

    def add_observer(self, observer: JobObserver) -> None:
        self.observers.append(observer)

    def _notify(self, event: str, job: QueueJob) -> None:
        for observer in list(self.observers):
            try:
                observer(event, job)
            except Exception:
                logger.exception(f"Queue observer failed on {event} for job {job.id}")

    # Producing
    def enqueue(self, job_type: str, payload: Optional[dict] = None, max_attempts: Optional[int] = None) -> str:
        max_attempts = max_attempts if max_attempts is not None else self.default_max_attempts
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

        job = QueueJob(
            type=job_type,
            payload=dict(payload or {}),
            max_attempts=max_attempts,
            created_at=self.clock(),
        )
        self.jobs[job.id] = job
        self._notify("created", job)
        logger.info(f"📥 Job {job.id} of type {job_type} added to queue")
        return job.id

    # Lookups
    def get_job(self, job_id: str) -> Optional[QueueJob]:
        return self.jobs.get(job_id)

    def get_jobs_by_status(self, status: JobStatus | str) -> list[QueueJob]:
        status = JobStatus(status)
        return [job for job in self.jobs.values() if job.status == status]

    def get_jobs_by_type(self, job_type: str) -> list[QueueJob]:
        return [job for job in self.jobs.values() if job.type == job_type]

    # Consuming
    async def process_next(self) -> Optional[QueueJob]:
        """
        Process the oldest pending job, if any.
        Returns the job touched, or None when idle or another job is in flight.
        """
        if self._lock.locked():
            return None

        async with self._lock:
            self._purge_expired()

            pending = self.get_jobs_by_status(JobStatus.PENDING)
            if not pending:
                return None

            job = pending[0]
            handler = self.handlers.get(job.type)
            if handler is None:
                logger.error(f"No handler registered for job type: {job.type}")
                job.status = JobStatus.FAILED
                job.error = "No handler registered"
                job.failed_at = self.clock()
                self._notify("failed", job)
                return job

            job.status = JobStatus.PROCESSING
            job.processed_at = self.clock()
            job.attempts += 1
            self._notify("processing", job)
            logger.info(f"⚙️ Processing job {job.id} of type {job.type} (attempt {job.attempts}/{job.max_attempts})")

            try:
                result = handler(job)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                # Interrupted attempts do not count; the job runs again after a restart
                job.status = JobStatus.PENDING
                job.attempts -= 1
                job.error = "Interrupted before completion"
                logger.warning(f"⏸️ Job {job.id} interrupted, returned to the queue")
                raise
            except Exception as e:
                job.error = str(e) or e.__class__.__name__
                if job.attempts >= job.max_attempts:
                    job.status = JobStatus.FAILED
                    job.failed_at = self.clock()
                    logger.error(f"❌ Job {job.id} failed after {job.attempts} attempts: {job.error}")
                    self._notify("failed", job)
                else:
                    job.status = JobStatus.PENDING
                    logger.warning(f"🔁 Job {job.id} will be retried ({job.attempts}/{job.max_attempts}): {job.error}")
                return job

            job.status = JobStatus.COMPLETED
            job.completed_at = self.clock()
            logger.info(f"✅ Job {job.id} completed")
            self._notify("completed", job)
            return job

    def _purge_expired(self) -> int:
        cutoff = self.clock() - self.retention
        expired = [
            job_id for job_id, job in self.jobs.items()
            if job.status == JobStatus.COMPLETED and job.completed_at and job.completed_at <= cutoff
        ]
        for job_id in expired:
            del self.jobs[job_id]
        return len(expired)

    # Runner
    async def start(self):
        if self.running:
            logger.warning("⚠️ Queue runner already running")
            return

        self.running = True
        logger.info(f"🚀 Starting queue runner (poll every {self.poll_interval}s)")
        self._task = asyncio.create_task(self._run_loop())

    async def stop(self):
        if not self.running:
            return

        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("⏹️ Queue runner stopped")

    async def _run_loop(self):
        while self.running:
            try:
                await self.process_next()
            except Exception as e:
                logger.error(f"❌ Queue runner error: {e}")

            await asyncio.sleep(self.poll_interval)

    async def drain(self) -> int:
        """Process until no pending job is left. Returns the number of jobs touched."""
        processed = 0
        while await self.process_next() is not None:
            processed += 1
        return processed

    # Maintenance
    def stats(self) -> dict:
        self._purge_expired()
        stats = {
            "total": len(self.jobs),
            "pending": 0,
            "processing": 0,
            "completed": 0,
            "failed": 0,
            "by_type": {},
        }
        for job in self.jobs.values():
            stats[job.status.value] += 1
            stats["by_type"][job.type] = stats["by_type"].get(job.type, 0) + 1
        return stats

    def cleanup_old_jobs(self, hours_old: int = 24) -> int:
        """Drop completed and failed jobs created more than hours_old ago"""
        cutoff = self.clock() - timedelta(hours=hours_old)
        old = [
            job_id for job_id, job in self.jobs.items()
            if job.status in (JobStatus.COMPLETED, JobStatus.FAILED) and job.created_at < cutoff
        ]
        for job_id in old:
            del self.jobs[job_id]

        logger.info(f"🧹 Cleaned up {len(old)} old queue jobs")
        return len(old)
