"""
Cron scheduler - named tasks fired on cron expressions or on demand
"""

import asyncio
import inspect
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo

from apscheduler.triggers.cron import CronTrigger

from jobpipe.utils.logger import logger


class TaskNotFoundError(KeyError):
    """Raised when a scheduled task name is not registered"""

    def __init__(self, name: str):
        self.name = name
        super().__init__(name)

    def __str__(self) -> str:
        return f'Task "{self.name}" not found'


def _utcnow() -> datetime:
    return datetime.now(dt_timezone.utc)


_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def _weekday_name(value: str) -> str:
    return _WEEKDAYS[int(value) % 7] if value.isdigit() else value


def _stepped_weekdays(token: str) -> str:
    """Expand "*/2", "1-5/2" or "mon/3" into explicit weekday names."""
    span, step = token.split("/", 1)
    if not step.isdigit() or int(step) < 1:
        raise ValueError(f"Invalid day-of-week step: {token!r}")

    if span == "*":
        start, end = 0, 6
    elif "-" in span:
        low, high = span.split("-", 1)
        start, end = _weekday_number(low), _weekday_number(high)
    else:
        start, end = _weekday_number(span), 6

    days = range(start, end + 1, int(step))
    if not days:
        raise ValueError(f"Empty day-of-week range: {token!r}")
    # 7 is Sunday again; de-duplicate while keeping order
    return ",".join(dict.fromkeys(_WEEKDAYS[day % 7] for day in days))


def _weekday_number(value: str) -> int:
    if value.isdigit():
        if int(value) > 7:
            raise ValueError(f"Invalid day of week: {value!r}")
        return int(value)
    try:
        return _WEEKDAYS.index(value.lower()[:3])
    except ValueError:
        raise ValueError(f"Invalid day of week: {value!r}") from None


def _crontab_weekdays(field: str) -> str:
    """
    Rewrite a crontab day-of-week field (Sunday = 0 or 7) with weekday names,
    since APScheduler numbers weekdays from Monday = 0.
    """
    parts = []
    for token in field.split(","):
        if "/" in token:
            parts.append(_stepped_weekdays(token))
        elif "-" in token:
            start, end = token.split("-", 1)
            if start == "0" and end.isdigit():
                # APScheduler weeks start on Monday, so split Sunday off
                if int(end) >= 6:
                    parts.append("*")
                elif int(end) == 0:
                    parts.append("sun")
                else:
                    parts.append(f"sun,mon-{_weekday_name(end)}")
            else:
                parts.append(f"{_weekday_name(start)}-{_weekday_name(end)}")
        else:
            parts.append(_weekday_name(token))
    return ",".join(parts)


def parse_cron(expression: str, timezone: str = "Asia/Hong_Kong") -> CronTrigger:
    """Build a trigger from a 5-field crontab expression. Raises ValueError when invalid."""
    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(f"Wrong number of fields; got {len(fields)}, expected 5")

    minute, hour, day, month, day_of_week = fields
    return CronTrigger(
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=_crontab_weekdays(day_of_week),
        timezone=ZoneInfo(timezone),
    )


def next_fire_time(expression: str, now: datetime, timezone: str = "Asia/Hong_Kong") -> Optional[datetime]:
    """
    First time strictly after `now` matching the cron expression, evaluated
    in `timezone`. Naive `now` values are taken to be in that timezone.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=ZoneInfo(timezone))

    trigger = parse_cron(expression, timezone)
    # Whole-second resolution; anything later than `now` is strictly after it
    return trigger.get_next_fire_time(None, now.replace(microsecond=0) + timedelta(microseconds=1))


@dataclass
class ScheduledTask:
    name: str
    schedule: str
    handler: Callable[[], Any]
    description: str = ""
    enabled: bool = True
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "schedule": self.schedule,
            "description": self.description,
            "enabled": self.enabled,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "next_run": self.next_run.isoformat() if self.next_run else None,
        }


class Scheduler:
    """
    Keeps a registry of ScheduledTasks and fires the enabled ones when their
    cron expression comes due. Tasks live for the lifetime of the process.
    """

    def __init__(
        self,
        timezone: str = "Asia/Hong_Kong",
        queue=None,
        tick_interval: float = 1.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        ZoneInfo(timezone)  # fail fast on unknown zones
        self.timezone = timezone
        self.queue = queue
        self.tick_interval = tick_interval
        self.clock = clock
        self.tasks: dict[str, ScheduledTask] = {}
        self.running = False
        self._task: Optional[asyncio.Task] = None

    def add_task(
        self,
        name: str,
        schedule: str,
        handler: Callable[[], Any],
        description: str = "",
        enabled: bool = True,
    ) -> ScheduledTask:
        if name in self.tasks:
            raise ValueError(f'Task "{name}" is already registered')
        try:
            parse_cron(schedule, self.timezone)
        except ValueError as e:
            raise ValueError(f'Invalid cron expression for task "{name}": {schedule} ({e})') from e

        task = ScheduledTask(name=name, schedule=schedule, handler=handler, description=description, enabled=enabled)
        self.tasks[name] = task
        if self.running and enabled:
            self._bind(task)

        logger.info(f'📅 Scheduled task "{name}" registered: {description or schedule}')
        return task

    def get_task(self, name: str) -> ScheduledTask:
        task = self.tasks.get(name)
        if task is None:
            raise TaskNotFoundError(name)
        return task

    def _bind(self, task: ScheduledTask, now: Optional[datetime] = None) -> None:
        task.next_run = next_fire_time(task.schedule, now or self.clock(), self.timezone)

    async def start(self):
        if self.running:
            logger.warning("⚠️ Scheduler already running")
            return

        now = self.clock()
        for task in self.tasks.values():
            if not task.enabled:
                logger.info(f'Task "{task.name}" is disabled, skipping')
                continue
            self._bind(task, now)
            logger.info(f'Task "{task.name}" scheduled with cron: {task.schedule} (next: {task.next_run})')

        self.running = True
        logger.info(f"🚀 Scheduler started ({len(self.tasks)} tasks, timezone {self.timezone})")
        self._task = asyncio.create_task(self._run_loop())

    async def stop(self):
        if not self.running:
            logger.warning("Scheduler is not running")
            return

        self.running = False
        for task in self.tasks.values():
            task.next_run = None

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("⏹️ Scheduler stopped")

    async def _run_loop(self):
        while self.running:
            await asyncio.sleep(self.tick_interval)
            try:
                await self.run_pending()
            except Exception as e:
                logger.error(f"❌ Scheduler error: {e}")

    async def run_pending(self, now: Optional[datetime] = None) -> list[str]:
        """
        Fire every bound task whose next_run is due at `now`.
        Returns the names of the tasks fired.
        """
        now = now or self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=ZoneInfo(self.timezone))
        fired = []

        for task in list(self.tasks.values()):
            if not task.enabled or task.next_run is None or task.next_run > now:
                continue

            self._bind(task, now)
            task.last_run = now
            fired.append(task.name)
            logger.info(f"⏰ Executing scheduled task: {task.name}")
            try:
                await self._call(task)
            except Exception:
                logger.exception(f'❌ Error executing task "{task.name}"')

        return fired

    async def trigger(self, name: str) -> None:
        """Run a task now, enabled or not. Handler errors propagate to the caller."""
        task = self.get_task(name)
        logger.info(f"👆 Manually triggering task: {name}")
        task.last_run = self.clock()
        await self._call(task)

    @staticmethod
    async def _call(task: ScheduledTask) -> None:
        result = task.handler()
        if inspect.isawaitable(result):
            await result

    def set_enabled(self, name: str, enabled: bool) -> ScheduledTask:
        task = self.get_task(name)
        task.enabled = enabled

        if self.running:
            if enabled and task.next_run is None:
                self._bind(task)
            elif not enabled:
                task.next_run = None

        logger.info(f'Task "{name}" {"enabled" if enabled else "disabled"}')
        return task

    def get_status(self) -> dict:
        status = {
            "running": self.running,
            "timezone": self.timezone,
            "tasks": [task.to_dict() for task in self.tasks.values()],
        }
        if self.queue is not None:
            status["queue_stats"] = self.queue.stats()
        return status
