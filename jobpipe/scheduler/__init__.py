"""
Scheduler package
"""

from jobpipe.scheduler.scheduler import (
    Scheduler,
    ScheduledTask,
    TaskNotFoundError,
    next_fire_time,
)
from jobpipe.scheduler.tasks import register_default_tasks, register_queue_handlers

__all__ = [
    "Scheduler",
    "ScheduledTask",
    "TaskNotFoundError",
    "next_fire_time",
    "register_default_tasks",
    "register_queue_handlers",
]
