"""
Task queue package
"""

from jobpipe.queue.task_queue import TaskQueue, QueueJob, JobStatus

__all__ = [
    "TaskQueue",
    "QueueJob",
    "JobStatus",
]
