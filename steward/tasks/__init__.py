"""Task queue and scheduling for background agent work.

Public API: TaskQueue, QueueStatus, BackoffScheduler, compute_backoff_delay.
"""

from steward.tasks.backoff import BackoffScheduler, compute_backoff_delay
from steward.tasks.queue import QueueStatus, TaskQueue

__all__ = [
    "BackoffScheduler",
    "QueueStatus",
    "TaskQueue",
    "compute_backoff_delay",
]
