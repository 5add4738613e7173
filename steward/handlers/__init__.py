"""Background triggers for steward.

Handlers listen to bus events and timers and start work asynchronously.
"""

from steward.handlers.work_poller import WorkPoller

__all__ = ["WorkPoller"]
