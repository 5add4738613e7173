"""Lead -> subordinate delegation, a thin pass-through to the task queue."""

from __future__ import annotations

import logging
from uuid import UUID

from steward.agents.manager import AgentManager
from steward.agents.owners import owner_of
from steward.errors import DelegationError
from steward.storage.models import Agent, AgentTask
from steward.tasks.queue import TaskQueue

logger = logging.getLogger(__name__)


class Delegation:
    def __init__(self, agents: AgentManager, queue: TaskQueue) -> None:
        self._agents = agents
        self._queue = queue

    async def list_subordinates(self, lead_id: UUID) -> list[Agent]:
        return await self._agents.list_subordinates(lead_id)

    async def delegate(self, lead_id: UUID, subordinate_id: UUID, text: str) -> AgentTask:
        """Queue a delegation task for one of the lead's own subordinates.

        Raises DelegationError when the caller is not a lead or the target
        is not its child.
        """
        lead = await self._agents.require(lead_id)
        if not lead.is_lead:
            raise DelegationError("Only leads can delegate tasks")

        subordinate = await self._agents.get(subordinate_id)
        if subordinate is None or subordinate.parent_agent_id != lead_id:
            raise DelegationError("Can only delegate to agents on your team")

        task = await self._queue.enqueue_delegation(lead_id, subordinate_id, owner_of(lead), text)
        logger.info(
            "Lead %s delegated task %s to %s",
            lead_id.hex[:8],
            task.id.hex[:8],
            subordinate.name,
        )
        return task
