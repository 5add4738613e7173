"""Tools only a lead agent may use: delegation, team status, briefings."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from steward.agents.briefing import BriefingService
from steward.agents.delegation import Delegation
from steward.agents.manager import AgentManager
from steward.storage.models import AgentStatus
from steward.tasks.queue import TaskQueue
from steward.tools.registry import (
    Tool,
    ToolContext,
    ToolParameter,
    ToolRegistry,
    ToolResult,
    ToolSchema,
    reports_errors,
)

logger = logging.getLogger(__name__)

LEAD_TOOLS = ["delegateToAgent", "getTeamStatus", "createBriefing", "requestUserInput"]


class LeadTools:
    def __init__(
        self,
        agents: AgentManager,
        delegation: Delegation,
        queue: TaskQueue,
        briefings: BriefingService,
    ) -> None:
        self._agents = agents
        self._delegation = delegation
        self._queue = queue
        self._briefings = briefings

    @reports_errors("delegate task")
    async def delegate(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        if not context.is_lead:
            return ToolResult.fail("Only leads can delegate tasks")
        try:
            subordinate_id = UUID(str(params["agentId"]))
        except ValueError:
            return ToolResult.fail("Can only delegate to agents on your team")

        task = await self._delegation.delegate(context.agent_id, subordinate_id, params["task"])
        return ToolResult.ok({
            "taskId": str(task.id),
            "message": "Task delegated successfully",
        })

    @reports_errors("get team status")
    async def team_status(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        if not context.is_lead:
            return ToolResult.fail("Only leads can check team status")

        subordinates = await self._delegation.list_subordinates(context.agent_id)
        agents = []
        for sub in subordinates:
            status = await self._queue.queue_status(sub.id)
            agents.append({
                "agentId": str(sub.id),
                "name": sub.name,
                "role": sub.role,
                "status": str(sub.status),
                "pendingTasks": status.pending_count,
                "inProgressTasks": status.in_progress_count,
            })

        return ToolResult.ok({
            "agents": agents,
            "summary": {
                "totalAgents": len(agents),
                "idleAgents": sum(1 for a in agents if a["status"] == AgentStatus.IDLE),
                "runningAgents": sum(1 for a in agents if a["status"] == AgentStatus.RUNNING),
            },
        })

    @reports_errors("create briefing")
    async def create_briefing(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        if not context.is_lead:
            return ToolResult.fail("Only leads can create briefings")

        agent = await self._agents.require(context.agent_id)
        briefing, item = await self._briefings.create_briefing(
            agent, params["title"], params["summary"], params["fullMessage"]
        )
        return ToolResult.ok({
            "briefingId": str(briefing.id),
            "inboxItemId": str(item.id),
            "message": "Briefing created and sent to user",
        })

    @reports_errors("request user input")
    async def request_user_input(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        if not context.is_lead:
            return ToolResult.fail("Only leads can request user input")

        agent = await self._agents.require(context.agent_id)
        item = await self._briefings.request_user_input(
            agent, params["title"], params["summary"], params["fullMessage"]
        )
        return ToolResult.ok({
            "inboxItemId": str(item.id),
            "message": "Feedback request sent to user",
        })


def register_lead_tools(
    registry: ToolRegistry,
    agents: AgentManager,
    delegation: Delegation,
    queue: TaskQueue,
    briefings: BriefingService,
) -> None:
    tools = LeadTools(agents, delegation, queue, briefings)
    registry.register(Tool(
        ToolSchema(
            name="delegateToAgent",
            description="Delegate a task to one of your team members. Use getTeamStatus to find their IDs.",
            parameters=[
                ToolParameter("agentId", "string", "ID of the team member"),
                ToolParameter("task", "string", "Clear description of the work to do"),
            ],
        ),
        tools.delegate,
    ))
    registry.register(Tool(
        ToolSchema(
            name="getTeamStatus",
            description="Get the status and task counts of every agent on your team.",
        ),
        tools.team_status,
    ))
    registry.register(Tool(
        ToolSchema(
            name="createBriefing",
            description=(
                "Send the user a briefing about significant findings or completed work. "
                "It appears in their inbox and in your chat with them."
            ),
            parameters=[
                ToolParameter("title", "string", "Concise title"),
                ToolParameter("summary", "string", "1-2 sentence summary for the inbox"),
                ToolParameter("fullMessage", "string", "Full briefing with details"),
            ],
        ),
        tools.create_briefing,
    ))
    registry.register(Tool(
        ToolSchema(
            name="requestUserInput",
            description="Ask the user for a decision or feedback you need to continue.",
            parameters=[
                ToolParameter("title", "string", "Concise title"),
                ToolParameter("summary", "string", "1-2 sentence summary for the inbox"),
                ToolParameter("fullMessage", "string", "Full question with context"),
            ],
        ),
        tools.request_user_input,
    ))
