"""Tools a subordinate uses to talk back to its lead.

Both write into the lead's background conversation, which the lead reads
as context in its next work session.
"""

from __future__ import annotations

import logging
from typing import Any

from steward.agents.manager import AgentManager
from steward.conversations.manager import ConversationManager
from steward.storage.models import Agent, ConversationMode, MessageRole
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

SUBORDINATE_TOOLS = ["reportToLead", "requestLeadInput"]


class SubordinateTools:
    def __init__(self, agents: AgentManager, conversations: ConversationManager) -> None:
        self._agents = agents
        self._conversations = conversations

    async def _lead_of(self, context: ToolContext) -> tuple[Agent, Agent] | str:
        """(subordinate, lead), or an error message."""
        if context.is_lead:
            return "Leads cannot use this tool"
        agent = await self._agents.require(context.agent_id)
        if agent.parent_agent_id is None:
            return "Leads cannot use this tool"
        lead = await self._agents.get(agent.parent_agent_id)
        if lead is None:
            return "Lead agent not found"
        return agent, lead

    async def _post(self, lead: Agent, content: str) -> None:
        conversation = await self._conversations.get_or_create(lead.id, ConversationMode.BACKGROUND)
        await self._conversations.append(conversation.id, MessageRole.USER, content)

    @reports_errors("report to lead")
    async def report(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        found = await self._lead_of(context)
        if isinstance(found, str):
            return ToolResult.fail(found)
        agent, lead = found

        await self._post(lead, f"Subordinate {agent.name} reports: {params['result']}")
        logger.info("Agent %s reported to lead %s", agent.id.hex[:8], lead.id.hex[:8])
        return ToolResult.ok({"message": "Result reported to lead"})

    @reports_errors("request lead input")
    async def ask(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        found = await self._lead_of(context)
        if isinstance(found, str):
            return ToolResult.fail(found)
        agent, lead = found

        await self._post(lead, f"Subordinate {agent.name} asks: {params['question']}")
        logger.info("Agent %s asked lead %s for input", agent.id.hex[:8], lead.id.hex[:8])
        return ToolResult.ok({"message": "Question sent to lead"})


def register_subordinate_tools(
    registry: ToolRegistry,
    agents: AgentManager,
    conversations: ConversationManager,
) -> None:
    tools = SubordinateTools(agents, conversations)
    registry.register(Tool(
        ToolSchema(
            name="reportToLead",
            description="Report the result of your work back to your team lead.",
            parameters=[
                ToolParameter("result", "string", "What you did and what you found"),
                ToolParameter("status", "string", "Outcome of the work", required=False, enum=["success"]),
            ],
        ),
        tools.report,
    ))
    registry.register(Tool(
        ToolSchema(
            name="requestLeadInput",
            description="Ask your team lead a question when you need guidance to continue.",
            parameters=[ToolParameter("question", "string", "The question for your lead")],
        ),
        tools.ask,
    ))
