"""Foreground chat -- the user talking to an agent directly.

A message is classified first. Work requests get a short acknowledgment
and a queued ``user`` task; anything else is answered right away with the
foreground tool set. Either way the turn lands in the foreground
conversation before any task is queued, and memory extraction runs
detached afterwards.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from steward.agents.manager import AgentManager
from steward.agents.owners import owner_of
from steward.agents.prompts import (
    ACKNOWLEDGMENT_PROMPT,
    INTENT_PROMPT,
    INTENT_SYSTEM_PROMPT,
    base_prompt,
    foreground_system_prompt,
    join_blocks,
)
from steward.config import Settings
from steward.conversations.manager import ConversationManager
from steward.knowledge.extraction import MemoryExtractor, build_memory_context_block
from steward.knowledge.items import KnowledgeManager
from steward.llm.models import LanguageModel
from steward.storage.models import Agent, ConversationMode
from steward.tasks.queue import TaskQueue
from steward.tools.loop import ToolLoop
from steward.tools.registry import ToolContext
from steward.tools.sets import foreground_tool_names

logger = logging.getLogger(__name__)

Intent = Literal["work_request", "regular_chat"]


class UserIntent(BaseModel):
    """Whether the user is asking for background work or just chatting."""

    intent: Intent
    reasoning: str = Field(description="Brief explanation of why this classification was chosen")


@dataclass
class ChatReply:
    text: str
    intent: Intent
    task_id: UUID | None = None


class ForegroundChat:
    def __init__(
        self,
        settings: Settings,
        llm: LanguageModel,
        agents: AgentManager,
        conversations: ConversationManager,
        knowledge: KnowledgeManager,
        queue: TaskQueue,
        tool_loop: ToolLoop,
        memory_extractor: MemoryExtractor,
    ) -> None:
        self._settings = settings
        self._llm = llm
        self._agents = agents
        self._conversations = conversations
        self._knowledge = knowledge
        self._queue = queue
        self._tool_loop = tool_loop
        self._memory_extractor = memory_extractor
        self._pending: set[asyncio.Task] = set()

    async def handle_user_message(self, agent_id: UUID, content: str) -> ChatReply:
        agent = await self._agents.require(agent_id)
        memories = await self._knowledge.list_memories(agent.id)
        memory_block = build_memory_context_block(memories)
        conversation = await self._conversations.get_or_create(agent.id, ConversationMode.FOREGROUND)

        intent = await self.classify_intent(content)
        if intent == "work_request":
            text = await self._acknowledge(agent, memory_block, content)
        else:
            messages = await self._conversations.build_context(conversation.id, self._settings.max_context_tokens)
            messages.append({"role": "user", "content": content})
            result = await self._tool_loop.run(
                messages,
                foreground_system_prompt(agent, memory_block),
                foreground_tool_names(self._tool_loop.registry),
                ToolContext(
                    agent_id=agent.id,
                    owner=owner_of(agent),
                    is_lead=agent.is_lead,
                    conversation_id=conversation.id,
                ),
                max_steps=self._settings.foreground_max_steps,
                max_tokens=self._settings.max_response_tokens,
                model=self._settings.model,
            )
            text = result.text

        _, assistant_message = await self._conversations.append_turn(conversation.id, content, text)

        task_id = None
        if intent == "work_request":
            task = await self._queue.enqueue_user_task(agent.id, owner_of(agent), content)
            task_id = task.id

        self._track(
            self._extract_memories(agent, content, text, assistant_message.id),
            name=f"memories-{agent.id.hex[:8]}",
        )
        return ChatReply(text=text, intent=intent, task_id=task_id)

    async def classify_intent(self, content: str) -> Intent:
        """work_request or regular_chat. A failed classification counts as chat."""
        try:
            result = await self._llm.generate_structured(
                [{"role": "user", "content": INTENT_PROMPT.format(content=content)}],
                UserIntent,
                INTENT_SYSTEM_PROMPT,
                max_tokens=200,
                temperature=0,
                model=self._settings.model,
            )
        except Exception:
            logger.exception("Intent classification failed, treating message as chat")
            return "regular_chat"
        logger.debug("Classified message as %s: %s", result.intent, result.reasoning)
        return result.intent

    async def _acknowledge(self, agent: Agent, memory_block: str, content: str) -> str:
        return await self._llm.generate_text(
            [{"role": "user", "content": ACKNOWLEDGMENT_PROMPT.format(content=content)}],
            join_blocks(base_prompt(agent), memory_block),
            max_tokens=100,
            temperature=0.7,
            model=self._settings.model,
        )

    # ------------------------------------------------------------------
    # Detached memory extraction
    # ------------------------------------------------------------------

    async def _extract_memories(self, agent: Agent, user_message: str, response: str, message_id: UUID) -> None:
        memories = await self._memory_extractor.extract(user_message, response, agent.role)
        if memories:
            await self._knowledge.persist_memories(agent.id, memories, source_message_id=message_id)

    def _track(self, coro, name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._pending.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed: %s", task.get_name(), exc, exc_info=exc)

    async def drain(self) -> None:
        """Wait for outstanding memory extractions."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
