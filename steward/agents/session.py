"""Work-session controller -- drains an agent's task queue in the background.

One session per agent at a time:

    check queue -> mark running -> claim/process tasks until empty or failure
    -> extract knowledge -> (lead) decide on a briefing -> (lead) schedule
    the next autonomous run -> mark idle

Each task runs the tool loop against the agent's background conversation.
The resulting user/assistant turn and the task completion commit in one
transaction. A failing task is marked failed, the agent is put into
backoff and the rest of the queue waits for the next session. Knowledge
extraction and the briefing decision only run after at least one task
completed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from steward.agents.briefing import BriefingDecider
from steward.agents.manager import AgentManager
from steward.agents.owners import owner_of
from steward.agents.prompts import background_system_prompt
from steward.config import Settings
from steward.conversations.compaction import ConversationSummarizer
from steward.conversations.manager import ConversationManager
from steward.events import (
    KNOWLEDGE_EXTRACTED,
    TASK_COMPLETED,
    TASK_FAILED,
    WORK_SESSION_FINISHED,
    WORK_SESSION_STARTED,
    EventBus,
)
from steward.graph.context import build_graph_context_block
from steward.graph.initializer import GraphTypeInitializer
from steward.graph.store import GraphStore
from steward.knowledge.extraction import KnowledgeExtractor, build_knowledge_context_block
from steward.knowledge.items import KnowledgeManager
from steward.storage.models import Agent, AgentTask, Conversation, ConversationMode
from steward.tasks.backoff import BackoffScheduler
from steward.tasks.queue import TaskQueue
from steward.tools.loop import ToolLoop
from steward.tools.registry import ToolContext
from steward.tools.sets import background_tool_names

logger = logging.getLogger(__name__)


@dataclass
class WorkSessionReport:
    """What one session did. A session that never started reports zeros."""

    processed: int = 0
    failed: int = 0
    extracted: int = 0
    briefed: bool = False

    @property
    def ran(self) -> bool:
        return self.processed > 0 or self.failed > 0


class WorkSessionController:
    def __init__(
        self,
        settings: Settings,
        agents: AgentManager,
        queue: TaskQueue,
        backoff: BackoffScheduler,
        conversations: ConversationManager,
        knowledge: KnowledgeManager,
        graph: GraphStore,
        tool_loop: ToolLoop,
        extractor: KnowledgeExtractor,
        summarizer: ConversationSummarizer,
        briefing_decider: BriefingDecider,
        graph_initializer: GraphTypeInitializer | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self._settings = settings
        self._agents = agents
        self._queue = queue
        self._backoff = backoff
        self._conversations = conversations
        self._knowledge = knowledge
        self._graph = graph
        self._tool_loop = tool_loop
        self._extractor = extractor
        self._summarizer = summarizer
        self._briefing_decider = briefing_decider
        self._graph_initializer = graph_initializer
        self._bus = bus

    async def run(self, agent_id: UUID) -> WorkSessionReport:
        """Run one work session for an agent.

        Returns an empty report without touching the agent when there is no
        pending work, or when the agent is paused or already running.
        """
        report = WorkSessionReport()

        status = await self._queue.queue_status(agent_id)
        if not status.has_pending_work:
            return report

        agent = await self._agents.require(agent_id)
        if not await self._agents.try_start(agent_id):
            logger.info("Agent %s is %s, skipping work session", agent_id.hex[:8], agent.status)
            return report

        logger.info(
            "Work session started for %s (%s), %d pending",
            agent.name,
            agent_id.hex[:8],
            status.pending_count,
        )
        await self._emit(WORK_SESSION_STARTED, agent_id, pending=status.pending_count)
        try:
            await self._run_session(agent, report)
        finally:
            await self._agents.finish(agent_id)
            await self._emit(
                WORK_SESSION_FINISHED,
                agent_id,
                processed=report.processed,
                failed=report.failed,
                extracted=report.extracted,
                briefed=report.briefed,
            )
            logger.info(
                "Work session finished for %s: %d processed, %d failed",
                agent_id.hex[:8],
                report.processed,
                report.failed,
            )
        return report

    # ------------------------------------------------------------------
    # Session body
    # ------------------------------------------------------------------

    async def _run_session(self, agent: Agent, report: WorkSessionReport) -> None:
        conversation = await self._conversations.get_or_create(agent.id, ConversationMode.BACKGROUND)
        owner = owner_of(agent)

        if self._graph_initializer is not None and agent.is_lead:
            try:
                name, purpose = await self._agents.owner_profile(owner)
                await self._graph_initializer.ensure_initialized(owner.id, name, purpose)
            except Exception:
                logger.exception("Graph type initialization failed for owner %s", owner.id.hex[:8])

        knowledge = await self._knowledge.recent_knowledge(agent.id, self._settings.knowledge_context_limit)
        knowledge_block = build_knowledge_context_block(knowledge)

        while True:
            task = await self._queue.claim_next(agent.id)
            if task is None:
                break
            try:
                await self._process_task(agent, conversation, task, knowledge_block)
            except Exception as e:
                logger.exception("Task %s failed for agent %s", task.id.hex[:8], agent.id.hex[:8])
                report.failed += 1
                await self._queue.fail(task.id, str(e))
                await self._backoff.schedule_backoff(agent.id)
                await self._emit(TASK_FAILED, agent.id, task_id=task.id.hex, error=str(e)[:500])
                break
            report.processed += 1
            await self._emit(TASK_COMPLETED, agent.id, task_id=task.id.hex)
            await self._compact(agent, conversation)

        # Wrap-up needs at least one completed task
        if report.processed == 0:
            return

        report.extracted = await self._extract_knowledge(agent, conversation)

        if agent.is_lead:
            report.briefed = await self._briefing_decider.decide(agent, conversation.id)
            if report.failed == 0:
                await self._backoff.schedule_next_run(agent.id)

    async def _process_task(
        self,
        agent: Agent,
        conversation: Conversation,
        task: AgentTask,
        knowledge_block: str,
    ) -> None:
        user_message = f"Task from {task.source}: {task.task}"
        messages = await self._conversations.build_context(conversation.id, self._settings.max_context_tokens)
        messages.append({"role": "user", "content": user_message})

        graph_block = await build_graph_context_block(
            self._graph, owner_of(agent).id, self._settings.graph_context_nodes
        )
        context = ToolContext(
            agent_id=agent.id,
            owner=owner_of(agent),
            is_lead=agent.is_lead,
            conversation_id=conversation.id,
        )

        logger.info("Agent %s processing task %s: %s", agent.id.hex[:8], task.id.hex[:8], task.task[:80])
        result = await self._tool_loop.run(
            messages,
            background_system_prompt(agent, knowledge_block, graph_block),
            background_tool_names(self._tool_loop.registry, agent.is_lead),
            context,
            max_steps=self._settings.background_max_steps,
            max_tokens=self._settings.max_response_tokens,
            model=self._settings.background_model,
        )

        async with self._conversations.db.session() as session:
            await self._conversations.append_turn(conversation.id, user_message, result.text, session=session)
            await self._queue.complete(task.id, result.text, session=session)
            await self._backoff.clear_backoff(agent.id, session=session)
            await session.commit()

    async def _compact(self, agent: Agent, conversation: Conversation) -> None:
        # The task is already committed; a summarizer failure must not touch it
        try:
            await self._conversations.compact_if_needed(
                conversation.id,
                self._settings.compact_after_messages,
                self._summarizer,
            )
        except Exception:
            logger.exception("Compaction failed for agent %s", agent.id.hex[:8])

    async def _extract_knowledge(self, agent: Agent, conversation: Conversation) -> int:
        try:
            messages = await self._conversations.get_context_with_compaction(conversation.id)
            items = await self._extractor.extract(messages, agent.role)
            if not items:
                return 0
            stored = await self._knowledge.persist_knowledge(agent.id, items, conversation.id)
        except Exception:
            logger.exception("Knowledge extraction failed for agent %s", agent.id.hex[:8])
            return 0
        logger.info("Extracted %d knowledge items for agent %s", len(stored), agent.id.hex[:8])
        await self._emit(KNOWLEDGE_EXTRACTED, agent.id, count=len(stored))
        return len(stored)

    async def _emit(self, event_type: str, agent_id: UUID, **data) -> None:
        if self._bus is not None:
            await self._bus.publish(event_type, agent_id, **data)
