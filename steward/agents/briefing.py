"""Briefings and feedback requests surfaced to the owner, and the lead's briefing decision."""

from __future__ import annotations

import logging
from uuid import UUID

from pydantic import BaseModel, Field
from sqlalchemy import select

from steward.agents.owners import owner_of
from steward.agents.prompts import BRIEFING_PROMPT, BRIEFING_SYSTEM_PROMPT
from steward.conversations.manager import ConversationManager
from steward.events import BRIEFING_CREATED, EventBus
from steward.llm.models import LanguageModel
from steward.storage.database import Database
from steward.storage.models import Agent, Briefing, ConversationMode, InboxItem, MessageRole

logger = logging.getLogger(__name__)


class BriefingDecision(BaseModel):
    """Whether this work warrants notifying the user, and what to send."""

    should_brief: bool = Field(alias="shouldBrief", description="Whether this work warrants notifying the user")
    reason: str = Field(description="Brief reason for the decision")
    title: str | None = Field(default=None, description="Title for the briefing if shouldBrief is true")
    summary: str | None = Field(default=None, description="Summary for inbox if shouldBrief is true")
    full_message: str | None = Field(
        default=None,
        alias="fullMessage",
        description="Full briefing message if shouldBrief is true",
    )

    model_config = {"populate_by_name": True}

    @property
    def complete(self) -> bool:
        return bool(self.should_brief and self.title and self.summary and self.full_message)


class BriefingService:
    """Writes owner-facing notifications.

    Each write puts the notification rows and the foreground message in
    one transaction.
    """

    def __init__(self, db: Database, conversations: ConversationManager, bus: EventBus | None = None) -> None:
        self.db = db
        self._conversations = conversations
        self._bus = bus

    async def create_briefing(self, agent: Agent, title: str, summary: str, full_message: str) -> tuple[Briefing, InboxItem]:
        owner = owner_of(agent)
        conversation = await self._conversations.get_or_create(agent.id, ConversationMode.FOREGROUND)
        async with self.db.session() as session:
            briefing = Briefing(
                **owner.columns,
                agent_id=agent.id,
                title=title,
                summary=summary,
                content=full_message,
            )
            session.add(briefing)
            await session.flush()
            item = InboxItem(
                agent_id=agent.id,
                briefing_id=briefing.id,
                type="briefing",
                title=title,
                content=summary,
            )
            session.add(item)
            await self._conversations.append(conversation.id, MessageRole.ASSISTANT, full_message, session=session)
            await session.commit()

        logger.info("Agent %s created briefing %s: %s", agent.id.hex[:8], briefing.id.hex[:8], title)
        if self._bus is not None:
            await self._bus.publish(BRIEFING_CREATED, agent.id, briefing_id=briefing.id.hex, title=title)
        return briefing, item

    async def request_user_input(self, agent: Agent, title: str, summary: str, full_message: str) -> InboxItem:
        conversation = await self._conversations.get_or_create(agent.id, ConversationMode.FOREGROUND)
        async with self.db.session() as session:
            item = InboxItem(agent_id=agent.id, type="feedback", title=title, content=summary)
            session.add(item)
            await self._conversations.append(conversation.id, MessageRole.ASSISTANT, full_message, session=session)
            await session.commit()
        logger.info("Agent %s requested user input: %s", agent.id.hex[:8], title)
        return item

    async def list_inbox(self, agent_id: UUID, unread_only: bool = False) -> list[InboxItem]:
        async with self.db.session() as session:
            stmt = select(InboxItem).where(InboxItem.agent_id == agent_id)
            if unread_only:
                stmt = stmt.where(InboxItem.read.is_(False))
            result = await session.execute(stmt.order_by(InboxItem.created_at.desc(), InboxItem.id))
            return list(result.scalars().all())


class BriefingDecider:
    """Schema-constrained call deciding whether a lead's session merits a briefing."""

    def __init__(
        self,
        llm: LanguageModel,
        conversations: ConversationManager,
        briefings: BriefingService,
        transcript_chars: int = 2000,
        model: str | None = None,
    ) -> None:
        self._llm = llm
        self._conversations = conversations
        self._briefings = briefings
        self._transcript_chars = transcript_chars
        self._model = model

    async def decide(self, agent: Agent, conversation_id: UUID) -> bool:
        """Returns True when a briefing was created. Failures are logged and return False."""
        if not agent.is_lead:
            return False
        try:
            work_summary = await self._conversations.assistant_transcript(conversation_id, self._transcript_chars)
            if not work_summary:
                return False

            decision = await self._llm.generate_structured(
                [{"role": "user", "content": BRIEFING_PROMPT.format(work_summary=work_summary)}],
                BriefingDecision,
                BRIEFING_SYSTEM_PROMPT,
                max_tokens=2000,
                temperature=0,
                model=self._model,
            )
            if not decision.complete:
                logger.info("Agent %s: no briefing needed: %s", agent.id.hex[:8], decision.reason)
                return False

            await self._briefings.create_briefing(agent, decision.title, decision.summary, decision.full_message)
            return True
        except Exception:
            logger.exception("Briefing decision failed for agent %s", agent.id.hex[:8])
            return False
