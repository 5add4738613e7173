"""Conversation manager -- append-only message log per agent and mode.

Each agent has at most one conversation per mode (foreground and
background), created lazily. Messages carry a per-conversation sequence
number that strictly increases and is never reused.

Compaction appends a ``summary`` message; nothing is ever deleted. The
effective context of a conversation is the latest summary followed by
every message with a higher sequence number.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable, Sequence
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from steward.errors import ConversationError
from steward.events import CONVERSATION_COMPACTED, EventBus
from steward.storage.database import Database
from steward.storage.models import Conversation, ConversationMode, Message, MessageRole

logger = logging.getLogger(__name__)

# Summarization callback: visible context in, summary text out
Summarize = Callable[[Sequence[Message]], Awaitable[str]]

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Crude token estimate: ceil(chars / 4)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_message_tokens(messages: Sequence[dict[str, Any]]) -> int:
    """Token estimate over the summed content length of LLM messages."""
    return math.ceil(sum(len(m["content"]) for m in messages) / CHARS_PER_TOKEN)


def llm_role(role: str) -> str | None:
    """Map a stored role to the LLM role. System messages have no LLM role."""
    if role == MessageRole.SYSTEM:
        return None
    if role == MessageRole.USER:
        return "user"
    # assistant and summary are both model-side context
    return "assistant"


def to_llm_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Convert stored messages to LLM ``{"role", "content"}`` dicts."""
    result = []
    for m in messages:
        role = llm_role(m.role)
        if role is None:
            continue
        result.append({"role": role, "content": m.content})
    return result


def trim_to_token_budget(messages: list[dict[str, Any]], max_tokens: int) -> list[dict[str, Any]]:
    """Keep the newest messages that fit in max_tokens, in chronological order.

    Walks from newest to oldest and stops at the first message that would
    exceed the budget, so a large message cuts off everything older.
    """
    kept: list[dict[str, Any]] = []
    used = 0
    for m in reversed(messages):
        cost = estimate_tokens(m["content"])
        if used + cost > max_tokens:
            break
        kept.append(m)
        used += cost
    kept.reverse()
    return kept


class ConversationManager:
    """Owns conversations and their messages."""

    def __init__(self, db: Database, bus: EventBus | None = None) -> None:
        self.db = db
        self._bus = bus

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    async def get_or_create(self, agent_id: UUID, mode: ConversationMode) -> Conversation:
        """Return the agent's conversation for a mode, creating it on first use."""
        mode = ConversationMode(mode)
        async with self.db.session() as session:
            existing = await self._find(session, agent_id, mode)
            if existing is not None:
                return existing
            conversation = Conversation(agent_id=agent_id, mode=mode)
            session.add(conversation)
            try:
                await session.commit()
            except IntegrityError:
                # Created concurrently; the unique (agent_id, mode) row wins
                await session.rollback()
                existing = await self._find(session, agent_id, mode)
                if existing is None:
                    raise
                return existing
        logger.info("Created %s conversation %s for agent %s", mode, conversation.id.hex[:8], agent_id.hex[:8])
        return conversation

    async def get(self, conversation_id: UUID) -> Conversation | None:
        async with self.db.session() as session:
            return await session.get(Conversation, conversation_id)

    @staticmethod
    async def _find(session: AsyncSession, agent_id: UUID, mode: ConversationMode) -> Conversation | None:
        result = await session.execute(
            select(Conversation).where(Conversation.agent_id == agent_id).where(Conversation.mode == mode)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # append()
    # ------------------------------------------------------------------

    async def append(
        self,
        conversation_id: UUID,
        role: MessageRole,
        content: str,
        session: AsyncSession | None = None,
        previous_message_id: UUID | None = None,
    ) -> Message:
        """Append a message with the next sequence number."""
        if session is None:
            async with self.db.session() as session:
                message = await self._append(session, conversation_id, role, content, previous_message_id)
                await session.commit()
                return message
        return await self._append(session, conversation_id, role, content, previous_message_id)

    async def append_turn(
        self,
        conversation_id: UUID,
        user_content: str,
        assistant_content: str,
        session: AsyncSession | None = None,
    ) -> tuple[Message, Message]:
        """Append a user message and the assistant reply in one transaction."""
        if session is None:
            async with self.db.session() as session:
                turn = await self._append_turn(session, conversation_id, user_content, assistant_content)
                await session.commit()
                return turn
        return await self._append_turn(session, conversation_id, user_content, assistant_content)

    async def _append_turn(
        self,
        session: AsyncSession,
        conversation_id: UUID,
        user_content: str,
        assistant_content: str,
    ) -> tuple[Message, Message]:
        user_msg = await self._append(session, conversation_id, MessageRole.USER, user_content)
        assistant_msg = await self._append(session, conversation_id, MessageRole.ASSISTANT, assistant_content)
        return user_msg, assistant_msg

    async def _append(
        self,
        session: AsyncSession,
        conversation_id: UUID,
        role: MessageRole,
        content: str,
        previous_message_id: UUID | None = None,
    ) -> Message:
        result = await session.execute(
            select(func.max(Message.seq)).where(Message.conversation_id == conversation_id)
        )
        last_seq = result.scalar_one_or_none() or 0
        message = Message(
            conversation_id=conversation_id,
            role=MessageRole(role),
            content=content,
            seq=last_seq + 1,
            previous_message_id=previous_message_id,
        )
        session.add(message)
        await session.flush()
        return message

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def messages(self, conversation_id: UUID) -> list[Message]:
        """Full history in sequence order, summaries included."""
        async with self.db.session() as session:
            result = await session.execute(
                select(Message).where(Message.conversation_id == conversation_id).order_by(Message.seq)
            )
            return list(result.scalars().all())

    async def count(self, conversation_id: UUID) -> int:
        async with self.db.session() as session:
            result = await session.execute(
                select(func.count()).select_from(Message).where(Message.conversation_id == conversation_id)
            )
            return result.scalar_one()

    async def get_context_with_compaction(self, conversation_id: UUID) -> list[Message]:
        """Latest summary (if any) followed by every message after it."""
        async with self.db.session() as session:
            result = await session.execute(
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .where(Message.role == MessageRole.SUMMARY)
                .order_by(Message.seq.desc())
                .limit(1)
            )
            summary = result.scalar_one_or_none()

            q = select(Message).where(Message.conversation_id == conversation_id).order_by(Message.seq)
            if summary is not None:
                q = q.where(Message.seq >= summary.seq)
            result = await session.execute(q)
            return list(result.scalars().all())

    async def build_context(self, conversation_id: UUID, max_tokens: int) -> list[dict[str, Any]]:
        """Effective context as LLM messages, trimmed to a token budget."""
        visible = await self.get_context_with_compaction(conversation_id)
        return trim_to_token_budget(to_llm_messages(visible), max_tokens)

    async def assistant_transcript(self, conversation_id: UUID, max_chars: int) -> str:
        """Assistant messages of the effective context joined and cut to max_chars."""
        visible = await self.get_context_with_compaction(conversation_id)
        joined = "\n\n".join(m.content for m in visible if m.role == MessageRole.ASSISTANT)
        return joined[:max_chars]

    # ------------------------------------------------------------------
    # Compaction
    # ------------------------------------------------------------------

    async def compact_if_needed(
        self,
        conversation_id: UUID,
        max_messages: int,
        summarize: Summarize,
    ) -> Message | None:
        """Compact when the effective context holds max_messages or more."""
        visible = await self.get_context_with_compaction(conversation_id)
        if len(visible) < max_messages:
            return None
        return await self._compact(conversation_id, visible, summarize)

    async def compact(self, conversation_id: UUID, summarize: Summarize) -> Message:
        """Summarize the effective context and append the summary."""
        visible = await self.get_context_with_compaction(conversation_id)
        return await self._compact(conversation_id, visible, summarize)

    async def _compact(
        self,
        conversation_id: UUID,
        visible: list[Message],
        summarize: Summarize,
    ) -> Message:
        if not visible:
            raise ConversationError("Cannot compact empty conversation")

        summary_text = await summarize(visible)
        summary = await self.append(
            conversation_id,
            MessageRole.SUMMARY,
            summary_text,
            previous_message_id=visible[-1].id,
        )
        logger.info(
            "Compacted conversation %s: %d messages -> summary (%d chars)",
            conversation_id.hex[:8],
            len(visible),
            len(summary_text),
        )
        if self._bus is not None:
            conversation = await self.get(conversation_id)
            await self._bus.publish(
                CONVERSATION_COMPACTED,
                conversation.agent_id if conversation else None,
                conversation_id=conversation_id.hex,
                summarized=len(visible),
            )
        return summary
