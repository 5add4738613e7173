"""KnowledgeManager -- persistence for knowledge items and memories.

Rows are only created from extraction output (or the addKnowledgeItem
tool) and never edited; deletion is the only mutation.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from steward.knowledge.schemas import (
    ExtractedKnowledge,
    ExtractedMemory,
    KnowledgeItemDetail,
    KnowledgeType,
    MemoryDetail,
)
from steward.storage.database import Database
from steward.storage.models import KnowledgeItem, Memory

logger = logging.getLogger(__name__)


class KnowledgeManager:
    """Stores what agents learn: knowledge items (work) and memories (user)."""

    def __init__(self, db: Database) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Knowledge items
    # ------------------------------------------------------------------

    async def persist_knowledge(
        self,
        agent_id: UUID,
        items: Sequence[ExtractedKnowledge],
        conversation_id: UUID | None = None,
        session: AsyncSession | None = None,
    ) -> list[KnowledgeItemDetail]:
        """Write each item as its own row."""
        if not items:
            return []
        if session is None:
            async with self.db.session() as session:
                result = await self._persist_knowledge(agent_id, items, conversation_id, session)
                await session.commit()
                return result
        return await self._persist_knowledge(agent_id, items, conversation_id, session)

    async def _persist_knowledge(
        self,
        agent_id: UUID,
        items: Sequence[ExtractedKnowledge],
        conversation_id: UUID | None,
        session: AsyncSession,
    ) -> list[KnowledgeItemDetail]:
        rows = [
            KnowledgeItem(
                agent_id=agent_id,
                type=item.type,
                content=item.content,
                confidence=item.confidence,
                source_conversation_id=conversation_id,
            )
            for item in items
        ]
        session.add_all(rows)
        await session.flush()
        logger.info("Stored %d knowledge items for agent %s", len(rows), agent_id.hex[:8])
        return [self._knowledge_detail(r) for r in rows]

    async def list_knowledge(
        self,
        agent_id: UUID,
        type: KnowledgeType | None = None,
        limit: int | None = None,
    ) -> list[KnowledgeItemDetail]:
        """Newest first."""
        async with self.db.session() as session:
            stmt = select(KnowledgeItem).where(KnowledgeItem.agent_id == agent_id)
            if type:
                stmt = stmt.where(KnowledgeItem.type == type)
            stmt = stmt.order_by(KnowledgeItem.created_at.desc(), KnowledgeItem.id)
            if limit:
                stmt = stmt.limit(limit)
            result = await session.execute(stmt)
            return [self._knowledge_detail(r) for r in result.scalars().all()]

    async def recent_knowledge(self, agent_id: UUID, limit: int = 20) -> list[KnowledgeItemDetail]:
        return await self.list_knowledge(agent_id, limit=limit)

    async def delete_knowledge(self, agent_id: UUID, item_id: UUID) -> bool:
        """Delete one of the agent's items. Returns False if it was not found."""
        async with self.db.session() as session:
            result = await session.execute(
                delete(KnowledgeItem).where(KnowledgeItem.id == item_id).where(KnowledgeItem.agent_id == agent_id)
            )
            await session.commit()
            return result.rowcount > 0

    # ------------------------------------------------------------------
    # Memories
    # ------------------------------------------------------------------

    async def persist_memories(
        self,
        agent_id: UUID,
        items: Sequence[ExtractedMemory],
        source_message_id: UUID | None = None,
    ) -> list[MemoryDetail]:
        if not items:
            return []
        async with self.db.session() as session:
            rows = [
                Memory(
                    agent_id=agent_id,
                    type=item.type,
                    content=item.content,
                    source_message_id=source_message_id,
                )
                for item in items
            ]
            session.add_all(rows)
            await session.commit()
        logger.info("Stored %d memories for agent %s", len(rows), agent_id.hex[:8])
        return [self._memory_detail(r) for r in rows]

    async def list_memories(self, agent_id: UUID, limit: int | None = None) -> list[MemoryDetail]:
        """Newest first."""
        async with self.db.session() as session:
            stmt = (
                select(Memory)
                .where(Memory.agent_id == agent_id)
                .order_by(Memory.created_at.desc(), Memory.id)
            )
            if limit:
                stmt = stmt.limit(limit)
            result = await session.execute(stmt)
            return [self._memory_detail(r) for r in result.scalars().all()]

    async def delete_memory(self, agent_id: UUID, memory_id: UUID) -> bool:
        async with self.db.session() as session:
            result = await session.execute(
                delete(Memory).where(Memory.id == memory_id).where(Memory.agent_id == agent_id)
            )
            await session.commit()
            return result.rowcount > 0

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _knowledge_detail(row: KnowledgeItem) -> KnowledgeItemDetail:
        return KnowledgeItemDetail(
            id=row.id,
            agent_id=row.agent_id,
            type=row.type,
            content=row.content,
            confidence=row.confidence,
            source_conversation_id=row.source_conversation_id,
            created_at=row.created_at,
        )

    @staticmethod
    def _memory_detail(row: Memory) -> MemoryDetail:
        return MemoryDetail(
            id=row.id,
            agent_id=row.agent_id,
            type=row.type,
            content=row.content,
            source_message_id=row.source_message_id,
            created_at=row.created_at,
        )
