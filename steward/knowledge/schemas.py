"""Pydantic DTOs for knowledge items, memories and their extraction results."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

KnowledgeType = Literal["fact", "technique", "pattern", "lesson"]
MemoryType = Literal["preference", "insight", "fact"]


# --- Knowledge items (background work) ---


class ExtractedKnowledge(BaseModel):
    type: KnowledgeType
    content: str = Field(description="The knowledge item content")
    confidence: float | None = Field(default=None, ge=0.0, le=1.0, description="Confidence level from 0 to 1")


class KnowledgeExtractionResult(BaseModel):
    """Knowledge items worth retaining from a work session."""

    knowledge_items: list[ExtractedKnowledge] = Field(
        default_factory=list,
        alias="knowledgeItems",
        description="Array of extracted knowledge items",
    )

    model_config = {"populate_by_name": True}


class KnowledgeItemDetail(BaseModel):
    id: UUID
    agent_id: UUID
    type: KnowledgeType
    content: str
    confidence: float | None = None
    source_conversation_id: UUID | None = None
    created_at: datetime


# --- Memories (foreground chat) ---


class ExtractedMemory(BaseModel):
    type: MemoryType
    content: str = Field(description="The memory content to store")


class MemoryExtractionResult(BaseModel):
    """Information about the user worth remembering."""

    memories: list[ExtractedMemory] = Field(default_factory=list, description="Array of extracted memories")


class MemoryDetail(BaseModel):
    id: UUID
    agent_id: UUID
    type: MemoryType
    content: str
    source_message_id: UUID | None = None
    created_at: datetime
