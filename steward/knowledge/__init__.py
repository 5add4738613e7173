"""Knowledge items, memories and the extraction pipeline that produces them."""

from steward.knowledge.extraction import (
    KnowledgeExtractor,
    MemoryExtractor,
    build_knowledge_context_block,
    build_memory_context_block,
)
from steward.knowledge.items import KnowledgeManager
from steward.knowledge.schemas import (
    ExtractedKnowledge,
    ExtractedMemory,
    KnowledgeItemDetail,
    MemoryDetail,
)

__all__ = [
    "ExtractedKnowledge",
    "ExtractedMemory",
    "KnowledgeExtractor",
    "KnowledgeItemDetail",
    "KnowledgeManager",
    "MemoryDetail",
    "MemoryExtractor",
    "build_knowledge_context_block",
    "build_memory_context_block",
]
