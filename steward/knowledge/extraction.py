"""Extraction pipeline -- turns transcripts into durable knowledge and memories.

Extraction is a structured LLM call. Any failure (model error, output
that fails validation) is logged and treated as "nothing extracted";
it never ends a work session.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from steward.knowledge.schemas import (
    ExtractedKnowledge,
    ExtractedMemory,
    KnowledgeExtractionResult,
    KnowledgeItemDetail,
    MemoryDetail,
    MemoryExtractionResult,
)
from steward.llm.models import LanguageModel
from steward.storage.models import Message

logger = logging.getLogger(__name__)

EXTRACTION_TEMPERATURE = 0.3

KNOWLEDGE_EXTRACTION_SYSTEM_PROMPT = """\
You are a knowledge extraction assistant. Your job is to analyze work session transcripts and extract valuable professional knowledge that should be retained for future work sessions.

Extract knowledge items that fall into these categories:
- **fact**: Domain-specific knowledge, data points, specifications, or truths about the work domain
- **technique**: Approaches, methods, or procedures that proved effective
- **pattern**: Observed trends, recurring behaviors, or correlations
- **lesson**: Learnings from experience - what worked, what didn't, and why

Guidelines:
- Focus on knowledge that will improve future work performance
- Be concise but capture the essence of what should be retained
- Include confidence levels based on how well-supported the knowledge item is
- Do not extract trivial or obvious information
- Prioritize actionable knowledge items over general observations
- If nothing significant was learned, return an empty array

Return a JSON object with an array of knowledge items, or an empty array if nothing worth retaining."""

MEMORY_EXTRACTION_SYSTEM_PROMPT = """\
You are a memory extraction assistant. Your job is to analyze conversation exchanges and extract important information that should be remembered for future interactions.

Extract memories that fall into these categories:
- **preference**: User preferences, likes, dislikes, communication style preferences
- **insight**: Strategic insights, patterns noticed, conclusions drawn from analysis
- **fact**: Factual information about the user, their situation, or relevant data

Guidelines:
- Only extract information that will be valuable for future interactions
- Be concise but capture the essence of what should be remembered
- Do not extract trivial or temporary information
- If nothing worth remembering, return an empty array

Return a JSON array of memories, or an empty array if nothing worth remembering."""


def format_transcript(messages: Sequence[Message]) -> str:
    return "\n\n".join(f"[{str(m.role).upper()}]: {m.content}" for m in messages)


class KnowledgeExtractor:
    """Background variant: facts, techniques, patterns and lessons from a work session."""

    def __init__(self, llm: LanguageModel, model: str | None = None, max_tokens: int = 2000) -> None:
        self._llm = llm
        self._model = model
        self._max_tokens = max_tokens

    async def extract(self, messages: Sequence[Message], role: str) -> list[ExtractedKnowledge]:
        if not messages:
            return []

        prompt = (
            "Analyze this work session and extract any valuable knowledge items worth retaining.\n\n"
            f"Agent Role: {role}\n\n"
            f"Work Session Transcript:\n---\n{format_transcript(messages)}\n---\n\n"
            "Extract knowledge items that will help the agent perform better in future work sessions. Consider:\n"
            "1. What approaches worked or didn't work? (type: technique or lesson)\n"
            "2. What patterns were discovered? (type: pattern)\n"
            "3. What domain facts were learned? (type: fact)\n"
            "4. What should be done differently next time? (type: lesson)\n\n"
            "Only extract knowledge items that are genuinely valuable and not obvious."
        )
        try:
            result = await self._llm.generate_structured(
                [{"role": "user", "content": prompt}],
                KnowledgeExtractionResult,
                KNOWLEDGE_EXTRACTION_SYSTEM_PROMPT,
                max_tokens=self._max_tokens,
                temperature=EXTRACTION_TEMPERATURE,
                model=self._model,
            )
        except Exception:
            logger.exception("Knowledge extraction failed")
            return []
        return [item for item in result.knowledge_items if item.content.strip()]


class MemoryExtractor:
    """Foreground variant: preferences, insights and facts about the user."""

    def __init__(self, llm: LanguageModel, model: str | None = None, max_tokens: int = 1000) -> None:
        self._llm = llm
        self._model = model
        self._max_tokens = max_tokens

    async def extract(self, user_message: str, assistant_response: str, role: str) -> list[ExtractedMemory]:
        prompt = (
            "Given this conversation exchange, extract any information worth remembering.\n\n"
            f"Agent Role: {role}\n\n"
            f'User said: "{user_message}"\n\n'
            f'Assistant responded: "{assistant_response}"\n\n'
            "Extract memories that will help the agent perform its role better in future interactions."
        )
        try:
            result = await self._llm.generate_structured(
                [{"role": "user", "content": prompt}],
                MemoryExtractionResult,
                MEMORY_EXTRACTION_SYSTEM_PROMPT,
                max_tokens=self._max_tokens,
                temperature=EXTRACTION_TEMPERATURE,
                model=self._model,
            )
        except Exception:
            logger.exception("Memory extraction failed")
            return []
        return [m for m in result.memories if m.content.strip()]


# ---------------------------------------------------------------------------
# Prompt blocks
# ---------------------------------------------------------------------------

_KNOWLEDGE_SECTIONS = (
    ("fact", "Domain Knowledge"),
    ("technique", "Effective Techniques"),
    ("pattern", "Observed Patterns"),
    ("lesson", "Lessons Learned"),
)

_MEMORY_SECTIONS = (
    ("preference", "User Preferences"),
    ("insight", "Insights"),
    ("fact", "Facts"),
)


def _grouped(items: Sequence[KnowledgeItemDetail | MemoryDetail], sections: tuple[tuple[str, str], ...]) -> str:
    blocks = []
    for type_name, heading in sections:
        lines = [f"- {i.content}" for i in items if i.type == type_name]
        if lines:
            blocks.append(f"## {heading}\n" + "\n".join(lines))
    return "\n\n".join(blocks)


def build_knowledge_context_block(items: Sequence[KnowledgeItemDetail]) -> str:
    """<professional_knowledge> block for background prompts; empty string if no items."""
    if not items:
        return ""
    return (
        "<professional_knowledge>\n"
        "The following knowledge items have been learned from previous work sessions:\n\n"
        f"{_grouped(items, _KNOWLEDGE_SECTIONS)}\n"
        "</professional_knowledge>"
    )


def build_memory_context_block(memories: Sequence[MemoryDetail]) -> str:
    """<memories> block for foreground prompts; empty string if no memories."""
    if not memories:
        return ""
    return (
        "<memories>\n"
        "The following information has been learned from previous interactions:\n\n"
        f"{_grouped(memories, _MEMORY_SECTIONS)}\n"
        "</memories>"
    )
