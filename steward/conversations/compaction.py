"""LLM-backed summarization used when compacting a conversation."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from steward.conversations.manager import llm_role
from steward.llm.models import LanguageModel
from steward.storage.models import Message

logger = logging.getLogger(__name__)

SUMMARY_SYSTEM_PROMPT = """\
You are a conversation summarizer. Your task is to create a concise but comprehensive \
summary of the conversation that preserves:

1. KEY TOPICS: The main subjects discussed
2. DECISIONS: Any conclusions or decisions made
3. ACTION ITEMS: Pending tasks or questions that need follow-up
4. CONTEXT: Important background information needed for continuity

Guidelines:
- Be concise but thorough - aim for 200-500 words depending on conversation length
- Use clear, organized formatting
- Preserve specific details that would be needed to continue the conversation
- If the conversation includes previous summaries, incorporate them into your new summary
- Write in third person (e.g., "The user requested..." not "You requested...")

Create a summary that would allow someone to continue this conversation without reading \
all the previous messages."""


def format_for_summary(messages: Sequence[Message]) -> str:
    """Render messages as ``[Role]: content`` blocks."""
    lines = []
    for m in messages:
        # Summaries and system notes read as model-side context
        role = llm_role(m.role) or "assistant"
        lines.append(f"[{role.capitalize()}]: {m.content}")
    return "\n\n".join(lines)


class ConversationSummarizer:
    """Callable summarizer passed to ConversationManager.compact_if_needed()."""

    def __init__(self, llm: LanguageModel, model: str | None = None, max_tokens: int = 2000) -> None:
        self._llm = llm
        self._model = model
        self._max_tokens = max_tokens

    async def __call__(self, messages: Sequence[Message]) -> str:
        if not messages:
            return "No messages to summarize."
        prompt = f"Please summarize the following conversation:\n\n{format_for_summary(messages)}"
        summary = await self._llm.generate_text(
            [{"role": "user", "content": prompt}],
            SUMMARY_SYSTEM_PROMPT,
            max_tokens=self._max_tokens,
            model=self._model,
        )
        logger.debug("Summarized %d messages into %d chars", len(messages), len(summary))
        return summary
