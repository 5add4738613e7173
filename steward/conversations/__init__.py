"""Conversation/thread management: append-only log, context budget, compaction."""

from steward.conversations.compaction import ConversationSummarizer
from steward.conversations.manager import (
    ConversationManager,
    Summarize,
    estimate_message_tokens,
    estimate_tokens,
    to_llm_messages,
    trim_to_token_budget,
)

__all__ = [
    "ConversationManager",
    "ConversationSummarizer",
    "Summarize",
    "estimate_message_tokens",
    "estimate_tokens",
    "to_llm_messages",
    "trim_to_token_budget",
]
