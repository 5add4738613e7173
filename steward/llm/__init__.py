"""Language-model collaborator: model base class and the Anthropic client."""

from steward.llm.client import AnthropicClient, normalize_messages
from steward.llm.models import (
    ApiResponse,
    LanguageModel,
    StreamEvent,
    extract_text,
    parse_sse_event,
)

__all__ = [
    "AnthropicClient",
    "ApiResponse",
    "LanguageModel",
    "StreamEvent",
    "extract_text",
    "normalize_messages",
    "parse_sse_event",
]
