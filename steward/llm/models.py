"""Language-model data types and the model base class.

A model only has to implement ``complete()``. Streaming, plain text
generation and schema-constrained generation are built on top of it
here, and the Anthropic client overrides ``stream()`` with real SSE.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, TypeVar

from pydantic import BaseModel

from steward.errors import LLMError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

# Tool name the model is forced to call for structured output
STRUCTURED_TOOL_NAME = "respond"


@dataclass
class ApiResponse:
    """Parsed response from the Messages API."""

    content: list[dict[str, Any]]  # Raw content blocks
    stop_reason: str  # end_turn, max_tokens, tool_use, stop_sequence
    usage: dict[str, int] | None = None

    @property
    def text(self) -> str:
        return extract_text(self.content)

    @property
    def tool_uses(self) -> list[dict[str, Any]]:
        return [b for b in self.content if b.get("type") == "tool_use"]


@dataclass
class StreamEvent:
    """A single event from a streaming response."""

    type: str  # text_delta, text_block_start, tool_start, tool_input_delta, block_stop, done, error, message_stop
    text: str = ""
    tool_name: str = ""
    tool_id: str = ""
    tool_input: dict = field(default_factory=dict)
    stop_reason: str = ""
    block_index: int = 0


def extract_text(content_blocks: list[dict[str, Any]]) -> str:
    """Join the text blocks of a response."""
    parts = [b["text"] for b in content_blocks if b.get("type") == "text"]
    return "\n".join(parts) if parts else ""


def parse_sse_event(data: dict[str, Any]) -> StreamEvent | None:
    """Parse one Anthropic SSE payload into a StreamEvent.

    Ping keepalives are skipped. stop_reason arrives in message_delta,
    not message_start. In-stream error events (HTTP 200 with an error
    body) become error events.
    """
    event_type = data.get("type")

    if event_type == "ping":
        return None

    if event_type == "error":
        error = data.get("error", {})
        return StreamEvent(
            type="error",
            text=f"{error.get('type', 'unknown')}: {error.get('message', '')}",
        )

    if event_type == "content_block_start":
        block = data.get("content_block", {})
        block_index = data.get("index", 0)
        if block.get("type") == "tool_use":
            return StreamEvent(
                type="tool_start",
                tool_name=block.get("name", ""),
                tool_id=block.get("id", ""),
                block_index=block_index,
            )
        return StreamEvent(type="text_block_start", block_index=block_index)

    if event_type == "content_block_delta":
        delta = data.get("delta", {})
        block_index = data.get("index", 0)
        if delta.get("type") == "text_delta":
            return StreamEvent(type="text_delta", text=delta.get("text", ""), block_index=block_index)
        if delta.get("type") == "input_json_delta":
            return StreamEvent(
                type="tool_input_delta",
                text=delta.get("partial_json", ""),
                block_index=block_index,
            )
        return None

    if event_type == "content_block_stop":
        return StreamEvent(type="block_stop", block_index=data.get("index", 0))

    if event_type == "message_delta":
        return StreamEvent(
            type="done",
            stop_reason=data.get("delta", {}).get("stop_reason", ""),
        )

    if event_type == "message_stop":
        return StreamEvent(type="message_stop")

    return None


def events_from_response(response: ApiResponse) -> list[StreamEvent]:
    """Replay a complete response as the event sequence a stream would produce."""
    events: list[StreamEvent] = []
    for index, block in enumerate(response.content):
        if block.get("type") == "text":
            events.append(StreamEvent(type="text_block_start", block_index=index))
            events.append(StreamEvent(type="text_delta", text=block.get("text", ""), block_index=index))
        elif block.get("type") == "tool_use":
            events.append(StreamEvent(
                type="tool_start",
                tool_name=block.get("name", ""),
                tool_id=block.get("id", ""),
                block_index=index,
            ))
            events.append(StreamEvent(
                type="tool_input_delta",
                text=json.dumps(block.get("input", {})),
                block_index=index,
            ))
        events.append(StreamEvent(type="block_stop", block_index=index))
    events.append(StreamEvent(type="done", stop_reason=response.stop_reason))
    events.append(StreamEvent(type="message_stop"))
    return events


class LanguageModel:
    """Base class for language-model collaborators.

    Subclasses implement ``complete()``; everything else derives from it.
    Calls may raise LLMError.
    """

    async def complete(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        tool_choice: dict[str, Any] | None = None,
        model: str | None = None,
    ) -> ApiResponse:
        raise NotImplementedError

    async def stream(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        model: str | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream a response. The default replays a complete() call."""
        response = await self.complete(
            system_prompt,
            messages,
            tools,
            max_tokens=max_tokens,
            temperature=temperature,
            model=model,
        )
        for event in events_from_response(response):
            yield event

    # ------------------------------------------------------------------
    # Primitives used by the engine
    # ------------------------------------------------------------------

    async def generate_text(
        self,
        messages: list[dict[str, Any]],
        system_prompt: str,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        model: str | None = None,
    ) -> str:
        """Complete text without tools."""
        response = await self.complete(
            system_prompt,
            messages,
            max_tokens=max_tokens,
            temperature=temperature,
            model=model,
        )
        return response.text

    async def stream_text(
        self,
        messages: list[dict[str, Any]],
        system_prompt: str,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        model: str | None = None,
    ) -> AsyncIterator[str]:
        """Yield text deltas without tools."""
        async for event in self.stream(
            system_prompt,
            messages,
            max_tokens=max_tokens,
            temperature=temperature,
            model=model,
        ):
            if event.type == "error":
                raise LLMError(event.text)
            if event.type == "text_delta":
                yield event.text

    async def generate_structured(
        self,
        messages: list[dict[str, Any]],
        schema: type[T],
        system_prompt: str,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        model: str | None = None,
    ) -> T:
        """Generate a value matching a pydantic schema.

        The model is forced to call a single tool whose input schema is the
        pydantic model's JSON schema. Raises LLMError when no tool call comes
        back and pydantic.ValidationError when the input does not validate.
        """
        tool = {
            "name": STRUCTURED_TOOL_NAME,
            "description": schema.__doc__ or f"Respond with a {schema.__name__} object.",
            "input_schema": schema.model_json_schema(),
        }
        response = await self.complete(
            system_prompt,
            messages,
            [tool],
            max_tokens=max_tokens,
            temperature=temperature,
            tool_choice={"type": "tool", "name": STRUCTURED_TOOL_NAME},
            model=model,
        )
        for block in response.tool_uses:
            if block.get("name") == STRUCTURED_TOOL_NAME:
                return schema.model_validate(block.get("input", {}))
        raise LLMError(f"Model returned no {schema.__name__} (stop_reason={response.stop_reason})")
