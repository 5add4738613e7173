"""Multi-step tool-calling loop.

Calls the model with a tool set, executes every requested tool, feeds
all results back in a single user message, and repeats until the model
stops asking for tools or max_steps rounds have run. After max_steps a
final call is made without tools so the model has to answer in text.
Rounds are sequential; each depends on the previous model output.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from typing import Any

from steward.errors import LLMError
from steward.llm.models import LanguageModel
from steward.tools.registry import ToolContext, ToolRegistry

logger = logging.getLogger(__name__)


@dataclass
class ToolCall:
    id: str
    name: str
    input: dict[str, Any]


@dataclass
class ToolCallResult:
    tool_call_id: str
    name: str
    success: bool
    output: str
    duration_ms: int = 0


@dataclass
class ToolLoopResult:
    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolCallResult] = field(default_factory=list)
    steps: int = 0


class ToolLoop:
    """Mediates between a LanguageModel and a ToolRegistry."""

    def __init__(self, llm: LanguageModel, registry: ToolRegistry) -> None:
        self._llm = llm
        self._registry = registry

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def run(
        self,
        messages: list[dict[str, Any]],
        system_prompt: str,
        tool_names: Iterable[str],
        context: ToolContext,
        max_steps: int,
        max_tokens: int | None = None,
        *,
        temperature: float | None = None,
        model: str | None = None,
    ) -> ToolLoopResult:
        """Run the loop to completion and return text plus tool activity.

        Only the tools named in tool_names are offered, and only those can
        run; a call to any other tool comes back as a "Tool not found" error.
        """
        offered = self._registry.subset(tool_names)
        tools = offered.definitions()
        messages = list(messages)
        result = ToolLoopResult(text="")

        while result.steps < max_steps:
            response = await self._llm.complete(
                system_prompt,
                messages,
                tools or None,
                max_tokens=max_tokens,
                temperature=temperature,
                model=model,
            )
            tool_uses = response.tool_uses
            if response.stop_reason != "tool_use" or not tool_uses:
                result.text = response.text
                return result

            # Full assistant response (all content blocks) precedes the results
            messages.append({"role": "assistant", "content": response.content})
            calls = [ToolCall(id=b["id"], name=b["name"], input=b.get("input") or {}) for b in tool_uses]
            messages.append({"role": "user", "content": await self._execute(offered, calls, context, result)})
            result.steps += 1

        logger.warning("Tool loop reached max_steps=%d for agent %s", max_steps, context.agent_id.hex[:8])
        final = await self._llm.complete(
            system_prompt,
            messages,
            None,
            max_tokens=max_tokens,
            temperature=temperature,
            model=model,
        )
        result.text = final.text
        return result

    def stream(
        self,
        messages: list[dict[str, Any]],
        system_prompt: str,
        tool_names: Iterable[str],
        context: ToolContext,
        max_steps: int,
        max_tokens: int | None = None,
        *,
        temperature: float | None = None,
        model: str | None = None,
    ) -> "ToolLoopStream":
        """Same loop as run(), exposed as a live stream of text deltas."""
        return ToolLoopStream(
            self._stream_rounds(
                list(messages),
                system_prompt,
                self._registry.subset(tool_names),
                context,
                max_steps,
                max_tokens,
                temperature,
                model,
            )
        )

    async def _stream_rounds(
        self,
        messages: list[dict[str, Any]],
        system_prompt: str,
        offered: ToolRegistry,
        context: ToolContext,
        max_steps: int,
        max_tokens: int | None,
        temperature: float | None,
        model: str | None,
    ) -> AsyncIterator[str | ToolLoopResult]:
        tools = offered.definitions()
        result = ToolLoopResult(text="")

        while True:
            final_round = result.steps >= max_steps
            if final_round:
                logger.warning(
                    "Streaming tool loop reached max_steps=%d for agent %s",
                    max_steps,
                    context.agent_id.hex[:8],
                )

            text_parts: list[str] = []
            calls: list[ToolCall] = []
            accumulators: dict[int, dict[str, Any]] = {}
            stop_reason = ""

            async for event in self._llm.stream(
                system_prompt,
                messages,
                None if final_round else (tools or None),
                max_tokens=max_tokens,
                temperature=temperature,
                model=model,
            ):
                if event.type == "error":
                    raise LLMError(event.text)
                if event.type == "text_delta":
                    text_parts.append(event.text)
                    yield event.text
                elif event.type == "tool_start":
                    accumulators[event.block_index] = {
                        "id": event.tool_id,
                        "name": event.tool_name,
                        "input_parts": [],
                    }
                elif event.type == "tool_input_delta":
                    acc = accumulators.get(event.block_index)
                    if acc:
                        acc["input_parts"].append(event.text)
                elif event.type == "block_stop":
                    acc = accumulators.pop(event.block_index, None)
                    if acc:
                        raw = "".join(acc["input_parts"])
                        try:
                            tool_input = json.loads(raw) if raw else {}
                        except json.JSONDecodeError:
                            tool_input = {}
                        calls.append(ToolCall(id=acc["id"], name=acc["name"], input=tool_input))
                elif event.type == "done":
                    stop_reason = event.stop_reason

            round_text = "".join(text_parts)
            if final_round or stop_reason != "tool_use" or not calls:
                result.text = round_text
                break

            content: list[dict[str, Any]] = []
            if round_text:
                content.append({"type": "text", "text": round_text})
            for call in calls:
                content.append({"type": "tool_use", "id": call.id, "name": call.name, "input": call.input})
            messages.append({"role": "assistant", "content": content})
            messages.append({"role": "user", "content": await self._execute(offered, calls, context, result)})
            result.steps += 1

        yield result

    async def _execute(
        self,
        offered: ToolRegistry,
        calls: list[ToolCall],
        context: ToolContext,
        result: ToolLoopResult,
    ) -> list[dict[str, Any]]:
        """Execute calls in order; return tool_result blocks for one user message."""
        blocks: list[dict[str, Any]] = []
        for call in calls:
            start_time = time.monotonic()
            text, is_error = await offered.dispatch(call.name, call.input, context)
            duration_ms = int((time.monotonic() - start_time) * 1000)

            blocks.append({
                "type": "tool_result",
                "tool_use_id": call.id,
                "content": text,
                "is_error": is_error,
            })
            result.tool_calls.append(call)
            result.tool_results.append(ToolCallResult(
                tool_call_id=call.id,
                name=call.name,
                success=not is_error,
                output=text,
                duration_ms=duration_ms,
            ))
            if is_error:
                logger.info("Tool %s returned error: %s", call.name, text[:200])
            else:
                logger.debug("Tool %s ok in %dms", call.name, duration_ms)
        return blocks


class ToolLoopStream:
    """Async iterator of text deltas with a deferred ToolLoopResult.

    ``result()`` drains whatever the caller did not consume, so it can be
    awaited after partial iteration or without iterating at all.
    """

    def __init__(self, rounds: AsyncIterator[str | ToolLoopResult]) -> None:
        self._rounds = rounds
        self._result: ToolLoopResult | None = None

    def __aiter__(self) -> "ToolLoopStream":
        return self

    async def __anext__(self) -> str:
        if self._result is not None:
            raise StopAsyncIteration
        item = await self._rounds.__anext__()
        if isinstance(item, ToolLoopResult):
            self._result = item
            raise StopAsyncIteration
        return item

    async def result(self) -> ToolLoopResult:
        async for _ in self:
            pass
        if self._result is None:
            raise LLMError("Tool loop stream ended without a result")
        return self._result
