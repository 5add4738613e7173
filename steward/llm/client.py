"""Anthropic Messages API client over httpx.

Direct HTTP calls, no SDK. One retry on 429/500/529 and on timeouts;
anything else surfaces as LLMError.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from steward.config import Settings
from steward.errors import LLMError
from steward.llm.models import ApiResponse, LanguageModel, StreamEvent, parse_sse_event

logger = logging.getLogger(__name__)

# Anthropic API version header
_API_VERSION = "2023-06-01"

_RETRY_STATUSES = (429, 500, 529)

# Placeholder opening turn when history starts with model-side context
_CONTINUE_PROMPT = "(continuing the conversation)"


def normalize_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Make a message list acceptable to the Messages API.

    Consecutive plain-text messages with the same role are merged and a
    history that opens with an assistant message gets a user turn first.
    Block-content messages (tool use and results) pass through untouched.
    """
    result: list[dict[str, Any]] = []
    for m in messages:
        prev = result[-1] if result else None
        if (
            prev is not None
            and prev["role"] == m["role"]
            and isinstance(prev["content"], str)
            and isinstance(m["content"], str)
        ):
            prev["content"] = f"{prev['content']}\n\n{m['content']}"
            continue
        result.append(dict(m))
    if result and result[0]["role"] != "user":
        result.insert(0, {"role": "user", "content": _CONTINUE_PROMPT})
    return result


class AnthropicClient(LanguageModel):
    """Language model backed by the Anthropic Messages API."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._http: httpx.AsyncClient | None = None

    async def start(self) -> None:
        """Initialize the httpx client with auth and timeout settings."""
        settings = self._settings

        headers: dict[str, str] = {
            "anthropic-version": _API_VERSION,
            "content-type": "application/json",
        }

        # OAT tokens (sk-ant-oat*) require Bearer auth plus beta headers.
        # Regular API keys use x-api-key.
        api_key = settings.anthropic_api_key or ""
        auth_token = settings.anthropic_auth_token or ""

        if auth_token:
            headers["authorization"] = f"Bearer {auth_token}"
            if "sk-ant-oat" in auth_token:
                headers["anthropic-beta"] = "oauth-2025-04-20"
                headers["anthropic-dangerous-direct-browser-access"] = "true"
        elif api_key:
            if "sk-ant-oat" in api_key:
                headers["authorization"] = f"Bearer {api_key}"
                headers["anthropic-beta"] = "oauth-2025-04-20"
                headers["anthropic-dangerous-direct-browser-access"] = "true"
            else:
                headers["x-api-key"] = api_key
        else:
            logger.warning(
                "Neither ANTHROPIC_API_KEY nor ANTHROPIC_AUTH_TOKEN is set -- "
                "API calls will fail"
            )

        timeout = httpx.Timeout(
            connect=settings.api_timeout_connect,
            read=settings.api_timeout_read,
            write=10.0,
            pool=10.0,
        )
        limits = httpx.Limits(max_connections=10, max_keepalive_connections=5)

        self._http = httpx.AsyncClient(
            base_url=settings.api_base_url,
            headers=headers,
            timeout=timeout,
            limits=limits,
        )
        auth_type = "Bearer token" if auth_token or "sk-ant-oat" in api_key else "API key"
        logger.info("httpx client initialized (auth: %s)", auth_type)

    async def close(self) -> None:
        """Clean up httpx client."""
        if self._http:
            await self._http.aclose()
            self._http = None

    def _build_payload(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
        max_tokens: int | None,
        temperature: float | None,
        tool_choice: dict[str, Any] | None,
        model: str | None,
        stream: bool = False,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model or self._settings.model,
            "max_tokens": max_tokens or self._settings.max_tokens,
            "system": [
                {
                    "type": "text",
                    "text": system_prompt,
                    "cache_control": {"type": "ephemeral"},
                }
            ],
            "messages": normalize_messages(messages),
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if tools:
            payload["tools"] = tools
        if tool_choice:
            payload["tool_choice"] = tool_choice
        if stream:
            payload["stream"] = True
        return payload

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
        """Call the Messages API with one retry for 429/500/529 and timeouts."""
        if not self._http:
            raise LLMError("httpx client not initialized -- call start() first")

        payload = self._build_payload(
            system_prompt, messages, tools, max_tokens, temperature, tool_choice, model
        )

        last_error: Exception | None = None
        for attempt in range(2):
            try:
                response = await self._http.post("/v1/messages", json=payload)

                if response.status_code == 200:
                    data = response.json()
                    return ApiResponse(
                        content=data["content"],
                        stop_reason=data["stop_reason"],
                        usage=data.get("usage"),
                    )

                try:
                    error_data = response.json()
                    error_type = error_data.get("error", {}).get("type", "unknown")
                    error_msg = error_data.get("error", {}).get("message", "unknown error")
                except ValueError:
                    error_type = "http_error"
                    error_msg = f"HTTP {response.status_code}: {response.text[:500]}"

                if response.status_code in _RETRY_STATUSES and attempt == 0:
                    retry_after = min(float(response.headers.get("retry-after", "1")), 30.0)
                    logger.warning(
                        "API error %d (%s), retrying in %.1fs: %s",
                        response.status_code,
                        error_type,
                        retry_after,
                        error_msg,
                    )
                    await asyncio.sleep(retry_after)
                    continue

                last_error = LLMError(
                    f"Anthropic API error ({response.status_code}): {error_type} - {error_msg}"
                )
                break

            except httpx.TimeoutException as e:
                last_error = LLMError(f"API request timed out: {e}")
                if attempt == 0:
                    logger.warning("API timeout, retrying: %s", e)
                    await asyncio.sleep(1)
                    continue
            except httpx.HTTPError as e:
                last_error = LLMError(f"HTTP error: {e}")
                break

        raise last_error or LLMError("API call failed with unknown error")

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
        """Stream the Messages API as StreamEvents.

        HTTP errors and in-stream errors are yielded as a final error event.
        """
        if not self._http:
            raise LLMError("httpx client not initialized -- call start() first")

        payload = self._build_payload(
            system_prompt, messages, tools, max_tokens, temperature, None, model, stream=True
        )

        try:
            async with self._http.stream("POST", "/v1/messages", json=payload) as response:
                if response.status_code != 200:
                    error_body = await response.aread()
                    yield StreamEvent(type="error", text=error_body.decode()[:500])
                    return

                async for line in response.aiter_lines():
                    if not line.startswith("data: "):
                        continue
                    event = parse_sse_event(json.loads(line[6:]))
                    if event:
                        yield event
                        if event.type == "error":
                            return
        except httpx.HTTPError as e:
            yield StreamEvent(type="error", text=f"HTTP error: {e}")
