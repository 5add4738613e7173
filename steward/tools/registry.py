"""Tool registry -- declarative tool schemas, handlers and dispatch.

A registry is a plain value built at startup and handed to the tool loop.
Handlers take ``(params, context)`` and return a ToolResult; the registry
turns unknown names, bad parameters and handler exceptions into failed
results so a tool call can never crash the session.
"""

from __future__ import annotations

import functools
import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from steward.agents.owners import OwnerRef
from steward.errors import StewardError

logger = logging.getLogger(__name__)

_JSON_TYPES = {"string", "number", "integer", "boolean", "object", "array"}


@dataclass(frozen=True)
class ToolParameter:
    name: str
    type: str
    description: str
    required: bool = True
    enum: list[str] | None = None
    items: dict[str, Any] | None = None  # For array parameters

    def json_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum:
            schema["enum"] = list(self.enum)
        if self.type == "array":
            schema["items"] = self.items or {"type": "string"}
        return schema


@dataclass(frozen=True)
class ToolSchema:
    name: str
    description: str
    parameters: list[ToolParameter] = field(default_factory=list)

    def input_schema(self) -> dict[str, Any]:
        """JSON schema for the Messages API ``input_schema`` field."""
        return {
            "type": "object",
            "properties": {p.name: p.json_schema() for p in self.parameters},
            # A parameter is required unless explicitly marked optional
            "required": [p.name for p in self.parameters if p.required is not False],
        }

    def definition(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema(),
        }


@dataclass(frozen=True)
class ToolContext:
    """Who is calling a tool. Handlers re-check is_lead before privileged actions."""

    agent_id: UUID
    owner: OwnerRef
    is_lead: bool
    conversation_id: UUID | None = None

    @property
    def owner_id(self) -> UUID:
        return self.owner.id


@dataclass
class ToolResult:
    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)

    def to_text(self) -> str:
        """Text handed back to the model as the tool_result content."""
        if not self.success:
            return f"Error: {self.error}"
        if self.data is None:
            return "OK"
        if isinstance(self.data, str):
            return self.data
        return json.dumps(self.data, default=str)


ToolHandler = Callable[[dict[str, Any], ToolContext], Awaitable[ToolResult]]


@dataclass(frozen=True)
class Tool:
    schema: ToolSchema
    handler: ToolHandler

    @property
    def name(self) -> str:
        return self.schema.name


class ToolRegistry:
    """Registers tools and executes calls by name."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        for p in tool.schema.parameters:
            if p.type not in _JSON_TYPES:
                raise ValueError(f"Tool {tool.name}: unsupported parameter type {p.type!r} for {p.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def subset(self, names: Iterable[str]) -> "ToolRegistry":
        """A new registry holding only the named tools that exist here."""
        return ToolRegistry(self._tools[n] for n in names if n in self._tools)

    def definitions(self, names: Iterable[str] | None = None) -> list[dict[str, Any]]:
        """Tool definitions in Messages API format."""
        selected = self._tools.values() if names is None else [self._tools[n] for n in names if n in self._tools]
        return [t.schema.definition() for t in selected]

    async def execute(self, name: str, params: dict[str, Any], context: ToolContext) -> ToolResult:
        """Run a tool. Never raises for unknown tools, bad params or handler errors."""
        tool = self._tools.get(name)
        if tool is None:
            return ToolResult.fail(f"Tool not found: {name}")

        problem = _check_params(tool.schema, params)
        if problem:
            return ToolResult.fail(problem)

        try:
            return await tool.handler(params, context)
        except Exception as e:
            logger.exception("Tool %s failed for agent %s", name, context.agent_id.hex[:8])
            return ToolResult.fail(f"Tool {name} failed: {e}")

    async def dispatch(self, name: str, params: dict[str, Any], context: ToolContext) -> tuple[str, bool]:
        """Execute and return (result_text, is_error) for a tool_result block."""
        result = await self.execute(name, params, context)
        return result.to_text(), not result.success


def reports_errors(action: str) -> Callable[[ToolHandler], ToolHandler]:
    """Decorate a handler so domain errors come back as failed results.

    StewardError messages go to the model as-is. Anything else is logged
    and reported as "Failed to <action>: <error>".
    """

    def decorate(handler: ToolHandler) -> ToolHandler:
        @functools.wraps(handler)
        async def wrapper(*args: Any) -> ToolResult:
            try:
                return await handler(*args)
            except StewardError as e:
                return ToolResult.fail(str(e))
            except Exception as e:
                logger.exception("Failed to %s", action)
                return ToolResult.fail(f"Failed to {action}: {e}")

        return wrapper

    return decorate


def _check_params(schema: ToolSchema, params: Any) -> str | None:
    if not isinstance(params, dict):
        return f"Parameters for {schema.name} must be an object"
    for p in schema.parameters:
        value = params.get(p.name)
        if value is None:
            if p.required is not False:
                return f"Missing required parameter: {p.name}"
            continue
        if p.enum and value not in p.enum:
            return f"Parameter {p.name} must be one of: {', '.join(p.enum)}"
    return None
