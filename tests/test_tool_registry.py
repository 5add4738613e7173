"""Tests for steward/tools/registry.py and steward/tools/sets.py."""

from __future__ import annotations

from uuid import uuid4

import pytest

from steward.agents.owners import TeamOwner
from steward.errors import AgentNotFound
from steward.tools.registry import (
    Tool,
    ToolContext,
    ToolParameter,
    ToolRegistry,
    ToolResult,
    ToolSchema,
    reports_errors,
)
from steward.tools.sets import FOREGROUND_EXCLUDED, background_tool_names, foreground_tool_names


def _context(is_lead: bool = True) -> ToolContext:
    return ToolContext(agent_id=uuid4(), owner=TeamOwner(uuid4()), is_lead=is_lead)


def _tool(name: str, handler=None, parameters=None) -> Tool:
    async def echo(params, context):
        return ToolResult.ok(params)

    return Tool(ToolSchema(name=name, description=f"{name} tool", parameters=parameters or []), handler or echo)


class TestSchema:
    def test_input_schema_marks_required(self):
        schema = ToolSchema(
            name="search",
            description="Search",
            parameters=[
                ToolParameter("query", "string", "What to look for"),
                ToolParameter("tags", "array", "Filters", required=False),
                ToolParameter("mode", "string", "Mode", required=False, enum=["fast", "deep"]),
            ],
        )
        input_schema = schema.input_schema()

        assert input_schema["required"] == ["query"]
        assert input_schema["properties"]["tags"]["items"] == {"type": "string"}
        assert input_schema["properties"]["mode"]["enum"] == ["fast", "deep"]

    def test_definition_shape(self):
        definition = _tool("ping").schema.definition()
        assert set(definition) == {"name", "description", "input_schema"}


class TestRegistry:
    def test_duplicate_registration_rejected(self):
        registry = ToolRegistry([_tool("ping")])
        with pytest.raises(ValueError):
            registry.register(_tool("ping"))

    def test_unsupported_parameter_type_rejected(self):
        with pytest.raises(ValueError):
            ToolRegistry([_tool("bad", parameters=[ToolParameter("when", "date", "A date")])])

    def test_definitions_skip_unknown_names(self):
        registry = ToolRegistry([_tool("a"), _tool("b")])
        assert [d["name"] for d in registry.definitions(["b", "missing"])] == ["b"]
        assert len(registry.definitions()) == 2

    def test_subset(self):
        registry = ToolRegistry([_tool("a"), _tool("b"), _tool("c")])
        assert registry.subset(["c", "a", "zzz"]).names() == ["c", "a"]

    async def test_unknown_tool_fails(self):
        result = await ToolRegistry().execute("nope", {}, _context())
        assert not result.success
        assert result.error == "Tool not found: nope"

    async def test_missing_required_parameter(self):
        registry = ToolRegistry([_tool("search", parameters=[ToolParameter("query", "string", "q")])])
        result = await registry.execute("search", {}, _context())
        assert result.error == "Missing required parameter: query"

    async def test_enum_violation(self):
        registry = ToolRegistry([
            _tool("search", parameters=[ToolParameter("mode", "string", "m", required=False, enum=["a"])])
        ])
        result = await registry.execute("search", {"mode": "b"}, _context())
        assert result.error == "Parameter mode must be one of: a"

    async def test_handler_exception_becomes_failure(self):
        async def boom(params, context):
            raise RuntimeError("kaboom")

        registry = ToolRegistry([_tool("boom", handler=boom)])
        text, is_error = await registry.dispatch("boom", {}, _context())
        assert is_error
        assert text == "Error: Tool boom failed: kaboom"

    async def test_dispatch_serializes_data(self):
        registry = ToolRegistry([_tool("echo")])
        text, is_error = await registry.dispatch("echo", {"x": 1}, _context())
        assert not is_error
        assert text == '{"x": 1}'


class TestReportsErrors:
    async def test_domain_error_message_passes_through(self):
        @reports_errors("look up agent")
        async def handler(params, context):
            raise AgentNotFound("Agent not found: 42")

        result = await handler({}, _context())
        assert result.error == "Agent not found: 42"

    async def test_unexpected_error_is_wrapped(self):
        @reports_errors("look up agent")
        async def handler(params, context):
            raise KeyError("id")

        result = await handler({}, _context())
        assert result.error == "Failed to look up agent: 'id'"


def test_tool_result_text():
    assert ToolResult.ok().to_text() == "OK"
    assert ToolResult.ok("plain").to_text() == "plain"
    assert ToolResult.fail("nope").to_text() == "Error: nope"


class TestToolSets:
    def _registry(self, names):
        return ToolRegistry([_tool(n) for n in names])

    def test_lead_background_set(self):
        registry = self._registry([
            "delegateToAgent", "getTeamStatus", "createBriefing", "requestUserInput",
            "reportToLead", "requestLeadInput", "addKnowledgeItem", "queryGraph", "webSearch",
        ])
        names = background_tool_names(registry, is_lead=True)

        assert "delegateToAgent" in names
        assert "reportToLead" not in names
        assert {"addKnowledgeItem", "queryGraph", "webSearch"} <= set(names)

    def test_subordinate_background_set(self):
        registry = self._registry(["delegateToAgent", "reportToLead", "requestLeadInput", "queryGraph"])
        names = background_tool_names(registry, is_lead=False)
        assert names == ["reportToLead", "requestLeadInput", "queryGraph"]

    def test_unregistered_tools_are_dropped(self):
        registry = self._registry(["queryGraph"])
        assert background_tool_names(registry, is_lead=True) == ["queryGraph"]

    def test_foreground_excludes_side_effect_tools(self):
        registry = self._registry([*sorted(FOREGROUND_EXCLUDED), "queryGraph", "addKnowledgeItem"])
        assert foreground_tool_names(registry) == ["queryGraph", "addKnowledgeItem"]
