"""Tests for steward/graph/initializer.py."""

from __future__ import annotations

from uuid import uuid4

from conftest import FakeLLM
from steward.errors import LLMError
from steward.graph.initializer import GraphTypeInitializer
from steward.graph.schemas import TypeInitializationResult

DESIGN = {
    "nodeTypes": [
        {
            "name": "Company",
            "description": "A business",
            "propertiesSchema": {"type": "object", "properties": {"ticker": {"type": "string"}}},
            "exampleProperties": {"ticker": "NVDA"},
        },
        {"name": "Article", "description": "A news piece", "propertiesSchema": {"type": "object", "properties": {}}},
        {"name": "bad name", "description": "Breaks naming", "propertiesSchema": {"type": "object"}},
    ],
    "edgeTypes": [
        {
            "name": "mentions",
            "description": "Article mentions company",
            "sourceNodeTypeNames": ["Article"],
            "targetNodeTypeNames": ["Company", "Ghost"],
        },
        {"name": "NotSnake", "description": "Breaks naming"},
    ],
}


async def test_persist_skips_invalid_definitions(graph_types):
    owner_id = uuid4()
    initializer = GraphTypeInitializer(FakeLLM(), graph_types)

    counts = await initializer.persist(owner_id, TypeInitializationResult.model_validate(DESIGN))

    assert counts == (2, 1)
    assert [t.name for t in await graph_types.list_node_types(owner_id)] == ["Article", "Company"]
    company = await graph_types.get_node_type(owner_id, "Company")
    assert company.example_properties == {"ticker": "NVDA"}
    assert company.created_by == "system"
    [edge_type] = await graph_types.list_edge_types(owner_id)
    assert edge_type.target_node_types == ["Company"]


async def test_ensure_initialized_runs_once(graph_types):
    owner_id = uuid4()
    llm = FakeLLM(structured={"TypeInitializationResult": DESIGN})
    initializer = GraphTypeInitializer(llm, graph_types, model="bg")

    assert await initializer.ensure_initialized(owner_id, "Chip Desk", "Follow the chip industry")
    assert not await initializer.ensure_initialized(owner_id, "Chip Desk", "Follow the chip industry")

    [call] = llm.calls
    assert call["model"] == "bg"
    assert call["temperature"] == 0.7
    assert "Agent Purpose: Follow the chip industry" in call["messages"][0]["content"]


async def test_missing_purpose_uses_default(graph_types):
    llm = FakeLLM(structured={"TypeInitializationResult": {"nodeTypes": [], "edgeTypes": []}})

    await GraphTypeInitializer(llm, graph_types).ensure_initialized(uuid4(), "Helper", None)

    assert "Agent Purpose: General purpose assistant" in llm.calls[0]["messages"][0]["content"]


async def test_failure_leaves_owner_untyped(graph_types):
    owner_id = uuid4()
    llm = FakeLLM(structured={"TypeInitializationResult": [LLMError("overloaded"), DESIGN]})
    initializer = GraphTypeInitializer(llm, graph_types)

    assert not await initializer.ensure_initialized(owner_id, "Desk", None)
    assert not await graph_types.has_node_types(owner_id)

    # The next call tries again
    assert await initializer.ensure_initialized(owner_id, "Desk", None)
    assert await graph_types.has_node_types(owner_id)


async def test_malformed_design_is_ignored(graph_types):
    llm = FakeLLM(structured={"TypeInitializationResult": {"nodeTypes": [{"name": "Company"}]}})
    assert not await GraphTypeInitializer(llm, graph_types).ensure_initialized(uuid4(), "Desk", None)
