"""Tests for steward/graph/types.py -- owner-scoped and global node/edge types."""

from __future__ import annotations

from uuid import uuid4

import pytest

from steward.errors import EdgeTypeNotFound, NodeTypeNotFound, TypeAlreadyExists, TypeNameError


@pytest.fixture
def owner_id():
    return uuid4()


class TestNodeTypes:
    async def test_create_and_get(self, graph_types, owner_id):
        created = await graph_types.create_node_type(
            owner_id,
            "Company",
            "A business",
            properties_schema={"type": "object", "properties": {"ticker": {"type": "string"}}},
        )

        fetched = await graph_types.get_node_type(owner_id, "Company")
        assert fetched.id == created.id
        assert fetched.created_by == "system"
        assert fetched.properties_schema["properties"]["ticker"] == {"type": "string"}

    async def test_default_schema_is_open_object(self, graph_types, owner_id):
        created = await graph_types.create_node_type(owner_id, "Person", "A human")
        assert created.properties_schema == {"type": "object", "properties": {}}

    async def test_bad_name_rejected(self, graph_types, owner_id):
        with pytest.raises(TypeNameError):
            await graph_types.create_node_type(owner_id, "company", "lowercase")

    async def test_duplicate_rejected(self, graph_types, owner_id):
        await graph_types.create_node_type(owner_id, "Company", "A business")
        with pytest.raises(TypeAlreadyExists, match='Node type "Company" already exists.'):
            await graph_types.create_node_type(owner_id, "Company", "Again")

    async def test_global_type_visible_to_every_owner(self, graph_types, owner_id):
        await graph_types.create_node_type(None, "Article", "A published piece")

        assert await graph_types.get_node_type(owner_id, "Article") is not None
        assert await graph_types.get_node_type(uuid4(), "Article") is not None
        with pytest.raises(TypeAlreadyExists):
            await graph_types.create_node_type(owner_id, "Article", "Shadowing a global")

    async def test_owner_types_are_private(self, graph_types, owner_id):
        await graph_types.create_node_type(owner_id, "Company", "A business")
        assert await graph_types.get_node_type(uuid4(), "Company") is None

    async def test_names_are_case_sensitive(self, graph_types, owner_id):
        await graph_types.create_node_type(owner_id, "Company", "A business")
        assert await graph_types.get_node_type(owner_id, "COMPANY") is None

    async def test_require_lists_available_types(self, graph_types, owner_id):
        await graph_types.create_node_type(owner_id, "Company", "A business")
        await graph_types.create_node_type(owner_id, "Person", "A human")

        with pytest.raises(NodeTypeNotFound) as exc_info:
            await graph_types.require_node_type(owner_id, "Startup")

        message = str(exc_info.value)
        assert message.startswith('NODE_TYPE_NOT_FOUND: Node type "Startup" does not exist.')
        assert "Available node types: Company, Person." in message
        assert "listNodeTypes" in message

    async def test_has_node_types_ignores_globals(self, graph_types, owner_id):
        await graph_types.create_node_type(None, "Article", "Global")
        assert not await graph_types.has_node_types(owner_id)

        await graph_types.create_node_type(owner_id, "Company", "Own")
        assert await graph_types.has_node_types(owner_id)

    async def test_list_is_sorted_and_includes_globals(self, graph_types, owner_id):
        await graph_types.create_node_type(owner_id, "Person", "Own")
        await graph_types.create_node_type(None, "Article", "Global")
        await graph_types.create_node_type(uuid4(), "Secret", "Someone else's")

        names = [t.name for t in await graph_types.list_node_types(owner_id)]
        assert names == ["Article", "Person"]


class TestEdgeTypes:
    async def test_create_with_constraints(self, graph_types, owner_id):
        await graph_types.create_node_type(owner_id, "Company", "A business")
        await graph_types.create_node_type(owner_id, "Person", "A human")

        created = await graph_types.create_edge_type(
            owner_id,
            "works_at",
            "Employment",
            source_node_types=["Person"],
            target_node_types=["Company"],
            created_by="agent",
            justification="Needed for org charts",
        )

        fetched = await graph_types.get_edge_type(owner_id, "works_at")
        assert fetched.id == created.id
        assert fetched.source_node_types == ["Person"]
        assert fetched.target_node_types == ["Company"]
        assert fetched.created_by == "agent"
        assert fetched.justification == "Needed for org charts"

    async def test_unknown_constraint_type_writes_nothing(self, graph_types, owner_id):
        with pytest.raises(NodeTypeNotFound):
            await graph_types.create_edge_type(owner_id, "works_at", "Employment", source_node_types=["Ghost"])
        assert await graph_types.get_edge_type(owner_id, "works_at") is None

    async def test_bad_name_rejected(self, graph_types, owner_id):
        with pytest.raises(TypeNameError):
            await graph_types.create_edge_type(owner_id, "WorksAt", "CamelCase")

    async def test_duplicate_rejected(self, graph_types, owner_id):
        await graph_types.create_edge_type(owner_id, "mentions", "Mentions")
        with pytest.raises(TypeAlreadyExists):
            await graph_types.create_edge_type(owner_id, "mentions", "Again")

    async def test_require_missing_edge_type(self, graph_types, owner_id):
        await graph_types.create_edge_type(owner_id, "mentions", "Mentions")
        with pytest.raises(EdgeTypeNotFound, match="Available edge types: mentions"):
            await graph_types.require_edge_type(owner_id, "cites")

    async def test_list_includes_constraints(self, graph_types, owner_id):
        await graph_types.create_node_type(owner_id, "Article", "A published piece")
        await graph_types.create_edge_type(owner_id, "cites", "Citation", source_node_types=["Article"])

        [edge_type] = await graph_types.list_edge_types(owner_id)
        assert edge_type.source_node_types == ["Article"]
        assert edge_type.target_node_types == []


async def test_format_types_for_llm_context(graph_types, owner_id):
    await graph_types.create_node_type(
        owner_id,
        "Company",
        "A business",
        properties_schema={
            "type": "object",
            "properties": {"ticker": {"type": "string"}, "sector": {"type": "string"}},
            "required": ["ticker"],
        },
        example_properties={"ticker": "NVDA"},
    )
    await graph_types.create_edge_type(owner_id, "competes_with", "Rivalry", ["Company"], ["Company"])

    text = await graph_types.format_types_for_llm_context(owner_id)

    assert "- **Company**: A business" in text
    assert "Required: ticker" in text
    assert "Optional: sector" in text
    assert 'Example: {"ticker": "NVDA"}' in text
    assert "- **competes_with**: Company -> Company" in text


async def test_format_types_when_empty(graph_types, owner_id):
    text = await graph_types.format_types_for_llm_context(owner_id)
    assert "No node types defined." in text
    assert "No edge types defined." in text
