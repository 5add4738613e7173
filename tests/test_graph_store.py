"""Tests for steward/graph/store.py -- node merge, edge dedup, queries, traversal."""

from __future__ import annotations

from uuid import uuid4

import pytest
import pytest_asyncio

from steward.errors import (
    AmbiguousNodeReference,
    EdgeConstraintViolation,
    EdgeTypeNotFound,
    EndpointNotFound,
    NodeTypeNotFound,
    PropertiesValidationError,
)
from steward.graph.context import build_graph_context_block
from steward.graph.schemas import NodeRef


@pytest.fixture
def owner_id():
    return uuid4()


@pytest_asyncio.fixture
async def typed(graph_types, owner_id):
    """Company/Person/Product node types and a few edge types for one owner."""
    await graph_types.create_node_type(
        owner_id,
        "Company",
        "A business",
        properties_schema={
            "type": "object",
            "properties": {"ticker": {"type": "string"}, "employees": {"type": "integer"}},
            "required": ["ticker"],
        },
    )
    await graph_types.create_node_type(owner_id, "Person", "A human")
    await graph_types.create_node_type(owner_id, "Product", "Something sold")
    await graph_types.create_edge_type(owner_id, "works_at", "Employment", ["Person"], ["Company"])
    await graph_types.create_edge_type(owner_id, "makes", "Manufacturing")
    await graph_types.create_edge_type(
        owner_id,
        "invested_in",
        "Investment",
        properties_schema={"type": "object", "properties": {"amount": {"type": "number"}}, "required": ["amount"]},
    )
    return owner_id


class TestAddNode:
    async def test_create_then_merge(self, graph, typed):
        created = await graph.add_node(typed, "Company", "NVIDIA", {"ticker": "NVDA"})
        merged = await graph.add_node(typed, "Company", "NVIDIA", {"employees": 29600})

        assert created.action == "created"
        assert merged.action == "updated"
        assert merged.node_id == created.node_id

        node = await graph.get_node(typed, created.node_id)
        assert node.properties == {"ticker": "NVDA", "employees": 29600}

    async def test_merge_overwrites_keys(self, graph, typed):
        await graph.add_node(typed, "Company", "AMD", {"ticker": "AMD", "employees": 1})
        await graph.add_node(typed, "Company", "AMD", {"employees": 26000})

        result = await graph.query(typed, search_term="AMD")
        assert result.nodes[0].properties == {"ticker": "AMD", "employees": 26000}

    async def test_unknown_type(self, graph, typed):
        with pytest.raises(NodeTypeNotFound):
            await graph.add_node(typed, "Startup", "Acme")

    async def test_type_lookup_is_case_sensitive(self, graph, typed):
        with pytest.raises(NodeTypeNotFound):
            await graph.add_node(typed, "company", "NVIDIA", {"ticker": "NVDA"})

    async def test_invalid_properties_write_nothing(self, graph, typed):
        with pytest.raises(PropertiesValidationError) as exc_info:
            await graph.add_node(typed, "Company", "Mystery Corp", {"employees": "lots"})

        assert exc_info.value.code == "NODE_PROPERTIES_SCHEMA_VALIDATION_FAILED"
        assert "properties.ticker is required" in exc_info.value.errors
        assert (await graph.query(typed)).nodes == []

    async def test_merged_set_is_validated(self, graph, typed):
        await graph.add_node(typed, "Company", "Intel", {"ticker": "INTC"})
        with pytest.raises(PropertiesValidationError):
            await graph.add_node(typed, "Company", "Intel", {"employees": "many"})

        node = (await graph.query(typed, search_term="Intel")).nodes[0]
        assert node.properties == {"ticker": "INTC"}

    async def test_same_name_different_types_are_distinct(self, graph, typed):
        company = await graph.add_node(typed, "Company", "Jaguar", {"ticker": "JAG"})
        product = await graph.add_node(typed, "Product", "Jaguar")
        assert company.node_id != product.node_id

    async def test_owners_are_isolated(self, graph, graph_types, typed):
        other = uuid4()
        await graph_types.create_node_type(other, "Company", "A business")
        await graph.add_node(typed, "Company", "NVIDIA", {"ticker": "NVDA"})
        await graph.add_node(other, "Company", "NVIDIA")

        assert len((await graph.query(typed)).nodes) == 1
        assert len((await graph.query(other)).nodes) == 1


class TestAddEdge:
    async def test_create_and_dedupe(self, graph, typed):
        await graph.add_node(typed, "Person", "Jensen Huang")
        await graph.add_node(typed, "Company", "NVIDIA", {"ticker": "NVDA"})

        first = await graph.add_edge(typed, "works_at", NodeRef(name="Jensen Huang"), NodeRef(name="NVIDIA"))
        second = await graph.add_edge(
            typed, "works_at", NodeRef(name="Jensen Huang", type="Person"), NodeRef(name="NVIDIA", type="Company")
        )

        assert first.action == "created"
        assert second.action == "already_exists"
        assert second.edge_id == first.edge_id

    async def test_unknown_edge_type(self, graph, typed):
        with pytest.raises(EdgeTypeNotFound):
            await graph.add_edge(typed, "likes", NodeRef(name="a"), NodeRef(name="b"))

    async def test_missing_source_node(self, graph, typed):
        await graph.add_node(typed, "Company", "NVIDIA", {"ticker": "NVDA"})
        with pytest.raises(EndpointNotFound, match='Source node "Nobody" not found. Create it first.'):
            await graph.add_edge(typed, "works_at", NodeRef(name="Nobody"), NodeRef(name="NVIDIA"))

    async def test_missing_typed_target_node(self, graph, typed):
        await graph.add_node(typed, "Person", "Lisa Su")
        with pytest.raises(EndpointNotFound, match='Target node "AMD" of type "Company" not found'):
            await graph.add_edge(typed, "works_at", NodeRef(name="Lisa Su"), NodeRef(name="AMD", type="Company"))

    async def test_ambiguous_name(self, graph, typed):
        await graph.add_node(typed, "Company", "Jaguar", {"ticker": "JAG"})
        await graph.add_node(typed, "Product", "Jaguar")
        await graph.add_node(typed, "Person", "Ratan")

        with pytest.raises(AmbiguousNodeReference):
            await graph.add_edge(typed, "makes", NodeRef(name="Jaguar"), NodeRef(name="Ratan"))

        result = await graph.add_edge(
            typed, "makes", NodeRef(name="Jaguar", type="Company"), NodeRef(name="Jaguar", type="Product")
        )
        assert result.action == "created"

    async def test_endpoint_type_constraint(self, graph, typed):
        await graph.add_node(typed, "Company", "NVIDIA", {"ticker": "NVDA"})
        await graph.add_node(typed, "Company", "TSMC", {"ticker": "TSM"})

        with pytest.raises(EdgeConstraintViolation) as exc_info:
            await graph.add_edge(typed, "works_at", NodeRef(name="NVIDIA"), NodeRef(name="TSMC"))
        assert exc_info.value.endpoint == "source"
        assert exc_info.value.allowed == ["Person"]

    async def test_edge_properties_validated_first(self, graph, typed):
        # Validation runs before endpoint resolution
        with pytest.raises(PropertiesValidationError) as exc_info:
            await graph.add_edge(typed, "invested_in", NodeRef(name="x"), NodeRef(name="y"), {})
        assert exc_info.value.code == "EDGE_PROPERTIES_SCHEMA_VALIDATION_FAILED"


class TestReads:
    async def _seed(self, graph, owner_id):
        await graph.add_node(owner_id, "Person", "Jensen Huang")
        await graph.add_node(owner_id, "Company", "NVIDIA", {"ticker": "NVDA"})
        await graph.add_node(owner_id, "Product", "H100")
        await graph.add_node(owner_id, "Company", "TSMC", {"ticker": "TSM"})
        await graph.add_edge(owner_id, "works_at", NodeRef(name="Jensen Huang"), NodeRef(name="NVIDIA"))
        await graph.add_edge(owner_id, "makes", NodeRef(name="NVIDIA"), NodeRef(name="H100"))
        await graph.add_edge(owner_id, "makes", NodeRef(name="TSMC"), NodeRef(name="H100"))

    async def test_query_filters(self, graph, typed):
        await self._seed(graph, typed)

        companies = await graph.query(typed, node_type="Company")
        assert {n.name for n in companies.nodes} == {"NVIDIA", "TSMC"}
        assert companies.edges == []

        search = await graph.query(typed, search_term="nvid")
        assert [n.name for n in search.nodes] == ["NVIDIA"]

    async def test_query_returns_edges_among_results(self, graph, typed):
        await self._seed(graph, typed)
        result = await graph.query(typed)

        assert len(result.nodes) == 4
        assert len(result.edges) == 3

    async def test_query_search_term_is_literal(self, graph, typed):
        await graph.add_node(typed, "Product", "100% Cotton")
        await graph.add_node(typed, "Product", "1000 Widgets")

        result = await graph.query(typed, search_term="100%")
        assert [n.name for n in result.nodes] == ["100% Cotton"]

    async def test_query_limit(self, graph, typed):
        await self._seed(graph, typed)
        assert len((await graph.query(typed, limit=2)).nodes) == 2

    async def test_neighbors_depth(self, graph, typed):
        await self._seed(graph, typed)
        jensen = await graph.find_node(typed, NodeRef(name="Jensen Huang"))

        one_hop = await graph.neighbors(typed, jensen.id, depth=1)
        assert {n.name for n in one_hop.nodes} == {"Jensen Huang", "NVIDIA"}
        assert len(one_hop.edges) == 1

        three_hops = await graph.neighbors(typed, jensen.id, depth=3)
        assert {n.name for n in three_hops.nodes} == {"Jensen Huang", "NVIDIA", "H100", "TSMC"}
        assert len(three_hops.edges) == 3

    async def test_neighbors_of_foreign_node_is_empty(self, graph, typed):
        await self._seed(graph, typed)
        nvidia = await graph.find_node(typed, NodeRef(name="NVIDIA", type="Company"))

        result = await graph.neighbors(uuid4(), nvidia.id)
        assert result.nodes == []

    async def test_stats(self, graph, typed):
        await self._seed(graph, typed)
        stats = await graph.stats(typed)

        assert stats.node_count == 4
        assert stats.edge_count == 3
        assert stats.nodes_by_type == {"Company": 2, "Person": 1, "Product": 1}
        assert stats.edges_by_type == {"makes": 2, "works_at": 1}

    async def test_serialize_for_llm(self, graph, typed):
        await self._seed(graph, typed)
        text = await graph.serialize_for_llm(typed)

        assert text.startswith("Nodes:")
        assert "[Company] NVIDIA" in text
        assert "Jensen Huang --works_at--> NVIDIA" in text

    async def test_serialize_empty_graph(self, graph, typed):
        assert await graph.serialize_for_llm(typed) == "No knowledge graph data available."


class TestContextBlock:
    async def test_empty_graph_block(self, graph, typed):
        block = await build_graph_context_block(graph, typed)

        assert block.startswith("<knowledge_graph>")
        assert block.endswith("</knowledge_graph>")
        assert "The knowledge graph is currently empty." in block
        assert "Reason about freshness" not in block

    async def test_populated_graph_block(self, graph, typed):
        await graph.add_node(typed, "Company", "NVIDIA", {"ticker": "NVDA"})
        block = await build_graph_context_block(graph, typed, max_nodes=10)

        assert "Current graph has 1 nodes and 0 edges." in block
        assert "## Current Graph State (most recent 1 nodes)" in block
        assert "[Company] NVIDIA" in block
        assert "Reason about freshness" in block
