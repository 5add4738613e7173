"""Knowledge graph tools: query, write and type management.

All operations are scoped to the calling agent's owner. Graph errors go
back to the model verbatim; NodeTypeNotFound and friends carry a code
prefix and a hint naming the tool to call next.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from steward.graph.schemas import EdgeTypeDetail, GraphNodeDetail, GraphQueryResult, NodeRef, NodeTypeDetail
from steward.graph.store import GraphStore
from steward.tools.registry import (
    Tool,
    ToolContext,
    ToolParameter,
    ToolRegistry,
    ToolResult,
    ToolSchema,
    reports_errors,
)

logger = logging.getLogger(__name__)

GRAPH_TOOLS = [
    "queryGraph",
    "getNodeNeighbors",
    "addGraphNode",
    "addGraphEdge",
    "listNodeTypes",
    "listEdgeTypes",
    "createNodeType",
    "createEdgeType",
    "getGraphSummary",
]


def _node_json(node: GraphNodeDetail) -> dict[str, Any]:
    return {"id": str(node.id), "type": node.type, "name": node.name, "properties": node.properties}


def _query_json(result: GraphQueryResult) -> dict[str, Any]:
    return {
        "nodes": [_node_json(n) for n in result.nodes],
        "edges": [
            {
                "id": str(e.id),
                "type": e.type,
                "sourceId": str(e.source_id),
                "targetId": str(e.target_id),
                "properties": e.properties,
            }
            for e in result.edges
        ],
    }


def _node_type_json(t: NodeTypeDetail) -> dict[str, Any]:
    return {
        "id": str(t.id),
        "name": t.name,
        "description": t.description,
        "justification": t.justification,
        "propertiesSchema": t.properties_schema,
        "exampleProperties": t.example_properties,
        "createdBy": t.created_by,
    }


def _edge_type_json(t: EdgeTypeDetail) -> dict[str, Any]:
    return {
        "id": str(t.id),
        "name": t.name,
        "description": t.description,
        "justification": t.justification,
        "propertiesSchema": t.properties_schema,
        "exampleProperties": t.example_properties,
        "sourceNodeTypes": t.source_node_types,
        "targetNodeTypes": t.target_node_types,
        "createdBy": t.created_by,
    }


def _object_param(value: Any, name: str) -> dict[str, Any] | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValueError(f"{name} must be an object")
    return value


class GraphTools:
    def __init__(self, store: GraphStore) -> None:
        self._store = store
        self._types = store.types

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @reports_errors("query graph")
    async def query_graph(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        result = await self._store.query(
            context.owner_id,
            node_type=params.get("nodeType") or None,
            search_term=params.get("searchTerm") or None,
            limit=int(params["limit"]) if params.get("limit") is not None else None,
        )
        return ToolResult.ok(_query_json(result))

    @reports_errors("get node neighbors")
    async def node_neighbors(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        if params.get("nodeId"):
            node = await self._store.get_node(context.owner_id, UUID(str(params["nodeId"])))
            if node is None:
                return ToolResult.fail(f"Node {params['nodeId']} not found")
        elif params.get("nodeName"):
            node = await self._store.find_node(
                context.owner_id, NodeRef(name=params["nodeName"], type=params.get("nodeType") or None)
            )
        else:
            return ToolResult.fail("Provide nodeId or nodeName")

        result = await self._store.neighbors(context.owner_id, node.id, int(params.get("depth") or 1))
        return ToolResult.ok(_query_json(result))

    @reports_errors("summarize graph")
    async def graph_summary(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        stats = await self._store.stats(context.owner_id)
        return ToolResult.ok({
            "nodeCount": stats.node_count,
            "edgeCount": stats.edge_count,
            "nodesByType": stats.nodes_by_type,
            "edgesByType": stats.edges_by_type,
        })

    @reports_errors("list node types")
    async def list_node_types(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        types = await self._types.list_node_types(context.owner_id)
        return ToolResult.ok({"nodeTypes": [_node_type_json(t) for t in types]})

    @reports_errors("list edge types")
    async def list_edge_types(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        types = await self._types.list_edge_types(context.owner_id)
        return ToolResult.ok({"edgeTypes": [_edge_type_json(t) for t in types]})

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @reports_errors("add graph node")
    async def add_node(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        result = await self._store.add_node(
            context.owner_id,
            params["type"],
            params["name"],
            _object_param(params.get("properties"), "properties"),
            source_conversation_id=context.conversation_id,
        )
        return ToolResult.ok({"nodeId": str(result.node_id), "action": result.action})

    @reports_errors("add graph edge")
    async def add_edge(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        result = await self._store.add_edge(
            context.owner_id,
            params["type"],
            NodeRef(name=params["sourceName"], type=params.get("sourceType") or None),
            NodeRef(name=params["targetName"], type=params.get("targetType") or None),
            _object_param(params.get("properties"), "properties"),
        )
        return ToolResult.ok({"edgeId": str(result.edge_id), "action": result.action})

    @reports_errors("create node type")
    async def create_node_type(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        created = await self._types.create_node_type(
            context.owner_id,
            params["name"],
            params["description"],
            properties_schema=_object_param(params.get("propertiesSchema"), "propertiesSchema"),
            example_properties=_object_param(params.get("exampleProperties"), "exampleProperties"),
            created_by="agent",
            justification=params["justification"],
        )
        logger.info("Agent %s created node type %s", context.agent_id.hex[:8], created.name)
        return ToolResult.ok({
            "nodeTypeId": str(created.id),
            "name": created.name,
            "justification": created.justification,
        })

    @reports_errors("create edge type")
    async def create_edge_type(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        created = await self._types.create_edge_type(
            context.owner_id,
            params["name"],
            params["description"],
            source_node_types=list(params.get("sourceNodeTypes") or []),
            target_node_types=list(params.get("targetNodeTypes") or []),
            properties_schema=_object_param(params.get("propertiesSchema"), "propertiesSchema"),
            example_properties=_object_param(params.get("exampleProperties"), "exampleProperties"),
            created_by="agent",
            justification=params["justification"],
        )
        logger.info("Agent %s created edge type %s", context.agent_id.hex[:8], created.name)
        return ToolResult.ok({
            "edgeTypeId": str(created.id),
            "name": created.name,
            "justification": created.justification,
        })


def register_graph_tools(registry: ToolRegistry, store: GraphStore) -> None:
    tools = GraphTools(store)

    registry.register(Tool(
        ToolSchema(
            name="queryGraph",
            description=(
                "Query the knowledge graph to find relevant information. Returns nodes and "
                "relationships with node/edge IDs for precise [node:uuid] / [edge:uuid] citations."
            ),
            parameters=[
                ToolParameter("nodeType", "string", "Filter by node type (exact name)", required=False),
                ToolParameter("searchTerm", "string", "Case-insensitive search within node names", required=False),
                ToolParameter("limit", "integer", "Maximum nodes to return (default 20, max 100)", required=False),
            ],
        ),
        tools.query_graph,
    ))
    registry.register(Tool(
        ToolSchema(
            name="getNodeNeighbors",
            description=(
                "Explore the graph around one node. Returns the node, its neighbors up to the given "
                "depth in both directions, and the relationships between them."
            ),
            parameters=[
                ToolParameter("nodeId", "string", "ID of the start node", required=False),
                ToolParameter("nodeName", "string", "Name of the start node, when no ID is known", required=False),
                ToolParameter("nodeType", "string", "Type of the start node, to disambiguate a name", required=False),
                ToolParameter("depth", "integer", "Hops to follow (1-3, default 1)", required=False),
            ],
        ),
        tools.node_neighbors,
    ))
    registry.register(Tool(
        ToolSchema(
            name="addGraphNode",
            description=(
                "Add an entity to the knowledge graph, or merge properties into the existing entity "
                "with the same type and name. The type must exist; call listNodeTypes first."
            ),
            parameters=[
                ToolParameter("type", "string", "Node type name (exact, case-sensitive)"),
                ToolParameter("name", "string", "Entity name"),
                ToolParameter("properties", "object", "Properties matching the node type schema", required=False),
            ],
        ),
        tools.add_node,
    ))
    registry.register(Tool(
        ToolSchema(
            name="addGraphEdge",
            description=(
                "Create a relationship between two existing nodes. Both nodes must exist; "
                "create them with addGraphNode first."
            ),
            parameters=[
                ToolParameter("type", "string", "Edge type name (snake_case)"),
                ToolParameter("sourceName", "string", "Name of the source node"),
                ToolParameter("sourceType", "string", "Type of the source node", required=False),
                ToolParameter("targetName", "string", "Name of the target node"),
                ToolParameter("targetType", "string", "Type of the target node", required=False),
                ToolParameter("properties", "object", "Properties matching the edge type schema", required=False),
            ],
        ),
        tools.add_edge,
    ))
    registry.register(Tool(
        ToolSchema(
            name="listNodeTypes",
            description="List the node types available in this knowledge graph, with their property schemas.",
        ),
        tools.list_node_types,
    ))
    registry.register(Tool(
        ToolSchema(
            name="listEdgeTypes",
            description="List the edge types available in this knowledge graph, with their endpoint constraints.",
        ),
        tools.list_edge_types,
    ))
    registry.register(Tool(
        ToolSchema(
            name="createNodeType",
            description=(
                "Create a new node type when no existing type fits. Check listNodeTypes first. "
                "Names are capitalized, e.g. Company or Market Event."
            ),
            parameters=[
                ToolParameter("name", "string", "Capitalized type name"),
                ToolParameter("description", "string", "What this type represents"),
                ToolParameter("propertiesSchema", "object", "JSON Schema for node properties"),
                ToolParameter("exampleProperties", "object", "Example property values", required=False),
                ToolParameter("justification", "string", "Why existing types do not fit"),
            ],
        ),
        tools.create_node_type,
    ))
    registry.register(Tool(
        ToolSchema(
            name="createEdgeType",
            description=(
                "Create a new relationship type when no existing type fits. Check listEdgeTypes first. "
                "Names are snake_case, e.g. competes_with."
            ),
            parameters=[
                ToolParameter("name", "string", "snake_case edge type name"),
                ToolParameter("description", "string", "What this relationship represents"),
                ToolParameter("sourceNodeTypes", "array", "Node types allowed as source (empty allows any)", required=False),
                ToolParameter("targetNodeTypes", "array", "Node types allowed as target (empty allows any)", required=False),
                ToolParameter("propertiesSchema", "object", "JSON Schema for edge properties", required=False),
                ToolParameter("exampleProperties", "object", "Example property values", required=False),
                ToolParameter("justification", "string", "Why existing types do not fit"),
            ],
        ),
        tools.create_edge_type,
    ))
    registry.register(Tool(
        ToolSchema(
            name="getGraphSummary",
            description="Count nodes and relationships in the knowledge graph, broken down by type.",
        ),
        tools.graph_summary,
    ))
