"""Pydantic DTOs for the knowledge graph store and type initializer."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

TypeCreatedBy = Literal["system", "agent", "user"]
NodeAction = Literal["created", "updated"]
EdgeAction = Literal["created", "already_exists"]


# --- Types ---


class NodeTypeDetail(BaseModel):
    id: UUID
    owner_id: UUID | None
    name: str
    description: str
    properties_schema: dict[str, Any]
    example_properties: dict[str, Any] | None = None
    created_by: TypeCreatedBy
    justification: str | None = None


class EdgeTypeDetail(BaseModel):
    id: UUID
    owner_id: UUID | None
    name: str
    description: str
    properties_schema: dict[str, Any] | None = None
    example_properties: dict[str, Any] | None = None
    created_by: TypeCreatedBy
    justification: str | None = None
    source_node_types: list[str] = []
    target_node_types: list[str] = []


# --- Nodes and edges ---


class NodeRef(BaseModel):
    """Reference to a node by name, optionally qualified by its type."""

    name: str
    type: str | None = None


class GraphNodeDetail(BaseModel):
    id: UUID
    type: str
    name: str
    properties: dict[str, Any]
    updated_at: datetime | None = None


class GraphEdgeDetail(BaseModel):
    id: UUID
    type: str
    source_id: UUID
    target_id: UUID
    properties: dict[str, Any]


class NodeWriteResult(BaseModel):
    node_id: UUID
    action: NodeAction


class EdgeWriteResult(BaseModel):
    edge_id: UUID
    action: EdgeAction


class GraphQueryResult(BaseModel):
    nodes: list[GraphNodeDetail] = []
    edges: list[GraphEdgeDetail] = []


class GraphStats(BaseModel):
    node_count: int = 0
    edge_count: int = 0
    nodes_by_type: dict[str, int] = {}
    edges_by_type: dict[str, int] = {}


# --- LLM-generated type definitions ---


class NodeTypeDefinition(BaseModel):
    name: str = Field(description="Capitalized type name, e.g. Company or Market Event")
    description: str = Field(description="What this type represents")
    properties_schema: dict[str, Any] = Field(
        alias="propertiesSchema",
        description='JSON Schema object: {"type": "object", "properties": {...}, "required": [...]}',
    )
    example_properties: dict[str, Any] = Field(default_factory=dict, alias="exampleProperties")

    model_config = {"populate_by_name": True}


class EdgeTypeDefinition(BaseModel):
    name: str = Field(description="snake_case edge type name")
    description: str = Field(description="What this relationship represents")
    source_node_type_names: list[str] = Field(
        default_factory=list,
        alias="sourceNodeTypeNames",
        description="Names of node types allowed as source",
    )
    target_node_type_names: list[str] = Field(
        default_factory=list,
        alias="targetNodeTypeNames",
        description="Names of node types allowed as target",
    )
    properties_schema: dict[str, Any] | None = Field(default=None, alias="propertiesSchema")
    example_properties: dict[str, Any] | None = Field(default=None, alias="exampleProperties")

    model_config = {"populate_by_name": True}


class TypeInitializationResult(BaseModel):
    """Node and edge types designed for a new owner's knowledge graph."""

    node_types: list[NodeTypeDefinition] = Field(default_factory=list, alias="nodeTypes")
    edge_types: list[EdgeTypeDefinition] = Field(default_factory=list, alias="edgeTypes")

    model_config = {"populate_by_name": True}
