"""Typed knowledge graph: type registry, store, validation and prompt rendering."""

from steward.graph.context import build_graph_context_block
from steward.graph.initializer import GraphTypeInitializer
from steward.graph.schemas import (
    EdgeTypeDetail,
    EdgeWriteResult,
    GraphEdgeDetail,
    GraphNodeDetail,
    GraphQueryResult,
    GraphStats,
    NodeRef,
    NodeTypeDetail,
    NodeWriteResult,
    TypeInitializationResult,
)
from steward.graph.store import GraphStore
from steward.graph.types import GraphTypeManager
from steward.graph.validation import validate_properties

__all__ = [
    "EdgeTypeDetail",
    "EdgeWriteResult",
    "GraphEdgeDetail",
    "GraphNodeDetail",
    "GraphQueryResult",
    "GraphStats",
    "GraphStore",
    "GraphTypeInitializer",
    "GraphTypeManager",
    "NodeRef",
    "NodeTypeDetail",
    "NodeWriteResult",
    "TypeInitializationResult",
    "build_graph_context_block",
    "validate_properties",
]
