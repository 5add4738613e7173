"""Graph store -- typed nodes and edges with create-or-merge semantics.

Nodes are keyed by (owner, type, name): adding an existing key merges
properties into the stored node. Edges are keyed by (owner, type,
source, target): re-adding one is reported as already_exists. Every
write is a short single-owner transaction.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from steward.errors import (
    AmbiguousNodeReference,
    EdgeConstraintViolation,
    EndpointNotFound,
    PropertiesValidationError,
)
from steward.graph.schemas import (
    EdgeWriteResult,
    GraphEdgeDetail,
    GraphNodeDetail,
    GraphQueryResult,
    GraphStats,
    NodeRef,
    NodeWriteResult,
)
from steward.graph.types import GraphTypeManager
from steward.graph.validation import validate_properties
from steward.storage.database import Database
from steward.storage.models import GraphEdge, GraphNode

logger = logging.getLogger(__name__)

DEFAULT_QUERY_LIMIT = 20
MAX_QUERY_LIMIT = 100
MAX_NEIGHBOR_DEPTH = 3


def _node_detail(row: GraphNode) -> GraphNodeDetail:
    return GraphNodeDetail(
        id=row.id,
        type=row.type,
        name=row.name,
        properties=row.properties or {},
        updated_at=row.updated_at,
    )


def _edge_detail(row: GraphEdge) -> GraphEdgeDetail:
    return GraphEdgeDetail(
        id=row.id,
        type=row.type,
        source_id=row.source_id,
        target_id=row.target_id,
        properties=row.properties or {},
    )


class GraphStore:
    """Reads and writes one owner's slice of the knowledge graph."""

    def __init__(self, db: Database, types: GraphTypeManager) -> None:
        self.db = db
        self.types = types

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add_node(
        self,
        owner_id: UUID,
        node_type: str,
        name: str,
        properties: dict[str, Any] | None = None,
        source_conversation_id: UUID | None = None,
    ) -> NodeWriteResult:
        """Create a node, or shallow-merge properties into the existing one.

        The type must be visible to the owner (exact, case-sensitive name).
        The merged property set is validated against the type schema before
        anything is written.
        """
        type_detail = await self.types.require_node_type(owner_id, node_type)
        properties = dict(properties or {})

        try:
            return await self._upsert_node(
                owner_id, node_type, name, properties, type_detail.properties_schema, source_conversation_id
            )
        except IntegrityError:
            # Lost an insert race on the natural key; the retry sees the winner
            logger.info("Node %s:%s inserted concurrently, merging", node_type, name)
            return await self._upsert_node(
                owner_id, node_type, name, properties, type_detail.properties_schema, source_conversation_id
            )

    async def _upsert_node(
        self,
        owner_id: UUID,
        node_type: str,
        name: str,
        properties: dict[str, Any],
        schema: dict[str, Any],
        source_conversation_id: UUID | None,
    ) -> NodeWriteResult:
        async with self.db.session() as session:
            existing = await self._find_node(session, owner_id, node_type, name)
            merged = {**(existing.properties or {}), **properties} if existing else properties

            errors = validate_properties(merged, schema)
            if errors:
                logger.warning("Node %s:%s failed schema validation: %s", node_type, name, errors)
                raise PropertiesValidationError("NODE_PROPERTIES_SCHEMA_VALIDATION_FAILED", errors)

            if existing is not None:
                existing.properties = merged
                await session.commit()
                logger.debug("Updated node %s:%s (%s)", node_type, name, existing.id.hex[:8])
                return NodeWriteResult(node_id=existing.id, action="updated")

            node = GraphNode(
                owner_id=owner_id,
                type=node_type,
                name=name,
                properties=merged,
                source_conversation_id=source_conversation_id,
            )
            session.add(node)
            await session.commit()
            logger.debug("Created node %s:%s (%s)", node_type, name, node.id.hex[:8])
            return NodeWriteResult(node_id=node.id, action="created")

    async def add_edge(
        self,
        owner_id: UUID,
        edge_type: str,
        source: NodeRef,
        target: NodeRef,
        properties: dict[str, Any] | None = None,
    ) -> EdgeWriteResult:
        """Connect two existing nodes.

        Checks run in order: edge type exists, edge properties are valid,
        source resolves, target resolves, endpoint types satisfy the edge
        type's constraints. The first failure raises.
        """
        type_detail = await self.types.require_edge_type(owner_id, edge_type)
        properties = dict(properties or {})

        errors = validate_properties(properties, type_detail.properties_schema)
        if errors:
            raise PropertiesValidationError("EDGE_PROPERTIES_SCHEMA_VALIDATION_FAILED", errors)

        async with self.db.session() as session:
            source_node = await self._resolve(session, owner_id, source, "source")
            target_node = await self._resolve(session, owner_id, target, "target")

            if type_detail.source_node_types and source_node.type not in type_detail.source_node_types:
                raise EdgeConstraintViolation(edge_type, "source", source_node.type, type_detail.source_node_types)
            if type_detail.target_node_types and target_node.type not in type_detail.target_node_types:
                raise EdgeConstraintViolation(edge_type, "target", target_node.type, type_detail.target_node_types)

            existing = await self._find_edge(session, owner_id, edge_type, source_node.id, target_node.id)
            if existing is not None:
                return EdgeWriteResult(edge_id=existing.id, action="already_exists")

            edge = GraphEdge(
                owner_id=owner_id,
                type=edge_type,
                source_id=source_node.id,
                target_id=target_node.id,
                properties=properties,
            )
            session.add(edge)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                existing = await self._find_edge(session, owner_id, edge_type, source_node.id, target_node.id)
                if existing is None:
                    raise
                return EdgeWriteResult(edge_id=existing.id, action="already_exists")

        logger.debug(
            "Created edge %s --%s--> %s (%s)",
            source_node.name,
            edge_type,
            target_node.name,
            edge.id.hex[:8],
        )
        return EdgeWriteResult(edge_id=edge.id, action="created")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_node(self, owner_id: UUID, node_id: UUID) -> GraphNodeDetail | None:
        async with self.db.session() as session:
            node = await session.get(GraphNode, node_id)
            if node is None or node.owner_id != owner_id:
                return None
            return _node_detail(node)

    async def find_node(self, owner_id: UUID, ref: NodeRef) -> GraphNodeDetail:
        """Resolve a name reference. Raises EndpointNotFound or AmbiguousNodeReference."""
        async with self.db.session() as session:
            return _node_detail(await self._resolve(session, owner_id, ref, "source"))

    async def query(
        self,
        owner_id: UUID,
        node_type: str | None = None,
        search_term: str | None = None,
        limit: int | None = None,
    ) -> GraphQueryResult:
        """Most recently updated nodes matching the filter, plus the edges among them."""
        limit = max(1, min(limit or DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT))
        async with self.db.session() as session:
            stmt = select(GraphNode).where(GraphNode.owner_id == owner_id)
            if node_type:
                stmt = stmt.where(GraphNode.type == node_type)
            if search_term:
                stmt = stmt.where(func.lower(GraphNode.name).contains(search_term.lower(), autoescape=True))
            stmt = stmt.order_by(GraphNode.updated_at.desc(), GraphNode.id).limit(limit)
            nodes = list((await session.execute(stmt)).scalars().all())
            edges = await self._edges_within(session, owner_id, [n.id for n in nodes])

        return GraphQueryResult(
            nodes=[_node_detail(n) for n in nodes],
            edges=[_edge_detail(e) for e in edges],
        )

    async def neighbors(self, owner_id: UUID, node_id: UUID, depth: int = 1) -> GraphQueryResult:
        """Breadth-first traversal from a node, following edges in both directions.

        Returns the start node, every node reached within ``depth`` hops and
        every edge traversed. Each edge appears once.
        """
        depth = max(1, min(depth, MAX_NEIGHBOR_DEPTH))
        async with self.db.session() as session:
            start = await session.get(GraphNode, node_id)
            if start is None or start.owner_id != owner_id:
                return GraphQueryResult()

            nodes: dict[UUID, GraphNode] = {start.id: start}
            edges: dict[UUID, GraphEdge] = {}
            frontier: deque[UUID] = deque([start.id])

            for _ in range(depth):
                next_frontier: deque[UUID] = deque()
                while frontier:
                    current = frontier.popleft()
                    result = await session.execute(
                        select(GraphEdge)
                        .where(GraphEdge.owner_id == owner_id)
                        .where(or_(GraphEdge.source_id == current, GraphEdge.target_id == current))
                        .order_by(GraphEdge.created_at, GraphEdge.id)
                    )
                    for edge in result.scalars().all():
                        if edge.id in edges:
                            continue
                        edges[edge.id] = edge
                        neighbor_id = edge.target_id if edge.source_id == current else edge.source_id
                        if neighbor_id in nodes:
                            continue
                        neighbor = await session.get(GraphNode, neighbor_id)
                        if neighbor is not None:
                            nodes[neighbor_id] = neighbor
                            next_frontier.append(neighbor_id)
                frontier = next_frontier

        return GraphQueryResult(
            nodes=[_node_detail(n) for n in nodes.values()],
            edges=[_edge_detail(e) for e in edges.values()],
        )

    async def stats(self, owner_id: UUID) -> GraphStats:
        async with self.db.session() as session:
            node_rows = await session.execute(
                select(GraphNode.type, func.count()).where(GraphNode.owner_id == owner_id).group_by(GraphNode.type)
            )
            edge_rows = await session.execute(
                select(GraphEdge.type, func.count()).where(GraphEdge.owner_id == owner_id).group_by(GraphEdge.type)
            )
            nodes_by_type = {t: c for t, c in node_rows.all()}
            edges_by_type = {t: c for t, c in edge_rows.all()}

        return GraphStats(
            node_count=sum(nodes_by_type.values()),
            edge_count=sum(edges_by_type.values()),
            nodes_by_type=nodes_by_type,
            edges_by_type=edges_by_type,
        )

    async def serialize_for_llm(self, owner_id: UUID, limit: int = 100) -> str:
        """Render recent nodes and the relationships among them as plain text."""
        async with self.db.session() as session:
            result = await session.execute(
                select(GraphNode)
                .where(GraphNode.owner_id == owner_id)
                .order_by(GraphNode.updated_at.desc(), GraphNode.id)
                .limit(limit)
            )
            nodes = list(result.scalars().all())
            if not nodes:
                return "No knowledge graph data available."
            edges = await self._edges_within(session, owner_id, [n.id for n in nodes])

        by_id = {n.id: n for n in nodes}
        lines = ["Nodes:"]
        for node in nodes:
            lines.append(
                f"- [{node.type}] {node.name} (id: {node.id}): {json.dumps(node.properties or {}, default=str)}"
            )
        if edges:
            lines.append("")
            lines.append("Relationships:")
            for edge in edges:
                lines.append(
                    f"- [edge:{edge.id}] {by_id[edge.source_id].name} --{edge.type}--> {by_id[edge.target_id].name}"
                )
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _find_node(session: AsyncSession, owner_id: UUID, node_type: str, name: str) -> GraphNode | None:
        result = await session.execute(
            select(GraphNode)
            .where(GraphNode.owner_id == owner_id)
            .where(GraphNode.type == node_type)
            .where(GraphNode.name == name)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _find_edge(
        session: AsyncSession,
        owner_id: UUID,
        edge_type: str,
        source_id: UUID,
        target_id: UUID,
    ) -> GraphEdge | None:
        result = await session.execute(
            select(GraphEdge)
            .where(GraphEdge.owner_id == owner_id)
            .where(GraphEdge.type == edge_type)
            .where(GraphEdge.source_id == source_id)
            .where(GraphEdge.target_id == target_id)
        )
        return result.scalar_one_or_none()

    async def _resolve(self, session: AsyncSession, owner_id: UUID, ref: NodeRef, endpoint: str) -> GraphNode:
        if ref.type:
            node = await self._find_node(session, owner_id, ref.type, ref.name)
            if node is None:
                raise EndpointNotFound(endpoint, ref.name, ref.type)
            return node

        result = await session.execute(
            select(GraphNode).where(GraphNode.owner_id == owner_id).where(GraphNode.name == ref.name).limit(2)
        )
        candidates = list(result.scalars().all())
        if not candidates:
            raise EndpointNotFound(endpoint, ref.name, None)
        if len(candidates) > 1:
            raise AmbiguousNodeReference(
                f'{endpoint.capitalize()} node name "{ref.name}" matches nodes of several types. Specify its type.'
            )
        return candidates[0]

    @staticmethod
    async def _edges_within(session: AsyncSession, owner_id: UUID, node_ids: list[UUID]) -> list[GraphEdge]:
        if not node_ids:
            return []
        result = await session.execute(
            select(GraphEdge)
            .where(GraphEdge.owner_id == owner_id)
            .where(GraphEdge.source_id.in_(node_ids))
            .where(GraphEdge.target_id.in_(node_ids))
            .order_by(GraphEdge.created_at, GraphEdge.id)
        )
        return list(result.scalars().all())
