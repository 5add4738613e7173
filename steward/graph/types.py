"""Graph type manager -- node and edge type definitions.

Types are either owner-scoped (a team or aide id) or global (owner_id
NULL, visible to every owner). Lookups check the owner's own types first
and fall back to global ones. Names are unique within an owner's visible
namespace.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from steward.errors import EdgeTypeNotFound, NodeTypeNotFound, TypeAlreadyExists
from steward.graph.schemas import EdgeTypeDetail, NodeTypeDetail, TypeCreatedBy
from steward.graph.validation import check_edge_type_name, check_node_type_name, format_type_names
from steward.storage.database import Database
from steward.storage.models import GraphEdgeType, GraphNodeType

logger = logging.getLogger(__name__)


def _visible(model, owner_id: UUID | None):
    if owner_id is None:
        return model.owner_id.is_(None)
    return or_(model.owner_id == owner_id, model.owner_id.is_(None))


def _node_type_detail(row: GraphNodeType) -> NodeTypeDetail:
    return NodeTypeDetail(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        description=row.description,
        properties_schema=row.properties_schema or {},
        example_properties=row.example_properties,
        created_by=row.created_by,
        justification=row.justification,
    )


def _edge_type_detail(row: GraphEdgeType) -> EdgeTypeDetail:
    return EdgeTypeDetail(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        description=row.description,
        properties_schema=row.properties_schema,
        example_properties=row.example_properties,
        created_by=row.created_by,
        justification=row.justification,
        source_node_types=sorted(t.name for t in row.source_node_types),
        target_node_types=sorted(t.name for t in row.target_node_types),
    )


class GraphTypeManager:
    """Creates, resolves and lists graph node and edge types."""

    def __init__(self, db: Database) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Node types
    # ------------------------------------------------------------------

    async def create_node_type(
        self,
        owner_id: UUID | None,
        name: str,
        description: str,
        properties_schema: dict[str, Any] | None = None,
        example_properties: dict[str, Any] | None = None,
        created_by: TypeCreatedBy = "system",
        justification: str | None = None,
    ) -> NodeTypeDetail:
        """Create a node type.

        Raises TypeNameError for a name that is not capitalized and
        TypeAlreadyExists when the name is already visible to the owner.
        """
        check_node_type_name(name)
        async with self.db.session() as session:
            if await self._find_node_type(session, owner_id, name) is not None:
                raise TypeAlreadyExists(f'Node type "{name}" already exists.')
            row = GraphNodeType(
                owner_id=owner_id,
                name=name,
                description=description,
                properties_schema=properties_schema or {"type": "object", "properties": {}},
                example_properties=example_properties,
                created_by=created_by,
                justification=justification,
            )
            session.add(row)
            await session.commit()
            detail = _node_type_detail(row)

        logger.info(
            "Created node type %s (%s) by %s",
            name,
            owner_id.hex[:8] if owner_id else "global",
            created_by,
        )
        return detail

    async def get_node_type(self, owner_id: UUID | None, name: str) -> NodeTypeDetail | None:
        """Owner-scoped type first, then global."""
        async with self.db.session() as session:
            row = await self._find_node_type(session, owner_id, name)
            return _node_type_detail(row) if row else None

    async def require_node_type(self, owner_id: UUID | None, name: str) -> NodeTypeDetail:
        """Like get_node_type() but raises NodeTypeNotFound listing what is available."""
        node_type = await self.get_node_type(owner_id, name)
        if node_type is None:
            available = [t.name for t in await self.list_node_types(owner_id)]
            raise NodeTypeNotFound(
                f'Node type "{name}" does not exist. Available node types: {format_type_names(available)}. '
                "Use listNodeTypes first, then createNodeType only if necessary."
            )
        return node_type

    async def list_node_types(self, owner_id: UUID | None) -> list[NodeTypeDetail]:
        async with self.db.session() as session:
            result = await session.execute(
                select(GraphNodeType).where(_visible(GraphNodeType, owner_id)).order_by(GraphNodeType.name)
            )
            return [_node_type_detail(r) for r in result.scalars().all()]

    async def has_node_types(self, owner_id: UUID) -> bool:
        """Whether the owner has any types of its own (globals not counted)."""
        async with self.db.session() as session:
            result = await session.execute(
                select(GraphNodeType.id).where(GraphNodeType.owner_id == owner_id).limit(1)
            )
            return result.scalar_one_or_none() is not None

    @staticmethod
    async def _find_node_type(session: AsyncSession, owner_id: UUID | None, name: str) -> GraphNodeType | None:
        if owner_id is not None:
            result = await session.execute(
                select(GraphNodeType).where(GraphNodeType.owner_id == owner_id).where(GraphNodeType.name == name)
            )
            row = result.scalar_one_or_none()
            if row is not None:
                return row
        result = await session.execute(
            select(GraphNodeType).where(GraphNodeType.owner_id.is_(None)).where(GraphNodeType.name == name)
        )
        return result.scalars().first()

    # ------------------------------------------------------------------
    # Edge types
    # ------------------------------------------------------------------

    async def create_edge_type(
        self,
        owner_id: UUID | None,
        name: str,
        description: str,
        source_node_types: list[str] | None = None,
        target_node_types: list[str] | None = None,
        properties_schema: dict[str, Any] | None = None,
        example_properties: dict[str, Any] | None = None,
        created_by: TypeCreatedBy = "system",
        justification: str | None = None,
    ) -> EdgeTypeDetail:
        """Create an edge type with optional source/target constraints.

        Every constraint name must resolve to a node type visible to the
        owner, else NodeTypeNotFound is raised and nothing is written.
        """
        check_edge_type_name(name)
        async with self.db.session() as session:
            if await self._find_edge_type(session, owner_id, name) is not None:
                raise TypeAlreadyExists(f'Edge type "{name}" already exists.')

            sources = await self._resolve_node_types(session, owner_id, source_node_types or [])
            targets = await self._resolve_node_types(session, owner_id, target_node_types or [])

            row = GraphEdgeType(
                owner_id=owner_id,
                name=name,
                description=description,
                properties_schema=properties_schema,
                example_properties=example_properties,
                created_by=created_by,
                justification=justification,
                source_node_types=sources,
                target_node_types=targets,
            )
            session.add(row)
            await session.commit()
            detail = _edge_type_detail(row)

        logger.info(
            "Created edge type %s (%s) %s -> %s",
            name,
            owner_id.hex[:8] if owner_id else "global",
            "|".join(detail.source_node_types) or "*",
            "|".join(detail.target_node_types) or "*",
        )
        return detail

    async def get_edge_type(self, owner_id: UUID | None, name: str) -> EdgeTypeDetail | None:
        """Owner-scoped type first, then global."""
        async with self.db.session() as session:
            row = await self._find_edge_type(session, owner_id, name)
            return _edge_type_detail(row) if row else None

    async def require_edge_type(self, owner_id: UUID | None, name: str) -> EdgeTypeDetail:
        edge_type = await self.get_edge_type(owner_id, name)
        if edge_type is None:
            available = [t.name for t in await self.list_edge_types(owner_id)]
            raise EdgeTypeNotFound(
                f'Edge type "{name}" does not exist. Available edge types: {format_type_names(available)}. '
                "Use listEdgeTypes first and select an existing type."
            )
        return edge_type

    async def list_edge_types(self, owner_id: UUID | None) -> list[EdgeTypeDetail]:
        async with self.db.session() as session:
            result = await session.execute(
                select(GraphEdgeType).where(_visible(GraphEdgeType, owner_id)).order_by(GraphEdgeType.name)
            )
            return [_edge_type_detail(r) for r in result.scalars().all()]

    @staticmethod
    async def _find_edge_type(session: AsyncSession, owner_id: UUID | None, name: str) -> GraphEdgeType | None:
        if owner_id is not None:
            result = await session.execute(
                select(GraphEdgeType).where(GraphEdgeType.owner_id == owner_id).where(GraphEdgeType.name == name)
            )
            row = result.scalar_one_or_none()
            if row is not None:
                return row
        result = await session.execute(
            select(GraphEdgeType).where(GraphEdgeType.owner_id.is_(None)).where(GraphEdgeType.name == name)
        )
        return result.scalars().first()

    async def _resolve_node_types(
        self,
        session: AsyncSession,
        owner_id: UUID | None,
        names: list[str],
    ) -> list[GraphNodeType]:
        resolved: list[GraphNodeType] = []
        for type_name in dict.fromkeys(names):
            row = await self._find_node_type(session, owner_id, type_name)
            if row is None:
                result = await session.execute(
                    select(GraphNodeType.name).where(_visible(GraphNodeType, owner_id))
                )
                available = list(result.scalars().all())
                raise NodeTypeNotFound(
                    f'Node type "{type_name}" does not exist. Available node types: {format_type_names(available)}'
                )
            resolved.append(row)
        return resolved

    # ------------------------------------------------------------------
    # LLM context
    # ------------------------------------------------------------------

    async def format_types_for_llm_context(self, owner_id: UUID) -> str:
        """Render visible types as a readable block for system prompts."""
        node_types = await self.list_node_types(owner_id)
        edge_types = await self.list_edge_types(owner_id)

        lines = ["### Node Types"]
        if not node_types:
            lines.append("No node types defined.")
        for nt in node_types:
            properties = nt.properties_schema.get("properties") or {}
            required = list(nt.properties_schema.get("required") or [])
            optional = [p for p in properties if p not in required]
            entry = f"- **{nt.name}**: {nt.description}"
            if required:
                entry += f"\n  Required: {', '.join(required)}"
            if optional:
                entry += f"\n  Optional: {', '.join(optional)}"
            if nt.example_properties:
                entry += f"\n  Example: {json.dumps(nt.example_properties, default=str)}"
            lines.append(entry)

        lines.append("")
        lines.append("### Edge Types")
        if not edge_types:
            lines.append("No edge types defined.")
        for et in edge_types:
            constraint = ""
            if et.source_node_types or et.target_node_types:
                source = "|".join(et.source_node_types) or "*"
                target = "|".join(et.target_node_types) or "*"
                constraint = f": {source} -> {target}"
            lines.append(f"- **{et.name}**{constraint}")
            lines.append(f"  Description: {et.description}")

        return "\n".join(lines)
