"""Seeds an owner's graph types from its name and purpose with one structured LLM call."""

from __future__ import annotations

import logging
from uuid import UUID

from pydantic import ValidationError

from steward.errors import GraphError, LLMError
from steward.graph.schemas import TypeInitializationResult
from steward.graph.types import GraphTypeManager
from steward.llm.models import LanguageModel

logger = logging.getLogger(__name__)

TYPE_INITIALIZATION_SYSTEM_PROMPT = """\
You are a knowledge graph schema designer. Given an agent's purpose, design appropriate node types and edge types for its knowledge graph.

## Context
The agent runs autonomously on behalf of a single user, researching and learning over time. The knowledge graph stores external knowledge the agent discovers; never user data. User preferences and profile information are handled separately outside the graph.

## Naming Conventions
- Node types: PascalCase (e.g., "Company", "ResearchPaper", "MarketEvent")
- Edge types: snake_case (e.g., "published_by", "relates_to", "occurred_at")

## Schema Requirements
- Design 5-10 node types and 5-10 edge types covering key domain concepts
- Each node type needs: name, description, propertiesSchema (JSON Schema), exampleProperties
- Each edge type needs: name, description, sourceNodeTypeNames, targetNodeTypeNames, and optionally propertiesSchema/exampleProperties

## Property Guidelines
- Include a "source_url" property on types where provenance matters (articles, data points, claims)
- Include temporal properties where appropriate: discovered_at, published_at, occurred_at, updated_at
- Include "summary" or "description" fields for human-readable context
- Use specific property types: numbers for quantities, dates for timestamps, arrays for lists

## What to Include
- Domain entities the agent will research (companies, people, technologies, etc.)
- Information artifacts (articles, reports, announcements, data points)
- Events and changes over time (market events, releases, milestones)
- Concepts and topics relevant to the domain

## What to Avoid
- User-centric types (User, Portfolio, Preference, Account, Watchlist)
- Overly abstract types (Thing, Concept, Item, Object)
- Types that duplicate what properties can capture

## propertiesSchema Format
Valid JSON Schema object with:
- type: "object"
- properties: object mapping property names to schemas (e.g., { "name": { "type": "string" } })
- required: optional array of required property names"""


class GraphTypeInitializer:
    """Designs and persists starter node/edge types for a new owner."""

    def __init__(self, llm: LanguageModel, types: GraphTypeManager, model: str | None = None) -> None:
        self._llm = llm
        self._types = types
        self._model = model

    async def design(self, name: str, purpose: str | None) -> TypeInitializationResult:
        messages = [{
            "role": "user",
            "content": (
                "Design a knowledge graph schema for the following agent:\n\n"
                f"Agent Name: {name}\n"
                f"Agent Purpose: {purpose or 'General purpose assistant'}\n\n"
                "Create node types and edge types that capture the external knowledge "
                "this agent will discover while fulfilling its mission."
            ),
        }]
        return await self._llm.generate_structured(
            messages,
            TypeInitializationResult,
            TYPE_INITIALIZATION_SYSTEM_PROMPT,
            max_tokens=4096,
            temperature=0.7,
            model=self._model,
        )

    async def persist(self, owner_id: UUID, design: TypeInitializationResult) -> tuple[int, int]:
        """Create node types, then edge types. Returns (node_types, edge_types) created.

        Definitions that fail naming or uniqueness rules are skipped. Edge
        constraint names that do not resolve are dropped from the edge type.
        """
        node_count = 0
        for definition in design.node_types:
            try:
                await self._types.create_node_type(
                    owner_id,
                    definition.name,
                    definition.description,
                    properties_schema=definition.properties_schema,
                    example_properties=definition.example_properties,
                    created_by="system",
                )
                node_count += 1
            except GraphError as e:
                logger.warning("Skipping generated node type %r: %s", definition.name, e)

        edge_count = 0
        for definition in design.edge_types:
            sources = await self._existing(owner_id, definition.name, "source", definition.source_node_type_names)
            targets = await self._existing(owner_id, definition.name, "target", definition.target_node_type_names)
            try:
                await self._types.create_edge_type(
                    owner_id,
                    definition.name,
                    definition.description,
                    source_node_types=sources,
                    target_node_types=targets,
                    properties_schema=definition.properties_schema,
                    example_properties=definition.example_properties,
                    created_by="system",
                )
                edge_count += 1
            except GraphError as e:
                logger.warning("Skipping generated edge type %r: %s", definition.name, e)

        logger.info(
            "Initialized %d node types and %d edge types for owner %s",
            node_count,
            edge_count,
            owner_id.hex[:8],
        )
        return node_count, edge_count

    async def ensure_initialized(self, owner_id: UUID, name: str, purpose: str | None) -> bool:
        """Seed types unless the owner already has some. Returns True when seeding ran.

        A failed or malformed model response is logged and leaves the owner
        without types; the next call tries again.
        """
        if await self._types.has_node_types(owner_id):
            return False
        try:
            design = await self.design(name, purpose)
        except (LLMError, ValidationError) as e:
            logger.warning("Graph type initialization failed for owner %s: %s", owner_id.hex[:8], e)
            return False
        await self.persist(owner_id, design)
        return True

    async def _existing(self, owner_id: UUID, edge_name: str, endpoint: str, names: list[str]) -> list[str]:
        valid = []
        for type_name in names:
            if await self._types.get_node_type(owner_id, type_name) is not None:
                valid.append(type_name)
            else:
                logger.warning(
                    "%s node type %r not found for edge type %r",
                    endpoint.capitalize(),
                    type_name,
                    edge_name,
                )
        return valid
