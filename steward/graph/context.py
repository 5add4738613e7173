"""Knowledge-graph block for background system prompts."""

from __future__ import annotations

from uuid import UUID

from steward.graph.store import GraphStore

_RETRIEVE_STEP = """1. **RETRIEVE first**: Before researching, check if the graph already has relevant information
   - Use queryGraph to search for nodes related to your task{review}
   - If you find relevant, recent information, use it"""

_REMAINING_STEPS = """2. **INSERT when needed**: If the graph lacks information you need:
   - Use external tools (web search, etc.) to gather information
   - Use addGraphNode to create nodes for entities you discover
   - Use addGraphEdge to create relationships between nodes
   - Include temporal properties (occurred_at, published_at) where applicable

3. **Avoid duplicates**: Before creating a node, the system checks if one with the same type+name exists
   - If it exists, properties are merged (updated)
   - Use consistent naming (e.g., "Apple Inc." not "Apple" vs "Apple Inc")

4. **Use existing types**: Prefer existing node/edge types over creating new ones
   - Use listNodeTypes/listEdgeTypes to inspect available types first
   - Only use createNodeType/createEdgeType if truly necessary
   - Provide justification when creating new types"""

_FRESHNESS_STEP = """5. **Reason about freshness**: Check temporal properties to assess data relevance
   - A signal from weeks ago may be stale
   - Recent news is more relevant than old news"""


def _guidance(populated: bool) -> str:
    steps = [
        _RETRIEVE_STEP.format(
            review="\n   - Review the graph state above for relevant prior knowledge" if populated else ""
        ),
        _REMAINING_STEPS,
    ]
    if populated:
        steps.append(_FRESHNESS_STEP)
    return "## How to Use the Knowledge Graph\n\nWhen working on tasks, follow this pattern:\n\n" + "\n\n".join(steps)


async def build_graph_context_block(store: GraphStore, owner_id: UUID, max_nodes: int = 50) -> str:
    """Types, recent graph state and usage guidance wrapped in <knowledge_graph>."""
    type_context = await store.types.format_types_for_llm_context(owner_id)
    stats = await store.stats(owner_id)

    if stats.node_count == 0:
        parts = [
            "The knowledge graph is currently empty. "
            "Use the graph tools to populate it with discovered knowledge.",
            type_context,
            _guidance(populated=False),
        ]
    else:
        graph_data = await store.serialize_for_llm(owner_id, max_nodes)
        parts = [
            f"Current graph has {stats.node_count} nodes and {stats.edge_count} edges.",
            f"## Available Types\n{type_context}",
            f"## Current Graph State (most recent {min(stats.node_count, max_nodes)} nodes)\n{graph_data}",
            _guidance(populated=True),
        ]

    return "<knowledge_graph>\n" + "\n\n".join(parts) + "\n</knowledge_graph>"
