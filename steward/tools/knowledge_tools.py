"""Tools for an agent's own knowledge items."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import ValidationError

from steward.knowledge.items import KnowledgeManager
from steward.knowledge.schemas import ExtractedKnowledge
from steward.tools.registry import (
    Tool,
    ToolContext,
    ToolParameter,
    ToolRegistry,
    ToolResult,
    ToolSchema,
    reports_errors,
)

KNOWLEDGE_TOOLS = ["addKnowledgeItem", "listKnowledgeItems", "removeKnowledgeItem"]

_KNOWLEDGE_TYPES = ["fact", "technique", "pattern", "lesson"]


class KnowledgeTools:
    def __init__(self, knowledge: KnowledgeManager) -> None:
        self._knowledge = knowledge

    @reports_errors("add knowledge item")
    async def add(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        try:
            item = ExtractedKnowledge(
                type=params["type"],
                content=params["content"],
                confidence=params.get("confidence"),
            )
        except ValidationError as e:
            return ToolResult.fail(f"Invalid knowledge item: {e.errors()[0]['msg']}")

        stored = await self._knowledge.persist_knowledge(context.agent_id, [item], context.conversation_id)
        return ToolResult.ok({
            "knowledgeItemId": str(stored[0].id),
            "message": f"Added {item.type} to knowledge base",
        })

    @reports_errors("list knowledge items")
    async def list(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        items = await self._knowledge.list_knowledge(
            context.agent_id,
            type=params.get("type") or None,
            limit=int(params.get("limit") or 20),
        )
        return ToolResult.ok({
            "count": len(items),
            "items": [
                {
                    "id": str(i.id),
                    "type": i.type,
                    "content": i.content,
                    "confidence": i.confidence,
                    "createdAt": i.created_at.isoformat(),
                }
                for i in items
            ],
        })

    @reports_errors("remove knowledge item")
    async def remove(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        try:
            item_id = UUID(str(params["knowledgeItemId"]))
        except ValueError:
            return ToolResult.fail(f"Invalid knowledge item ID: {params['knowledgeItemId']}")
        if not await self._knowledge.delete_knowledge(context.agent_id, item_id):
            return ToolResult.fail("Knowledge item not found")
        return ToolResult.ok({"message": "Knowledge item removed"})


def register_knowledge_tools(registry: ToolRegistry, knowledge: KnowledgeManager) -> None:
    tools = KnowledgeTools(knowledge)
    registry.register(Tool(
        ToolSchema(
            name="addKnowledgeItem",
            description="Save a fact, technique, pattern or lesson to your professional knowledge base.",
            parameters=[
                ToolParameter("type", "string", "Kind of knowledge", enum=_KNOWLEDGE_TYPES),
                ToolParameter("content", "string", "The knowledge to retain"),
                ToolParameter("confidence", "number", "Confidence from 0 to 1", required=False),
            ],
        ),
        tools.add,
    ))
    registry.register(Tool(
        ToolSchema(
            name="listKnowledgeItems",
            description="List items in your knowledge base, newest first.",
            parameters=[
                ToolParameter("type", "string", "Only this kind of knowledge", required=False, enum=_KNOWLEDGE_TYPES),
                ToolParameter("limit", "integer", "Maximum items to return (default 20)", required=False),
            ],
        ),
        tools.list,
    ))
    registry.register(Tool(
        ToolSchema(
            name="removeKnowledgeItem",
            description="Remove an outdated or incorrect item from your knowledge base.",
            parameters=[ToolParameter("knowledgeItemId", "string", "ID of the item to remove")],
        ),
        tools.remove,
    ))
