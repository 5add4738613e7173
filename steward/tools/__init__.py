"""Agent tools: registry, orchestration loop, tool sets and concrete tools."""

from steward.tools.graph_tools import GRAPH_TOOLS, register_graph_tools
from steward.tools.knowledge_tools import KNOWLEDGE_TOOLS, register_knowledge_tools
from steward.tools.lead_tools import LEAD_TOOLS, register_lead_tools
from steward.tools.loop import ToolLoop, ToolLoopResult, ToolLoopStream
from steward.tools.registry import (
    Tool,
    ToolContext,
    ToolParameter,
    ToolRegistry,
    ToolResult,
    ToolSchema,
)
from steward.tools.sets import background_tool_names, foreground_tool_names
from steward.tools.subordinate_tools import SUBORDINATE_TOOLS, register_subordinate_tools
from steward.tools.web_tools import RESEARCH_TOOLS, register_web_tools

__all__ = [
    "GRAPH_TOOLS",
    "KNOWLEDGE_TOOLS",
    "LEAD_TOOLS",
    "RESEARCH_TOOLS",
    "SUBORDINATE_TOOLS",
    "Tool",
    "ToolContext",
    "ToolLoop",
    "ToolLoopResult",
    "ToolLoopStream",
    "ToolParameter",
    "ToolRegistry",
    "ToolResult",
    "ToolSchema",
    "background_tool_names",
    "foreground_tool_names",
    "register_graph_tools",
    "register_knowledge_tools",
    "register_lead_tools",
    "register_subordinate_tools",
    "register_web_tools",
]
