"""Which tools an agent sees in each mode.

Names that are not registered (research tools without a Brave key) are
dropped, so a set never advertises a tool the registry cannot run.
"""

from __future__ import annotations

from steward.tools.graph_tools import GRAPH_TOOLS
from steward.tools.knowledge_tools import KNOWLEDGE_TOOLS
from steward.tools.lead_tools import LEAD_TOOLS
from steward.tools.registry import ToolRegistry
from steward.tools.subordinate_tools import SUBORDINATE_TOOLS
from steward.tools.web_tools import RESEARCH_TOOLS

# Tools with side effects on other parties, never offered in chat
FOREGROUND_EXCLUDED = frozenset({
    "delegateToAgent",
    "createBriefing",
    "requestUserInput",
    "reportToLead",
    "requestLeadInput",
})


def _available(registry: ToolRegistry, names: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for name in names:
        if name in registry and name not in seen:
            seen.add(name)
            result.append(name)
    return result


def background_tool_names(registry: ToolRegistry, is_lead: bool) -> list[str]:
    role_tools = LEAD_TOOLS if is_lead else SUBORDINATE_TOOLS
    return _available(registry, [*role_tools, *KNOWLEDGE_TOOLS, *GRAPH_TOOLS, *RESEARCH_TOOLS])


def foreground_tool_names(registry: ToolRegistry) -> list[str]:
    return [n for n in registry.names() if n not in FOREGROUND_EXCLUDED]
