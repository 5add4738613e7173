"""Agents: owners, lifecycle, delegation, work sessions and foreground chat.

Only the leaf modules are re-exported here. The task queue and the tool
registry import OwnerRef from this package, so the session, delegation
and briefing modules are imported from their own submodules.
"""

from steward.agents.manager import AgentManager
from steward.agents.owners import AideOwner, OwnerRef, TeamOwner, owner_of

__all__ = [
    "AgentManager",
    "AideOwner",
    "OwnerRef",
    "TeamOwner",
    "owner_of",
]
