"""AgentManager -- the narrow agent/owner persistence interface the engine needs.

Full team/agent CRUD lives outside this package; this covers lookups,
status transitions and the minimal creation used by bootstrap and tests.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select, update

from steward.agents.owners import AideOwner, OwnerRef, TeamOwner, owner_of
from steward.errors import AgentNotFound, OwnershipError
from steward.storage.database import Database
from steward.storage.models import Agent, AgentStatus, Aide, Team

logger = logging.getLogger(__name__)


class AgentManager:
    def __init__(self, db: Database) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Owners and agents
    # ------------------------------------------------------------------

    async def create_team(self, name: str, purpose: str | None = None) -> TeamOwner:
        async with self.db.session() as session:
            team = Team(name=name, purpose=purpose)
            session.add(team)
            await session.commit()
            return TeamOwner(team.id)

    async def create_aide(self, name: str, purpose: str | None = None) -> AideOwner:
        async with self.db.session() as session:
            aide = Aide(name=name, purpose=purpose)
            session.add(aide)
            await session.commit()
            return AideOwner(aide.id)

    async def create_agent(
        self,
        owner: OwnerRef,
        name: str,
        role: str = "assistant",
        system_prompt: str | None = None,
        parent_agent_id: UUID | None = None,
    ) -> Agent:
        """Create an agent. A parent makes it a subordinate and must share the owner."""
        async with self.db.session() as session:
            if parent_agent_id is not None:
                parent = await session.get(Agent, parent_agent_id)
                if parent is None:
                    raise AgentNotFound(f"Agent not found: {parent_agent_id}")
                if owner_of(parent) != owner:
                    raise OwnershipError(f"Parent agent {parent_agent_id} belongs to a different owner")
            agent = Agent(
                **owner.columns,
                name=name,
                role=role,
                system_prompt=system_prompt,
                parent_agent_id=parent_agent_id,
                status=AgentStatus.IDLE,
            )
            session.add(agent)
            await session.commit()
        logger.info(
            "Created %s agent %s (%s)",
            "lead" if parent_agent_id is None else "subordinate",
            name,
            agent.id.hex[:8],
        )
        return agent

    async def get(self, agent_id: UUID) -> Agent | None:
        async with self.db.session() as session:
            return await session.get(Agent, agent_id)

    async def require(self, agent_id: UUID) -> Agent:
        agent = await self.get(agent_id)
        if agent is None:
            raise AgentNotFound(f"Agent not found: {agent_id}")
        return agent

    async def list_subordinates(self, lead_id: UUID) -> list[Agent]:
        async with self.db.session() as session:
            result = await session.execute(
                select(Agent).where(Agent.parent_agent_id == lead_id).order_by(Agent.created_at, Agent.id)
            )
            return list(result.scalars().all())

    async def owner_profile(self, owner: OwnerRef) -> tuple[str, str | None]:
        """(name, purpose) of the team or aide."""
        model = Team if isinstance(owner, TeamOwner) else Aide
        async with self.db.session() as session:
            row = await session.get(model, owner.id)
            if row is None:
                raise OwnershipError(f"{model.__name__} {owner.id} does not exist")
            return row.name, row.purpose

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def try_start(self, agent_id: UUID) -> bool:
        """Flip idle -> running. False when the agent is paused or already running."""
        async with self.db.session() as session:
            result = await session.execute(
                update(Agent)
                .where(Agent.id == agent_id)
                .where(Agent.status == AgentStatus.IDLE)
                .values(status=AgentStatus.RUNNING)
            )
            await session.commit()
            return result.rowcount == 1

    async def finish(self, agent_id: UUID) -> None:
        """running -> idle. A pause set while the session ran is kept."""
        async with self.db.session() as session:
            await session.execute(
                update(Agent)
                .where(Agent.id == agent_id)
                .where(Agent.status == AgentStatus.RUNNING)
                .values(status=AgentStatus.IDLE)
            )
            await session.commit()

    async def set_status(self, agent_id: UUID, status: AgentStatus) -> None:
        async with self.db.session() as session:
            result = await session.execute(
                update(Agent).where(Agent.id == agent_id).values(status=AgentStatus(status))
            )
            await session.commit()
            if result.rowcount == 0:
                raise AgentNotFound(f"Agent not found: {agent_id}")
        logger.info("Agent %s status -> %s", agent_id.hex[:8], status)
