"""Tests for steward/agents/manager.py and steward/agents/owners.py."""

from __future__ import annotations

from types import SimpleNamespace
from uuid import uuid4

import pytest

from steward.agents.owners import AideOwner, TeamOwner, owner_of
from steward.errors import AgentNotFound, OwnershipError
from steward.storage.models import AgentStatus


class TestOwners:
    def test_team_row(self):
        team_id = uuid4()
        assert owner_of(SimpleNamespace(team_id=team_id, aide_id=None)) == TeamOwner(team_id)

    def test_aide_row(self):
        aide_id = uuid4()
        owner = owner_of(SimpleNamespace(team_id=None, aide_id=aide_id))
        assert owner == AideOwner(aide_id)
        assert owner.columns == {"team_id": None, "aide_id": aide_id}

    @pytest.mark.parametrize("team_id,aide_id", [(None, None), (uuid4(), uuid4())])
    def test_exactly_one_owner(self, team_id, aide_id):
        with pytest.raises(OwnershipError):
            owner_of(SimpleNamespace(id=uuid4(), team_id=team_id, aide_id=aide_id))


class TestAgentManager:
    async def test_lead_and_subordinate(self, agents, team, lead, subordinate):
        assert lead.is_lead
        assert not subordinate.is_lead
        assert owner_of(subordinate) == team
        assert [a.id for a in await agents.list_subordinates(lead.id)] == [subordinate.id]
        assert await agents.list_subordinates(subordinate.id) == []

    async def test_aide_agent(self, agents):
        aide = await agents.create_aide("Personal helper", purpose="Plan my week")
        agent = await agents.create_agent(aide, "Hal")

        assert owner_of(agent) == aide
        assert agent.role == "assistant"
        assert await agents.owner_profile(aide) == ("Personal helper", "Plan my week")

    async def test_owner_profile(self, agents, team):
        assert await agents.owner_profile(team) == ("Market Watch", "Track semiconductor news")

    async def test_missing_owner_profile(self, agents):
        with pytest.raises(OwnershipError):
            await agents.owner_profile(TeamOwner(uuid4()))

    async def test_parent_must_share_owner(self, agents, lead):
        other = await agents.create_team("Other")
        with pytest.raises(OwnershipError):
            await agents.create_agent(other, "Mallory", parent_agent_id=lead.id)

    async def test_unknown_parent(self, agents, team):
        with pytest.raises(AgentNotFound):
            await agents.create_agent(team, "Orphan", parent_agent_id=uuid4())

    async def test_require(self, agents, lead):
        assert (await agents.require(lead.id)).name == "Ada"
        with pytest.raises(AgentNotFound):
            await agents.require(uuid4())


class TestStatus:
    async def test_try_start_is_exclusive(self, agents, lead):
        assert await agents.try_start(lead.id)
        assert not await agents.try_start(lead.id)
        assert (await agents.get(lead.id)).status == AgentStatus.RUNNING

        await agents.finish(lead.id)
        assert (await agents.get(lead.id)).status == AgentStatus.IDLE

    async def test_paused_agent_cannot_start(self, agents, lead):
        await agents.set_status(lead.id, AgentStatus.PAUSED)
        assert not await agents.try_start(lead.id)

    async def test_finish_keeps_pause(self, agents, lead):
        await agents.try_start(lead.id)
        await agents.set_status(lead.id, AgentStatus.PAUSED)
        await agents.finish(lead.id)

        assert (await agents.get(lead.id)).status == AgentStatus.PAUSED

    async def test_set_status_unknown_agent(self, agents):
        with pytest.raises(AgentNotFound):
            await agents.set_status(uuid4(), AgentStatus.PAUSED)
