"""Tests for steward/tools/subordinate_tools.py."""

from __future__ import annotations

import pytest

from steward.agents.owners import owner_of
from steward.storage.models import ConversationMode, MessageRole
from steward.tools.registry import ToolContext


@pytest.fixture
def registry(make_registry):
    return make_registry()


@pytest.fixture
def sub_context(subordinate) -> ToolContext:
    return ToolContext(agent_id=subordinate.id, owner=owner_of(subordinate), is_lead=False)


async def _lead_inbox(conversations, lead):
    conv = await conversations.get_or_create(lead.id, ConversationMode.BACKGROUND)
    return await conversations.messages(conv.id)


async def test_report_lands_in_lead_background(registry, sub_context, conversations, lead):
    result = await registry.execute("reportToLead", {"result": "Found 3 suppliers", "status": "success"}, sub_context)

    assert result.data == {"message": "Result reported to lead"}
    [message] = await _lead_inbox(conversations, lead)
    assert message.role == MessageRole.USER
    assert message.content == "Subordinate Ben reports: Found 3 suppliers"


async def test_question_lands_in_lead_background(registry, sub_context, conversations, lead):
    result = await registry.execute("requestLeadInput", {"question": "Which region first?"}, sub_context)

    assert result.data == {"message": "Question sent to lead"}
    [message] = await _lead_inbox(conversations, lead)
    assert message.content == "Subordinate Ben asks: Which region first?"


async def test_messages_append_in_order(registry, sub_context, conversations, lead):
    await registry.execute("reportToLead", {"result": "first"}, sub_context)
    await registry.execute("requestLeadInput", {"question": "second?"}, sub_context)

    messages = await _lead_inbox(conversations, lead)
    assert [m.content for m in messages] == ["Subordinate Ben reports: first", "Subordinate Ben asks: second?"]


async def test_report_does_not_queue_lead_work(registry, sub_context, queue, lead):
    await registry.execute("reportToLead", {"result": "done"}, sub_context)
    assert not (await queue.queue_status(lead.id)).has_pending_work


@pytest.mark.parametrize("tool,params", [
    ("reportToLead", {"result": "x"}),
    ("requestLeadInput", {"question": "x"}),
])
async def test_lead_is_refused(registry, lead, conversations, tool, params):
    context = ToolContext(agent_id=lead.id, owner=owner_of(lead), is_lead=True)

    result = await registry.execute(tool, params, context)

    assert result.error == "Leads cannot use this tool"
    assert await _lead_inbox(conversations, lead) == []


async def test_bad_status_rejected(registry, sub_context):
    result = await registry.execute("reportToLead", {"result": "x", "status": "meh"}, sub_context)
    assert not result.success
