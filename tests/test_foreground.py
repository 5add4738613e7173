"""Tests for steward/agents/foreground.py -- intent routing and chat replies."""

from __future__ import annotations

from uuid import uuid4

import pytest

from conftest import FakeLLM, tool_use_response
from steward.agents.foreground import ForegroundChat
from steward.errors import AgentNotFound, LLMError
from steward.knowledge.extraction import MemoryExtractor
from steward.knowledge.schemas import ExtractedMemory
from steward.storage.models import ConversationMode, MessageRole, TaskSource, TaskStatus
from steward.tools.loop import ToolLoop

WORK = {"intent": "work_request", "reasoning": "Asks for research"}
CHAT = {"intent": "regular_chat", "reasoning": "Greeting"}


@pytest.fixture
def make_chat(settings, agents, conversations, knowledge, queue, make_registry):
    def make(llm: FakeLLM) -> ForegroundChat:
        return ForegroundChat(
            settings,
            llm,
            agents,
            conversations,
            knowledge,
            queue,
            ToolLoop(llm, make_registry()),
            MemoryExtractor(llm, model=settings.background_model),
        )

    return make


async def _foreground(conversations, agent_id):
    conv = await conversations.get_or_create(agent_id, ConversationMode.FOREGROUND)
    return await conversations.messages(conv.id)


class TestWorkRequest:
    async def test_acknowledges_and_queues(self, make_chat, conversations, queue, lead):
        llm = FakeLLM(["I'll research NVIDIA earnings and notify you."], structured={"UserIntent": WORK})
        chat = make_chat(llm)

        reply = await chat.handle_user_message(lead.id, "Research NVIDIA earnings")
        await chat.drain()

        assert reply.intent == "work_request"
        assert reply.text == "I'll research NVIDIA earnings and notify you."
        task = await queue.get(reply.task_id)
        assert task.status == TaskStatus.PENDING
        assert task.source == TaskSource.USER
        assert task.task == "Research NVIDIA earnings"

        messages = await _foreground(conversations, lead.id)
        assert [(m.role, m.content) for m in messages] == [
            (MessageRole.USER, "Research NVIDIA earnings"),
            (MessageRole.ASSISTANT, "I'll research NVIDIA earnings and notify you."),
        ]
        assert messages[-1].created_at <= task.created_at

    async def test_acknowledgment_call(self, make_chat, settings, lead):
        llm = FakeLLM(structured={"UserIntent": WORK})
        chat = make_chat(llm)

        await chat.handle_user_message(lead.id, "Research NVIDIA earnings")
        await chat.drain()

        [ack] = llm.plain_calls
        assert ack["tools"] is None
        assert ack["max_tokens"] == 100
        assert ack["temperature"] == 0.7
        assert ack["model"] == settings.model
        assert '"Research NVIDIA earnings"' in ack["messages"][0]["content"]

    async def test_no_work_runs_in_the_foreground(self, make_chat, queue, lead):
        llm = FakeLLM(structured={"UserIntent": WORK})
        chat = make_chat(llm)

        reply = await chat.handle_user_message(lead.id, "Research NVIDIA earnings")
        await chat.drain()

        status = await queue.queue_status(lead.id)
        assert status.pending_count == 1
        assert status.in_progress_count == 0
        assert (await queue.get(reply.task_id)).result is None


class TestRegularChat:
    async def test_answers_directly(self, make_chat, conversations, queue, lead):
        llm = FakeLLM(["Hello! How can I help?"], structured={"UserIntent": CHAT})
        chat = make_chat(llm)

        reply = await chat.handle_user_message(lead.id, "Hi there")
        await chat.drain()

        assert reply.intent == "regular_chat"
        assert reply.text == "Hello! How can I help?"
        assert reply.task_id is None
        assert not (await queue.queue_status(lead.id)).has_pending_work
        assert len(await _foreground(conversations, lead.id)) == 2

    async def test_uses_foreground_tools(self, make_chat, settings, lead):
        llm = FakeLLM(structured={"UserIntent": CHAT})
        chat = make_chat(llm)

        await chat.handle_user_message(lead.id, "What's in the graph?")
        await chat.drain()

        [call] = llm.plain_calls
        tool_names = {t["name"] for t in call["tools"]}
        assert "queryGraph" in tool_names
        assert "getTeamStatus" in tool_names
        assert tool_names.isdisjoint({"delegateToAgent", "createBriefing", "reportToLead"})
        assert call["model"] == settings.model
        assert "## Chat Guidelines" in call["system_prompt"]

    async def test_background_only_tool_is_refused(self, make_chat, briefings, lead):
        briefing = {"title": "Leak", "summary": "Should not send", "fullMessage": "Sent from chat"}
        llm = FakeLLM(
            [tool_use_response("createBriefing", briefing), "I can't send briefings from chat."],
            structured={"UserIntent": CHAT},
        )
        chat = make_chat(llm)

        reply = await chat.handle_user_message(lead.id, "Send me a briefing now")
        await chat.drain()

        assert reply.text == "I can't send briefings from chat."
        assert await briefings.list_inbox(lead.id) == []
        results = llm.plain_calls[1]["messages"][-1]["content"]
        assert results[0]["is_error"] is True
        assert results[0]["content"] == "Error: Tool not found: createBriefing"

    async def test_history_carries_over(self, make_chat, lead):
        llm = FakeLLM(["First answer.", "Second answer."], structured={"UserIntent": CHAT})
        chat = make_chat(llm)

        await chat.handle_user_message(lead.id, "First question")
        await chat.handle_user_message(lead.id, "Second question")
        await chat.drain()

        second = llm.plain_calls[1]
        assert [m["content"] for m in second["messages"]] == ["First question", "First answer.", "Second question"]

    async def test_failed_classification_is_chat(self, make_chat, queue, lead):
        llm = FakeLLM(["Sure."], structured={"UserIntent": LLMError("overloaded")})
        chat = make_chat(llm)

        reply = await chat.handle_user_message(lead.id, "Research chip tariffs")
        await chat.drain()

        assert reply.intent == "regular_chat"
        assert reply.text == "Sure."
        assert not (await queue.queue_status(lead.id)).has_pending_work

    async def test_malformed_classification_is_chat(self, make_chat, lead):
        llm = FakeLLM(structured={"UserIntent": {"intent": "gossip", "reasoning": "?"}})
        assert await make_chat(llm).classify_intent("hello") == "regular_chat"

    async def test_classifier_call(self, make_chat, lead):
        llm = FakeLLM(structured={"UserIntent": CHAT})
        await make_chat(llm).classify_intent("Thanks!")

        [call] = llm.structured_calls("UserIntent")
        assert call["max_tokens"] == 200
        assert call["temperature"] == 0
        assert '"Thanks!"' in call["messages"][0]["content"]


class TestMemories:
    async def test_extracted_after_reply(self, make_chat, knowledge, conversations, lead):
        llm = FakeLLM(
            ["Noted."],
            structured={
                "UserIntent": CHAT,
                "MemoryExtractionResult": {"memories": [{"type": "preference", "content": "Prefers bullet points"}]},
            },
        )
        chat = make_chat(llm)

        await chat.handle_user_message(lead.id, "Please always use bullet points")
        await chat.drain()

        [memory] = await knowledge.list_memories(lead.id)
        assert memory.content == "Prefers bullet points"
        messages = await _foreground(conversations, lead.id)
        assert memory.source_message_id == messages[-1].id

    async def test_memories_feed_the_prompt(self, make_chat, knowledge, lead):
        await knowledge.persist_memories(lead.id, [ExtractedMemory(type="fact", content="Works in Oslo")])
        llm = FakeLLM(structured={"UserIntent": CHAT})
        chat = make_chat(llm)

        await chat.handle_user_message(lead.id, "Morning")
        await chat.drain()

        prompt = llm.plain_calls[0]["system_prompt"]
        assert "<memories>" in prompt
        assert "- Works in Oslo" in prompt

    async def test_extraction_failure_does_not_affect_reply(self, make_chat, knowledge, lead):
        llm = FakeLLM(["Hi!"], structured={"UserIntent": CHAT, "MemoryExtractionResult": LLMError("boom")})
        chat = make_chat(llm)

        reply = await chat.handle_user_message(lead.id, "Hello")
        await chat.drain()

        assert reply.text == "Hi!"
        assert await knowledge.list_memories(lead.id) == []


async def test_unknown_agent(make_chat):
    with pytest.raises(AgentNotFound):
        await make_chat(FakeLLM()).handle_user_message(uuid4(), "Hello")
