"""Test fixtures using a throwaway SQLite database per test."""

from __future__ import annotations

from typing import Any

import pytest
import pytest_asyncio

from steward.agents.briefing import BriefingDecider, BriefingService
from steward.agents.delegation import Delegation
from steward.agents.manager import AgentManager
from steward.agents.session import WorkSessionController
from steward.config import Settings
from steward.conversations.compaction import ConversationSummarizer
from steward.conversations.manager import ConversationManager
from steward.events import EventBus
from steward.graph.initializer import GraphTypeInitializer
from steward.graph.store import GraphStore
from steward.graph.types import GraphTypeManager
from steward.knowledge.extraction import KnowledgeExtractor
from steward.knowledge.items import KnowledgeManager
from steward.llm.models import STRUCTURED_TOOL_NAME, ApiResponse, LanguageModel
from steward.storage.database import Database
from steward.tasks.backoff import BackoffScheduler
from steward.tasks.queue import TaskQueue
from steward.tools.graph_tools import register_graph_tools
from steward.tools.knowledge_tools import register_knowledge_tools
from steward.tools.lead_tools import register_lead_tools
from steward.tools.loop import ToolLoop
from steward.tools.registry import ToolRegistry
from steward.tools.subordinate_tools import register_subordinate_tools

# ---------------------------------------------------------------------------
# Fake language model
# ---------------------------------------------------------------------------


def text_response(text: str) -> ApiResponse:
    return ApiResponse(content=[{"type": "text", "text": text}], stop_reason="end_turn")


def tool_use_response(name: str, tool_input: dict, tool_id: str = "toolu_1", text: str = "") -> ApiResponse:
    content: list[dict[str, Any]] = []
    if text:
        content.append({"type": "text", "text": text})
    content.append({"type": "tool_use", "id": tool_id, "name": name, "input": tool_input})
    return ApiResponse(content=content, stop_reason="tool_use")


class FakeLLM(LanguageModel):
    """Scripted model.

    Plain calls pop ``responses`` in order (str, ApiResponse or an
    exception to raise) and fall back to "Done." once it runs out.
    Structured calls look up ``structured`` by schema title: a dict is
    returned every time, a list is popped, an exception is raised, and a
    missing title yields an empty object.
    """

    def __init__(self, responses: list | None = None, structured: dict[str, Any] | None = None) -> None:
        self.responses = list(responses or [])
        self.structured = dict(structured or {})
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        system_prompt,
        messages,
        tools=None,
        *,
        max_tokens=None,
        temperature=None,
        tool_choice=None,
        model=None,
    ) -> ApiResponse:
        self.calls.append({
            "system_prompt": system_prompt,
            "messages": [dict(m) for m in messages],
            "tools": tools,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "tool_choice": tool_choice,
            "model": model,
        })

        if tool_choice and tool_choice.get("name") == STRUCTURED_TOOL_NAME:
            title = tools[0]["input_schema"].get("title")
            value = self.structured.get(title, {})
            if isinstance(value, list):
                value = value.pop(0) if value else {}
            if isinstance(value, Exception):
                raise value
            return tool_use_response(STRUCTURED_TOOL_NAME, value)

        if not self.responses:
            return text_response("Done.")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return text_response(item)
        return item

    def structured_calls(self, title: str) -> list[dict[str, Any]]:
        return [
            c for c in self.calls
            if c["tool_choice"] and c["tools"][0]["input_schema"].get("title") == title
        ]

    @property
    def plain_calls(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if not c["tool_choice"]]


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'steward.db'}",
        worker_enabled=False,
        poll_interval=0.05,
    )


@pytest_asyncio.fixture
async def db(settings):
    """Fresh schema per test."""
    database = Database(settings)
    await database.connect()
    await database.create_schema()
    yield database
    await database.disconnect()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


# ---------------------------------------------------------------------------
# Managers
# ---------------------------------------------------------------------------


@pytest.fixture
def agents(db) -> AgentManager:
    return AgentManager(db)


@pytest.fixture
def queue(db, bus) -> TaskQueue:
    return TaskQueue(db, bus)


@pytest.fixture
def backoff(db, settings) -> BackoffScheduler:
    return BackoffScheduler(db, settings, rng=lambda: 0.0)


@pytest.fixture
def conversations(db, bus) -> ConversationManager:
    return ConversationManager(db, bus)


@pytest.fixture
def knowledge(db) -> KnowledgeManager:
    return KnowledgeManager(db)


@pytest.fixture
def graph_types(db) -> GraphTypeManager:
    return GraphTypeManager(db)


@pytest.fixture
def graph(db, graph_types) -> GraphStore:
    return GraphStore(db, graph_types)


# ---------------------------------------------------------------------------
# Owners and agents
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def team(agents):
    return await agents.create_team("Market Watch", purpose="Track semiconductor news")


@pytest_asyncio.fixture
async def lead(agents, team):
    return await agents.create_agent(team, "Ada", role="research lead")


@pytest_asyncio.fixture
async def subordinate(agents, team, lead):
    return await agents.create_agent(team, "Ben", role="analyst", parent_agent_id=lead.id)


# ---------------------------------------------------------------------------
# Engine assembly
# ---------------------------------------------------------------------------


@pytest.fixture
def briefings(db, conversations, bus) -> BriefingService:
    return BriefingService(db, conversations, bus)


@pytest.fixture
def make_registry(agents, queue, conversations, knowledge, graph, briefings):
    """Registry with every tool except the web research pair."""

    def make() -> ToolRegistry:
        registry = ToolRegistry()
        register_lead_tools(registry, agents, Delegation(agents, queue), queue, briefings)
        register_subordinate_tools(registry, agents, conversations)
        register_knowledge_tools(registry, knowledge)
        register_graph_tools(registry, graph)
        return registry

    return make


@pytest.fixture
def make_controller(
    settings, agents, queue, backoff, conversations, knowledge, graph, graph_types, briefings, bus, make_registry
):
    """Build a WorkSessionController around a given fake model."""

    def make(llm: FakeLLM, settings_override: Settings | None = None, initializer: bool = True):
        s = settings_override or settings
        return WorkSessionController(
            s,
            agents,
            queue,
            backoff,
            conversations,
            knowledge,
            graph,
            ToolLoop(llm, make_registry()),
            extractor=KnowledgeExtractor(llm, model=s.background_model),
            summarizer=ConversationSummarizer(llm, model=s.background_model),
            briefing_decider=BriefingDecider(
                llm,
                conversations,
                briefings,
                transcript_chars=s.briefing_transcript_chars,
                model=s.background_model,
            ),
            graph_initializer=GraphTypeInitializer(llm, graph_types, model=s.background_model) if initializer else None,
            bus=bus,
        )

    return make
