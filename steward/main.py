"""Steward entry point.

Initializes all components and starts the server:
  Settings -> Database -> EventBus -> LLM -> managers -> tools
  -> WorkSessionController / ForegroundChat -> WorkPoller -> App -> Uvicorn

Uses Starlette lifespan to manage component lifecycle on the same
event loop as uvicorn.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import uvicorn
from starlette.applications import Starlette

from steward.agents.briefing import BriefingDecider, BriefingService
from steward.agents.delegation import Delegation
from steward.agents.foreground import ForegroundChat
from steward.agents.manager import AgentManager
from steward.agents.session import WorkSessionController
from steward.config import Settings
from steward.conversations.compaction import ConversationSummarizer
from steward.conversations.manager import ConversationManager
from steward.events import EventBus
from steward.graph.initializer import GraphTypeInitializer
from steward.graph.store import GraphStore
from steward.graph.types import GraphTypeManager
from steward.handlers.work_poller import WorkPoller
from steward.knowledge.extraction import KnowledgeExtractor, MemoryExtractor
from steward.knowledge.items import KnowledgeManager
from steward.llm.client import AnthropicClient
from steward.storage.database import Database
from steward.tasks.backoff import BackoffScheduler
from steward.tasks.queue import TaskQueue
from steward.tools.graph_tools import register_graph_tools
from steward.tools.knowledge_tools import register_knowledge_tools
from steward.tools.lead_tools import register_lead_tools
from steward.tools.loop import ToolLoop
from steward.tools.registry import ToolRegistry
from steward.tools.subordinate_tools import register_subordinate_tools
from steward.tools.web_tools import register_web_tools

logger = logging.getLogger(__name__)


async def create_components(settings: Settings) -> dict:
    """Initialize all components in dependency order.

    Returns dict with all components for lifespan storage.
    """
    database = Database(settings)
    await database.connect()
    if settings.create_schema:
        await database.create_schema()

    bus = EventBus()

    llm = AnthropicClient(settings)
    await llm.start()

    agents = AgentManager(database)
    queue = TaskQueue(database, bus)
    backoff = BackoffScheduler(database, settings)
    conversations = ConversationManager(database, bus)
    knowledge = KnowledgeManager(database)
    graph_types = GraphTypeManager(database)
    graph = GraphStore(database, graph_types)
    briefings = BriefingService(database, conversations, bus)
    delegation = Delegation(agents, queue)

    # Web tools httpx client (separate from the model client, no API auth headers)
    web_http = httpx.AsyncClient(
        timeout=httpx.Timeout(connect=10, read=30, write=10, pool=10),
        limits=httpx.Limits(max_connections=5, max_keepalive_connections=2),
    )

    registry = ToolRegistry()
    register_lead_tools(registry, agents, delegation, queue, briefings)
    register_subordinate_tools(registry, agents, conversations)
    register_knowledge_tools(registry, knowledge)
    register_graph_tools(registry, graph)
    register_web_tools(registry, settings, web_http)
    logger.info("Registered %d tools", len(registry))

    tool_loop = ToolLoop(llm, registry)
    controller = WorkSessionController(
        settings,
        agents,
        queue,
        backoff,
        conversations,
        knowledge,
        graph,
        tool_loop,
        extractor=KnowledgeExtractor(llm, model=settings.background_model),
        summarizer=ConversationSummarizer(llm, model=settings.background_model),
        briefing_decider=BriefingDecider(
            llm,
            conversations,
            briefings,
            transcript_chars=settings.briefing_transcript_chars,
            model=settings.background_model,
        ),
        graph_initializer=GraphTypeInitializer(llm, graph_types, model=settings.background_model),
        bus=bus,
    )
    chat = ForegroundChat(
        settings,
        llm,
        agents,
        conversations,
        knowledge,
        queue,
        tool_loop,
        MemoryExtractor(llm, model=settings.model),
    )

    poller = None
    if settings.worker_enabled:
        poller = WorkPoller(controller, agents, queue, backoff, settings, bus)

    await bus.start()
    if poller:
        await poller.start()

    return {
        "database": database,
        "bus": bus,
        "llm": llm,
        "web_http": web_http,
        "agents": agents,
        "queue": queue,
        "graph": graph,
        "registry": registry,
        "controller": controller,
        "chat": chat,
        "poller": poller,
    }


async def shutdown_components(components: dict) -> None:
    """Graceful shutdown in reverse order."""
    logger.info("Shutting down steward...")

    poller = components.get("poller")
    if poller:
        await poller.stop()

    chat = components.get("chat")
    if chat:
        await chat.drain()

    bus = components.get("bus")
    if bus:
        await bus.stop()

    web_http = components.get("web_http")
    if web_http:
        await web_http.aclose()

    llm = components.get("llm")
    if llm:
        await llm.close()

    database = components.get("database")
    if database:
        await database.disconnect()

    logger.info("Steward shutdown complete.")


def build_app(settings: Settings) -> Starlette:
    """Build the Starlette app; components come alive in the lifespan."""
    components: dict = {}

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        components.update(await create_components(settings))
        app.state.components = components
        logger.info("Steward started (worker %s)", "enabled" if settings.worker_enabled else "disabled")
        yield
        await shutdown_components(components)

    from steward.api.rest import create_app

    return create_app(
        chat=_lazy_component(components, "chat"),
        controller=_lazy_component(components, "controller"),
        agents=_lazy_component(components, "agents"),
        queue=_lazy_component(components, "queue"),
        graph=_lazy_component(components, "graph"),
        database=_lazy_component(components, "database"),
        lifespan=lifespan,
    )


class _LazyProxy:
    """Forwards attribute access to a component created later in the lifespan."""

    def __init__(self, components: dict, key: str) -> None:
        object.__setattr__(self, "_components", components)
        object.__setattr__(self, "_key", key)

    def _resolve(self):
        components = object.__getattribute__(self, "_components")
        key = object.__getattribute__(self, "_key")
        obj = components.get(key)
        if obj is None:
            raise RuntimeError(f"Component '{key}' not yet initialized, lifespan hasn't started")
        return obj

    def __getattr__(self, name):
        return getattr(self._resolve(), name)


def _lazy_component(components: dict, key: str) -> _LazyProxy:
    return _LazyProxy(components, key)


def main() -> None:
    """Entry point: parse settings, build app, run server."""
    settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    logger.info("Model: %s (background: %s)", settings.model, settings.background_model)
    logger.info("Database: %s", settings.db_url.split("@")[-1])

    if not settings.anthropic_api_key and not settings.anthropic_auth_token:
        logger.warning("Neither ANTHROPIC_API_KEY nor ANTHROPIC_AUTH_TOKEN is set, model calls will fail")

    app = build_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
