"""REST API for steward.

Endpoints:
  POST /agents/{id}/messages - Chat with an agent in the foreground
  POST /agents/{id}/tasks    - Queue background work for an agent
  GET  /agents/{id}/queue    - Pending and in-progress tasks
  POST /agents/{id}/work     - Run a work session now
  GET  /agents/{id}/graph    - Query the agent owner's knowledge graph
  GET  /health               - Health check (DB connectivity)
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import text
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from steward.agents.foreground import ForegroundChat
from steward.agents.manager import AgentManager
from steward.agents.owners import owner_of
from steward.agents.session import WorkSessionController
from steward.errors import AgentNotFound
from steward.graph.store import GraphStore
from steward.storage.database import Database
from steward.storage.models import AgentTask, TaskSource
from steward.tasks.queue import TaskQueue

logger = logging.getLogger(__name__)

# Sources a client may queue directly; delegation only comes from a lead
_CLIENT_SOURCES = {TaskSource.USER, TaskSource.SYSTEM}


def _task_json(task: AgentTask) -> dict[str, Any]:
    return {
        "id": str(task.id),
        "task": task.task,
        "status": str(task.status),
        "source": str(task.source),
        "assigned_by": str(task.assigned_by_id) if task.assigned_by_id else None,
        "created_at": task.created_at.isoformat() if task.created_at else None,
        "started_at": task.started_at.isoformat() if task.started_at else None,
    }


def _agent_id(request: Request) -> UUID | None:
    try:
        return UUID(request.path_params["id"])
    except ValueError:
        return None


def create_app(
    chat: ForegroundChat,
    controller: WorkSessionController,
    agents: AgentManager,
    queue: TaskQueue,
    graph: GraphStore,
    database: Database,
    lifespan: Any | None = None,
) -> Starlette:
    """Create the Starlette ASGI app with all routes."""

    async def post_message(request: Request) -> JSONResponse:
        """POST /agents/{id}/messages - Send a message, get the reply."""
        agent_id = _agent_id(request)
        if agent_id is None:
            return JSONResponse({"error": "Invalid agent ID"}, status_code=400)
        try:
            body = await request.json()
        except Exception:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        content = body.get("content")
        if not isinstance(content, str) or not content.strip():
            return JSONResponse({"error": "Missing required field: content"}, status_code=400)

        try:
            reply = await chat.handle_user_message(agent_id, content)
        except AgentNotFound:
            return JSONResponse({"error": "Agent not found"}, status_code=404)
        except Exception as e:
            logger.error("Chat error for agent %s: %s", agent_id.hex[:8], e)
            return JSONResponse({"error": str(e)}, status_code=500)

        return JSONResponse({
            "response": reply.text,
            "intent": reply.intent,
            "task_id": str(reply.task_id) if reply.task_id else None,
        })

    async def post_task(request: Request) -> JSONResponse:
        """POST /agents/{id}/tasks - Queue a task."""
        agent_id = _agent_id(request)
        if agent_id is None:
            return JSONResponse({"error": "Invalid agent ID"}, status_code=400)
        try:
            body = await request.json()
        except Exception:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        task_text = body.get("task")
        if not isinstance(task_text, str) or not task_text.strip():
            return JSONResponse({"error": "Missing required field: task"}, status_code=400)
        source = body.get("source", TaskSource.USER)
        if source not in _CLIENT_SOURCES:
            return JSONResponse({"error": "source must be 'user' or 'system'"}, status_code=400)

        agent = await agents.get(agent_id)
        if agent is None:
            return JSONResponse({"error": "Agent not found"}, status_code=404)

        task = await queue.enqueue(owner_of(agent), agent_id, None, task_text, TaskSource(source))
        return JSONResponse(_task_json(task), status_code=201)

    async def get_queue(request: Request) -> JSONResponse:
        """GET /agents/{id}/queue - Queue counts and open tasks."""
        agent_id = _agent_id(request)
        if agent_id is None:
            return JSONResponse({"error": "Invalid agent ID"}, status_code=400)
        if await agents.get(agent_id) is None:
            return JSONResponse({"error": "Agent not found"}, status_code=404)

        status = await queue.queue_status(agent_id)
        tasks = await queue.pending_for_agent(agent_id)
        return JSONResponse({
            "pending_count": status.pending_count,
            "in_progress_count": status.in_progress_count,
            "has_pending_work": status.has_pending_work,
            "tasks": [_task_json(t) for t in tasks],
        })

    async def run_work(request: Request) -> JSONResponse:
        """POST /agents/{id}/work - Run a work session and return its report."""
        agent_id = _agent_id(request)
        if agent_id is None:
            return JSONResponse({"error": "Invalid agent ID"}, status_code=400)
        if await agents.get(agent_id) is None:
            return JSONResponse({"error": "Agent not found"}, status_code=404)

        try:
            report = await controller.run(agent_id)
        except Exception as e:
            logger.error("Work session error for agent %s: %s", agent_id.hex[:8], e)
            return JSONResponse({"error": str(e)}, status_code=500)

        return JSONResponse({
            "processed": report.processed,
            "failed": report.failed,
            "extracted": report.extracted,
            "briefed": report.briefed,
        })

    async def get_graph(request: Request) -> JSONResponse:
        """GET /agents/{id}/graph?type=&q=&limit= - Query the owner's graph."""
        agent_id = _agent_id(request)
        if agent_id is None:
            return JSONResponse({"error": "Invalid agent ID"}, status_code=400)
        agent = await agents.get(agent_id)
        if agent is None:
            return JSONResponse({"error": "Agent not found"}, status_code=404)

        try:
            limit = int(request.query_params.get("limit", "20"))
        except ValueError:
            return JSONResponse({"error": "limit must be an integer"}, status_code=400)

        result = await graph.query(
            owner_of(agent).id,
            node_type=request.query_params.get("type"),
            search_term=request.query_params.get("q"),
            limit=limit,
        )
        return JSONResponse(result.model_dump(mode="json"))

    async def health(request: Request) -> JSONResponse:
        """GET /health - Health check."""
        try:
            async with database.session() as session:
                await session.execute(text("SELECT 1"))
            return JSONResponse({"status": "healthy"})
        except Exception as e:
            return JSONResponse({"status": "unhealthy", "error": str(e)}, status_code=503)

    routes = [
        Route("/agents/{id}/messages", post_message, methods=["POST"]),
        Route("/agents/{id}/tasks", post_task, methods=["POST"]),
        Route("/agents/{id}/queue", get_queue),
        Route("/agents/{id}/work", run_work, methods=["POST"]),
        Route("/agents/{id}/graph", get_graph),
        Route("/health", health),
    ]

    kwargs: dict[str, Any] = {"routes": routes}
    if lifespan is not None:
        kwargs["lifespan"] = lifespan
    return Starlette(**kwargs)
