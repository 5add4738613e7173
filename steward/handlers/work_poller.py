"""Work Poller -- starts background work sessions.

Two triggers feed it:
1. Event-driven: a task_queued event wakes the loop right away; the
   notified agent still waits out any backoff
2. Timer-based: every poll_interval seconds it looks for agents with
   pending tasks and for leads whose autonomous run is due

A due lead with an empty queue gets a self-assigned check-in task, so
every session has at least one task to work on. Sessions for different
agents run concurrently; an agent whose session is still running is
skipped until it finishes.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from uuid import UUID

from steward.agents.manager import AgentManager
from steward.agents.owners import owner_of
from steward.agents.prompts import LEAD_CHECK_IN_TASK
from steward.agents.session import WorkSessionController, WorkSessionReport
from steward.config import Settings
from steward.events import TASK_QUEUED, Event, EventBus
from steward.tasks.backoff import BackoffScheduler
from steward.tasks.queue import TaskQueue

logger = logging.getLogger(__name__)


class WorkPoller:
    """Background loop that turns queued work into work sessions."""

    def __init__(
        self,
        controller: WorkSessionController,
        agents: AgentManager,
        queue: TaskQueue,
        backoff: BackoffScheduler,
        settings: Settings,
        bus: EventBus | None = None,
    ) -> None:
        self._controller = controller
        self._agents = agents
        self._queue = queue
        self._backoff = backoff
        self._settings = settings
        self._task: asyncio.Task | None = None
        self._running = False
        self._wake = asyncio.Event()
        self._notified: set[UUID] = set()
        self._active: dict[UUID, asyncio.Task] = {}
        if bus is not None:
            bus.on(TASK_QUEUED, self.handle_task_queued)

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._poll_loop(), name="work-poller")
        logger.info("Work poller started (poll_interval=%.0fs)", self._settings.poll_interval)

    async def stop(self) -> None:
        """Stop polling and wait for running sessions to finish."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._active:
            await asyncio.gather(*self._active.values(), return_exceptions=True)
        logger.info("Work poller stopped")

    async def handle_task_queued(self, event: Event) -> None:
        try:
            self._notified.add(UUID(event.agent_id))
        except ValueError:
            logger.warning("task_queued event with invalid agent id: %r", event.agent_id)
            return
        self._wake.set()

    # ------------------------------------------------------------------
    # Poll loop
    # ------------------------------------------------------------------

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await self.run_once(wait=False)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Work poll failed")

            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._settings.poll_interval)
            except asyncio.TimeoutError:
                pass
            except asyncio.CancelledError:
                break
            self._wake.clear()

    async def run_once(self, wait: bool = True) -> dict[UUID, WorkSessionReport]:
        """One poll cycle. Returns the reports of sessions started here when wait is set."""
        agent_ids = await self.agents_needing_work()
        started: dict[UUID, asyncio.Task] = {}
        for agent_id in agent_ids:
            if agent_id in self._active:
                logger.debug("Agent %s already in a work session, skipping", agent_id.hex[:8])
                continue
            task = asyncio.create_task(self._run_session(agent_id), name=f"work-session-{agent_id.hex[:8]}")
            self._active[agent_id] = task
            task.add_done_callback(lambda _t, a=agent_id: self._active.pop(a, None))
            started[agent_id] = task

        if started:
            logger.info("Started %d work session(s)", len(started))
        if not wait:
            return {}

        results = await asyncio.gather(*started.values())
        return dict(zip(started.keys(), results))

    async def agents_needing_work(self) -> list[UUID]:
        """Agents with pending tasks, due leads and notified agents, deduplicated in that order."""
        now = datetime.now(UTC)
        with_tasks = await self._backoff.agents_with_pending_tasks(now)
        leads_due = await self._backoff.leads_due_to_run(now)
        notified = list(self._notified)
        self._notified.clear()
        # A notification never overrides backoff or a pause
        notified = await self._backoff.ready_agents(notified, now)

        pending = set(with_tasks)
        for lead_id in leads_due:
            if lead_id not in pending and lead_id not in self._active:
                await self._queue_check_in(lead_id)

        ordered: dict[UUID, None] = {}
        for agent_id in [*with_tasks, *leads_due, *notified]:
            ordered.setdefault(agent_id)
        return list(ordered)

    async def _queue_check_in(self, lead_id: UUID) -> None:
        status = await self._queue.queue_status(lead_id)
        if status.has_pending_work:
            return
        lead = await self._agents.get(lead_id)
        if lead is None:
            return
        await self._queue.enqueue_self_task(lead_id, owner_of(lead), LEAD_CHECK_IN_TASK)
        logger.info("Queued scheduled check-in for lead %s", lead_id.hex[:8])

    async def _run_session(self, agent_id: UUID) -> WorkSessionReport:
        try:
            return await self._controller.run(agent_id)
        except Exception:
            logger.exception("Work session failed for agent %s", agent_id.hex[:8])
            return WorkSessionReport()
