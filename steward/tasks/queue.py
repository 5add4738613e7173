"""Task queue manager -- enqueue, atomic claim, and terminal transitions."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from steward.agents.owners import OwnerRef
from steward.errors import TaskNotFound, TaskStateError
from steward.events import TASK_QUEUED, EventBus
from steward.storage.database import Database
from steward.storage.models import AgentTask, TaskSource, TaskStatus

logger = logging.getLogger(__name__)

# Claim retries when another worker wins the compare-and-swap
_MAX_CLAIM_ATTEMPTS = 5


@dataclass(frozen=True)
class QueueStatus:
    pending_count: int
    in_progress_count: int

    @property
    def has_pending_work(self) -> bool:
        return self.pending_count > 0 or self.in_progress_count > 0


class TaskQueue:
    """Manages the per-agent task queue in agent_tasks.

    Tasks are claimed FIFO by creation time. A claim locks the row
    (FOR UPDATE SKIP LOCKED on postgres) and flips the status with a
    compare-and-swap, so two workers can never hold the same task.
    """

    def __init__(self, database: Database, bus: EventBus | None = None) -> None:
        self._db = database
        self._bus = bus

    async def enqueue(
        self,
        owner: OwnerRef,
        assigned_to: UUID,
        assigned_by: UUID | None,
        text: str,
        source: TaskSource,
        session: AsyncSession | None = None,
    ) -> AgentTask:
        """Create a new pending task."""
        task = AgentTask(
            **owner.columns,
            assigned_to_id=assigned_to,
            assigned_by_id=assigned_by,
            task=text,
            source=TaskSource(source),
            status=TaskStatus.PENDING,
        )
        if session is not None:
            session.add(task)
            await session.flush()
        else:
            async with self._db.session() as own:
                own.add(task)
                await own.commit()
                await own.refresh(task)

        logger.info(
            "Queued %s task %s for agent %s: %s",
            task.source,
            task.id.hex[:8],
            assigned_to.hex[:8],
            text[:80],
        )
        await self._emit(TASK_QUEUED, task)
        return task

    async def enqueue_user_task(self, agent_id: UUID, owner: OwnerRef, text: str) -> AgentTask:
        """Work the user asked for in foreground chat."""
        return await self.enqueue(owner, agent_id, None, text, TaskSource.USER)

    async def enqueue_system_task(self, agent_id: UUID, owner: OwnerRef, text: str) -> AgentTask:
        """Bootstrap or maintenance work queued by the system."""
        return await self.enqueue(owner, agent_id, None, text, TaskSource.SYSTEM)

    async def enqueue_self_task(self, agent_id: UUID, owner: OwnerRef, text: str) -> AgentTask:
        """Work an agent schedules for itself."""
        return await self.enqueue(owner, agent_id, agent_id, text, TaskSource.SELF)

    async def enqueue_delegation(
        self,
        lead_id: UUID,
        subordinate_id: UUID,
        owner: OwnerRef,
        text: str,
    ) -> AgentTask:
        """Work a lead hands to one of its subordinates."""
        return await self.enqueue(owner, subordinate_id, lead_id, text, TaskSource.DELEGATION)

    async def claim_next(self, agent_id: UUID) -> AgentTask | None:
        """Atomically claim the oldest pending task for an agent."""
        for _ in range(_MAX_CLAIM_ATTEMPTS):
            async with self._db.session() as session:
                result = await session.execute(
                    select(AgentTask.id)
                    .where(AgentTask.assigned_to_id == agent_id)
                    .where(AgentTask.status == TaskStatus.PENDING)
                    .order_by(AgentTask.created_at, AgentTask.id)
                    .limit(1)
                    .with_for_update(skip_locked=True)
                )
                task_id = result.scalar_one_or_none()
                if task_id is None:
                    return None

                swapped = await session.execute(
                    update(AgentTask)
                    .where(AgentTask.id == task_id)
                    .where(AgentTask.status == TaskStatus.PENDING)
                    .values(status=TaskStatus.IN_PROGRESS, started_at=datetime.now(UTC))
                )
                await session.commit()
                if swapped.rowcount != 1:
                    logger.debug("Lost claim race for task %s, retrying", task_id.hex[:8])
                    continue

                task = await session.get(AgentTask, task_id, populate_existing=True)
                logger.info("Claimed task %s for agent %s", task_id.hex[:8], agent_id.hex[:8])
                return task
        return None

    async def complete(
        self,
        task_id: UUID,
        result: str,
        session: AsyncSession | None = None,
    ) -> None:
        """Mark an in-progress task completed with its result.

        Pass a session to write the completion inside the caller's
        transaction; the caller then owns the commit.
        """
        if session is not None:
            await self._finish(session, task_id, TaskStatus.COMPLETED, result)
        else:
            async with self._db.session() as own:
                await self._finish(own, task_id, TaskStatus.COMPLETED, result)
                await own.commit()
        logger.info("Completed task %s", task_id.hex[:8])

    async def fail(self, task_id: UUID, error: str) -> None:
        """Mark an in-progress task as failed; the error text is stored as its result."""
        async with self._db.session() as session:
            await self._finish(session, task_id, TaskStatus.FAILED, error)
            await session.commit()
        logger.warning("Failed task %s: %s", task_id.hex[:8], error[:200])

    async def _finish(self, session: AsyncSession, task_id: UUID, status: TaskStatus, result: str) -> None:
        # Only in_progress -> terminal; a terminal task is never rewritten
        outcome = await session.execute(
            update(AgentTask)
            .where(AgentTask.id == task_id)
            .where(AgentTask.status == TaskStatus.IN_PROGRESS)
            .values(status=status, result=result, completed_at=datetime.now(UTC))
        )
        if outcome.rowcount == 1:
            return
        current = await session.scalar(select(AgentTask.status).where(AgentTask.id == task_id))
        if current is None:
            raise TaskNotFound(f"Task not found: {task_id}")
        raise TaskStateError(f"Task {task_id} is {current}, not in_progress")

    async def get(self, task_id: UUID) -> AgentTask | None:
        """Get a task by ID."""
        async with self._db.session() as session:
            return await session.get(AgentTask, task_id)

    async def list_for_agent(
        self,
        agent_id: UUID,
        status: TaskStatus | None = None,
        limit: int = 20,
    ) -> list[AgentTask]:
        """Newest tasks for an agent, optionally filtered by status."""
        async with self._db.session() as session:
            q = (
                select(AgentTask)
                .where(AgentTask.assigned_to_id == agent_id)
                .order_by(AgentTask.created_at.desc())
                .limit(limit)
            )
            if status:
                q = q.where(AgentTask.status == status)
            result = await session.execute(q)
            return list(result.scalars().all())

    async def pending_for_agent(self, agent_id: UUID) -> list[AgentTask]:
        """Pending and in-progress tasks in claim order."""
        async with self._db.session() as session:
            result = await session.execute(
                select(AgentTask)
                .where(AgentTask.assigned_to_id == agent_id)
                .where(AgentTask.status.in_([TaskStatus.PENDING, TaskStatus.IN_PROGRESS]))
                .order_by(AgentTask.created_at, AgentTask.id)
            )
            return list(result.scalars().all())

    async def queue_status(self, agent_id: UUID) -> QueueStatus:
        """Counts of pending and in-progress work for an agent."""
        async with self._db.session() as session:
            result = await session.execute(
                select(AgentTask.status, func.count())
                .where(AgentTask.assigned_to_id == agent_id)
                .where(AgentTask.status.in_([TaskStatus.PENDING, TaskStatus.IN_PROGRESS]))
                .group_by(AgentTask.status)
            )
            counts = dict(result.all())
        return QueueStatus(
            pending_count=counts.get(TaskStatus.PENDING, 0),
            in_progress_count=counts.get(TaskStatus.IN_PROGRESS, 0),
        )

    # ------------------------------------------------------------------
    # Event emission
    # ------------------------------------------------------------------

    async def _emit(self, event_type: str, task: AgentTask) -> None:
        if self._bus is None:
            return
        await self._bus.publish(
            event_type,
            task.assigned_to_id,
            task_id=task.id.hex,
            source=str(task.source),
            task=task.task[:200],
        )
