"""Per-agent retry backoff and autonomous run scheduling.

A failed background task pushes the agent's next eligible run out by an
exponentially growing delay with jitter. Any later success clears it.
Leads are also rescheduled for their next autonomous run here.
"""

import logging
import random
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from steward.config import Settings
from steward.errors import AgentNotFound
from steward.storage.database import Database
from steward.storage.models import Agent, AgentStatus, AgentTask, TaskStatus

logger = logging.getLogger(__name__)


def compute_backoff_delay(
    attempt: int,
    base: float = 60.0,
    maximum: float = 24 * 60 * 60.0,
    jitter_ratio: float = 0.2,
    rng: Callable[[], float] = random.random,
) -> float:
    """Seconds to wait before retrying after the given failed attempt (1-based).

    min(maximum, base * 2^(attempt-1)) + rng() * base * jitter_ratio, so the
    result never exceeds maximum + base * jitter_ratio.
    """
    exponent = max(0, attempt - 1)
    # Cap the exponent so huge attempt counts cannot overflow the float
    exponential = base * (2 ** min(exponent, 64))
    jitter = rng() * base * jitter_ratio
    return min(maximum, exponential) + jitter


def _ready(now: datetime):
    return and_(
        Agent.status != AgentStatus.PAUSED,
        or_(Agent.backoff_next_run_at.is_(None), Agent.backoff_next_run_at <= now),
    )


class BackoffScheduler:
    """Manages agent-level scheduling fields on the agents table."""

    def __init__(
        self,
        database: Database,
        settings: Settings,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._db = database
        self._settings = settings
        self._rng = rng

    def delay_for(self, attempt: int) -> float:
        return compute_backoff_delay(
            attempt,
            base=self._settings.backoff_base_seconds,
            maximum=self._settings.backoff_max_seconds,
            jitter_ratio=self._settings.backoff_jitter_ratio,
            rng=self._rng,
        )

    async def schedule_backoff(self, agent_id: UUID) -> datetime:
        """Record one more failed attempt and return the next eligible run time."""
        async with self._db.session() as session:
            agent = await session.get(Agent, agent_id)
            if agent is None:
                raise AgentNotFound(f"Agent not found: {agent_id}")

            attempt = (agent.backoff_attempt_count or 0) + 1
            delay = self.delay_for(attempt)
            next_run = datetime.now(UTC) + timedelta(seconds=delay)
            agent.backoff_attempt_count = attempt
            agent.backoff_next_run_at = next_run
            await session.commit()

        logger.warning(
            "Agent %s backing off %.0fs until %s (attempt %d)",
            agent_id.hex[:8],
            delay,
            next_run.isoformat(),
            attempt,
        )
        return next_run

    async def clear_backoff(self, agent_id: UUID, session: AsyncSession | None = None) -> None:
        """Reset the attempt counter after a successful task."""
        stmt = (
            update(Agent)
            .where(Agent.id == agent_id)
            .values(backoff_attempt_count=0, backoff_next_run_at=None)
        )
        if session is not None:
            await session.execute(stmt)
            return
        async with self._db.session() as own:
            await own.execute(stmt)
            await own.commit()

    async def schedule_next_run(self, agent_id: UUID, hours: float | None = None) -> datetime:
        """Set a lead's next autonomous run and stamp its last completion."""
        now = datetime.now(UTC)
        next_run = now + timedelta(hours=hours if hours is not None else self._settings.lead_run_interval_hours)
        async with self._db.session() as session:
            await session.execute(
                update(Agent)
                .where(Agent.id == agent_id)
                .values(lead_next_run_at=next_run, last_completed_at=now)
            )
            await session.commit()
        logger.info("Agent %s next autonomous run at %s", agent_id.hex[:8], next_run.isoformat())
        return next_run

    # ------------------------------------------------------------------
    # Poll queries
    # ------------------------------------------------------------------

    async def agents_with_pending_tasks(self, now: datetime | None = None) -> list[UUID]:
        """Agents holding pending tasks that are not in backoff."""
        now = now or datetime.now(UTC)
        async with self._db.session() as session:
            result = await session.execute(
                select(AgentTask.assigned_to_id)
                .join(Agent, Agent.id == AgentTask.assigned_to_id)
                .where(AgentTask.status == TaskStatus.PENDING)
                .where(_ready(now))
                .distinct()
            )
            return list(result.scalars().all())

    async def leads_due_to_run(self, now: datetime | None = None) -> list[UUID]:
        """Leads whose autonomous run time has passed and that are not in backoff."""
        now = now or datetime.now(UTC)
        async with self._db.session() as session:
            result = await session.execute(
                select(Agent.id)
                .where(Agent.parent_agent_id.is_(None))
                .where(Agent.lead_next_run_at.is_not(None))
                .where(Agent.lead_next_run_at <= now)
                .where(_ready(now))
            )
            return list(result.scalars().all())

    async def ready_agents(self, agent_ids: list[UUID], now: datetime | None = None) -> list[UUID]:
        """The subset of agent_ids that is neither paused nor in backoff, in input order."""
        if not agent_ids:
            return []
        now = now or datetime.now(UTC)
        async with self._db.session() as session:
            result = await session.execute(select(Agent.id).where(Agent.id.in_(agent_ids)).where(_ready(now)))
            ready = set(result.scalars().all())
        return [agent_id for agent_id in agent_ids if agent_id in ready]
