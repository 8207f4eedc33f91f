# leadengine/adapters/repos/agents.py
from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ...domain.performance import CompletedAssignment, summarize_performance
from ...domain.types import AgentProfile, AssignmentStatus
from ...models import Agent, AgentStatus, Assignment


class AgentRepository:
    """
    Agents with load and performance pre-joined. current_load is always counted
    from ACTIVE assignment rows, never stored.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, agent_id: str) -> Agent | None:
        return await self.session.get(Agent, agent_id)

    async def find_active(self, exclude_ids: Iterable[str] | None = None) -> list[AgentProfile]:
        return await self.list_profiles(active_only=True, exclude_ids=exclude_ids)

    async def list_profiles(
        self,
        *,
        agent_ids: Iterable[str] | None = None,
        active_only: bool = False,
        exclude_ids: Iterable[str] | None = None,
    ) -> list[AgentProfile]:
        q = select(Agent)
        if active_only:
            q = q.where(Agent.status == AgentStatus.ACTIVE)
        if agent_ids is not None:
            q = q.where(Agent.id.in_(list(agent_ids)))
        excluded = list(exclude_ids or [])
        if excluded:
            q = q.where(Agent.id.not_in(excluded))
        agents = list((await self.session.execute(q.order_by(Agent.id.asc()))).scalars().all())
        if not agents:
            return []

        ids = [a.id for a in agents]
        totals = await self._count_by_agent(ids)
        active = await self._count_by_agent(ids, status=AssignmentStatus.ACTIVE)
        completed = await self._completed_by_agent(ids)

        out: list[AgentProfile] = []
        for a in agents:
            perf = summarize_performance(
                total_assignments=totals.get(a.id, 0),
                active_count=active.get(a.id, 0),
                completed=completed.get(a.id, []),
            )
            out.append(
                AgentProfile(
                    id=a.id,
                    name=a.name,
                    email=a.email,
                    territory=a.territory,
                    capacity_limit=a.capacity_limit,
                    current_load=perf.current_load,
                    total_assignments=perf.total_assignments,
                    completed_deals=perf.completed_deals,
                    success_rate=perf.success_rate,
                    average_close_time_days=perf.average_close_time_days,
                    last_assignment_at=a.last_assignment_at,
                )
            )
        return out

    async def _count_by_agent(self, ids: list[str], status: AssignmentStatus | None = None) -> dict[str, int]:
        q = (
            select(Assignment.agent_id, func.count())
            .where(Assignment.agent_id.in_(ids))
            .group_by(Assignment.agent_id)
        )
        if status is not None:
            q = q.where(Assignment.status == status.value)
        return {agent_id: int(n) for agent_id, n in (await self.session.execute(q)).all()}

    async def _completed_by_agent(self, ids: list[str]) -> dict[str, list[CompletedAssignment]]:
        q = (
            select(Assignment.agent_id, Assignment.assigned_at, Assignment.closed_at)
            .where(Assignment.agent_id.in_(ids))
            .where(Assignment.status == AssignmentStatus.COMPLETED.value)
            .order_by(Assignment.assigned_at.desc())
        )
        out: dict[str, list[CompletedAssignment]] = defaultdict(list)
        for agent_id, assigned_at, closed_at in (await self.session.execute(q)).all():
            out[agent_id].append(CompletedAssignment(assigned_at=assigned_at, closed_at=closed_at))
        return out

    async def touch_last_assignment(self, agent_id: str, at: datetime) -> None:
        agent = await self.get(agent_id)
        if agent is None:
            return
        if agent.last_assignment_at is None or at > agent.last_assignment_at:
            agent.last_assignment_at = at
        await self.session.flush()
