import asyncio
from collections import Counter
from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from leadengine.domain.errors import NoAgentsAvailable, NoLeadsAvailable, ValidationError
from leadengine.domain.types import AssignmentPriority, AssignmentStatus, DistributionRule, PolicyType
from leadengine.models import Agent, Assignment
from leadengine.service_layer.capacity import agent_stats, close_assignment
from leadengine.service_layer.distribution import distribute

NOW = datetime(2026, 3, 10, 12, 0, 0)

RR = DistributionRule(type=PolicyType.round_robin)


async def _count_assignments(uow_factory) -> int:
    async with uow_factory() as uow:
        return (await uow.session.execute(select(func.count()).select_from(Assignment))).scalar_one()


@pytest.mark.asyncio
async def test_no_agents_raises_and_writes_nothing(uow_factory, add_leads):
    await add_leads({"l1": 50})
    async with uow_factory() as uow:
        with pytest.raises(NoAgentsAvailable):
            await distribute(uow, RR)
    assert await _count_assignments(uow_factory) == 0


@pytest.mark.asyncio
async def test_no_leads_raises(uow_factory, seeded_agents):
    async with uow_factory() as uow:
        with pytest.raises(NoLeadsAvailable):
            await distribute(uow, RR)


@pytest.mark.asyncio
async def test_invalid_rule_is_rejected_before_any_read(uow_factory):
    async with uow_factory() as uow:
        with pytest.raises(ValidationError):
            await distribute(uow, DistributionRule(type=PolicyType.round_robin, max_leads_per_agent=-1))


@pytest.mark.asyncio
async def test_round_robin_batch_persists_assignments(uow_factory, seeded_agents, add_leads):
    await add_leads({f"l{i}": 90 - i for i in range(6)})

    async with uow_factory() as uow:
        res = await distribute(uow, RR, priority=AssignmentPriority.HIGH, now=NOW)

    assert res.stats.total_leads == 6
    assert res.stats.assigned_leads == 6
    assert res.stats.failed_assignments == 0
    assert res.stats.policy_used == PolicyType.round_robin
    assert Counter(a.agent_id for a in res.assignments) == {"a1": 2, "a2": 2, "a3": 2}

    first = res.assignments[0]
    assert first.lead_id == "l0"  # highest score first
    assert first.status == AssignmentStatus.ACTIVE
    assert first.priority == AssignmentPriority.HIGH
    assert first.notes == first.reason
    assert first.metadata["lead_score"]["score"] == 90
    assert first.metadata["agent_stats"]["id"] == "a1"

    async with uow_factory() as uow:
        agents = {a.id: a for a in await agent_stats(uow)}
        a1 = await uow.agents.get("a1")
    assert agents["a1"].current_load == 2
    assert agents["a9"].current_load == 0
    assert a1.last_assignment_at == NOW

    # every lead now holds an ACTIVE assignment
    async with uow_factory() as uow:
        with pytest.raises(NoLeadsAvailable):
            await distribute(uow, RR)


@pytest.mark.asyncio
async def test_capacity_is_respected_across_batches(uow_factory, seeded_agents, add_leads):
    await add_leads({f"l{i}": 50 for i in range(5)})
    rule = DistributionRule(type=PolicyType.load_balanced, max_leads_per_agent=1)

    async with uow_factory() as uow:
        first = await distribute(uow, rule)
    # pool is capped at max_leads_per_agent * agents
    assert first.stats.total_leads == 3
    assert first.stats.assigned_leads == 3

    async with uow_factory() as uow:
        second = await distribute(uow, rule)
    assert second.stats.total_leads == 2
    assert second.stats.assigned_leads == 0
    assert second.stats.failed_assignments == 2
    assert sorted(second.stats.unplaced_lead_ids) == ["l3", "l4"]
    assert await _count_assignments(uow_factory) == 3


@pytest.mark.asyncio
async def test_agent_capacity_limit_applies(uow_factory, seeded_agents, add_leads, async_session_maker):
    async with async_session_maker() as session:
        agent = await session.get(Agent, "a1")
        agent.capacity_limit = 1
        await session.commit()
    await add_leads({f"l{i}": 50 for i in range(6)})

    async with uow_factory() as uow:
        res = await distribute(uow, RR)

    counts = Counter(a.agent_id for a in res.assignments)
    assert counts["a1"] == 1
    assert res.stats.assigned_leads == 6


@pytest.mark.asyncio
async def test_min_score_filter_and_agent_subset(uow_factory, seeded_agents, add_leads):
    await add_leads({"hot": 80, "warm": 45, "cold": 5})
    rule = DistributionRule(type=PolicyType.score_based, min_lead_score=40)

    async with uow_factory() as uow:
        res = await distribute(uow, rule, agent_ids=["a2", "a9"])

    assert {a.lead_id for a in res.assignments} == {"hot", "warm"}
    # a9 is inactive, so only a2 is eligible
    assert {a.agent_id for a in res.assignments} == {"a2"}


@pytest.mark.asyncio
async def test_explicit_lead_ids_skip_missing_and_busy(uow_factory, seeded_agents, add_leads):
    await add_leads({"l1": 10, "l2": 20, "l3": 30})

    async with uow_factory() as uow:
        await distribute(uow, RR, lead_ids=["l2"])

    async with uow_factory() as uow:
        res = await distribute(uow, RR, lead_ids=["l3", "ghost", "l2", "l1", "l3"])

    # caller order kept, duplicates dropped, l2 already assigned
    assert [a.lead_id for a in res.assignments] == ["l3", "l1"]
    assert res.stats.total_leads == 2


@pytest.mark.asyncio
async def test_persistence_failure_does_not_abort_batch(uow_factory, seeded_agents, add_leads):
    await add_leads({"l1": 90, "l2": 80, "l3": 70})

    async with uow_factory() as uow:
        real_create = uow.assignments.create

        async def flaky_create(**kw):
            if kw["lead_id"] == "l2":
                raise OperationalError("INSERT INTO lead_assignments", {}, Exception("disk I/O error"))
            return await real_create(**kw)

        uow.assignments.create = flaky_create
        res = await distribute(uow, RR)

    assert [a.lead_id for a in res.assignments] == ["l1", "l3"]
    assert res.stats.assigned_leads == 2
    assert res.stats.failed_assignments == 1
    assert res.stats.persistence_failed_lead_ids == ["l2"]
    assert await _count_assignments(uow_factory) == 2


@pytest.mark.asyncio
async def test_concurrent_batches_never_double_assign(uow_factory, seeded_agents, add_leads):
    await add_leads({f"l{i}": 50 for i in range(4)})

    async def run():
        async with uow_factory() as uow:
            try:
                return await distribute(uow, RR)
            except NoLeadsAvailable:
                return None

    results = await asyncio.gather(run(), run())

    lead_ids = [a.lead_id for r in results if r is not None for a in r.assignments]
    assert sorted(lead_ids) == ["l0", "l1", "l2", "l3"]
    assert await _count_assignments(uow_factory) == 4


@pytest.mark.asyncio
async def test_close_assignment_frees_load(uow_factory, seeded_agents, add_leads):
    await add_leads({"l1": 90})
    async with uow_factory() as uow:
        res = await distribute(uow, RR, agent_ids=["a1"], now=NOW)
    assignment_id = res.assignments[0].id

    async with uow_factory() as uow:
        closed = await close_assignment(
            uow, assignment_id, "COMPLETED", notes="signed", closed_at=NOW + timedelta(hours=36)
        )
    assert closed.status == AssignmentStatus.COMPLETED
    assert closed.notes.endswith("| signed")

    async with uow_factory() as uow:
        (a1,) = await agent_stats(uow, ["a1"])
    assert a1.current_load == 0
    assert a1.completed_deals == 1
    assert a1.success_rate == 100.0
    assert a1.average_close_time_days == 2.0

    async with uow_factory() as uow:
        with pytest.raises(ValidationError):
            await close_assignment(uow, assignment_id, "CANCELLED")
        with pytest.raises(ValidationError):
            await close_assignment(uow, assignment_id, "ACTIVE")
