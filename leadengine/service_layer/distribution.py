# leadengine/service_layer/distribution.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError

from ..config import settings
from ..domain.distribution import (
    assignment_metadata,
    build_stats,
    dedupe_ids,
    lead_pool_limit,
    plan_distribution,
    validate_rule,
)
from ..domain.errors import NoAgentsAvailable, NoLeadsAvailable, PersistenceError
from ..domain.types import (
    AgentProfile,
    AssignmentPriority,
    AssignmentRecord,
    DistributionResult,
    DistributionRule,
    LeadProfile,
    ProposedAssignment,
)
from .capacity import record_assignment_created
from .locks import BATCH_LOCK
from .unit_of_work import UnitOfWork

log = logging.getLogger(__name__)


async def _resolve_agents(uow: UnitOfWork, agent_ids: Sequence[str] | None) -> list[AgentProfile]:
    active = await uow.agents.find_active()
    if agent_ids is None:
        return active
    wanted = set(agent_ids)
    return [a for a in active if a.id in wanted]


async def _resolve_leads(
    uow: UnitOfWork,
    rule: DistributionRule,
    lead_ids: Sequence[str] | None,
    agent_count: int,
    default_limit: int,
) -> list[LeadProfile]:
    if lead_ids is not None:
        ids = dedupe_ids(lead_ids)
        leads = await uow.leads.find_by_ids(ids)
        missing = set(ids) - {l.id for l in leads}
        if missing:
            log.warning("distribution: %d requested leads not found: %s", len(missing), sorted(missing))
        busy = await uow.assignments.active_lead_ids(l.id for l in leads)
        if busy:
            log.warning("distribution: skipping %d leads that already have an active assignment", len(busy))
        return [l for l in leads if l.id not in busy]

    return await uow.leads.find_unassigned(
        min_score=rule.min_lead_score,
        serious_only=rule.prioritize_high_scorers,
        limit=lead_pool_limit(rule, agent_count, default_limit),
    )


async def _persist(
    uow: UnitOfWork,
    proposal: ProposedAssignment,
    lead: LeadProfile,
    agent: AgentProfile,
    *,
    priority: AssignmentPriority,
    notes: str | None,
    assigned_at: datetime,
) -> AssignmentRecord:
    try:
        async with uow.savepoint():
            record = await uow.assignments.create(
                lead_id=proposal.lead_id,
                agent_id=proposal.agent_id,
                reason=proposal.reason,
                metadata=assignment_metadata(lead, agent),
                priority=priority,
                notes=notes or proposal.reason,
                assigned_at=assigned_at,
            )
            await record_assignment_created(uow, record)
    except SQLAlchemyError as e:
        raise PersistenceError(proposal.lead_id, proposal.agent_id, e) from e
    return record


async def distribute(
    uow: UnitOfWork,
    rule: DistributionRule,
    lead_ids: Sequence[str] | None = None,
    agent_ids: Sequence[str] | None = None,
    *,
    priority: AssignmentPriority = AssignmentPriority.MEDIUM,
    notes: str | None = None,
    default_limit: int | None = None,
    now: datetime | None = None,
) -> DistributionResult:
    """
    Run one distribution batch.

    All reads happen before the policy runs and all writes after it. Writes are
    best-effort: each assignment gets its own savepoint, and a failed write is
    reported in stats.persistence_failed_lead_ids instead of aborting the batch.
    Raises NoAgentsAvailable / NoLeadsAvailable before anything is written.
    """
    validate_rule(rule)
    limit = default_limit or settings.DEFAULT_DISTRIBUTION_LIMIT

    async with BATCH_LOCK:
        agents = await _resolve_agents(uow, agent_ids)
        if not agents:
            raise NoAgentsAvailable("No available agents found")

        leads = await _resolve_leads(uow, rule, lead_ids, len(agents), limit)
        if not leads:
            raise NoLeadsAvailable("No leads available for distribution")

        plan = plan_distribution(rule, leads, agents)

        leads_by_id = {l.id: l for l in leads}
        agents_by_id = {a.id: a for a in agents}
        assigned_at = now or datetime.utcnow()

        created: list[AssignmentRecord] = []
        persistence_failed: list[str] = []
        for proposal in plan.proposals:
            try:
                record = await _persist(
                    uow,
                    proposal,
                    leads_by_id[proposal.lead_id],
                    agents_by_id[proposal.agent_id],
                    priority=priority,
                    notes=notes,
                    assigned_at=assigned_at,
                )
            except PersistenceError as e:
                log.warning("distribution: %s", e)
                persistence_failed.append(proposal.lead_id)
                continue
            created.append(record)

        stats = build_stats(
            rule,
            total_leads=len(leads_by_id),
            assigned_leads=len(created),
            unplaced_lead_ids=plan.unplaced_lead_ids,
            persistence_failed_lead_ids=persistence_failed,
        )
        await uow.commit()

    log.info(
        "distribution policy=%s leads=%d agents=%d assigned=%d failed=%d",
        rule.type.value,
        stats.total_leads,
        len(agents),
        stats.assigned_leads,
        stats.failed_assignments,
    )
    return DistributionResult(assignments=created, stats=stats)
