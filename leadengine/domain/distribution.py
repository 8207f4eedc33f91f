from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Iterable, Mapping, Sequence

from .errors import ValidationError
from .policies import build_policy
from .types import (
    AgentProfile,
    DistributionRule,
    DistributionStats,
    LeadProfile,
    LoadSnapshot,
    PolicyType,
    ProposedAssignment,
)

DEFAULT_LEAD_LIMIT = 100


@dataclass(frozen=True)
class DistributionPlan:
    proposals: list[ProposedAssignment]
    loads: LoadSnapshot
    unplaced_lead_ids: list[str]


def validate_rule(rule: DistributionRule) -> None:
    if not isinstance(rule.type, PolicyType):
        raise ValidationError(f"Unknown distribution policy: {rule.type!r}")

    m = rule.max_leads_per_agent
    if m is not None and (isinstance(m, bool) or not isinstance(m, int) or m < 1):
        raise ValidationError("max_leads_per_agent must be a positive integer")

    s = rule.min_lead_score
    if s is not None and (isinstance(s, bool) or not isinstance(s, int) or not 0 <= s <= 100):
        raise ValidationError("min_lead_score must be an integer in [0, 100]")

    tm = rule.territory_mapping
    if tm is not None:
        if not isinstance(tm, Mapping):
            raise ValidationError("territory_mapping must map territory -> [agent_id, ...]")
        for territory, ids in tm.items():
            if not isinstance(territory, str) or not territory.strip():
                raise ValidationError("territory names must be non-empty strings")
            if isinstance(ids, (str, bytes)) or not isinstance(ids, Iterable):
                raise ValidationError(f"territory {territory!r} must list agent ids")
            if not all(isinstance(i, str) and i for i in ids):
                raise ValidationError(f"territory {territory!r} has a non-string agent id")


def lead_pool_limit(rule: DistributionRule, agent_count: int, default: int = DEFAULT_LEAD_LIMIT) -> int:
    if rule.max_leads_per_agent:
        return rule.max_leads_per_agent * agent_count
    return default


def dedupe_ids(ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for i in ids:
        if i in seen:
            continue
        seen.add(i)
        out.append(i)
    return out


def plan_distribution(
    rule: DistributionRule,
    leads: Sequence[LeadProfile],
    agents: Sequence[AgentProfile],
) -> DistributionPlan:
    """
    Run the rule's policy over an in-memory snapshot. Deterministic for a given
    input order; each lead appears in at most one proposal.
    """
    validate_rule(rule)

    unique: list[LeadProfile] = []
    seen: set[str] = set()
    for lead in leads:
        if lead.id in seen:
            continue
        seen.add(lead.id)
        unique.append(lead)

    policy = build_policy(rule)
    outcome = policy.assign(unique, list(agents), LoadSnapshot.from_agents(agents))

    placed = {p.lead_id for p in outcome.proposals}
    if len(placed) != len(outcome.proposals):
        raise RuntimeError(f"policy {rule.type.value} proposed a lead twice")

    return DistributionPlan(
        proposals=outcome.proposals,
        loads=outcome.loads,
        unplaced_lead_ids=[l.id for l in unique if l.id not in placed],
    )


def build_stats(
    rule: DistributionRule,
    *,
    total_leads: int,
    assigned_leads: int,
    unplaced_lead_ids: list[str],
    persistence_failed_lead_ids: list[str],
) -> DistributionStats:
    return DistributionStats(
        total_leads=total_leads,
        assigned_leads=assigned_leads,
        failed_assignments=total_leads - assigned_leads,
        policy_used=rule.type,
        unplaced_lead_ids=unplaced_lead_ids,
        persistence_failed_lead_ids=persistence_failed_lead_ids,
    )


def assignment_metadata(lead: LeadProfile, agent: AgentProfile) -> dict[str, Any]:
    """Audit snapshot stored with each assignment."""
    agent_stats = asdict(agent)
    if agent_stats.get("last_assignment_at") is not None:
        agent_stats["last_assignment_at"] = agent_stats["last_assignment_at"].isoformat()
    return {
        "lead_score": {
            "score": lead.score,
            "grade": lead.grade.value,
            "serious_buyer": lead.serious_buyer,
            "budget_estimate": lead.budget_estimate,
            "location_interests": list(lead.location_interests),
            "property_type_interests": list(lead.property_type_interests),
        },
        "agent_stats": agent_stats,
    }
