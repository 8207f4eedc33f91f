from __future__ import annotations

import abc
from typing import Callable, ClassVar, Mapping, Sequence

from .errors import ValidationError
from .types import (
    AgentProfile,
    DistributionRule,
    LeadProfile,
    LoadSnapshot,
    PolicyOutcome,
    PolicyType,
    ProposedAssignment,
)

# Score-based routing bands
HIGH_VALUE_SCORE = 70
MEDIUM_VALUE_SCORE = 40
TOP_PERFORMER_SUCCESS_RATE = 20.0


class DistributionPolicy(abc.ABC):
    """
    One allocation strategy. Policies are pure: they read the lead list, the
    agent list and a LoadSnapshot, and return proposals plus the loads those
    proposals imply. No I/O.
    """

    policy_type: ClassVar[PolicyType]

    def __init__(self, rule: DistributionRule) -> None:
        self.rule = rule

    @abc.abstractmethod
    def assign(
        self,
        leads: Sequence[LeadProfile],
        agents: Sequence[AgentProfile],
        loads: LoadSnapshot,
    ) -> PolicyOutcome: ...

    def capacity_of(self, agent: AgentProfile) -> int | None:
        limits = [x for x in (self.rule.max_leads_per_agent, agent.capacity_limit) if x is not None]
        return min(limits) if limits else None

    def has_capacity(self, agent: AgentProfile, working: Mapping[str, int]) -> bool:
        cap = self.capacity_of(agent)
        return cap is None or working.get(agent.id, 0) < cap

    def eligible(self, agents: Sequence[AgentProfile], working: Mapping[str, int]) -> list[AgentProfile]:
        return [a for a in agents if self.has_capacity(a, working)]


def least_loaded(candidates: Sequence[AgentProfile], working: Mapping[str, int]) -> AgentProfile:
    # min() keeps the first of equal keys, so ties go to list order
    return min(candidates, key=lambda a: working.get(a.id, 0))


# -----------------------------
# Registry
# -----------------------------
_REGISTRY: dict[PolicyType, type[DistributionPolicy]] = {}


def register_policy(policy_type: PolicyType) -> Callable[[type[DistributionPolicy]], type[DistributionPolicy]]:
    def decorator(cls: type[DistributionPolicy]) -> type[DistributionPolicy]:
        if policy_type in _REGISTRY and _REGISTRY[policy_type] is not cls:
            raise ValueError(f"Policy already registered: {policy_type.value}")
        cls.policy_type = policy_type
        _REGISTRY[policy_type] = cls
        return cls

    return decorator


def registered_policies() -> list[PolicyType]:
    return list(_REGISTRY)


def build_policy(rule: DistributionRule) -> DistributionPolicy:
    cls = _REGISTRY.get(rule.type)
    if cls is None:
        raise ValidationError(f"Unknown distribution policy: {rule.type!r}")
    return cls(rule)


# -----------------------------
# Strategies
# -----------------------------
@register_policy(PolicyType.round_robin)
class RoundRobinPolicy(DistributionPolicy):
    """
    Walk the agent list in order, one lead per agent per cycle, skipping agents
    at capacity. Stops once nobody has room.
    """

    def assign(self, leads, agents, loads):
        working = loads.working_copy()
        proposals: list[ProposedAssignment] = []
        n = len(agents)
        cursor = 0

        for lead in leads:
            chosen = None
            for step in range(n):
                agent = agents[(cursor + step) % n]
                if self.has_capacity(agent, working):
                    chosen = agent
                    cursor = (cursor + step + 1) % n
                    break
            if chosen is None:
                break

            proposals.append(
                ProposedAssignment(
                    lead_id=lead.id,
                    agent_id=chosen.id,
                    reason=f"Round robin assignment (position {len(proposals) + 1})",
                )
            )
            working[chosen.id] = working.get(chosen.id, 0) + 1

        return PolicyOutcome(proposals=proposals, loads=LoadSnapshot(working))


@register_policy(PolicyType.load_balanced)
class LoadBalancedPolicy(DistributionPolicy):
    def assign(self, leads, agents, loads):
        working = loads.working_copy()
        proposals: list[ProposedAssignment] = []

        for lead in leads:
            available = self.eligible(agents, working)
            if not available:
                break
            agent = least_loaded(available, working)
            proposals.append(
                ProposedAssignment(
                    lead_id=lead.id,
                    agent_id=agent.id,
                    reason=f"Load balanced assignment (current load: {working.get(agent.id, 0)})",
                )
            )
            working[agent.id] = working.get(agent.id, 0) + 1

        return PolicyOutcome(proposals=proposals, loads=LoadSnapshot(working))


def _performance_key(agent: AgentProfile) -> tuple[float, float, float]:
    # success rate desc, close time asc, unknown close time last
    close = agent.average_close_time_days
    return (-agent.success_rate, 1.0 if close is None else 0.0, close or 0.0)


@register_policy(PolicyType.score_based)
class ScoreBasedPolicy(DistributionPolicy):
    """
    High scorers (>= 70) go to a proven agent (success rate > 20%) when one has
    room, otherwise to the best-ranked agent with room. Mid scorers (40-69) go
    to the least loaded agent. Low scorers are dealt round robin.
    """

    def assign(self, leads, agents, loads):
        working = loads.working_copy()
        proposals: list[ProposedAssignment] = []

        ranked = sorted(agents, key=_performance_key)
        ordered_leads = sorted(leads, key=lambda l: l.score, reverse=True)
        rr_index = 0

        for lead in ordered_leads:
            available = self.eligible(ranked, working)
            if not available:
                break

            if lead.score >= HIGH_VALUE_SCORE:
                agent = next(
                    (a for a in available if a.success_rate > TOP_PERFORMER_SUCCESS_RATE),
                    available[0],
                )
            elif lead.score >= MEDIUM_VALUE_SCORE:
                agent = least_loaded(available, working)
            else:
                agent = available[rr_index % len(available)]
                rr_index += 1

            proposals.append(
                ProposedAssignment(
                    lead_id=lead.id,
                    agent_id=agent.id,
                    reason=(
                        f"Score-based assignment (lead score: {lead.score}, "
                        f"agent success rate: {agent.success_rate:.1f}%)"
                    ),
                )
            )
            working[agent.id] = working.get(agent.id, 0) + 1

        return PolicyOutcome(proposals=proposals, loads=LoadSnapshot(working))


@register_policy(PolicyType.territory_based)
class TerritoryBasedPolicy(DistributionPolicy):
    """
    Match each lead's location interests against the territory mapping
    (case-insensitive substring). Falls back to load balancing over the whole
    pool when no territory agent has room.
    """

    def _territory_pick(
        self,
        lead: LeadProfile,
        agents: Sequence[AgentProfile],
        working: Mapping[str, int],
    ) -> tuple[AgentProfile, str] | None:
        mapping = self.rule.territory_mapping or {}
        for location in lead.location_interests:
            loc = location.lower()
            for territory, agent_ids in mapping.items():
                if territory.lower() not in loc:
                    continue
                ids = set(agent_ids)
                candidates = [a for a in agents if a.id in ids and self.has_capacity(a, working)]
                if candidates:
                    agent = least_loaded(candidates, working)
                    return agent, f"Territory match: {territory} (location: {location})"
        return None

    def assign(self, leads, agents, loads):
        working = loads.working_copy()
        proposals: list[ProposedAssignment] = []

        for lead in leads:
            picked = self._territory_pick(lead, agents, working)
            if picked is None:
                available = self.eligible(agents, working)
                if not available:
                    continue
                agent = least_loaded(available, working)
                picked = (agent, f"Territory fallback: load balanced (current load: {working.get(agent.id, 0)})")

            agent, reason = picked
            proposals.append(ProposedAssignment(lead_id=lead.id, agent_id=agent.id, reason=reason))
            working[agent.id] = working.get(agent.id, 0) + 1

        return PolicyOutcome(proposals=proposals, loads=LoadSnapshot(working))
