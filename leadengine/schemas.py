from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from .domain.types import (
    AgentProfile,
    AssignmentRecord,
    DistributionResult,
    DistributionRule,
    LeadProfile,
    PolicyType,
    ScoreResult,
)

PolicyName = Literal["round_robin", "load_balanced", "score_based", "territory_based"]
Grade = Literal["COLD", "WARM", "HOT", "QUALIFIED"]
Priority = Literal["LOW", "MEDIUM", "HIGH", "URGENT"]


# -----------------------------
# Activity / scoring
# -----------------------------
class ActivityIn(BaseModel):
    lead_id: str = Field(..., min_length=1, max_length=64)
    activity_type: str
    property_id: int | None = None
    occurred_at: datetime | None = None
    metadata: dict[str, Any] | None = None


class ScoreOut(BaseModel):
    lead_id: str
    score: int = Field(..., ge=0, le=100)
    grade: Grade
    breakdown: dict[str, float]

    @classmethod
    def from_result(cls, lead_id: str, r: ScoreResult) -> "ScoreOut":
        return cls(lead_id=lead_id, score=r.score, grade=r.grade.value, breakdown=r.breakdown)


class ActivityOut(BaseModel):
    event_id: int
    lead_id: str
    activity_type: str
    points: int
    lead_created: bool
    score: ScoreOut


class LeadScoreOut(BaseModel):
    id: str
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    score: int
    grade: Grade
    serious_buyer: bool
    budget_estimate: float | None = None
    location_interests: list[str] = []
    property_type_interests: list[str] = []
    last_activity_at: datetime | None = None
    last_calculated_at: datetime | None = None

    @classmethod
    def from_profile(cls, p: LeadProfile) -> "LeadScoreOut":
        return cls(
            id=p.id,
            name=p.name,
            email=p.email,
            phone=p.phone,
            score=p.score,
            grade=p.grade.value,
            serious_buyer=p.serious_buyer,
            budget_estimate=p.budget_estimate,
            location_interests=list(p.location_interests),
            property_type_interests=list(p.property_type_interests),
            last_activity_at=p.last_activity_at,
            last_calculated_at=p.last_calculated_at,
        )


class RecalculateIn(BaseModel):
    lead_ids: list[str] | None = None


class RecalculateOut(BaseModel):
    recalculated: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    failed_lead_ids: list[str]


# -----------------------------
# Distribution
# -----------------------------
class DistributionRuleIn(BaseModel):
    type: PolicyName
    max_leads_per_agent: int | None = Field(default=None, ge=1)
    min_lead_score: int | None = Field(default=None, ge=0, le=100)
    territory_mapping: dict[str, list[str]] | None = None
    prioritize_high_scorers: bool = False

    def to_rule(self) -> DistributionRule:
        return DistributionRule(
            type=PolicyType(self.type),
            max_leads_per_agent=self.max_leads_per_agent,
            min_lead_score=self.min_lead_score,
            territory_mapping=self.territory_mapping,
            prioritize_high_scorers=self.prioritize_high_scorers,
        )


class DistributeIn(BaseModel):
    rule: DistributionRuleIn
    lead_ids: list[str] | None = None
    agent_ids: list[str] | None = None
    priority: Priority = "MEDIUM"
    notes: str | None = None


class AssignmentOut(BaseModel):
    id: int
    lead_id: str
    agent_id: str
    status: str
    priority: str
    reason: str
    notes: str | None = None
    assigned_at: datetime
    closed_at: datetime | None = None
    metadata: dict[str, Any] | None = None

    @classmethod
    def from_record(cls, r: AssignmentRecord) -> "AssignmentOut":
        return cls(
            id=r.id,
            lead_id=r.lead_id,
            agent_id=r.agent_id,
            status=r.status.value,
            priority=r.priority.value,
            reason=r.reason,
            notes=r.notes,
            assigned_at=r.assigned_at,
            closed_at=r.closed_at,
            metadata=r.metadata,
        )


class DistributionStatsOut(BaseModel):
    total_leads: int = Field(..., ge=0)
    assigned_leads: int = Field(..., ge=0)
    failed_assignments: int = Field(..., ge=0)
    policy_used: PolicyName
    unplaced_lead_ids: list[str]
    persistence_failed_lead_ids: list[str]


class DistributionOut(BaseModel):
    assignments: list[AssignmentOut]
    stats: DistributionStatsOut

    @classmethod
    def from_result(cls, res: DistributionResult) -> "DistributionOut":
        s = res.stats
        return cls(
            assignments=[AssignmentOut.from_record(a) for a in res.assignments],
            stats=DistributionStatsOut(
                total_leads=s.total_leads,
                assigned_leads=s.assigned_leads,
                failed_assignments=s.failed_assignments,
                policy_used=s.policy_used.value,
                unplaced_lead_ids=s.unplaced_lead_ids,
                persistence_failed_lead_ids=s.persistence_failed_lead_ids,
            ),
        )


class AssignmentCloseIn(BaseModel):
    status: Literal["COMPLETED", "CANCELLED"]
    notes: str | None = None
    closed_at: datetime | None = None


# -----------------------------
# Agents
# -----------------------------
class AgentOut(BaseModel):
    id: str
    name: str
    email: str | None = None
    territory: str | None = None
    capacity_limit: int | None = None
    current_load: int
    total_assignments: int
    completed_deals: int
    success_rate: float
    average_close_time_days: float | None = None
    last_assignment_at: datetime | None = None

    @classmethod
    def from_profile(cls, a: AgentProfile) -> "AgentOut":
        return cls(
            id=a.id,
            name=a.name,
            email=a.email,
            territory=a.territory,
            capacity_limit=a.capacity_limit,
            current_load=a.current_load,
            total_assignments=a.total_assignments,
            completed_deals=a.completed_deals,
            success_rate=a.success_rate,
            average_close_time_days=a.average_close_time_days,
            last_assignment_at=a.last_assignment_at,
        )
