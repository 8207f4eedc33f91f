from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping


class ActivityType(str, Enum):
    VIEW = "VIEW"
    INQUIRY = "INQUIRY"
    CONTACT_FORM = "CONTACT_FORM"
    FAVORITE = "FAVORITE"
    SEARCH = "SEARCH"
    RETURN_VISIT = "RETURN_VISIT"
    PHONE_CALL = "PHONE_CALL"
    EMAIL_OPEN = "EMAIL_OPEN"
    BROCHURE_DOWNLOAD = "BROCHURE_DOWNLOAD"


class LeadGrade(str, Enum):
    COLD = "COLD"
    WARM = "WARM"
    HOT = "HOT"
    QUALIFIED = "QUALIFIED"


class AssignmentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class AssignmentPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class PolicyType(str, Enum):
    round_robin = "round_robin"
    load_balanced = "load_balanced"
    score_based = "score_based"
    territory_based = "territory_based"


@dataclass(frozen=True)
class ActivityEvent:
    lead_id: str
    activity_type: ActivityType
    occurred_at: datetime
    points: int
    property_id: int | None = None
    metadata: dict[str, Any] | None = None
    id: int | None = None


@dataclass(frozen=True)
class LeadProfile:
    id: str
    created_at: datetime
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    score: int = 0
    grade: LeadGrade = LeadGrade.COLD
    serious_buyer: bool = False
    budget_estimate: float | None = None
    location_interests: list[str] = field(default_factory=list)
    property_type_interests: list[str] = field(default_factory=list)
    last_activity_at: datetime | None = None
    last_calculated_at: datetime | None = None


@dataclass(frozen=True)
class AgentProfile:
    id: str
    name: str
    email: str | None = None
    territory: str | None = None
    capacity_limit: int | None = None
    current_load: int = 0
    total_assignments: int = 0
    completed_deals: int = 0
    success_rate: float = 0.0
    average_close_time_days: float | None = None
    last_assignment_at: datetime | None = None


@dataclass(frozen=True)
class AssignmentRecord:
    id: int
    lead_id: str
    agent_id: str
    assigned_at: datetime
    status: AssignmentStatus
    reason: str
    priority: AssignmentPriority = AssignmentPriority.MEDIUM
    notes: str | None = None
    metadata: dict[str, Any] | None = None
    closed_at: datetime | None = None


@dataclass(frozen=True)
class DistributionRule:
    type: PolicyType
    max_leads_per_agent: int | None = None
    min_lead_score: int | None = None
    territory_mapping: Mapping[str, list[str]] | None = None
    prioritize_high_scorers: bool = False


@dataclass(frozen=True)
class ProposedAssignment:
    lead_id: str
    agent_id: str
    reason: str


@dataclass(frozen=True)
class LoadSnapshot:
    """
    Read-only agent_id -> active load mapping handed to a policy.
    Policies return a new snapshot rather than mutating this one.
    """
    loads: Mapping[str, int]

    def __post_init__(self) -> None:
        object.__setattr__(self, "loads", MappingProxyType(dict(self.loads)))

    @classmethod
    def from_agents(cls, agents: Iterable[AgentProfile]) -> "LoadSnapshot":
        return cls({a.id: a.current_load for a in agents})

    def load_of(self, agent_id: str) -> int:
        return int(self.loads.get(agent_id, 0))

    def working_copy(self) -> dict[str, int]:
        return dict(self.loads)


@dataclass(frozen=True)
class PolicyOutcome:
    proposals: list[ProposedAssignment]
    loads: LoadSnapshot


@dataclass(frozen=True)
class ScoreResult:
    score: int
    grade: LeadGrade
    breakdown: dict[str, float]


@dataclass(frozen=True)
class DistributionStats:
    total_leads: int
    assigned_leads: int
    failed_assignments: int
    policy_used: PolicyType
    unplaced_lead_ids: list[str] = field(default_factory=list)
    persistence_failed_lead_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class DistributionResult:
    assignments: list[AssignmentRecord]
    stats: DistributionStats


@dataclass(frozen=True)
class PropertyFacts:
    id: int
    city: str | None = None
    property_type: str | None = None
    price: float | None = None
