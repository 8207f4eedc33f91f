from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

# Only the most recent completed assignments feed the rate calculations
COMPLETED_SAMPLE_SIZE = 50


@dataclass(frozen=True)
class CompletedAssignment:
    assigned_at: datetime
    closed_at: datetime | None


@dataclass(frozen=True)
class AgentPerformance:
    current_load: int
    total_assignments: int
    completed_deals: int
    success_rate: float
    average_close_time_days: float | None


def _close_days(c: CompletedAssignment) -> int | None:
    if c.closed_at is None:
        return None
    return max(0, math.ceil((c.closed_at - c.assigned_at).total_seconds() / 86400.0))


def summarize_performance(
    *,
    total_assignments: int,
    active_count: int,
    completed: Sequence[CompletedAssignment],
) -> AgentPerformance:
    """
    success_rate = sampled completed / all-time assignments * 100
    average_close_time_days = mean whole days from assignment to close over the sample
    """
    sample = sorted(completed, key=lambda c: c.assigned_at, reverse=True)[:COMPLETED_SAMPLE_SIZE]

    completed_deals = len(sample)
    success_rate = (completed_deals / total_assignments) * 100.0 if total_assignments > 0 else 0.0

    days = [d for d in (_close_days(c) for c in sample) if d is not None]
    avg_close = sum(days) / len(days) if days else None

    return AgentPerformance(
        current_load=active_count,
        total_assignments=total_assignments,
        completed_deals=completed_deals,
        success_rate=success_rate,
        average_close_time_days=avg_close,
    )
