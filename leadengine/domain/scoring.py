from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Mapping, Sequence

from .types import ActivityEvent, ActivityType, LeadGrade, ScoreResult


# A lead that keeps looking at a narrow price band probably has a budget.
# Narrow means (max - min) < ratio * mean of the observed prices.
BUDGET_CONSISTENCY_RATIO = 0.5

SESSION_GAP = timedelta(minutes=30)
RECENT_ACTIVITY_WINDOW = timedelta(days=7)

SCORE_MIN = 0
SCORE_MAX = 100


@dataclass(frozen=True)
class ScoringWeights:
    property_views: float = 2.0  # per view
    inquiries: float = 15.0  # per inquiry
    contact_forms: float = 20.0  # per contact form
    favorites: float = 5.0  # per favorite
    return_visits: float = 8.0  # per return day
    session_duration: float = 0.5  # per average session minute
    days_active: float = 1.0  # per day between first and last event
    budget_match: float = 10.0  # full award for a consistent price band
    recent_activity: float = 15.0  # flat bonus


@dataclass(frozen=True)
class ScoringCaps:
    property_views: float = 50.0
    session_duration: float = 20.0
    days_active: float = 30.0
    single_session_default: float = 5.0


@dataclass(frozen=True)
class GradeThresholds:
    """Inclusive lower bounds."""
    warm: int = 31
    hot: int = 61
    qualified: int = 81


@dataclass(frozen=True)
class ScoringConfig:
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    caps: ScoringCaps = field(default_factory=ScoringCaps)
    thresholds: GradeThresholds = field(default_factory=GradeThresholds)


DEFAULT_SCORING_CONFIG = ScoringConfig()


@dataclass(frozen=True)
class LeadHistory:
    """
    Everything the scorer needs about one lead, fetched up front.

    property_prices: price per property id, for properties referenced by events.
    contact_submissions: external contact-form rows matched by the lead's e-mail.
    """
    events: Sequence[ActivityEvent]
    contact_submissions: int = 0
    property_prices: Mapping[int, float] = field(default_factory=dict)


@dataclass(frozen=True)
class LeadCounters:
    property_views: int
    inquiries_made: int
    contact_form_submissions: int
    favorites_saved: int
    return_visits: int
    days_active: int
    budget_estimate: float | None


def grade_for_score(score: float, thresholds: GradeThresholds = DEFAULT_SCORING_CONFIG.thresholds) -> LeadGrade:
    if score >= thresholds.qualified:
        return LeadGrade.QUALIFIED
    if score >= thresholds.hot:
        return LeadGrade.HOT
    if score >= thresholds.warm:
        return LeadGrade.WARM
    return LeadGrade.COLD


def _count(events: Sequence[ActivityEvent], t: ActivityType) -> int:
    return sum(1 for e in events if e.activity_type == t)


def _distinct_days(events: Sequence[ActivityEvent]) -> int:
    return len({e.occurred_at.date() for e in events})


def group_sessions(events: Sequence[ActivityEvent], gap: timedelta = SESSION_GAP) -> list[list[ActivityEvent]]:
    """
    Consecutive events (by time) no more than `gap` apart share a session.
    """
    ordered = sorted(events, key=lambda e: e.occurred_at)
    sessions: list[list[ActivityEvent]] = []
    for ev in ordered:
        if sessions and ev.occurred_at - sessions[-1][-1].occurred_at <= gap:
            sessions[-1].append(ev)
        else:
            sessions.append([ev])
    return sessions


def _session_score(events: Sequence[ActivityEvent], cfg: ScoringConfig) -> float:
    sessions = group_sessions(events)
    if not sessions:
        return 0.0
    if len(sessions) == 1:
        return cfg.caps.single_session_default

    minutes = [(s[-1].occurred_at - s[0].occurred_at).total_seconds() / 60.0 for s in sessions]
    avg = sum(minutes) / len(minutes)
    return min(avg * cfg.weights.session_duration, cfg.caps.session_duration)


def _days_active_score(events: Sequence[ActivityEvent], cfg: ScoringConfig) -> float:
    if not events:
        return 0.0
    first = min(e.occurred_at for e in events)
    last = max(e.occurred_at for e in events)
    days = math.ceil((last - first).total_seconds() / 86400.0)
    return min(days * cfg.weights.days_active, cfg.caps.days_active)


def _observed_prices(history: LeadHistory, types: set[ActivityType]) -> list[float]:
    prices: list[float] = []
    for e in history.events:
        if e.activity_type not in types or e.property_id is None:
            continue
        price = history.property_prices.get(e.property_id)
        if price is None or price <= 0:
            continue
        prices.append(float(price))
    return prices


def _budget_match_score(history: LeadHistory, cfg: ScoringConfig) -> float:
    prices = _observed_prices(history, {ActivityType.VIEW, ActivityType.INQUIRY})
    if not prices:
        return 0.0
    avg = sum(prices) / len(prices)
    price_range = max(prices) - min(prices)
    consistency = 1.0 if price_range < avg * BUDGET_CONSISTENCY_RATIO else 0.5
    return cfg.weights.budget_match * consistency


def _recent_activity_score(events: Sequence[ActivityEvent], now: datetime, cfg: ScoringConfig) -> float:
    cutoff = now - RECENT_ACTIVITY_WINDOW
    return cfg.weights.recent_activity if any(e.occurred_at >= cutoff for e in events) else 0.0


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def compute_score(history: LeadHistory, *, now: datetime, config: ScoringConfig = DEFAULT_SCORING_CONFIG) -> ScoreResult:
    """
    Pure scoring kernel. Every component is an aggregate over the full history,
    so the result does not depend on the order events were recorded in.
    """
    events = list(history.events)
    w = config.weights

    # external submission rows only; CONTACT_FORM events do not add to this component
    contacts = history.contact_submissions

    breakdown: dict[str, float] = {
        "property_views": min(_count(events, ActivityType.VIEW) * w.property_views, config.caps.property_views),
        "inquiries": _count(events, ActivityType.INQUIRY) * w.inquiries,
        "contact_forms": contacts * w.contact_forms,
        "favorites": _count(events, ActivityType.FAVORITE) * w.favorites,
        "return_visits": max(0, _distinct_days(events) - 1) * w.return_visits,
        "session_duration": _session_score(events, config),
        "days_active": _days_active_score(events, config),
        "budget_match": _budget_match_score(history, config),
        "recent_activity": _recent_activity_score(events, now, config),
    }

    total = sum(breakdown.values())
    total = max(float(SCORE_MIN), min(total, float(SCORE_MAX)))
    score = _round_half_up(total)

    return ScoreResult(
        score=score,
        grade=grade_for_score(score, config.thresholds),
        breakdown=breakdown,
    )


def lead_counters(history: LeadHistory) -> LeadCounters:
    events = list(history.events)
    days = _distinct_days(events)

    viewed = _observed_prices(history, {ActivityType.VIEW})
    budget = sum(viewed) / len(viewed) if viewed else None

    return LeadCounters(
        property_views=_count(events, ActivityType.VIEW),
        inquiries_made=_count(events, ActivityType.INQUIRY),
        contact_form_submissions=history.contact_submissions,
        favorites_saved=_count(events, ActivityType.FAVORITE),
        return_visits=max(0, days - 1),
        days_active=days,
        budget_estimate=budget,
    )


def is_serious_buyer(
    score: int,
    counters: LeadCounters,
    thresholds: GradeThresholds = DEFAULT_SCORING_CONFIG.thresholds,
) -> bool:
    return score >= thresholds.warm and (counters.inquiries_made > 0 or counters.contact_form_submissions > 0)
