# leadengine/service_layer/scoring.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from ..domain.activity import derive_interests
from ..domain.distribution import dedupe_ids
from ..domain.errors import LeadNotFound
from ..domain.scoring import (
    DEFAULT_SCORING_CONFIG,
    LeadHistory,
    ScoringConfig,
    compute_score,
    is_serious_buyer,
    lead_counters,
)
from ..domain.types import LeadGrade, LeadProfile, PropertyFacts, ScoreResult
from ..models import Lead
from .locks import lead_lock
from .unit_of_work import UnitOfWork

log = logging.getLogger(__name__)


@dataclass
class RecalculationResult:
    recalculated: int = 0
    failed: int = 0
    failed_lead_ids: list[str] = field(default_factory=list)


async def _load_history(uow: UnitOfWork, lead: Lead) -> tuple[LeadHistory, dict[int, PropertyFacts]]:
    events = await uow.activities.history_for(lead.id)
    props = await uow.activities.properties(e.property_id for e in events if e.property_id is not None)
    prices = {pid: p.price for pid, p in props.items() if p.price is not None}
    contacts = await uow.activities.count_contact_submissions(lead.email)
    return LeadHistory(events=events, contact_submissions=contacts, property_prices=prices), props


async def get_score(
    uow: UnitOfWork,
    lead_id: str,
    *,
    now: datetime | None = None,
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> ScoreResult:
    """Read-only: recomputes from history without persisting."""
    lead = await uow.leads.get(lead_id)
    if lead is None:
        raise LeadNotFound(lead_id)
    history, _ = await _load_history(uow, lead)
    return compute_score(history, now=now or datetime.utcnow(), config=config)


async def update_score(
    uow: UnitOfWork,
    lead_id: str,
    *,
    now: datetime | None = None,
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> ScoreResult:
    """
    Recompute and persist score, grade, breakdown and the denormalized counters.
    Caller owns the transaction.
    """
    lead = await uow.leads.get(lead_id)
    if lead is None:
        raise LeadNotFound(lead_id)

    now = now or datetime.utcnow()
    history, props = await _load_history(uow, lead)

    result = compute_score(history, now=now, config=config)
    counters = lead_counters(history)
    serious = is_serious_buyer(result.score, counters, config.thresholds)

    current = await uow.leads.get_profile(lead_id)
    locations, types = derive_interests(
        history.events,
        props,
        locations=current.location_interests if current else (),
        property_types=current.property_type_interests if current else (),
    )

    last_activity = max((e.occurred_at for e in history.events), default=lead.last_activity_at)

    await uow.leads.save_score(
        lead,
        result=result,
        counters=counters,
        serious_buyer=serious,
        location_interests=locations,
        property_type_interests=types,
        last_activity_at=last_activity,
        calculated_at=now,
    )
    log.debug("scored lead=%s score=%d grade=%s", lead_id, result.score, result.grade.value)
    return result


async def recalculate_scores(
    uow: UnitOfWork,
    lead_ids: Iterable[str] | None = None,
    *,
    now: datetime | None = None,
) -> RecalculationResult:
    """
    Re-score many leads. A lead that fails is logged and skipped; its savepoint
    is rolled back and the rest of the batch carries on.
    """
    ids = dedupe_ids(lead_ids) if lead_ids is not None else await uow.leads.list_ids()
    now = now or datetime.utcnow()
    res = RecalculationResult()

    for lead_id in ids:
        async with lead_lock(lead_id):
            try:
                async with uow.savepoint():
                    await update_score(uow, lead_id, now=now)
            except LeadNotFound:
                log.warning("recalculate: lead %s not found, skipping", lead_id)
                res.failed += 1
                res.failed_lead_ids.append(lead_id)
                continue
            except Exception:
                log.exception("recalculate: scoring failed for lead %s, skipping", lead_id)
                res.failed += 1
                res.failed_lead_ids.append(lead_id)
                continue
        res.recalculated += 1

    log.info("recalculated %d lead scores (%d failed)", res.recalculated, res.failed)
    return res


async def list_lead_scores(
    uow: UnitOfWork,
    *,
    grade: LeadGrade | None = None,
    min_score: int | None = None,
    max_score: int | None = None,
    limit: int | None = None,
) -> list[LeadProfile]:
    return await uow.leads.list_scores(grade=grade, min_score=min_score, max_score=max_score, limit=limit)
