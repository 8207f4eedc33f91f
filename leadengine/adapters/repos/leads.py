# leadengine/adapters/repos/leads.py
from __future__ import annotations

import json
from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from ...domain.scoring import LeadCounters
from ...domain.types import AssignmentStatus, LeadGrade, LeadProfile, ScoreResult
from ...models import Assignment, Lead


def _load_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        # Legacy rows sometimes hold a bare comma-separated string
        return [s.strip() for s in str(raw).split(",") if s.strip()]
    if not isinstance(data, list):
        return []
    return [str(x) for x in data if x is not None and str(x).strip()]


def _grade(raw: str | None) -> LeadGrade:
    try:
        return LeadGrade(raw or LeadGrade.COLD.value)
    except ValueError:
        return LeadGrade.COLD


def to_profile(row: Lead) -> LeadProfile:
    return LeadProfile(
        id=row.id,
        created_at=row.created_at,
        name=row.name,
        email=row.email,
        phone=row.phone,
        score=int(row.score or 0),
        grade=_grade(row.grade),
        serious_buyer=bool(row.serious_buyer),
        budget_estimate=row.budget_estimate,
        location_interests=_load_list(row.location_interests_json),
        property_type_interests=_load_list(row.property_type_interests_json),
        last_activity_at=row.last_activity_at,
        last_calculated_at=row.last_calculated_at,
    )


def _has_active_assignment():
    return exists().where(Assignment.lead_id == Lead.id).where(Assignment.status == AssignmentStatus.ACTIVE.value)


class LeadRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, lead_id: str) -> Lead | None:
        return await self.session.get(Lead, lead_id)

    async def get_profile(self, lead_id: str) -> LeadProfile | None:
        row = await self.get(lead_id)
        return to_profile(row) if row is not None else None

    async def get_or_create(
        self,
        lead_id: str,
        *,
        name: str | None = None,
        email: str | None = None,
        phone: str | None = None,
        created_at: datetime | None = None,
    ) -> tuple[Lead, bool]:
        """
        Natural key: caller-supplied lead id.
        Contact fields only fill blanks; they never overwrite what is stored.
        """
        lead = await self.get(lead_id)
        was_created = False
        if lead is None:
            lead = Lead(id=lead_id, created_at=created_at or datetime.utcnow())
            self.session.add(lead)
            was_created = True

        if name and not lead.name:
            lead.name = name
        if email and not lead.email:
            lead.email = email
        if phone and not lead.phone:
            lead.phone = phone

        await self.session.flush()
        return lead, was_created

    async def find_unassigned(
        self,
        *,
        min_score: int | None = None,
        grade: LeadGrade | None = None,
        serious_only: bool = False,
        limit: int | None = None,
    ) -> list[LeadProfile]:
        q = select(Lead).where(~_has_active_assignment())
        if min_score is not None:
            q = q.where(Lead.score >= min_score)
        if grade is not None:
            q = q.where(Lead.grade == grade.value)
        if serious_only:
            q = q.where(Lead.serious_buyer == True)  # noqa: E712

        q = q.order_by(
            Lead.score.desc(),
            Lead.last_activity_at.desc().nulls_last(),
            Lead.id.asc(),
        )
        if limit is not None:
            q = q.limit(limit)

        rows = (await self.session.execute(q)).scalars().all()
        return [to_profile(r) for r in rows]

    async def find_by_ids(self, ids: Sequence[str]) -> list[LeadProfile]:
        """Returns the leads that exist, in the caller's order."""
        if not ids:
            return []
        rows = (await self.session.execute(select(Lead).where(Lead.id.in_(list(ids))))).scalars().all()
        by_id = {r.id: r for r in rows}
        return [to_profile(by_id[i]) for i in ids if i in by_id]

    async def list_ids(self) -> list[str]:
        return list((await self.session.execute(select(Lead.id).order_by(Lead.id))).scalars().all())

    async def list_scores(
        self,
        *,
        grade: LeadGrade | None = None,
        min_score: int | None = None,
        max_score: int | None = None,
        limit: int | None = None,
    ) -> list[LeadProfile]:
        q = select(Lead)
        if grade is not None:
            q = q.where(Lead.grade == grade.value)
        if min_score is not None:
            q = q.where(Lead.score >= min_score)
        if max_score is not None:
            q = q.where(Lead.score <= max_score)
        q = q.order_by(Lead.score.desc(), Lead.id.asc())
        if limit is not None:
            q = q.limit(limit)
        return [to_profile(r) for r in (await self.session.execute(q)).scalars().all()]

    async def save_score(
        self,
        lead: Lead,
        *,
        result: ScoreResult,
        counters: LeadCounters,
        serious_buyer: bool,
        location_interests: Iterable[str],
        property_type_interests: Iterable[str],
        last_activity_at: datetime | None,
        calculated_at: datetime,
    ) -> Lead:
        lead.score = result.score
        lead.grade = result.grade.value
        lead.breakdown_json = json.dumps(result.breakdown, sort_keys=True)

        lead.property_views = counters.property_views
        lead.inquiries_made = counters.inquiries_made
        lead.contact_form_submissions = counters.contact_form_submissions
        lead.favorites_saved = counters.favorites_saved
        lead.return_visits = counters.return_visits
        lead.days_active = counters.days_active
        lead.budget_estimate = counters.budget_estimate
        lead.serious_buyer = serious_buyer

        lead.location_interests_json = json.dumps(list(location_interests), ensure_ascii=False)
        lead.property_type_interests_json = json.dumps(list(property_type_interests), ensure_ascii=False)

        lead.last_activity_at = last_activity_at
        lead.last_calculated_at = calculated_at

        await self.session.flush()
        return lead

