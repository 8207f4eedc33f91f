# leadengine/adapters/repos/activities.py
from __future__ import annotations

import json
import logging
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ...domain.activity import parse_activity_type
from ...domain.errors import ValidationError
from ...domain.types import ActivityEvent, PropertyFacts
from ...models import ContactSubmission, LeadActivity, Property

log = logging.getLogger(__name__)


def _load_metadata(raw: str | None) -> dict | None:
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def to_event(row: LeadActivity) -> ActivityEvent:
    return ActivityEvent(
        id=row.id,
        lead_id=row.lead_id,
        activity_type=parse_activity_type(row.activity_type),
        occurred_at=row.occurred_at,
        points=int(row.points or 0),
        property_id=row.property_id,
        metadata=_load_metadata(row.metadata_json),
    )


class ActivityRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(self, event: ActivityEvent) -> ActivityEvent:
        row = LeadActivity(
            lead_id=event.lead_id,
            activity_type=event.activity_type.value,
            points=event.points,
            property_id=event.property_id,
            metadata_json=json.dumps(event.metadata, default=str) if event.metadata else None,
            occurred_at=event.occurred_at,
        )
        self.session.add(row)
        await self.session.flush()
        return to_event(row)

    async def history_for(self, lead_id: str) -> list[ActivityEvent]:
        """
        Full event history, oldest first. Rows with an unknown activity type are
        skipped with a warning rather than failing the whole lead.
        """
        q = (
            select(LeadActivity)
            .where(LeadActivity.lead_id == lead_id)
            .order_by(LeadActivity.occurred_at.asc(), LeadActivity.id.asc())
        )
        out: list[ActivityEvent] = []
        for row in (await self.session.execute(q)).scalars().all():
            try:
                out.append(to_event(row))
            except ValidationError:
                log.warning("skipping activity id=%s lead=%s: bad type %r", row.id, lead_id, row.activity_type)
        return out

    async def count_contact_submissions(self, email: str | None) -> int:
        if not email:
            return 0
        q = (
            select(func.count())
            .select_from(ContactSubmission)
            .where(func.lower(ContactSubmission.email) == email.strip().lower())
        )
        return int((await self.session.execute(q)).scalar_one())

    async def properties(self, ids: Iterable[int]) -> dict[int, PropertyFacts]:
        wanted = sorted({int(i) for i in ids if i is not None})
        if not wanted:
            return {}
        rows = (await self.session.execute(select(Property).where(Property.id.in_(wanted)))).scalars().all()
        return {
            r.id: PropertyFacts(id=r.id, city=r.city, property_type=r.property_type, price=r.price)
            for r in rows
        }
