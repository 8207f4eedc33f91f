# leadengine/service_layer/activity.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..domain.activity import parse_activity_type, points_for
from ..domain.errors import ValidationError
from ..domain.types import ActivityEvent, ActivityType, ScoreResult
from .locks import lead_lock
from .scoring import update_score
from .unit_of_work import UnitOfWork

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordedActivity:
    event: ActivityEvent
    score: ScoreResult
    lead_created: bool


def _coerce_property_id(property_id: Any, metadata: dict[str, Any]) -> int | None:
    raw = property_id if property_id is not None else metadata.get("property_id")
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid property_id: {raw!r}") from None


def _contact(metadata: dict[str, Any], key: str) -> str | None:
    v = metadata.get(key)
    if v is None:
        return None
    s = str(v).strip()
    return s or None


async def record_activity(
    uow: UnitOfWork,
    lead_id: str,
    activity_type: ActivityType | str,
    metadata: dict[str, Any] | None = None,
    *,
    property_id: int | None = None,
    occurred_at: datetime | None = None,
    now: datetime | None = None,
) -> RecordedActivity:
    """
    Append one behavioral event and re-score the lead.

    Creates the lead on first contact (name/email/phone are picked up from
    metadata when present). Writes are committed while the per-lead lock is
    held, so a concurrent event for the same lead re-scores against a history
    that already contains this one.
    """
    if not isinstance(lead_id, str) or not lead_id.strip():
        raise ValidationError("lead_id is required")
    lead_id = lead_id.strip()
    atype = parse_activity_type(activity_type)

    if metadata is not None and not isinstance(metadata, dict):
        raise ValidationError("metadata must be an object")
    meta = dict(metadata or {})
    pid = _coerce_property_id(property_id, meta)
    when = occurred_at or datetime.utcnow()

    async with lead_lock(lead_id):
        _, created = await uow.leads.get_or_create(
            lead_id,
            name=_contact(meta, "name"),
            email=_contact(meta, "email"),
            phone=_contact(meta, "phone"),
            created_at=when,
        )
        if created:
            log.info("created lead %s on first %s event", lead_id, atype.value)

        event = await uow.activities.append(
            ActivityEvent(
                lead_id=lead_id,
                activity_type=atype,
                occurred_at=when,
                points=points_for(atype),
                property_id=pid,
                metadata=meta or None,
            )
        )
        score = await update_score(uow, lead_id, now=now)
        await uow.commit()

    return RecordedActivity(event=event, score=score, lead_created=created)
