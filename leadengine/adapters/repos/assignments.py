# leadengine/adapters/repos/assignments.py
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ...domain.types import AssignmentPriority, AssignmentRecord, AssignmentStatus
from ...models import Assignment


def to_record(row: Assignment) -> AssignmentRecord:
    meta = None
    if row.metadata_json:
        try:
            meta = json.loads(row.metadata_json)
        except (TypeError, ValueError):
            meta = None
    return AssignmentRecord(
        id=row.id,
        lead_id=row.lead_id,
        agent_id=row.agent_id,
        assigned_at=row.assigned_at,
        status=AssignmentStatus(row.status),
        reason=row.reason,
        priority=AssignmentPriority(row.priority or AssignmentPriority.MEDIUM.value),
        notes=row.notes,
        metadata=meta,
        closed_at=row.closed_at,
    )


class AssignmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        *,
        lead_id: str,
        agent_id: str,
        reason: str,
        metadata: dict[str, Any] | None = None,
        priority: AssignmentPriority = AssignmentPriority.MEDIUM,
        notes: str | None = None,
        assigned_at: datetime | None = None,
    ) -> AssignmentRecord:
        """
        Always creates an ACTIVE row. The partial unique index rejects a second
        ACTIVE row for the same lead at flush time (IntegrityError).
        """
        row = Assignment(
            lead_id=lead_id,
            agent_id=agent_id,
            status=AssignmentStatus.ACTIVE.value,
            priority=priority.value,
            reason=reason,
            notes=notes,
            metadata_json=json.dumps(metadata, default=str) if metadata is not None else None,
            assigned_at=assigned_at or datetime.utcnow(),
        )
        self.session.add(row)
        await self.session.flush()
        return to_record(row)

    async def get(self, assignment_id: int) -> Assignment | None:
        return await self.session.get(Assignment, assignment_id)

    async def active_lead_ids(self, lead_ids: Iterable[str]) -> set[str]:
        ids = list(lead_ids)
        if not ids:
            return set()
        q = (
            select(Assignment.lead_id)
            .where(Assignment.lead_id.in_(ids))
            .where(Assignment.status == AssignmentStatus.ACTIVE.value)
        )
        return set((await self.session.execute(q)).scalars().all())

    async def find(
        self,
        *,
        status: AssignmentStatus | None = None,
        agent_id: str | None = None,
        lead_id: str | None = None,
        limit: int = 100,
    ) -> list[AssignmentRecord]:
        q = select(Assignment)
        if status is not None:
            q = q.where(Assignment.status == status.value)
        if agent_id is not None:
            q = q.where(Assignment.agent_id == agent_id)
        if lead_id is not None:
            q = q.where(Assignment.lead_id == lead_id)
        q = q.order_by(Assignment.assigned_at.desc(), Assignment.id.desc()).limit(limit)
        return [to_record(r) for r in (await self.session.execute(q)).scalars().all()]

    async def mark_closed(
        self,
        row: Assignment,
        *,
        status: AssignmentStatus,
        closed_at: datetime,
        notes: str | None = None,
    ) -> AssignmentRecord:
        row.status = status.value
        row.closed_at = closed_at
        if notes:
            row.notes = f"{row.notes} | {notes}" if row.notes else notes
        await self.session.flush()
        return to_record(row)
