# leadengine/service_layer/capacity.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable

from ..domain.errors import AssignmentNotFound, ValidationError
from ..domain.types import AgentProfile, AssignmentRecord, AssignmentStatus
from .unit_of_work import UnitOfWork

log = logging.getLogger(__name__)

_TERMINAL: set[AssignmentStatus] = {AssignmentStatus.COMPLETED, AssignmentStatus.CANCELLED}


async def agent_stats(
    uow: UnitOfWork,
    agent_ids: Iterable[str] | None = None,
    *,
    active_only: bool = False,
) -> list[AgentProfile]:
    """Load and performance for each agent, derived from assignment rows."""
    return await uow.agents.list_profiles(agent_ids=agent_ids, active_only=active_only)


async def record_assignment_created(uow: UnitOfWork, record: AssignmentRecord) -> None:
    # current_load / total_assignments follow from the new row itself
    await uow.agents.touch_last_assignment(record.agent_id, record.assigned_at)


async def close_assignment(
    uow: UnitOfWork,
    assignment_id: int,
    status: AssignmentStatus | str,
    *,
    notes: str | None = None,
    closed_at: datetime | None = None,
) -> AssignmentRecord:
    """
    Hook for the sales workflow: ACTIVE -> COMPLETED | CANCELLED.

    Frees one unit of the agent's load; COMPLETED also counts toward the
    agent's completed deals and close time.
    """
    try:
        target = AssignmentStatus(status)
    except ValueError:
        raise ValidationError(f"Invalid assignment status: {status!r}") from None
    if target not in _TERMINAL:
        raise ValidationError(f"Assignments can only be closed as COMPLETED or CANCELLED, got {target.value}")

    row = await uow.assignments.get(assignment_id)
    if row is None:
        raise AssignmentNotFound(assignment_id)
    if row.status != AssignmentStatus.ACTIVE.value:
        raise ValidationError(f"Assignment {assignment_id} is already {row.status}")

    record = await uow.assignments.mark_closed(
        row,
        status=target,
        closed_at=closed_at or datetime.utcnow(),
        notes=notes,
    )
    log.info("assignment %s closed as %s (agent=%s lead=%s)", assignment_id, target.value, record.agent_id, record.lead_id)
    return record
