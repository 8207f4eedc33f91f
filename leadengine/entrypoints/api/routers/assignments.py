# leadengine/entrypoints/api/routers/assignments.py
from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query

from ..deps import get_uow, http_error, require_api_key
from ....domain.errors import LeadEngineError
from ....domain.types import AssignmentStatus
from ....schemas import AssignmentCloseIn, AssignmentOut
from ....service_layer.capacity import close_assignment
from ....service_layer.unit_of_work import SqlAlchemyUnitOfWork

router = APIRouter(tags=["assignments"])


@router.get("/assignments", response_model=list[AssignmentOut])
async def list_assignments(
    status: Literal["ACTIVE", "COMPLETED", "CANCELLED"] | None = Query(default=None),
    agent_id: str | None = Query(default=None),
    lead_id: str | None = Query(default=None),
    limit: int = Query(100, ge=1, le=1000),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
) -> list[AssignmentOut]:
    async with uow:
        rows = await uow.assignments.find(
            status=AssignmentStatus(status) if status else None,
            agent_id=agent_id,
            lead_id=lead_id,
            limit=limit,
        )
    return [AssignmentOut.from_record(r) for r in rows]


@router.post(
    "/assignments/{assignment_id}/close",
    response_model=AssignmentOut,
    dependencies=[Depends(require_api_key)],
)
async def close(
    assignment_id: int,
    body: AssignmentCloseIn,
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
) -> AssignmentOut:
    async with uow:
        try:
            rec = await close_assignment(
                uow,
                assignment_id,
                body.status,
                notes=body.notes,
                closed_at=body.closed_at,
            )
        except LeadEngineError as e:
            raise http_error(e) from e
    return AssignmentOut.from_record(rec)
