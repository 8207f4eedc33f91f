# leadengine/entrypoints/api/routers/leads.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from ..deps import get_uow, http_error, require_api_key
from ....domain.errors import LeadEngineError
from ....domain.types import LeadGrade
from ....schemas import (
    ActivityIn,
    ActivityOut,
    Grade,
    LeadScoreOut,
    RecalculateIn,
    RecalculateOut,
    ScoreOut,
)
from ....service_layer.activity import record_activity
from ....service_layer.jobruns import tracked_job
from ....service_layer.scoring import get_score, list_lead_scores, recalculate_scores
from ....service_layer.unit_of_work import SqlAlchemyUnitOfWork

router = APIRouter(tags=["leads"])


@router.post("/leads/activity", response_model=ActivityOut, dependencies=[Depends(require_api_key)])
async def post_activity(body: ActivityIn, uow: SqlAlchemyUnitOfWork = Depends(get_uow)) -> ActivityOut:
    async with uow:
        try:
            rec = await record_activity(
                uow,
                body.lead_id,
                body.activity_type,
                body.metadata,
                property_id=body.property_id,
                occurred_at=body.occurred_at,
            )
        except LeadEngineError as e:
            raise http_error(e) from e

    assert rec.event.id is not None
    return ActivityOut(
        event_id=rec.event.id,
        lead_id=rec.event.lead_id,
        activity_type=rec.event.activity_type.value,
        points=rec.event.points,
        lead_created=rec.lead_created,
        score=ScoreOut.from_result(rec.event.lead_id, rec.score),
    )


@router.get("/leads/scores", response_model=list[LeadScoreOut])
async def lead_scores(
    grade: Grade | None = Query(default=None),
    min_score: int | None = Query(default=None, ge=0, le=100),
    max_score: int | None = Query(default=None, ge=0, le=100),
    limit: int = Query(100, ge=1, le=1000),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
) -> list[LeadScoreOut]:
    if min_score is not None and max_score is not None and min_score > max_score:
        raise HTTPException(status_code=422, detail="min_score must be <= max_score")

    async with uow:
        rows = await list_lead_scores(
            uow,
            grade=LeadGrade(grade) if grade else None,
            min_score=min_score,
            max_score=max_score,
            limit=limit,
        )
    return [LeadScoreOut.from_profile(p) for p in rows]


@router.get("/leads/unassigned", response_model=list[LeadScoreOut])
async def unassigned_leads(
    min_score: int | None = Query(default=None, ge=0, le=100),
    grade: Grade | None = Query(default=None),
    serious_only: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
) -> list[LeadScoreOut]:
    async with uow:
        rows = await uow.leads.find_unassigned(
            min_score=min_score,
            grade=LeadGrade(grade) if grade else None,
            serious_only=serious_only,
            limit=limit,
        )
    return [LeadScoreOut.from_profile(p) for p in rows]


@router.get("/leads/{lead_id}/score", response_model=ScoreOut)
async def lead_score(lead_id: str, uow: SqlAlchemyUnitOfWork = Depends(get_uow)) -> ScoreOut:
    async with uow:
        try:
            res = await get_score(uow, lead_id)
        except LeadEngineError as e:
            raise http_error(e) from e
    return ScoreOut.from_result(lead_id, res)


@router.post("/leads/recalculate", response_model=RecalculateOut, dependencies=[Depends(require_api_key)])
async def recalculate(
    body: RecalculateIn | None = None,
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
) -> RecalculateOut:
    lead_ids = body.lead_ids if body else None
    async with uow:
        assert uow.session is not None
        async with tracked_job(uow.session, "rescore_api", {"lead_ids": lead_ids}) as job:
            res = await recalculate_scores(uow, lead_ids)
            job.summary = {"recalculated": res.recalculated, "failed": res.failed}
    return RecalculateOut(
        recalculated=res.recalculated,
        failed=res.failed,
        failed_lead_ids=res.failed_lead_ids,
    )
