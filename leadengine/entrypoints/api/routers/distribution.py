# leadengine/entrypoints/api/routers/distribution.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..deps import get_uow, http_error, require_api_key
from ....domain.errors import LeadEngineError
from ....domain.types import AssignmentPriority
from ....schemas import DistributeIn, DistributionOut
from ....service_layer.distribution import distribute
from ....service_layer.jobruns import tracked_job
from ....service_layer.unit_of_work import SqlAlchemyUnitOfWork

router = APIRouter(tags=["distribution"])


@router.post("/distribution/run", response_model=DistributionOut, dependencies=[Depends(require_api_key)])
async def run_distribution(body: DistributeIn, uow: SqlAlchemyUnitOfWork = Depends(get_uow)) -> DistributionOut:
    """
    Runs one batch. Every call leaves a job_runs row behind, including the ones
    rejected with 409 because no agent or lead was available.
    """
    meta = {
        "policy": body.rule.type,
        "lead_ids": body.lead_ids,
        "agent_ids": body.agent_ids,
        "priority": body.priority,
    }
    async with uow:
        assert uow.session is not None
        try:
            async with tracked_job(uow.session, "distribution", meta) as job:
                res = await distribute(
                    uow,
                    body.rule.to_rule(),
                    body.lead_ids,
                    body.agent_ids,
                    priority=AssignmentPriority(body.priority),
                    notes=body.notes,
                )
                job.summary = {
                    "total_leads": res.stats.total_leads,
                    "assigned_leads": res.stats.assigned_leads,
                    "failed_assignments": res.stats.failed_assignments,
                }
        except LeadEngineError as e:
            raise http_error(e) from e

    return DistributionOut.from_result(res)
