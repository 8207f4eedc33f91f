# leadengine/jobs/scheduler.py
from __future__ import annotations

import asyncio
import logging
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import func, select

from ..config import settings
from ..models import Lead
from ..service_layer.jobruns import tracked_job
from ..service_layer.scoring import recalculate_scores
from ..service_layer.unit_of_work import SqlAlchemyUnitOfWork

log = logging.getLogger(__name__)


async def run_rescore(uow: SqlAlchemyUnitOfWork | None = None) -> dict[str, Any]:
    """
    Periodic re-score so time-dependent components (days active, recent
    activity) decay even for leads with no new events.
    Quiet when there are no leads.
    """
    uow = uow or SqlAlchemyUnitOfWork()
    async with uow:
        assert uow.session is not None
        n_leads = (await uow.session.execute(select(func.count()).select_from(Lead))).scalar_one()
        if int(n_leads) == 0:
            return {"recalculated": 0, "failed": 0}

        async with tracked_job(uow.session, "rescore_scheduled", {"leads": int(n_leads)}) as job:
            res = await recalculate_scores(uow)
            job.summary = {"recalculated": res.recalculated, "failed": res.failed}

    log.info("scheduled rescore: %d recalculated, %d failed", res.recalculated, res.failed)
    return job.summary


def build_scheduler() -> AsyncIOScheduler:
    sched = AsyncIOScheduler()

    if settings.SCHED_RESCORE_ENABLED:
        sched.add_job(
            lambda: asyncio.create_task(run_rescore()),
            "interval",
            minutes=settings.SCHED_RESCORE_INTERVAL_MINUTES,
        )

    return sched
