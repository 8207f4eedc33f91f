# leadengine/service_layer/jobruns.py
from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from ..models import JobRun, JobRunStatus

log = logging.getLogger(__name__)


async def start_job(session: AsyncSession, job_name: str, meta: dict[str, Any] | None = None) -> JobRun:
    jr = JobRun(
        job_name=job_name,
        started_at=datetime.utcnow(),
        status=JobRunStatus.running,
        meta_json=json.dumps(meta or {}, default=str),
    )
    session.add(jr)
    await session.flush()
    return jr


async def finish_job_success(session: AsyncSession, jr: JobRun, summary: dict[str, Any]) -> None:
    jr.status = JobRunStatus.success
    jr.finished_at = datetime.utcnow()
    jr.summary_json = json.dumps(summary, default=str)
    jr.error = None
    await session.flush()


async def finish_job_fail(session: AsyncSession, jr: JobRun, err: Exception) -> None:
    jr.status = JobRunStatus.failed
    jr.finished_at = datetime.utcnow()
    jr.error = f"{type(err).__name__}: {err}"
    await session.flush()


@dataclass
class JobHandle:
    run: JobRun
    summary: dict[str, Any] = field(default_factory=dict)


@asynccontextmanager
async def tracked_job(session: AsyncSession, job_name: str, meta: dict[str, Any] | None = None) -> AsyncIterator[JobHandle]:
    """
    Record a JobRun around a block. The running row is committed up front; on
    error the block's uncommitted work is rolled back, the failure is stored
    and the exception re-raised.
    """
    handle = JobHandle(run=await start_job(session, job_name, meta))
    await session.commit()
    try:
        yield handle
    except Exception as e:
        await session.rollback()
        await session.refresh(handle.run)
        await finish_job_fail(session, handle.run, e)
        await session.commit()
        log.warning("job %s failed: %s", job_name, e)
        raise
    await finish_job_success(session, handle.run, handle.summary)
    await session.commit()
