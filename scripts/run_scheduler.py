from __future__ import annotations

import asyncio
import logging

from leadengine.config import settings
from leadengine.db import engine
from leadengine.jobs.scheduler import build_scheduler, run_rescore
from leadengine.models import Base

log = logging.getLogger("leadengine.scheduler")


def _configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(levelname)s:%(name)s:%(message)s",
    )
    # Quiet the usual offenders
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


async def main() -> None:
    _configure_logging()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Bring stale scores up to date before the first interval elapses
    if settings.SCHED_RESCORE_ENABLED:
        summary = await run_rescore()
        log.info("startup rescore: %s", summary)

    scheduler = build_scheduler()
    scheduler.start()
    log.info("Scheduler started (rescore every %d min)", settings.SCHED_RESCORE_INTERVAL_MINUTES)

    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown()
        log.info("Scheduler stopped")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
