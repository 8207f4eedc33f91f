# leadengine/entrypoints/api/routers/health.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from ..deps import require_api_key
from ....config import settings
from ....domain.policies import registered_policies

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/debug/config", dependencies=[Depends(require_api_key)])
def debug_config() -> dict[str, Any]:
    def _redact(v: str | None) -> str | None:
        if not v:
            return v
        if len(v) <= 8:
            return "***"
        return v[:4] + "***" + v[-4:]

    return {
        "ENV": settings.ENV,
        "LEADENGINE_DB_URL": settings.LEADENGINE_DB_URL,
        "API_KEY": _redact(settings.API_KEY),
        "DEFAULT_DISTRIBUTION_LIMIT": settings.DEFAULT_DISTRIBUTION_LIMIT,
        "SCHED_RESCORE_ENABLED": settings.SCHED_RESCORE_ENABLED,
        "SCHED_RESCORE_INTERVAL_MINUTES": settings.SCHED_RESCORE_INTERVAL_MINUTES,
        "policies": [p.value for p in registered_policies()],
    }
