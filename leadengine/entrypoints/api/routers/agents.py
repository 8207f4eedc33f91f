# leadengine/entrypoints/api/routers/agents.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ..deps import get_uow
from ....schemas import AgentOut
from ....service_layer.capacity import agent_stats
from ....service_layer.unit_of_work import SqlAlchemyUnitOfWork

router = APIRouter(tags=["agents"])


@router.get("/agents", response_model=list[AgentOut])
async def list_agents(
    active_only: bool = Query(False),
    uow: SqlAlchemyUnitOfWork = Depends(get_uow),
) -> list[AgentOut]:
    async with uow:
        profiles = await agent_stats(uow, active_only=active_only)
    return [AgentOut.from_profile(a) for a in profiles]
