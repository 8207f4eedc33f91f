# leadengine/service_layer/demo_seed.py
from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Agent, AgentStatus, Property

DEMO_AGENTS: list[dict[str, Any]] = [
    {"id": "agent-downtown", "name": "Dana Whitfield", "territory": "downtown", "capacity_limit": 25},
    {"id": "agent-marina", "name": "Sam Okafor", "territory": "marina", "capacity_limit": 25},
    {"id": "agent-hills", "name": "Priya Raman", "territory": "hills", "capacity_limit": 15},
]

DEMO_PROPERTIES: list[dict[str, Any]] = [
    {"title": "Loft on 5th", "city": "Downtown", "property_type": "apartment", "price": 420_000.0},
    {"title": "Harbor View", "city": "Marina", "property_type": "villa", "price": 1_250_000.0},
    {"title": "Canyon Retreat", "city": "Hills", "property_type": "townhouse", "price": 780_000.0},
]


async def seed_demo(session: AsyncSession) -> dict[str, Any]:
    """
    Idempotent demo seed:
    - upserts three agents (by id) and three properties (by title)
    - safe to run multiple times
    """
    for data in DEMO_AGENTS:
        row = await session.get(Agent, data["id"])
        if row is None:
            session.add(Agent(status=AgentStatus.ACTIVE, email=f"{data['id']}@example.com", **data))
        else:
            row.name = data["name"]
            row.territory = data["territory"]
            row.capacity_limit = data["capacity_limit"]
            row.status = AgentStatus.ACTIVE

    for data in DEMO_PROPERTIES:
        prop = (await session.execute(select(Property).where(Property.title == data["title"]))).scalars().first()
        if prop is None:
            session.add(Property(**data))
        else:
            prop.city = data["city"]
            prop.property_type = data["property_type"]
            prop.price = data["price"]

    await session.flush()
    return {"agents": len(DEMO_AGENTS), "properties": len(DEMO_PROPERTIES)}
