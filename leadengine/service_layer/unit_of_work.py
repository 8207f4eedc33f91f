# leadengine/service_layer/unit_of_work.py
from __future__ import annotations

from typing import Any, AsyncContextManager, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..adapters.repos.activities import ActivityRepository
from ..adapters.repos.agents import AgentRepository
from ..adapters.repos.assignments import AssignmentRepository
from ..adapters.repos.leads import LeadRepository
from ..db import AsyncSessionLocal


class UnitOfWork(Protocol):
    session: AsyncSession | None
    leads: LeadRepository
    activities: ActivityRepository
    agents: AgentRepository
    assignments: AssignmentRepository

    async def __aenter__(self) -> "UnitOfWork": ...
    async def __aexit__(self, exc_type, exc, tb) -> None: ...
    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    def savepoint(self) -> AsyncContextManager[Any]: ...


class SqlAlchemyUnitOfWork:
    """
    Commits on clean exit, rolls back on exception.
    savepoint() scopes a single write so one failure can be undone alone.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal) -> None:
        self.session_factory = session_factory
        self.session: AsyncSession | None = None

    async def __aenter__(self) -> "SqlAlchemyUnitOfWork":
        self.session = self.session_factory()
        self.leads = LeadRepository(self.session)
        self.activities = ActivityRepository(self.session)
        self.agents = AgentRepository(self.session)
        self.assignments = AssignmentRepository(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc:
                await self.rollback()
            else:
                await self.commit()
        finally:
            if self.session:
                await self.session.close()

    async def commit(self) -> None:
        assert self.session is not None
        await self.session.commit()

    async def rollback(self) -> None:
        assert self.session is not None
        await self.session.rollback()

    def savepoint(self):
        assert self.session is not None
        return self.session.begin_nested()
