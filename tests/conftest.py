# tests/conftest.py
from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from leadengine.db import enable_sqlite_savepoints
from leadengine.models import Agent, AgentStatus, Base, Lead
from leadengine.service_layer.unit_of_work import SqlAlchemyUnitOfWork

NOW = datetime(2026, 3, 10, 12, 0, 0)


@pytest.fixture(autouse=True)
async def _reset_db(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield


@pytest.fixture
async def engine():
    """
    Fresh in-memory DB per test. StaticPool makes all connections share the same
    in-memory database for the lifetime of this engine fixture.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def async_session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=True)


@pytest.fixture
def uow_factory(async_session_maker):
    def _make() -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork(session_factory=async_session_maker)

    return _make


@pytest.fixture
async def seeded_agents(async_session_maker):
    async with async_session_maker() as session:
        session.add_all(
            [
                Agent(id="a1", name="Alice", territory="downtown", status=AgentStatus.ACTIVE),
                Agent(id="a2", name="Bob", territory="marina", status=AgentStatus.ACTIVE),
                Agent(id="a3", name="Cara", territory="hills", status=AgentStatus.ACTIVE),
                Agent(id="a9", name="Gone", territory="downtown", status=AgentStatus.INACTIVE),
            ]
        )
        await session.commit()
    return ["a1", "a2", "a3"]


@pytest.fixture
def add_leads(async_session_maker):
    """
    add_leads({"l1": 90, "l2": 40}) inserts leads with the given stored scores.
    """

    async def _add(scores: dict[str, int], **fields) -> list[str]:
        async with async_session_maker() as session:
            for lead_id, score in scores.items():
                session.add(Lead(id=lead_id, score=score, created_at=NOW, **fields))
            await session.commit()
        return list(scores)

    return _add
