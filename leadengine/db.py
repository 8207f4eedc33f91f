from __future__ import annotations

from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import settings


def enable_sqlite_savepoints(engine: AsyncEngine) -> AsyncEngine:
    """
    pysqlite/aiosqlite defer BEGIN, which breaks SAVEPOINT. Let SQLAlchemy own
    transaction start instead (recipe from the SQLAlchemy SQLite dialect docs).
    """
    if engine.dialect.name != "sqlite":
        return engine

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # noqa: ARG001
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


engine: AsyncEngine = enable_sqlite_savepoints(
    create_async_engine(settings.LEADENGINE_DB_URL, echo=False, future=True)
)

# Canonical async session factory
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def async_session() -> AsyncSession:
    """
    Convenience context manager used in jobs and scripts.
    """
    async with AsyncSessionLocal() as session:
        yield session
