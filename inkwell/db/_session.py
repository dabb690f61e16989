"""
Database setup — engine, session factory, write transactions.

    async with write_session(session_factory) as session:
        ...  # SQLite: BEGIN IMMEDIATE, commits on exit

Plain sessions autobegin a deferred transaction, so readers never queue
behind a writer that holds the write lock.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from inkwell._config import Settings
from inkwell.db._tables import Base

IMMEDIATE = "inkwell_immediate"
"""Connection execution option asking SQLite for the write lock at BEGIN."""


def _control_transactions(engine: AsyncEngine) -> None:
    """
    Take over BEGIN from the driver.

    Connections flagged with IMMEDIATE start with BEGIN IMMEDIATE, so writers
    queue on the busy timeout instead of failing on a lock upgrade. Every
    other transaction is a plain deferred BEGIN.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        if conn.get_execution_options().get(IMMEDIATE, False):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


async def create_database(
    settings: Settings | None = None,
) -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Create tables and return (session_factory, engine)."""
    settings = settings or Settings()
    is_sqlite = settings.database_url.startswith("sqlite")

    engine = create_async_engine(
        settings.database_url,
        echo=False,
        connect_args={"timeout": settings.sqlite_busy_timeout} if is_sqlite else {},
    )
    if is_sqlite:
        _control_transactions(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, expire_on_commit=False), engine


@asynccontextmanager
async def write_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """
    Session inside a transaction that intends to write.

    Commits when the block exits normally, rolls back on an exception.
    """
    async with session_factory() as session, session.begin():
        # First connection use of the transaction, so the flag reaches BEGIN
        await session.connection(execution_options={IMMEDIATE: True})
        yield session


__all__ = ("create_database", "write_session", "IMMEDIATE")
