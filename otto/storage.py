"""Shared relational store: declarative base, column types and engine lifecycle.

Modules declare their tables on :class:`Base` and create them during
``initialize`` with :func:`init_storage`. The application opens one async
engine per process and hands its session factory to modules.

Usage
-----
>>> storage = await open_storage("sqlite+aiosqlite:///data.db")
>>> async with storage.session_factory() as session, session.begin():
...     ...
>>> await storage.close()

"""

from __future__ import annotations

import dataclasses as dc
import datetime as dt
import typing as typ

from sqlalchemy import DateTime, event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from otto.logging import get_logger, log_info

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Dialect

__all__ = ["Base", "Storage", "UTCDateTime", "init_storage", "open_storage"]

logger = get_logger(__name__)


class TimezoneAwareRequiredError(ValueError):
    """Raised when a naive datetime is bound to a UTC column."""

    def __init__(self) -> None:
        """Attach a consistent message."""
        super().__init__("datetime values must be timezone aware")


class Base(DeclarativeBase):
    """Declarative base shared by module tables."""


class UTCDateTime(TypeDecorator[dt.datetime]):
    """DateTime wrapper that round-trips UTC tzinfo even on SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Force bound datetime values to UTC with tzinfo."""
        if value is None:
            return None
        if value.tzinfo is None:
            raise TimezoneAwareRequiredError
        return value.astimezone(dt.UTC)

    def process_result_value(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Ensure result datetimes are UTC and timezone aware."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


@dc.dataclass(frozen=True, slots=True)
class Storage:
    """Engine and session factory for the shared store."""

    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]

    async def close(self) -> None:
        """Dispose of the engine and its connection pool."""
        await self.engine.dispose()


def _enable_sqlite_foreign_keys(dbapi_connection: typ.Any, _record: object) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


async def open_storage(url: str) -> Storage:
    """Create the engine for *url* and verify connectivity.

    Raises
    ------
    sqlalchemy.exc.SQLAlchemyError
        If the database cannot be reached.

    """
    engine = create_async_engine(url)
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        await engine.dispose()
        raise
    log_info(logger, "storage opened dialect=%s", engine.dialect.name)
    return Storage(
        engine=engine,
        session_factory=async_sessionmaker(engine, expire_on_commit=False),
    )


async def init_storage(engine: AsyncEngine) -> None:
    """Create all tables registered with :class:`Base` if they are absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
