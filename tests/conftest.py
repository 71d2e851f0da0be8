"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import typing as typ

import pytest
import pytest_asyncio

import otto.oncall.storage  # noqa: F401 - registers on-call tables
from otto.config import AppConfig
from otto.storage import init_storage, open_storage
from tests.helpers.doubles import MutableClock, RecordingPlatform
from tests.helpers.payloads import WEBHOOK_SECRET

if typ.TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from otto.storage import Storage


def sqlite_url(tmp_path: Path, name: str = "otto_test.db") -> str:
    """Return an aiosqlite URL for a database file under *tmp_path*."""
    return f"sqlite+aiosqlite:///{tmp_path / name}"


@pytest_asyncio.fixture
async def storage(tmp_path: Path) -> typ.AsyncIterator[Storage]:
    """Yield an opened store with every table created."""
    opened = await open_storage(sqlite_url(tmp_path))
    try:
        await init_storage(opened.engine)
        yield opened
    finally:
        await opened.close()


@pytest.fixture
def session_factory(storage: Storage) -> async_sessionmaker[AsyncSession]:
    """Return the session factory of the test store."""
    return storage.session_factory


@pytest.fixture
def clock() -> MutableClock:
    """Return a fresh fake clock."""
    return MutableClock()


@pytest.fixture
def platform() -> RecordingPlatform:
    """Return a recording platform client."""
    return RecordingPlatform()


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Return a valid configuration using a temporary database."""
    return AppConfig(
        webhook_secret=WEBHOOK_SECRET,
        host="127.0.0.1",
        port=0,
        db_path=str(tmp_path / "otto.db"),
        shutdown_timeout_seconds=5.0,
    )
