"""Shared fixtures for BDD feature tests."""

from __future__ import annotations

import typing as typ

import pytest

if typ.TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def feature_db_url(tmp_path: Path) -> str:
    """Return an aiosqlite URL for a scenario-local database file."""
    return f"sqlite+aiosqlite:///{tmp_path / 'scenario.db'}"
