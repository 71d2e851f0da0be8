"""Unit-test fixtures for the on-call rotation service."""

from __future__ import annotations

import random
import typing as typ

import pytest

from otto.oncall.models import RotationPolicy
from otto.oncall.notifier import OnCallNotifier
from otto.oncall.service import OnCallService
from otto.telemetry import Telemetry

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from tests.helpers.doubles import MutableClock, RecordingPlatform

type ServiceFactory = cabc.Callable[..., cabc.Awaitable[OnCallService]]


@pytest.fixture
def telemetry() -> Telemetry:
    """Return a telemetry instance with a private registry."""
    return Telemetry()


@pytest.fixture
def oncall_service(
    session_factory: async_sessionmaker[AsyncSession],
    platform: RecordingPlatform,
    clock: MutableClock,
    telemetry: Telemetry,
) -> ServiceFactory:
    """Return a factory creating a service with one seeded schedule.

    The factory registers *members* (all active unless listed in
    ``inactive``) and a schedule named ``primary`` with *policy*.
    """

    async def build(  # noqa: PLR0913
        members: cabc.Sequence[str] = ("alice", "bob", "carol"),
        *,
        policy: RotationPolicy = RotationPolicy.ROUND_ROBIN,
        inactive: cabc.Collection[str] = (),
        seed: int = 1234,
        max_skip: int | None = None,
        schedule: str = "primary",
    ) -> OnCallService:
        service = OnCallService(
            session_factory,
            notifier=OnCallNotifier(platform, telemetry=telemetry),
            max_skip=max_skip,
            rng=random.Random(seed),  # noqa: S311 - deterministic test rotation
            clock=clock,
            telemetry=telemetry,
        )
        for github in members:
            await service.upsert_responder(github, active=github not in inactive)
        await service.upsert_schedule(schedule, policy=policy)
        await service.set_schedule_members(schedule, list(members))
        return service

    return build
