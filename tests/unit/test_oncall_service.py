"""Unit tests for OnCallService assignment and task lifecycle."""

from __future__ import annotations

import asyncio
import collections
import random
import typing as typ

import pytest
from sqlalchemy import select

from otto.oncall.errors import (
    InvalidTransitionError,
    NotAssigneeError,
    ResponderNotFoundError,
    ScheduleNotFoundError,
    TaskNotFoundError,
)
from otto.oncall.models import (
    AssignmentReason,
    RotationPolicy,
    TaskRequest,
    TaskStatus,
)
from otto.oncall.storage import ScheduleMembership
from otto.platform import PlatformAPIError
from tests.helpers.payloads import REPO

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from otto.oncall.models import TaskOpenResult
    from otto.oncall.service import OnCallService
    from otto.telemetry import Telemetry
    from tests.helpers.doubles import MutableClock, RecordingPlatform
    from tests.unit.conftest import ServiceFactory


async def _open(
    service: OnCallService, number: int, schedule: str = "primary"
) -> TaskOpenResult:
    return await service.open_task(
        schedule, TaskRequest(REPO, number, f"Issue {number}")
    )


async def _assignees(service: OnCallService, numbers: typ.Iterable[int]) -> list[str]:
    result: list[str] = []
    for number in numbers:
        opened = await _open(service, number)
        assert opened.task.assignee is not None, f"issue {number} should be assigned"
        result.append(opened.task.assignee)
    return result


class TestRoundRobin:
    """Round-robin assignment through the service."""

    @pytest.mark.asyncio
    async def test_tasks_cycle_through_members(
        self, oncall_service: ServiceFactory
    ) -> None:
        """Consecutive tasks go to consecutive positions, wrapping."""
        service = await oncall_service()

        assignees = await _assignees(service, range(1, 5))

        assert assignees == ["alice", "bob", "carol", "alice"], "cyclic order"

    @pytest.mark.asyncio
    async def test_inactive_members_are_skipped(
        self, oncall_service: ServiceFactory
    ) -> None:
        """Inactive responders never receive tasks."""
        service = await oncall_service(inactive={"bob"})

        assignees = await _assignees(service, range(1, 5))

        assert assignees == ["alice", "carol", "alice", "carol"], "bob skipped"

    @pytest.mark.asyncio
    async def test_assignment_notifies_platform(
        self, oncall_service: ServiceFactory, platform: RecordingPlatform
    ) -> None:
        """Assignments assign the issue and post a comment."""
        service = await oncall_service()

        await _open(service, 7)

        assert platform.assignments == [(REPO, 7, ("alice",))], "issue assigned"
        assert len(platform.comments) == 1, "one comment posted"
        assert "@alice" in platform.comments[0][2], "comment mentions assignee"


class TestSequential:
    """Sequential assignment through the service."""

    @pytest.mark.asyncio
    async def test_same_responder_until_acknowledged(
        self, oncall_service: ServiceFactory
    ) -> None:
        """The cursor stays put until the current responder acknowledges."""
        service = await oncall_service(policy=RotationPolicy.SEQUENTIAL)

        first = await _assignees(service, [1, 2])
        await service.acknowledge(REPO, 1, "alice")
        after_ack = await _assignees(service, [3])

        assert first == ["alice", "alice"], "same responder before ack"
        assert after_ack == ["bob"], "next responder after ack"

    @pytest.mark.asyncio
    async def test_completing_assigned_task_advances(
        self, oncall_service: ServiceFactory
    ) -> None:
        """Closing an unacknowledged task also moves the cursor on."""
        service = await oncall_service(policy=RotationPolicy.SEQUENTIAL)

        await _open(service, 1)
        await service.complete(REPO, 1)

        assert await _assignees(service, [2]) == ["bob"], "cursor advanced"


@pytest.mark.asyncio
async def test_random_policy_is_reproducible_with_seed(
    oncall_service: ServiceFactory,
) -> None:
    """A seeded random source yields the same picks as the bare rng."""
    service = await oncall_service(policy=RotationPolicy.RANDOM, seed=99)
    expected_rng = random.Random(99)  # noqa: S311 - deterministic test rotation
    members = ["alice", "bob", "carol"]
    expected = [expected_rng.choice(members) for _ in range(6)]

    assert await _assignees(service, range(1, 7)) == expected, "seeded picks"


class TestPending:
    """Tasks opened while nobody is available."""

    @pytest.mark.asyncio
    async def test_no_active_member_leaves_task_pending(
        self, oncall_service: ServiceFactory, platform: RecordingPlatform
    ) -> None:
        """Without an active member the task stays pending and says so."""
        service = await oncall_service(inactive={"alice", "bob", "carol"})

        opened = await _open(service, 7)

        assert opened.created, "task should be created"
        assert opened.task.status is TaskStatus.PENDING, "task should be pending"
        assert opened.task.assignee is None, "nobody assigned"
        assert platform.assignments == [], "no assignment call"
        assert "no active responder" in platform.comments[0][2], "pending notice"

    @pytest.mark.asyncio
    async def test_activation_assigns_pending_task(
        self, oncall_service: ServiceFactory, platform: RecordingPlatform
    ) -> None:
        """Activating a responder picks up the pending backlog."""
        service = await oncall_service(inactive={"alice", "bob", "carol"})
        await _open(service, 7)

        await service.set_responder_active("bob", active=True)

        task = await service.get_task(REPO, 7)
        assert task is not None, "task should exist"
        assert task.status is TaskStatus.ASSIGNED, "task assigned after activation"
        assert task.assignee == "bob", "only bob is active"
        assert platform.assigned_logins() == ["bob"], "platform notified"

    @pytest.mark.asyncio
    async def test_disabled_schedule_keeps_tasks_pending(
        self, oncall_service: ServiceFactory
    ) -> None:
        """A disabled schedule assigns nobody until re-enabled."""
        service = await oncall_service()
        await service.upsert_schedule("primary", enabled=False)

        opened = await _open(service, 7)
        assert opened.task.status is TaskStatus.PENDING, "disabled means pending"

        await service.upsert_schedule("primary", enabled=True)
        task = await service.get_task(REPO, 7)
        assert task is not None, "task should exist"
        assert task.assignee == "alice", "re-enabling assigns the backlog"


class TestOpenTask:
    """Idempotency and validation of open_task."""

    @pytest.mark.asyncio
    async def test_reopening_open_issue_returns_existing_task(
        self, oncall_service: ServiceFactory
    ) -> None:
        """A second open for the same issue does not create a task."""
        service = await oncall_service()

        first = await _open(service, 7)
        second = await _open(service, 7)

        assert second.created is False, "second open should not create"
        assert second.task.id == first.task.id, "same task returned"
        assert await _assignees(service, [8]) == ["bob"], "cursor moved only once"

    @pytest.mark.asyncio
    async def test_completed_issue_can_be_opened_again(
        self, oncall_service: ServiceFactory
    ) -> None:
        """After completion a new task is created for the issue."""
        service = await oncall_service()
        first = await _open(service, 7)
        await service.complete(REPO, 7)

        again = await _open(service, 7)

        assert again.created, "a new task should be created"
        assert again.task.id != first.task.id, "new task id"

    @pytest.mark.asyncio
    async def test_unknown_schedule_raises(
        self, oncall_service: ServiceFactory
    ) -> None:
        """Opening on an unknown schedule raises ScheduleNotFoundError."""
        service = await oncall_service()

        with pytest.raises(ScheduleNotFoundError):
            await _open(service, 7, schedule="nightly")


class TestAcknowledge:
    """Acknowledgement rules."""

    @pytest.mark.asyncio
    async def test_only_assignee_may_acknowledge(
        self, oncall_service: ServiceFactory
    ) -> None:
        """Someone other than the assignee is rejected."""
        service = await oncall_service()
        await _open(service, 7)

        with pytest.raises(NotAssigneeError) as excinfo:
            await service.acknowledge(REPO, 7, "bob")

        assert excinfo.value.assignee == "alice", "error names the assignee"

    @pytest.mark.asyncio
    async def test_acknowledge_is_case_insensitive(
        self, oncall_service: ServiceFactory, clock: MutableClock
    ) -> None:
        """GitHub handles compare case-insensitively."""
        service = await oncall_service()
        await _open(service, 7)
        clock.advance(minutes=5)

        task = await service.acknowledge(REPO, 7, "ALICE")

        assert task.status is TaskStatus.ACKED, "task acknowledged"
        assert task.acked_at == clock.now, "ack time recorded"

    @pytest.mark.asyncio
    async def test_records_ack_latency(
        self,
        oncall_service: ServiceFactory,
        clock: MutableClock,
        telemetry: Telemetry,
    ) -> None:
        """Acknowledgement latency is observed in milliseconds."""
        service = await oncall_service()
        await _open(service, 7)
        clock.advance(minutes=5)

        await service.acknowledge(REPO, 7, "alice")

        assert (
            telemetry.value("otto_module_ack_latency_ms_sum", {"module": "oncall"})
            == 300_000
        ), "five minutes of latency recorded"

    @pytest.mark.asyncio
    async def test_acknowledging_twice_is_invalid(
        self, oncall_service: ServiceFactory
    ) -> None:
        """An acknowledged task cannot be acknowledged again."""
        service = await oncall_service()
        await _open(service, 7)
        await service.acknowledge(REPO, 7, "alice")

        with pytest.raises(InvalidTransitionError):
            await service.acknowledge(REPO, 7, "alice")

    @pytest.mark.asyncio
    async def test_pending_task_cannot_be_acknowledged(
        self, oncall_service: ServiceFactory
    ) -> None:
        """A pending task has nobody to acknowledge it."""
        service = await oncall_service(inactive={"alice", "bob", "carol"})
        await _open(service, 7)

        with pytest.raises(InvalidTransitionError):
            await service.acknowledge(REPO, 7, "alice")


class TestComplete:
    """Completion rules."""

    @pytest.mark.asyncio
    async def test_complete_closes_history(
        self, oncall_service: ServiceFactory, clock: MutableClock
    ) -> None:
        """Completing ends the open assignment row."""
        service = await oncall_service()
        opened = await _open(service, 7)
        clock.advance(minutes=10)

        task = await service.complete(REPO, 7)
        history = await service.task_history(opened.task.id)

        assert task.status is TaskStatus.COMPLETED, "task completed"
        assert task.completed_at == clock.now, "completion time recorded"
        assert [(h.responder, h.reason) for h in history] == [
            ("alice", AssignmentReason.ROTATION)
        ], "one rotation assignment"
        assert history[0].ended_at == clock.now, "assignment ended"

    @pytest.mark.asyncio
    async def test_unknown_issue_raises(self, oncall_service: ServiceFactory) -> None:
        """Completing an issue without a task raises TaskNotFoundError."""
        service = await oncall_service()

        with pytest.raises(TaskNotFoundError):
            await service.complete(REPO, 404)


class TestMembership:
    """Schedule membership maintenance."""

    @pytest.mark.asyncio
    async def test_removal_keeps_positions_contiguous(
        self,
        oncall_service: ServiceFactory,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """Removing a member renumbers the rest from zero."""
        service = await oncall_service(["alice", "bob", "carol", "dave"])

        info = await service.remove_member("primary", "bob")
        await service.add_member("primary", "bob")

        async with session_factory() as session:
            positions = list(
                await session.scalars(
                    select(ScheduleMembership.position)
                    .where(ScheduleMembership.schedule_id == info.id)
                    .order_by(ScheduleMembership.position)
                )
            )
        schedules = await service.list_schedules()

        assert info.members == ("alice", "carol", "dave"), "bob removed"
        assert positions == [0, 1, 2, 3], "positions contiguous"
        assert schedules[0].members == ("alice", "carol", "dave", "bob"), "appended"

    @pytest.mark.asyncio
    async def test_removal_keeps_cursor_on_same_responder(
        self, oncall_service: ServiceFactory
    ) -> None:
        """A cursor past the removed member keeps pointing at its responder."""
        service = await oncall_service()
        await _assignees(service, [1, 2])

        await service.remove_member("primary", "alice")

        assert await _assignees(service, [3]) == ["carol"], "carol is still next"

    @pytest.mark.asyncio
    async def test_unknown_responder_raises(
        self, oncall_service: ServiceFactory
    ) -> None:
        """Members must be registered responders."""
        service = await oncall_service()

        with pytest.raises(ResponderNotFoundError):
            await service.set_schedule_members("primary", ["alice", "zoe"])


@pytest.mark.asyncio
async def test_notification_failure_is_counted(
    oncall_service: ServiceFactory,
    platform: RecordingPlatform,
    telemetry: Telemetry,
) -> None:
    """Platform errors do not undo the assignment and are counted."""
    service = await oncall_service()
    platform.error = PlatformAPIError("rate limited", status_code=403)

    opened = await _open(service, 7)

    assert opened.task.assignee == "alice", "assignment survives the failure"
    assert (
        telemetry.value(
            "otto_module_errors_total", {"module": "oncall", "err_type": "notify"}
        )
        == 1
    ), "notification failure counted"


class TestConcurrentMutations:
    """Concurrent calls on one schedule are serialized."""

    @pytest.mark.asyncio
    async def test_parallel_opens_share_the_rotation_evenly(
        self, oncall_service: ServiceFactory
    ) -> None:
        """Six simultaneous opens give each of three members two tasks."""
        service = await oncall_service()

        results = await asyncio.gather(*(_open(service, n) for n in range(1, 7)))

        counts = collections.Counter(r.task.assignee for r in results)
        assert counts == {"alice": 2, "bob": 2, "carol": 2}, f"uneven: {counts}"
        (schedule,) = await service.list_schedules()
        assert schedule.current_rotation_idx == 0, "cursor back at the first member"

    @pytest.mark.asyncio
    async def test_simultaneous_redelivery_opens_one_task(
        self, oncall_service: ServiceFactory, platform: RecordingPlatform
    ) -> None:
        """Two concurrent opens for one issue create a single task."""
        service = await oncall_service()

        first, second = await asyncio.gather(_open(service, 7), _open(service, 7))

        assert [first.created, second.created].count(True) == 1, "one creation"
        assert first.task.id == second.task.id, "same task returned"
        assert platform.assigned_logins() == ["alice"], "assigned once"

    @pytest.mark.asyncio
    async def test_ack_racing_escalation_has_one_winner(
        self, oncall_service: ServiceFactory, clock: MutableClock
    ) -> None:
        """An overdue task ends up acknowledged or reassigned, never both."""
        service = await oncall_service()
        opened = await _open(service, 7)
        clock.advance(minutes=31)

        ack, escalated = await asyncio.gather(
            service.acknowledge(REPO, 7, "alice"),
            service.escalate_overdue(),
            return_exceptions=True,
        )

        task = await service.get_task(REPO, 7)
        assert task is not None, "task should exist"
        history = await service.task_history(opened.task.id)
        if isinstance(ack, NotAssigneeError):
            assert isinstance(escalated, list), "escalation succeeded"
            assert [t.id for t in escalated] == [task.id], "task escalated"
            assert task.status is TaskStatus.ASSIGNED, "still awaiting ack"
            assert task.assignee == "bob", "reassigned to bob"
            assert len(history) == 2, "rotation then escalation"
        else:
            assert not isinstance(ack, BaseException), f"unexpected error {ack!r}"
            assert escalated == [], "acknowledged task not escalated"
            assert task.status is TaskStatus.ACKED, "acknowledged"
            assert task.assignee == "alice", "kept by alice"
            assert len(history) == 1, "no escalation recorded"
