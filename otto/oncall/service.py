"""On-call rotation service: schedules, responders and task assignment.

All changes to a schedule's rotation cursor or to a task's status happen
under that schedule's :class:`asyncio.Lock` and inside one transaction, so
concurrent events for the same schedule are serialized while different
schedules proceed independently. Platform notifications are sent after the
transaction commits and outside the lock.

Usage
-----
>>> service = OnCallService(session_factory, notifier=OnCallNotifier(platform))
>>> await service.upsert_responder("alice")
>>> await service.upsert_schedule("primary", policy=RotationPolicy.ROUND_ROBIN)
>>> await service.set_schedule_members("primary", ["alice"])
>>> result = await service.open_task("primary", TaskRequest("acme/api", 7))

"""

from __future__ import annotations

import asyncio
import datetime as dt
import random
import typing as typ

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from otto.common.time import ensure_utc, utcnow
from otto.oncall.errors import (
    InvalidTransitionError,
    NotAssigneeError,
    ResponderNotFoundError,
    ScheduleNotFoundError,
    TaskNotFoundError,
)
from otto.oncall.models import (
    AssignmentInfo,
    AssignmentReason,
    EscalationResult,
    ResponderInfo,
    RotationPolicy,
    ScheduleInfo,
    SweepResult,
    TaskInfo,
    TaskOpenResult,
    TaskRequest,
    TaskStatus,
)
from otto.oncall.notifier import MODULE_NAME, OnCallNotifier
from otto.oncall.observability import OnCallEventLogger
from otto.oncall.rotation import (
    RotationChoice,
    RotationMember,
    advance_after_ack,
    normalize_cursor,
    select_next,
    select_successor,
)
from otto.oncall.storage import (
    Responder,
    Schedule,
    ScheduleMembership,
    Task,
    TaskAssignment,
)

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from otto.oncall.config import OnCallSettings
    from otto.telemetry import Telemetry

type SessionFactory = async_sessionmaker[AsyncSession]
type Clock = typ.Callable[[], dt.datetime]

_OPEN_STATUSES = tuple(str(status) for status in TaskStatus if status.is_open)
_DEFAULT_ESCALATION_WINDOW = dt.timedelta(minutes=30)


def _responder_info(responder: Responder) -> ResponderInfo:
    return ResponderInfo(
        id=responder.id,
        github=responder.github,
        display_name=responder.display_name,
        active=responder.active,
    )


def _schedule_info(schedule: Schedule) -> ScheduleInfo:
    return ScheduleInfo(
        id=schedule.id,
        name=schedule.name,
        policy=RotationPolicy(schedule.policy),
        enabled=schedule.enabled,
        current_rotation_idx=schedule.current_rotation_idx,
        members=tuple(m.responder.github for m in schedule.memberships),
    )


def _task_info(task: Task, *, previous_assignee: str | None = None) -> TaskInfo:
    return TaskInfo(
        id=task.id,
        schedule=task.schedule.name,
        repo=task.repo,
        issue_number=task.issue_number,
        title=task.title,
        status=TaskStatus(task.status),
        assignee=None if task.assignee is None else task.assignee.github,
        created_at=task.created_at,
        assigned_at=task.assigned_at,
        acked_at=task.acked_at,
        completed_at=task.completed_at,
        previous_assignee=previous_assignee,
    )


def _rotation_members(schedule: Schedule) -> list[RotationMember]:
    """Return members in position order; a disabled schedule has none."""
    if not schedule.enabled:
        return []
    ordered = sorted(schedule.memberships, key=lambda m: m.position)
    return [
        RotationMember(
            responder_id=m.responder.id,
            github=m.responder.github,
            position=m.position,
            active=m.responder.active,
        )
        for m in ordered
    ]


class OnCallService:
    """Assigns issue-derived tasks to responders according to schedules.

    Parameters
    ----------
    session_factory:
        Async session factory for the shared store.
    notifier:
        Sends issue assignments and comments once state has committed.
    escalation_window:
        How long an assigned task may go unacknowledged before escalation.
    max_skip:
        Maximum number of inactive positions skipped per selection; ``None``
        tries every member once.
    rng:
        Random source for the random policy.
    clock:
        Returns the current UTC time.
    telemetry:
        Receives acknowledgement latency observations.

    """

    def __init__(  # noqa: PLR0913
        self,
        session_factory: SessionFactory,
        *,
        notifier: OnCallNotifier | None = None,
        escalation_window: dt.timedelta = _DEFAULT_ESCALATION_WINDOW,
        max_skip: int | None = None,
        rng: random.Random | None = None,
        clock: Clock = utcnow,
        telemetry: Telemetry | None = None,
    ) -> None:
        """Configure the service."""
        self._sf = session_factory
        self._notifier = notifier or OnCallNotifier(None)
        self._escalation_window = escalation_window
        self._max_skip = max_skip
        self._rng = rng or random.Random()  # noqa: S311 - not security sensitive
        self._clock = clock
        self._telemetry = telemetry
        self._events = OnCallEventLogger()
        self._locks: dict[int, asyncio.Lock] = {}

    @classmethod
    def from_settings(
        cls,
        session_factory: SessionFactory,
        settings: OnCallSettings,
        *,
        notifier: OnCallNotifier | None = None,
        telemetry: Telemetry | None = None,
    ) -> OnCallService:
        """Build a service using the tunables in *settings*."""
        return cls(
            session_factory,
            notifier=notifier,
            escalation_window=settings.escalation_window,
            max_skip=settings.max_skip,
            telemetry=telemetry,
        )

    @property
    def escalation_window(self) -> dt.timedelta:
        """Return the unacknowledged time after which tasks escalate."""
        return self._escalation_window

    def _lock_for(self, schedule_id: int) -> asyncio.Lock:
        return self._locks.setdefault(schedule_id, asyncio.Lock())

    # Responders -----------------------------------------------------------

    async def upsert_responder(
        self,
        github: str,
        *,
        display_name: str | None = None,
        active: bool | None = None,
    ) -> ResponderInfo:
        """Create or update a responder identified by GitHub handle."""
        async with self._sf() as session, session.begin():
            responder = await session.scalar(
                select(Responder).where(Responder.github == github)
            )
            if responder is None:
                responder = Responder(
                    github=github,
                    display_name=display_name or "",
                    active=True if active is None else active,
                    created_at=self._clock(),
                )
                session.add(responder)
            else:
                if display_name is not None:
                    responder.display_name = display_name
                if active is not None:
                    responder.active = active
            await session.flush()
            info = _responder_info(responder)
        if info.active:
            await self.retry_pending()
        return info

    async def set_responder_active(self, github: str, *, active: bool) -> ResponderInfo:
        """Mark a responder as available or unavailable for rotation.

        Raises
        ------
        ResponderNotFoundError
            If *github* is unknown.

        """
        async with self._sf() as session, session.begin():
            responder = await self._get_responder(session, github)
            responder.active = active
            info = _responder_info(responder)
        if active:
            await self.retry_pending()
        return info

    async def _get_responder(self, session: AsyncSession, github: str) -> Responder:
        responder = await session.scalar(
            select(Responder).where(Responder.github == github)
        )
        if responder is None:
            raise ResponderNotFoundError(github)
        return responder

    # Schedules ------------------------------------------------------------

    async def upsert_schedule(
        self,
        name: str,
        *,
        policy: RotationPolicy | str | None = None,
        enabled: bool | None = None,
    ) -> ScheduleInfo:
        """Create or update a schedule's policy and enabled flag."""
        schedule_id = await self._schedule_id(name, missing_ok=True)
        if schedule_id is None:
            async with self._sf() as session, session.begin():
                now = self._clock()
                schedule = Schedule(
                    name=name,
                    policy=str(RotationPolicy(policy or RotationPolicy.ROUND_ROBIN)),
                    enabled=True if enabled is None else enabled,
                    current_rotation_idx=None,
                    created_at=now,
                    updated_at=now,
                    memberships=[],
                )
                session.add(schedule)
                await session.flush()
                return _schedule_info(schedule)

        async with self._lock_for(schedule_id):
            async with self._sf() as session, session.begin():
                schedule = await self._load_schedule(session, schedule_id)
                if policy is not None:
                    schedule.policy = str(RotationPolicy(policy))
                if enabled is not None:
                    schedule.enabled = enabled
                info = _schedule_info(schedule)
        if info.enabled:
            await self._retry_schedule(schedule_id)
        return info

    async def list_schedules(self) -> list[ScheduleInfo]:
        """Return every schedule ordered by name."""
        async with self._sf() as session:
            schedules = await session.scalars(
                select(Schedule)
                .options(selectinload(Schedule.memberships))
                .order_by(Schedule.name)
            )
            return [_schedule_info(schedule) for schedule in schedules]

    async def set_schedule_members(
        self, name: str, members: typ.Sequence[str]
    ) -> ScheduleInfo:
        """Replace a schedule's members with *members* in the given order.

        The cursor keeps its value modulo the new size. An identical member
        list leaves the schedule untouched.

        Raises
        ------
        ScheduleNotFoundError
            If the schedule is unknown.
        ResponderNotFoundError
            If any handle is unknown.

        """
        schedule_id = await self._require_schedule_id(name)
        async with self._lock_for(schedule_id):
            async with self._sf() as session, session.begin():
                schedule = await self._load_schedule(session, schedule_id)
                current = [m.responder.github for m in schedule.memberships]
                if current == list(members):
                    return _schedule_info(schedule)
                responders = [await self._get_responder(session, g) for g in members]
                schedule.memberships.clear()
                await session.flush()
                for position, responder in enumerate(responders):
                    schedule.memberships.append(
                        ScheduleMembership(responder=responder, position=position)
                    )
                schedule.current_rotation_idx = normalize_cursor(
                    schedule.current_rotation_idx, len(responders)
                )
                await session.flush()
                info = _schedule_info(schedule)
        await self._retry_schedule(schedule_id)
        return info

    async def add_member(self, name: str, github: str) -> ScheduleInfo:
        """Append *github* to the end of a schedule; no-op if already a member."""
        schedule_id = await self._require_schedule_id(name)
        async with self._lock_for(schedule_id):
            async with self._sf() as session, session.begin():
                schedule = await self._load_schedule(session, schedule_id)
                responder = await self._get_responder(session, github)
                if any(m.responder.id == responder.id for m in schedule.memberships):
                    return _schedule_info(schedule)
                schedule.memberships.append(
                    ScheduleMembership(
                        responder=responder, position=len(schedule.memberships)
                    )
                )
                schedule.current_rotation_idx = normalize_cursor(
                    schedule.current_rotation_idx, len(schedule.memberships)
                )
                await session.flush()
                info = _schedule_info(schedule)
        await self._retry_schedule(schedule_id)
        return info

    async def remove_member(self, name: str, github: str) -> ScheduleInfo:
        """Remove *github* from a schedule, closing the gap in positions.

        A cursor after the removed position shifts down by one so it keeps
        pointing at the same responder; a cursor on the removed position now
        points at that responder's successor.
        """
        schedule_id = await self._require_schedule_id(name)
        async with self._lock_for(schedule_id):
            async with self._sf() as session, session.begin():
                schedule = await self._load_schedule(session, schedule_id)
                membership = next(
                    (m for m in schedule.memberships if m.responder.github == github),
                    None,
                )
                if membership is None:
                    return _schedule_info(schedule)
                removed = membership.position
                schedule.memberships.remove(membership)
                await session.flush()
                for position, remaining in enumerate(schedule.memberships):
                    if remaining.position != position:
                        remaining.position = position
                        await session.flush()
                cursor = schedule.current_rotation_idx
                if cursor is not None and cursor > removed:
                    cursor -= 1
                schedule.current_rotation_idx = normalize_cursor(
                    cursor, len(schedule.memberships)
                )
                info = _schedule_info(schedule)
        return info

    async def _schedule_id(self, name: str, *, missing_ok: bool = False) -> int | None:
        async with self._sf() as session:
            schedule_id = await session.scalar(
                select(Schedule.id).where(Schedule.name == name)
            )
        if schedule_id is None and not missing_ok:
            raise ScheduleNotFoundError(name)
        return schedule_id

    async def _require_schedule_id(self, name: str) -> int:
        return typ.cast("int", await self._schedule_id(name))

    async def _load_schedule(self, session: AsyncSession, schedule_id: int) -> Schedule:
        schedule = await session.scalar(
            select(Schedule)
            .where(Schedule.id == schedule_id)
            .options(selectinload(Schedule.memberships))
            .execution_options(populate_existing=True)
        )
        if schedule is None:
            raise ScheduleNotFoundError(str(schedule_id))
        return schedule

    # Tasks ----------------------------------------------------------------

    async def open_task(
        self,
        schedule_name: str,
        request: TaskRequest,
        *,
        reason: AssignmentReason = AssignmentReason.ROTATION,
    ) -> TaskOpenResult:
        """Open a task for an issue and assign it by the schedule's policy.

        Opening is idempotent per issue: while a task for ``repo#issue`` is
        not completed, the existing task is returned with ``created=False``.
        Older pending tasks of the schedule are offered a responder before
        the new one. *reason* is recorded when the new task is assigned at
        once; a later assignment from the pending queue counts as rotation.

        Raises
        ------
        ScheduleNotFoundError
            If the schedule is unknown.

        """
        schedule_id = await self._require_schedule_id(schedule_name)
        backlog: list[TaskInfo] = []
        async with self._lock_for(schedule_id):
            async with self._sf() as session, session.begin():
                existing = await self._find_open_task(
                    session, request.repo, request.issue_number
                )
                if existing is not None:
                    return TaskOpenResult(_task_info(existing), created=False)
                now = self._clock()
                schedule = await self._load_schedule(session, schedule_id)
                backlog = await self._assign_pending_locked(session, schedule, now)
                task = Task(
                    schedule=schedule,
                    repo=request.repo,
                    issue_number=request.issue_number,
                    title=request.title,
                    description=request.description,
                    status=str(TaskStatus.PENDING),
                    assignee=None,
                    created_at=now,
                    assigned_at=None,
                    acked_at=None,
                    completed_at=None,
                )
                session.add(task)
                await session.flush()
                choice = self._choose(schedule)
                if choice is not None:
                    self._apply_choice(session, schedule, task, choice, reason, now)
                    await session.flush()
                info = _task_info(task)

        self._events.log_task_opened(info)
        await self._publish_assigned(backlog, AssignmentReason.ROTATION)
        if info.status is TaskStatus.ASSIGNED:
            await self._publish_assigned([info], reason)
        else:
            self._events.log_task_pending(info)
            await self._notifier.notify_pending(info)
        return TaskOpenResult(info, created=True)

    async def acknowledge(self, repo: str, issue_number: int, github: str) -> TaskInfo:
        """Record that the assignee has picked up the issue's task.

        Raises
        ------
        TaskNotFoundError
            If the issue has no open task.
        InvalidTransitionError
            If the task is not currently assigned.
        NotAssigneeError
            If *github* is not the current assignee.

        """
        schedule_id = await self._locate(repo, issue_number)
        async with self._lock_for(schedule_id):
            async with self._sf() as session, session.begin():
                task = await self._require_open_task(session, repo, issue_number)
                if task.status != TaskStatus.ASSIGNED:
                    raise InvalidTransitionError(task.id, task.status, "acknowledge")
                assignee = task.assignee
                if assignee is None or assignee.github.casefold() != github.casefold():
                    raise NotAssigneeError(
                        github, None if assignee is None else assignee.github
                    )
                now = self._clock()
                task.status = str(TaskStatus.ACKED)
                task.acked_at = now
                await self._advance_cursor(session, task, assignee.id)
                latency_ms = None
                if task.assigned_at is not None:
                    elapsed = now - ensure_utc(task.assigned_at)
                    latency_ms = elapsed.total_seconds() * 1000
                info = _task_info(task)

        if latency_ms is not None and self._telemetry is not None:
            self._telemetry.record_ack_latency(MODULE_NAME, latency_ms)
        self._events.log_task_acked(info, latency_ms)
        return info

    async def complete(self, repo: str, issue_number: int) -> TaskInfo:
        """Close the issue's open task.

        A still-assigned task also moves a sequential cursor on, as its
        responder will not acknowledge it any more. A pending task is closed
        so it is no longer retried.

        Raises
        ------
        TaskNotFoundError
            If the issue has no open task.

        """
        schedule_id = await self._locate(repo, issue_number)
        async with self._lock_for(schedule_id):
            async with self._sf() as session, session.begin():
                task = await self._require_open_task(session, repo, issue_number)
                now = self._clock()
                if task.status == TaskStatus.ASSIGNED and task.assignee is not None:
                    await self._advance_cursor(session, task, task.assignee.id)
                task.status = str(TaskStatus.COMPLETED)
                task.completed_at = now
                await self._end_assignment(session, task, now)
                info = _task_info(task)

        self._events.log_task_completed(info)
        return info

    async def escalate(self, repo: str, issue_number: int) -> EscalationResult:
        """Reassign the issue's task to the next eligible responder now.

        A pending task is offered to the rotation instead. When nobody else
        is eligible the task keeps its assignee and is returned unchanged.

        Raises
        ------
        TaskNotFoundError
            If the issue has no open task.
        InvalidTransitionError
            If the task was already acknowledged.

        """
        schedule_id = await self._locate(repo, issue_number)
        async with self._lock_for(schedule_id):
            async with self._sf() as session, session.begin():
                task = await self._require_open_task(session, repo, issue_number)
                if not TaskStatus(task.status).can_rotate:
                    raise InvalidTransitionError(task.id, task.status, "escalate")
                now = self._clock()
                schedule = await self._load_schedule(session, schedule_id)
                if task.status == TaskStatus.PENDING:
                    reason = AssignmentReason.ROTATION
                    changed = await self._assign_pending_locked(session, schedule, now)
                else:
                    reason = AssignmentReason.ESCALATION
                    escalated = await self._escalate_locked(
                        session, schedule, task, now
                    )
                    changed = [] if escalated is None else [escalated]
                info = next(
                    (t for t in changed if t.id == task.id), None
                ) or _task_info(task)

        await self._publish_assigned(changed, reason)
        reassigned = any(t.id == info.id for t in changed)
        if not reassigned and info.status is TaskStatus.ASSIGNED:
            self._events.log_escalation_stuck(info)
        return EscalationResult(info, reassigned=reassigned)

    async def escalate_overdue(self) -> list[TaskInfo]:
        """Escalate every assigned task unacknowledged beyond the window."""
        cutoff = self._clock() - self._escalation_window
        async with self._sf() as session:
            rows = (
                await session.execute(
                    select(Task.id, Task.schedule_id, Task.assigned_at).where(
                        Task.status == str(TaskStatus.ASSIGNED)
                    )
                )
            ).all()
        by_schedule: dict[int, list[int]] = {}
        for task_id, schedule_id, assigned_at in rows:
            if assigned_at is not None and ensure_utc(assigned_at) <= cutoff:
                by_schedule.setdefault(schedule_id, []).append(task_id)

        escalated: list[TaskInfo] = []
        for schedule_id, task_ids in by_schedule.items():
            changed: list[TaskInfo] = []
            stuck: list[TaskInfo] = []
            async with self._lock_for(schedule_id):
                async with self._sf() as session, session.begin():
                    now = self._clock()
                    schedule = await self._load_schedule(session, schedule_id)
                    tasks = await session.scalars(
                        select(Task)
                        .where(
                            Task.id.in_(task_ids),
                            Task.status == str(TaskStatus.ASSIGNED),
                        )
                        .order_by(Task.id)
                    )
                    for task in tasks.unique():
                        assigned_at = task.assigned_at
                        if assigned_at is None or ensure_utc(assigned_at) > cutoff:
                            continue
                        info = await self._escalate_locked(session, schedule, task, now)
                        if info is None:
                            stuck.append(_task_info(task))
                        else:
                            changed.append(info)
            for info in stuck:
                self._events.log_escalation_stuck(info)
            await self._publish_assigned(changed, AssignmentReason.ESCALATION)
            escalated.extend(changed)
        return escalated

    async def retry_pending(self, schedule_name: str | None = None) -> list[TaskInfo]:
        """Offer pending tasks to the rotation again; return those assigned."""
        if schedule_name is not None:
            schedule_id = await self._require_schedule_id(schedule_name)
            return await self._retry_schedule(schedule_id)
        async with self._sf() as session:
            schedule_ids = list(
                await session.scalars(
                    select(Task.schedule_id)
                    .where(Task.status == str(TaskStatus.PENDING))
                    .distinct()
                )
            )
        assigned: list[TaskInfo] = []
        for schedule_id in schedule_ids:
            assigned.extend(await self._retry_schedule(schedule_id))
        return assigned

    async def sweep(self) -> SweepResult:
        """Run escalation and pending retry once."""
        escalated = await self.escalate_overdue()
        assigned = await self.retry_pending()
        self._events.log_sweep_completed(len(escalated), len(assigned))
        return SweepResult(escalated=tuple(escalated), assigned=tuple(assigned))

    async def get_task(self, repo: str, issue_number: int) -> TaskInfo | None:
        """Return the most recent task for an issue, open or not."""
        async with self._sf() as session:
            task = await session.scalar(
                select(Task)
                .where(Task.repo == repo, Task.issue_number == issue_number)
                .order_by(Task.id.desc())
                .limit(1)
            )
            return None if task is None else _task_info(task)

    async def task_history(self, task_id: int) -> list[AssignmentInfo]:
        """Return a task's assignments, oldest first."""
        async with self._sf() as session:
            rows = await session.scalars(
                select(TaskAssignment)
                .where(TaskAssignment.task_id == task_id)
                .order_by(TaskAssignment.assigned_at, TaskAssignment.id)
            )
            return [
                AssignmentInfo(
                    responder=row.responder.github,
                    reason=AssignmentReason(row.reason),
                    assigned_at=row.assigned_at,
                    ended_at=row.ended_at,
                )
                for row in rows.unique()
            ]

    async def sync_from_settings(self, settings: OnCallSettings) -> None:
        """Create or update the responders and schedules declared in settings."""
        for seed in settings.responders:
            await self.upsert_responder(
                seed.github, display_name=seed.display_name, active=seed.active
            )
        for schedule in settings.schedules:
            await self.upsert_schedule(
                schedule.name, policy=schedule.policy, enabled=schedule.enabled
            )
            await self.set_schedule_members(schedule.name, schedule.members)

    # Internals ------------------------------------------------------------

    async def _find_open_task(
        self, session: AsyncSession, repo: str, issue_number: int
    ) -> Task | None:
        return await session.scalar(
            select(Task)
            .where(
                Task.repo == repo,
                Task.issue_number == issue_number,
                Task.status.in_(_OPEN_STATUSES),
            )
            .order_by(Task.id.desc())
            .limit(1)
        )

    async def _require_open_task(
        self, session: AsyncSession, repo: str, issue_number: int
    ) -> Task:
        task = await self._find_open_task(session, repo, issue_number)
        if task is None:
            raise TaskNotFoundError(repo, issue_number)
        return task

    async def _locate(self, repo: str, issue_number: int) -> int:
        async with self._sf() as session:
            task = await self._require_open_task(session, repo, issue_number)
            return task.schedule_id

    def _choose(self, schedule: Schedule) -> RotationChoice | None:
        return select_next(
            RotationPolicy(schedule.policy),
            _rotation_members(schedule),
            schedule.current_rotation_idx,
            rng=self._rng,
            max_skip=self._max_skip,
        )

    def _apply_choice(  # noqa: PLR0913
        self,
        session: AsyncSession,
        schedule: Schedule,
        task: Task,
        choice: RotationChoice,
        reason: AssignmentReason,
        now: dt.datetime,
    ) -> None:
        responder = next(
            m.responder
            for m in schedule.memberships
            if m.responder.id == choice.member.responder_id
        )
        task.assignee = responder
        task.status = str(TaskStatus.ASSIGNED)
        task.assigned_at = now
        schedule.current_rotation_idx = choice.next_index
        session.add(
            TaskAssignment(
                task_id=task.id,
                responder=responder,
                reason=str(reason),
                assigned_at=now,
                ended_at=None,
            )
        )

    async def _end_assignment(
        self, session: AsyncSession, task: Task, now: dt.datetime
    ) -> None:
        rows = await session.scalars(
            select(TaskAssignment).where(
                TaskAssignment.task_id == task.id,
                TaskAssignment.ended_at.is_(None),
            )
        )
        for row in rows.unique():
            row.ended_at = now

    async def _advance_cursor(
        self, session: AsyncSession, task: Task, responder_id: int
    ) -> None:
        schedule = await self._load_schedule(session, task.schedule_id)
        schedule.current_rotation_idx = advance_after_ack(
            RotationPolicy(schedule.policy),
            _rotation_members(schedule),
            schedule.current_rotation_idx,
            responder_id,
        )

    async def _escalate_locked(
        self,
        session: AsyncSession,
        schedule: Schedule,
        task: Task,
        now: dt.datetime,
    ) -> TaskInfo | None:
        previous = task.assignee
        choice = select_successor(
            RotationPolicy(schedule.policy),
            _rotation_members(schedule),
            schedule.current_rotation_idx,
            None if previous is None else previous.id,
            rng=self._rng,
            max_skip=self._max_skip,
        )
        if choice is None:
            return None
        await self._end_assignment(session, task, now)
        self._apply_choice(
            session, schedule, task, choice, AssignmentReason.ESCALATION, now
        )
        await session.flush()
        return _task_info(
            task, previous_assignee=None if previous is None else previous.github
        )

    async def _assign_pending_locked(
        self, session: AsyncSession, schedule: Schedule, now: dt.datetime
    ) -> list[TaskInfo]:
        pending = await session.scalars(
            select(Task)
            .where(
                Task.schedule_id == schedule.id,
                Task.status == str(TaskStatus.PENDING),
            )
            .order_by(Task.id)
        )
        assigned: list[TaskInfo] = []
        for task in pending.unique():
            choice = self._choose(schedule)
            if choice is None:
                break
            self._apply_choice(
                session, schedule, task, choice, AssignmentReason.ROTATION, now
            )
            await session.flush()
            assigned.append(_task_info(task))
        return assigned

    async def _retry_schedule(self, schedule_id: int) -> list[TaskInfo]:
        async with self._lock_for(schedule_id):
            async with self._sf() as session, session.begin():
                schedule = await self._load_schedule(session, schedule_id)
                assigned = await self._assign_pending_locked(
                    session, schedule, self._clock()
                )
        await self._publish_assigned(assigned, AssignmentReason.ROTATION)
        return assigned

    async def _publish_assigned(
        self, tasks: typ.Iterable[TaskInfo], reason: AssignmentReason
    ) -> None:
        for info in tasks:
            self._events.log_task_assigned(info, reason)
            await self._notifier.notify_assigned(info)
