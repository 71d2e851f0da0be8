"""Enumerations and data transfer objects for the on-call engine."""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

if typ.TYPE_CHECKING:
    import datetime as dt


class RotationPolicy(enum.StrEnum):
    """Rule deciding which responder receives a schedule's next task."""

    ROUND_ROBIN = "round-robin"
    SEQUENTIAL = "sequential"
    RANDOM = "random"


class TaskStatus(enum.StrEnum):
    """Lifecycle of an on-call task."""

    PENDING = "pending"
    ASSIGNED = "assigned"
    ACKED = "acked"
    COMPLETED = "completed"

    @property
    def is_open(self) -> bool:
        """Return whether the task still needs attention."""
        return self is not TaskStatus.COMPLETED

    @property
    def can_rotate(self) -> bool:
        """Return whether (re)assignment may still happen."""
        return self in {TaskStatus.PENDING, TaskStatus.ASSIGNED}


class AssignmentReason(enum.StrEnum):
    """Why a responder was given a task."""

    ROTATION = "rotation"
    ESCALATION = "escalation"
    MANUAL = "manual"


@dataclasses.dataclass(frozen=True, slots=True)
class ResponderInfo:
    """Responder snapshot."""

    id: int
    github: str
    display_name: str
    active: bool


@dataclasses.dataclass(frozen=True, slots=True)
class ScheduleInfo:
    """Schedule snapshot with members in position order."""

    id: int
    name: str
    policy: RotationPolicy
    enabled: bool
    current_rotation_idx: int | None
    members: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True, slots=True)
class TaskRequest:
    """Details of the issue an on-call task is opened for."""

    repo: str
    issue_number: int
    title: str = ""
    description: str = ""


@dataclasses.dataclass(frozen=True, slots=True)
class TaskInfo:
    """Task snapshot returned by the service.

    ``assignee`` is the responder's GitHub handle; ``previous_assignee`` is
    set only on the result of a reassignment.
    """

    id: int
    schedule: str
    repo: str
    issue_number: int
    title: str
    status: TaskStatus
    assignee: str | None
    created_at: dt.datetime
    assigned_at: dt.datetime | None = None
    acked_at: dt.datetime | None = None
    completed_at: dt.datetime | None = None
    previous_assignee: str | None = None

    @property
    def ref(self) -> str:
        """Return the ``owner/name#number`` issue reference."""
        return f"{self.repo}#{self.issue_number}"


@dataclasses.dataclass(frozen=True, slots=True)
class AssignmentInfo:
    """One row of a task's assignment history."""

    responder: str
    reason: AssignmentReason
    assigned_at: dt.datetime
    ended_at: dt.datetime | None


@dataclasses.dataclass(frozen=True, slots=True)
class TaskOpenResult:
    """Outcome of opening a task; ``created`` is false for an existing one."""

    task: TaskInfo
    created: bool


@dataclasses.dataclass(frozen=True, slots=True)
class SweepResult:
    """Tasks changed by one escalation sweep."""

    escalated: tuple[TaskInfo, ...] = ()
    assigned: tuple[TaskInfo, ...] = ()


@dataclasses.dataclass(frozen=True, slots=True)
class EscalationResult:
    """Outcome of a forced escalation; ``reassigned`` is false when stuck."""

    task: TaskInfo
    reassigned: bool
