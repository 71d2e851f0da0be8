"""On-call rotation engine.

Responders are grouped into schedules; each schedule assigns incoming
issue-derived tasks using a rotation policy (round-robin, sequential or
random), escalates unacknowledged tasks after a window and records every
assignment.

Usage
-----
Register the module with the application::

    from otto.oncall import OnCallModule

    app.register(OnCallModule())

Drive the service directly::

    service = OnCallService(session_factory)
    result = await service.open_task("primary", TaskRequest("acme/api", 42))
    await service.acknowledge("acme/api", 42, result.task.assignee)

"""

from otto.oncall.config import OnCallSettings, ResponderSeed, ScheduleSeed
from otto.oncall.errors import (
    InvalidTransitionError,
    NotAssigneeError,
    OnCallConfigError,
    OnCallError,
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
from otto.oncall.module import OnCallModule
from otto.oncall.notifier import OnCallNotifier
from otto.oncall.service import OnCallService

__all__ = [
    "AssignmentInfo",
    "AssignmentReason",
    "EscalationResult",
    "InvalidTransitionError",
    "NotAssigneeError",
    "OnCallConfigError",
    "OnCallError",
    "OnCallModule",
    "OnCallNotifier",
    "OnCallService",
    "OnCallSettings",
    "ResponderInfo",
    "ResponderNotFoundError",
    "RotationPolicy",
    "ScheduleInfo",
    "ScheduleNotFoundError",
    "ScheduleSeed",
    "SweepResult",
    "TaskInfo",
    "TaskNotFoundError",
    "TaskOpenResult",
    "TaskRequest",
    "TaskStatus",
]
