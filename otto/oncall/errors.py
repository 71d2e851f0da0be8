"""Errors raised by the on-call rotation engine."""

from __future__ import annotations


class OnCallError(Exception):
    """Base class for on-call errors."""


class OnCallConfigError(OnCallError):
    """Raised when the ``modules.oncall`` configuration block is invalid."""

    def __init__(self, reason: str) -> None:
        """Initialise with the validation failure."""
        self.reason = reason
        super().__init__(f"invalid oncall configuration: {reason}")


class ScheduleNotFoundError(OnCallError):
    """Raised when a schedule name is unknown."""

    def __init__(self, name: str) -> None:
        """Initialise with the missing schedule name."""
        self.name = name
        super().__init__(f"Schedule not found: {name}")


class ResponderNotFoundError(OnCallError):
    """Raised when a responder handle is unknown."""

    def __init__(self, github: str) -> None:
        """Initialise with the missing GitHub handle."""
        self.github = github
        super().__init__(f"Responder not found: {github}")


class TaskNotFoundError(OnCallError):
    """Raised when no active task exists for an issue."""

    def __init__(self, repo: str, issue_number: int) -> None:
        """Initialise with the issue reference."""
        self.repo = repo
        self.issue_number = issue_number
        super().__init__(f"No active on-call task for {repo}#{issue_number}")


class InvalidTransitionError(OnCallError):
    """Raised when a task cannot move from its current status."""

    def __init__(self, task_id: int, status: str, action: str) -> None:
        """Initialise with the task, its status and the attempted action."""
        self.task_id = task_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} task {task_id} in status {status}")


class NotAssigneeError(OnCallError):
    """Raised when someone other than the assignee acknowledges a task."""

    def __init__(self, github: str, assignee: str | None) -> None:
        """Initialise with the actor and the current assignee."""
        self.github = github
        self.assignee = assignee
        super().__init__(
            f"@{github} is not the assignee of this task (assignee: {assignee})"
        )
