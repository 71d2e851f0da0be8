"""Structured log events for on-call task transitions.

Every event is a single line prefixed with its type, for example
``[oncall.task.assigned] task_id=3 ref=acme/api#7 schedule=primary
assignee=alice reason=rotation``.
"""

from __future__ import annotations

import enum
import typing as typ

from otto.logging import get_logger, log_info, log_warning

if typ.TYPE_CHECKING:
    from otto.oncall.models import AssignmentReason, TaskInfo

logger = get_logger(__name__)


class OnCallEventType(enum.StrEnum):
    """Structured log event types for the rotation engine."""

    TASK_OPENED = "oncall.task.opened"
    TASK_ASSIGNED = "oncall.task.assigned"
    TASK_PENDING = "oncall.task.pending"
    TASK_ESCALATED = "oncall.task.escalated"
    ESCALATION_STUCK = "oncall.task.escalation_stuck"
    TASK_ACKED = "oncall.task.acked"
    TASK_COMPLETED = "oncall.task.completed"
    NOTIFY_FAILED = "oncall.notify.failed"
    SWEEP_COMPLETED = "oncall.sweep.completed"


class OnCallEventLogger:
    """Emit on-call events through the otto logging helpers."""

    def log_task_opened(self, task: TaskInfo) -> None:
        """Log creation of a task."""
        log_info(
            logger,
            "[%s] task_id=%d ref=%s schedule=%s",
            OnCallEventType.TASK_OPENED,
            task.id,
            task.ref,
            task.schedule,
        )

    def log_task_assigned(self, task: TaskInfo, reason: AssignmentReason) -> None:
        """Log an assignment, including reassignments."""
        event = (
            OnCallEventType.TASK_ASSIGNED
            if task.previous_assignee is None
            else OnCallEventType.TASK_ESCALATED
        )
        log_info(
            logger,
            "[%s] task_id=%d ref=%s schedule=%s assignee=%s previous=%s reason=%s",
            event,
            task.id,
            task.ref,
            task.schedule,
            task.assignee,
            task.previous_assignee,
            reason,
        )

    def log_task_pending(self, task: TaskInfo) -> None:
        """Log a task that found no active responder."""
        log_warning(
            logger,
            "[%s] task_id=%d ref=%s schedule=%s reason=no_active_responder",
            OnCallEventType.TASK_PENDING,
            task.id,
            task.ref,
            task.schedule,
        )

    def log_escalation_stuck(self, task: TaskInfo) -> None:
        """Log an escalation that had nobody else to go to."""
        log_warning(
            logger,
            "[%s] task_id=%d ref=%s schedule=%s assignee=%s",
            OnCallEventType.ESCALATION_STUCK,
            task.id,
            task.ref,
            task.schedule,
            task.assignee,
        )

    def log_task_acked(self, task: TaskInfo, latency_ms: float | None) -> None:
        """Log an acknowledgement and the time it took."""
        log_info(
            logger,
            "[%s] task_id=%d ref=%s assignee=%s latency_ms=%s",
            OnCallEventType.TASK_ACKED,
            task.id,
            task.ref,
            task.assignee,
            "-" if latency_ms is None else f"{latency_ms:.0f}",
        )

    def log_task_completed(self, task: TaskInfo) -> None:
        """Log completion of a task."""
        log_info(
            logger,
            "[%s] task_id=%d ref=%s assignee=%s",
            OnCallEventType.TASK_COMPLETED,
            task.id,
            task.ref,
            task.assignee,
        )

    def log_notify_failed(self, task: TaskInfo, error: BaseException) -> None:
        """Log a notification the platform rejected."""
        log_warning(
            logger,
            "[%s] task_id=%d ref=%s error_type=%s error_message=%s",
            OnCallEventType.NOTIFY_FAILED,
            task.id,
            task.ref,
            type(error).__name__,
            str(error),
        )

    def log_comment_failed(self, error: BaseException) -> None:
        """Log a reply that is not tied to a task."""
        log_warning(
            logger,
            "[%s] error_type=%s error_message=%s",
            OnCallEventType.NOTIFY_FAILED,
            type(error).__name__,
            str(error),
        )

    def log_sweep_completed(self, escalated: int, assigned: int) -> None:
        """Log the outcome of one sweep when it changed anything."""
        if escalated == 0 and assigned == 0:
            return
        log_info(
            logger,
            "[%s] escalated=%d assigned=%d",
            OnCallEventType.SWEEP_COMPLETED,
            escalated,
            assigned,
        )
