"""Best-effort issue updates after on-call state changes commit."""

from __future__ import annotations

import typing as typ

import httpx

from otto.oncall.observability import OnCallEventLogger
from otto.platform import PlatformAPIError

if typ.TYPE_CHECKING:
    from otto.oncall.models import TaskInfo
    from otto.platform import PlatformClient
    from otto.telemetry import Telemetry

MODULE_NAME = "oncall"


class OnCallNotifier:
    """Assign issues and post comments; failures are logged and counted."""

    def __init__(
        self,
        platform: PlatformClient | None,
        *,
        telemetry: Telemetry | None = None,
        event_logger: OnCallEventLogger | None = None,
    ) -> None:
        """Wrap *platform*; ``None`` disables outbound calls."""
        self._platform = platform
        self._telemetry = telemetry
        self._events = event_logger or OnCallEventLogger()

    async def notify_assigned(self, task: TaskInfo) -> bool:
        """Assign the issue to the new responder and announce it."""
        if task.assignee is None:
            return False
        if task.previous_assignee is None:
            body = (
                f"On-call: @{task.assignee} has been assigned to this issue "
                f"(schedule `{task.schedule}`). Reply `/oncall ack` to acknowledge."
            )
        else:
            body = (
                f"On-call: escalated from @{task.previous_assignee} to "
                f"@{task.assignee} (schedule `{task.schedule}`). "
                "Reply `/oncall ack` to acknowledge."
            )

        async def send(platform: PlatformClient) -> None:
            await platform.assign_issue(
                task.repo, task.issue_number, [typ.cast("str", task.assignee)]
            )
            await platform.post_comment(task.repo, task.issue_number, body)

        return await self._attempt(task, send)

    async def notify_pending(self, task: TaskInfo) -> bool:
        """Announce that nobody on the schedule is currently available."""
        body = (
            f"On-call: no active responder is available on schedule "
            f"`{task.schedule}`. The task will be assigned once someone is."
        )
        return await self.reply(task, body)

    async def reply(self, task: TaskInfo, body: str) -> bool:
        """Post *body* on the task's issue."""
        return await self.comment(task.repo, task.issue_number, body, task=task)

    async def comment(
        self,
        repo: str,
        issue_number: int,
        body: str,
        *,
        task: TaskInfo | None = None,
    ) -> bool:
        """Post *body* on ``repo#issue_number``; return whether it succeeded."""

        async def send(platform: PlatformClient) -> None:
            await platform.post_comment(repo, issue_number, body)

        return await self._attempt(task, send)

    async def _attempt(
        self,
        task: TaskInfo | None,
        send: typ.Callable[[PlatformClient], typ.Awaitable[None]],
    ) -> bool:
        if self._platform is None:
            return False
        try:
            await send(self._platform)
        except (PlatformAPIError, httpx.HTTPError) as exc:
            if task is not None:
                self._events.log_notify_failed(task, exc)
            else:
                self._events.log_comment_failed(exc)
            if self._telemetry is not None:
                self._telemetry.inc_module_error(MODULE_NAME, "notify")
            return False
        return True
