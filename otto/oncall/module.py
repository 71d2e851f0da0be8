"""Otto module that turns labelled issues into on-call tasks.

Events handled:

- ``issues`` ``opened`` with the trigger label, or ``labeled`` with it, opens
  a task on the default schedule; ``closed`` completes the issue's task.
- ``issue_comment`` ``created`` with ``/oncall <sub>`` runs a command:
  ``assign [schedule]``, ``ack``, ``done`` (or ``complete``/``resolve``),
  ``escalate`` and ``status``.
"""

from __future__ import annotations

import asyncio
import contextlib
import typing as typ

from otto.commands import SlashCommand, find_slash_command, log_slash_command
from otto.events import IssueCommentEvent, IssuesEvent
from otto.logging import get_logger, log_error, log_info, log_warning
from otto.oncall.config import OnCallSettings
from otto.oncall.errors import OnCallError, TaskNotFoundError
from otto.oncall.models import AssignmentReason, TaskRequest, TaskStatus
from otto.oncall.notifier import MODULE_NAME, OnCallNotifier
from otto.oncall.service import OnCallService
from otto.storage import init_storage

if typ.TYPE_CHECKING:
    from otto.module import AppHandle
    from otto.oncall.models import TaskInfo
    from otto.telemetry import Telemetry

logger = get_logger(__name__)

_COMPLETE_ALIASES = frozenset({"done", "complete", "resolve"})


def _usage(command: str) -> str:
    return (
        f"Usage: `/{command} assign [schedule]`, `/{command} ack`, "
        f"`/{command} done`, `/{command} escalate`, `/{command} status`"
    )


def _describe(task: TaskInfo) -> str:
    match task.status:
        case TaskStatus.PENDING:
            who = "waiting for an available responder"
        case TaskStatus.ASSIGNED:
            who = f"assigned to @{task.assignee}, not yet acknowledged"
        case TaskStatus.ACKED:
            who = f"acknowledged by @{task.assignee}"
        case _:
            who = "completed"
    return f"On-call task #{task.id} (schedule `{task.schedule}`) is {who}."


class OnCallModule:
    """Rotation engine bound to GitHub issue events."""

    name = MODULE_NAME

    def __init__(
        self,
        settings: OnCallSettings | None = None,
        *,
        service: OnCallService | None = None,
        notifier: OnCallNotifier | None = None,
        telemetry: Telemetry | None = None,
    ) -> None:
        """Create the module; *service* and *notifier* override ``initialize``."""
        self._settings = settings
        self._service = service
        self._notifier = notifier
        self._telemetry = telemetry
        self._sweeper: asyncio.Task[None] | None = None

    @property
    def settings(self) -> OnCallSettings:
        """Return the active settings."""
        if self._settings is None:
            self._settings = OnCallSettings()
        return self._settings

    @property
    def service(self) -> OnCallService:
        """Return the rotation service; available after ``initialize``."""
        if self._service is None:
            msg = "oncall module is not initialized"
            raise RuntimeError(msg)
        return self._service

    @property
    def notifier(self) -> OnCallNotifier:
        """Return the notifier used for command replies."""
        if self._notifier is None:
            self._notifier = OnCallNotifier(None, telemetry=self._telemetry)
        return self._notifier

    async def initialize(self, app: AppHandle) -> None:
        """Create tables, seed schedules and start the escalation sweep.

        Raises
        ------
        OnCallConfigError
            If the ``modules.oncall`` block is invalid.

        """
        if self._settings is None:
            self._settings = OnCallSettings.from_block(app.module_config(self.name))
        self._telemetry = self._telemetry or app.telemetry
        if self._notifier is None:
            self._notifier = OnCallNotifier(app.platform, telemetry=self._telemetry)
        await init_storage(app.storage.engine)
        if self._service is None:
            self._service = OnCallService.from_settings(
                app.session_factory,
                self.settings,
                notifier=self._notifier,
                telemetry=self._telemetry,
            )
        await self._service.sync_from_settings(self.settings)
        self.start_sweeper()
        log_info(
            logger,
            "oncall module initialized schedules=%d default_schedule=%s",
            len(self.settings.schedules),
            self.settings.default_schedule_name,
        )

    def start_sweeper(self) -> None:
        """Start the periodic escalation sweep if it is not running."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(
                self._run_sweeps(self.settings.sweep_interval_seconds),
                name="oncall-sweep",
            )

    async def _run_sweeps(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.service.sweep()
            except Exception as exc:  # noqa: BLE001 - keep the loop alive
                log_error(
                    logger,
                    "oncall sweep failed error_type=%s error=%s",
                    type(exc).__name__,
                    exc,
                    exc_info=exc,
                )
                if self._telemetry is not None:
                    self._telemetry.inc_module_error(self.name, "sweep")

    async def shutdown(self) -> None:
        """Stop the escalation sweep and wait for it to finish."""
        sweeper, self._sweeper = self._sweeper, None
        if sweeper is None:
            return
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        log_info(logger, "oncall module stopped")

    async def handle_event(self, event_type: str, event: object, raw: bytes) -> None:
        """Route ``issues`` and ``issue_comment`` events."""
        match event:
            case IssuesEvent():
                await self._on_issue(event)
            case IssueCommentEvent():
                await self._on_comment(event)
            case _:
                return

    async def _on_issue(self, event: IssuesEvent) -> None:
        repo = event.repository.full_name
        number = event.issue.number
        trigger = self.settings.trigger_label
        match event.action:
            case "opened" if event.issue.has_label(trigger):
                await self._open_default(event)
            case "labeled" if event.label is not None and event.label.name == trigger:
                await self._open_default(event)
            case "closed":
                with contextlib.suppress(TaskNotFoundError):
                    await self.service.complete(repo, number)
            case _:
                return

    async def _open_default(self, event: IssuesEvent) -> None:
        schedule = self.settings.default_schedule_name
        if schedule is None:
            log_warning(
                logger,
                "oncall issue ignored reason=no_default_schedule ref=%s#%d",
                event.repository.full_name,
                event.issue.number,
            )
            return
        await self.service.open_task(
            schedule,
            TaskRequest(
                repo=event.repository.full_name,
                issue_number=event.issue.number,
                title=event.issue.title,
                description=event.issue.body or "",
            ),
        )

    async def _on_comment(self, event: IssueCommentEvent) -> None:
        if event.action != "created":
            return
        author = event.comment.user or event.sender
        if author is None or author.is_bot:
            return
        command = find_slash_command(event.comment.body, self.settings.command)
        if command is None:
            return
        repo = event.repository.full_name
        number = event.issue.number
        log_slash_command(command, issuer=author.login, repo=repo, issue_number=number)
        sub = (command.subcommand or "").lower()
        if self._telemetry is not None:
            self._telemetry.inc_module_command(self.name, sub or "help")
        try:
            reply = await self._run_command(command, sub, event, author.login)
        except OnCallError as exc:
            reply = str(exc)
        if reply:
            await self.notifier.comment(repo, number, reply)

    async def _run_command(
        self,
        command: SlashCommand,
        sub: str,
        event: IssueCommentEvent,
        issuer: str,
    ) -> str | None:
        repo = event.repository.full_name
        number = event.issue.number
        if sub == "assign":
            schedule = (
                command.args[1]
                if len(command.args) > 1
                else self.settings.default_schedule_name
            )
            if schedule is None:
                return f"No schedule given or configured. {_usage(command.name)}"
            result = await self.service.open_task(
                schedule,
                TaskRequest(
                    repo=repo,
                    issue_number=number,
                    title=event.issue.title,
                    description=event.issue.body or "",
                ),
                reason=AssignmentReason.MANUAL,
            )
            return None if result.created else _describe(result.task)
        if sub == "ack":
            task = await self.service.acknowledge(repo, number, issuer)
            return f"@{task.assignee} acknowledged on-call task #{task.id}."
        if sub in _COMPLETE_ALIASES:
            task = await self.service.complete(repo, number)
            return f"On-call task #{task.id} marked completed by @{issuer}."
        if sub == "escalate":
            result = await self.service.escalate(repo, number)
            task = result.task
            if result.reassigned:
                return None
            if task.status is TaskStatus.PENDING:
                return _describe(task)
            return (
                f"No other responder is available; task #{task.id} stays "
                f"with @{task.assignee}."
            )
        if sub == "status":
            task = await self.service.get_task(repo, number)
            if task is None:
                return "No on-call task is tracked for this issue."
            return _describe(task)
        return _usage(command.name)
