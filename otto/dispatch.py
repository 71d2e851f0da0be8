"""Concurrent fan-out of verified webhook events to registered modules.

``EventDispatcher.dispatch`` starts one asyncio task per module and returns
immediately; the HTTP handler never waits for modules. Each task catches the
module's exception at its boundary, logs it with the module name and event
type, and counts it as a module error. In-flight tasks are tracked so
shutdown can drain them.

Usage
-----
>>> dispatcher = EventDispatcher(registry, telemetry=telemetry)
>>> dispatcher.dispatch("issues", event, raw)   # inside a running loop
1
>>> await dispatcher.drain(timeout=5.0)
True

"""

from __future__ import annotations

import asyncio
import typing as typ

from otto.logging import get_logger, log_debug, log_error

if typ.TYPE_CHECKING:
    from otto.module import ModuleDescriptor
    from otto.registry import ModuleRegistry
    from otto.telemetry import Telemetry

__all__ = ["EventDispatcher"]

logger = get_logger(__name__)


class EventDispatcher:
    """Deliver each event to every module in a registry snapshot."""

    def __init__(
        self,
        registry: ModuleRegistry,
        *,
        telemetry: Telemetry | None = None,
    ) -> None:
        """Bind the dispatcher to *registry* and optional *telemetry*."""
        self._registry = registry
        self._telemetry = telemetry
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        """Return the number of deliveries still running."""
        return len(self._tasks)

    def dispatch(
        self,
        event_type: str,
        event: object,
        raw: bytes,
        *,
        delivery_id: str | None = None,
    ) -> int:
        """Start delivery of one event to every registered module.

        Must be called from inside a running event loop. Does not wait for
        any handler.

        Returns
        -------
        int
            Number of module deliveries started.

        """
        modules = self._registry.snapshot()
        for name, descriptor in modules.items():
            task = asyncio.create_task(
                self._deliver(descriptor, event_type, event, raw, delivery_id),
                name=f"otto.dispatch.{name}.{event_type}",
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        log_debug(
            logger,
            "event dispatched type=%s delivery=%s modules=%d",
            event_type,
            delivery_id,
            len(modules),
        )
        return len(modules)

    async def _deliver(
        self,
        descriptor: ModuleDescriptor,
        event_type: str,
        event: object,
        raw: bytes,
        delivery_id: str | None,
    ) -> None:
        try:
            await descriptor.deliver(event_type, event, raw)
        except Exception as exc:  # noqa: BLE001 - module failures stay isolated
            log_error(
                logger,
                "event handling error module=%s event=%s delivery=%s "
                "error_type=%s error_message=%s",
                descriptor.name,
                event_type,
                delivery_id,
                type(exc).__name__,
                str(exc),
                exc_info=exc,
            )
            if self._telemetry is not None:
                self._telemetry.inc_module_error(descriptor.name, "handle_event")

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for in-flight deliveries to finish.

        Parameters
        ----------
        timeout
            Seconds to wait; ``None`` waits indefinitely.

        Returns
        -------
        bool
            ``True`` when nothing is left running.

        """
        pending = set(self._tasks)
        if not pending:
            return True
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        return not still_running
