"""Module contract for Otto feature modules.

A module is identified by ``name`` and receives every verified webhook event
through ``handle_event``. ``initialize`` and ``shutdown`` are optional
facets. The registry stores each module as a :class:`ModuleDescriptor`, a
name plus the handler functions the module actually provides.

Usage
-----
Describe a module object::

    descriptor = ModuleDescriptor.from_module(OnCallModule())

Or build a descriptor from plain functions::

    descriptor = ModuleDescriptor(name="echo", handle_event=echo)

"""

from __future__ import annotations

import asyncio
import collections.abc as cabc
import dataclasses as dc
import inspect
import typing as typ

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from otto.config import AppConfig
    from otto.platform import PlatformClient
    from otto.storage import Storage
    from otto.telemetry import Telemetry

__all__ = [
    "AppHandle",
    "EventHandler",
    "Module",
    "ModuleDescriptor",
    "SupportsInitialize",
    "SupportsShutdown",
]

type EventHandler = cabc.Callable[[str, object, bytes], object]
type Initializer = cabc.Callable[[AppHandle], cabc.Awaitable[None]]
type Shutdowner = cabc.Callable[[], cabc.Awaitable[None]]


class AppHandle(typ.Protocol):
    """Application services available to modules during ``initialize``."""

    @property
    def config(self) -> AppConfig:
        """Return the loaded application configuration."""
        ...

    @property
    def storage(self) -> Storage:
        """Return the shared store (engine and session factory)."""
        ...

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Return the async session factory for the shared store."""
        ...

    @property
    def platform(self) -> PlatformClient:
        """Return the platform client used for comments and assignments."""
        ...

    @property
    def telemetry(self) -> Telemetry:
        """Return the application's telemetry instruments."""
        ...

    def module_config(self, name: str) -> dict[str, typ.Any]:
        """Return the configuration block for module *name*."""
        ...


class Module(typ.Protocol):
    """Base capability every module provides."""

    name: str

    async def handle_event(self, event_type: str, event: object, raw: bytes) -> None:
        """Handle one dispatched event; raise to report a module error."""
        ...


@typ.runtime_checkable
class SupportsInitialize(typ.Protocol):
    """Optional facet run once during startup."""

    async def initialize(self, app: AppHandle) -> None:
        """Prepare the module; raising aborts startup."""
        ...


@typ.runtime_checkable
class SupportsShutdown(typ.Protocol):
    """Optional facet run during graceful shutdown."""

    async def shutdown(self) -> None:
        """Release module resources."""
        ...


@dc.dataclass(frozen=True, slots=True)
class ModuleDescriptor:
    """Capability set of a registered module.

    Attributes
    ----------
    name
        Unique registry key.
    handle_event
        Event handler. Coroutine functions are awaited; plain callables run
        in a worker thread.
    initialize
        Optional startup hook.
    shutdown
        Optional shutdown hook.

    """

    name: str
    handle_event: EventHandler
    initialize: Initializer | None = None
    shutdown: Shutdowner | None = None

    @classmethod
    def from_module(cls, module: Module | ModuleDescriptor) -> ModuleDescriptor:
        """Build a descriptor from a module object, passing descriptors through."""
        if isinstance(module, ModuleDescriptor):
            return module
        return cls(
            name=module.name,
            handle_event=module.handle_event,
            initialize=module.initialize
            if isinstance(module, SupportsInitialize)
            else None,
            shutdown=module.shutdown if isinstance(module, SupportsShutdown) else None,
        )

    async def deliver(self, event_type: str, event: object, raw: bytes) -> None:
        """Invoke the event handler, awaiting it or running it on a thread."""
        if inspect.iscoroutinefunction(self.handle_event):
            await self.handle_event(event_type, event, raw)
            return
        result = await asyncio.to_thread(self.handle_event, event_type, event, raw)
        if inspect.isawaitable(result):
            await result
