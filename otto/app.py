"""Application lifecycle: module registration, startup and graceful shutdown.

Startup order is telemetry, storage, module initialization (registration
order, sequential) and finally the HTTP listener. Shutdown reverses it: the
listener stops accepting requests, in-flight dispatches drain for up to
``drain_timeout_seconds``, every module shuts down concurrently, then
telemetry, storage and the platform client close. The caller bounds the
whole shutdown with a timeout.

Usage
-----
>>> app = Application(load_config())
>>> app.register(OnCallModule())
>>> await app.start()
>>> async with asyncio.timeout(app.config.shutdown_timeout_seconds):
...     await app.shutdown()

"""

from __future__ import annotations

import asyncio
import enum
import typing as typ

from sqlalchemy.exc import SQLAlchemyError

from otto.api import AppDependencies, create_app
from otto.dispatch import EventDispatcher
from otto.logging import get_logger, log_error, log_info, log_warning
from otto.platform import GitHubPlatformClient, GitHubRESTConfig
from otto.registry import ModuleRegistry
from otto.server import HttpListener
from otto.storage import Storage, open_storage
from otto.telemetry import Telemetry

if typ.TYPE_CHECKING:
    import falcon.asgi
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from otto.config import AppConfig
    from otto.module import Module, ModuleDescriptor
    from otto.platform import PlatformClient

__all__ = [
    "Application",
    "LifecycleEventType",
    "ModuleInitializationError",
    "ModuleShutdownError",
    "StorageStartError",
]

logger = get_logger(__name__)


class LifecycleEventType(enum.StrEnum):
    """Structured log event types for the application lifecycle."""

    STARTING = "app.starting"
    STARTED = "app.started"
    STOPPING = "app.stopping"
    STOPPED = "app.stopped"
    STEP_FAILED = "app.step.failed"
    DRAIN_INCOMPLETE = "app.drain.incomplete"


class ModuleInitializationError(RuntimeError):
    """Raised when a module's ``initialize`` fails; startup is aborted."""

    def __init__(self, module: str, cause: BaseException) -> None:
        """Record the failing module and its error."""
        self.module = module
        self.cause = cause
        super().__init__(f"failed to initialize module {module}: {cause}")


class StorageStartError(RuntimeError):
    """Raised when the shared store cannot be opened; startup is aborted."""

    def __init__(self, url: str, cause: BaseException) -> None:
        """Record the store URL and the underlying error."""
        self.url = url
        self.cause = cause
        super().__init__(f"failed to open storage {url}: {cause}")


class ModuleShutdownError(RuntimeError):
    """Raised after teardown when at least one module failed to shut down."""

    def __init__(self, module: str, cause: BaseException) -> None:
        """Record the first failing module and its error."""
        self.module = module
        self.cause = cause
        super().__init__(f"failed to shut down module {module}: {cause}")


class Application:
    """Owns the registry, dispatcher, shared resources and HTTP listener.

    Implements :class:`otto.module.AppHandle` for module initialization.

    Parameters
    ----------
    config:
        Validated application configuration.
    registry:
        Module registry; a fresh one by default.
    telemetry:
        Metrics instruments; a fresh private registry by default.
    platform:
        Platform client; a GitHub REST client built from ``config`` by
        default and closed on shutdown.
    serve_http:
        Start the HTTP listener during :meth:`start`.

    """

    def __init__(  # noqa: PLR0913
        self,
        config: AppConfig,
        *,
        registry: ModuleRegistry | None = None,
        telemetry: Telemetry | None = None,
        platform: PlatformClient | None = None,
        serve_http: bool = True,
    ) -> None:
        """Wire the core collaborators; no I/O happens until :meth:`start`."""
        self._config = config
        self.registry = registry or ModuleRegistry()
        self._telemetry = telemetry or Telemetry()
        self.dispatcher = EventDispatcher(self.registry, telemetry=self._telemetry)
        self._platform = platform
        self._owned_platform: GitHubPlatformClient | None = None
        self._serve_http = serve_http
        self._storage: Storage | None = None
        self._listener: HttpListener | None = None

    @property
    def config(self) -> AppConfig:
        """Return the application configuration."""
        return self._config

    @property
    def telemetry(self) -> Telemetry:
        """Return the application's telemetry instruments."""
        return self._telemetry

    @property
    def storage(self) -> Storage:
        """Return the shared store; available once :meth:`start` opened it."""
        if self._storage is None:
            msg = "storage is not open; call start() first"
            raise RuntimeError(msg)
        return self._storage

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Return the async session factory for the shared store."""
        return self.storage.session_factory

    @property
    def platform(self) -> PlatformClient:
        """Return the platform client, creating the GitHub client on first use."""
        if self._platform is None:
            self._owned_platform = GitHubPlatformClient(
                GitHubRESTConfig(
                    token=self._config.github_token,
                    base_url=self._config.github_api_url,
                )
            )
            self._platform = self._owned_platform
        return self._platform

    @property
    def listener(self) -> HttpListener | None:
        """Return the HTTP listener while it is running."""
        return self._listener

    def module_config(self, name: str) -> dict[str, typ.Any]:
        """Return the configuration block for module *name*."""
        return self._config.module_config(name)

    def register(self, module: Module | ModuleDescriptor) -> bool:
        """Register *module*; a duplicate name is rejected and logged."""
        return self.registry.register(module)

    def create_asgi_app(self) -> falcon.asgi.App:
        """Build the Falcon application bound to this dispatcher."""
        return create_app(
            AppDependencies(
                webhook_secret=self._config.webhook_secret,
                dispatcher=self.dispatcher,
                telemetry=self._telemetry,
            )
        )

    async def start(self) -> None:
        """Bring up telemetry, storage, modules and the HTTP listener.

        Raises
        ------
        StorageStartError
            If the shared store cannot be reached; no module is initialized.
        ModuleInitializationError
            If any module's ``initialize`` raises; later modules are not
            initialized and the listener is not started.

        """
        log_info(
            logger,
            "[%s] modules=%s",
            LifecycleEventType.STARTING,
            ",".join(self.registry.names()),
        )
        self._telemetry.start()
        self._storage = await self._open_storage()

        for name, descriptor in self.registry.snapshot().items():
            if descriptor.initialize is None:
                continue
            try:
                await descriptor.initialize(self)
            except Exception as exc:
                log_error(
                    logger,
                    "[%s] step=initialize module=%s error_type=%s error_message=%s",
                    LifecycleEventType.STEP_FAILED,
                    name,
                    type(exc).__name__,
                    str(exc),
                    exc_info=exc,
                )
                raise ModuleInitializationError(name, exc) from exc
            log_info(logger, "module initialized name=%s", name)

        if self._serve_http:
            listener = HttpListener(
                self.create_asgi_app(),
                host=self._config.host,
                port=self._config.port,
            )
            await listener.start()
            self._listener = listener

        log_info(
            logger, "[%s] modules=%d", LifecycleEventType.STARTED, len(self.registry)
        )

    async def shutdown(self) -> None:
        """Tear everything down, continuing past individual failures.

        Raises
        ------
        ModuleShutdownError
            For the first module whose ``shutdown`` raised, after all other
            teardown steps ran.

        """
        log_info(logger, "[%s]", LifecycleEventType.STOPPING)
        first_error: ModuleShutdownError | None = None
        try:
            await self._stop_listener()
            await self._drain_dispatches()
            first_error = await self._shutdown_modules()
        finally:
            await self._release_resources()
        log_info(
            logger,
            "[%s] module_errors=%s",
            LifecycleEventType.STOPPED,
            "none" if first_error is None else first_error.module,
        )
        if first_error is not None:
            raise first_error

    async def _open_storage(self) -> Storage:
        url = self._config.storage_url
        try:
            return await open_storage(url)
        except (SQLAlchemyError, OSError) as exc:
            self._log_step_failure("storage", exc)
            raise StorageStartError(url, exc) from exc

    async def _drain_dispatches(self) -> None:
        timeout = self._config.drain_timeout_seconds
        if await self.dispatcher.drain(timeout):
            return
        log_warning(
            logger,
            "[%s] in_flight=%d timeout=%.1fs",
            LifecycleEventType.DRAIN_INCOMPLETE,
            self.dispatcher.in_flight,
            timeout,
        )

    async def _stop_listener(self) -> None:
        listener, self._listener = self._listener, None
        if listener is None:
            return
        try:
            await listener.stop()
        except Exception as exc:  # noqa: BLE001 - teardown continues
            self._log_step_failure("listener", exc)

    async def _shutdown_modules(self) -> ModuleShutdownError | None:
        targets = [
            (name, descriptor.shutdown)
            for name, descriptor in self.registry.snapshot().items()
            if descriptor.shutdown is not None
        ]
        results = await asyncio.gather(
            *(shutdown() for _, shutdown in targets), return_exceptions=True
        )
        first_error: ModuleShutdownError | None = None
        for (name, _), result in zip(targets, results, strict=True):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                self._log_step_failure(f"module:{name}", result)
                if first_error is None:
                    first_error = ModuleShutdownError(name, result)
        return first_error

    async def _release_resources(self) -> None:
        try:
            self._telemetry.shutdown()
        except Exception as exc:  # noqa: BLE001 - teardown continues
            self._log_step_failure("telemetry", exc)

        storage, self._storage = self._storage, None
        if storage is not None:
            try:
                await storage.close()
            except Exception as exc:  # noqa: BLE001 - teardown continues
                self._log_step_failure("storage", exc)

        owned, self._owned_platform = self._owned_platform, None
        if owned is not None:
            self._platform = None
            try:
                await owned.aclose()
            except Exception as exc:  # noqa: BLE001 - teardown continues
                self._log_step_failure("platform", exc)

    def _log_step_failure(self, step: str, exc: BaseException) -> None:
        log_error(
            logger,
            "[%s] step=%s error_type=%s error_message=%s",
            LifecycleEventType.STEP_FAILED,
            step,
            type(exc).__name__,
            str(exc),
            exc_info=exc,
        )
