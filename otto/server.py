"""Embedded HTTP listener running the ASGI app inside the application loop.

The listener wraps ``uvicorn.Server`` so the webhook surface shares the event
loop with modules and the dispatcher. Signal handling stays with
:mod:`otto.runtime`; the listener is started and stopped programmatically.

Usage
-----
>>> listener = HttpListener(app, host="127.0.0.1", port=0)
>>> await listener.start()
>>> listener.bound_port
53122
>>> await listener.stop()

"""

from __future__ import annotations

import asyncio
import contextlib
import typing as typ

import uvicorn

from otto.logging import get_logger, log_info

if typ.TYPE_CHECKING:
    import falcon.asgi

__all__ = ["HttpListener", "ListenerStartError"]

logger = get_logger(__name__)

_STARTUP_POLL_SECONDS = 0.01


class ListenerStartError(RuntimeError):
    """Raised when the HTTP listener cannot bind or start."""

    def __init__(self, host: str, port: int, reason: str) -> None:
        """Record the address that failed."""
        self.host = host
        self.port = port
        super().__init__(f"HTTP listener failed to start on {host}:{port}: {reason}")


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves process signals alone."""

    @contextlib.contextmanager
    def capture_signals(self) -> typ.Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        return


class HttpListener:
    """Serve an ASGI application on ``host:port`` as a background task."""

    def __init__(self, app: falcon.asgi.App, *, host: str, port: int) -> None:
        """Configure the listener; nothing is bound until :meth:`start`."""
        self.host = host
        self.port = port
        self._server = _EmbeddedServer(
            uvicorn.Config(
                app,
                host=host,
                port=port,
                lifespan="off",
                log_config=None,
                access_log=False,
            )
        )
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        """Return whether the listener task is alive."""
        return self._task is not None and not self._task.done()

    @property
    def bound_port(self) -> int | None:
        """Return the port actually bound, useful when ``port`` is 0."""
        for server in getattr(self._server, "servers", ()):
            for sock in server.sockets:
                return sock.getsockname()[1]
        return None

    async def start(self) -> None:
        """Start serving and return once the socket is bound.

        Raises
        ------
        ListenerStartError
            If the server exits before it finishes starting.

        """
        if self.running:
            return
        self._task = asyncio.create_task(self._serve(), name="otto-http")
        while not self._server.started:
            if self._task.done():
                await self._raise_start_failure(self._task)
            await asyncio.sleep(_STARTUP_POLL_SECONDS)
        log_info(
            logger,
            "http listener started host=%s port=%s",
            self.host,
            self.bound_port,
        )

    async def _serve(self) -> None:
        # uvicorn calls sys.exit() when it cannot bind.
        try:
            await self._server.serve()
        except SystemExit as exc:
            msg = f"server exited with status {exc.code}"
            raise ListenerStartError(self.host, self.port, msg) from exc

    async def _raise_start_failure(self, task: asyncio.Task[None]) -> typ.NoReturn:
        self._task = None
        try:
            await task
        except OSError as exc:
            raise ListenerStartError(self.host, self.port, repr(exc)) from exc
        raise ListenerStartError(self.host, self.port, "server exited during startup")

    async def stop(self) -> None:
        """Stop accepting connections and wait for the server to exit."""
        task, self._task = self._task, None
        if task is None:
            return
        self._server.should_exit = True
        await task
        log_info(logger, "http listener stopped host=%s", self.host)
