"""Otto process entry point.

Loads the configuration, configures logging, registers the built-in
modules, starts the application and waits for ``SIGINT`` or ``SIGTERM``.
Shutdown is bounded by ``shutdown_timeout_seconds``.

Configuration is read from ``--config``, ``OTTO_CONFIG`` or
``config.yaml``; see :mod:`otto.config` for the environment overrides.

Run the service with ``otto --config config.yaml`` or
``python -m otto.runtime``.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import typing as typ

from otto.app import (
    Application,
    ModuleInitializationError,
    ModuleShutdownError,
    StorageStartError,
)
from otto.config import ConfigError, load_config
from otto.logging import (
    configure_logging,
    get_logger,
    log_error,
    log_info,
    log_warning,
)
from otto.oncall import OnCallModule
from otto.server import ListenerStartError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from otto.config import AppConfig

__all__ = ["build_application", "main", "run"]

logger = get_logger(__name__)

_STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _parse_args(argv: cabc.Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="otto", description="GitHub webhook automation bot"
    )
    parser.add_argument(
        "--config",
        default=None,
        help="path to the YAML configuration (default: $OTTO_CONFIG or config.yaml)",
    )
    return parser.parse_args(argv)


def build_application(config: AppConfig) -> Application:
    """Create the application with the built-in modules registered."""
    app = Application(config)
    app.register(OnCallModule())
    return app


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in _STOP_SIGNALS:
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            log_warning(logger, "signal handlers unsupported signal=%s", sig.name)


async def _shutdown(app: Application, timeout: float) -> int:
    try:
        async with asyncio.timeout(timeout):
            await app.shutdown()
    except TimeoutError:
        log_error(logger, "shutdown timed out after %.1fs", timeout)
        return 1
    except ModuleShutdownError as exc:
        log_error(logger, "shutdown completed with errors: %s", exc)
        return 1
    return 0


async def run(config: AppConfig, *, stop: asyncio.Event | None = None) -> int:
    """Run the application until *stop* is set or a stop signal arrives.

    Returns
    -------
    int
        Process exit status.

    """
    app = build_application(config)
    stop_event = stop or asyncio.Event()
    if stop is None:
        _install_signal_handlers(stop_event)

    try:
        await app.start()
    except (
        StorageStartError,
        ModuleInitializationError,
        ListenerStartError,
    ) as exc:
        log_error(logger, "startup failed: %s", exc)
        await _shutdown(app, config.shutdown_timeout_seconds)
        return 1

    await stop_event.wait()
    log_info(logger, "stop requested; shutting down")
    return await _shutdown(app, config.shutdown_timeout_seconds)


def main(argv: cabc.Sequence[str] | None = None) -> int:
    """Console entry point; returns the process exit status."""
    args = _parse_args(argv)
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        configure_logging("INFO")
        for issue in exc.issues:
            log_error(logger, "configuration error: %s", issue)
        return 2

    normalized_level, invalid_level = configure_logging(
        config.log.level, fmt=config.log.format, force=True
    )
    if invalid_level:
        log_warning(
            logger,
            "Invalid log level %r, falling back to %s",
            config.log.level,
            normalized_level,
        )
    log_info(
        logger,
        "Starting Otto on %s:%d (log_level=%s)",
        config.host,
        config.port,
        normalized_level,
    )
    return asyncio.run(run(config))


if __name__ == "__main__":
    raise SystemExit(main())
