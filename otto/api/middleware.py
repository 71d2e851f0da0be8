"""Request telemetry middleware for the Falcon ASGI application.

Counts every request and observes its latency, labelled by the matched
route template (``/webhook``, ``/healthz``) or ``unmatched``. Resources
name a rejected request by setting ``req.context.error_type``.

Usage
-----
>>> app = falcon.asgi.App(middleware=[RequestTelemetryMiddleware(telemetry)])

"""

from __future__ import annotations

import time
import typing as typ

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from otto.telemetry import Telemetry

__all__ = ["RequestTelemetryMiddleware"]


class RequestTelemetryMiddleware:
    """Falcon middleware recording request counts and latency.

    Parameters
    ----------
    telemetry
        Instruments that receive the observations.

    """

    def __init__(self, telemetry: Telemetry) -> None:
        """Initialize the middleware with the application's telemetry."""
        self._telemetry = telemetry

    async def process_request(self, req: Request, _resp: Response) -> None:
        """Stamp the request with a monotonic start time."""
        req.context.started_at = time.perf_counter()

    async def process_response(
        self,
        req: Request,
        _resp: Response,
        _resource: object,
        req_succeeded: bool,  # noqa: FBT001 - Falcon middleware signature
    ) -> None:
        """Count the request and record its latency in milliseconds."""
        handler = req.uri_template or "unmatched"
        self._telemetry.inc_server_request(handler)
        started = getattr(req.context, "started_at", None)
        if started is not None:
            elapsed_ms = (time.perf_counter() - started) * 1000
            self._telemetry.record_server_latency(handler, elapsed_ms)
        err_type = getattr(req.context, "error_type", None)
        if err_type is None and not req_succeeded:
            err_type = "unhandled"
        if err_type is not None:
            self._telemetry.inc_server_error(handler, err_type)
