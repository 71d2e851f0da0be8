"""Liveness probe and Prometheus exposition resources.

Neither resource requires authentication or database access.

Usage
-----
Register endpoints on the Falcon app::

    app.add_route("/healthz", HealthzResource())
    app.add_route("/metrics", MetricsResource(telemetry))

"""

from __future__ import annotations

import typing as typ
from http import HTTPStatus

import falcon

from otto.telemetry import CONTENT_TYPE_LATEST

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from otto.telemetry import Telemetry

__all__ = ["HealthzResource", "MetricsResource"]


class HealthzResource:
    """Liveness probe returning the plain-text body ``ok``."""

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /healthz requests.

        Parameters
        ----------
        _req
            Falcon request (unused).
        resp
            Falcon response populated with the liveness body.

        """
        resp.content_type = falcon.MEDIA_TEXT
        resp.text = "ok"
        resp.status = HTTPStatus.OK


class MetricsResource:
    """Prometheus text exposition of the application's telemetry."""

    def __init__(self, telemetry: Telemetry) -> None:
        """Bind the resource to *telemetry*."""
        self._telemetry = telemetry

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /metrics requests."""
        resp.content_type = CONTENT_TYPE_LATEST
        resp.data = self._telemetry.render()
        resp.status = HTTPStatus.OK
