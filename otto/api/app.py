"""Application factory for the Otto Falcon ASGI application.

Routes
------
``POST /webhook``
    Signed GitHub deliveries.
``GET /healthz``
    Liveness probe, plain-text ``ok``.
``GET /metrics``
    Prometheus exposition, when telemetry is supplied.

Usage
-----
>>> deps = AppDependencies(webhook_secret="s3cret", dispatcher=dispatcher)
>>> app = create_app(deps)

"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

import falcon.asgi

from otto.api.errors import (
    InvalidInputError,
    InvalidSignatureError,
    handle_invalid_input,
    handle_invalid_signature,
)
from otto.api.health.resources import HealthzResource, MetricsResource
from otto.api.middleware import RequestTelemetryMiddleware
from otto.api.webhook.resources import WebhookDependencies, WebhookResource

if typ.TYPE_CHECKING:
    from otto.api.webhook.resources import EventSink
    from otto.telemetry import Telemetry

__all__ = ["AppDependencies", "create_app"]


@dc.dataclass(frozen=True, slots=True)
class AppDependencies:
    """Dependencies for the Falcon ASGI application.

    Attributes
    ----------
    webhook_secret
        Shared secret used to verify ``X-Hub-Signature-256``.
    dispatcher
        Receives verified events.
    telemetry
        Optional instruments; enables request metrics and ``/metrics``.

    """

    webhook_secret: str
    dispatcher: EventSink
    telemetry: Telemetry | None = None


def create_app(dependencies: AppDependencies) -> falcon.asgi.App:
    """Create and configure the Falcon ASGI application.

    Parameters
    ----------
    dependencies
        Secret, dispatcher and optional telemetry.

    Returns
    -------
    falcon.asgi.App
        Configured Falcon ASGI application.

    """
    middleware: list[object] = []
    if dependencies.telemetry is not None:
        middleware.append(RequestTelemetryMiddleware(dependencies.telemetry))

    app = falcon.asgi.App(middleware=middleware)  # type: ignore[no-matching-overload]  # Falcon stubs

    app.add_route("/healthz", HealthzResource())
    app.add_route(
        "/webhook",
        WebhookResource(
            WebhookDependencies(
                secret=dependencies.webhook_secret.encode(),
                dispatcher=dependencies.dispatcher,
                telemetry=dependencies.telemetry,
            )
        ),
    )
    if dependencies.telemetry is not None:
        app.add_route("/metrics", MetricsResource(dependencies.telemetry))

    app.add_error_handler(InvalidSignatureError, handle_invalid_signature)
    app.add_error_handler(InvalidInputError, handle_invalid_input)

    return app
