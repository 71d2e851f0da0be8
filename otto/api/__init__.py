"""Otto HTTP API layer.

This package provides the Falcon Asynchronous Server Gateway Interface
(ASGI) application serving the webhook intake, liveness and metrics
endpoints.

Usage
-----
Create the application::

    from otto.api import AppDependencies, create_app

    app = create_app(AppDependencies(webhook_secret=secret, dispatcher=dispatcher))

Public API
----------
create_app
    Application factory registering ``/webhook``, ``/healthz`` and, with
    telemetry, ``/metrics``.
"""

from otto.api.app import AppDependencies, create_app

__all__ = ["AppDependencies", "create_app"]
