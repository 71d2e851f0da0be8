"""Prometheus instruments for the webhook server and modules.

Each :class:`Telemetry` owns a private ``CollectorRegistry`` so several
applications (or tests) can coexist in one process. The HTTP surface exposes
the registry at ``GET /metrics``.

Usage
-----
>>> telemetry = Telemetry()
>>> telemetry.start()
>>> telemetry.inc_module_error("oncall", "notify")
>>> telemetry.shutdown()

"""

from __future__ import annotations

import enum

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

from otto.logging import get_logger, log_info

__all__ = ["CONTENT_TYPE_LATEST", "Telemetry", "TelemetryEventType"]

logger = get_logger(__name__)

_LATENCY_BUCKETS_MS = (1, 5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000)
_ACK_BUCKETS_MS = (
    60_000,
    300_000,
    900_000,
    1_800_000,
    3_600_000,
    14_400_000,
    86_400_000,
)


class TelemetryEventType(enum.StrEnum):
    """Structured log event types for telemetry lifecycle."""

    STARTED = "telemetry.started"
    SHUTDOWN = "telemetry.shutdown"


class Telemetry:
    """Counters and histograms shared by the server and modules."""

    def __init__(
        self,
        *,
        service_name: str = "otto",
        registry: CollectorRegistry | None = None,
    ) -> None:
        """Create instruments in *registry* (a fresh one by default)."""
        self.service_name = service_name
        self.registry = registry or CollectorRegistry(auto_describe=True)
        self._started = False
        self._closed = False

        self.server_requests = Counter(
            "otto_server_requests",
            "Total HTTP requests",
            ["handler"],
            registry=self.registry,
        )
        self.server_webhooks = Counter(
            "otto_server_webhooks",
            "Webhooks received",
            ["event_type"],
            registry=self.registry,
        )
        self.server_errors = Counter(
            "otto_server_errors",
            "Server errors",
            ["handler", "err_type"],
            registry=self.registry,
        )
        self.server_latency = Histogram(
            "otto_server_request_latency_ms",
            "Request latency (ms)",
            ["handler"],
            buckets=_LATENCY_BUCKETS_MS,
            registry=self.registry,
        )
        self.module_commands = Counter(
            "otto_module_commands",
            "Module command invocations",
            ["module", "command"],
            registry=self.registry,
        )
        self.module_errors = Counter(
            "otto_module_errors",
            "Module errors",
            ["module", "err_type"],
            registry=self.registry,
        )
        self.module_ack_latency = Histogram(
            "otto_module_ack_latency_ms",
            "Latency from assignment to acknowledgement (ms)",
            ["module"],
            buckets=_ACK_BUCKETS_MS,
            registry=self.registry,
        )

    @property
    def started(self) -> bool:
        """Return whether :meth:`start` ran and :meth:`shutdown` has not."""
        return self._started and not self._closed

    def start(self) -> None:
        """Mark telemetry as initialised."""
        self._started = True
        self._closed = False
        log_info(
            logger,
            "[%s] service=%s",
            TelemetryEventType.STARTED,
            self.service_name,
        )

    def inc_server_request(self, handler: str) -> None:
        """Count one HTTP request for *handler*."""
        self.server_requests.labels(handler=handler).inc()

    def inc_server_webhook(self, event_type: str) -> None:
        """Count one received webhook of *event_type*."""
        self.server_webhooks.labels(event_type=event_type).inc()

    def inc_server_error(self, handler: str, err_type: str) -> None:
        """Count one rejected request."""
        self.server_errors.labels(handler=handler, err_type=err_type).inc()

    def record_server_latency(self, handler: str, ms: float) -> None:
        """Observe request latency in milliseconds."""
        self.server_latency.labels(handler=handler).observe(ms)

    def inc_module_command(self, module: str, command: str) -> None:
        """Count one slash command handled by *module*."""
        self.module_commands.labels(module=module, command=command).inc()

    def inc_module_error(self, module: str, err_type: str) -> None:
        """Count one module-local failure."""
        self.module_errors.labels(module=module, err_type=err_type).inc()

    def record_ack_latency(self, module: str, ms: float) -> None:
        """Observe assignment-to-acknowledgement latency in milliseconds."""
        self.module_ack_latency.labels(module=module).observe(ms)

    def value(self, name: str, labels: dict[str, str] | None = None) -> float:
        """Return the current sample value for *name*, or ``0.0``."""
        sample = self.registry.get_sample_value(name, labels or {})
        return 0.0 if sample is None else sample

    def render(self) -> bytes:
        """Return the Prometheus text exposition of all instruments."""
        return generate_latest(self.registry)

    def shutdown(self) -> None:
        """Flush a final summary to the log; repeated calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        log_info(
            logger,
            "[%s] service=%s module_errors=%d server_errors=%d",
            TelemetryEventType.SHUTDOWN,
            self.service_name,
            int(_total(self.module_errors)),
            int(_total(self.server_errors)),
        )


def _total(counter: Counter) -> float:
    """Sum every ``_total`` sample of a labelled counter."""
    return sum(
        sample.value
        for metric in counter.collect()
        for sample in metric.samples
        if sample.name.endswith("_total")
    )
