"""Unit tests for Prometheus telemetry instruments."""

from __future__ import annotations

from otto.telemetry import Telemetry


def test_instances_use_private_registries() -> None:
    """Counters on one instance do not leak into another."""
    first = Telemetry()
    second = Telemetry()

    first.inc_server_webhook("issues")

    assert first.value("otto_server_webhooks_total", {"event_type": "issues"}) == 1
    assert second.value("otto_server_webhooks_total", {"event_type": "issues"}) == 0


def test_counters_and_histograms_record_values() -> None:
    """Each helper updates the matching instrument."""
    telemetry = Telemetry()

    telemetry.inc_server_request("/webhook")
    telemetry.inc_server_error("/webhook", "invalid_signature")
    telemetry.record_server_latency("/webhook", 12.5)
    telemetry.inc_module_command("oncall", "ack")
    telemetry.inc_module_error("oncall", "notify")
    telemetry.record_ack_latency("oncall", 120_000)

    assert telemetry.value("otto_server_requests_total", {"handler": "/webhook"}) == 1
    assert (
        telemetry.value(
            "otto_server_errors_total",
            {"handler": "/webhook", "err_type": "invalid_signature"},
        )
        == 1
    ), "server error counted"
    assert (
        telemetry.value(
            "otto_server_request_latency_ms_sum", {"handler": "/webhook"}
        )
        == 12.5
    ), "latency observed"
    assert (
        telemetry.value(
            "otto_module_commands_total", {"module": "oncall", "command": "ack"}
        )
        == 1
    ), "command counted"
    assert (
        telemetry.value("otto_module_ack_latency_ms_count", {"module": "oncall"})
        == 1
    ), "ack latency observed"


def test_render_exposes_metrics() -> None:
    """render returns Prometheus text exposition."""
    telemetry = Telemetry()
    telemetry.inc_module_error("oncall", "sweep")

    rendered = telemetry.render().decode()

    assert "otto_module_errors_total" in rendered, "counter should be exported"
    assert 'err_type="sweep"' in rendered, "labels should be exported"


def test_lifecycle_flags() -> None:
    """start and shutdown toggle the started flag; shutdown is idempotent."""
    telemetry = Telemetry()
    assert not telemetry.started, "not started yet"

    telemetry.start()
    assert telemetry.started, "started after start()"

    telemetry.shutdown()
    telemetry.shutdown()
    assert not telemetry.started, "stopped after shutdown()"


def test_missing_sample_reads_as_zero() -> None:
    """Unknown samples read as zero."""
    assert Telemetry().value("otto_does_not_exist") == 0.0, "missing is zero"
