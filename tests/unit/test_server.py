"""Unit tests for the embedded HTTP listener."""

from __future__ import annotations

import httpx
import pytest

from otto.api.app import AppDependencies, create_app
from otto.server import HttpListener, ListenerStartError
from tests.helpers.doubles import RecordingSink


def _listener(port: int = 0) -> HttpListener:
    app = create_app(AppDependencies(webhook_secret="s", dispatcher=RecordingSink()))
    return HttpListener(app, host="127.0.0.1", port=port)


@pytest.mark.asyncio
async def test_serves_requests_until_stopped() -> None:
    """The listener binds an ephemeral port and answers /healthz."""
    listener = _listener()
    await listener.start()
    try:
        assert listener.running, "listener should be running"
        port = listener.bound_port
        assert port, "an ephemeral port should be bound"
        async with httpx.AsyncClient() as client:
            response = await client.get(f"http://127.0.0.1:{port}/healthz")
        assert response.status_code == 200, "expected HTTP 200"
        assert response.text == "ok", "expected ok body"
    finally:
        await listener.stop()

    assert not listener.running, "listener should have stopped"


@pytest.mark.asyncio
async def test_port_in_use_raises_start_error() -> None:
    """Binding an occupied port fails with ListenerStartError."""
    first = _listener()
    await first.start()
    try:
        port = first.bound_port
        assert port is not None, "first listener should be bound"
        second = _listener(port)
        with pytest.raises(ListenerStartError) as excinfo:
            await second.start()
        assert excinfo.value.port == port, "error names the port"
        assert not second.running, "failed listener is not running"
    finally:
        await first.stop()


@pytest.mark.asyncio
async def test_stop_without_start_is_noop() -> None:
    """Stopping an idle listener does nothing."""
    listener = _listener()

    await listener.stop()

    assert listener.bound_port is None, "nothing was bound"
