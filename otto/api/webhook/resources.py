"""Webhook intake resource for ``POST /webhook``.

The raw body is authenticated against ``X-Hub-Signature-256`` before it is
decoded; a verified event is handed to the dispatcher and the response is
sent without waiting for any module.

Usage
-----
Register the resource on the Falcon app::

    app.add_route(
        "/webhook",
        WebhookResource(WebhookDependencies(secret=b"...", dispatcher=dispatcher)),
    )

"""

from __future__ import annotations

import dataclasses as dc
import typing as typ
from http import HTTPStatus

from otto.api.errors import InvalidInputError, InvalidSignatureError
from otto.events import (
    DELIVERY_ID_HEADER,
    EVENT_TYPE_HEADER,
    EventDecodeError,
    decode_event,
)
from otto.logging import get_logger, log_info, log_warning
from otto.signature import SIGNATURE_HEADER, verify_signature

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from otto.telemetry import Telemetry

__all__ = ["EventSink", "WebhookDependencies", "WebhookResource"]

logger = get_logger(__name__)


class EventSink(typ.Protocol):
    """Receiver of verified events; :class:`otto.dispatch.EventDispatcher`."""

    def dispatch(
        self,
        event_type: str,
        event: object,
        raw: bytes,
        *,
        delivery_id: str | None = None,
    ) -> int:
        """Start delivery and return the number of modules reached."""
        ...


@dc.dataclass(frozen=True, slots=True)
class WebhookDependencies:
    """Collaborators of :class:`WebhookResource`.

    Attributes
    ----------
    secret
        Shared HMAC secret as bytes.
    dispatcher
        Receives every verified, decoded event.
    telemetry
        Optional instruments counting received webhooks.

    """

    secret: bytes
    dispatcher: EventSink
    telemetry: Telemetry | None = None


class WebhookResource:
    """Verify, decode and dispatch GitHub webhook deliveries."""

    def __init__(self, dependencies: WebhookDependencies) -> None:
        """Store the resource's collaborators."""
        self._deps = dependencies

    async def on_post(self, req: Request, resp: Response) -> None:
        """Handle POST /webhook requests.

        Raises
        ------
        InvalidInputError
            If the body cannot be read, the event type header is missing or
            the payload does not parse (HTTP 400).
        InvalidSignatureError
            If the signature header does not authenticate the body (HTTP 401).

        """
        delivery_id = req.get_header(DELIVERY_ID_HEADER)
        try:
            payload = await req.stream.read()
        except OSError as exc:
            req.context.error_type = "read_body"
            raise InvalidInputError(str(exc), field="body") from exc

        if not verify_signature(
            self._deps.secret, payload, req.get_header(SIGNATURE_HEADER)
        ):
            req.context.error_type = "invalid_signature"
            log_warning(
                logger,
                "webhook rejected reason=invalid_signature delivery=%s",
                delivery_id,
            )
            raise InvalidSignatureError

        event_type = req.get_header(EVENT_TYPE_HEADER)
        if not event_type:
            req.context.error_type = "missing_event_type"
            msg = "missing event type header"
            raise InvalidInputError(msg, field=EVENT_TYPE_HEADER)

        try:
            event = decode_event(event_type, payload)
        except EventDecodeError as exc:
            req.context.error_type = "parse_event"
            log_warning(
                logger,
                "webhook rejected reason=parse_error event=%s delivery=%s error=%s",
                event_type,
                delivery_id,
                exc.reason,
            )
            raise InvalidInputError(exc.reason, field="body") from exc

        if self._deps.telemetry is not None:
            self._deps.telemetry.inc_server_webhook(event_type)
        modules = self._deps.dispatcher.dispatch(
            event_type, event, payload, delivery_id=delivery_id
        )
        log_info(
            logger,
            "webhook accepted event=%s delivery=%s modules=%d",
            event_type,
            delivery_id,
            modules,
        )
        resp.media = {"status": "accepted", "event": event_type}
        resp.status = HTTPStatus.OK
