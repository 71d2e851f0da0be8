"""Webhook request exceptions and their Falcon error handlers.

Usage
-----
Register error handlers on the Falcon app::

    from otto.api.errors import (
        InvalidInputError,
        InvalidSignatureError,
        handle_invalid_input,
        handle_invalid_signature,
    )

    app.add_error_handler(InvalidSignatureError, handle_invalid_signature)
    app.add_error_handler(InvalidInputError, handle_invalid_input)

"""

from __future__ import annotations

import typing as typ

import falcon

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

__all__ = [
    "InvalidInputError",
    "InvalidSignatureError",
    "handle_invalid_input",
    "handle_invalid_signature",
]


class InvalidSignatureError(Exception):
    """Raised when a webhook body does not match its HMAC signature."""

    def __init__(self) -> None:
        """Attach a fixed message that reveals nothing about the secret."""
        super().__init__("Invalid signature")


class InvalidInputError(Exception):
    """Raised for malformed webhook requests that map to HTTP 400.

    Attributes
    ----------
    reason
        Human-readable description of the failure.
    field
        Optional name of the offending header or body part.

    """

    def __init__(self, reason: str, *, field: str | None = None) -> None:
        """Initialize with a reason and optional field name."""
        self.reason = reason
        self.field = field
        message = f"{field}: {reason}" if field is not None else reason
        super().__init__(message)


async def handle_invalid_signature(
    _req: Request,
    resp: Response,
    ex: InvalidSignatureError,
    _params: dict[str, typ.Any],
) -> None:
    """Map ``InvalidSignatureError`` to an HTTP 401 JSON response."""
    resp.status = falcon.HTTP_401
    resp.media = {"title": "Unauthorized", "description": str(ex)}


async def handle_invalid_input(
    _req: Request,
    resp: Response,
    ex: InvalidInputError,
    _params: dict[str, typ.Any],
) -> None:
    """Map ``InvalidInputError`` to an HTTP 400 JSON response.

    Parameters
    ----------
    _req
        Falcon request (unused).
    resp
        Falcon response whose status and media are set.
    ex
        The validation exception containing reason and optional field.
    _params
        URI template parameters (unused).

    """
    resp.status = falcon.HTTP_400
    media: dict[str, str] = {
        "title": "Invalid input",
        "description": ex.reason,
    }
    if ex.field is not None:
        media["field"] = ex.field
    resp.media = media
