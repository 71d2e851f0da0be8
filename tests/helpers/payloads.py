"""Builders for GitHub webhook payloads and signed request headers."""

from __future__ import annotations

import typing as typ

import msgspec

from otto.events import DELIVERY_ID_HEADER, EVENT_TYPE_HEADER
from otto.signature import SIGNATURE_HEADER, sign_payload

WEBHOOK_SECRET = "It's a Secret to Everybody"
REPO = "acme/widgets"


def _repository(repo: str) -> dict[str, typ.Any]:
    return {"full_name": repo, "name": repo.partition("/")[2]}


def issues_payload(  # noqa: PLR0913
    action: str,
    *,
    number: int = 7,
    repo: str = REPO,
    labels: typ.Sequence[str] = (),
    label: str | None = None,
    title: str = "Pager fired",
) -> dict[str, typ.Any]:
    """Return an ``issues`` event body."""
    payload: dict[str, typ.Any] = {
        "action": action,
        "issue": {
            "number": number,
            "title": title,
            "body": "Service is down",
            "state": "closed" if action == "closed" else "open",
            "user": {"login": "reporter", "type": "User"},
            "labels": [{"name": name} for name in labels],
        },
        "repository": _repository(repo),
        "sender": {"login": "reporter", "type": "User"},
    }
    if label is not None:
        payload["label"] = {"name": label}
    return payload


def comment_payload(
    body: str,
    *,
    author: str = "alice",
    number: int = 7,
    repo: str = REPO,
    author_type: str = "User",
) -> dict[str, typ.Any]:
    """Return an ``issue_comment`` ``created`` event body."""
    user = {"login": author, "type": author_type}
    return {
        "action": "created",
        "issue": {"number": number, "title": "Pager fired", "labels": []},
        "comment": {"id": 1, "body": body, "user": user},
        "repository": _repository(repo),
        "sender": user,
    }


def encode(payload: dict[str, typ.Any]) -> bytes:
    """Serialize *payload* to JSON bytes."""
    return msgspec.json.encode(payload)


def signed_headers(
    body: bytes,
    event_type: str | None,
    *,
    secret: str = WEBHOOK_SECRET,
    delivery_id: str = "delivery-1",
) -> dict[str, str]:
    """Return webhook headers carrying a valid signature for *body*."""
    headers = {
        SIGNATURE_HEADER: sign_payload(secret.encode(), body),
        DELIVERY_ID_HEADER: delivery_id,
        "Content-Type": "application/json",
    }
    if event_type is not None:
        headers[EVENT_TYPE_HEADER] = event_type
    return headers
