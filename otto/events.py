"""Typed GitHub webhook payloads and their decoder.

Only the event types Otto's modules inspect are decoded into msgspec
structures; every other event type decodes to a plain ``dict``. Unknown
fields are ignored so GitHub can add payload keys freely.
"""

from __future__ import annotations

import typing as typ

import msgspec

__all__ = [
    "EVENT_TYPE_HEADER",
    "DELIVERY_ID_HEADER",
    "Comment",
    "EventDecodeError",
    "Issue",
    "IssueCommentEvent",
    "IssuesEvent",
    "Label",
    "PingEvent",
    "Repository",
    "User",
    "decode_event",
]

EVENT_TYPE_HEADER = "X-GitHub-Event"
DELIVERY_ID_HEADER = "X-GitHub-Delivery"


class User(msgspec.Struct, kw_only=True, frozen=True):
    """GitHub account reference."""

    login: str
    type: str = "User"

    @property
    def is_bot(self) -> bool:
        """Return whether the account is a bot or app."""
        return self.type == "Bot" or self.login.endswith("[bot]")


class Label(msgspec.Struct, kw_only=True, frozen=True):
    """Issue label."""

    name: str


class Repository(msgspec.Struct, kw_only=True, frozen=True):
    """Repository the event belongs to."""

    full_name: str
    name: str | None = None


class Issue(msgspec.Struct, kw_only=True, frozen=True):
    """Issue or pull request summary carried by issue events."""

    number: int
    title: str = ""
    body: str | None = None
    state: str = "open"
    user: User | None = None
    labels: tuple[Label, ...] = ()

    def has_label(self, name: str) -> bool:
        """Return whether the issue carries label *name*."""
        return any(label.name == name for label in self.labels)


class Comment(msgspec.Struct, kw_only=True, frozen=True):
    """Issue comment."""

    id: int | None = None
    body: str = ""
    user: User | None = None


class IssuesEvent(msgspec.Struct, kw_only=True, frozen=True):
    """Payload of the ``issues`` event."""

    action: str
    issue: Issue
    repository: Repository
    sender: User | None = None
    label: Label | None = None


class IssueCommentEvent(msgspec.Struct, kw_only=True, frozen=True):
    """Payload of the ``issue_comment`` event."""

    action: str
    issue: Issue
    comment: Comment
    repository: Repository
    sender: User | None = None


class PingEvent(msgspec.Struct, kw_only=True, frozen=True):
    """Payload of the ``ping`` event sent when a hook is created."""

    zen: str | None = None
    hook_id: int | None = None


_EVENT_TYPES: dict[str, typ.Any] = {
    "issues": IssuesEvent,
    "issue_comment": IssueCommentEvent,
    "ping": PingEvent,
}


class EventDecodeError(ValueError):
    """Raised when a webhook payload cannot be decoded."""

    def __init__(self, event_type: str, reason: str) -> None:
        """Record the event type and decoder message."""
        self.event_type = event_type
        self.reason = reason
        super().__init__(f"could not parse {event_type} event: {reason}")


def decode_event(event_type: str, payload: bytes) -> object:
    """Decode *payload* for *event_type*.

    Returns
    -------
    object
        A typed struct for known event types, otherwise ``dict[str, Any]``.

    Raises
    ------
    EventDecodeError
        If the body is not valid JSON or does not match the expected shape.

    """
    target = _EVENT_TYPES.get(event_type, dict[str, typ.Any])
    try:
        return msgspec.json.decode(payload, type=target)
    except (msgspec.DecodeError, msgspec.ValidationError) as exc:
        raise EventDecodeError(event_type, str(exc)) from exc

