"""Rotation policies as pure functions over a schedule's membership list.

A schedule keeps a cursor (``current_rotation_idx``) into its members, which
are ordered by contiguous positions starting at 0. Selection never touches
storage; the service applies the returned cursor.

- round-robin: first active member from the cursor; the cursor moves past
  the chosen member, so consecutive tasks cycle through positions.
- sequential: first active member from the cursor; the cursor stays on the
  chosen member until they acknowledge or complete a task.
- random: uniform choice among active members; the cursor is untouched.
"""

from __future__ import annotations

import dataclasses
import typing as typ

from otto.oncall.models import RotationPolicy

if typ.TYPE_CHECKING:
    import random

__all__ = [
    "RotationChoice",
    "RotationMember",
    "advance_after_ack",
    "normalize_cursor",
    "select_next",
    "select_successor",
]


@dataclasses.dataclass(frozen=True, slots=True)
class RotationMember:
    """Member of a schedule as seen by the rotation policies."""

    responder_id: int
    github: str
    position: int
    active: bool


@dataclasses.dataclass(frozen=True, slots=True)
class RotationChoice:
    """Selected member and the schedule cursor to persist."""

    member: RotationMember
    next_index: int | None


def normalize_cursor(cursor: int | None, size: int) -> int | None:
    """Return *cursor* as a valid position for *size* members, or ``None``."""
    if size == 0:
        return None
    if cursor is None:
        return 0
    return cursor % size


def _scan(
    members: typ.Sequence[RotationMember],
    start: int,
    *,
    max_skip: int | None,
    exclude: int | None = None,
) -> RotationMember | None:
    """Return the first eligible member from *start*, wrapping.

    At most ``max_skip`` ineligible positions are passed over; ``None`` tries
    every position once.
    """
    size = len(members)
    attempts = size if max_skip is None else min(size, max_skip + 1)
    for offset in range(attempts):
        member = members[(start + offset) % size]
        if member.active and member.responder_id != exclude:
            return member
    return None


def _cursor_for(
    policy: RotationPolicy, member: RotationMember, cursor: int | None, size: int
) -> int | None:
    match policy:
        case RotationPolicy.ROUND_ROBIN:
            return (member.position + 1) % size
        case RotationPolicy.SEQUENTIAL:
            return member.position
        case RotationPolicy.RANDOM:
            return normalize_cursor(cursor, size)


def _pick_random(
    members: typ.Sequence[RotationMember],
    rng: random.Random,
    exclude: int | None = None,
) -> RotationMember | None:
    eligible = [m for m in members if m.active and m.responder_id != exclude]
    return rng.choice(eligible) if eligible else None


def select_next(
    policy: RotationPolicy,
    members: typ.Sequence[RotationMember],
    cursor: int | None,
    *,
    rng: random.Random,
    max_skip: int | None = None,
) -> RotationChoice | None:
    """Choose the responder for a new task.

    Returns ``None`` when no active member is reachable, in which case the
    task stays pending.
    """
    start = normalize_cursor(cursor, len(members))
    if start is None:
        return None
    if policy is RotationPolicy.RANDOM:
        member = _pick_random(members, rng)
    else:
        member = _scan(members, start, max_skip=max_skip)
    if member is None:
        return None
    return RotationChoice(member, _cursor_for(policy, member, cursor, len(members)))


def select_successor(
    policy: RotationPolicy,
    members: typ.Sequence[RotationMember],
    cursor: int | None,
    current_responder_id: int | None,
    *,
    rng: random.Random,
    max_skip: int | None = None,
) -> RotationChoice | None:
    """Choose the responder an escalated task moves to.

    The scan starts after the current assignee's position (or at the cursor
    when the assignee is no longer a member) and never returns the current
    assignee.
    """
    size = len(members)
    start = normalize_cursor(cursor, size)
    if start is None:
        return None
    if policy is RotationPolicy.RANDOM:
        member = _pick_random(members, rng, exclude=current_responder_id)
    else:
        current = next(
            (m for m in members if m.responder_id == current_responder_id), None
        )
        if current is not None:
            start = (current.position + 1) % size
        member = _scan(
            members, start, max_skip=max_skip, exclude=current_responder_id
        )
    if member is None:
        return None
    return RotationChoice(member, _cursor_for(policy, member, cursor, size))


def advance_after_ack(
    policy: RotationPolicy,
    members: typ.Sequence[RotationMember],
    cursor: int | None,
    responder_id: int | None,
) -> int | None:
    """Return the cursor after *responder_id* acknowledges or completes a task.

    Only the sequential policy moves here, and only when the acknowledging
    responder is the one the cursor points at.
    """
    normalized = normalize_cursor(cursor, len(members))
    if policy is not RotationPolicy.SEQUENTIAL or normalized is None:
        return normalized
    if members[normalized].responder_id != responder_id:
        return normalized
    return (normalized + 1) % len(members)
