"""Persistence models for on-call schedules, responders and tasks."""

from __future__ import annotations

import datetime as dt  # noqa: TC003

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from otto.common.time import utcnow
from otto.storage import Base, UTCDateTime


class Responder(Base):
    """Person eligible for on-call assignments."""

    __tablename__ = "oncall_users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    github: Mapped[str] = mapped_column(String(255), unique=True)
    display_name: Mapped[str] = mapped_column(String(255), default="")
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)


class Schedule(Base):
    """Named rotation with an ordered responder pool."""

    __tablename__ = "oncall_schedules"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True)
    policy: Mapped[str] = mapped_column(String(32))
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    current_rotation_idx: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )

    memberships: Mapped[list[ScheduleMembership]] = relationship(
        back_populates="schedule",
        order_by="ScheduleMembership.position",
        cascade="all, delete-orphan",
    )


class ScheduleMembership(Base):
    """Responder position within a schedule."""

    __tablename__ = "oncall_schedule_users"
    __table_args__ = (
        UniqueConstraint(
            "schedule_id", "position", name="uq_oncall_schedule_users_position"
        ),
    )

    schedule_id: Mapped[int] = mapped_column(
        ForeignKey("oncall_schedules.id", ondelete="CASCADE"), primary_key=True
    )
    responder_id: Mapped[int] = mapped_column(
        ForeignKey("oncall_users.id", ondelete="CASCADE"), primary_key=True
    )
    position: Mapped[int] = mapped_column(Integer)

    schedule: Mapped[Schedule] = relationship(back_populates="memberships")
    responder: Mapped[Responder] = relationship(lazy="joined")


class Task(Base):
    """Unit of on-call work derived from an issue."""

    __tablename__ = "oncall_tasks"
    __table_args__ = (
        Index("ix_oncall_tasks_issue", "repo", "issue_number"),
        Index("ix_oncall_tasks_schedule_status", "schedule_id", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    schedule_id: Mapped[int] = mapped_column(
        ForeignKey("oncall_schedules.id", ondelete="CASCADE"), nullable=False
    )
    repo: Mapped[str] = mapped_column(String(255))
    issue_number: Mapped[int] = mapped_column(Integer)
    title: Mapped[str] = mapped_column(String(1024), default="")
    description: Mapped[str] = mapped_column(Text(), default="")
    status: Mapped[str] = mapped_column(String(16))
    assigned_to: Mapped[int | None] = mapped_column(
        ForeignKey("oncall_users.id", ondelete="SET NULL"), default=None
    )
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    assigned_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    acked_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    completed_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())

    schedule: Mapped[Schedule] = relationship(lazy="joined")
    assignee: Mapped[Responder | None] = relationship(lazy="joined")


class TaskAssignment(Base):
    """Audit row for each responder a task was assigned to."""

    __tablename__ = "oncall_task_assignments"
    __table_args__ = (Index("ix_oncall_task_assignments_task", "task_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    task_id: Mapped[int] = mapped_column(
        ForeignKey("oncall_tasks.id", ondelete="CASCADE"), nullable=False
    )
    responder_id: Mapped[int] = mapped_column(
        ForeignKey("oncall_users.id", ondelete="CASCADE"), nullable=False
    )
    reason: Mapped[str] = mapped_column(String(16))
    assigned_at: Mapped[dt.datetime] = mapped_column(UTCDateTime())
    ended_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())

    responder: Mapped[Responder] = relationship(lazy="joined")
