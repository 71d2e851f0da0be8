"""Settings for the on-call module, read from ``modules.oncall``."""

from __future__ import annotations

import datetime as dt
import typing as typ

import msgspec

from otto.oncall.errors import OnCallConfigError
from otto.oncall.models import RotationPolicy

__all__ = ["OnCallSettings", "ResponderSeed", "ScheduleSeed"]


class ResponderSeed(msgspec.Struct, kw_only=True):
    """Responder declared in configuration."""

    github: str
    display_name: str = ""
    active: bool = True


class ScheduleSeed(msgspec.Struct, kw_only=True):
    """Schedule declared in configuration; ``members`` are GitHub handles."""

    name: str
    policy: RotationPolicy = RotationPolicy.ROUND_ROBIN
    enabled: bool = True
    members: list[str] = msgspec.field(default_factory=list)


class OnCallSettings(msgspec.Struct, kw_only=True):
    """Tunables and seed data for the rotation engine."""

    escalation_window_seconds: float = 1800.0
    sweep_interval_seconds: float = 60.0
    max_skip: int | None = None
    trigger_label: str = "oncall"
    default_schedule: str | None = None
    command: str = "oncall"
    responders: list[ResponderSeed] = msgspec.field(default_factory=list)
    schedules: list[ScheduleSeed] = msgspec.field(default_factory=list)

    @property
    def escalation_window(self) -> dt.timedelta:
        """Return the escalation window as a timedelta."""
        return dt.timedelta(seconds=self.escalation_window_seconds)

    @property
    def default_schedule_name(self) -> str | None:
        """Return the configured default, or the first seeded schedule."""
        if self.default_schedule:
            return self.default_schedule
        return self.schedules[0].name if self.schedules else None

    @classmethod
    def from_block(cls, block: typ.Mapping[str, typ.Any] | None) -> OnCallSettings:
        """Convert and validate a ``modules.oncall`` mapping.

        Raises
        ------
        OnCallConfigError
            If the block does not match the expected shape or values.

        """
        try:
            settings = msgspec.convert(dict(block or {}), type=cls, strict=False)
        except msgspec.ValidationError as exc:
            raise OnCallConfigError(str(exc)) from exc
        settings.validate()
        return settings

    def validate(self) -> None:
        """Raise :class:`OnCallConfigError` for inconsistent settings."""
        if self.escalation_window_seconds <= 0:
            msg = "escalation_window_seconds must be positive"
            raise OnCallConfigError(msg)
        if self.sweep_interval_seconds <= 0:
            msg = "sweep_interval_seconds must be positive"
            raise OnCallConfigError(msg)
        if self.max_skip is not None and self.max_skip < 0:
            msg = "max_skip must not be negative"
            raise OnCallConfigError(msg)
        known = {seed.github for seed in self.responders}
        names: set[str] = set()
        for schedule in self.schedules:
            if schedule.name in names:
                msg = f"duplicate schedule {schedule.name!r}"
                raise OnCallConfigError(msg)
            names.add(schedule.name)
            if len(set(schedule.members)) != len(schedule.members):
                msg = f"schedule {schedule.name!r} lists a member twice"
                raise OnCallConfigError(msg)
            if unknown := sorted(set(schedule.members) - known):
                msg = (
                    f"schedule {schedule.name!r} references unknown responders: "
                    f"{', '.join(unknown)}"
                )
                raise OnCallConfigError(msg)
        if names and self.default_schedule and self.default_schedule not in names:
            msg = f"default_schedule {self.default_schedule!r} is not declared"
            raise OnCallConfigError(msg)
