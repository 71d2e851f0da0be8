"""Slash command detection and parsing for comment bodies.

Modules parse commands themselves inside ``handle_event``; these helpers
only recognise command lines and split them into a name and arguments.

A command line is a line whose stripped text starts with ``/`` followed by at
least one more character. Lines starting with ``//`` are treated as comments,
not commands.

Usage
-----
>>> is_slash_command("please look\\n/oncall ack")
True
>>> find_slash_command("/oncall assign primary", "oncall").args
('assign', 'primary')

"""

from __future__ import annotations

import dataclasses as dc
import shlex
import typing as typ

from otto.logging import get_logger, log_debug

__all__ = [
    "SlashCommand",
    "find_slash_command",
    "is_slash_command",
    "iter_slash_commands",
    "log_slash_command",
    "parse_slash_command",
]

logger = get_logger(__name__)


@dc.dataclass(frozen=True, slots=True)
class SlashCommand:
    """A parsed slash command line.

    Attributes
    ----------
    name
        Command name, the first token after the leading ``/``. Compared
        case-sensitively.
    args
        Remaining tokens.
    line
        The stripped source line.

    """

    name: str
    args: tuple[str, ...]
    line: str

    @property
    def subcommand(self) -> str | None:
        """Return the first argument, if any."""
        return self.args[0] if self.args else None


def _is_command_line(line: str) -> bool:
    return line.startswith("/") and len(line) > 1 and not line.startswith("//")


def is_slash_command(text: str) -> bool:
    """Return whether any line of *text* is a slash command."""
    return any(_is_command_line(line.strip()) for line in text.split("\n"))


def _tokenize(body: str) -> list[str]:
    try:
        return shlex.split(body)
    except ValueError:
        # Unbalanced quotes; fall back to plain whitespace splitting.
        return body.split()


def parse_slash_command(line: str) -> SlashCommand | None:
    """Parse a single line into a ``SlashCommand``.

    Returns ``None`` when the line is not a command line or carries no
    command name.
    """
    stripped = line.strip()
    if not _is_command_line(stripped):
        return None
    tokens = _tokenize(stripped[1:])
    if not tokens:
        return None
    return SlashCommand(name=tokens[0], args=tuple(tokens[1:]), line=stripped)


def iter_slash_commands(text: str) -> typ.Iterator[SlashCommand]:
    """Yield every slash command in *text* in line order."""
    for line in text.split("\n"):
        command = parse_slash_command(line)
        if command is not None:
            yield command


def find_slash_command(text: str, name: str) -> SlashCommand | None:
    """Return the first command in *text* named exactly *name*."""
    return next((cmd for cmd in iter_slash_commands(text) if cmd.name == name), None)


def log_slash_command(
    command: SlashCommand,
    *,
    issuer: str | None,
    repo: str,
    issue_number: int,
) -> None:
    """Emit a debug event describing a detected command."""
    log_debug(
        logger,
        "slash command detected command=%s args_count=%d issuer=%s repo=%s issue=%d",
        command.name,
        len(command.args),
        issuer,
        repo,
        issue_number,
    )
